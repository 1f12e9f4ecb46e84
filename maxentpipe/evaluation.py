"""
Accuracy evaluation of a model on labelled events.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Tuple

from .event import Event
from .model import MaxentModel

logger = logging.getLogger(__name__)


@dataclass
class EvaluationReport:
    """Counts collected while evaluating a model."""

    correct: int = 0
    total: int = 0
    # (gold, predicted) -> count
    confusion: Counter = field(default_factory=Counter)

    @property
    def accuracy(self) -> float:
        return self.correct / self.total if self.total else 0.0

    def per_outcome(self) -> List[Tuple[str, int, int, float]]:
        """Rows of (gold outcome, correct, total, accuracy) sorted by outcome."""
        totals: Dict[str, int] = Counter()
        hits: Dict[str, int] = Counter()
        for (gold, predicted), count in self.confusion.items():
            totals[gold] += count
            if gold == predicted:
                hits[gold] += count
        return [
            (gold, hits[gold], totals[gold], hits[gold] / totals[gold])
            for gold in sorted(totals)
        ]

    def to_dict(self) -> Dict[str, object]:
        return {"correct": self.correct, "total": self.total, "accuracy": self.accuracy}


def evaluate_events(model: MaxentModel, events: Iterable[Event]) -> EvaluationReport:
    """Classify every event and compare with its gold outcome."""
    report = EvaluationReport()
    for event in events:
        probs = model.evaluate(event.context, event.values)
        predicted = model.best_outcome(probs)
        report.total += 1
        if predicted == event.outcome:
            report.correct += 1
        report.confusion[(event.outcome, predicted)] += 1
    logger.info("Accuracy: %.4f (%d/%d)", report.accuracy, report.correct, report.total)
    return report


def accuracy(model: MaxentModel, events: Iterable[Event]) -> float:
    """Fraction of events whose best outcome equals the gold outcome."""
    return evaluate_events(model, events).accuracy
