"""
Beam search decoding of label sequences.

``BeamSearch`` keeps the ``beam_size`` best partial label sequences while it
walks over the tokens of one input sequence. At every position each kept
sequence is extended by the outcomes the model ranks among its top
``beam_size`` for that position, as long as the validator accepts them.
Scores are summed log-probabilities.

The per-token scorer is normally a ``MaxentModel`` but anything exposing
``evaluate(features) -> probabilities``, ``outcome(i)`` and ``num_outcomes``
works.
"""

from __future__ import annotations

import logging
import math
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Collection, List, Optional, Sequence as SequenceType, Tuple, Union

import numpy as np

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_BEAM_SIZE = 3
ZERO_LOG = -100000.0

ContextGenerator = Callable[[int, SequenceType[Any], List[str], Optional[SequenceType[Any]]], SequenceType[str]]
Validator = Callable[[int, SequenceType[Any], List[str], str], bool]
KnownLabel = Union[None, str, Collection[str]]


@dataclass
class Sequence:
    """A (partial) label sequence with the probability of every label."""

    outcomes: List[str] = field(default_factory=list)
    probs: List[float] = field(default_factory=list)
    score: float = 0.0

    def extend(self, outcome: str, prob: float) -> "Sequence":
        """Return a new sequence with ``outcome`` appended."""
        log_prob = math.log(prob) if prob > 0 else float("-inf")
        return Sequence(self.outcomes + [outcome], self.probs + [prob], self.score + log_prob)

    def __len__(self) -> int:
        return len(self.outcomes)

    def __str__(self) -> str:
        return f"{self.score} {self.outcomes}"


class _LRUCache:
    """Small least-recently-used map from feature tuples to probabilities."""

    def __init__(self, capacity: int):
        self.capacity = capacity
        self._data: "OrderedDict[Tuple[str, ...], np.ndarray]" = OrderedDict()

    def get(self, key: Tuple[str, ...]) -> Optional[np.ndarray]:
        value = self._data.get(key)
        if value is not None:
            self._data.move_to_end(key)
        return value

    def put(self, key: Tuple[str, ...], value: np.ndarray) -> None:
        self._data[key] = value
        self._data.move_to_end(key)
        while len(self._data) > self.capacity:
            self._data.popitem(last=False)

    def __len__(self) -> int:
        return len(self._data)


def _context_function(context_generator) -> ContextGenerator:
    if hasattr(context_generator, "get_context"):
        return context_generator.get_context
    return context_generator


def _validator_function(validator) -> Optional[Validator]:
    if validator is None:
        return None
    if hasattr(validator, "valid_sequence"):
        return validator.valid_sequence
    return validator


def _label_allowed(known: KnownLabel, outcome: str) -> bool:
    if known is None:
        return True
    if isinstance(known, str):
        return outcome == known
    return outcome in known


class BeamSearch:
    """Finds the best label sequences for a token sequence."""

    def __init__(self, model, beam_size: int = DEFAULT_BEAM_SIZE, cache_size: int = 0):
        if beam_size < 1:
            raise ConfigurationError(f"beam_size must be >= 1, got {beam_size}")
        self.model = model
        self.beam_size = beam_size
        self._cache = _LRUCache(cache_size) if cache_size > 0 else None

    def _probabilities(self, contexts: SequenceType[str]) -> np.ndarray:
        if self._cache is None:
            return np.asarray(self.model.evaluate(contexts))
        key = tuple(contexts)
        probs = self._cache.get(key)
        if probs is None:
            probs = np.asarray(self.model.evaluate(contexts))
            self._cache.put(key, probs)
        return probs

    def best_sequences(
        self,
        num_sequences: int,
        sequence: SequenceType[Any],
        context_generator,
        validator=None,
        additional_context: Optional[SequenceType[Any]] = None,
        known_labels: Optional[SequenceType[KnownLabel]] = None,
        min_sequence_score: float = ZERO_LOG,
    ) -> List[Sequence]:
        """
        Return the best label sequences for ``sequence``.

        Args:
            num_sequences: Maximum number of sequences to return
            sequence: The input tokens
            context_generator: ``(index, sequence, history, additional_context) -> features``,
                or an object with a ``get_context`` method of that signature
            validator: ``(index, sequence, history, outcome) -> bool``, or an
                object with a ``valid_sequence`` method; None accepts everything
            additional_context: Passed through to the context generator
            known_labels: Optional per-position label (or set of labels) the
                outcome at that position must match; None entries are free
            min_sequence_score: Sequences scoring at or below this are dropped

        Returns:
            Up to ``num_sequences`` Sequence objects, best first
        """
        if known_labels is not None and len(known_labels) != len(sequence):
            raise ValueError(
                f"known_labels has {len(known_labels)} entries for {len(sequence)} tokens"
            )
        get_context = _context_function(context_generator)
        is_valid = _validator_function(validator)
        if additional_context is None:
            additional_context = ()

        prev: List[Sequence] = [Sequence()]
        for i in range(len(sequence)):
            known = known_labels[i] if known_labels is not None else None
            candidates: List[Sequence] = []
            for top in prev[: min(self.beam_size, len(prev))]:
                history = list(top.outcomes)
                contexts = get_context(i, sequence, history, additional_context)
                scores = self._probabilities(contexts)

                # Probability of the beam_size-th best outcome
                threshold = np.sort(scores)[max(0, len(scores) - self.beam_size)]

                def advance(p: int) -> bool:
                    out = self.model.outcome(p)
                    if not _label_allowed(known, out):
                        return False
                    if is_valid is not None and not is_valid(i, sequence, history, out):
                        return False
                    extended = top.extend(out, float(scores[p]))
                    if extended.score > min_sequence_score:
                        candidates.append(extended)
                        return True
                    return False

                advanced = 0
                for p in range(len(scores)):
                    if scores[p] >= threshold and advance(p):
                        advanced += 1
                if advanced == 0:
                    # Nothing in the top ranks was legal; fall back to every legal outcome
                    for p in range(len(scores)):
                        advance(p)

            # Stable: equal scores keep discovery order
            candidates.sort(key=lambda s: s.score, reverse=True)
            prev = candidates
            if not prev:
                logger.debug("No legal sequence survives at position %d", i)
                break

        return prev[: min(num_sequences, len(prev))]

    def best_sequence(
        self,
        sequence: SequenceType[Any],
        context_generator,
        validator=None,
        additional_context: Optional[SequenceType[Any]] = None,
        known_labels: Optional[SequenceType[KnownLabel]] = None,
    ) -> Optional[Sequence]:
        sequences = self.best_sequences(
            1,
            sequence,
            context_generator,
            validator=validator,
            additional_context=additional_context,
            known_labels=known_labels,
        )
        return sequences[0] if sequences else None

    def outcomes(self) -> List[str]:
        return [self.model.outcome(i) for i in range(self.model.num_outcomes)]
