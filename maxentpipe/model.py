"""
Trained maximum-entropy model.

A ``MaxentModel`` holds the weight matrix (one row per outcome, one column
per predicate) and the label dictionaries. It is built once by a trainer (or
loaded by ``model_io``) and is read-only afterwards, so one instance can be
shared by many threads.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

import numpy as np

from .array_math import max_index, softmax
from .errors import ModelFormatError
from .index_table import DEFAULT_LOAD_FACTOR, PredicateIndexTable

logger = logging.getLogger(__name__)

MODEL_TYPES = ("GIS", "QN")


class MaxentModel:
    """Log-linear classifier over sparse string features."""

    def __init__(
        self,
        weights: np.ndarray,
        pred_labels: Sequence[str],
        outcome_labels: Sequence[str],
        correction_constant: float = 1.0,
        model_type: str = "GIS",
        load_factor: float = DEFAULT_LOAD_FACTOR,
    ):
        weights = np.array(weights, dtype=np.float64, copy=True)
        if weights.ndim != 2 or weights.shape != (len(outcome_labels), len(pred_labels)):
            raise ModelFormatError(
                f"Weight matrix shape {weights.shape} does not match "
                f"{len(outcome_labels)} outcomes x {len(pred_labels)} predicates"
            )
        if model_type not in MODEL_TYPES:
            raise ModelFormatError(f"Unknown model type '{model_type}'")
        weights.setflags(write=False)
        self._weights = weights
        self._pred_labels = tuple(pred_labels)
        self._outcome_labels = tuple(outcome_labels)
        self._pmap = PredicateIndexTable.build(self._pred_labels, load_factor)
        self._outcome_index: Dict[str, int] = {label: i for i, label in enumerate(self._outcome_labels)}
        self.correction_constant = float(correction_constant)
        self.model_type = model_type

    @property
    def weights(self) -> np.ndarray:
        return self._weights

    @property
    def pred_labels(self) -> List[str]:
        return list(self._pred_labels)

    @property
    def outcome_labels(self) -> List[str]:
        return list(self._outcome_labels)

    @property
    def num_outcomes(self) -> int:
        return len(self._outcome_labels)

    @property
    def num_predicates(self) -> int:
        return len(self._pred_labels)

    def predicate_id(self, feature: str) -> Optional[int]:
        return self._pmap.get(feature)

    def raw_scores_ids(self, ids: Sequence[int], values: Optional[Sequence[float]] = None) -> np.ndarray:
        """Sum of weights for the given predicate ids, one score per outcome."""
        if len(ids) == 0:
            return np.zeros(self.num_outcomes, dtype=np.float64)
        columns = self._weights[:, np.asarray(ids, dtype=np.int64)]
        if values is None:
            return columns.sum(axis=1)
        return columns @ np.asarray(values, dtype=np.float64)

    def raw_scores(self, features: Sequence[str], values: Optional[Sequence[float]] = None) -> np.ndarray:
        ids: List[int] = []
        kept: List[float] = []
        for pos, feature in enumerate(features):
            pid = self._pmap.get(feature)
            if pid is None:
                continue
            ids.append(pid)
            if values is not None:
                kept.append(values[pos])
        return self.raw_scores_ids(ids, kept if values is not None else None)

    def evaluate_ids(self, ids: Sequence[int], values: Optional[Sequence[float]] = None) -> np.ndarray:
        """Like ``evaluate`` for contexts already mapped to predicate ids."""
        if values is not None and len(values) != len(ids):
            raise ValueError(f"Got {len(ids)} predicate ids but {len(values)} values")
        return softmax(self.raw_scores_ids(ids, values))

    def evaluate(self, features: Sequence[str], values: Optional[Sequence[float]] = None) -> np.ndarray:
        """
        Probability of every outcome given the active features.

        Args:
            features: Feature names; names unknown to the model are ignored
            values: Optional real values parallel to ``features`` (default 1.0)

        Returns:
            Array of length ``num_outcomes`` summing to 1
        """
        if values is not None and len(values) != len(features):
            raise ValueError(f"Got {len(features)} features but {len(values)} values")
        return softmax(self.raw_scores(features, values))

    def best_outcome(self, probs: Sequence[float]) -> str:
        return self._outcome_labels[max_index(np.asarray(probs))]

    def outcome(self, index: int) -> str:
        return self._outcome_labels[index]

    def index_of(self, label: str) -> int:
        return self._outcome_index.get(label, -1)

    def all_outcomes(self, probs: Sequence[float]) -> str:
        """Human readable ``label[prob]`` listing in outcome order."""
        if len(probs) != self.num_outcomes:
            return (
                f"The number of probabilities ({len(probs)}) does not match "
                f"the number of outcomes ({self.num_outcomes})"
            )
        return " ".join(f"{label}[{p:.4f}]" for label, p in zip(self._outcome_labels, probs))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MaxentModel):
            return NotImplemented
        return (
            self.model_type == other.model_type
            and self.correction_constant == other.correction_constant
            and self._pred_labels == other._pred_labels
            and self._outcome_labels == other._outcome_labels
            and np.array_equal(self._weights, other._weights)
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return (
            f"MaxentModel(type={self.model_type}, outcomes={self.num_outcomes}, "
            f"predicates={self.num_predicates})"
        )
