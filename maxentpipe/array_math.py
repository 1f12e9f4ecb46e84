"""
Small vector helpers shared by the model and the optimizers.
"""

from __future__ import annotations

import numpy as np


def l1_norm(v: np.ndarray) -> float:
    return float(np.abs(v).sum())


def l2_norm(v: np.ndarray) -> float:
    return float(np.sqrt(np.dot(v, v)))


def inv_l2_norm(v: np.ndarray) -> float:
    """Return 1 / ||v||, or +inf for the zero vector."""
    norm = l2_norm(v)
    if norm == 0.0:
        return float("inf")
    return 1.0 / norm


def max_index(v: np.ndarray) -> int:
    """Index of the largest element; ties go to the lowest index."""
    return int(np.argmax(v))


def softmax(scores: np.ndarray, axis: int = -1) -> np.ndarray:
    """Row-wise softmax, stabilised by subtracting the max score."""
    shifted = scores - np.max(scores, axis=axis, keepdims=True)
    np.exp(shifted, out=shifted)
    shifted /= shifted.sum(axis=axis, keepdims=True)
    return shifted


def sparse_scores(
    weights: np.ndarray,
    indptr: np.ndarray,
    indices: np.ndarray,
    data: np.ndarray,
) -> np.ndarray:
    """
    Raw outcome scores for a batch of sparse events.

    Args:
        weights: Parameter matrix of shape (num_outcomes, num_predicates)
        indptr: Row boundaries, length num_events + 1
        indices: Predicate ids of all active features, concatenated
        data: Feature values parallel to ``indices``

    Returns:
        Array of shape (num_events, num_outcomes)
    """
    num_events = len(indptr) - 1
    num_outcomes = weights.shape[0]
    scores = np.zeros((num_events, num_outcomes), dtype=np.float64)
    if indices.size == 0 or num_events == 0:
        return scores
    contributions = weights[:, indices].T * data[:, None]
    lengths = np.diff(indptr)
    non_empty = lengths > 0
    # reduceat needs strictly valid starting offsets
    scores[non_empty] = np.add.reduceat(contributions, indptr[:-1][non_empty], axis=0)
    return scores


def scatter_expectations(
    num_outcomes: int,
    num_predicates: int,
    indices: np.ndarray,
    event_ids: np.ndarray,
    data: np.ndarray,
    event_weights: np.ndarray,
) -> np.ndarray:
    """
    Accumulate per (outcome, predicate) expectations.

    ``event_weights`` has shape (num_events, num_outcomes) and holds the
    probability mass (times count) assigned to every outcome of every event.
    """
    totals = np.zeros((num_outcomes, num_predicates), dtype=np.float64)
    if indices.size == 0:
        return totals
    per_feature = event_weights[event_ids] * data[:, None]
    for oi in range(num_outcomes):
        np.add.at(totals[oi], indices, per_feature[:, oi])
    return totals
