"""
Generalized Iterative Scaling trainer.

Each iteration scores every training event with the current parameters,
accumulates the model's expected count for every active (predicate, outcome)
pair and moves each parameter by::

    (log(observed) - log(expected)) / correction_constant

The expectation step can run on several threads: the (merged) event list is
cut into contiguous ranges, every worker fills its own buffer and the buffers
are summed once all workers are done.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from .array_math import scatter_expectations, softmax, sparse_scores
from .errors import ConfigurationError, InsufficientTrainingDataError, TrainingError
from .index_table import DEFAULT_LOAD_FACTOR
from .indexer import IndexedTrainingSet
from .model import MaxentModel

logger = logging.getLogger(__name__)

ITERATIONS_DEFAULT = 100
LL_THRESHOLD_DEFAULT = 1e-4
SMOOTHING_OBSERVATION_DEFAULT = 0.1
GAUSSIAN_MAX_STEPS = 50
GAUSSIAN_TOLERANCE = 1e-6


@dataclass
class _EventRange:
    """Contiguous slice of the training events handled by one worker."""

    indptr: np.ndarray
    indices: np.ndarray
    data: np.ndarray
    event_ids: np.ndarray
    outcomes: np.ndarray
    counts: np.ndarray

    def __len__(self) -> int:
        return len(self.outcomes)


@dataclass
class _PartialExpectation:
    expected: np.ndarray
    loglikelihood: float
    num_events: float
    num_correct: float


def partition(num_events: int, threads: int) -> List[Tuple[int, int]]:
    """
    Split ``num_events`` into ``threads`` contiguous (start, length) ranges.

    The first ``num_events % threads`` ranges get one extra event.
    """
    task_size, left_over = divmod(num_events, threads)
    ranges = []
    for i in range(threads):
        if i < left_over:
            ranges.append((i * task_size + i, task_size + 1))
        else:
            ranges.append((i * task_size + left_over, task_size))
    return ranges


class GISTrainer:
    """Trains a ``MaxentModel`` with Generalized Iterative Scaling."""

    def __init__(
        self,
        iterations: int = ITERATIONS_DEFAULT,
        threads: int = 1,
        smoothing: bool = False,
        smoothing_observation: float = SMOOTHING_OBSERVATION_DEFAULT,
        gaussian_sigma: Optional[float] = None,
        ll_threshold: float = LL_THRESHOLD_DEFAULT,
        load_factor: float = DEFAULT_LOAD_FACTOR,
    ):
        if threads < 1:
            raise ConfigurationError(f"threads must be at least one but is {threads}")
        if iterations < 1:
            raise ConfigurationError(f"iterations must be at least one but is {iterations}")
        if smoothing and smoothing_observation <= 0:
            raise ConfigurationError("smoothing_observation must be > 0 when smoothing is enabled")
        if gaussian_sigma is not None and gaussian_sigma <= 0:
            raise ConfigurationError(f"gaussian_sigma must be > 0, got {gaussian_sigma}")
        self.iterations = iterations
        self.threads = threads
        self.smoothing = smoothing
        self.smoothing_observation = smoothing_observation
        self.gaussian_sigma = gaussian_sigma
        self.ll_threshold = ll_threshold
        self.load_factor = load_factor

        self.loglikelihoods: List[float] = []

    def train(self, indexed: IndexedTrainingSet) -> MaxentModel:
        """
        Fit a model to an indexed training set.

        Args:
            indexed: Output of one of the event indexers

        Returns:
            The trained MaxentModel (model_type "GIS")
        """
        num_outcomes = indexed.num_outcomes
        num_preds = indexed.num_predicates
        if num_outcomes < 2:
            raise InsufficientTrainingDataError(
                f"Training data has {num_outcomes} outcome label(s); at least two are required.",
                hint="Check the outcome column of the training events.",
            )
        comp = indexed.compressed()
        if len(comp.outcomes) == 0:
            raise InsufficientTrainingDataError("Insufficient training data to create model.")

        correction_constant = float(np.max(np.add.reduceat(comp.data, comp.indptr[:-1])))
        if not np.isfinite(correction_constant):
            raise TrainingError(
                f"Correction constant is not finite ({correction_constant})",
                hint="Feature values must be finite.",
            )

        logger.info("Number of Event Tokens: %d", indexed.num_unique_events)
        logger.info("    Number of Outcomes: %d", num_outcomes)
        logger.info("  Number of Predicates: %d", num_preds)

        # observed[oi, pi]: empirical count of predicate pi with outcome oi
        observed = np.zeros((num_outcomes, num_preds), dtype=np.float64)
        np.add.at(
            observed,
            (comp.outcomes[comp.event_ids], comp.indices),
            comp.counts[comp.event_ids] * comp.data,
        )
        if self.smoothing:
            active = np.ones_like(observed, dtype=bool)
            observed[observed <= 0] = self.smoothing_observation
        else:
            active = observed > 0

        params = np.zeros((num_outcomes, num_preds), dtype=np.float64)
        ranges = self._build_ranges(comp)

        if self.threads == 1:
            logger.info("Computing model parameters ...")
        else:
            logger.info("Computing model parameters in %d threads...", self.threads)
        logger.info("Performing %d iterations.", self.iterations)

        self.loglikelihoods = []
        prev_ll = 0.0
        with ThreadPoolExecutor(max_workers=self.threads) as executor:
            for iteration in range(1, self.iterations + 1):
                curr_ll = self._next_iteration(
                    iteration, params, observed, active, correction_constant, ranges, executor
                )
                self.loglikelihoods.append(curr_ll)
                if iteration > 1:
                    if prev_ll > curr_ll:
                        logger.warning("Model Diverging: loglikelihood decreased")
                        break
                    if curr_ll - prev_ll < self.ll_threshold:
                        break
                prev_ll = curr_ll

        # GIS parameters already absorb the correction constant; the model scores
        # with plain weighted sums.
        return MaxentModel(
            params,
            indexed.pred_labels,
            indexed.outcome_labels,
            correction_constant=correction_constant,
            model_type="GIS",
            load_factor=self.load_factor,
        )

    def _build_ranges(self, comp) -> List[_EventRange]:
        ranges: List[_EventRange] = []
        for start, length in partition(len(comp.outcomes), self.threads):
            lo = int(comp.indptr[start])
            hi = int(comp.indptr[start + length])
            ranges.append(
                _EventRange(
                    indptr=comp.indptr[start:start + length + 1] - lo,
                    indices=comp.indices[lo:hi],
                    data=comp.data[lo:hi],
                    event_ids=comp.event_ids[lo:hi] - start,
                    outcomes=comp.outcomes[start:start + length],
                    counts=comp.counts[start:start + length],
                )
            )
        return ranges

    @staticmethod
    def _expectations(params: np.ndarray, part: _EventRange) -> _PartialExpectation:
        num_outcomes, num_preds = params.shape
        if len(part) == 0:
            return _PartialExpectation(np.zeros_like(params), 0.0, 0.0, 0.0)
        probs = softmax(sparse_scores(params, part.indptr, part.indices, part.data))
        weighted = probs * part.counts[:, None]
        expected = scatter_expectations(
            num_outcomes, num_preds, part.indices, part.event_ids, part.data, weighted
        )
        rows = np.arange(len(part))
        gold = probs[rows, part.outcomes]
        with np.errstate(divide="ignore"):
            loglikelihood = float(np.sum(np.log(gold) * part.counts))
        correct = np.argmax(probs, axis=1) == part.outcomes
        return _PartialExpectation(
            expected=expected,
            loglikelihood=loglikelihood,
            num_events=float(part.counts.sum()),
            num_correct=float(part.counts[correct].sum()),
        )

    def _next_iteration(
        self,
        iteration: int,
        params: np.ndarray,
        observed: np.ndarray,
        active: np.ndarray,
        correction_constant: float,
        ranges: List[_EventRange],
        executor: ThreadPoolExecutor,
    ) -> float:
        futures = [executor.submit(self._expectations, params, part) for part in ranges]
        partials = [future.result() for future in futures]

        expected = partials[0].expected
        for partial in partials[1:]:
            expected += partial.expected
        loglikelihood = sum(p.loglikelihood for p in partials)
        num_events = sum(p.num_events for p in partials)
        num_correct = sum(p.num_correct for p in partials)

        if self.gaussian_sigma is not None:
            update = self._gaussian_update(params, expected, observed, correction_constant)
        else:
            update = np.zeros_like(params)
            usable = active & (expected > 0)
            starved = active & ~usable
            if np.any(starved):
                for oi, pi in zip(*np.nonzero(starved)):
                    logger.debug("Model expects == 0 for predicate %d outcome %d", pi, oi)
            update[usable] = (np.log(observed[usable]) - np.log(expected[usable])) / correction_constant
        update[~active] = 0.0
        params += update

        logger.info(
            "%3d: loglikelihood=%s\t%s",
            iteration,
            loglikelihood,
            num_correct / num_events if num_events else 0.0,
        )
        return loglikelihood

    def _gaussian_update(
        self,
        params: np.ndarray,
        expected: np.ndarray,
        observed: np.ndarray,
        correction_constant: float,
    ) -> np.ndarray:
        """Newton steps on the Gaussian-prior update equation, per parameter."""
        sigma = self.gaussian_sigma
        x0 = np.zeros_like(params)
        # Parameters whose Newton iteration already converged
        done = np.zeros(params.shape, dtype=bool)
        for _ in range(GAUSSIAN_MAX_STEPS):
            tmp = expected * np.exp(correction_constant * x0)
            f = tmp + (params + x0) / sigma - observed
            fp = tmp * correction_constant + 1.0 / sigma
            x = np.where(done, x0, x0 - f / fp)
            converged = np.abs(x - x0) < GAUSSIAN_TOLERANCE
            x0 = x
            done |= converged
            if done.all():
                break
        if not np.all(np.isfinite(x0)):
            logger.debug("Gaussian update produced non-finite steps; ignoring them")
            x0[~np.isfinite(x0)] = 0.0
        return x0


def log_likelihood(model: MaxentModel, indexed: IndexedTrainingSet) -> float:
    """Sum over events of count * log p(gold outcome)."""
    comp = indexed.compressed()
    probs = softmax(sparse_scores(model.weights, comp.indptr, comp.indices, comp.data))
    gold = probs[np.arange(len(comp.outcomes)), comp.outcomes]
    with np.errstate(divide="ignore"):
        return float(np.sum(np.log(gold) * comp.counts))
