"""
Quasi-Newton (L-BFGS / OWL-QN) training of maximum-entropy models.

The objective is the negative log-likelihood of the indexed training data,
optionally with an L2 penalty (``L2RegFunction``) and an L1 penalty handled by
the orthant-wise search in ``line_search.do_constrained_line_search``.
Parameters are a flat vector laid out as ``x[outcome * num_predicates + predicate]``.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Callable, List, Optional

import numpy as np

from .array_math import inv_l2_norm, l1_norm, l2_norm, scatter_expectations, softmax, sparse_scores
from .errors import ConfigurationError, InsufficientTrainingDataError, TrainingError
from .index_table import DEFAULT_LOAD_FACTOR
from .indexer import IndexedTrainingSet
from .line_search import (
    LineSearchFailure,
    LineSearchResult,
    do_constrained_line_search,
    do_line_search,
)
from .model import MaxentModel

logger = logging.getLogger(__name__)

ITERATIONS_DEFAULT = 100
L1_COST_DEFAULT = 0.1
L2_COST_DEFAULT = 0.1
NUM_UPDATES_DEFAULT = 15
MAX_FCT_EVAL_DEFAULT = 30000

CONVERGE_TOLERANCE = 1e-4
REL_GRAD_NORM_TOL = 1e-4
INITIAL_STEP_SIZE = 1.0
MIN_STEP_SIZE = 1e-10


class NegLogLikelihood:
    """Negative log-likelihood of an indexed training set and its gradient."""

    def __init__(self, indexed: IndexedTrainingSet):
        comp = indexed.compressed()
        self.num_outcomes = indexed.num_outcomes
        self.num_features = indexed.num_predicates
        self.dimension = self.num_outcomes * self.num_features
        self._comp = comp
        self._rows = np.arange(len(comp.outcomes))

        empirical = np.zeros((self.num_outcomes, self.num_features), dtype=np.float64)
        np.add.at(
            empirical,
            (comp.outcomes[comp.event_ids], comp.indices),
            comp.counts[comp.event_ids] * comp.data,
        )
        self.empirical_count = empirical.ravel()

    def get_dimension(self) -> int:
        return self.dimension

    def initial_point(self) -> np.ndarray:
        return np.zeros(self.dimension, dtype=np.float64)

    def _check_dimension(self, x: np.ndarray) -> None:
        if len(x) != self.dimension:
            raise ValueError("x is invalid, its dimension is not equal to domain dimension.")

    def _vote_sums(self, x: np.ndarray) -> np.ndarray:
        weights = x.reshape(self.num_outcomes, self.num_features)
        comp = self._comp
        return sparse_scores(weights, comp.indptr, comp.indices, comp.data)

    def value_at(self, x: np.ndarray) -> float:
        self._check_dimension(x)
        votes = self._vote_sums(x)
        peak = votes.max(axis=1)
        log_sum_exp = peak + np.log(np.exp(votes - peak[:, None]).sum(axis=1))
        gold = votes[self._rows, self._comp.outcomes]
        return float(-np.sum((gold - log_sum_exp) * self._comp.counts))

    def gradient_at(self, x: np.ndarray) -> np.ndarray:
        """Expected minus empirical feature counts."""
        self._check_dimension(x)
        comp = self._comp
        probs = softmax(self._vote_sums(x))
        expected = scatter_expectations(
            self.num_outcomes,
            self.num_features,
            comp.indices,
            comp.event_ids,
            comp.data,
            probs * comp.counts[:, None],
        )
        return expected.ravel() - self.empirical_count


class L2RegFunction:
    """Wraps an objective with ``l2_cost * ||x||^2``."""

    def __init__(self, function, l2_cost: float):
        self.function = function
        self.l2_cost = l2_cost

    def get_dimension(self) -> int:
        return self.function.get_dimension()

    def value_at(self, x: np.ndarray) -> float:
        value = self.function.value_at(x)
        if self.l2_cost > 0:
            value += self.l2_cost * float(np.dot(x, x))
        return value

    def gradient_at(self, x: np.ndarray) -> np.ndarray:
        gradient = self.function.gradient_at(x)
        if self.l2_cost > 0:
            gradient = gradient + 2 * self.l2_cost * x
        return gradient


class _UpdateInfo:
    """Ring of the last ``m`` curvature pairs (s, y) for the two-loop recursion."""

    def __init__(self, m: int):
        self.m = m
        self.s: List[np.ndarray] = []
        self.y: List[np.ndarray] = []
        self.rho: List[float] = []

    def update(self, lsr: LineSearchResult) -> None:
        s = lsr.next_point - lsr.curr_point
        y = lsr.grad_at_next - lsr.grad_at_curr
        sy = float(np.dot(s, y))
        if sy <= 0 or not math.isfinite(sy):
            logger.debug("Skipping curvature pair with s.y=%s", sy)
            return
        if len(self.s) == self.m:
            self.s.pop(0)
            self.y.pop(0)
            self.rho.pop(0)
        self.s.append(s)
        self.y.append(y)
        self.rho.append(1.0 / sy)

    def __len__(self) -> int:
        return len(self.s)


class QNMinimizer:
    """L-BFGS minimizer; switches to OWL-QN when ``l1_cost > 0``."""

    def __init__(
        self,
        l1_cost: float = 0.0,
        l2_cost: float = 0.0,
        iterations: int = ITERATIONS_DEFAULT,
        m: int = NUM_UPDATES_DEFAULT,
        max_fct_eval: int = MAX_FCT_EVAL_DEFAULT,
    ):
        if l1_cost < 0 or l2_cost < 0:
            raise ConfigurationError("L1-cost and L2-cost must not be less than zero")
        if iterations <= 0:
            raise ConfigurationError("Number of iterations must be larger than zero")
        if m <= 0:
            raise ConfigurationError("Number of Hessian updates must be larger than zero")
        if max_fct_eval <= 0:
            raise ConfigurationError("Maximum number of function evaluations must be larger than zero")
        self.l1_cost = l1_cost
        self.l2_cost = l2_cost
        self.iterations = iterations
        self.m = m
        self.max_fct_eval = max_fct_eval
        self.evaluator: Optional[Callable[[np.ndarray], float]] = None

    def minimize(self, function) -> np.ndarray:
        """
        Minimize ``function`` starting from the origin.

        Args:
            function: Objective exposing ``get_dimension()``, ``value_at(x)``
                and ``gradient_at(x)``

        Returns:
            The parameter vector found (a fresh array)
        """
        l2_function = L2RegFunction(function, self.l2_cost)
        dimension = l2_function.get_dimension()
        updates = _UpdateInfo(self.m)

        curr_point = np.zeros(dimension, dtype=np.float64)
        curr_value = l2_function.value_at(curr_point)
        curr_grad = np.array(l2_function.gradient_at(curr_point), dtype=np.float64)
        if not math.isfinite(curr_value):
            raise TrainingError(f"Objective is not finite at the origin ({curr_value})")

        use_l1 = self.l1_cost > 0
        if use_l1:
            curr_value += self.l1_cost * l1_norm(curr_point)
            pseudo_grad = self._pseudo_gradient(curr_point, curr_grad)
            lsr = LineSearchResult.initial_for_l1(curr_value, curr_grad, pseudo_grad, curr_point)
        else:
            lsr = LineSearchResult.initial(curr_value, curr_grad, curr_point)

        logger.info("Solving convex optimization problem.")
        logger.info("Objective function has %d variable(s).", dimension)
        logger.info(
            "Performing %d iterations with L1Cost=%s and L2Cost=%s",
            self.iterations,
            self.l1_cost,
            self.l2_cost,
        )

        start_time = time.time()
        initial_step_size = inv_l2_norm(lsr.pseudo_grad_at_next if use_l1 else lsr.grad_at_next)
        if math.isinf(initial_step_size):
            logger.info("Gradient vanishes at the origin. Training will stop.")
            return np.array(lsr.next_point, copy=True)

        direction = np.empty(dimension, dtype=np.float64)
        for iteration in range(1, self.iterations + 1):
            np.copyto(direction, lsr.pseudo_grad_at_next if use_l1 else lsr.grad_at_next)
            self._compute_direction(direction, updates)

            try:
                if use_l1:
                    pseudo_grad = lsr.pseudo_grad_at_next
                    # Keep the direction inside the orthant picked by the pseudo-gradient
                    direction[direction * pseudo_grad >= 0] = 0.0
                    do_constrained_line_search(l2_function, direction, lsr, self.l1_cost, initial_step_size)
                    lsr.update_pseudo_gradient(self._pseudo_gradient(lsr.next_point, lsr.grad_at_next))
                else:
                    do_line_search(l2_function, direction, lsr, initial_step_size)
            except LineSearchFailure as exc:
                logger.warning("%s Training will stop at iteration %d.", exc.message, iteration)
                break

            updates.update(lsr)

            if self.evaluator is not None:
                logger.info(
                    "%3d:  \t%s\t%s\t%s",
                    iteration,
                    lsr.value_at_next,
                    lsr.func_change_rate,
                    self.evaluator(lsr.next_point),
                )
            else:
                logger.info("%3d:  \t %s\t%s", iteration, lsr.value_at_next, lsr.func_change_rate)

            if self._is_converged(lsr, use_l1):
                break
            initial_step_size = INITIAL_STEP_SIZE

        # Elastic net shrinks twice; undo the L2 part
        if use_l1 and self.l2_cost > 0:
            lsr.next_point *= math.sqrt(1 + self.l2_cost)

        logger.info("Running time: %.3fs", time.time() - start_time)
        return np.array(lsr.next_point, copy=True)

    def _pseudo_gradient(self, x: np.ndarray, g: np.ndarray) -> np.ndarray:
        l1 = self.l1_cost
        pg = np.zeros_like(g)
        neg = x < 0
        pos = x > 0
        zero = ~(neg | pos)
        pg[neg] = g[neg] - l1
        pg[pos] = g[pos] + l1
        # At zero take the one-sided derivative that allows descent, if any
        right = zero & (g < -l1)
        left = zero & (g > l1)
        pg[right] = g[right] + l1
        pg[left] = g[left] - l1
        return pg

    @staticmethod
    def _compute_direction(direction: np.ndarray, updates: _UpdateInfo) -> None:
        """Two-loop recursion; turns the gradient in ``direction`` into -H*g."""
        k = len(updates)
        alpha = [0.0] * k
        for i in range(k - 1, -1, -1):
            alpha[i] = updates.rho[i] * float(np.dot(updates.s[i], direction))
            direction -= alpha[i] * updates.y[i]
        for i in range(k):
            beta = updates.rho[i] * float(np.dot(updates.y[i], direction))
            direction += updates.s[i] * (alpha[i] - beta)
        np.negative(direction, out=direction)

    def _is_converged(self, lsr: LineSearchResult, use_l1: bool) -> bool:
        if lsr.func_change_rate < CONVERGE_TOLERANCE:
            logger.info(
                "Function change rate is smaller than the threshold %s. Training will stop.",
                CONVERGE_TOLERANCE,
            )
            return True

        x_norm = max(1.0, l2_norm(lsr.next_point))
        grad_norm = l2_norm(lsr.pseudo_grad_at_next if use_l1 else lsr.grad_at_next)
        if grad_norm / x_norm < REL_GRAD_NORM_TOL:
            logger.info(
                "Relative L2-norm of the gradient is smaller than the threshold %s. Training will stop.",
                REL_GRAD_NORM_TOL,
            )
            return True

        if lsr.step_size < MIN_STEP_SIZE:
            logger.info(
                "Step size is smaller than the minimum step size %s. Training will stop.",
                MIN_STEP_SIZE,
            )
            return True

        if lsr.fct_eval_count > self.max_fct_eval:
            logger.info(
                "Maximum number of function evaluations has exceeded the threshold %d. Training will stop.",
                self.max_fct_eval,
            )
            return True
        return False


class QNTrainer:
    """Trains a ``MaxentModel`` by minimizing the penalised negative log-likelihood."""

    def __init__(
        self,
        iterations: int = ITERATIONS_DEFAULT,
        l1_cost: float = L1_COST_DEFAULT,
        l2_cost: float = L2_COST_DEFAULT,
        num_updates: int = NUM_UPDATES_DEFAULT,
        max_fct_eval: int = MAX_FCT_EVAL_DEFAULT,
        load_factor: float = DEFAULT_LOAD_FACTOR,
    ):
        if l1_cost < 0:
            raise ConfigurationError(f"l1_cost must be >= 0, got {l1_cost}")
        if l2_cost < 0:
            raise ConfigurationError(f"l2_cost must be >= 0, got {l2_cost}")
        self.iterations = iterations
        self.l1_cost = l1_cost
        self.l2_cost = l2_cost
        self.num_updates = num_updates
        self.max_fct_eval = max_fct_eval
        self.load_factor = load_factor

    def train(self, indexed: IndexedTrainingSet) -> MaxentModel:
        if indexed.num_outcomes < 2:
            raise InsufficientTrainingDataError(
                f"Training data has {indexed.num_outcomes} outcome label(s); at least two are required.",
                hint="Check the outcome column of the training events.",
            )
        objective = NegLogLikelihood(indexed)
        minimizer = QNMinimizer(
            self.l1_cost,
            self.l2_cost,
            self.iterations,
            self.num_updates,
            self.max_fct_eval,
        )
        minimizer.evaluator = _TrainingAccuracy(indexed)
        parameters = minimizer.minimize(objective)
        weights = parameters.reshape(indexed.num_outcomes, indexed.num_predicates)
        return MaxentModel(
            weights,
            indexed.pred_labels,
            indexed.outcome_labels,
            model_type="QN",
            load_factor=self.load_factor,
        )


class _TrainingAccuracy:
    """Accuracy of a flat parameter vector on the training events."""

    def __init__(self, indexed: IndexedTrainingSet):
        self._comp = indexed.compressed()
        self._shape = (indexed.num_outcomes, indexed.num_predicates)

    def __call__(self, parameters: np.ndarray) -> float:
        comp = self._comp
        scores = sparse_scores(parameters.reshape(self._shape), comp.indptr, comp.indices, comp.data)
        correct = np.argmax(scores, axis=1) == comp.outcomes
        total = comp.counts.sum()
        return float(comp.counts[correct].sum() / total) if total else 0.0
