"""
Backtracking line searches used by the quasi-Newton minimizer.

Both searches shrink the step by ``RHO`` until a sufficient-decrease (Armijo)
condition holds. The constrained variant keeps every coordinate inside the
orthant picked at the start of the search, which is what lets the L1
penalised (orthant-wise) minimizer produce exact zeros.

All vectors live in a ``LineSearchResult`` workspace that is reused from one
iteration to the next: the new point and gradient are written into the
buffers of the previous "current" point and then the roles are swapped.
"""

from __future__ import annotations

import logging
import math
from typing import Optional

import numpy as np

from .array_math import l1_norm
from .errors import TrainingError

logger = logging.getLogger(__name__)

C = 1e-4
RHO = 0.5
# Bound on consecutive step halvings before giving up on a direction
MAX_HALVINGS = 200


class LineSearchFailure(TrainingError):
    """Raised when no step along the direction gives sufficient decrease."""


class LineSearchResult:
    """Workspace owned by one optimization run.

    ``curr`` refers to the point the last search started from and ``next``
    to the point it accepted. The next search starts from ``next`` and writes
    its result into the ``curr`` buffers.
    """

    __slots__ = (
        "_step_size",
        "_value_at_curr",
        "_value_at_next",
        "_grad_at_curr",
        "_grad_at_next",
        "_pseudo_grad_at_next",
        "_curr_point",
        "_next_point",
        "_sign_vector",
        "_fct_eval_count",
    )

    def __init__(
        self,
        value_at_x: float,
        grad_at_x: np.ndarray,
        x: np.ndarray,
        pseudo_grad_at_x: Optional[np.ndarray] = None,
        with_sign_vector: bool = False,
        fct_eval_count: int = 0,
    ):
        dimension = len(x)
        self._step_size = 0.0
        self._value_at_curr = 0.0
        self._value_at_next = float(value_at_x)
        self._grad_at_curr = np.zeros(dimension, dtype=np.float64)
        self._grad_at_next = np.array(grad_at_x, dtype=np.float64)
        self._pseudo_grad_at_next = (
            None if pseudo_grad_at_x is None else np.array(pseudo_grad_at_x, dtype=np.float64)
        )
        self._curr_point = np.zeros(dimension, dtype=np.float64)
        self._next_point = np.array(x, dtype=np.float64)
        self._sign_vector = np.zeros(dimension, dtype=np.float64) if with_sign_vector else None
        self._fct_eval_count = fct_eval_count

    @classmethod
    def initial(cls, value_at_x: float, grad_at_x: np.ndarray, x: np.ndarray) -> "LineSearchResult":
        return cls(value_at_x, grad_at_x, x)

    @classmethod
    def initial_for_l1(
        cls,
        value_at_x: float,
        grad_at_x: np.ndarray,
        pseudo_grad_at_x: np.ndarray,
        x: np.ndarray,
    ) -> "LineSearchResult":
        return cls(value_at_x, grad_at_x, x, pseudo_grad_at_x=pseudo_grad_at_x, with_sign_vector=True)

    def _accept(self, step_size: float, value_at_next: float, fct_eval_count: int) -> None:
        # The new point and gradient were written into the curr buffers; swap roles.
        self._curr_point, self._next_point = self._next_point, self._curr_point
        self._grad_at_curr, self._grad_at_next = self._grad_at_next, self._grad_at_curr
        self._value_at_curr = self._value_at_next
        self._value_at_next = value_at_next
        self._step_size = step_size
        self._fct_eval_count = fct_eval_count

    @property
    def step_size(self) -> float:
        return self._step_size

    @property
    def value_at_curr(self) -> float:
        return self._value_at_curr

    @property
    def value_at_next(self) -> float:
        return self._value_at_next

    @property
    def grad_at_curr(self) -> np.ndarray:
        return self._grad_at_curr

    @property
    def grad_at_next(self) -> np.ndarray:
        return self._grad_at_next

    @property
    def pseudo_grad_at_next(self) -> Optional[np.ndarray]:
        return self._pseudo_grad_at_next

    @property
    def curr_point(self) -> np.ndarray:
        return self._curr_point

    @property
    def next_point(self) -> np.ndarray:
        return self._next_point

    @property
    def sign_vector(self) -> Optional[np.ndarray]:
        return self._sign_vector

    @property
    def fct_eval_count(self) -> int:
        return self._fct_eval_count

    @property
    def func_change_rate(self) -> float:
        if self._value_at_curr == 0.0:
            return 0.0
        return (self._value_at_curr - self._value_at_next) / self._value_at_curr

    def update_pseudo_gradient(self, pseudo_grad: np.ndarray) -> None:
        if self._pseudo_grad_at_next is None:
            raise TrainingError("Pseudo-gradient requested on an unconstrained workspace")
        np.copyto(self._pseudo_grad_at_next, pseudo_grad)


def _satisfies(value: float, bound: float) -> bool:
    return math.isfinite(value) and value <= bound


def do_line_search(
    function,
    direction: np.ndarray,
    lsr: LineSearchResult,
    initial_step_size: float,
) -> None:
    """
    Backtracking search from ``lsr.next_point`` along ``direction``.

    Args:
        function: Objective exposing ``value_at(x)`` and ``gradient_at(x)``
        direction: Search direction (a descent direction for the objective)
        lsr: Workspace; updated in place with the accepted point
        initial_step_size: First step tried
    """
    step_size = initial_step_size
    fct_eval_count = lsr.fct_eval_count
    x = lsr.next_point
    grad_at_x = lsr.grad_at_next
    value_at_x = lsr.value_at_next
    if not math.isfinite(value_at_x):
        raise TrainingError(f"Objective is not finite at the start point ({value_at_x})")

    # Reuse the buffers of the previous point
    next_point = lsr.curr_point
    grad_at_next = lsr.grad_at_curr

    cached_prod = C * float(np.dot(direction, grad_at_x))
    for _ in range(MAX_HALVINGS):
        np.multiply(direction, step_size, out=next_point)
        next_point += x
        value_at_next = function.value_at(next_point)
        fct_eval_count += 1
        if _satisfies(value_at_next, value_at_x + cached_prod * step_size):
            break
        step_size *= RHO
    else:
        raise LineSearchFailure(
            f"No sufficient decrease after {MAX_HALVINGS} step reductions",
            hint="The search direction is probably not a descent direction.",
        )

    np.copyto(grad_at_next, function.gradient_at(next_point))
    lsr._accept(step_size, value_at_next, fct_eval_count)


def do_constrained_line_search(
    function,
    direction: np.ndarray,
    lsr: LineSearchResult,
    l1_cost: float,
    initial_step_size: float,
) -> None:
    """
    Orthant-constrained backtracking search for an L1 penalised objective.

    The objective value includes ``l1_cost * ||x||_1``. Coordinates that would
    leave the orthant of the start point are set to zero. The decrease test
    uses the pseudo-gradient against the projected displacement.
    """
    step_size = initial_step_size
    fct_eval_count = lsr.fct_eval_count
    x = lsr.next_point
    sign_x = lsr.sign_vector
    pseudo_grad_at_x = lsr.pseudo_grad_at_next
    value_at_x = lsr.value_at_next
    if sign_x is None or pseudo_grad_at_x is None:
        raise TrainingError("Constrained line search needs an L1 workspace")
    if not math.isfinite(value_at_x):
        raise TrainingError(f"Objective is not finite at the start point ({value_at_x})")

    next_point = lsr.curr_point
    grad_at_next = lsr.grad_at_curr

    # Orthant of the search: sign of x, or of the negative pseudo-gradient at zero
    np.copyto(sign_x, np.where(x == 0, -pseudo_grad_at_x, x))

    for _ in range(MAX_HALVINGS):
        np.multiply(direction, step_size, out=next_point)
        next_point += x
        next_point[next_point * sign_x <= 0] = 0.0

        value_at_next = function.value_at(next_point) + l1_cost * l1_norm(next_point)
        fct_eval_count += 1

        dir_gradient_at_x = float(np.dot(next_point - x, pseudo_grad_at_x))
        if _satisfies(value_at_next, value_at_x + C * dir_gradient_at_x):
            break
        step_size *= RHO
    else:
        raise LineSearchFailure(
            f"No sufficient decrease after {MAX_HALVINGS} step reductions",
            hint="The search direction is probably not a descent direction.",
        )

    np.copyto(grad_at_next, function.gradient_at(next_point))
    lsr._accept(step_size, value_at_next, fct_eval_count)


__all__ = [
    "C",
    "RHO",
    "LineSearchFailure",
    "LineSearchResult",
    "do_line_search",
    "do_constrained_line_search",
]
