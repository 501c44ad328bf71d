"""
Limited-memory BFGS in free-angle space.

Direction from the standard two-loop recursion over the last m (s, y) pairs;
pairs with non-positive curvature y.s are never stored, so the implied
inverse Hessian stays positive definite. The step length comes from
scipy's strong-Wolfe line search, with deterministic Armijo backtracking when
that search fails. The iterate is kept unwrapped; angles are wrapped only when
a conformation is built and on return.

Returns an optimizer info dict plus the energy trace used for stagnation
checks.
"""

from __future__ import annotations

import warnings
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np
from scipy.optimize import line_search

from ..energy import EnergyModel
from ..peptide_backbone import wrap_angle
from .budget import expired

LBFGS_MEMORY = 10
LBFGS_MAX_ITER = 100
LBFGS_GTOL = 0.05
FIRST_STEP = 0.1
MAX_STEP = 0.5
ARMIJO_C1 = 1e-4
CURVATURE_EPS = 1e-10


def lbfgs_direction(
    grad: np.ndarray,
    s_list: List[np.ndarray],
    y_list: List[np.ndarray],
) -> np.ndarray:
    """
    Two-loop recursion: returns -H @ grad for the inverse Hessian H implied by
    (s_list, y_list), oldest first. Steepest descent when the history is empty.
    """
    n_vec = len(s_list)
    if n_vec == 0:
        return -grad
    q = -grad.copy()
    rhos = [1.0 / float(np.dot(y_list[i], s_list[i])) for i in range(n_vec)]
    alphas = [0.0] * n_vec
    for i in range(n_vec - 1, -1, -1):
        alphas[i] = rhos[i] * np.dot(s_list[i], q)
        q = q - alphas[i] * y_list[i]
    # Initial Hessian scaled by the most recent pair
    gamma = np.dot(s_list[-1], y_list[-1]) / np.dot(y_list[-1], y_list[-1])
    r = gamma * q
    for i in range(n_vec):
        beta = rhos[i] * np.dot(y_list[i], r)
        r = r + s_list[i] * (alphas[i] - beta)
    return r


class _GradientCache:
    """Remembers the last few gradient evaluations so the line search's
    final probe is not recomputed."""

    def __init__(self, fn: Callable[[np.ndarray], np.ndarray], size: int = 4):
        self._fn = fn
        self._size = size
        self._store: List[Tuple[bytes, np.ndarray]] = []
        self.n_calls = 0

    def __call__(self, x: np.ndarray) -> np.ndarray:
        key = np.asarray(x, dtype=float).tobytes()
        for k, g in self._store:
            if k == key:
                return g.copy()
        self.n_calls += 1
        g = self._fn(x)
        self._store.append((key, g.copy()))
        if len(self._store) > self._size:
            self._store.pop(0)
        return g


def _backtracking(
    f: Callable[[np.ndarray], float],
    x: np.ndarray,
    e: float,
    grad: np.ndarray,
    direction: np.ndarray,
    step: float,
    max_halvings: int = 30,
) -> Optional[float]:
    slope = float(np.dot(grad, direction))
    for _ in range(max_halvings):
        if f(x + step * direction) <= e + ARMIJO_C1 * step * slope:
            return step
        step *= 0.5
    return None


def minimize_lbfgs(
    model: EnergyModel,
    x0: np.ndarray,
    memory: int = LBFGS_MEMORY,
    max_iter: int = LBFGS_MAX_ITER,
    gtol: float = LBFGS_GTOL,
    max_step: float = MAX_STEP,
    deadline: Optional[float] = None,
) -> Tuple[np.ndarray, Dict[str, Any]]:
    """
    Minimize model.total from x0.

    gtol is on the infinity norm of the gradient (kcal/mol/rad). max_step caps
    the largest single-angle change per iteration (radians).

    Returns:
        x: wrapped free-angle vector.
        info: {"e_final", "e_initial", "n_iter", "success", "converged",
               "message", "trace", "n_grad"}.
    """
    f = model.total
    fprime = _GradientCache(model.gradient)
    x = np.asarray(x0, dtype=float).copy()
    e = f(x)
    e0 = e
    trace = [e]
    if x.size == 0:
        return x, {"e_final": e, "e_initial": e0, "n_iter": 0, "success": True, "converged": True,
                   "message": "No free angles", "trace": trace, "n_grad": 0}

    grad = fprime(x)
    s_list: List[np.ndarray] = []
    y_list: List[np.ndarray] = []
    message = "Max iterations"
    converged = False
    it = 0
    for it in range(1, max_iter + 1):
        if np.max(np.abs(grad)) <= gtol:
            converged = True
            message = "Converged"
            it -= 1
            break
        if expired(deadline):
            message = "Deadline"
            it -= 1
            break
        if s_list:
            direction = lbfgs_direction(grad, s_list, y_list)
            if np.dot(direction, grad) >= 0.0:
                s_list.clear()
                y_list.clear()
                direction = -grad
        else:
            direction = -grad
        d_inf = float(np.max(np.abs(direction)))
        if d_inf == 0.0:
            converged = True
            message = "Zero search direction"
            break
        amax = max_step / d_inf
        step0 = min(1.0, FIRST_STEP / d_inf) if not s_list else min(1.0, amax)

        with warnings.catch_warnings():
            warnings.simplefilter("ignore", RuntimeWarning)
            alpha, _, _, e_new, _, _ = line_search(
                f, fprime, x, direction, gfk=grad, old_fval=e, c1=ARMIJO_C1, c2=0.9, amax=amax, maxiter=10
            )
        if alpha is None or e_new is None or not np.isfinite(e_new) or e_new > e:
            alpha = _backtracking(f, x, e, grad, direction, step0)
            if alpha is None:
                converged = True
                message = "Line search found no decrease"
                break
            e_new = f(x + alpha * direction)

        s = alpha * direction
        x_new = x + s
        grad_new = fprime(x_new)
        y = grad_new - grad
        if np.dot(y, s) > CURVATURE_EPS:
            s_list.append(s)
            y_list.append(y)
            if len(s_list) > memory:
                s_list.pop(0)
                y_list.pop(0)
        x, e, grad = x_new, float(e_new), grad_new
        trace.append(e)

    return wrap_angle(x), {
        "e_final": float(e),
        "e_initial": float(e0),
        "n_iter": it,
        "success": converged,
        "converged": converged,
        "message": message,
        "trace": trace,
        "n_grad": fprime.n_calls,
    }
