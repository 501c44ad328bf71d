"""
Gentle relaxation: fixed, tiny, capped steepest descent in angle space.

Removes gross clashes before the quasi-Newton stage sees the structure. The
step is never grown: dx = clip(-step_size * grad, -max_step, max_step). The
stage stops after max_steps, when a step lowers the energy by less than
e_tol, or when a step would raise the energy (the step is then too large for
the local landscape and the last good state is kept).
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

import numpy as np

from ..energy import EnergyModel
from .budget import expired

GENTLE_MAX_STEPS = 50
GENTLE_STEP_SIZE = 0.002
GENTLE_MAX_STEP = 0.02
GENTLE_E_TOL = 0.1


def gentle_relaxation(
    model: EnergyModel,
    x0: np.ndarray,
    max_steps: int = GENTLE_MAX_STEPS,
    step_size: float = GENTLE_STEP_SIZE,
    max_step: float = GENTLE_MAX_STEP,
    e_tol: float = GENTLE_E_TOL,
    deadline: Optional[float] = None,
) -> Tuple[np.ndarray, Dict[str, Any]]:
    """
    Returns:
        x: relaxed free-angle vector.
        info: {"e_final", "e_initial", "n_iter", "success", "converged", "message", "trace"}.
    """
    x = np.asarray(x0, dtype=float).copy()
    e = model.total(x)
    e0 = e
    trace = [e]
    converged = False
    message = "Max steps"
    it = 0
    if x.size == 0:
        return x, {"e_final": e, "e_initial": e0, "n_iter": 0, "success": True, "converged": True,
                   "message": "No free angles", "trace": trace}
    for it in range(1, max_steps + 1):
        if expired(deadline):
            message = "Deadline"
            break
        grad = model.gradient(x)
        dx = np.clip(-step_size * grad, -max_step, max_step)
        x_new = x + dx
        e_new = model.total(x_new)
        if e_new > e:
            converged = True
            message = "Step raised energy"
            break
        drop = e - e_new
        x, e = x_new, e_new
        trace.append(e)
        if drop < e_tol:
            converged = True
            message = "Energy change below tolerance"
            break
    return x, {
        "e_final": float(e),
        "e_initial": float(e0),
        "n_iter": it,
        "success": converged,
        "converged": converged,
        "message": message,
        "trace": trace,
    }
