"""
Constraint-guided polish.

1. Biased descent along the Ramachandran + solvation gradient; a step is kept
   only if the full energy does not rise.
2. Hard projection: every residue outside an allowed Ramachandran region is
   clamped onto the boundary of its nearest allowed basin.
3. Projected descent on the full energy, re-projecting after every step so
   the result stays inside the allowed regions.

The returned state is always the projected one; the cascade decides whether
to keep it.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

import numpy as np

from ..energy import EnergyModel
from ..ramachandran import allowed_fraction, project_to_allowed
from .budget import expired

POLISH_STEPS = 20
PROJECTED_STEPS = 10
POLISH_STEP = 0.05
MIN_STEP = 1e-3


def project_vector(model: EnergyModel, x: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Free-angle vector with every residue clamped into an allowed region, and the moved indices."""
    angles, moved = project_to_allowed(model.sequence, model.angles(x), model.rama_overrides)
    return angles.to_vector(), moved


def _descend(model, x, e, direction_fn, n_steps, step, deadline, project=False):
    n_taken = 0
    for _ in range(n_steps):
        if expired(deadline):
            break
        g = direction_fn(x)
        g_inf = float(np.max(np.abs(g))) if g.size else 0.0
        if g_inf == 0.0:
            break
        while step >= MIN_STEP:
            x_try = x - step * g / g_inf
            if project:
                x_try, _ = project_vector(model, x_try)
            e_try = model.total(x_try)
            if e_try <= e:
                x, e = x_try, e_try
                n_taken += 1
                break
            step *= 0.5
        else:
            break
    return x, e, n_taken


def polish(
    model: EnergyModel,
    x0: np.ndarray,
    n_steps: int = POLISH_STEPS,
    projected_steps: int = PROJECTED_STEPS,
    step: float = POLISH_STEP,
    deadline: Optional[float] = None,
) -> Tuple[np.ndarray, Dict[str, Any]]:
    """
    Returns:
        x: projected, polished free-angle vector.
        info: {"e_final", "e_initial", "n_iter", "success", "n_projected",
               "allowed_before", "allowed_after", "message"}.
    """
    x = np.asarray(x0, dtype=float).copy()
    e0 = model.total(x)
    allowed_before = allowed_fraction(model.sequence, model.angles(x), model.rama_overrides)
    if x.size == 0:
        return x, {"e_final": e0, "e_initial": e0, "n_iter": 0, "success": True, "n_projected": 0,
                   "allowed_before": allowed_before, "allowed_after": allowed_before,
                   "message": "No free angles"}

    def _biased(v: np.ndarray) -> np.ndarray:
        return model.ramachandran_gradient(v)[1] + model.solvation_gradient(v)[1]

    x, e, n_biased = _descend(model, x, e0, _biased, n_steps, step, deadline)

    x, moved = project_vector(model, x)
    e = model.total(x)

    x, e, n_projected_steps = _descend(
        model, x, e, model.gradient, projected_steps, step, deadline, project=True
    )
    allowed_after = allowed_fraction(model.sequence, model.angles(x), model.rama_overrides)
    return x, {
        "e_final": float(e),
        "e_initial": float(e0),
        "n_iter": n_biased + n_projected_steps,
        "success": bool(allowed_after >= 1.0),
        "n_projected": int(moved.size),
        "allowed_before": allowed_before,
        "allowed_after": allowed_after,
        "message": "Projected {} residue(s)".format(moved.size),
    }
