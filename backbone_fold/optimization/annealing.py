"""
Stochastic escape: a short simulated-annealing run from the current optimum,
only when the quasi-Newton stage has stagnated. Reuses the Metropolis walk of
the stochastic-search sampler and hands back the lowest-energy state seen.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np

from ..energy import EnergyModel
from ..peptide_backbone import wrap_angle
from ..sampling.monte_carlo import SCHEDULES, metropolis_walk
from ..errors import InputError

STAGNATION_WINDOW = 5
STAGNATION_TOL = 0.5
ESCAPE_STEPS = 100
ESCAPE_T_INITIAL = 300.0
ESCAPE_T_FINAL = 10.0
ESCAPE_SCHEDULE = "exponential"


def is_stagnant(trace: Sequence[float], window: int = STAGNATION_WINDOW, tol: float = STAGNATION_TOL) -> bool:
    """
    True when the energy fell by less than tol (kcal/mol) over the trailing
    window of steps. A trace shorter than the window is judged on all of it;
    a single entry carries no evidence and is not stagnant.
    """
    if len(trace) < 2:
        return False
    tail = list(trace)[-(window + 1):]
    return (tail[0] - tail[-1]) < tol


def stochastic_escape(
    model: EnergyModel,
    x0: np.ndarray,
    rng: np.random.Generator,
    n_steps: int = ESCAPE_STEPS,
    t_initial: float = ESCAPE_T_INITIAL,
    t_final: float = ESCAPE_T_FINAL,
    schedule: str = ESCAPE_SCHEDULE,
    step_initial: float = 0.3,
    step_final: float = 0.02,
    deadline: Optional[float] = None,
) -> Tuple[np.ndarray, Dict[str, Any]]:
    """
    Returns:
        x: best state visited (x0 itself if nothing better was found).
        info: {"e_final", "e_initial", "n_iter", "success", "n_accepted", "acceptance_rate", "message", "trace"}.
    """
    if schedule not in SCHEDULES:
        raise InputError(f"unknown temperature schedule {schedule!r}", field="schedule")
    x0 = np.asarray(x0, dtype=float)
    e0 = model.total(x0)
    walk = metropolis_walk(
        model, x0, rng,
        n_steps=n_steps, t_initial=t_initial, t_final=t_final, schedule=schedule,
        step_initial=step_initial, step_final=step_final, e0=e0, deadline=deadline,
    )
    x_best, e_best = walk.best()
    return wrap_angle(np.asarray(x_best)), {
        "e_final": float(e_best),
        "e_initial": float(e0),
        "n_iter": walk.n_accepted + walk.n_rejected,
        "success": bool(e_best < e0),
        "n_accepted": walk.n_accepted,
        "acceptance_rate": walk.acceptance_rate,
        "message": "Improved" if e_best < e0 else "No improvement",
        "trace": list(walk.energies),
    }
