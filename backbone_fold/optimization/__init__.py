"""
Optimizer cascade over the free dihedral angles.

  gentle_relaxation   tiny capped steepest descent (clash removal)
  minimize_lbfgs      two-loop L-BFGS with Wolfe / Armijo line search
  stochastic_escape   simulated annealing, only when L-BFGS stagnates
  polish              Ramachandran/solvation-biased descent + hard projection
  run_cascade         all of the above, discarding any stage that raises energy
"""

from __future__ import annotations

from .annealing import is_stagnant, stochastic_escape
from .budget import deadline_from_budget, expired, remaining
from .cascade import STAGES, CascadeConfig, CascadeResult, StageRecord, run_cascade
from .gentle_relaxation import gentle_relaxation
from .lbfgs import lbfgs_direction, minimize_lbfgs
from .polish import polish, project_vector

__all__ = [
    "is_stagnant",
    "stochastic_escape",
    "deadline_from_budget",
    "expired",
    "remaining",
    "STAGES",
    "CascadeConfig",
    "CascadeResult",
    "StageRecord",
    "run_cascade",
    "gentle_relaxation",
    "lbfgs_direction",
    "minimize_lbfgs",
    "polish",
    "project_vector",
]
