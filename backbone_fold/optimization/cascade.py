"""
Optimizer cascade: gentle relaxation -> L-BFGS -> stochastic escape (only on
stagnation) -> constraint-guided polish.

Each stage starts from the state carried forward by the previous one. A
stage whose output total energy is higher than its input is discarded and
the input is carried on unchanged, so the final energy is never above the
starting energy. Every stage leaves a StageRecord, including skipped ones.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np

from ..energy import EnergyComponents, EnergyModel
from ..errors import ConvergenceWarning
from ..peptide_backbone import DihedralAngles, wrap_angle
from .annealing import (
    ESCAPE_SCHEDULE,
    ESCAPE_STEPS,
    ESCAPE_T_FINAL,
    ESCAPE_T_INITIAL,
    STAGNATION_TOL,
    STAGNATION_WINDOW,
    is_stagnant,
    stochastic_escape,
)
from .budget import expired
from .gentle_relaxation import GENTLE_E_TOL, GENTLE_MAX_STEP, GENTLE_MAX_STEPS, GENTLE_STEP_SIZE, gentle_relaxation
from .lbfgs import LBFGS_GTOL, LBFGS_MAX_ITER, LBFGS_MEMORY, minimize_lbfgs
from .polish import POLISH_STEPS, PROJECTED_STEPS, polish

logger = logging.getLogger(__name__)

STAGES = ("gentle", "lbfgs", "escape", "polish")


@dataclass(frozen=True)
class CascadeConfig:
    gentle_steps: int = GENTLE_MAX_STEPS
    gentle_step_size: float = GENTLE_STEP_SIZE
    gentle_max_step: float = GENTLE_MAX_STEP
    gentle_tol: float = GENTLE_E_TOL
    lbfgs_memory: int = LBFGS_MEMORY
    lbfgs_max_iter: int = LBFGS_MAX_ITER
    lbfgs_gtol: float = LBFGS_GTOL
    stagnation_window: int = STAGNATION_WINDOW
    stagnation_tol: float = STAGNATION_TOL
    escape: bool = True
    escape_steps: int = ESCAPE_STEPS
    escape_t_initial: float = ESCAPE_T_INITIAL
    escape_t_final: float = ESCAPE_T_FINAL
    escape_schedule: str = ESCAPE_SCHEDULE
    polish: bool = True
    polish_steps: int = POLISH_STEPS
    polish_projected_steps: int = PROJECTED_STEPS


@dataclass
class StageRecord:
    """
    e_in / e_out are the totals entering and leaving the stage; e_out is the
    carried-forward energy, so e_out <= e_in always. info["e_stage"] keeps the
    stage's own output energy even when it was rejected.
    """

    name: str
    e_in: float
    e_out: float
    accepted: bool
    skipped: bool = False
    components: Optional[EnergyComponents] = None
    info: Dict[str, Any] = field(default_factory=dict)
    candidate: Optional[str] = None


@dataclass
class CascadeResult:
    x: np.ndarray
    angles: DihedralAngles
    energy: EnergyComponents
    stages: List[StageRecord]
    e_initial: float
    warnings: List[str] = field(default_factory=list)
    deadline_hit: bool = False

    @property
    def e_final(self) -> float:
        return self.energy.total


def _warn_if_unconverged(name: str, info: Dict[str, Any], messages: List[str]) -> None:
    if info.get("converged", True) or info.get("message") == "Deadline":
        return
    msg = f"{name}: {info.get('message', 'not converged')} after {info.get('n_iter', 0)} iterations"
    warnings.warn(msg, ConvergenceWarning, stacklevel=3)
    messages.append(msg)


def run_cascade(
    model: EnergyModel,
    x0: np.ndarray,
    config: Optional[CascadeConfig] = None,
    rng: Optional[np.random.Generator] = None,
    deadline: Optional[float] = None,
    label: Optional[str] = None,
) -> CascadeResult:
    """
    Refine x0 through every stage. rng drives the stochastic escape; without
    one the escape stage is skipped. deadline is an absolute time.monotonic()
    value; stages that have not started when it passes are recorded as skipped.
    """
    cfg = config if config is not None else CascadeConfig()
    x = wrap_angle(np.asarray(x0, dtype=float))
    comps = model.components(x)
    e = comps.total
    e_initial = e
    records: List[StageRecord] = []
    messages: List[str] = []
    deadline_hit = False
    lbfgs_trace: List[float] = []

    def _skip(name: str, reason: str) -> None:
        records.append(StageRecord(name, e, e, accepted=False, skipped=True, components=comps,
                                   info={"message": reason}, candidate=label))
        logger.debug("%s: stage %s skipped (%s)", label, name, reason)

    def _run(name: str, fn: Callable[[np.ndarray], Tuple[np.ndarray, Dict[str, Any]]]) -> Dict[str, Any]:
        nonlocal x, e, comps
        x_out, info = fn(x)
        comps_out = model.components(x_out)
        info["e_stage"] = comps_out.total
        accepted = comps_out.total <= e
        e_in = e
        if accepted:
            x, e, comps = wrap_angle(x_out), comps_out.total, comps_out
        records.append(StageRecord(name, e_in, e, accepted=accepted, components=comps, info=info, candidate=label))
        logger.debug(
            "%s: %s %.3f -> %.3f (%s)", label, name, e_in, comps_out.total, "kept" if accepted else "discarded"
        )
        _warn_if_unconverged(name, info, messages)
        return info

    stages: List[Tuple[str, Callable]] = [
        ("gentle", lambda v: gentle_relaxation(
            model, v, max_steps=cfg.gentle_steps, step_size=cfg.gentle_step_size,
            max_step=cfg.gentle_max_step, e_tol=cfg.gentle_tol, deadline=deadline)),
        ("lbfgs", lambda v: minimize_lbfgs(
            model, v, memory=cfg.lbfgs_memory, max_iter=cfg.lbfgs_max_iter, gtol=cfg.lbfgs_gtol,
            deadline=deadline)),
        ("escape", lambda v: stochastic_escape(
            model, v, rng, n_steps=cfg.escape_steps, t_initial=cfg.escape_t_initial,
            t_final=cfg.escape_t_final, schedule=cfg.escape_schedule, deadline=deadline)),
        ("polish", lambda v: polish(
            model, v, n_steps=cfg.polish_steps, projected_steps=cfg.polish_projected_steps,
            deadline=deadline)),
    ]
    for name, fn in stages:
        if expired(deadline):
            deadline_hit = True
            _skip(name, "deadline")
            continue
        if name == "escape":
            if not cfg.escape:
                _skip(name, "disabled")
                continue
            if rng is None:
                _skip(name, "no generator")
                continue
            if not is_stagnant(lbfgs_trace, cfg.stagnation_window, cfg.stagnation_tol):
                _skip(name, "not stagnant")
                continue
        if name == "polish" and not cfg.polish:
            _skip(name, "disabled")
            continue
        info = _run(name, fn)
        if name == "lbfgs":
            lbfgs_trace = list(info.get("trace", []))
        if info.get("message") == "Deadline":
            deadline_hit = True

    return CascadeResult(
        x=x,
        angles=model.angles(x),
        energy=comps,
        stages=records,
        e_initial=e_initial,
        warnings=messages,
        deadline_hit=deadline_hit,
    )
