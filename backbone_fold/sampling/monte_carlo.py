"""
Stochastic-search sampler: Metropolis random walks in torsion space.

Downhill moves are always accepted, uphill ones with probability
exp(-dE / (kB T)) under a decreasing temperature schedule. Every accepted
state is kept in a MetropolisTrace. Each candidate is an independent chain
with its own Generator; it reports the lowest-energy accepted state.

The same schedules drive the cascade's stochastic escape stage.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from ..energy import EnergyModel
from ..errors import InputError
from ..peptide_backbone import DihedralAngles, wrap_angle
from .base import Candidate, SeedLike, check_request, spawn_generators
from .ss_predict import predict_ss, ss_seed_angles

logger = logging.getLogger(__name__)

KB_KCAL = 0.001987
GOLDEN_RATIO = (1.0 + np.sqrt(5.0)) / 2.0
GOLDEN_DECAY_STEPS = 10.0
SCHEDULES = ("exponential", "linear", "geometric", "golden")
ORIGIN = "monte_carlo"


def temperature(step: int, n_steps: int, t_initial: float, t_final: float, schedule: str = "golden") -> float:
    """Temperature (K) at step of n_steps. golden decays by phi^-10 over the run."""
    t = float(step)
    n = float(max(n_steps, 1))
    if schedule == "exponential":
        return t_initial * (t_final / t_initial) ** (t / n)
    if schedule == "linear":
        return t_initial - (t_initial - t_final) * t / n
    if schedule == "geometric":
        alpha = (t_final / t_initial) ** (1.0 / n)
        return t_initial * alpha ** t
    if schedule == "golden":
        alpha = GOLDEN_RATIO ** (-GOLDEN_DECAY_STEPS * t / n)
        return t_initial * alpha + t_final * (1.0 - alpha)
    raise InputError(f"unknown temperature schedule {schedule!r}", field="schedule")


@dataclass
class MetropolisTrace:
    """Accepted states (free-angle vectors) and their energies, in acceptance order."""

    states: List[np.ndarray] = field(default_factory=list)
    energies: List[float] = field(default_factory=list)
    n_accepted: int = 0
    n_rejected: int = 0

    @property
    def acceptance_rate(self) -> float:
        total = self.n_accepted + self.n_rejected
        return self.n_accepted / total if total else 0.0

    def best(self):
        k = int(np.argmin(self.energies))
        return self.states[k], self.energies[k]


def perturb(x: np.ndarray, rng: np.random.Generator, step: float, n_moves: int = 2) -> np.ndarray:
    """Gaussian kick on n_moves randomly chosen torsions."""
    y = x.copy()
    if y.size == 0:
        return y
    k = min(n_moves, y.size)
    idx = rng.choice(y.size, size=k, replace=False)
    y[idx] += rng.normal(0.0, step, size=k)
    return wrap_angle(y)


def metropolis_walk(
    model: EnergyModel,
    x0: np.ndarray,
    rng: np.random.Generator,
    n_steps: int = 50,
    t_initial: float = 500.0,
    t_final: float = 10.0,
    schedule: str = "golden",
    step_initial: float = 0.5,
    step_final: float = 0.05,
    n_moves: int = 2,
    e0: Optional[float] = None,
    deadline: Optional[float] = None,
) -> MetropolisTrace:
    """Run one chain; the starting state counts as the first accepted state.

    deadline is an absolute time.monotonic() value; the walk stops early once
    it has passed.
    """
    x = np.asarray(x0, dtype=float).copy()
    e = model.total(x) if e0 is None else float(e0)
    trace = MetropolisTrace(states=[x.copy()], energies=[e])
    if x.size == 0:
        return trace
    for step in range(n_steps):
        if deadline is not None and time.monotonic() >= deadline:
            break
        temp = temperature(step, n_steps, t_initial, t_final, schedule)
        frac = step / max(n_steps - 1, 1)
        size = step_initial * (step_final / step_initial) ** frac
        x_new = perturb(x, rng, size, n_moves)
        e_new = model.total(x_new)
        delta = e_new - e
        if delta <= 0.0 or rng.random() < np.exp(-delta / (KB_KCAL * temp)):
            x, e = x_new, e_new
            trace.states.append(x.copy())
            trace.energies.append(e)
            trace.n_accepted += 1
        else:
            trace.n_rejected += 1
    return trace


def sample_monte_carlo(
    sequence: str,
    count: int,
    seed: SeedLike,
    model: Optional[EnergyModel] = None,
    start: Optional[DihedralAngles] = None,
    n_steps: int = 40,
    t_initial: float = 500.0,
    t_final: float = 10.0,
    schedule: str = "golden",
    step_initial: float = 0.5,
    step_final: float = 0.05,
    deadline: Optional[float] = None,
) -> List[Candidate]:
    """count independent chains from a common start (Chou-Fasman seed by default).

    Every chain shares the absolute deadline; chains started after it has
    passed return their starting state, so count candidates always come back.
    """
    seq = check_request(sequence, count)
    if count <= 0:
        return []
    if schedule not in SCHEDULES:
        raise InputError(f"unknown temperature schedule {schedule!r}", field="schedule")
    if start is None:
        start = ss_seed_angles(predict_ss(seq)[0])
    if model is None:
        model = EnergyModel(seq, template=start)
    x0 = start.to_vector()
    e0 = model.total(x0)
    out: List[Candidate] = []
    for k, rng in enumerate(spawn_generators(seed, count)):
        trace = metropolis_walk(
            model, x0, rng,
            n_steps=n_steps, t_initial=t_initial, t_final=t_final, schedule=schedule,
            step_initial=step_initial, step_final=step_final, e0=e0, deadline=deadline,
        )
        x_best, e_best = trace.best()
        logger.debug(
            "metropolis chain %d: %d accepted (%.2f), best %.3f", k, trace.n_accepted, trace.acceptance_rate, e_best
        )
        out.append(Candidate(model.angles(x_best), ORIGIN, k, energy=e_best))
    return out
