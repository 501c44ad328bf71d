"""
Run configuration. Every knob is an immutable dataclass field passed
explicitly; config_from_env() builds one from FOLD_* environment variables.

There is no default seed: a run without one is rejected.

  FOLD_SEED=7 FOLD_N_REFINE=2 FOLD_WALL_CLOCK=60 python -m backbone_fold.examples.helix_peptide
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from typing import Dict, Optional

from .contact_map import METHODS as CONTACT_METHODS
from .errors import InputError
from .optimization.cascade import CascadeConfig
from .optimization.lbfgs import LBFGS_MAX_ITER
from .sampling.monte_carlo import SCHEDULES

EXECUTORS = ("thread", "process")


@dataclass(frozen=True)
class SamplerConfig:
    """Which samplers run and how many candidates each contributes."""

    uniform: bool = True
    uniform_count: int = 8
    uniform_blend: float = 0.3
    monte_carlo: bool = True
    monte_carlo_count: int = 4
    monte_carlo_steps: int = 40
    monte_carlo_schedule: str = "golden"
    fragments: bool = True
    fragments_count: int = 8
    basin_explorer: bool = True
    basin_explorer_count: int = 8
    # Extended and helical starting points from the predicted secondary structure
    ss_seeds: bool = True

    def counts(self) -> Dict[str, int]:
        return {
            "uniform": self.uniform_count if self.uniform else 0,
            "monte_carlo": self.monte_carlo_count if self.monte_carlo else 0,
            "fragments": self.fragments_count if self.fragments else 0,
            "basin_explorer": self.basin_explorer_count if self.basin_explorer else 0,
        }

    def total(self) -> int:
        return sum(self.counts().values())


@dataclass(frozen=True)
class PredictionConfig:
    """
    seed is required. wall_clock_budget is in seconds (None: unbounded).
    n_refine candidates from the top of the ranked pool go through the cascade.
    contact_map predicts contacts for diagnostics; contact_restraints also adds
    them to the energy as CA-CA restraints.
    """

    seed: int
    samplers: SamplerConfig = field(default_factory=SamplerConfig)
    cascade: CascadeConfig = field(default_factory=CascadeConfig)
    wall_clock_budget: Optional[float] = None
    n_refine: int = 4
    max_workers: int = 1
    executor: str = "thread"
    fragment_timeout: float = 2.0
    fragment_retries: int = 1
    contact_map: bool = True
    contact_method: str = "chemistry"
    contact_restraints: bool = False

    def __post_init__(self):
        validate_config(self)

    def with_overrides(self, **kwargs) -> "PredictionConfig":
        return replace(self, **kwargs)


def validate_config(config: PredictionConfig) -> None:
    seed = config.seed
    if seed is None or isinstance(seed, bool) or not isinstance(seed, int):
        raise InputError("an explicit integer seed is required", field="seed")
    if seed < 0:
        raise InputError(f"seed must be non-negative, got {seed}", field="seed")
    if config.n_refine < 0:
        raise InputError(f"n_refine must be >= 0, got {config.n_refine}", field="n_refine")
    if config.max_workers < 1:
        raise InputError(f"max_workers must be >= 1, got {config.max_workers}", field="max_workers")
    if config.executor not in EXECUTORS:
        raise InputError(f"executor must be one of {EXECUTORS}, got {config.executor!r}", field="executor")
    if config.wall_clock_budget is not None and config.wall_clock_budget <= 0:
        raise InputError("wall_clock_budget must be positive", field="wall_clock_budget")
    if config.samplers.monte_carlo_schedule not in SCHEDULES:
        raise InputError(f"unknown temperature schedule {config.samplers.monte_carlo_schedule!r}", field="schedule")
    if config.cascade.escape_schedule not in SCHEDULES:
        raise InputError(f"unknown temperature schedule {config.cascade.escape_schedule!r}", field="schedule")
    if config.contact_method not in CONTACT_METHODS:
        raise InputError(
            f"contact_method must be one of {CONTACT_METHODS}, got {config.contact_method!r}", field="contact_method"
        )
    if config.contact_restraints and not config.contact_map:
        raise InputError("contact_restraints needs contact_map enabled", field="contact_restraints")


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise InputError(f"{name} must be an integer, got {raw!r}", field=name) from None


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise InputError(f"{name} must be a number, got {raw!r}", field=name) from None


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off"):
        return False
    raise InputError(f"{name} must be a boolean, got {raw!r}", field=name)


def config_from_env(seed: Optional[int] = None, **overrides) -> PredictionConfig:
    """
    PredictionConfig from FOLD_SEED, FOLD_N_REFINE, FOLD_WALL_CLOCK,
    FOLD_LBFGS_MAX_ITER, FOLD_MAX_WORKERS, FOLD_EXECUTOR and
    FOLD_CONTACT_RESTRAINTS. An explicit seed argument wins over FOLD_SEED;
    with neither, InputError.
    """
    if seed is None:
        seed = _env_int("FOLD_SEED", None)
    if seed is None:
        raise InputError("no seed given and FOLD_SEED is not set", field="seed")
    cascade = CascadeConfig(lbfgs_max_iter=_env_int("FOLD_LBFGS_MAX_ITER", LBFGS_MAX_ITER))
    kwargs = dict(
        seed=seed,
        cascade=cascade,
        wall_clock_budget=_env_float("FOLD_WALL_CLOCK", None),
        n_refine=_env_int("FOLD_N_REFINE", 4),
        max_workers=_env_int("FOLD_MAX_WORKERS", 1),
        executor=os.environ.get("FOLD_EXECUTOR", "thread").strip().lower() or "thread",
        contact_restraints=_env_bool("FOLD_CONTACT_RESTRAINTS", False),
    )
    kwargs.update(overrides)
    return PredictionConfig(**kwargs)
