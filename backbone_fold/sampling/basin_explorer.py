"""
Basin-restricted sampler: Gaussian draws around named Ramachandran basins.

Each candidate picks a primary basin by population weight. Every residue then
samples around that basin with sigma scaled by width_scale. With probability
mix_probability, a residue instead draws its own basin. The sampler also
handles residue types:

- Glycine is routed to the left-handed basin.
- Proline is routed to PPII.
- A basin restricted to certain residues falls back to alpha for the others.

Because the draws are centered on favorable regions and narrowed, most
residues land in allowed regions by construction.

constraints maps residue index to a basin name (e.g. from predicted SS) and
overrides the weighted choice at that position.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Mapping, Optional, Tuple

import numpy as np

from ..errors import InputError
from ..peptide_backbone import DihedralAngles, wrap_angle
from .base import Candidate, SeedLike, check_request, spawn_generators

ORIGIN = "basin_explorer"


@dataclass(frozen=True)
class ExplorerBasin:
    name: str
    phi: float
    psi: float
    sigma_phi: float
    sigma_psi: float
    population: float
    residues: Tuple[str, ...] = ()

    def admits(self, residue: str) -> bool:
        return not self.residues or residue in self.residues


STANDARD_BASINS: Tuple[ExplorerBasin, ...] = (
    ExplorerBasin("alpha_helix", -60.0, -45.0, 20.0, 20.0, 0.35),
    ExplorerBasin("beta_sheet", -120.0, 120.0, 30.0, 30.0, 0.25),
    ExplorerBasin("left_handed_helix", 60.0, 45.0, 25.0, 25.0, 0.05, ("G",)),
    ExplorerBasin("extended_ppii", -75.0, 145.0, 25.0, 25.0, 0.15),
    ExplorerBasin("bridge", -90.0, 0.0, 30.0, 40.0, 0.10),
    ExplorerBasin("turn_type_i", -60.0, -30.0, 20.0, 30.0, 0.05),
    ExplorerBasin("turn_type_ii", 80.0, 0.0, 25.0, 30.0, 0.03, ("G", "N", "D")),
)

SS_TO_BASIN = {"H": "alpha_helix", "E": "beta_sheet"}


def _basin_by_name(basins: Tuple[ExplorerBasin, ...], name: str) -> ExplorerBasin:
    for b in basins:
        if b.name == name:
            return b
    raise InputError(f"unknown basin {name!r}", field="constraints")


def _weights(basins: Tuple[ExplorerBasin, ...]) -> np.ndarray:
    w = np.array([b.population for b in basins], dtype=float)
    return w / w.sum()


def _draw(basin: ExplorerBasin, rng: np.random.Generator, width_scale: float) -> Tuple[float, float]:
    phi = basin.phi + rng.normal() * basin.sigma_phi * width_scale
    psi = basin.psi + rng.normal() * basin.sigma_psi * width_scale
    return float(wrap_angle(np.deg2rad(phi))), float(wrap_angle(np.deg2rad(psi)))


def sample_basins(
    sequence: str,
    count: int,
    seed: SeedLike,
    basins: Tuple[ExplorerBasin, ...] = STANDARD_BASINS,
    width_scale: float = 0.5,
    mix_probability: float = 0.2,
    glycine_handling: bool = True,
    proline_handling: bool = True,
    constraints: Optional[Mapping[int, str]] = None,
) -> List[Candidate]:
    seq = check_request(sequence, count)
    if count <= 0:
        return []
    weights = _weights(basins)
    fixed = {int(i): _basin_by_name(basins, name) for i, name in (constraints or {}).items()}
    left = _basin_by_name(basins, "left_handed_helix") if glycine_handling else None
    ppii = _basin_by_name(basins, "extended_ppii") if proline_handling else None
    alpha = basins[0]

    out: List[Candidate] = []
    n = len(seq)
    for k, rng in enumerate(spawn_generators(seed, count)):
        primary = basins[int(rng.choice(len(basins), p=weights))]
        phi = np.empty(n)
        psi = np.empty(n)
        for i, aa in enumerate(seq):
            basin = primary
            if rng.random() < mix_probability:
                basin = basins[int(rng.choice(len(basins), p=weights))]
            if i in fixed:
                basin = fixed[i]
            if aa == "G" and left is not None:
                basin = left
            elif aa == "P" and ppii is not None:
                basin = ppii
            if not basin.admits(aa):
                basin = alpha
            phi[i], psi[i] = _draw(basin, rng, width_scale)
        out.append(Candidate(DihedralAngles.from_arrays(phi, psi), ORIGIN, k))
    return out


def constraints_from_ss(ss: str) -> Mapping[int, str]:
    """Helix/strand positions pinned to their basins; coil stays free."""
    return {i: SS_TO_BASIN[s] for i, s in enumerate(ss) if s in SS_TO_BASIN}
