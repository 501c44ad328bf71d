"""
Uniform-coverage sampler: golden-angle / van der Corput points on the (phi, psi) torus.

Point j of the global sequence is

    phi_j = wrap(j * golden_angle + shift_phi)
    psi_j = 2 pi frac(vdc(j + 1) + shift_psi) - pi

where golden_angle = pi (3 - sqrt 5) and vdc is the base-2 van der Corput
radical inverse. Residue r of candidate k uses point k * n_res + r. The
shift comes from the seed only, so candidate k is identical whatever the
requested count: the point set for count n is a prefix of the set for n + 1
and coverage can only grow.

basin_blend in [0, 1) pulls each point toward the nearest allowed basin
center for its residue type (0 keeps raw coverage).
"""

from __future__ import annotations

from typing import List, Sequence

import numpy as np

from ..peptide_backbone import DihedralAngles, angle_difference, wrap_angle
from ..ramachandran import nearest_allowed_basin
from .base import Candidate, SeedLike, check_request, seed_sequence

GOLDEN_ANGLE = np.pi * (3.0 - np.sqrt(5.0))
ORIGIN = "uniform"


def van_der_corput(j: int, base: int = 2) -> float:
    """Radical inverse of j in the given base, in [0, 1)."""
    q, denom = 0.0, 1.0
    while j > 0:
        denom *= base
        j, rem = divmod(j, base)
        q += rem / denom
    return q


def golden_point(j: int, shift=(0.0, 0.0)):
    """(phi, psi) in radians for global index j."""
    phi = float(wrap_angle(j * GOLDEN_ANGLE + shift[0]))
    u = (van_der_corput(j + 1) + shift[1]) % 1.0
    psi = float(wrap_angle(2.0 * np.pi * u - np.pi))
    return phi, psi


def _blend(phi: float, psi: float, residue: str, t: float):
    if t <= 0.0:
        return phi, psi
    basin, _ = nearest_allowed_basin(phi, psi, residue)
    c_phi, c_psi = basin.center_rad
    phi = float(wrap_angle(phi - t * angle_difference(phi, c_phi)))
    psi = float(wrap_angle(psi - t * angle_difference(psi, c_psi)))
    return phi, psi


def sample_uniform(
    sequence: str,
    count: int,
    seed: SeedLike,
    basin_blend: float = 0.3,
) -> List[Candidate]:
    """count candidates of low-discrepancy angle vectors."""
    seq = check_request(sequence, count)
    if count <= 0:
        return []
    n = len(seq)
    shift_rng = np.random.default_rng(seed_sequence(seed))
    shift = (float(shift_rng.uniform(0.0, 2.0 * np.pi)), float(shift_rng.uniform(0.0, 1.0)))
    out: List[Candidate] = []
    for k in range(count):
        phi = np.empty(n)
        psi = np.empty(n)
        for r in range(n):
            p, s = golden_point(k * n + r, shift)
            phi[r], psi[r] = _blend(p, s, seq[r], basin_blend)
        out.append(Candidate(DihedralAngles.from_arrays(phi, psi), ORIGIN, k))
    return out


def coverage_density(candidates: Sequence[Candidate], bins: int = 12) -> float:
    """Fraction of (phi, psi) grid cells touched by any interior residue of any candidate."""
    phis, psis = [], []
    for c in candidates:
        _, ph, ps = c.angles.phi_psi_interior()
        phis.append(ph)
        psis.append(ps)
    if not phis:
        return 0.0
    phi = np.concatenate(phis)
    psi = np.concatenate(psis)
    if phi.size == 0:
        return 0.0
    edges = np.linspace(-np.pi, np.pi, bins + 1)
    hist, _, _ = np.histogram2d(phi, psi, bins=[edges, edges])
    return float(np.count_nonzero(hist)) / float(bins * bins)
