"""
Backbone-conformational (Ramachandran) potential.

Each interior residue is scored against a small mixture of 2-D Gaussian basins
in (phi, psi) using wrap-aware angular differences:

    E_i = cap * min_b [ offset_b + (1 - offset_b) * (1 - g_b(phi_i, psi_i)) ]
    g_b = exp(-0.5 * ((dphi / sigma_phi)^2 + (dpsi / sigma_psi)^2))

A basin's offset is the penalty at its center: 0 for fully favorable regions,
larger for regions that are populated but strained for that residue type (the
left-handed helix for non-glycine residues). Residue-type behavior is a flat
lookup from one-letter code to basin table; there is no class hierarchy.

Allowed regions: a residue is allowed when it lies within ALLOWED_RADIUS
(in sigma units) of a basin whose offset is at most ALLOWED_OFFSET.
project_to_allowed() clamps an outside residue onto the boundary of the
nearest such basin.

MIT License. Python 3.10+. Numpy only.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple

import numpy as np

from .errors import InputError
from .peptide_backbone import DihedralAngles, angle_difference, vector_index_map, wrap_angle

ALLOWED_RADIUS = 1.5
ALLOWED_OFFSET = 0.25

# Secondary-structure classification windows (degrees)
HELIX_PHI_RANGE = (-90.0, -30.0)
HELIX_PSI_RANGE = (-75.0, -15.0)
SHEET_PHI_RANGE = (-160.0, -80.0)
SHEET_PSI_RANGE = (80.0, 160.0)


@dataclass(frozen=True)
class Basin:
    """One favorable (phi, psi) region. Centers and widths in degrees."""

    name: str
    phi: float
    psi: float
    sigma_phi: float
    sigma_psi: float
    offset: float = 0.0

    @property
    def center_rad(self) -> Tuple[float, float]:
        return (np.deg2rad(self.phi), np.deg2rad(self.psi))

    @property
    def sigma_rad(self) -> Tuple[float, float]:
        return (np.deg2rad(self.sigma_phi), np.deg2rad(self.sigma_psi))

    @property
    def allowed(self) -> bool:
        return self.offset <= ALLOWED_OFFSET


@dataclass(frozen=True)
class BasinTable:
    basins: Tuple[Basin, ...]
    cap: float


GENERAL_TABLE = BasinTable(
    basins=(
        Basin("alpha", -60.0, -45.0, 30.0, 30.0),
        Basin("beta", -120.0, 120.0, 40.0, 50.0),
        Basin("ppii", -75.0, 145.0, 30.0, 30.0, offset=0.05),
        Basin("left", 60.0, 45.0, 25.0, 25.0, offset=0.6),
    ),
    cap=15.0,
)

GLYCINE_TABLE = BasinTable(
    basins=(
        Basin("alpha", -60.0, -45.0, 50.0, 50.0),
        Basin("beta", -120.0, 120.0, 60.0, 70.0),
        Basin("ppii", -75.0, 145.0, 50.0, 50.0),
        Basin("left", 60.0, 45.0, 50.0, 50.0),
        Basin("left_beta", 80.0, -170.0, 50.0, 60.0, offset=0.1),
    ),
    cap=5.0,
)

PROLINE_TABLE = BasinTable(
    basins=(
        Basin("alpha", -60.0, -30.0, 20.0, 40.0),
        Basin("ppii", -60.0, 145.0, 20.0, 30.0),
    ),
    cap=20.0,
)

# Flat residue-type overrides; any residue not listed uses GENERAL_TABLE.
RESIDUE_TABLES: Mapping[str, BasinTable] = {
    "G": GLYCINE_TABLE,
    "P": PROLINE_TABLE,
}


def table_for(residue: str, overrides: Optional[Mapping[str, BasinTable]] = None) -> BasinTable:
    tables = RESIDUE_TABLES if overrides is None else overrides
    return tables.get(residue, GENERAL_TABLE)


def _basin_terms(phi: float, psi: float, table: BasinTable) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Per-basin penalty fraction, gaussian, and normalized offsets (dphi/s^2, dpsi/s^2)."""
    n_b = len(table.basins)
    frac = np.empty(n_b)
    gauss = np.empty(n_b)
    dphi_s = np.empty(n_b)
    dpsi_s = np.empty(n_b)
    for k, b in enumerate(table.basins):
        c_phi, c_psi = b.center_rad
        s_phi, s_psi = b.sigma_rad
        dphi = float(angle_difference(phi, c_phi))
        dpsi = float(angle_difference(psi, c_psi))
        g = np.exp(-0.5 * ((dphi / s_phi) ** 2 + (dpsi / s_psi) ** 2))
        gauss[k] = g
        frac[k] = b.offset + (1.0 - b.offset) * (1.0 - g)
        dphi_s[k] = dphi / (s_phi * s_phi)
        dpsi_s[k] = dpsi / (s_psi * s_psi)
    return frac, gauss, dphi_s, dpsi_s


def residue_penalty(phi: float, psi: float, residue: str = "A", overrides=None) -> float:
    """Unweighted penalty for one residue; phi/psi in radians."""
    table = table_for(residue, overrides)
    frac, _, _, _ = _basin_terms(phi, psi, table)
    return float(table.cap * np.min(frac))


def ramachandran_energy(sequence: str, angles: DihedralAngles, overrides=None) -> float:
    """Sum of residue penalties over residues with both phi and psi defined."""
    idx, phi, psi = angles.phi_psi_interior()
    e = 0.0
    for i, ph, ps in zip(idx, phi, psi):
        e += residue_penalty(ph, ps, sequence[i], overrides)
    return float(e)


def ramachandran_energy_and_gradient(
    sequence: str,
    angles: DihedralAngles,
    overrides=None,
) -> Tuple[float, np.ndarray]:
    """
    Energy and its analytic gradient with respect to the free-angle vector
    (layout of DihedralAngles.to_vector). The min over basins is taken at the
    active basin; away from ties this is the exact derivative.
    """
    n = angles.n_residues
    grad = np.zeros(angles.n_free)
    phi_idx, psi_idx = vector_index_map(n)
    idx, phi, psi = angles.phi_psi_interior()
    e = 0.0
    for i, ph, ps in zip(idx, phi, psi):
        table = table_for(sequence[i], overrides)
        frac, gauss, dphi_s, dpsi_s = _basin_terms(ph, ps, table)
        k = int(np.argmin(frac))
        e += table.cap * frac[k]
        # d/dx [cap * (off + (1-off)(1-g))] = cap * (1-off) * g * d(q/2)/dx
        scale = table.cap * (1.0 - table.basins[k].offset) * gauss[k]
        if phi_idx[i] >= 0:
            grad[phi_idx[i]] += scale * dphi_s[k]
        if psi_idx[i] >= 0:
            grad[psi_idx[i]] += scale * dpsi_s[k]
    return float(e), grad


def normalized_basin_distance(phi: float, psi: float, basin: Basin) -> float:
    c_phi, c_psi = basin.center_rad
    s_phi, s_psi = basin.sigma_rad
    dphi = float(angle_difference(phi, c_phi)) / s_phi
    dpsi = float(angle_difference(psi, c_psi)) / s_psi
    return float(np.hypot(dphi, dpsi))


def nearest_allowed_basin(phi: float, psi: float, residue: str = "A", overrides=None) -> Tuple[Basin, float]:
    """Closest allowed basin (in sigma units) and the distance to its center."""
    table = table_for(residue, overrides)
    best: Optional[Basin] = None
    best_d = np.inf
    for b in table.basins:
        if not b.allowed:
            continue
        d = normalized_basin_distance(phi, psi, b)
        if d < best_d:
            best, best_d = b, d
    if best is None:
        raise InputError(f"basin table for residue {residue!r} has no allowed basin", field="rama_overrides")
    return best, float(best_d)


def is_allowed(phi: float, psi: float, residue: str = "A", overrides=None) -> bool:
    _, d = nearest_allowed_basin(phi, psi, residue, overrides)
    return d <= ALLOWED_RADIUS


def allowed_fraction(sequence: str, angles: DihedralAngles, overrides=None) -> float:
    """Fraction of interior residues inside an allowed region (1.0 for chains without any)."""
    idx, phi, psi = angles.phi_psi_interior()
    if idx.size == 0:
        return 1.0
    ok = [is_allowed(ph, ps, sequence[i], overrides) for i, ph, ps in zip(idx, phi, psi)]
    return float(np.mean(ok))


def project_to_allowed(
    sequence: str,
    angles: DihedralAngles,
    overrides=None,
    radius: float = ALLOWED_RADIUS,
) -> Tuple[DihedralAngles, np.ndarray]:
    """
    Hard clamp: every interior residue outside an allowed region is moved along
    the normalized ray from its nearest allowed basin center onto that basin's
    boundary. Returns the new angle set and the indices that were moved.
    """
    phi = np.array(angles.phi)
    psi = np.array(angles.psi)
    moved = []
    idx, phis, psis = angles.phi_psi_interior()
    for i, ph, ps in zip(idx, phis, psis):
        basin, d = nearest_allowed_basin(ph, ps, sequence[i], overrides)
        if d <= radius:
            continue
        c_phi, c_psi = basin.center_rad
        shrink = radius * (1.0 - 1e-9) / d
        phi[i] = float(wrap_angle(c_phi + shrink * angle_difference(ph, c_phi)))
        psi[i] = float(wrap_angle(c_psi + shrink * angle_difference(ps, c_psi)))
        moved.append(int(i))
    return DihedralAngles(phi=phi, psi=psi, omega=np.array(angles.omega)), np.array(moved, dtype=int)


def classify_secondary_structure(angles: DihedralAngles) -> str:
    """H / E / C per residue from the helix and sheet windows; termini are C."""
    phi = np.rad2deg(angles.phi)
    psi = np.rad2deg(angles.psi)
    out = []
    for ph, ps in zip(phi, psi):
        if np.isnan(ph) or np.isnan(ps):
            out.append("C")
        elif HELIX_PHI_RANGE[0] <= ph <= HELIX_PHI_RANGE[1] and HELIX_PSI_RANGE[0] <= ps <= HELIX_PSI_RANGE[1]:
            out.append("H")
        elif SHEET_PHI_RANGE[0] <= ph <= SHEET_PHI_RANGE[1] and SHEET_PSI_RANGE[0] <= ps <= SHEET_PSI_RANGE[1]:
            out.append("E")
        else:
            out.append("C")
    return "".join(out)


def ramachandran_map(residue: str = "A", n_phi: int = 72, n_psi: int = 72) -> Dict[str, np.ndarray]:
    """Penalty surface over a (phi, psi) grid in degrees, for plotting or inspection."""
    phi = np.linspace(-180.0, 180.0, n_phi)
    psi = np.linspace(-180.0, 180.0, n_psi)
    energy = np.empty((n_phi, n_psi))
    for a, ph in enumerate(np.deg2rad(phi)):
        for b, ps in enumerate(np.deg2rad(psi)):
            energy[a, b] = residue_penalty(ph, ps, residue)
    return {"phi_deg": phi, "psi_deg": psi, "energy": energy}
