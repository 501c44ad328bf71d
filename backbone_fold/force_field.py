"""
Physical force-field terms over backbone atoms: bonds, angles, van der Waals,
electrostatics.

- Bonds/angles: harmonic, E = K (x - x0)^2. Equilibria are taken from the
  BackboneGeometry used to build the chain, so both terms sit at ~0 for any
  builder output and act as a consistency check.
- van der Waals: Lennard-Jones in AMBER r*/2 form, E = eps ((rm/r)^12 - 2 (rm/r)^6)
  with eps = sqrt(eps_i eps_j), rm = r*_i + r*_j. Below 0.6 rm the curve is
  continued linearly from its value and slope there, so it stays finite and
  keeps rising as atoms approach.
- Electrostatics: Coulomb with distance-dependent dielectric eps(r) = 4r and a
  soft core (r^2 + 0.25).
- Non-bonded pairs come from a scipy cKDTree; pairs within one residue of each
  other are excluded. A CHARMM-style switch takes both terms smoothly to zero
  at their cutoffs.

Units: Angstrom, kcal/mol.
"""

from __future__ import annotations

from typing import Dict, Tuple

import numpy as np
from scipy.spatial import cKDTree

from .peptide_backbone import ATOM_ELEMENTS, ATOM_NAMES, BackboneGeometry

# Harmonic force constants (kcal/mol/A^2 and kcal/mol/rad^2)
BOND_K: Dict[str, float] = {"N_CA": 337.0, "CA_C": 317.0, "C_N": 490.0, "C_O": 570.0}
ANGLE_K: Dict[str, float] = {"N_CA_C": 63.0, "CA_C_N": 70.0, "C_N_CA": 50.0, "CA_C_O": 80.0}

# (epsilon kcal/mol, r*/2 Angstrom) per element
LJ_PARAMS: Dict[str, Tuple[float, float]] = {
    "C": (0.086, 1.908),
    "N": (0.170, 1.824),
    "O": (0.210, 1.661),
}

# Partial charges per backbone atom name
CHARGES: Dict[str, float] = {"N": -0.4157, "CA": 0.0337, "C": 0.5973, "O": -0.5679}

COULOMB_K = 332.06
DIELECTRIC_SLOPE = 4.0
SOFT_CORE_SQ = 0.25
LJ_LINEAR_BELOW = 0.6

VDW_CUTOFF = 10.0
VDW_SWITCH_ON = 8.0
ELEC_CUTOFF = 12.0
ELEC_SWITCH_ON = 10.0
EXCLUDE_RESIDUE_SEPARATION = 1


def atom_parameters(n_residues: int) -> Dict[str, np.ndarray]:
    """Per-atom eps, r*/2, charge and residue index for the (4n, 3) atom array."""
    eps = np.array([LJ_PARAMS[e][0] for e in ATOM_ELEMENTS])
    rhalf = np.array([LJ_PARAMS[e][1] for e in ATOM_ELEMENTS])
    q = np.array([CHARGES[a] for a in ATOM_NAMES])
    return {
        "eps": np.tile(eps, n_residues),
        "rhalf": np.tile(rhalf, n_residues),
        "charge": np.tile(q, n_residues),
        "residue": np.repeat(np.arange(n_residues), len(ATOM_NAMES)),
    }


def bond_energy(coords: np.ndarray, geometry: BackboneGeometry) -> float:
    x = coords
    r0 = geometry.bond_lengths()
    parts = {
        "N_CA": np.linalg.norm(x[:, 1] - x[:, 0], axis=1),
        "CA_C": np.linalg.norm(x[:, 2] - x[:, 1], axis=1),
        "C_O": np.linalg.norm(x[:, 3] - x[:, 2], axis=1),
        "C_N": np.linalg.norm(x[1:, 0] - x[:-1, 2], axis=1),
    }
    e = 0.0
    for key, r in parts.items():
        e += BOND_K[key] * float(np.sum((r - r0[key]) ** 2))
    return e


def _angle(a: np.ndarray, b: np.ndarray, c: np.ndarray) -> np.ndarray:
    u = a - b
    v = c - b
    cos = np.sum(u * v, axis=1) / (np.linalg.norm(u, axis=1) * np.linalg.norm(v, axis=1) + 1e-300)
    return np.arccos(np.clip(cos, -1.0, 1.0))


def angle_energy(coords: np.ndarray, geometry: BackboneGeometry) -> float:
    x = coords
    t0 = geometry.bond_angles_rad()
    parts = {
        "N_CA_C": _angle(x[:, 0], x[:, 1], x[:, 2]),
        "CA_C_O": _angle(x[:, 1], x[:, 2], x[:, 3]),
        "CA_C_N": _angle(x[:-1, 1], x[:-1, 2], x[1:, 0]),
        "C_N_CA": _angle(x[:-1, 2], x[1:, 0], x[1:, 1]),
    }
    e = 0.0
    for key, theta in parts.items():
        e += ANGLE_K[key] * float(np.sum((theta - t0[key]) ** 2))
    return e


def switch_function(r: np.ndarray, r_on: float, r_off: float) -> np.ndarray:
    """1 below r_on, 0 above r_off, C1-smooth in between."""
    r = np.asarray(r, dtype=float)
    r2 = r * r
    on2, off2 = r_on * r_on, r_off * r_off
    s = (off2 - r2) ** 2 * (off2 + 2.0 * r2 - 3.0 * on2) / (off2 - on2) ** 3
    return np.where(r <= r_on, 1.0, np.where(r >= r_off, 0.0, s))


def lennard_jones(r: np.ndarray, eps: np.ndarray, rmin: np.ndarray) -> np.ndarray:
    """Pair LJ energy; linear continuation below LJ_LINEAR_BELOW * rmin."""
    r = np.asarray(r, dtype=float)
    rs = LJ_LINEAR_BELOW * rmin
    r_eff = np.maximum(r, rs)
    x6 = (rmin / r_eff) ** 6
    e = eps * (x6 * x6 - 2.0 * x6)
    # dE/dr at rs (negative), continued linearly inward
    xs6 = (rmin / rs) ** 6
    slope = 12.0 * eps / rs * (xs6 - xs6 * xs6)
    inner = r < rs
    return np.where(inner, e + slope * (r - rs), e)


def coulomb(r: np.ndarray, qq: np.ndarray) -> np.ndarray:
    """Coulomb with eps(r) = 4r and soft core: k q_i q_j / (4 (r^2 + d^2))."""
    r = np.asarray(r, dtype=float)
    return COULOMB_K * qq / (DIELECTRIC_SLOPE * (r * r + SOFT_CORE_SQ))


def nonbonded_pairs(
    atoms: np.ndarray,
    residue: np.ndarray,
    cutoff: float,
    min_separation: int = EXCLUDE_RESIDUE_SEPARATION + 1,
) -> np.ndarray:
    """(m, 2) atom index pairs within cutoff whose residues differ by >= min_separation."""
    if atoms.shape[0] < 2:
        return np.zeros((0, 2), dtype=int)
    tree = cKDTree(atoms)
    pairs = tree.query_pairs(r=cutoff, output_type="ndarray")
    if pairs.size == 0:
        return np.zeros((0, 2), dtype=int)
    sep = np.abs(residue[pairs[:, 0]] - residue[pairs[:, 1]])
    return pairs[sep >= min_separation]


def nonbonded_energy(atoms: np.ndarray, params: Dict[str, np.ndarray]) -> Tuple[float, float]:
    """(E_vdw, E_elec) over switched, residue-excluded pairs."""
    pairs = nonbonded_pairs(atoms, params["residue"], max(VDW_CUTOFF, ELEC_CUTOFF))
    if pairs.shape[0] == 0:
        return 0.0, 0.0
    i, j = pairs[:, 0], pairs[:, 1]
    r = np.linalg.norm(atoms[i] - atoms[j], axis=1)

    eps = np.sqrt(params["eps"][i] * params["eps"][j])
    rmin = params["rhalf"][i] + params["rhalf"][j]
    e_vdw = lennard_jones(r, eps, rmin) * switch_function(r, VDW_SWITCH_ON, VDW_CUTOFF)

    qq = params["charge"][i] * params["charge"][j]
    e_elec = coulomb(r, qq) * switch_function(r, ELEC_SWITCH_ON, ELEC_CUTOFF)
    return float(np.sum(e_vdw)), float(np.sum(e_elec))


def clash_count(atoms: np.ndarray, residue: np.ndarray, threshold: float = 2.5) -> int:
    """Number of non-bonded pairs closer than threshold (diagnostics)."""
    return int(nonbonded_pairs(atoms, residue, threshold).shape[0])
