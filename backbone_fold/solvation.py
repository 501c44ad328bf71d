"""
Implicit solvation from residue burial and Kyte-Doolittle hydrophobicity.

Burial of residue i is a smooth count of CA neighbors within ~10 A, skipping
the two chain neighbors on either side:

    n_i = sum_j sigmoid((R - r_ij) / w),   exposure_i = exp(-n_i / N_HALF)
    E   = SCALE * sum_i h_i * exposure_i

Exposed hydrophobic residues (h > 0) cost energy; exposed polar ones (h < 0)
gain it. Burial is smooth in the coordinates, so finite differences in
dihedral space stay well behaved.
"""

from __future__ import annotations

from typing import Dict

import numpy as np
from scipy.spatial.distance import pdist, squareform

KYTE_DOOLITTLE: Dict[str, float] = {
    "I": 4.5, "V": 4.2, "L": 3.8, "F": 2.8, "C": 2.5, "M": 1.9, "A": 1.8,
    "G": -0.4, "T": -0.7, "S": -0.8, "W": -0.9, "Y": -1.3, "P": -1.6,
    "H": -3.2, "N": -3.5, "Q": -3.5, "D": -3.5, "E": -3.5, "K": -3.9, "R": -4.5,
}

BURIAL_RADIUS = 10.0
BURIAL_WIDTH = 1.0
BURIAL_N_HALF = 4.0
BURIAL_MIN_SEPARATION = 3
SOLVATION_SCALE = 0.5


def hydrophobicity(sequence: str) -> np.ndarray:
    return np.array([KYTE_DOOLITTLE[a] for a in sequence], dtype=float)


def exposure(ca: np.ndarray) -> np.ndarray:
    """Per-residue exposed fraction in (0, 1]."""
    n = ca.shape[0]
    if n < 2:
        return np.ones(n)
    d = squareform(pdist(ca))
    sep = np.abs(np.subtract.outer(np.arange(n), np.arange(n)))
    # 0.5 * (1 + tanh(x/2)) is the logistic sigmoid without overflow
    contact = 0.5 * (1.0 + np.tanh((BURIAL_RADIUS - d) / (2.0 * BURIAL_WIDTH)))
    contact[sep < BURIAL_MIN_SEPARATION] = 0.0
    return np.exp(-contact.sum(axis=1) / BURIAL_N_HALF)


def solvation_energy(ca: np.ndarray, sequence: str) -> float:
    return float(np.sum(solvation_energy_per_residue(ca, sequence)))


def solvation_energy_per_residue(ca: np.ndarray, sequence: str) -> np.ndarray:
    return SOLVATION_SCALE * hydrophobicity(sequence) * exposure(ca)
