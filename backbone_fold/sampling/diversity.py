"""
Ensemble diversity: pairwise superposed CA-RMSD and circular dihedral distance.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from ..coordinate_builder import Conformation
from ..grading.similarity import rmsd
from ..peptide_backbone import DihedralAngles, angle_difference


@dataclass(frozen=True)
class EnsembleDiversity:
    mean_rmsd: float
    median_rmsd: float
    min_rmsd: float
    max_rmsd: float
    n_unique: int


def pairwise_rmsd_matrix(conformations: Sequence[Conformation]) -> np.ndarray:
    n = len(conformations)
    out = np.zeros((n, n))
    for i in range(n):
        for j in range(i + 1, n):
            out[i, j] = out[j, i] = rmsd(conformations[i], conformations[j])
    return out


def dihedral_distance(a: DihedralAngles, b: DihedralAngles) -> float:
    """RMS circular difference (radians) over angles defined in both sets."""
    diffs = []
    for name in ("phi", "psi"):
        x, y = getattr(a, name), getattr(b, name)
        mask = ~(np.isnan(x) | np.isnan(y))
        diffs.append(angle_difference(x[mask], y[mask]))
    d = np.concatenate(diffs)
    return float(np.sqrt(np.mean(d * d))) if d.size else 0.0


def ensemble_diversity(conformations: Sequence[Conformation], unique_threshold: float = 1.0) -> EnsembleDiversity:
    """
    Pairwise RMSD statistics. n_unique counts structures not within
    unique_threshold Angstrom of an earlier one.
    """
    n = len(conformations)
    if n < 2:
        return EnsembleDiversity(0.0, 0.0, 0.0, 0.0, n)
    m = pairwise_rmsd_matrix(conformations)
    upper = m[np.triu_indices(n, k=1)]
    unique = 0
    for i in range(n):
        if i == 0 or np.all(m[i, :i] > unique_threshold):
            unique += 1
    return EnsembleDiversity(
        mean_rmsd=float(np.mean(upper)),
        median_rmsd=float(np.median(upper)),
        min_rmsd=float(np.min(upper)),
        max_rmsd=float(np.max(upper)),
        n_unique=unique,
    )
