"""
Structural similarity after optimal rigid superposition.

kabsch_superpose gives the closed-form rotation + translation minimizing the
mean squared distance between paired points. rmsd, tm_score and gdt_ts are
computed on that superposition, so all three are invariant under any rigid
motion of either input.

Inputs may be Conformations, (n, 4, 3) backbone arrays, or (n, 3) point sets.
Used for ranking against a known reference only; prediction itself selects by
energy.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple, Union

import numpy as np

from ..coordinate_builder import Conformation
from ..errors import InputError

StructureLike = Union[Conformation, np.ndarray]

GDT_CUTOFFS = (1.0, 2.0, 4.0, 8.0)


def _points(x: StructureLike, atoms: str = "CA") -> np.ndarray:
    coords = x.coords if isinstance(x, Conformation) else np.asarray(x, dtype=np.float64)
    if coords.ndim == 3:
        if atoms == "CA":
            return coords[:, 1, :].astype(np.float64)
        if atoms == "backbone":
            return coords.reshape(-1, 3).astype(np.float64)
        raise InputError(f"atoms must be 'CA' or 'backbone', got {atoms!r}", field="atoms")
    if coords.ndim == 2 and coords.shape[1] == 3:
        return coords
    raise InputError(f"expected (n, 4, 3) or (n, 3) coordinates, got shape {coords.shape}", field="coords")


def reference_ca(x: StructureLike) -> np.ndarray:
    """(n, 3) CA coordinates of a Conformation or a coordinate array."""
    return _points(x, "CA")


def _paired(a: StructureLike, b: StructureLike, atoms: str) -> Tuple[np.ndarray, np.ndarray]:
    P = _points(a, atoms)
    Q = _points(b, atoms)
    if P.shape != Q.shape:
        raise InputError(f"structures differ in size: {P.shape[0]} vs {Q.shape[0]} points", field="reference")
    if P.shape[0] == 0:
        raise InputError("structures are empty", field="reference")
    return P, Q


def kabsch_superpose(P: np.ndarray, Q: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Rotation R and translation t so that (R @ Q.T).T + t best matches P.

    P, Q: (N, 3). Returns (R, t, Q_aligned); R is a proper rotation (det +1).
    """
    P = np.asarray(P, dtype=np.float64).reshape(-1, 3)
    Q = np.asarray(Q, dtype=np.float64).reshape(-1, 3)
    if P.shape != Q.shape:
        raise InputError("point sets must have the same number of points", field="reference")
    cen_p = P.mean(axis=0)
    cen_q = Q.mean(axis=0)
    H = (Q - cen_q).T @ (P - cen_p)
    U, _, Vt = np.linalg.svd(H)
    d = np.sign(np.linalg.det(Vt.T @ U.T))
    if d == 0:
        d = 1.0
    D = np.diag([1.0, 1.0, d])
    R = Vt.T @ D @ U.T
    t = cen_p - R @ cen_q
    return R, t, (R @ Q.T).T + t


def rmsd(a: StructureLike, b: StructureLike, atoms: str = "CA") -> float:
    """RMSD (Angstrom) after superposing b onto a."""
    P, Q = _paired(a, b, atoms)
    _, _, Q_al = kabsch_superpose(P, Q)
    return float(np.sqrt(np.mean(np.sum((P - Q_al) ** 2, axis=1))))


def tm_d0(length: int) -> float:
    if length > 15:
        return max(0.5, 1.24 * (length - 15) ** (1.0 / 3.0) - 1.8)
    return 0.5


def tm_score(a: StructureLike, b: StructureLike) -> float:
    """TM-score in [0, 1] on CA atoms, normalized by the length of a."""
    P, Q = _paired(a, b, "CA")
    _, _, Q_al = kabsch_superpose(P, Q)
    d = np.linalg.norm(P - Q_al, axis=1)
    d0 = tm_d0(P.shape[0])
    return float(np.mean(1.0 / (1.0 + (d / d0) ** 2)))


def gdt_ts(a: StructureLike, b: StructureLike) -> float:
    """Mean fraction of CA within 1, 2, 4, 8 Angstrom after superposition, in [0, 1]."""
    P, Q = _paired(a, b, "CA")
    _, _, Q_al = kabsch_superpose(P, Q)
    d = np.linalg.norm(P - Q_al, axis=1)
    return float(np.mean([np.mean(d <= c) for c in GDT_CUTOFFS]))


@dataclass(frozen=True)
class StructureComparison:
    rmsd: float
    backbone_rmsd: float
    tm_score: float
    gdt_ts: float
    n_residues: int

    def as_dict(self) -> Dict[str, float]:
        return {
            "rmsd": self.rmsd,
            "backbone_rmsd": self.backbone_rmsd,
            "tm_score": self.tm_score,
            "gdt_ts": self.gdt_ts,
            "n_residues": self.n_residues,
        }


def compare_structures(predicted: StructureLike, reference: StructureLike) -> StructureComparison:
    """All similarity measures of predicted against reference."""
    P, _ = _paired(reference, predicted, "CA")
    has_backbone = all(
        (isinstance(x, Conformation) or np.asarray(x).ndim == 3) for x in (predicted, reference)
    )
    return StructureComparison(
        rmsd=rmsd(reference, predicted),
        backbone_rmsd=rmsd(reference, predicted, "backbone") if has_backbone else float("nan"),
        tm_score=tm_score(reference, predicted),
        gdt_ts=gdt_ts(reference, predicted),
        n_residues=int(P.shape[0]),
    )
