"""
Backbone hydrogen bonds N-H...O=C with a virtual amide hydrogen.

The amide H of residue i (i > 0, not proline) is placed 1.01 A from N along the
bisector of the C(i-1)-N and CA-N directions. A donor/acceptor pair counts when
N...O lies in [2.5, 3.5] A and the N-H...O angle in [120, 180] degrees:

    E = -5 * f_d * f_a
    f_d = exp(-(d - 2.9)^2 / 0.2) * taper(d)
    f_a = smoothstep((cos 120 - cos theta) / (cos 120 - cos 180))

taper() brings f_d to zero at both window edges so the term is smooth in the
dihedral angles. Pairs closer than three residues apart are ignored.
"""

from __future__ import annotations

from typing import List, Tuple

import numpy as np
from scipy.spatial import cKDTree

HBOND_ENERGY = -5.0
HBOND_D0 = 2.9
HBOND_WIDTH = 0.2
HBOND_D_MIN = 2.5
HBOND_D_MAX = 3.5
HBOND_TAPER = 0.15
HBOND_ANGLE_MIN_DEG = 120.0
NH_BOND = 1.01
MIN_SEQUENCE_SEPARATION = 3


def _smoothstep(t: np.ndarray) -> np.ndarray:
    t = np.clip(t, 0.0, 1.0)
    return t * t * (3.0 - 2.0 * t)


def amide_hydrogens(coords: np.ndarray, sequence: str) -> Tuple[np.ndarray, np.ndarray]:
    """Donor residue indices and their virtual H positions."""
    donors = [i for i in range(1, coords.shape[0]) if sequence[i] != "P"]
    if not donors:
        return np.zeros(0, dtype=int), np.zeros((0, 3))
    idx = np.array(donors, dtype=int)
    n = coords[idx, 0]
    u = n - coords[idx - 1, 2]
    v = n - coords[idx, 1]
    u /= np.linalg.norm(u, axis=1, keepdims=True)
    v /= np.linalg.norm(v, axis=1, keepdims=True)
    b = u + v
    b /= np.linalg.norm(b, axis=1, keepdims=True) + 1e-300
    return idx, n + NH_BOND * b


def _pair_factors(n_pos: np.ndarray, h_pos: np.ndarray, o_pos: np.ndarray) -> np.ndarray:
    d = np.linalg.norm(o_pos - n_pos, axis=1)
    f_d = np.exp(-((d - HBOND_D0) ** 2) / HBOND_WIDTH)
    f_d *= _smoothstep((d - HBOND_D_MIN) / HBOND_TAPER)
    f_d *= _smoothstep((HBOND_D_MAX - d) / HBOND_TAPER)
    hn = n_pos - h_pos
    ho = o_pos - h_pos
    cos = np.sum(hn * ho, axis=1) / (
        np.linalg.norm(hn, axis=1) * np.linalg.norm(ho, axis=1) + 1e-300
    )
    c_min = np.cos(np.deg2rad(HBOND_ANGLE_MIN_DEG))
    f_a = _smoothstep((c_min - cos) / (c_min + 1.0))
    return f_d * f_a


def find_hbonds(coords: np.ndarray, sequence: str) -> List[Tuple[int, int, float]]:
    """(donor residue, acceptor residue, strength in [0, 1]) for every pair with nonzero strength."""
    donors, h = amide_hydrogens(coords, sequence)
    if donors.size == 0:
        return []
    o_all = coords[:, 3]
    tree = cKDTree(o_all)
    hits = tree.query_ball_point(coords[donors, 0], r=HBOND_D_MAX)
    rows, cols = [], []
    for k, acceptors in enumerate(hits):
        for j in acceptors:
            if abs(int(donors[k]) - j) >= MIN_SEQUENCE_SEPARATION:
                rows.append(k)
                cols.append(j)
    if not rows:
        return []
    rows_a = np.array(rows, dtype=int)
    cols_a = np.array(cols, dtype=int)
    strength = _pair_factors(coords[donors[rows_a], 0], h[rows_a], o_all[cols_a])
    return [
        (int(donors[r]), int(c), float(s))
        for r, c, s in zip(rows_a, cols_a, strength)
        if s > 0.0
    ]


def hbond_energy(coords: np.ndarray, sequence: str) -> float:
    return float(HBOND_ENERGY * sum(s for _, _, s in find_hbonds(coords, sequence)))


def count_hbonds(coords: np.ndarray, sequence: str, min_strength: float = 0.5) -> int:
    return sum(1 for _, _, s in find_hbonds(coords, sequence) if s >= min_strength)
