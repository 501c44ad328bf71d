"""
Chou-Fasman secondary-structure prediction (no ML).

Per-residue H / E / C labels from windowed helix and sheet propensities, then
short runs are dissolved into coil (helix < 4, strand < 3). Feeds the fragment
sampler (window ranking) and the pipeline's seed conformations.
"""

from __future__ import annotations

from typing import Dict, Tuple

import numpy as np

from ..peptide_backbone import (
    PHI_ALPHA_DEG,
    PHI_BETA_DEG,
    PSI_ALPHA_DEG,
    PSI_BETA_DEG,
    DihedralAngles,
    validate_sequence,
)

HELIX_PROPENSITY: Dict[str, float] = {
    "A": 1.42, "C": 0.70, "D": 1.01, "E": 1.51, "F": 1.13,
    "G": 0.57, "H": 1.00, "I": 1.08, "K": 1.16, "L": 1.21,
    "M": 1.45, "N": 0.67, "P": 0.57, "Q": 1.11, "R": 0.98,
    "S": 0.77, "T": 0.83, "V": 1.06, "W": 1.08, "Y": 0.69,
}

SHEET_PROPENSITY: Dict[str, float] = {
    "A": 0.83, "C": 1.19, "D": 0.54, "E": 0.37, "F": 1.38,
    "G": 0.75, "H": 0.87, "I": 1.60, "K": 0.74, "L": 1.30,
    "M": 1.05, "N": 0.89, "P": 0.55, "Q": 1.10, "R": 0.93,
    "S": 0.75, "T": 1.19, "V": 1.70, "W": 1.37, "Y": 1.47,
}

HELIX_THRESHOLD = 1.03
SHEET_THRESHOLD = 1.05
MIN_HELIX_LENGTH = 4
MIN_SHEET_LENGTH = 3


def _dissolve_short_runs(labels: list, label: str, min_length: int) -> None:
    n = len(labels)
    i = 0
    while i < n:
        if labels[i] != label:
            i += 1
            continue
        start = i
        while i < n and labels[i] == label:
            i += 1
        if i - start < min_length:
            for k in range(start, i):
                labels[k] = "C"


def predict_ss(sequence: str, window: int = 6) -> Tuple[str, np.ndarray]:
    """
    Returns (ss_string, confidence). confidence[i] in [0, 1]; coil gets 0.5.
    """
    seq = validate_sequence(sequence)
    n = len(seq)
    labels = ["C"] * n
    conf = np.full(n, 0.5)
    half = window // 2
    for i in range(n):
        lo, hi = max(0, i - half), min(n, i + half + 1)
        h = float(np.mean([HELIX_PROPENSITY[a] for a in seq[lo:hi]]))
        e = float(np.mean([SHEET_PROPENSITY[a] for a in seq[lo:hi]]))
        if h > HELIX_THRESHOLD and h > e:
            labels[i] = "H"
            conf[i] = (h - HELIX_THRESHOLD) / HELIX_THRESHOLD
        elif e > SHEET_THRESHOLD and e > h:
            labels[i] = "E"
            conf[i] = (e - SHEET_THRESHOLD) / SHEET_THRESHOLD
    _dissolve_short_runs(labels, "H", MIN_HELIX_LENGTH)
    _dissolve_short_runs(labels, "E", MIN_SHEET_LENGTH)
    for i, lab in enumerate(labels):
        if lab == "C":
            conf[i] = 0.5
    return "".join(labels), np.clip(conf, 0.0, 1.0)


def ss_seed_angles(ss: str) -> DihedralAngles:
    """Ideal helix for H, extended strand for everything else."""
    phi = np.array([PHI_ALPHA_DEG if s == "H" else PHI_BETA_DEG for s in ss], dtype=float)
    psi = np.array([PSI_ALPHA_DEG if s == "H" else PSI_BETA_DEG for s in ss], dtype=float)
    return DihedralAngles.from_degrees(phi, psi)
