"""
Single-sequence contact map prediction and CA distance restraints.

Without an alignment there is no coevolution signal, so pairs are scored
from residue chemistry alone:

- hydrophobic core pairs
- opposite charges (salt bridges)
- aromatic stacking
- cysteine pairs

Each pair score is damped by 1/sqrt(|i-j|). Pairs at Fibonacci separations can
be boosted by 30%, capped at 1. Only pairs at least min_separation apart are
considered, and the top max_contacts (default: the chain length) are kept.

Predicted contacts feed an optional harmonic CA-CA restraint,

    E = sum_k  k_c * score_k * (d_ij - 7.0)^2

and a few summaries: coverage, short/medium/long range counts and, when a
reference structure is given, precision/recall against its native contacts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy.spatial import cKDTree

from .errors import InputError
from .peptide_backbone import validate_sequence

logger = logging.getLogger(__name__)

CONTACT_THRESHOLD = 8.0  # A, CA-CA
RESTRAINT_TARGET = 7.0  # A
RESTRAINT_FORCE_CONSTANT = 10.0  # kcal/(mol A^2)
MIN_SEPARATION = 6
SCORE_CUTOFF = 0.1
FIBONACCI_BOOST = 1.3

METHODS = ("chemistry", "fibonacci", "consensus")

HYDROPHOBIC = set("AVILMFWP")
POSITIVE = set("KRH")
NEGATIVE = set("DE")
AROMATIC = set("FYW")

# Sequence separation bounds of the short and medium ranges; the rest is long
SHORT_RANGE_MAX = 11
MEDIUM_RANGE_MAX = 23


@dataclass(frozen=True)
class ContactPrediction:
    i: int
    j: int
    score: float
    method: str = "chemistry"

    @property
    def separation(self) -> int:
        return self.j - self.i

    @property
    def range_class(self) -> str:
        if self.separation <= SHORT_RANGE_MAX:
            return "short"
        if self.separation <= MEDIUM_RANGE_MAX:
            return "medium"
        return "long"


@dataclass(frozen=True)
class ContactRangeStats:
    short: int
    medium: int
    long: int

    @property
    def total(self) -> int:
        return self.short + self.medium + self.long

    def as_dict(self) -> Dict[str, int]:
        return {"short": self.short, "medium": self.medium, "long": self.long, "total": self.total}


def pair_chemistry_score(a: str, b: str) -> float:
    score = 0.0
    if a in HYDROPHOBIC and b in HYDROPHOBIC:
        score += 0.5
    if (a in POSITIVE and b in NEGATIVE) or (a in NEGATIVE and b in POSITIVE):
        score += 0.7
    if a in AROMATIC and b in AROMATIC:
        score += 0.6
    if a == "C" and b == "C":
        score += 0.9
    return score


def fibonacci_numbers(limit: int) -> List[int]:
    """Distinct Fibonacci numbers up to limit."""
    fib = [1, 2]
    while fib[-1] + fib[-2] <= limit:
        fib.append(fib[-1] + fib[-2])
    return [f for f in fib if f <= limit]


def _chemistry_contacts(seq: str, min_separation: int) -> Dict[Tuple[int, int], float]:
    n = len(seq)
    out: Dict[Tuple[int, int], float] = {}
    for i in range(n):
        for j in range(i + min_separation, n):
            score = pair_chemistry_score(seq[i], seq[j]) / np.sqrt(j - i)
            if score > SCORE_CUTOFF:
                out[(i, j)] = float(score)
    return out


def _fibonacci_contacts(seq: str, min_separation: int) -> Dict[Tuple[int, int], float]:
    n = len(seq)
    out: Dict[Tuple[int, int], float] = {}
    for sep in fibonacci_numbers(n - 1):
        if sep < min_separation:
            continue
        for i in range(n - sep):
            out[(i, i + sep)] = 0.7 + 0.3 * pair_chemistry_score(seq[i], seq[i + sep])
    return out


def predict_contact_map(
    sequence: str,
    method: str = "chemistry",
    min_separation: int = MIN_SEPARATION,
    max_contacts: Optional[int] = None,
    fibonacci_boost: bool = True,
) -> List[ContactPrediction]:
    """
    Ranked contact predictions, highest score first; ties break on (i, j).
    Scores are clipped to [0, 1].
    """
    seq = validate_sequence(sequence)
    if method not in METHODS:
        raise InputError(f"contact method must be one of {METHODS}, got {method!r}", field="method")
    if min_separation < 1:
        raise InputError(f"min_separation must be >= 1, got {min_separation}", field="min_separation")
    limit = len(seq) if max_contacts is None else int(max_contacts)

    if method == "chemistry":
        scores = _chemistry_contacts(seq, min_separation)
        if fibonacci_boost:
            fib = set(fibonacci_numbers(len(seq)))
            scores = {k: v * FIBONACCI_BOOST if k[1] - k[0] in fib else v for k, v in scores.items()}
    elif method == "fibonacci":
        scores = _fibonacci_contacts(seq, min_separation)
    else:
        chem = _chemistry_contacts(seq, min_separation)
        fibs = _fibonacci_contacts(seq, min_separation)
        scores = dict(chem)
        for k, v in fibs.items():
            scores[k] = 0.5 * (scores[k] + v) if k in scores else v

    ranked = sorted(scores.items(), key=lambda kv: (-kv[1], kv[0]))[: max(0, limit)]
    contacts = [ContactPrediction(i, j, float(min(1.0, s)), method) for (i, j), s in ranked]
    logger.debug("predicted %d contacts (%s) for %d residues", len(contacts), method, len(seq))
    return contacts


def _contact_index(contacts: Sequence[ContactPrediction]) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    i = np.array([c.i for c in contacts], dtype=int)
    j = np.array([c.j for c in contacts], dtype=int)
    w = np.array([c.score for c in contacts], dtype=float)
    return i, j, w


def contact_restraint_energy(
    ca: np.ndarray,
    contacts: Sequence[ContactPrediction],
    force_constant: float = RESTRAINT_FORCE_CONSTANT,
    target: float = RESTRAINT_TARGET,
) -> float:
    """Score-weighted harmonic pull of each predicted pair toward target CA-CA distance."""
    if not contacts:
        return 0.0
    ca = np.asarray(ca, dtype=float)
    i, j, w = _contact_index(contacts)
    if i.max() >= ca.shape[0] or j.max() >= ca.shape[0]:
        raise InputError(
            f"contact index out of range for {ca.shape[0]} residues", field="contacts"
        )
    d = np.linalg.norm(ca[j] - ca[i], axis=1)
    return float(force_constant * np.sum(w * (d - target) ** 2))


def native_contacts(
    ca: np.ndarray, threshold: float = CONTACT_THRESHOLD, min_separation: int = MIN_SEPARATION
) -> List[Tuple[int, int]]:
    """(i, j) pairs closer than threshold in a structure, j - i >= min_separation."""
    ca = np.asarray(ca, dtype=float)
    pairs = []
    for i, j in cKDTree(ca).query_pairs(threshold):
        i, j = min(i, j), max(i, j)
        if j - i >= min_separation and np.linalg.norm(ca[j] - ca[i]) < threshold:
            pairs.append((int(i), int(j)))
    return sorted(pairs)


def contact_precision(
    contacts: Sequence[ContactPrediction],
    reference_ca: np.ndarray,
    threshold: float = CONTACT_THRESHOLD,
    min_separation: int = MIN_SEPARATION,
) -> Dict[str, float]:
    """Precision, recall and F1 of the predictions against the reference's native contacts."""
    native = set(native_contacts(reference_ca, threshold, min_separation))
    hits = sum(1 for c in contacts if (c.i, c.j) in native)
    precision = hits / len(contacts) if contacts else 0.0
    recall = hits / len(native) if native else 0.0
    f1 = 2.0 * precision * recall / (precision + recall) if precision + recall > 0 else 0.0
    return {"precision": precision, "recall": recall, "f1": f1, "n_native": float(len(native))}


def contact_coverage(contacts: Sequence[ContactPrediction], n_residues: int) -> float:
    """Fraction of residues that take part in at least one predicted contact."""
    if n_residues <= 0:
        return 0.0
    involved = {c.i for c in contacts} | {c.j for c in contacts}
    return len(involved) / n_residues


def contact_range_statistics(contacts: Sequence[ContactPrediction]) -> ContactRangeStats:
    counts = {"short": 0, "medium": 0, "long": 0}
    for c in contacts:
        counts[c.range_class] += 1
    return ContactRangeStats(**counts)
