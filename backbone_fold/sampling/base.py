"""
Candidate and CandidatePool shared by every sampler, plus seeding helpers.

Each candidate gets its own numpy Generator spawned from one SeedSequence, so
candidates can be generated in any order or in parallel and still come out
the same for a given seed.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict, Iterable, Iterator, List, Optional, Union

import numpy as np

from ..errors import InputError
from ..peptide_backbone import DihedralAngles, validate_sequence

SeedLike = Union[int, np.random.SeedSequence]


@dataclass(frozen=True)
class Candidate:
    """One angle vector produced by a sampler; energy is filled in at ranking."""

    angles: DihedralAngles
    origin: str
    index: int
    energy: Optional[float] = None

    def with_energy(self, energy: float) -> "Candidate":
        return replace(self, energy=float(energy))

    @property
    def sort_key(self):
        e = np.inf if self.energy is None else self.energy
        return (e, self.origin, self.index)


class CandidatePool:
    """Rankable candidate set. Ranking depends only on (energy, origin, index)."""

    def __init__(self, candidates: Optional[Iterable[Candidate]] = None):
        self._candidates: List[Candidate] = list(candidates or [])

    def __len__(self) -> int:
        return len(self._candidates)

    def __iter__(self) -> Iterator[Candidate]:
        return iter(self._candidates)

    def add(self, candidate: Candidate) -> None:
        self._candidates.append(candidate)

    def extend(self, candidates: Iterable[Candidate]) -> None:
        self._candidates.extend(candidates)

    def ranked(self) -> List[Candidate]:
        return sorted(self._candidates, key=lambda c: c.sort_key)

    def best(self) -> Candidate:
        if not self._candidates:
            raise InputError("candidate pool is empty", field="pool")
        return min(self._candidates, key=lambda c: c.sort_key)

    def top(self, k: int) -> List[Candidate]:
        return self.ranked()[: max(0, k)]

    def counts_by_origin(self) -> Dict[str, int]:
        out: Dict[str, int] = {}
        for c in self._candidates:
            out[c.origin] = out.get(c.origin, 0) + 1
        return out


def seed_sequence(seed: SeedLike) -> np.random.SeedSequence:
    if isinstance(seed, np.random.SeedSequence):
        return seed
    if seed is None or isinstance(seed, bool) or not isinstance(seed, (int, np.integer)):
        raise InputError("an explicit integer seed is required", field="seed")
    return np.random.SeedSequence(int(seed))


def spawn_generators(seed: SeedLike, count: int) -> List[np.random.Generator]:
    """One independent Generator per candidate."""
    return [np.random.default_rng(s) for s in seed_sequence(seed).spawn(count)]


def check_request(sequence: str, count: int) -> str:
    """Validate sampler input; returns the normalized sequence."""
    seq = validate_sequence(sequence)
    if not isinstance(count, (int, np.integer)):
        raise InputError("count must be an integer", field="count")
    return seq
