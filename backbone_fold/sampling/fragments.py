"""
Template/fragment sampler and fragment-library acquisition.

The builtin library holds ideal backbone fragments (3-mers and 9-mers):

- helix (-60, -45), with variants at +/-5 and +/-10 degrees
- strand (-120, 120), with variants at +/-10 and +/-15 degrees
- type I and type II turns
- extended and compact loops

Every fragment carries a representative sequence and an SS class. Assembly
walks the chain in overlapping windows and ranks fragments by:

- local sequence similarity, using residue substitution classes
- agreement with the predicted secondary structure
- angular compatibility with the angles already placed in the overlap

It then picks one of the top-ranked fragments with the candidate's own
Generator.

Libraries are acquired through a provider capability. acquire_fragment_library()
bounds each fetch with a timeout and retries. If every attempt fails it falls
back to the reduced builtin library and marks the acquisition degraded. It
never blocks indefinitely.
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import List, Optional, Protocol, Tuple

import numpy as np

from ..errors import ExternalResourceError, InputError
from ..peptide_backbone import DihedralAngles, wrap_angle
from .base import Candidate, SeedLike, check_request, spawn_generators
from .ss_predict import predict_ss

logger = logging.getLogger(__name__)

ORIGIN = "fragments"

RESIDUE_CLASSES = {
    **{a: "hydrophobic" for a in "AVLIMC"},
    **{a: "aromatic" for a in "FWY"},
    **{a: "polar" for a in "STNQ"},
    **{a: "positive" for a in "KRH"},
    **{a: "negative" for a in "DE"},
    "G": "glycine",
    "P": "proline",
}

# Fragment SS class -> predicted labels it agrees with
SS_AGREEMENT = {"H": "H", "E": "E", "T": "C", "C": "C"}


@dataclass(frozen=True)
class Fragment:
    """Consecutive (phi, psi) pairs in radians."""

    angles: Tuple[Tuple[float, float], ...]
    source: str
    sequence: str
    ss: str = "C"

    @property
    def length(self) -> int:
        return len(self.angles)

    @classmethod
    def from_degrees(cls, pairs, source: str, sequence: str, ss: str = "C") -> "Fragment":
        rad = tuple((float(np.deg2rad(p)), float(np.deg2rad(s))) for p, s in pairs)
        return cls(angles=rad, source=source, sequence=sequence, ss=ss)


@dataclass(frozen=True)
class FragmentLibrary:
    fragments: Tuple[Fragment, ...]
    name: str = "builtin"

    def __len__(self) -> int:
        return len(self.fragments)

    def of_length(self, length: int) -> List[Fragment]:
        return [f for f in self.fragments if f.length == length]

    @property
    def lengths(self) -> List[int]:
        return sorted({f.length for f in self.fragments})


def _uniform_fragment(phi: float, psi: float, length: int, source: str, sequence: str, ss: str) -> Fragment:
    return Fragment.from_degrees([(phi, psi)] * length, source, sequence * (length // len(sequence)), ss)


def builtin_library(reduced: bool = False) -> FragmentLibrary:
    """Ideal fragments. reduced=True drops the angular variants (fallback library)."""
    frags: List[Fragment] = []
    for length in (3, 9):
        frags.append(_uniform_fragment(-60.0, -45.0, length, "ideal_alpha_helix", "AAA", "H"))
        frags.append(_uniform_fragment(-120.0, 120.0, length, "ideal_beta_sheet", "VVV", "E"))
    if not reduced:
        for d in (-10.0, -5.0, 5.0, 10.0):
            frags.append(_uniform_fragment(-60.0 + d, -45.0 + d, 3, f"alpha_helix_var_{d:+.0f}", "AAA", "H"))
        for d in (-15.0, -10.0, 10.0, 15.0):
            frags.append(_uniform_fragment(-120.0 + d, 120.0 + d, 3, f"beta_sheet_var_{d:+.0f}", "VVV", "E"))
    frags.append(Fragment.from_degrees([(-60.0, -30.0), (-90.0, 0.0), (-60.0, -30.0)], "type_I_turn", "GNG", "T"))
    frags.append(Fragment.from_degrees([(-60.0, 120.0), (80.0, 0.0), (-60.0, 120.0)], "type_II_turn", "GPG", "T"))
    frags.append(Fragment.from_degrees([(-120.0, 120.0), (-100.0, 100.0), (-120.0, 120.0)], "extended_loop", "GGG", "C"))
    frags.append(Fragment.from_degrees([(-80.0, 80.0), (-70.0, 70.0), (-80.0, 80.0)], "compact_loop", "PPP", "C"))
    return FragmentLibrary(fragments=tuple(frags), name="builtin-reduced" if reduced else "builtin")


class FragmentLibraryProvider(Protocol):
    name: str

    def fetch(self) -> FragmentLibrary:
        ...


class BuiltinFragmentProvider:
    name = "builtin"

    def fetch(self) -> FragmentLibrary:
        return builtin_library()


class JsonFragmentProvider:
    """
    Fragment library from a JSON file: a list of objects with keys
    source, sequence, ss, phi (degrees), psi (degrees).
    """

    def __init__(self, path: str):
        self.path = path
        self.name = f"json:{path}"

    def fetch(self) -> FragmentLibrary:
        try:
            with open(self.path) as f:
                raw = json.load(f)
            frags = tuple(
                Fragment.from_degrees(
                    list(zip(item["phi"], item["psi"])),
                    str(item.get("source", "json")),
                    str(item.get("sequence", "")),
                    str(item.get("ss", "C")),
                )
                for item in raw
            )
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise ExternalResourceError(f"could not load fragment library {self.path}: {e}") from e
        if not frags:
            raise ExternalResourceError(f"fragment library {self.path} is empty")
        return FragmentLibrary(fragments=frags, name=self.name)


@dataclass(frozen=True)
class LibraryAcquisition:
    library: FragmentLibrary
    degraded: bool
    attempts: int
    source: str
    error: Optional[ExternalResourceError] = None


def acquire_fragment_library(
    provider: Optional[FragmentLibraryProvider] = None,
    timeout: float = 2.0,
    retries: int = 1,
) -> LibraryAcquisition:
    """
    Fetch from provider with a per-attempt timeout and up to `retries` retries.
    On failure, return the reduced builtin library with degraded=True.
    """
    if provider is None:
        provider = BuiltinFragmentProvider()
    last_error: Optional[ExternalResourceError] = None
    attempts = 0
    for attempt in range(max(0, retries) + 1):
        attempts = attempt + 1
        executor = ThreadPoolExecutor(max_workers=1)
        future = executor.submit(provider.fetch)
        try:
            library = future.result(timeout=timeout)
            if len(library) == 0:
                raise ExternalResourceError(f"provider {provider.name} returned an empty library")
            return LibraryAcquisition(library=library, degraded=False, attempts=attempts, source=provider.name)
        except FutureTimeoutError:
            last_error = ExternalResourceError(f"provider {provider.name} timed out after {timeout}s")
        except ExternalResourceError as e:
            last_error = e
        except Exception as e:
            # Every provider failure falls back; the cause stays attached
            last_error = ExternalResourceError(f"provider {provider.name} failed: {type(e).__name__}: {e}")
            last_error.__cause__ = e
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        logger.warning("fragment library attempt %d failed: %s", attempts, last_error)
    fallback = builtin_library(reduced=True)
    logger.warning("using fallback fragment library %s (degraded)", fallback.name)
    return LibraryAcquisition(
        library=fallback, degraded=True, attempts=attempts, source=fallback.name, error=last_error
    )


def sequence_similarity(window: str, fragment_sequence: str) -> float:
    """Mean per-position score: 1 identical, 0.5 same substitution class, 0 otherwise."""
    if not window or not fragment_sequence:
        return 0.0
    score = 0.0
    for a, b in zip(window, fragment_sequence):
        if a == b:
            score += 1.0
        elif RESIDUE_CLASSES.get(a) == RESIDUE_CLASSES.get(b):
            score += 0.5
    return score / len(window)


def _ss_agreement(ss_window: str, fragment: Fragment) -> float:
    if not ss_window:
        return 0.0
    want = SS_AGREEMENT.get(fragment.ss, "C")
    return sum(1.0 for s in ss_window if s == want) / len(ss_window)


def _compatibility(phi: np.ndarray, psi: np.ndarray, pos: int, fragment: Fragment, placed: np.ndarray) -> float:
    """Mean cosine agreement over residues already placed; 0 when nothing overlaps."""
    total, count = 0.0, 0
    for k, (f_phi, f_psi) in enumerate(fragment.angles):
        i = pos + k
        if i >= phi.shape[0] or not placed[i]:
            continue
        total += 0.5 * (np.cos(phi[i] - f_phi) + np.cos(psi[i] - f_psi))
        count += 1
    return total / count if count else 0.0


def _fragment_overlap(length: int) -> int:
    return max(1, length // 3)


def assemble_fragments(
    sequence: str,
    library: FragmentLibrary,
    rng: np.random.Generator,
    ss: Optional[str] = None,
    top_k: int = 3,
    compat_weight: float = 0.5,
    ss_weight: float = 0.5,
    jitter_deg: float = 5.0,
) -> DihedralAngles:
    """
    Stitch one angle set from overlapping fragment windows.

    At each position every fragment that fits in the remaining chain competes,
    whatever its length; all three scores are per-residue means so 3-mers and
    9-mers rank on the same scale. The next window starts a third of the
    chosen fragment's length before its end.
    """
    n = len(sequence)
    if not library.lengths:
        raise InputError("fragment library is empty", field="library")
    ss = ss if ss is not None else predict_ss(sequence)[0]

    phi = np.full(n, -120.0 * np.pi / 180.0)
    psi = np.full(n, 120.0 * np.pi / 180.0)
    placed = np.zeros(n, dtype=bool)
    pos = 0
    while True:
        pool = [f for f in library.fragments if f.length <= n - pos]
        if not pool:
            # Chain shorter than every fragment: the shortest ones, truncated
            shortest = library.lengths[0]
            pool = library.of_length(shortest)
        scores = np.array([
            sequence_similarity(sequence[pos:pos + f.length], f.sequence)
            + ss_weight * _ss_agreement(ss[pos:pos + f.length], f)
            + compat_weight * _compatibility(phi, psi, pos, f, placed)
            for f in pool
        ])
        order = np.argsort(-scores, kind="stable")[: max(1, top_k)]
        choice = pool[int(order[rng.integers(order.shape[0])])]
        for k, (f_phi, f_psi) in enumerate(choice.angles):
            i = pos + k
            if i >= n:
                break
            phi[i], psi[i] = f_phi, f_psi
            placed[i] = True
        end = pos + choice.length
        if end >= n:
            break
        pos = max(pos + 1, end - _fragment_overlap(choice.length))
    if jitter_deg > 0.0:
        sd = np.deg2rad(jitter_deg)
        phi = wrap_angle(phi + rng.normal(0.0, sd, n))
        psi = wrap_angle(psi + rng.normal(0.0, sd, n))
    return DihedralAngles.from_arrays(wrap_angle(phi), wrap_angle(psi))


def sample_fragments(
    sequence: str,
    count: int,
    seed: SeedLike,
    library: Optional[FragmentLibrary] = None,
    ss: Optional[str] = None,
    top_k: int = 3,
) -> List[Candidate]:
    """count fragment-assembled candidates; the library defaults to the builtin one."""
    seq = check_request(sequence, count)
    if count <= 0:
        return []
    lib = library if library is not None else builtin_library()
    ss = ss if ss is not None else predict_ss(seq)[0]
    return [
        Candidate(assemble_fragments(seq, lib, rng, ss=ss, top_k=top_k), ORIGIN, k)
        for k, rng in enumerate(spawn_generators(seed, count))
    ]

