"""
Conformation generators. Every sampler takes (sequence, count, seed, ...) and
returns a list of Candidates; count <= 0 gives an empty list and an empty
sequence raises InputError.
"""

from __future__ import annotations

from .base import Candidate, CandidatePool, spawn_generators
from .basin_explorer import STANDARD_BASINS, constraints_from_ss, sample_basins
from .diversity import dihedral_distance, ensemble_diversity, pairwise_rmsd_matrix
from .fragments import (
    BuiltinFragmentProvider,
    Fragment,
    FragmentLibrary,
    FragmentLibraryProvider,
    JsonFragmentProvider,
    LibraryAcquisition,
    acquire_fragment_library,
    builtin_library,
    sample_fragments,
)
from .monte_carlo import MetropolisTrace, metropolis_walk, sample_monte_carlo, temperature
from .ss_predict import predict_ss, ss_seed_angles
from .uniform import coverage_density, sample_uniform

SAMPLERS = ("uniform", "monte_carlo", "fragments", "basin_explorer")

__all__ = [
    "Candidate",
    "CandidatePool",
    "spawn_generators",
    "STANDARD_BASINS",
    "constraints_from_ss",
    "sample_basins",
    "dihedral_distance",
    "ensemble_diversity",
    "pairwise_rmsd_matrix",
    "BuiltinFragmentProvider",
    "Fragment",
    "FragmentLibrary",
    "FragmentLibraryProvider",
    "JsonFragmentProvider",
    "LibraryAcquisition",
    "acquire_fragment_library",
    "builtin_library",
    "sample_fragments",
    "MetropolisTrace",
    "metropolis_walk",
    "sample_monte_carlo",
    "temperature",
    "predict_ss",
    "ss_seed_angles",
    "coverage_density",
    "sample_uniform",
    "SAMPLERS",
]
