# backbone_fold: ab initio protein backbone prediction in dihedral space.
# MIT License. Python 3.10+. numpy + scipy; pandas optional for reports.

from .errors import (
    ConvergenceWarning,
    ExternalResourceError,
    FoldError,
    InputError,
    NumericalInstabilityError,
)
from .peptide_backbone import (
    DEFAULT_GEOMETRY,
    BackboneGeometry,
    DihedralAngles,
    backbone_geometry,
    parse_fasta,
    validate_sequence,
)
from .coordinate_builder import Conformation, build_backbone, measure_dihedrals
from .contact_map import ContactPrediction, contact_restraint_energy, predict_contact_map
from .energy import EnergyComponents, EnergyModel, EnergyWeights, evaluate_energy
from .ramachandran import allowed_fraction, project_to_allowed, ramachandran_map
from .sampling import (
    Candidate,
    CandidatePool,
    acquire_fragment_library,
    sample_basins,
    sample_fragments,
    sample_monte_carlo,
    sample_uniform,
    predict_ss,
)
from .optimization import CascadeConfig, CascadeResult, StageRecord, run_cascade
from .grading import compare_structures, gdt_ts, rmsd, tm_score
from .config import PredictionConfig, SamplerConfig, config_from_env
from .pipeline import PredictionResult, predict_structure

__version__ = "0.1.0"

__all__ = [
    "ConvergenceWarning",
    "ExternalResourceError",
    "FoldError",
    "InputError",
    "NumericalInstabilityError",
    "DEFAULT_GEOMETRY",
    "BackboneGeometry",
    "DihedralAngles",
    "backbone_geometry",
    "parse_fasta",
    "validate_sequence",
    "Conformation",
    "build_backbone",
    "measure_dihedrals",
    "ContactPrediction",
    "contact_restraint_energy",
    "predict_contact_map",
    "EnergyComponents",
    "EnergyModel",
    "EnergyWeights",
    "evaluate_energy",
    "allowed_fraction",
    "project_to_allowed",
    "ramachandran_map",
    "Candidate",
    "CandidatePool",
    "acquire_fragment_library",
    "sample_basins",
    "sample_fragments",
    "sample_monte_carlo",
    "sample_uniform",
    "predict_ss",
    "CascadeConfig",
    "CascadeResult",
    "StageRecord",
    "run_cascade",
    "compare_structures",
    "gdt_ts",
    "rmsd",
    "tm_score",
    "PredictionConfig",
    "SamplerConfig",
    "config_from_env",
    "PredictionResult",
    "predict_structure",
]
