"""
Potential energy evaluator: decomposed energy of a Conformation and its
gradient with respect to the free dihedral angles.

E_tot = w_b E_bond + w_a E_angle + w_r E_rama + w_v E_vdw + w_e E_elec
        + w_h E_hbond + w_s E_solv + w_c E_contact

The contact term is zero unless the model carries predicted contacts.

Every component is computed fresh from the conformation; nothing is capped or
replaced by a sentinel. A non-finite component raises NumericalInstabilityError
so the caller can drop that candidate.

The gradient is a symmetric finite difference in angle space: each free angle
is perturbed, the chain is rebuilt from scratch and re-scored. It is consistent
with the forward evaluator by construction.

MIT License. Python 3.10+.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Dict, Mapping, Optional, Tuple, Union

import numpy as np

from . import force_field as _ff
from .contact_map import ContactPrediction, contact_restraint_energy
from .coordinate_builder import Conformation, build_backbone
from .errors import InputError, NumericalInstabilityError
from .hydrogen_bonds import hbond_energy
from .peptide_backbone import DEFAULT_GEOMETRY, BackboneGeometry, DihedralAngles, validate_sequence
from .ramachandran import BasinTable, ramachandran_energy, ramachandran_energy_and_gradient
from .solvation import solvation_energy


FD_EPS = 1e-5


@dataclass(frozen=True)
class EnergyWeights:
    """Relative weights; ramachandran dominates by default since it sets plausibility."""

    bond: float = 1.0
    angle: float = 1.0
    ramachandran: float = 5.0
    vdw: float = 1.0
    electrostatic: float = 1.0
    hbond: float = 1.0
    solvation: float = 1.0
    contact: float = 1.0
    use_hbond: bool = True
    use_solvation: bool = True


@dataclass(frozen=True)
class EnergyComponents:
    """Weighted per-term energies (kcal/mol); total is their sum."""

    bond: float
    angle: float
    ramachandran: float
    vdw: float
    electrostatic: float
    hbond: float
    solvation: float
    total: float
    contact: float = 0.0

    def as_dict(self) -> Dict[str, float]:
        return {f.name: float(getattr(self, f.name)) for f in fields(self)}

    def check_finite(self) -> "EnergyComponents":
        for f in fields(self):
            value = getattr(self, f.name)
            if not np.isfinite(value):
                raise NumericalInstabilityError(f"energy term {f.name} is {value}", term=f.name)
        return self


@dataclass(frozen=True)
class EnergyModel:
    """
    Immutable scoring context for one sequence: geometry, weights, residue
    basin overrides and the template angle set that supplies omega and the
    free-vector layout.
    """

    sequence: str
    geometry: BackboneGeometry = DEFAULT_GEOMETRY
    weights: EnergyWeights = field(default_factory=EnergyWeights)
    template: Optional[DihedralAngles] = None
    rama_overrides: Optional[Mapping[str, BasinTable]] = None
    contacts: Tuple[ContactPrediction, ...] = ()
    fd_eps: float = FD_EPS

    def __post_init__(self):
        seq = validate_sequence(self.sequence)
        object.__setattr__(self, "sequence", seq)
        template = self.template
        if template is None:
            template = DihedralAngles.extended(len(seq))
        elif template.n_residues != len(seq):
            raise InputError(
                f"template has {template.n_residues} residues, sequence has {len(seq)}",
                field="template",
            )
        object.__setattr__(self, "template", template)
        object.__setattr__(self, "contacts", tuple(self.contacts))
        object.__setattr__(self, "_params", _ff.atom_parameters(len(seq)))

    @property
    def n_free(self) -> int:
        return self.template.n_free

    def angles(self, x: np.ndarray) -> DihedralAngles:
        return self.template.with_vector(x)

    def build(self, angles_or_x: Union[DihedralAngles, np.ndarray]) -> Conformation:
        angles = angles_or_x if isinstance(angles_or_x, DihedralAngles) else self.angles(angles_or_x)
        return build_backbone(self.sequence, angles, self.geometry)

    def evaluate(self, conformation: Conformation) -> EnergyComponents:
        """Score a conformation. Raises NumericalInstabilityError on a non-finite term."""
        w = self.weights
        coords = conformation.coords
        atoms = conformation.atoms
        seq = conformation.sequence

        e_bond = w.bond * _ff.bond_energy(coords, self.geometry)
        e_angle = w.angle * _ff.angle_energy(coords, self.geometry)
        e_rama = w.ramachandran * ramachandran_energy(seq, conformation.angles, self.rama_overrides)
        vdw, elec = _ff.nonbonded_energy(atoms, self._params)
        e_vdw = w.vdw * vdw
        e_elec = w.electrostatic * elec
        e_hb = w.hbond * hbond_energy(coords, seq) if w.use_hbond else 0.0
        e_solv = w.solvation * solvation_energy(conformation.ca, seq) if w.use_solvation else 0.0
        e_contact = w.contact * contact_restraint_energy(conformation.ca, self.contacts) if self.contacts else 0.0

        total = e_bond + e_angle + e_rama + e_vdw + e_elec + e_hb + e_solv + e_contact
        return EnergyComponents(
            bond=e_bond,
            angle=e_angle,
            ramachandran=e_rama,
            vdw=e_vdw,
            electrostatic=e_elec,
            hbond=e_hb,
            solvation=e_solv,
            total=total,
            contact=e_contact,
        ).check_finite()

    def components(self, x: np.ndarray) -> EnergyComponents:
        return self.evaluate(self.build(x))

    def total(self, x: np.ndarray) -> float:
        return self.components(x).total

    def gradient(self, x: np.ndarray, eps: Optional[float] = None) -> np.ndarray:
        """Central-difference dE/dx over the free angles; every probe rebuilds the chain."""
        h = self.fd_eps if eps is None else eps
        x = np.asarray(x, dtype=float)
        grad = np.zeros_like(x)
        for k in range(x.shape[0]):
            x_plus = x.copy()
            x_plus[k] += h
            x_minus = x.copy()
            x_minus[k] -= h
            grad[k] = (self.total(x_plus) - self.total(x_minus)) / (2.0 * h)
        if not np.all(np.isfinite(grad)):
            raise NumericalInstabilityError("non-finite energy gradient", term="gradient")
        return grad

    def value_and_gradient(self, x: np.ndarray) -> Tuple[float, np.ndarray]:
        return self.total(x), self.gradient(x)

    def ramachandran_gradient(self, x: np.ndarray) -> Tuple[float, np.ndarray]:
        """Weighted Ramachandran energy and its analytic gradient."""
        e, g = ramachandran_energy_and_gradient(self.sequence, self.angles(x), self.rama_overrides)
        return self.weights.ramachandran * e, self.weights.ramachandran * g

    def solvation_gradient(self, x: np.ndarray, eps: Optional[float] = None) -> Tuple[float, np.ndarray]:
        """Weighted solvation energy and its finite-difference gradient."""
        h = self.fd_eps if eps is None else eps
        x = np.asarray(x, dtype=float)
        w = self.weights.solvation if self.weights.use_solvation else 0.0

        def _solv(v: np.ndarray) -> float:
            return w * solvation_energy(self.build(v).ca, self.sequence)

        grad = np.zeros_like(x)
        if w != 0.0:
            for k in range(x.shape[0]):
                x_plus = x.copy()
                x_plus[k] += h
                x_minus = x.copy()
                x_minus[k] -= h
                grad[k] = (_solv(x_plus) - _solv(x_minus)) / (2.0 * h)
        return _solv(x), grad


def evaluate_energy(conformation: Conformation, model: Optional[EnergyModel] = None) -> EnergyComponents:
    """Score a conformation with default weights unless a model is given."""
    if model is None:
        model = EnergyModel(conformation.sequence, template=conformation.angles)
    return model.evaluate(conformation)
