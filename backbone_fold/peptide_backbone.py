"""
Peptide backbone geometry, residue alphabet, and the dihedral angle set.

Bond lengths and bond angles are literature constants held in an immutable
BackboneGeometry that is passed explicitly to the builder and the evaluator.
Only dihedral angles vary during folding:

- phi[i]   rotation about N(i)-CA(i); undefined for residue 0
- psi[i]   rotation about CA(i)-C(i); undefined for the last residue
- omega[i] rotation about C(i-1)-N(i), the peptide bond preceding residue i;
           undefined for residue 0, trans (180 deg) by default

Undefined angles are stored as NaN, never as 0.

MIT License. Python 3.10+.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np

from .errors import InputError

UNDEFINED = float("nan")

AA_1to3 = {
    "A": "ALA", "R": "ARG", "N": "ASN", "D": "ASP", "C": "CYS", "Q": "GLN",
    "E": "GLU", "G": "GLY", "H": "HIS", "I": "ILE", "L": "LEU", "K": "LYS",
    "M": "MET", "F": "PHE", "P": "PRO", "S": "SER", "T": "THR", "W": "TRP",
    "Y": "TYR", "V": "VAL",
}
AA_3to1 = {v: k for k, v in AA_1to3.items()}

# Backbone atom order within a residue
ATOM_NAMES: Tuple[str, ...] = ("N", "CA", "C", "O")
ATOM_ELEMENTS: Tuple[str, ...] = ("N", "C", "C", "O")

# Preferred basin centers (degrees)
PHI_ALPHA_DEG = -60.0
PSI_ALPHA_DEG = -45.0
PHI_BETA_DEG = -120.0
PSI_BETA_DEG = 120.0
OMEGA_TRANS_DEG = 180.0


@dataclass(frozen=True)
class BackboneGeometry:
    """Fixed bond lengths (Angstrom) and bond angles (degrees)."""

    n_ca: float = 1.458
    ca_c: float = 1.523
    c_n: float = 1.329
    c_o: float = 1.231
    angle_n_ca_c: float = 111.0
    angle_ca_c_n: float = 117.0
    angle_c_n_ca: float = 121.0
    angle_ca_c_o: float = 120.5

    def bond_lengths(self) -> Dict[str, float]:
        return {"N_CA": self.n_ca, "CA_C": self.ca_c, "C_N": self.c_n, "C_O": self.c_o}

    def bond_angles_rad(self) -> Dict[str, float]:
        return {
            "N_CA_C": np.deg2rad(self.angle_n_ca_c),
            "CA_C_N": np.deg2rad(self.angle_ca_c_n),
            "C_N_CA": np.deg2rad(self.angle_c_n_ca),
            "CA_C_O": np.deg2rad(self.angle_ca_c_o),
        }


DEFAULT_GEOMETRY = BackboneGeometry()


def validate_sequence(sequence: str) -> str:
    """Return the upper-cased one-letter sequence or raise InputError."""
    if not isinstance(sequence, str):
        raise InputError("sequence must be a string of one-letter residue codes", field="sequence")
    seq = sequence.strip().upper()
    if not seq:
        raise InputError("sequence is empty", field="sequence")
    bad = sorted({c for c in seq if c not in AA_1to3})
    if bad:
        raise InputError(f"unknown residue tokens {''.join(bad)!r}", field="sequence")
    return seq


def parse_fasta(fasta: str) -> str:
    """Extract a single sequence from FASTA text (first record only)."""
    seq = []
    seen_header = False
    for line in fasta.strip().splitlines():
        line = line.strip()
        if not line:
            continue
        if line.startswith(">"):
            if seen_header and seq:
                break
            seen_header = True
            continue
        seq.append(line)
    return validate_sequence("".join(seq))


def wrap_angle(x):
    """Wrap radians into (-pi, pi]. Works on scalars and arrays; NaN passes through."""
    w = np.pi - np.mod(np.pi - np.asarray(x, dtype=float), 2.0 * np.pi)
    # np.mod can round up to 2*pi just above pi, landing on the excluded -pi
    w = np.where(w <= -np.pi, np.pi, w)
    return w if w.ndim else w[()]


def angle_difference(a, b):
    """Signed circular difference a - b in (-pi, pi]."""
    return wrap_angle(np.asarray(a, dtype=float) - np.asarray(b, dtype=float))


@dataclass(frozen=True)
class DihedralAngles:
    """
    Per-residue (phi, psi, omega) in radians with NaN marking undefined entries.

    The free variables for optimization are the defined phi (residues 1..n-1)
    followed by the defined psi (residues 0..n-2); omega stays fixed.
    """

    phi: np.ndarray
    psi: np.ndarray
    omega: np.ndarray

    def __post_init__(self):
        for name in ("phi", "psi", "omega"):
            arr = np.array(getattr(self, name), dtype=float).ravel()
            arr.setflags(write=False)
            object.__setattr__(self, name, arr)

    @property
    def n_residues(self) -> int:
        return int(self.phi.shape[0])

    @classmethod
    def from_arrays(
        cls,
        phi,
        psi,
        omega=None,
    ) -> "DihedralAngles":
        """Build from radians, forcing terminal entries to the undefined sentinel."""
        phi = np.array(phi, dtype=float).ravel()
        psi = np.array(psi, dtype=float).ravel()
        n = phi.shape[0]
        if psi.shape[0] != n:
            raise InputError(f"phi has {n} entries but psi has {psi.shape[0]}", field="psi")
        if omega is None:
            omega = np.full(n, np.pi)
        omega = np.array(omega, dtype=float).ravel()
        if omega.shape[0] != n:
            raise InputError(f"phi has {n} entries but omega has {omega.shape[0]}", field="omega")
        if n > 0:
            phi[0] = UNDEFINED
            psi[-1] = UNDEFINED
            omega[0] = UNDEFINED
        return cls(phi=phi, psi=psi, omega=omega)

    @classmethod
    def from_degrees(cls, phi, psi, omega=None) -> "DihedralAngles":
        phi = np.deg2rad(np.array(phi, dtype=float))
        psi = np.deg2rad(np.array(psi, dtype=float))
        om = None if omega is None else np.deg2rad(np.array(omega, dtype=float))
        return cls.from_arrays(wrap_angle(phi), wrap_angle(psi), None if om is None else wrap_angle(om))

    @classmethod
    def uniform(cls, n: int, phi_deg: float, psi_deg: float) -> "DihedralAngles":
        """Every residue at the same (phi, psi), e.g. an ideal helix or strand."""
        return cls.from_degrees(np.full(n, phi_deg), np.full(n, psi_deg))

    @classmethod
    def extended(cls, n: int) -> "DihedralAngles":
        return cls.uniform(n, PHI_BETA_DEG, PSI_BETA_DEG)

    @property
    def n_free(self) -> int:
        return max(0, 2 * (self.n_residues - 1))

    def to_vector(self) -> np.ndarray:
        if self.n_residues < 2:
            return np.zeros(0)
        return np.concatenate([self.phi[1:], self.psi[:-1]]).astype(float)

    def with_vector(self, x: np.ndarray) -> "DihedralAngles":
        """New angle set with the free variables replaced by x (wrapped)."""
        x = np.asarray(x, dtype=float).ravel()
        if x.shape[0] != self.n_free:
            raise InputError(f"expected {self.n_free} free angles, got {x.shape[0]}", field="angles")
        n = self.n_residues
        phi = np.array(self.phi)
        psi = np.array(self.psi)
        if n >= 2:
            x = wrap_angle(x)
            phi[1:] = x[: n - 1]
            psi[:-1] = x[n - 1:]
        return DihedralAngles(phi=phi, psi=psi, omega=np.array(self.omega))

    def phi_psi_interior(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """(indices, phi, psi) for residues with both angles defined."""
        mask = ~(np.isnan(self.phi) | np.isnan(self.psi))
        idx = np.nonzero(mask)[0]
        return idx, self.phi[idx], self.psi[idx]

    def degrees(self) -> Dict[str, np.ndarray]:
        return {
            "phi": np.rad2deg(self.phi),
            "psi": np.rad2deg(self.psi),
            "omega": np.rad2deg(self.omega),
        }


def vector_index_map(n_residues: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Position of each residue's phi and psi inside the free-angle vector.
    Entries are -1 where the angle is not free.
    """
    phi_idx = np.full(n_residues, -1, dtype=int)
    psi_idx = np.full(n_residues, -1, dtype=int)
    if n_residues >= 2:
        phi_idx[1:] = np.arange(n_residues - 1)
        psi_idx[:-1] = np.arange(n_residues - 1, 2 * (n_residues - 1))
    return phi_idx, psi_idx


def backbone_geometry(geometry: Optional[BackboneGeometry] = None) -> Dict[str, float]:
    """Flat summary of bond lengths (Angstrom), angles and preferred basins (degrees)."""
    g = geometry or DEFAULT_GEOMETRY
    return {
        **g.bond_lengths(),
        "N_CA_C_deg": g.angle_n_ca_c,
        "CA_C_N_deg": g.angle_ca_c_n,
        "C_N_CA_deg": g.angle_c_n_ca,
        "CA_C_O_deg": g.angle_ca_c_o,
        "omega_deg": OMEGA_TRANS_DEG,
        "phi_alpha_deg": PHI_ALPHA_DEG,
        "psi_alpha_deg": PSI_ALPHA_DEG,
        "phi_beta_deg": PHI_BETA_DEG,
        "psi_beta_deg": PSI_BETA_DEG,
    }
