"""
Dihedral coordinate builder: sequence + (phi, psi, omega) -> N, CA, C, O positions.

Turtle-style forward kinematics. A running orientation R (columns: heading,
local y, local z) and a cursor walk the chain N0, CA0, C0, N1, ... At every
atom the frame is rolled about the incoming bond by that bond's torsion, bent
about the local z axis by (pi - bond angle), and advanced by the bond length.
With this ordering the IUPAC dihedral of the four most recent atoms equals the
applied torsion exactly, and bond lengths/angles are exact by construction.

An undefined torsion (NaN, or any terminal position) skips the roll entirely.
The frame is never multiplied by a rotation built from NaN.

MIT License. Python 3.10+. Numpy only.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

import numpy as np

from .errors import InputError
from .peptide_backbone import (  # noqa: F401 (wrap_angle, angle_difference re-exported)
    ATOM_NAMES,
    DEFAULT_GEOMETRY,
    BackboneGeometry,
    DihedralAngles,
    angle_difference,
    validate_sequence,
    wrap_angle,
)

# Tolerance on the upper bound of (-pi, pi]
_PI_TOL = 1e-12


@dataclass(frozen=True)
class Conformation:
    """Backbone coordinates derived from a sequence and its angle set. coords: (n, 4, 3)."""

    sequence: str
    angles: DihedralAngles
    coords: np.ndarray

    def __post_init__(self):
        coords = np.array(self.coords, dtype=float)
        coords.setflags(write=False)
        object.__setattr__(self, "coords", coords)

    @property
    def n_residues(self) -> int:
        return len(self.sequence)

    @property
    def atoms(self) -> np.ndarray:
        """All backbone atoms as (4n, 3), order N, CA, C, O per residue."""
        return self.coords.reshape(-1, 3)

    @property
    def ca(self) -> np.ndarray:
        return self.coords[:, 1, :]

    @property
    def residue_index(self) -> np.ndarray:
        """Residue number for each row of `atoms`."""
        return np.repeat(np.arange(self.n_residues), len(ATOM_NAMES))

    def atom(self, name: str) -> np.ndarray:
        return self.coords[:, ATOM_NAMES.index(name), :]


def _roll(R: np.ndarray, tau: float) -> np.ndarray:
    """Rotate the frame about its own heading (local x)."""
    c, s = np.cos(tau), np.sin(tau)
    y = R[:, 1].copy()
    z = R[:, 2].copy()
    out = R.copy()
    out[:, 1] = c * y + s * z
    out[:, 2] = -s * y + c * z
    return out


def _bend(R: np.ndarray, alpha: float) -> np.ndarray:
    """Rotate the frame about its local z, turning the heading toward local y."""
    c, s = np.cos(alpha), np.sin(alpha)
    x = R[:, 0].copy()
    y = R[:, 1].copy()
    out = R.copy()
    out[:, 0] = c * x + s * y
    out[:, 1] = -s * x + c * y
    return out


def _is_defined(value: float) -> bool:
    return not np.isnan(value)


def validate_angles(sequence: str, angles: DihedralAngles) -> None:
    """Reject length mismatch and defined angles outside (-pi, pi]."""
    n = len(sequence)
    for name in ("phi", "psi", "omega"):
        arr = getattr(angles, name)
        if arr.shape[0] != n:
            raise InputError(
                f"sequence has {n} residues but {name} has {arr.shape[0]} entries", field=name
            )
        defined = arr[~np.isnan(arr)]
        if defined.size and not np.all(np.isfinite(defined)):
            raise InputError(f"{name} contains infinite values", field=name)
        bad = (defined <= -np.pi) | (defined > np.pi + _PI_TOL)
        if np.any(bad):
            raise InputError(
                f"{name} has {int(bad.sum())} defined angle(s) outside (-pi, pi]", field=name
            )


def build_backbone(
    sequence: str,
    angles: DihedralAngles,
    geometry: Optional[BackboneGeometry] = None,
) -> Conformation:
    """
    Place N, CA, C, O for every residue from fixed geometry and dihedral angles.

    Pure function of its inputs. Raises InputError on a malformed sequence,
    mismatched array lengths or an out-of-range defined angle.
    """
    seq = validate_sequence(sequence)
    validate_angles(seq, angles)
    g = geometry or DEFAULT_GEOMETRY
    n = len(seq)

    bend_n_ca_c = np.pi - np.deg2rad(g.angle_n_ca_c)
    bend_ca_c_n = np.pi - np.deg2rad(g.angle_ca_c_n)
    bend_c_n_ca = np.pi - np.deg2rad(g.angle_c_n_ca)
    bend_ca_c_o = np.pi - np.deg2rad(g.angle_ca_c_o)

    coords = np.zeros((n, 4, 3))
    R = np.eye(3)
    pos = np.zeros(3)
    for i in range(n):
        # N(i)
        if i > 0:
            R = _bend(R, bend_ca_c_n)
            pos = pos + g.c_n * R[:, 0]
        coords[i, 0] = pos

        # CA(i): torsion about C(i-1)-N(i) is omega
        if i > 0:
            omega = angles.omega[i]
            if _is_defined(omega):
                R = _roll(R, omega)
            R = _bend(R, bend_c_n_ca)
        pos = pos + g.n_ca * R[:, 0]
        coords[i, 1] = pos

        # C(i): torsion about N(i)-CA(i) is phi
        if i > 0:
            phi = angles.phi[i]
            if _is_defined(phi):
                R = _roll(R, phi)
        R = _bend(R, bend_n_ca_c)
        pos = pos + g.ca_c * R[:, 0]
        coords[i, 2] = pos

        # psi rolls about CA(i)-C(i); O sits in the plane, trans to N(i+1)
        if i < n - 1:
            psi = angles.psi[i]
            if _is_defined(psi):
                R = _roll(R, psi)
        R_o = _bend(R, -bend_ca_c_o)
        coords[i, 3] = pos + g.c_o * R_o[:, 0]

    return Conformation(sequence=seq, angles=angles, coords=coords)


def dihedral(p0: np.ndarray, p1: np.ndarray, p2: np.ndarray, p3: np.ndarray) -> float:
    """IUPAC dihedral p0-p1-p2-p3 in radians, in (-pi, pi]."""
    b0 = p1 - p0
    b1 = p2 - p1
    b2 = p3 - p2
    n1 = np.cross(b0, b1)
    n2 = np.cross(b1, b2)
    b1_hat = b1 / (np.linalg.norm(b1) + 1e-300)
    y = float(np.dot(b1_hat, np.cross(n1, n2)))
    x = float(np.dot(n1, n2))
    return float(np.arctan2(y, x))


def bond_angle(p0: np.ndarray, p1: np.ndarray, p2: np.ndarray) -> float:
    """Angle p0-p1-p2 in radians."""
    u = p0 - p1
    v = p2 - p1
    c = np.dot(u, v) / (np.linalg.norm(u) * np.linalg.norm(v) + 1e-300)
    return float(np.arccos(np.clip(c, -1.0, 1.0)))


def measure_dihedrals(conformation: Conformation) -> DihedralAngles:
    """Recover (phi, psi, omega) from coordinates; termini come back undefined."""
    x = conformation.coords
    n = x.shape[0]
    phi = np.full(n, np.nan)
    psi = np.full(n, np.nan)
    omega = np.full(n, np.nan)
    for i in range(n):
        if i > 0:
            phi[i] = dihedral(x[i - 1, 2], x[i, 0], x[i, 1], x[i, 2])
            omega[i] = dihedral(x[i - 1, 1], x[i - 1, 2], x[i, 0], x[i, 1])
        if i < n - 1:
            psi[i] = dihedral(x[i, 0], x[i, 1], x[i, 2], x[i + 1, 0])
    return DihedralAngles(phi=phi, psi=psi, omega=omega)


def bond_lengths(conformation: Conformation) -> Dict[str, np.ndarray]:
    """Backbone bond lengths keyed like BackboneGeometry.bond_lengths()."""
    x = conformation.coords
    return {
        "N_CA": np.linalg.norm(x[:, 1] - x[:, 0], axis=1),
        "CA_C": np.linalg.norm(x[:, 2] - x[:, 1], axis=1),
        "C_O": np.linalg.norm(x[:, 3] - x[:, 2], axis=1),
        "C_N": np.linalg.norm(x[1:, 0] - x[:-1, 2], axis=1),
    }


def _angles_between(a: np.ndarray, b: np.ndarray, c: np.ndarray) -> np.ndarray:
    u = a - b
    v = c - b
    cos = np.sum(u * v, axis=1) / (np.linalg.norm(u, axis=1) * np.linalg.norm(v, axis=1) + 1e-300)
    return np.arccos(np.clip(cos, -1.0, 1.0))


def bond_angles(conformation: Conformation) -> Dict[str, np.ndarray]:
    """Backbone bond angles (radians) keyed like BackboneGeometry.bond_angles_rad()."""
    x = conformation.coords
    return {
        "N_CA_C": _angles_between(x[:, 0], x[:, 1], x[:, 2]),
        "CA_C_O": _angles_between(x[:, 1], x[:, 2], x[:, 3]),
        "CA_C_N": _angles_between(x[:-1, 1], x[:-1, 2], x[1:, 0]),
        "C_N_CA": _angles_between(x[:-1, 2], x[1:, 0], x[1:, 1]),
    }
