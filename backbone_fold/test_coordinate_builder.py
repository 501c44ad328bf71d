"""
Unit tests for the dihedral coordinate builder: purity, terminal-angle safety,
fixed bond geometry, dihedral round trip and input validation.

Run: python -m backbone_fold.test_coordinate_builder
Or: pytest backbone_fold/test_coordinate_builder.py -v
"""

from __future__ import annotations

import numpy as np
import pytest

from .coordinate_builder import (
    bond_angles,
    bond_lengths,
    build_backbone,
    dihedral,
    measure_dihedrals,
)
from .errors import InputError
from .peptide_backbone import DEFAULT_GEOMETRY, DihedralAngles, parse_fasta, validate_sequence


def _random_angles(n: int, seed: int) -> DihedralAngles:
    rng = np.random.default_rng(seed)
    return DihedralAngles.from_arrays(
        rng.uniform(-np.pi + 1e-9, np.pi, n),
        rng.uniform(-np.pi + 1e-9, np.pi, n),
    )


def test_rebuild_is_identical():
    """Same sequence and angles twice: identical coordinates."""
    angles = _random_angles(12, 0)
    a = build_backbone("ACDEFGHIKLMN", angles)
    b = build_backbone("ACDEFGHIKLMN", angles)
    np.testing.assert_array_equal(a.coords, b.coords)
    assert a.coords.shape == (12, 4, 3)


def test_coords_are_read_only():
    conf = build_backbone("AAA", DihedralAngles.extended(3))
    with pytest.raises(ValueError):
        conf.coords[0, 0, 0] = 1.0


def test_undefined_terminals_give_finite_coordinates():
    """NaN terminal phi/psi never leak into any position."""
    for seed in range(5):
        angles = _random_angles(7, seed)
        assert np.isnan(angles.phi[0]) and np.isnan(angles.psi[-1]) and np.isnan(angles.omega[0])
        conf = build_backbone("GAVLIPS", angles)
        assert np.all(np.isfinite(conf.coords))


def test_single_residue():
    conf = build_backbone("G", DihedralAngles.from_arrays([np.nan], [np.nan]))
    assert conf.coords.shape == (1, 4, 3)
    assert np.all(np.isfinite(conf.coords))


def test_bond_lengths_fixed_for_any_angles():
    """Every bond matches the geometry constants, including angles at +/-pi."""
    expected = DEFAULT_GEOMETRY.bond_lengths()
    extremes = [np.pi, -np.pi + 1e-12, 0.0, np.pi - 1e-9]
    cases = [_random_angles(10, s) for s in range(4)]
    cases += [DihedralAngles.from_arrays(np.full(10, v), np.full(10, v)) for v in extremes]
    for angles in cases:
        conf = build_backbone("ACDEFGHIKL", angles)
        for key, values in bond_lengths(conf).items():
            np.testing.assert_allclose(values, expected[key], atol=1e-9, err_msg=key)


def test_bond_angles_fixed():
    expected = DEFAULT_GEOMETRY.bond_angles_rad()
    conf = build_backbone("ACDEFGHIKL", _random_angles(10, 11))
    for key, values in bond_angles(conf).items():
        np.testing.assert_allclose(values, expected[key], atol=1e-9, err_msg=key)


def test_measured_dihedrals_match_input():
    angles = _random_angles(9, 3)
    conf = build_backbone("MKFLVAGSE", angles)
    measured = measure_dihedrals(conf)
    for name in ("phi", "psi", "omega"):
        want = getattr(angles, name)
        got = getattr(measured, name)
        mask = ~np.isnan(want)
        diff = np.angle(np.exp(1j * (got[mask] - want[mask])))
        np.testing.assert_allclose(diff, 0.0, atol=1e-9, err_msg=name)


def test_dihedral_sign_convention():
    """IUPAC: +90 degrees when the far bond is rotated right-handed about the axis."""
    p0 = np.array([0.0, 1.0, 0.0])
    p1 = np.zeros(3)
    p2 = np.array([1.0, 0.0, 0.0])
    p3 = np.array([1.0, 0.0, 1.0])
    np.testing.assert_allclose(dihedral(p0, p1, p2, p3), np.pi / 2, atol=1e-12)


def test_ideal_helix_rise():
    """Alpha helix: ~1.5 A rise per residue along the axis (CA i to i+4 ~ 6.2 A)."""
    conf = build_backbone("A" * 12, DihedralAngles.uniform(12, -57.0, -47.0))
    d = np.linalg.norm(conf.ca[4:] - conf.ca[:-4], axis=1)
    assert np.all((d > 5.5) & (d < 6.8))


def test_length_mismatch_raises():
    with pytest.raises(InputError) as exc:
        build_backbone("AAAA", DihedralAngles.extended(3))
    assert exc.value.field in ("phi", "psi", "omega")


def test_out_of_range_angle_raises():
    phi = np.array([np.nan, 4.0, 0.0])
    psi = np.array([0.0, 0.0, np.nan])
    with pytest.raises(InputError):
        build_backbone("AAA", DihedralAngles(phi=phi, psi=psi, omega=np.array([np.nan, np.pi, np.pi])))


def test_bad_sequence_raises():
    with pytest.raises(InputError):
        build_backbone("", DihedralAngles.extended(0))
    with pytest.raises(InputError):
        validate_sequence("AXZ")


def test_parse_fasta_first_record():
    assert parse_fasta(">one\nACD\nEF\n>two\nGG\n") == "ACDEF"


def test_vector_roundtrip_layout():
    angles = _random_angles(6, 5)
    x = angles.to_vector()
    assert x.shape == (10,)
    np.testing.assert_allclose(x[:5], angles.phi[1:])
    np.testing.assert_allclose(x[5:], angles.psi[:-1])
    with pytest.raises(InputError):
        angles.with_vector(np.zeros(3))


if __name__ == "__main__":
    test_rebuild_is_identical()
    test_coords_are_read_only()
    test_undefined_terminals_give_finite_coordinates()
    test_single_residue()
    test_bond_lengths_fixed_for_any_angles()
    test_bond_angles_fixed()
    test_measured_dihedrals_match_input()
    test_dihedral_sign_convention()
    test_ideal_helix_rise()
    test_length_mismatch_raises()
    test_out_of_range_angle_raises()
    test_bad_sequence_raises()
    test_parse_fasta_first_record()
    test_vector_roundtrip_layout()
    print("All tests passed.")
