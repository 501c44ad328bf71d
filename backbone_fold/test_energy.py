"""
Unit tests for the potential energy evaluator: Ramachandran basins, finite
clash energies, gradient consistency and error reporting.

Run: python -m backbone_fold.test_energy
Or: pytest backbone_fold/test_energy.py -v
"""

from __future__ import annotations

import numpy as np
import pytest

from .coordinate_builder import build_backbone
from .energy import EnergyComponents, EnergyModel, EnergyWeights, evaluate_energy
from .errors import InputError, NumericalInstabilityError
from .force_field import clash_count, coulomb, lennard_jones, nonbonded_energy, switch_function
from .hydrogen_bonds import count_hbonds, find_hbonds
from .peptide_backbone import DihedralAngles, wrap_angle
from .ramachandran import (
    Basin,
    BasinTable,
    allowed_fraction,
    classify_secondary_structure,
    is_allowed,
    nearest_allowed_basin,
    project_to_allowed,
    ramachandran_energy,
    ramachandran_energy_and_gradient,
    residue_penalty,
)
from .solvation import exposure, solvation_energy


def _tripeptide(phi_deg: float, psi_deg: float) -> DihedralAngles:
    return DihedralAngles.from_degrees([0.0, phi_deg, 0.0], [0.0, psi_deg, 0.0])


def test_helix_residue_near_zero_penalty():
    """Interior residue at (-60, -45): near-zero backbone-conformational penalty."""
    conf = build_backbone("AAA", _tripeptide(-60.0, -45.0))
    comps = evaluate_energy(conf)
    assert comps.ramachandran < 0.1


def test_left_handed_region_penalized():
    """Non-glycine at (+60, +45) scores several times the helix penalty."""
    helix = evaluate_energy(build_backbone("AAA", _tripeptide(-60.0, -45.0)))
    left = evaluate_energy(build_backbone("AAA", _tripeptide(60.0, 45.0)))
    assert left.ramachandran > 5.0 * helix.ramachandran + 5.0
    # Glycine is comfortable there
    gly = evaluate_energy(build_backbone("AGA", _tripeptide(60.0, 45.0)))
    assert gly.ramachandran < 0.2 * left.ramachandran


def test_residue_penalty_bounded_by_cap():
    for phi in np.linspace(-np.pi + 0.01, np.pi, 13):
        for psi in np.linspace(-np.pi + 0.01, np.pi, 13):
            p = residue_penalty(phi, psi, "A")
            assert 0.0 <= p <= 15.0 + 1e-9


def test_components_sum_to_total():
    model = EnergyModel("ACDEFGHIK")
    x = DihedralAngles.extended(9).to_vector()
    c = model.components(x)
    parts = c.bond + c.angle + c.ramachandran + c.vdw + c.electrostatic + c.hbond + c.solvation + c.contact
    np.testing.assert_allclose(c.total, parts, rtol=1e-12)
    assert c.contact == 0.0
    assert set(c.as_dict()) == {
        "bond", "angle", "ramachandran", "vdw", "electrostatic", "hbond", "solvation", "total", "contact",
    }


def test_builder_output_has_zero_bond_and_angle_strain():
    comps = evaluate_energy(build_backbone("ACDEF", DihedralAngles.uniform(5, -60.0, -45.0)))
    assert abs(comps.bond) < 1e-12
    assert abs(comps.angle) < 1e-12


def test_clashing_structure_finite():
    """All-zero torsions fold the chain onto itself; every term stays finite."""
    clash = evaluate_energy(build_backbone("A" * 10, DihedralAngles.uniform(10, 0.0, 0.0)))
    for value in clash.as_dict().values():
        assert np.isfinite(value)


def test_clash_energy_rises_as_atoms_approach():
    """Two like-charged atoms five residues apart pushed together: finite, strictly rising."""
    params = {
        "eps": np.array([0.1, 0.1]),
        "rhalf": np.array([1.9, 1.9]),
        "charge": np.array([0.3, 0.3]),
        "residue": np.array([0, 5]),
    }
    vdw, elec = [], []
    for r in np.linspace(3.5, 0.0, 50):
        atoms = np.array([[0.0, 0.0, 0.0], [r, 0.0, 0.0]])
        v, e = nonbonded_energy(atoms, params)
        vdw.append(v)
        elec.append(e)
    assert np.all(np.isfinite(vdw)) and np.all(np.isfinite(elec))
    assert np.all(np.diff(vdw) > 0.0)
    assert np.all(np.diff(elec) > 0.0)
    assert vdw[-1] > 100.0


def test_clash_count_skips_neighbors():
    atoms = np.array([[0.0, 0.0, 0.0], [2.0, 0.0, 0.0], [0.0, 2.0, 0.0]])
    assert clash_count(atoms, np.array([0, 1, 5])) == 1
    assert clash_count(atoms, np.array([0, 0, 1])) == 0
    assert clash_count(np.array([[0.0, 0.0, 0.0], [3.0, 0.0, 0.0]]), np.array([0, 5])) == 0


def test_lennard_jones_rises_as_distance_shrinks():
    rmin = 3.5
    r = np.linspace(0.0, 0.95 * rmin, 200)
    e = lennard_jones(r, np.full_like(r, 0.1), np.full_like(r, rmin))
    assert np.all(np.isfinite(e))
    assert np.all(np.diff(e) < 0.0), "energy must fall monotonically as r grows inside the wall"
    assert e[0] > 100.0


def test_coulomb_finite_at_contact():
    assert np.isfinite(coulomb(np.array([0.0]), np.array([-0.25]))[0])


def test_switch_function_limits():
    r = np.array([1.0, 8.0, 9.0, 10.0, 11.0])
    s = switch_function(r, 8.0, 10.0)
    np.testing.assert_allclose(s[[0, 1]], 1.0)
    np.testing.assert_allclose(s[[3, 4]], 0.0, atol=1e-12)
    assert 0.0 < s[2] < 1.0


def test_nonbonded_excludes_neighbors():
    """Two residues only: every pair is within one residue, so no nonbonded energy."""
    conf = build_backbone("AA", DihedralAngles.extended(2))
    model = EnergyModel("AA")
    assert nonbonded_energy(conf.atoms, model._params) == (0.0, 0.0)


def test_rama_gradient_matches_finite_difference():
    """Analytic Ramachandran gradient agrees with central differences."""
    seq = "AGPLVKE"
    rng = np.random.default_rng(42)
    h = 1e-6
    for _ in range(5):
        angles = DihedralAngles.from_arrays(rng.uniform(-3.0, 3.0, 7), rng.uniform(-3.0, 3.0, 7))
        e, g = ramachandran_energy_and_gradient(seq, angles)
        np.testing.assert_allclose(e, ramachandran_energy(seq, angles), rtol=1e-12)
        x = angles.to_vector()
        fd = np.zeros_like(x)
        for k in range(x.size):
            xp, xm = x.copy(), x.copy()
            xp[k] += h
            xm[k] -= h
            fd[k] = (
                ramachandran_energy(seq, angles.with_vector(xp)) - ramachandran_energy(seq, angles.with_vector(xm))
            ) / (2 * h)
        np.testing.assert_allclose(g, fd, rtol=1e-4, atol=1e-5)


def test_model_gradient_directional_derivative():
    """g . d matches a central difference of E along a random direction."""
    model = EnergyModel("ACDEG")
    rng = np.random.default_rng(7)
    x = DihedralAngles.uniform(5, -70.0, 130.0).to_vector() + rng.normal(0.0, 0.2, 8)
    g = model.gradient(x)
    d = rng.normal(size=x.size)
    d /= np.linalg.norm(d)
    h = 1e-5
    slope = (model.total(x + h * d) - model.total(x - h * d)) / (2 * h)
    np.testing.assert_allclose(np.dot(g, d), slope, rtol=1e-3, atol=1e-3)


def test_weighted_rama_gradient_uses_weight():
    model = EnergyModel("AAAA", weights=EnergyWeights(ramachandran=2.0))
    x = DihedralAngles.uniform(4, 60.0, 45.0).to_vector()
    e, g = model.ramachandran_gradient(x)
    e1, g1 = ramachandran_energy_and_gradient("AAAA", model.angles(x))
    np.testing.assert_allclose(e, 2.0 * e1)
    np.testing.assert_allclose(g, 2.0 * g1)


def test_projection_moves_residues_into_allowed_region():
    seq = "AAAAAA"
    angles = DihedralAngles.uniform(6, 100.0, -100.0)
    assert allowed_fraction(seq, angles) == 0.0
    projected, moved = project_to_allowed(seq, angles)
    assert allowed_fraction(seq, projected) == 1.0
    np.testing.assert_array_equal(moved, [1, 2, 3, 4])
    # Allowed residues are left alone
    helix = DihedralAngles.uniform(6, -60.0, -45.0)
    again, moved2 = project_to_allowed(seq, helix)
    assert moved2.size == 0
    np.testing.assert_allclose(again.to_vector(), helix.to_vector())


def test_is_allowed_respects_residue_tables():
    phi, psi = np.deg2rad(60.0), np.deg2rad(45.0)
    assert not is_allowed(phi, psi, "A")
    assert is_allowed(phi, psi, "G")


def test_classify_secondary_structure():
    helix = DihedralAngles.uniform(6, -60.0, -45.0)
    strand = DihedralAngles.uniform(6, -120.0, 120.0)
    assert classify_secondary_structure(helix)[1:-1] == "HHHH"
    assert classify_secondary_structure(strand)[1:-1] == "EEEE"


def test_helix_forms_backbone_hbonds():
    conf = build_backbone("A" * 12, DihedralAngles.uniform(12, -57.0, -47.0))
    bonds = find_hbonds(conf.coords, conf.sequence)
    assert count_hbonds(conf.coords, conf.sequence, min_strength=0.1) >= 4
    # i -> i-4 pattern
    assert any(d - a == 4 for d, a, _ in bonds)
    ext = build_backbone("A" * 12, DihedralAngles.extended(12))
    assert count_hbonds(ext.coords, ext.sequence, min_strength=0.1) == 0


def test_compact_chain_buries_residues():
    helix = build_backbone("L" * 16, DihedralAngles.uniform(16, -60.0, -45.0))
    ext = build_backbone("L" * 16, DihedralAngles.extended(16))
    assert np.mean(exposure(helix.ca)) < np.mean(exposure(ext.ca))
    assert solvation_energy(helix.ca, helix.sequence) < solvation_energy(ext.ca, ext.sequence)


def test_non_finite_component_raises():
    with pytest.raises(NumericalInstabilityError) as exc:
        EnergyComponents(1.0, 0.0, 0.0, float("nan"), 0.0, 0.0, 0.0, float("nan")).check_finite()
    assert exc.value.term == "vdw"


def test_model_rejects_mismatched_template():
    with pytest.raises(InputError):
        EnergyModel("AAAA", template=DihedralAngles.extended(3))


def test_wrap_angle_just_above_pi():
    just_above = np.nextafter(np.pi, 4.0)
    w = wrap_angle(just_above)
    assert -np.pi < w <= np.pi
    arr = wrap_angle(np.array([just_above, -np.pi, np.nan]))
    assert np.all(arr[:2] > -np.pi) and np.all(arr[:2] <= np.pi)
    assert np.isnan(arr[2])
    assert isinstance(wrap_angle(0.5), float)

    model = EnergyModel("AAAA")
    x = DihedralAngles.extended(4).to_vector()
    x[0] = just_above
    assert np.isfinite(model.total(x))


def test_basin_table_without_allowed_basin_raises():
    only_left = BasinTable(basins=(Basin("left", 60.0, 45.0, 25.0, 25.0, offset=0.6),), cap=15.0)
    with pytest.raises(InputError) as exc:
        nearest_allowed_basin(-60.0, -45.0, "A", {"A": only_left})
    assert exc.value.field == "rama_overrides"


if __name__ == "__main__":
    test_helix_residue_near_zero_penalty()
    test_left_handed_region_penalized()
    test_residue_penalty_bounded_by_cap()
    test_components_sum_to_total()
    test_builder_output_has_zero_bond_and_angle_strain()
    test_clashing_structure_finite()
    test_clash_energy_rises_as_atoms_approach()
    test_clash_count_skips_neighbors()
    test_lennard_jones_rises_as_distance_shrinks()
    test_coulomb_finite_at_contact()
    test_switch_function_limits()
    test_nonbonded_excludes_neighbors()
    test_rama_gradient_matches_finite_difference()
    test_model_gradient_directional_derivative()
    test_weighted_rama_gradient_uses_weight()
    test_projection_moves_residues_into_allowed_region()
    test_is_allowed_respects_residue_tables()
    test_classify_secondary_structure()
    test_helix_forms_backbone_hbonds()
    test_compact_chain_buries_residues()
    test_non_finite_component_raises()
    test_model_rejects_mismatched_template()
    test_wrap_angle_just_above_pi()
    test_basin_table_without_allowed_basin_raises()
    print("All tests passed.")
