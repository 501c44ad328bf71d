"""
Unit tests for single-sequence contact prediction, the CA restraint term and
the contact summaries.

Run: python -m backbone_fold.test_contact_map
Or: pytest backbone_fold/test_contact_map.py -v
"""

from __future__ import annotations

import numpy as np
import pytest

from .contact_map import (
    ContactPrediction,
    contact_coverage,
    contact_precision,
    contact_range_statistics,
    contact_restraint_energy,
    fibonacci_numbers,
    native_contacts,
    predict_contact_map,
)
from .energy import EnergyModel
from .errors import InputError
from .peptide_backbone import DihedralAngles


def test_cysteine_pair_is_the_only_contact():
    contacts = predict_contact_map("CAAAAAAC")
    assert len(contacts) == 1
    c = contacts[0]
    assert (c.i, c.j) == (0, 7)
    assert c.score == pytest.approx(0.9 / np.sqrt(7.0))


def test_contacts_ranked_and_separated():
    contacts = predict_contact_map("V" * 12)
    assert len(contacts) == 12
    assert all(c.separation >= 6 for c in contacts)
    scores = [c.score for c in contacts]
    assert scores == sorted(scores, reverse=True)
    # separation 8 is a Fibonacci number and gets the boost
    assert contacts[0].separation == 8
    assert all(0.0 <= s <= 1.0 for s in scores)
    assert len(predict_contact_map("V" * 12, max_contacts=3)) == 3
    assert predict_contact_map("V" * 12, min_separation=20) == []


def test_contact_methods():
    seq = "MKTAYIAKQRQISFVKSHFS"
    for method in ("chemistry", "fibonacci", "consensus"):
        contacts = predict_contact_map(seq, method=method)
        assert 0 < len(contacts) <= len(seq)
        assert all(c.method == method for c in contacts)
        assert all(c.separation >= 6 for c in contacts)
    with pytest.raises(InputError):
        predict_contact_map(seq, method="coevolution")
    with pytest.raises(InputError):
        predict_contact_map(seq, min_separation=0)
    with pytest.raises(InputError):
        predict_contact_map("")


def test_fibonacci_numbers():
    assert fibonacci_numbers(13) == [1, 2, 3, 5, 8, 13]
    assert fibonacci_numbers(0) == []


def test_range_statistics_and_coverage():
    contacts = [ContactPrediction(0, 6, 0.5), ContactPrediction(0, 15, 0.4), ContactPrediction(2, 32, 0.3)]
    stats = contact_range_statistics(contacts)
    assert (stats.short, stats.medium, stats.long, stats.total) == (1, 1, 1, 3)
    assert stats.as_dict()["total"] == 3
    assert contact_coverage(contacts, 40) == pytest.approx(5 / 40)
    assert contact_coverage([], 10) == 0.0


def test_restraint_energy_is_harmonic_about_target():
    ca = np.array([[0.0, 0.0, 0.0], [7.0, 0.0, 0.0], [9.0, 0.0, 0.0]])
    at_target = [ContactPrediction(0, 1, 0.5)]
    stretched = [ContactPrediction(0, 2, 0.5)]
    assert contact_restraint_energy(ca, at_target) == pytest.approx(0.0)
    assert contact_restraint_energy(ca, stretched, force_constant=10.0) == pytest.approx(10.0 * 0.5 * 4.0)
    assert contact_restraint_energy(ca, []) == 0.0
    with pytest.raises(InputError):
        contact_restraint_energy(ca, [ContactPrediction(0, 5, 1.0)])


def test_precision_against_native_contacts():
    ca = np.array([[3.8 * k, 0.0, 0.0] for k in range(10)])
    ca[7] = [1.0, 0.0, 0.0]
    assert native_contacts(ca) == [(0, 7), (1, 7)]
    predicted = [ContactPrediction(0, 7, 0.9), ContactPrediction(2, 8, 0.5)]
    stats = contact_precision(predicted, ca)
    assert stats["precision"] == pytest.approx(0.5)
    assert stats["recall"] == pytest.approx(0.5)
    assert stats["f1"] == pytest.approx(0.5)


def test_energy_model_adds_restraint_term():
    seq = "CAAAAAAC"
    contacts = predict_contact_map(seq)
    plain = EnergyModel(seq)
    restrained = EnergyModel(seq, contacts=contacts)
    x = DihedralAngles.extended(len(seq)).to_vector()
    c_plain = plain.components(x)
    c_restr = restrained.components(x)
    assert c_plain.contact == 0.0
    # CA 0 and 7 are far apart in the extended chain
    assert c_restr.contact > 0.0
    assert c_restr.total == pytest.approx(c_plain.total + c_restr.contact)
    g = restrained.gradient(x)
    assert np.all(np.isfinite(g))


if __name__ == "__main__":
    test_cysteine_pair_is_the_only_contact()
    test_contacts_ranked_and_separated()
    test_contact_methods()
    test_fibonacci_numbers()
    test_range_statistics_and_coverage()
    test_restraint_energy_is_harmonic_about_target()
    test_precision_against_native_contacts()
    test_energy_model_adds_restraint_term()
    print("All tests passed.")
