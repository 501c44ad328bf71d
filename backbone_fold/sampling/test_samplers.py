"""
Unit tests for the samplers: output contract, seeding, uniform coverage,
fragment acquisition fallback and basin routing.

Run: python -m backbone_fold.sampling.test_samplers
Or: pytest backbone_fold/sampling/test_samplers.py -v
"""

from __future__ import annotations

import json
import time

import numpy as np
import pytest

from ..errors import ExternalResourceError, InputError
from ..peptide_backbone import DihedralAngles
from ..ramachandran import allowed_fraction
from .base import Candidate, CandidatePool, spawn_generators
from .basin_explorer import constraints_from_ss, sample_basins
from .diversity import dihedral_distance, ensemble_diversity
from .fragments import (
    Fragment,
    FragmentLibrary,
    JsonFragmentProvider,
    acquire_fragment_library,
    assemble_fragments,
    builtin_library,
    sample_fragments,
    sequence_similarity,
)
from .monte_carlo import metropolis_walk, sample_monte_carlo, temperature
from .ss_predict import predict_ss, ss_seed_angles
from .uniform import coverage_density, sample_uniform, van_der_corput

SEQ = "MKTAYIAKQRQISFVKSHFS"


def _fast_mc(seq, count, seed):
    return sample_monte_carlo(seq, count, seed, n_steps=5)


SAMPLERS = [sample_uniform, _fast_mc, sample_fragments, sample_basins]


def _in_range(c: Candidate) -> bool:
    x = c.angles.to_vector()
    return bool(np.all(x > -np.pi) and np.all(x <= np.pi + 1e-12))


@pytest.mark.parametrize("sampler", SAMPLERS)
def test_sampler_contract(sampler):
    seq = SEQ[:8]
    out = sampler(seq, 3, 11)
    assert len(out) == 3
    assert [c.index for c in out] == [0, 1, 2]
    for c in out:
        assert c.angles.n_residues == len(seq)
        assert _in_range(c)
    assert sampler(seq, 0, 11) == []
    assert sampler(seq, -2, 11) == []
    with pytest.raises(InputError):
        sampler("", 3, 11)


@pytest.mark.parametrize("sampler", SAMPLERS)
def test_sampler_deterministic_per_seed(sampler):
    a = sampler(SEQ[:8], 2, 5)
    b = sampler(SEQ[:8], 2, 5)
    for ca, cb in zip(a, b):
        np.testing.assert_array_equal(ca.angles.to_vector(), cb.angles.to_vector())


def test_seed_is_mandatory():
    with pytest.raises(InputError):
        sample_basins(SEQ, 2, None)
    with pytest.raises(InputError):
        spawn_generators(True, 2)


def test_different_seeds_differ():
    a = sample_basins(SEQ, 1, 1)[0]
    b = sample_basins(SEQ, 1, 2)[0]
    assert dihedral_distance(a.angles, b.angles) > 0.01


def test_uniform_coverage_non_decreasing():
    prev = 0.0
    for count in (1, 2, 4, 8, 16, 32):
        density = coverage_density(sample_uniform(SEQ[:6], count, 3, basin_blend=0.0))
        assert density >= prev
        prev = density
    assert prev > 0.2


def test_uniform_candidates_nested():
    small = sample_uniform(SEQ[:6], 3, 9)
    large = sample_uniform(SEQ[:6], 7, 9)
    for a, b in zip(small, large):
        np.testing.assert_array_equal(a.angles.to_vector(), b.angles.to_vector())


def test_van_der_corput():
    assert [van_der_corput(j) for j in range(1, 5)] == [0.5, 0.25, 0.75, 0.125]


def test_basin_explorer_routes_glycine_and_proline():
    seq = "AGPAGPAGPA"
    for c in sample_basins(seq, 5, 4, width_scale=0.3, mix_probability=0.0):
        deg = c.angles.degrees()
        for i in (1, 4, 7):
            assert deg["phi"][i] > 0.0, "glycine drawn from the left-handed basin"
        for i in (2, 5, 8):
            assert deg["psi"][i] > 90.0, "proline drawn from PPII"


def test_basin_explorer_mostly_allowed():
    fractions = [allowed_fraction(SEQ, c.angles) for c in sample_basins(SEQ, 10, 8, width_scale=0.5)]
    assert np.mean(fractions) > 0.6


def test_basin_explorer_constraints_pin_positions():
    ss = "HHHHHHCCCC"
    out = sample_basins("A" * 10, 4, 2, constraints=constraints_from_ss(ss), mix_probability=0.0, width_scale=0.2)
    for c in out:
        deg = c.angles.degrees()
        assert np.all(np.abs(deg["phi"][1:6] + 60.0) < 30.0)


def test_metropolis_trace_and_best():
    from ..energy import EnergyModel

    model = EnergyModel("ACDEFG")
    x0 = DihedralAngles.extended(6).to_vector()
    rng = np.random.default_rng(0)
    trace = metropolis_walk(model, x0, rng, n_steps=20)
    assert trace.n_accepted + trace.n_rejected == 20
    assert len(trace.states) == trace.n_accepted + 1
    x_best, e_best = trace.best()
    assert e_best <= trace.energies[0]
    np.testing.assert_allclose(model.total(x_best), e_best)


def test_monte_carlo_energy_filled():
    out = sample_monte_carlo("ACDEFG", 2, 3, n_steps=5)
    for c in out:
        assert c.energy is not None and np.isfinite(c.energy)


def test_temperature_schedules():
    for schedule in ("exponential", "linear", "geometric", "golden"):
        t0 = temperature(0, 100, 500.0, 10.0, schedule)
        t_end = temperature(100, 100, 500.0, 10.0, schedule)
        assert t0 == pytest.approx(500.0)
        assert t_end < t0
        assert t_end >= 10.0 - 1e-9
    with pytest.raises(InputError):
        temperature(0, 10, 1.0, 0.5, "cubic")


def test_builtin_library_contents():
    lib = builtin_library()
    assert lib.lengths == [3, 9]
    sources = {f.source for f in lib.fragments}
    assert {"type_I_turn", "type_II_turn", "extended_loop", "compact_loop"} <= sources
    assert len(builtin_library(reduced=True)) < len(lib)


def test_sequence_similarity_classes():
    assert sequence_similarity("AAA", "AAA") == 1.0
    assert sequence_similarity("AAA", "VVV") == 0.5
    assert sequence_similarity("AAA", "DDD") == 0.0


class _SlowProvider:
    name = "slow"

    def fetch(self):
        time.sleep(1.0)
        return builtin_library()


class _BrokenProvider:
    name = "broken"

    def __init__(self):
        self.calls = 0

    def fetch(self):
        self.calls += 1
        raise OSError("unreachable")


def test_fragment_acquisition_times_out_to_fallback():
    t0 = time.monotonic()
    acq = acquire_fragment_library(_SlowProvider(), timeout=0.05, retries=1)
    assert time.monotonic() - t0 < 0.9
    assert acq.degraded
    assert acq.attempts == 2
    assert isinstance(acq.error, ExternalResourceError)
    assert acq.library.name == "builtin-reduced"


def test_fragment_acquisition_retries_then_falls_back():
    provider = _BrokenProvider()
    acq = acquire_fragment_library(provider, timeout=1.0, retries=2)
    assert provider.calls == 3
    assert acq.degraded and "unreachable" in str(acq.error)


def test_fragment_acquisition_default_is_not_degraded():
    acq = acquire_fragment_library()
    assert not acq.degraded
    assert acq.library.name == "builtin"


class _ResetProvider:
    name = "reset"

    def fetch(self):
        raise RuntimeError("connection reset by peer")


def test_fragment_acquisition_wraps_unexpected_errors():
    acq = acquire_fragment_library(_ResetProvider(), timeout=1.0, retries=1)
    assert acq.degraded
    assert acq.attempts == 2
    assert isinstance(acq.error, ExternalResourceError)
    assert isinstance(acq.error.__cause__, RuntimeError)
    assert "connection reset" in str(acq.error)


def test_fragment_assembly_mixes_lengths():
    """Long chains still draw turns, loops and variants, not only the two ideal 9-mers."""
    ideal = {(-120, 120), (-60, -45)}
    seen = set()
    for seed in range(20):
        angles = assemble_fragments("GNGPDGSTKLMNGPGD", builtin_library(), np.random.default_rng(seed), jitter_deg=0.0)
        deg = angles.degrees()
        for phi, psi in zip(deg["phi"][1:-1], deg["psi"][1:-1]):
            seen.add((int(round(phi)), int(round(psi))))
    assert len(seen) > 2
    assert seen - ideal


def test_monte_carlo_stops_at_deadline():
    t0 = time.monotonic()
    out = sample_monte_carlo(SEQ, 3, 0, n_steps=100000, deadline=time.monotonic() + 0.1)
    assert time.monotonic() - t0 < 2.0
    assert len(out) == 3
    assert all(c.energy is not None and np.isfinite(c.energy) for c in out)



def test_json_provider(tmp_path):
    path = tmp_path / "frags.json"
    path.write_text(json.dumps([
        {"source": "h3", "sequence": "AEL", "ss": "H", "phi": [-62, -62, -62], "psi": [-41, -41, -41]},
    ]))
    acq = acquire_fragment_library(JsonFragmentProvider(str(path)), timeout=1.0)
    assert not acq.degraded
    assert len(acq.library) == 1
    out = sample_fragments("AELKA", 2, 1, library=acq.library)
    deg = out[0].angles.degrees()
    assert np.all(np.abs(deg["phi"][1:] + 62.0) < 25.0)

    missing = acquire_fragment_library(JsonFragmentProvider(str(tmp_path / "nope.json")), timeout=1.0, retries=0)
    assert missing.degraded


def test_fragments_follow_predicted_helix():
    lib = FragmentLibrary((
        Fragment.from_degrees([(-60.0, -45.0)] * 3, "helix", "AAA", "H"),
        Fragment.from_degrees([(-120.0, 120.0)] * 3, "strand", "VVV", "E"),
    ))
    out = sample_fragments("AAAAAAAA", 3, 0, library=lib, ss="HHHHHHHH", top_k=1)
    for c in out:
        assert np.all(np.abs(c.angles.degrees()["psi"][:-1] + 45.0) < 25.0)


def test_predict_ss_helix_and_strand():
    ss, conf = predict_ss("AEELLKKAEELLKKAEEL")
    assert ss.count("H") > len(ss) // 2
    assert conf.shape == (18,)
    ss2, _ = predict_ss("VIVTVYVIVTV")
    assert "E" in ss2
    seed = ss_seed_angles(ss)
    assert seed.n_residues == len(ss)


def test_candidate_pool_ranking_order_independent():
    a = DihedralAngles.extended(3)
    cands = [
        Candidate(a, "uniform", 1, 2.0),
        Candidate(a, "fragments", 0, 1.0),
        Candidate(a, "basin_explorer", 4, 1.0),
        Candidate(a, "uniform", 0, 5.0),
    ]
    forward = CandidatePool(cands).ranked()
    backward = CandidatePool(reversed(cands)).ranked()
    assert [(c.origin, c.index) for c in forward] == [(c.origin, c.index) for c in backward]
    assert CandidatePool(cands).best().origin == "basin_explorer"
    assert CandidatePool(cands).counts_by_origin() == {"uniform": 2, "fragments": 1, "basin_explorer": 1}
    with pytest.raises(InputError):
        CandidatePool().best()


def test_ensemble_diversity():
    from ..coordinate_builder import build_backbone

    confs = [build_backbone("AAAAAA", c.angles) for c in sample_basins("AAAAAA", 4, 3)]
    div = ensemble_diversity(confs)
    assert 0.0 <= div.min_rmsd <= div.mean_rmsd <= div.max_rmsd
    assert 1 <= div.n_unique <= 4
    same = ensemble_diversity([confs[0], confs[0]])
    assert same.max_rmsd < 1e-6 and same.n_unique == 1


if __name__ == "__main__":
    import tempfile
    from pathlib import Path

    for s in SAMPLERS:
        test_sampler_contract(s)
        test_sampler_deterministic_per_seed(s)
    test_seed_is_mandatory()
    test_different_seeds_differ()
    test_uniform_coverage_non_decreasing()
    test_uniform_candidates_nested()
    test_van_der_corput()
    test_basin_explorer_routes_glycine_and_proline()
    test_basin_explorer_mostly_allowed()
    test_basin_explorer_constraints_pin_positions()
    test_metropolis_trace_and_best()
    test_monte_carlo_energy_filled()
    test_temperature_schedules()
    test_builtin_library_contents()
    test_sequence_similarity_classes()
    test_fragment_acquisition_times_out_to_fallback()
    test_fragment_acquisition_retries_then_falls_back()
    test_fragment_acquisition_default_is_not_degraded()
    test_fragment_acquisition_wraps_unexpected_errors()
    test_fragment_assembly_mixes_lengths()
    test_monte_carlo_stops_at_deadline()
    with tempfile.TemporaryDirectory() as d:
        test_json_provider(Path(d))
    test_fragments_follow_predicted_helix()
    test_predict_ss_helix_and_strand()
    test_candidate_pool_ranking_order_independent()
    test_ensemble_diversity()
    print("All tests passed.")
