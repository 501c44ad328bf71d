"""
Sequence -> predicted backbone.

  1. validate the sequence and config (fatal, nothing is computed before this)
  2. predict secondary structure and residue contacts (restraints optional)
  3. acquire the fragment library (bounded timeout, builtin fallback)
  4. sample with every enabled sampler until the deadline
  5. score the pool in a worker pool
  6. refine the top n_refine candidates through the optimizer cascade
  7. select the lowest-energy candidate, ties broken by (origin, index)
  8. compare with a reference structure only if one was given

Candidates are independent: a NumericalInstabilityError drops that candidate
and is listed in diagnostics["errors"]. When the wall-clock budget runs out
the best candidate found so far is returned. Any warning, dropped candidate,
library fallback or expired budget marks the result degraded.

Usage:
    from backbone_fold import PredictionConfig, predict_structure
    result = predict_structure("ACDEFGHIKL", PredictionConfig(seed=7))
    result.energy.total, result.conformation.coords.shape

MIT License. Python 3.10+.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Executor, Future, ProcessPoolExecutor, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .config import PredictionConfig
from .contact_map import contact_coverage, contact_precision, contact_range_statistics, predict_contact_map
from .coordinate_builder import Conformation
from .energy import EnergyComponents, EnergyModel
from .errors import InputError, NumericalInstabilityError
from .force_field import clash_count
from .grading.similarity import StructureComparison, StructureLike, compare_structures, reference_ca
from .hydrogen_bonds import count_hbonds
from .optimization.budget import deadline_from_budget, expired, remaining
from .optimization.cascade import CascadeConfig, CascadeResult, StageRecord, run_cascade
from .peptide_backbone import PHI_ALPHA_DEG, PSI_ALPHA_DEG, DihedralAngles, validate_sequence
from .ramachandran import allowed_fraction, classify_secondary_structure
from .sampling.base import Candidate, CandidatePool
from .sampling.basin_explorer import constraints_from_ss, sample_basins
from .sampling.diversity import ensemble_diversity
from .sampling.fragments import FragmentLibraryProvider, acquire_fragment_library, sample_fragments
from .sampling.monte_carlo import sample_monte_carlo
from .sampling.ss_predict import predict_ss, ss_seed_angles
from .sampling.uniform import sample_uniform

logger = logging.getLogger(__name__)

SEED_ORIGIN = "seed"
# Independent SeedSequence children, one per consumer
_STREAMS = ("uniform", "monte_carlo", "fragments", "basin_explorer", "cascade")
DIVERSITY_TOP = 10


@dataclass
class PredictionResult:
    sequence: str
    conformation: Conformation
    energy: EnergyComponents
    stage_trace: List[StageRecord]
    pool: CandidatePool
    secondary_structure: str
    degraded: bool
    diagnostics: Dict[str, Any]
    elapsed: float
    selected: Tuple[str, int] = ("", -1)
    similarity: Optional[StructureComparison] = None

    @property
    def angles(self) -> DihedralAngles:
        return self.conformation.angles

    @property
    def total_energy(self) -> float:
        return self.energy.total


def _check_reference(reference: StructureLike, n_residues: int) -> None:
    coords = reference.coords if isinstance(reference, Conformation) else np.asarray(reference, dtype=float)
    if coords.ndim not in (2, 3) or coords.shape[0] != n_residues:
        raise InputError(
            f"reference has shape {coords.shape}, expected {n_residues} residues", field="reference"
        )


def _seed_candidates(sequence: str, ss: str) -> List[Candidate]:
    """Extended strand, predicted-SS seed and ideal helix."""
    n = len(sequence)
    return [
        Candidate(DihedralAngles.extended(n), SEED_ORIGIN, 0),
        Candidate(ss_seed_angles(ss), SEED_ORIGIN, 1),
        Candidate(DihedralAngles.uniform(n, PHI_ALPHA_DEG, PSI_ALPHA_DEG), SEED_ORIGIN, 2),
    ]


def sample_pool(
    sequence: str,
    config: PredictionConfig,
    ss: str,
    model: EnergyModel,
    library=None,
    deadline: Optional[float] = None,
) -> Tuple[List[Candidate], Dict[str, int], List[str]]:
    """
    Run every enabled sampler. Returns the candidates, the count per sampler
    and the samplers skipped because the deadline had passed before they
    started. The secondary-structure seeds are always included.
    """
    sc = config.samplers
    streams = dict(zip(_STREAMS, np.random.SeedSequence(config.seed).spawn(len(_STREAMS))))
    candidates: List[Candidate] = []
    if sc.ss_seeds:
        candidates.extend(_seed_candidates(sequence, ss))

    runners = []
    if sc.uniform:
        runners.append(("uniform", lambda: sample_uniform(
            sequence, sc.uniform_count, streams["uniform"], basin_blend=sc.uniform_blend)))
    if sc.monte_carlo:
        runners.append(("monte_carlo", lambda: sample_monte_carlo(
            sequence, sc.monte_carlo_count, streams["monte_carlo"], model=model,
            start=ss_seed_angles(ss), n_steps=sc.monte_carlo_steps, schedule=sc.monte_carlo_schedule,
            deadline=deadline,
        )))
    if sc.fragments:
        runners.append(("fragments", lambda: sample_fragments(
            sequence, sc.fragments_count, streams["fragments"], library=library, ss=ss)))
    if sc.basin_explorer:
        runners.append(("basin_explorer", lambda: sample_basins(
            sequence, sc.basin_explorer_count, streams["basin_explorer"], constraints=constraints_from_ss(ss))))

    skipped: List[str] = []
    for name, run in runners:
        if expired(deadline):
            skipped.append(name)
            continue
        candidates.extend(run())
    if skipped:
        logger.warning("wall-clock budget expired before sampling with %s", ", ".join(skipped))
    counts: Dict[str, int] = {}
    for c in candidates:
        counts[c.origin] = counts.get(c.origin, 0) + 1
    return candidates, counts, skipped


def _score_task(
    model: EnergyModel, batch: Sequence[Candidate], deadline: Optional[float]
) -> List[Tuple[Candidate, Optional[float], Optional[str]]]:
    """Score a batch; (candidate, energy, error). energy None means skipped or failed."""
    out: List[Tuple[Candidate, Optional[float], Optional[str]]] = []
    for c in batch:
        if c.energy is not None:
            out.append((c, c.energy, None))
            continue
        if expired(deadline):
            out.append((c, None, None))
            continue
        try:
            out.append((c, model.evaluate(model.build(c.angles)).total, None))
        except NumericalInstabilityError as e:
            out.append((c, None, f"{c.origin}[{c.index}]: {e}"))
    return out


def _refine_task(
    model: EnergyModel,
    candidate: Candidate,
    cascade: CascadeConfig,
    seed: np.random.SeedSequence,
    deadline: Optional[float],
) -> Tuple[Candidate, Optional[CascadeResult], Optional[str]]:
    label = f"{candidate.origin}[{candidate.index}]"
    try:
        result = run_cascade(
            model, candidate.angles.to_vector(), cascade, np.random.default_rng(seed), deadline, label=label
        )
    except NumericalInstabilityError as e:
        return candidate, None, f"{label}: {e}"
    return candidate, result, None


def _make_executor(config: PredictionConfig) -> Executor:
    if config.executor == "process":
        return ProcessPoolExecutor(max_workers=config.max_workers)
    return ThreadPoolExecutor(max_workers=config.max_workers)


def _collect(futures: List[Future], deadline: Optional[float]) -> Tuple[List[Any], bool]:
    """Results of the futures that finish before the deadline; True if any were abandoned."""
    done, not_done = wait(futures, timeout=remaining(deadline))
    for f in not_done:
        f.cancel()
    return [f.result() for f in futures if f in done], bool(not_done)


def _batches(items: Sequence[Candidate], n: int) -> List[List[Candidate]]:
    n = max(1, min(n, len(items)))
    return [list(items[k::n]) for k in range(n)]


def score_pool(
    model: EnergyModel,
    candidates: Sequence[Candidate],
    executor: Executor,
    n_batches: int,
    deadline: Optional[float] = None,
) -> Tuple[CandidatePool, List[str], bool]:
    """
    Energies for every candidate that can be scored before the deadline.
    Returns the pool of scored candidates, error messages and whether any
    candidate went unscored for lack of time.
    """
    futures = [executor.submit(_score_task, model, batch, deadline) for batch in _batches(candidates, n_batches)]
    results, abandoned = _collect(futures, deadline)
    pool = CandidatePool()
    errors: List[str] = []
    unscored = abandoned
    for batch in results:
        for cand, energy, err in batch:
            if err is not None:
                errors.append(err)
            elif energy is None:
                unscored = True
            else:
                pool.add(cand.with_energy(energy))
    if len(pool) == 0 and not errors and candidates:
        # Nothing scored in time: score in order until one succeeds
        for cand in candidates:
            (_, energy, err), = _score_task(model, [cand], None)
            if err is not None:
                errors.append(err)
                continue
            pool.add(cand.with_energy(energy))
            break
    return pool, errors, unscored


def predict_structure(
    sequence: str,
    config: PredictionConfig,
    reference: Optional[StructureLike] = None,
    fragment_provider: Optional[FragmentLibraryProvider] = None,
) -> PredictionResult:
    """
    Predict the backbone of sequence. config carries the mandatory seed.
    reference (Conformation or coordinates) only adds result.similarity; it
    never influences which structure is selected.
    """
    t0 = time.monotonic()
    if not isinstance(config, PredictionConfig):
        raise InputError("config must be a PredictionConfig with an explicit seed", field="config")
    seq = validate_sequence(sequence)
    if reference is not None:
        _check_reference(reference, len(seq))
    deadline = deadline_from_budget(config.wall_clock_budget)
    diagnostics: Dict[str, Any] = {"warnings": [], "errors": [], "timings": {}}
    degraded = False

    ss, ss_conf = predict_ss(seq)
    contacts = predict_contact_map(seq, config.contact_method) if config.contact_map else []
    model = EnergyModel(seq, contacts=contacts if config.contact_restraints else ())
    if config.contact_map:
        diagnostics["contacts"] = {
            "n_predicted": len(contacts),
            "coverage": contact_coverage(contacts, len(seq)),
            "restrained": config.contact_restraints,
            **contact_range_statistics(contacts).as_dict(),
        }

    t = time.monotonic()
    library = None
    if config.samplers.fragments:
        acq = acquire_fragment_library(fragment_provider, config.fragment_timeout, config.fragment_retries)
        library = acq.library
        diagnostics["fragment_library"] = {"source": acq.source, "attempts": acq.attempts, "degraded": acq.degraded}
        if acq.degraded:
            degraded = True
            diagnostics["warnings"].append(f"fragment library fallback: {acq.error}")
    diagnostics["timings"]["fragments"] = time.monotonic() - t

    t = time.monotonic()
    candidates, counts, skipped = sample_pool(seq, config, ss, model, library, deadline)
    diagnostics["sampler_counts"] = counts
    deadline_expired = False
    if skipped:
        degraded = deadline_expired = True
        diagnostics["skipped_samplers"] = skipped
        diagnostics["warnings"].append(f"wall-clock budget expired before sampling with {', '.join(skipped)}")
    diagnostics["timings"]["sampling"] = time.monotonic() - t
    logger.info("sampled %d candidates for %d residues: %s", len(candidates), len(seq), counts)

    stage_trace: List[StageRecord] = []
    executor = _make_executor(config)
    try:
        t = time.monotonic()
        pool, errors, unscored = score_pool(model, candidates, executor, config.max_workers, deadline)
        diagnostics["errors"].extend(errors)
        diagnostics["timings"]["scoring"] = time.monotonic() - t
        if len(pool) == 0:
            raise NumericalInstabilityError("no candidate could be scored", term="total")
        if unscored:
            degraded = deadline_expired = True
            diagnostics["warnings"].append("wall-clock budget expired while scoring the pool")
        logger.debug("pool best before refinement: %.3f", pool.best().energy)

        t = time.monotonic()
        top = pool.top(config.n_refine)
        seeds = np.random.SeedSequence([config.seed, len(_STREAMS)]).spawn(max(1, len(top)))
        futures = [
            executor.submit(_refine_task, model, cand, config.cascade, seeds[k], deadline)
            for k, cand in enumerate(top)
        ]
        refined, abandoned = _collect(futures, deadline)
        diagnostics["timings"]["refinement"] = time.monotonic() - t
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    if abandoned:
        degraded = deadline_expired = True
        diagnostics["warnings"].append("wall-clock budget expired during refinement")
    final = CandidatePool()
    replaced: Dict[Tuple[str, int], Candidate] = {}
    for cand, result, err in refined:
        if err is not None:
            diagnostics["errors"].append(err)
            continue
        stage_trace.extend(result.stages)
        diagnostics["warnings"].extend(result.warnings)
        if result.deadline_hit:
            degraded = deadline_expired = True
        replaced[(cand.origin, cand.index)] = Candidate(result.angles, cand.origin, cand.index, result.e_final)
    for cand in pool:
        final.add(replaced.get((cand.origin, cand.index), cand))
    if expired(deadline):
        deadline_expired = True
    # Unconverged stages, dropped candidates and expired budgets all count
    if deadline_expired or diagnostics["warnings"] or diagnostics["errors"]:
        degraded = True

    best = final.best()
    conformation = model.build(best.angles)
    energy = model.evaluate(conformation)
    diagnostics["deadline_expired"] = deadline_expired
    diagnostics["n_refined"] = len(replaced)
    diagnostics["allowed_fraction"] = allowed_fraction(seq, best.angles)
    diagnostics["ss_confidence"] = float(np.mean(ss_conf)) if len(ss_conf) else 0.0
    diagnostics["ss_from_angles"] = classify_secondary_structure(best.angles)
    diagnostics["clashes"] = clash_count(conformation.atoms, conformation.residue_index)
    diagnostics["hbonds"] = count_hbonds(conformation.coords, seq)
    top_confs = [model.build(c.angles) for c in final.top(DIVERSITY_TOP)]
    diagnostics["diversity"] = ensemble_diversity(top_confs)

    similarity = None
    if reference is not None:
        similarity = compare_structures(conformation, reference)
        if config.contact_map:
            diagnostics["contacts"].update(contact_precision(contacts, reference_ca(reference)))

    elapsed = time.monotonic() - t0
    logger.info(
        "selected %s[%d] E=%.3f (%d refined, degraded=%s) in %.2fs",
        best.origin, best.index, energy.total, len(replaced), degraded, elapsed,
    )
    if degraded:
        logger.warning("prediction for %d residues is degraded: %s", len(seq), diagnostics["warnings"])
    return PredictionResult(
        sequence=seq,
        conformation=conformation,
        energy=energy,
        stage_trace=stage_trace,
        pool=final,
        secondary_structure=ss,
        degraded=degraded,
        diagnostics=diagnostics,
        elapsed=elapsed,
        selected=(best.origin, best.index),
        similarity=similarity,
    )
