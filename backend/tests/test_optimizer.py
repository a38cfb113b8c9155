# File: backend/tests/test_optimizer.py
# Version: v0.1.1
"""
Monte Carlo optimizer: degenerate pools, duplicate handling, determinism,
cancellation, replicas and search-vs-random sampling.
"""

from __future__ import annotations

import random
import threading
from collections import Counter

import pytest

from backend.app.core.export.overhang_exporter import result_to_dict
from backend.app.core.overhang.candidate_pool import CandidatePool, CandidatePoolBuilder, Junction
from backend.app.core.overhang.errors import (
    CalibrationWarning,
    ConfigurationError,
    DuplicateOverhangError,
    ForcedDuplicateWarning,
    InitialAssignmentError,
)
from backend.app.core.overhang.fidelity import FidelityEvaluator
from backend.app.core.overhang.ligation_matrix import LigationMatrix
from backend.app.core.overhang.models import DrawOutcome, OptimizerState
from backend.app.core.overhang.optimizer import (
    MonteCarloOptimizer,
    OptimizerParameters,
    evaluate_assignment,
    optimize_replicas,
    summarize_batch,
)
from backend.app.core.overhang.sequence_utils import reverse_complement

FAST = dict(iterations=200, calibration_iterations=100)


def _pool(matrix, size=3):
    return CandidatePoolBuilder(matrix).build(size=size)


def _unique(overhangs):
    seen = set()
    for o in overhangs:
        if o in seen or reverse_complement(o) in seen:
            return False
        seen.add(o)
    return True


def test_degenerate_pool_evaluates_once(toy_matrix):
    pool = CandidatePoolBuilder(toy_matrix).build(specs=["AAAC", "ACTG", "AGCA"])
    opt = MonteCarloOptimizer(pool, FidelityEvaluator(toy_matrix), OptimizerParameters(**FAST), seed=1)
    res = opt.run()
    assert res.state is OptimizerState.DONE
    assert res.overhangs == ["AAAC", "ACTG", "AGCA"]
    assert res.search_iterations == 0
    assert res.calibration is None
    assert res.schedule == []
    assert res.score == FidelityEvaluator(toy_matrix).evaluate(["AAAC", "ACTG", "AGCA"])


def test_run_improves_and_keeps_uniqueness(toy_matrix):
    pool = _pool(toy_matrix)
    opt = MonteCarloOptimizer(pool, FidelityEvaluator(toy_matrix), OptimizerParameters(**FAST), seed=3)
    res = opt.run()
    assert res.state is OptimizerState.DONE
    assert len(res.overhangs) == 3
    assert _unique(res.overhangs)
    assert 0.0 <= res.score <= 1.0
    assert res.calibration is not None and res.calibration.trials
    assert res.schedule == [res.calibration.exponent]
    scores = [r.score for r in res.improvements]
    assert scores == sorted(scores)
    assert res.score >= scores[-1] - 1e-12


def test_seeded_runs_are_reproducible(toy_matrix):
    pool = _pool(toy_matrix)
    ev = FidelityEvaluator(toy_matrix)
    a = MonteCarloOptimizer(pool, ev, OptimizerParameters(**FAST), seed=11).run()
    b = MonteCarloOptimizer(pool, ev, OptimizerParameters(**FAST), rng=random.Random(11)).run()
    assert a.overhangs == b.overhangs
    assert a.score == b.score
    assert [r.as_row() for r in a.improvements] == [r.as_row() for r in b.improvements]


def test_range_schedule_spans_two_calibrations(toy_matrix):
    params = OptimizerParameters(schedule="range", high_acceptance=0.5, **FAST)
    res = MonteCarloOptimizer(_pool(toy_matrix), FidelityEvaluator(toy_matrix), params, seed=5).run()
    assert res.schedule == sorted(res.schedule, reverse=True)
    assert res.schedule[-1] == res.calibration.exponent
    assert len(res.search.stages) == len(res.schedule)

    cal = res.calibration
    assert cal.target == 0.05
    assert cal.high is not None and cal.high.target == 0.5
    assert res.schedule[0] == cal.high.exponent
    assert cal.passes() == [cal.high, cal]
    # low-ratio trials only; the chosen exponent is the closest of them
    assert cal.chosen.distance == min(t.distance for t in cal.trials)
    assert cal.steps == len(cal.trials) - 1 <= 100
    payload = result_to_dict(res)
    assert payload["calibration"]["target"] == 0.05
    assert payload["high_calibration"]["exponent"] == cal.high.exponent


def test_init_length_mismatch(toy_matrix):
    opt = MonteCarloOptimizer(_pool(toy_matrix), FidelityEvaluator(toy_matrix), OptimizerParameters(**FAST), seed=1)
    with pytest.raises(InitialAssignmentError):
        opt.run(["AAAC"])


def test_init_is_first_improvement(toy_matrix):
    opt = MonteCarloOptimizer(_pool(toy_matrix), FidelityEvaluator(toy_matrix), OptimizerParameters(**FAST), seed=1)
    res = opt.run(["aaac", "acTG", "AGCA"])
    assert res.improvements[0].overhangs == ["AAAC", "ACTG", "AGCA"]


def test_all_draws_colliding_hits_attempt_cap(toy_matrix):
    pool = CandidatePool([Junction(0, ["AAAC", "AAGC"]), Junction(1, ["AAAC", "AAGC"])])
    opt = MonteCarloOptimizer(pool, FidelityEvaluator(toy_matrix), OptimizerParameters(**FAST), seed=1)
    out = opt.search([0], 10, ["AAAC", "AAGC"])
    stage = out.stages[0]
    assert stage.useful == 0
    assert stage.attempts == 10 * 50
    assert stage.skipped == stage.attempts
    assert stage.acceptance_ratio == 0.0
    assert out.best_overhangs == ["AAAC", "AAGC"]


def test_draw_outcomes_follow_policy(toy_matrix):
    pool = CandidatePool([Junction(0, ["AAAC"]), Junction(1, ["AAAC"])])
    ev = FidelityEvaluator(toy_matrix)

    forced = MonteCarloOptimizer(pool, ev, OptimizerParameters(**FAST), seed=1)
    draw = forced.draw_overhang(1, Counter({"AAAC": 1}))
    assert draw.outcome is DrawOutcome.FORCED_DUPLICATE
    assert draw.attempts == 1
    res = forced.run()
    assert res.overhangs == ["AAAC", "AAAC"]
    assert any(isinstance(w, ForcedDuplicateWarning) for w in res.warnings)

    strict = MonteCarloOptimizer(pool, ev, OptimizerParameters(duplicate_policy="raise", **FAST), seed=1)
    assert strict.draw_overhang(1, Counter({"AAAC": 1})).outcome is DrawOutcome.REJECTED
    with pytest.raises(DuplicateOverhangError):
        strict.run()


def test_fixed_junction_claims_its_overhang_first(toy_matrix):
    pool = CandidatePool([Junction(0, ["AAAC", "AAGC"]), Junction(1, ["AAAC"])])
    ev = FidelityEvaluator(toy_matrix)
    for seed in range(50):
        opt = MonteCarloOptimizer(pool, ev, OptimizerParameters(duplicate_policy="raise", **FAST), seed=seed)
        warnings = []
        assert opt.random_assignment(warnings) == ["AAGC", "AAAC"]
        assert not warnings
    records = MonteCarloOptimizer(pool, ev, OptimizerParameters(**FAST), seed=7).sample(200)
    assert all(r.overhangs == ["AAGC", "AAAC"] for r in records)


def test_calibration_on_toy_pool(toy_matrix):
    params = OptimizerParameters(iterations=200, calibration_iterations=500)
    for seed in range(3):
        opt = MonteCarloOptimizer(_pool(toy_matrix), FidelityEvaluator(toy_matrix), params, seed=seed)
        res = opt.calibrate(0.05)
        assert res.target == 0.05
        assert res.steps <= 100
        assert res.chosen is not None
        if res.converged:
            assert abs(res.chosen.acceptance_ratio - 0.05) <= 0.03
        else:
            assert any(isinstance(w, CalibrationWarning) for w in res.warnings)

def test_cancel_event_stops_run(toy_matrix):
    ev = threading.Event()
    ev.set()
    opt = MonteCarloOptimizer(
        _pool(toy_matrix), FidelityEvaluator(toy_matrix), OptimizerParameters(**FAST), seed=1, cancel_event=ev,
    )
    res = opt.run()
    assert res.cancelled
    assert res.search is None
    assert len(res.calibration.trials) == 1
    assert len(res.overhangs) == 3


def test_minimize_flips_objective(toy_matrix):
    params = OptimizerParameters(minimize=True, **FAST)
    res = MonteCarloOptimizer(_pool(toy_matrix), FidelityEvaluator(toy_matrix), params, seed=2).run()
    assert res.report.minimize
    assert abs(res.score - (1.0 - res.fidelity)) < 1e-12


def test_batch_never_beats_search(toy_matrix):
    pool = _pool(toy_matrix)
    ev = FidelityEvaluator(toy_matrix)
    params = OptimizerParameters(iterations=500, calibration_iterations=200)

    records = MonteCarloOptimizer(pool, ev, params, seed=99).sample(200)
    assert len(records) == 200
    assert all(_unique(r.overhangs) for r in records)
    stats = summarize_batch(records)
    assert stats["count"] == 200
    assert stats["min"] <= stats["mean"] <= stats["max"]

    best, results = optimize_replicas(pool, ev, params, seeds=[1, 2, 3], workers=3)
    assert len(results) == 3
    assert [r.seed for r in results] == [1, 2, 3]
    assert best.score == max(r.score for r in results)
    assert best.score >= stats["max"] - 1e-12


def test_evaluate_assignment_validates():
    ev = FidelityEvaluator(LigationMatrix({}))
    rep = evaluate_assignment(["aaac", "ACTG"], ev)
    assert rep.overhangs == ["AAAC", "ACTG"]
    with pytest.raises(ConfigurationError):
        evaluate_assignment([], ev)
    with pytest.raises(ConfigurationError):
        evaluate_assignment(["AAAC", "ACT"], ev)
