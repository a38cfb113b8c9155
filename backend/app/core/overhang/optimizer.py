# File: backend/app/core/overhang/optimizer.py
# Version: v1.3.0

"""
Simulated-annealing Monte Carlo search for high-fidelity overhang sets.

State machine: CALIBRATING -> SEARCHING -> DONE.

  • CALIBRATING: short search passes tune the temperature exponent so that the
    acceptance ratio is close to the target (see annealing.py).
  • SEARCHING: for every exponent in the schedule, `iterations` useful trials.
    A trial picks a random variable junction and a random candidate; draws that
    collide with the current set (same overhang or its reverse complement) are
    skipped. Improving moves are always accepted; others follow the Metropolis
    criterion and are reverted on rejection.
  • DONE: best assignment, its per-junction report and the improvement stream.

Also provides direct evaluation, batch sampling of random valid assignments,
and independent replicas reduced to the best one.

v1.3.0
- Random assignments draw fixed junctions first.
- Range schedules keep the high-ratio calibration on `CalibrationResult.high`.

v1.2.0
- Typed draw outcomes (ACCEPTED / FORCED_DUPLICATE / REJECTED) with a caller
  policy instead of silently keeping duplicates.
- Calibration passes return their best assignment explicitly; no global state.

v1.1.0
- Injected RNG (`random.Random`) and cancellation event.
"""

from __future__ import annotations

__all__ = [
    "OptimizerParameters",
    "OptimizationResult",
    "MonteCarloOptimizer",
    "evaluate_assignment",
    "optimize_replicas",
    "summarize_batch",
]

import logging
import random
import threading
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, fields
from statistics import mean, median, pstdev
from typing import Dict, List, Optional, Sequence

from .annealing import (
    DEFAULT_HIGH_RATIO,
    DEFAULT_MAX_STEPS,
    DEFAULT_TARGET_RATIO,
    DEFAULT_TOLERANCE,
    DEFAULT_TRIAL_ITERATIONS,
    AnnealingCalibrator,
    CalibrationResult,
    TemperatureScale,
    build_schedule,
)
from .candidate_pool import CandidatePool
from .errors import (
    ConfigurationError,
    DuplicateOverhangError,
    ForcedDuplicateWarning,
    InitialAssignmentError,
)
from .fidelity import FidelityEvaluator, FidelityReport
from .models import (
    BatchRecord,
    DrawOutcome,
    DrawResult,
    ImprovementRecord,
    OptimizerState,
    SearchOutcome,
    StageResult,
)
from .sequence_utils import is_dna, normalize_overhang, reverse_complement

logger = logging.getLogger(__name__)

# === Defaults =================================================================
ITERATIONS_PER_STAGE = 1000
MAX_DRAW_ATTEMPTS = 1000
SKIP_ATTEMPT_FACTOR = 50

SCHEDULE_SINGLE = "single"
SCHEDULE_RANGE = "range"
DUPLICATE_FORCE = "force"
DUPLICATE_RAISE = "raise"


# ---------------------------------------------------------------------
# Parameters / results
# ---------------------------------------------------------------------

@dataclass
class OptimizerParameters:
    iterations: int = ITERATIONS_PER_STAGE
    calibration_iterations: int = DEFAULT_TRIAL_ITERATIONS
    target_acceptance: float = DEFAULT_TARGET_RATIO
    high_acceptance: float = DEFAULT_HIGH_RATIO
    start_exponent: int = 0
    max_calibration_steps: int = DEFAULT_MAX_STEPS
    calibration_tolerance: float = DEFAULT_TOLERANCE
    schedule: str = SCHEDULE_SINGLE

    # Duplicate handling
    max_draw_attempts: int = MAX_DRAW_ATTEMPTS
    skip_attempt_factor: int = SKIP_ATTEMPT_FACTOR
    duplicate_policy: str = DUPLICATE_FORCE

    minimize: bool = False

    def __post_init__(self) -> None:
        if self.iterations < 1 or self.calibration_iterations < 1:
            raise ConfigurationError("iterations must be >= 1")
        if self.schedule not in (SCHEDULE_SINGLE, SCHEDULE_RANGE):
            raise ConfigurationError(f"unknown schedule '{self.schedule}'")
        if self.duplicate_policy not in (DUPLICATE_FORCE, DUPLICATE_RAISE):
            raise ConfigurationError(f"unknown duplicate policy '{self.duplicate_policy}'")
        if not 0.0 <= self.target_acceptance <= 1.0:
            raise ConfigurationError("target acceptance ratio must be in [0,1]")
        if self.max_draw_attempts < 1 or self.skip_attempt_factor < 1:
            raise ConfigurationError("max_draw_attempts and skip_attempt_factor must be >= 1")


def _coerce_params(obj: Optional[object]) -> OptimizerParameters:
    if obj is None or isinstance(obj, OptimizerParameters):
        return obj or OptimizerParameters()
    values = {f.name: getattr(obj, f.name) for f in fields(OptimizerParameters) if hasattr(obj, f.name)}
    return OptimizerParameters(**values)


@dataclass
class OptimizationResult:
    report: FidelityReport
    state: OptimizerState
    calibration: Optional[CalibrationResult] = None
    search: Optional[SearchOutcome] = None
    schedule: List[int] = field(default_factory=list)
    improvements: List[ImprovementRecord] = field(default_factory=list)
    warnings: List[Warning] = field(default_factory=list)
    cancelled: bool = False
    seed: Optional[int] = None

    @property
    def overhangs(self) -> List[str]:
        return self.report.overhangs

    @property
    def score(self) -> float:
        return self.report.score

    @property
    def fidelity(self) -> float:
        return self.report.overall

    @property
    def search_iterations(self) -> int:
        return self.search.useful_iterations if self.search else 0


# ---------------------------------------------------------------------
# Search state
# ---------------------------------------------------------------------

class _SearchState:
    """Current assignment plus a multiset of placed overhangs for collision checks."""

    def __init__(self, overhangs: Sequence[str], score: float):
        self.overhangs: List[str] = list(overhangs)
        self.used: Counter = Counter(self.overhangs)
        self.score = score
        self.best_overhangs: List[str] = list(overhangs)
        self.best_score = score

    def conflicts(self, overhang: str) -> bool:
        return self.used[overhang] > 0 or self.used[reverse_complement(overhang)] > 0

    def substitute(self, pos: int, overhang: str) -> str:
        old = self.overhangs[pos]
        self.used[old] -= 1
        self.overhangs[pos] = overhang
        self.used[overhang] += 1
        return old

    def mark_best(self) -> bool:
        if self.score > self.best_score:
            self.best_score = self.score
            self.best_overhangs = self.overhangs[:]
            return True
        return False


# ---------------------------------------------------------------------
# Optimizer
# ---------------------------------------------------------------------

class MonteCarloOptimizer:
    """Annealed stochastic search over per-junction candidate pools."""

    def __init__(
        self,
        pool: CandidatePool,
        evaluator: FidelityEvaluator,
        params: Optional[object] = None,
        *,
        rng: Optional[random.Random] = None,
        seed: Optional[int] = None,
        temperature: Optional[TemperatureScale] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        if len(pool) == 0:
            raise ConfigurationError("candidate pool has no junctions")
        self.pool = pool
        self.evaluator = evaluator
        self.params = _coerce_params(params)
        if self.params.minimize != evaluator.minimize:
            self.evaluator = FidelityEvaluator(evaluator.matrix, evaluator.ignore, minimize=self.params.minimize)
        self.seed = seed
        self.rng = rng or random.Random(seed)
        self.temperature = temperature or TemperatureScale()
        self.cancel_event = cancel_event
        self.state = OptimizerState.IDLE
        self.variable_positions = pool.variable_positions

        logger.info(
            "MonteCarloOptimizer init: %s, iter=%d, calib_iter=%d, ar=%.3f, schedule=%s, minimize=%s",
            pool.summary(), self.params.iterations, self.params.calibration_iterations,
            self.params.target_acceptance, self.params.schedule, self.params.minimize,
        )

    # ---------------- Helpers ----------------

    def _cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def _set_state(self, state: OptimizerState) -> None:
        logger.debug("optimizer state %s -> %s", self.state.value, state.value)
        self.state = state

    def _sites(self, overhangs: Sequence[str]) -> List[Optional[int]]:
        return self.pool.sites_for(overhangs) if self.pool.has_sites else []

    def _record(self, score: float, overhangs: Sequence[str]) -> ImprovementRecord:
        return ImprovementRecord(score, list(overhangs), self._sites(overhangs))

    def draw_overhang(self, index: int, used: Counter) -> DrawResult:
        """Uniform draw for junction `index` that avoids overhangs (and RCs) in `used`."""
        cands = self.pool[index].candidates
        cap = 1 if len(cands) == 1 else self.params.max_draw_attempts
        o = cands[0]
        for attempt in range(1, cap + 1):
            o = self.rng.choice(cands)
            if used[o] == 0 and used[reverse_complement(o)] == 0:
                return DrawResult(o, DrawOutcome.ACCEPTED, attempt)
        if self.params.duplicate_policy == DUPLICATE_FORCE:
            return DrawResult(o, DrawOutcome.FORCED_DUPLICATE, cap)
        return DrawResult(o, DrawOutcome.REJECTED, cap)

    def random_assignment(self, warnings: Optional[List[Warning]] = None) -> List[str]:
        """
        One constraint-valid random assignment (duplicates only via forced draws).

        Junctions are drawn in ascending pool size, so fixed junctions claim
        their overhang before any variable junction can take it.
        """
        used: Counter = Counter()
        out: List[str] = [""] * len(self.pool)
        for pos in sorted(range(len(self.pool)), key=lambda i: len(self.pool[i].candidates)):
            j = self.pool[pos]
            draw = self.draw_overhang(pos, used)
            if draw.outcome is DrawOutcome.REJECTED:
                raise DuplicateOverhangError(j.index, draw.overhang, draw.attempts)
            if draw.outcome is DrawOutcome.FORCED_DUPLICATE:
                w = ForcedDuplicateWarning(j.index, draw.overhang, draw.attempts)
                logger.warning("%s", w)
                if warnings is not None:
                    warnings.append(w)
            out[pos] = draw.overhang
            used[draw.overhang] += 1
        return out

    def _validate_init(self, init: Sequence[str]) -> List[str]:
        overhangs = [normalize_overhang(o) for o in init]
        if len(overhangs) != len(self.pool):
            raise InitialAssignmentError(len(self.pool), len(overhangs))
        for i, o in enumerate(overhangs):
            if len(o) != self.pool.overhang_size or not is_dna(o):
                raise ConfigurationError(f"initialization overhang '{o}' at junction {i} is not valid DNA of size {self.pool.overhang_size}")
            if o not in self.pool[i].candidates:
                logger.warning("initialization overhang %s is not in the pool of junction %d", o, i)
        return overhangs

    # ---------------- Core search ----------------

    def search(self, schedule: Sequence[int], iterations: int, init: Optional[Sequence[str]] = None) -> SearchOutcome:
        """
        One annealing pass over `schedule`. Starts from `init` or a random assignment.
        Returns the best/final assignments and per-stage statistics.
        """
        warnings: List[Warning] = []
        start = list(init) if init is not None else self.random_assignment(warnings)
        st = _SearchState(start, self.evaluator.evaluate(start))
        improvements = [self._record(st.score, st.overhangs)]
        stages: List[StageResult] = []
        cancelled = False

        posi = self.variable_positions
        if not posi:
            return SearchOutcome(st.best_overhangs, st.best_score, st.overhangs, st.score,
                                 stages, improvements, warnings)

        max_attempts = iterations * self.params.skip_attempt_factor

        for exp in schedule:
            stage = StageResult(exponent=exp)
            logger.debug("[E = %d]", exp)
            while stage.useful < iterations and stage.attempts < max_attempts:
                if self._cancelled():
                    cancelled = True
                    break
                stage.attempts += 1

                pos = self.rng.choice(posi)
                o = self.rng.choice(self.pool[pos].candidates)
                if st.conflicts(o):
                    stage.skipped += 1
                    continue
                stage.useful += 1

                restore = st.substitute(pos, o)
                s1 = self.evaluator.evaluate(st.overhangs)
                delta = s1 - st.score

                if delta > 0:
                    st.score = s1
                    stage.accepted += 1
                    stage.improved += 1
                    if st.mark_best():
                        improvements.append(self._record(st.best_score, st.best_overhangs))
                        logger.debug("improved: %.6f %s", st.best_score, ",".join(st.best_overhangs))
                elif self.rng.random() < self.temperature.acceptance_probability(delta, exp):
                    st.score = s1
                    stage.accepted += 1
                else:
                    st.substitute(pos, restore)
                    stage.rejected += 1

            if stage.useful < iterations and not cancelled:
                logger.warning(
                    "E=%d: stopped after %d attempts with %d/%d useful trials (too many colliding draws)",
                    exp, stage.attempts, stage.useful, iterations,
                )
            stages.append(stage)
            logger.info(
                "E=%d: attempts=%d useful=%d accepted=%d improved=%d rejected=%d skipped=%d ar=%.4f best=%.6f",
                exp, stage.attempts, stage.useful, stage.accepted, stage.improved,
                stage.rejected, stage.skipped, stage.acceptance_ratio, st.best_score,
            )
            if cancelled:
                logger.info("search cancelled at E=%d", exp)
                break

        return SearchOutcome(
            best_overhangs=st.best_overhangs,
            best_score=st.best_score,
            final_overhangs=st.overhangs[:],
            final_score=st.score,
            stages=stages,
            improvements=improvements,
            warnings=warnings,
            cancelled=cancelled,
        )

    # ---------------- Calibration ----------------

    def calibrate(self, target: Optional[float] = None) -> CalibrationResult:
        if self.pool.is_degenerate:
            raise ConfigurationError("nothing to calibrate: no junction has more than one candidate")
        calibrator = AnnealingCalibrator(
            lambda e: self.search([e], self.params.calibration_iterations),
            start_exponent=self.params.start_exponent,
            max_steps=self.params.max_calibration_steps,
            tolerance=self.params.calibration_tolerance,
        )
        return calibrator.calibrate(self.params.target_acceptance if target is None else target)

    def _calibrated_schedule(self) -> tuple:
        low = self.calibrate(self.params.target_acceptance)
        if self.params.schedule == SCHEDULE_SINGLE or low.cancelled:
            return [low.exponent], low
        low.high = self.calibrate(self.params.high_acceptance)
        return build_schedule(low.high.exponent, low.exponent), low

    # ---------------- Public API ----------------

    def run(self, init: Optional[Sequence[str]] = None) -> OptimizationResult:
        """Calibrate, anneal and return the best assignment found."""
        init_list = self._validate_init(init) if init is not None else None

        if self.pool.is_degenerate:
            degenerate_warnings: List[Warning] = []
            overhangs = init_list if init_list is not None else self.random_assignment(degenerate_warnings)
            report = self.evaluator.report(overhangs, self._sites(overhangs))
            logger.info("No variable positions; single evaluation: %.6f", report.score)
            self._set_state(OptimizerState.DONE)
            return OptimizationResult(
                report=report,
                state=self.state,
                improvements=[self._record(report.score, overhangs)],
                warnings=degenerate_warnings,
                seed=self.seed,
            )

        self._set_state(OptimizerState.CALIBRATING)
        schedule, calibration = self._calibrated_schedule()
        passes = calibration.passes()
        warnings: List[Warning] = [w for c in passes for w in c.warnings]
        calibration_cancelled = any(c.cancelled for c in passes)
        calibration_best = max(
            (c.best for c in passes if c.best is not None), key=lambda o: o.best_score, default=None,
        )

        search: Optional[SearchOutcome] = None
        if not calibration_cancelled:
            self._set_state(OptimizerState.SEARCHING)
            if init_list is not None:
                start = init_list
            elif calibration_best is not None:
                start = calibration_best.best_overhangs
                logger.info("Starting MC from calibration best %.6f", calibration_best.best_score)
            else:
                start = None
            search = self.search(schedule, self.params.iterations, start)
            warnings.extend(search.warnings)

        candidates = [o for o in (search, calibration_best) if o is not None]
        best = max(candidates, key=lambda o: o.best_score)
        report = self.evaluator.report(best.best_overhangs, self._sites(best.best_overhangs))

        self._set_state(OptimizerState.DONE)
        cancelled = calibration_cancelled or bool(search and search.cancelled)
        logger.info(
            "MC done: score=%.6f fidelity=%.6f schedule=%s iterations=%d cancelled=%s",
            report.score, report.overall, schedule, search.useful_iterations if search else 0, cancelled,
        )
        return OptimizationResult(
            report=report,
            state=self.state,
            calibration=calibration,
            search=search,
            schedule=list(schedule),
            improvements=list(search.improvements) if search else [],
            warnings=warnings,
            cancelled=cancelled,
            seed=self.seed,
        )

    def evaluate(self, overhangs: Sequence[str]) -> FidelityReport:
        return evaluate_assignment(overhangs, self.evaluator, pool=self.pool)

    def sample(self, n: int) -> List[BatchRecord]:
        """Score `n` independent random valid assignments (no search)."""
        if n < 1:
            raise ConfigurationError("batch size must be >= 1")
        records = []
        for _ in range(n):
            overhangs = self.random_assignment()
            records.append(BatchRecord(self.evaluator.evaluate(overhangs), overhangs))
        logger.info("Batch: %s", summarize_batch(records))
        return records


# ---------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------

def evaluate_assignment(
    overhangs: Sequence[str],
    evaluator: FidelityEvaluator,
    pool: Optional[CandidatePool] = None,
) -> FidelityReport:
    """Score one caller-supplied assignment directly (eval mode)."""
    norm = [normalize_overhang(o) for o in overhangs]
    if not norm:
        raise ConfigurationError("assignment is empty")
    size = len(norm[0])
    for o in norm:
        if len(o) != size or not is_dna(o):
            raise ConfigurationError(f"'{o}' is not a valid {size}-nt overhang")
    sites = pool.sites_for(norm) if pool is not None and pool.has_sites and len(pool) == len(norm) else None
    return evaluator.report(norm, sites)


def optimize_replicas(
    pool: CandidatePool,
    evaluator: FidelityEvaluator,
    params: Optional[object] = None,
    *,
    seeds: Sequence[int],
    workers: int = 0,
    init: Optional[Sequence[str]] = None,
    cancel_event: Optional[threading.Event] = None,
) -> tuple:
    """
    Run independent optimizers (own RNG and state each) and keep the best.

    Returns (best_result, all_results) with results in seed order.
    """
    if not seeds:
        raise ConfigurationError("at least one seed is required")

    def run_one(seed: int) -> OptimizationResult:
        opt = MonteCarloOptimizer(pool, evaluator, params, seed=seed, cancel_event=cancel_event)
        return opt.run(init)

    n_workers = workers if workers and workers > 0 else min(len(seeds), 4)
    if n_workers == 1 or len(seeds) == 1:
        results = [run_one(s) for s in seeds]
    else:
        with ThreadPoolExecutor(max_workers=n_workers) as exe:
            results = list(exe.map(run_one, seeds))

    best = max(results, key=lambda r: r.score)
    logger.info(
        "Replicas: %d runs, best seed=%s score=%.6f, scores=%s",
        len(results), best.seed, best.score, [round(r.score, 6) for r in results],
    )
    return best, results


def summarize_batch(records: Sequence[BatchRecord]) -> Dict[str, float]:
    vals = [r.score for r in records]
    if not vals:
        return {"count": 0}
    return {
        "count": len(vals),
        "min": min(vals),
        "max": max(vals),
        "mean": mean(vals),
        "median": median(vals),
        "std": pstdev(vals) if len(vals) > 1 else 0.0,
    }
