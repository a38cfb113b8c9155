# File: backend/app/services/overhang_runs.py
# Version: v0.2.0
"""
Wiring between a run configuration and the optimizer core.

Used by both the CLI and the API so the two surfaces resolve junction specs,
positional parameter files, reference sequences and replicas identically.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from backend.app.config.config_optimizer import OptimizerConfig
from backend.app.core.overhang.candidate_pool import CandidatePool, CandidatePoolBuilder
from backend.app.core.overhang.fidelity import FidelityEvaluator, FidelityReport
from backend.app.core.overhang.ligation_matrix import (
    LigationMatrix,
    MismatchIgnoreTable,
    parse_mismatch_pairs,
)
from backend.app.core.overhang.models import BatchRecord
from backend.app.core.overhang.optimizer import (
    MonteCarloOptimizer,
    OptimizationResult,
    evaluate_assignment,
    optimize_replicas,
)
from backend.app.core.overhang.position_params import load_positional_params
from backend.app.core.overhang.sequence_utils import load_reference_sequence

logger = logging.getLogger(__name__)


@dataclass
class OptimizationRun:
    pool: CandidatePool
    result: OptimizationResult
    replicas: List[OptimizationResult]


def build_evaluator(matrix: LigationMatrix, cfg: OptimizerConfig) -> FidelityEvaluator:
    ignore = MismatchIgnoreTable(parse_mismatch_pairs(cfg.mismatch))
    return FidelityEvaluator(matrix, ignore, minimize=cfg.minimize)


def build_pool(
    matrix: LigationMatrix,
    cfg: OptimizerConfig,
    *,
    reference_sequence: Optional[str] = None,
) -> CandidatePool:
    """Resolve junction pools from a positional parameter file or from size/olist specs."""
    if cfg.prmfile:
        prm = load_positional_params(cfg.prmfile, overhang_size=cfg.overhang_size)
        builder = CandidatePoolBuilder(matrix, cfg.pool_filters(), prm.sequence)
        return builder.build_from_sites(prm.raw_pools)

    sequence = reference_sequence
    if sequence is None and cfg.seqfile:
        sequence = load_reference_sequence(cfg.seqfile)
        logger.info("Reference sequence %s: %d bp", cfg.seqfile, len(sequence))
    builder = CandidatePoolBuilder(matrix, cfg.pool_filters(), sequence)
    return builder.build(cfg.size, cfg.olist)


def _seeds(cfg: OptimizerConfig) -> List[int]:
    base = cfg.seed if cfg.seed is not None else 0
    return [base + i for i in range(cfg.replicas)]


def run_optimization(
    matrix: LigationMatrix,
    cfg: OptimizerConfig,
    *,
    reference_sequence: Optional[str] = None,
    cancel_event: Optional[threading.Event] = None,
) -> OptimizationRun:
    pool = build_pool(matrix, cfg, reference_sequence=reference_sequence)
    evaluator = build_evaluator(matrix, cfg)
    params = cfg.optimizer_params()

    if cfg.replicas > 1:
        best, results = optimize_replicas(
            pool, evaluator, params,
            seeds=_seeds(cfg), workers=cfg.workers, init=cfg.init, cancel_event=cancel_event,
        )
        return OptimizationRun(pool=pool, result=best, replicas=results)

    opt = MonteCarloOptimizer(pool, evaluator, params, seed=cfg.seed, cancel_event=cancel_event)
    result = opt.run(cfg.init)
    return OptimizationRun(pool=pool, result=result, replicas=[result])


def run_batch(
    matrix: LigationMatrix,
    cfg: OptimizerConfig,
    n: int,
    *,
    reference_sequence: Optional[str] = None,
) -> Tuple[CandidatePool, List[BatchRecord]]:
    pool = build_pool(matrix, cfg, reference_sequence=reference_sequence)
    opt = MonteCarloOptimizer(pool, build_evaluator(matrix, cfg), cfg.optimizer_params(), seed=cfg.seed)
    return pool, opt.sample(n)


def run_eval(matrix: LigationMatrix, cfg: OptimizerConfig, overhangs: Sequence[str]) -> FidelityReport:
    return evaluate_assignment(overhangs, build_evaluator(matrix, cfg))
