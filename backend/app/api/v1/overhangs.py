# File: backend/app/api/v1/overhangs.py
# Version: v0.2.1
"""
Overhang optimizer endpoints (synchronous; sized for interactive runs):
- GET  /overhangs/matrices   ← available ligation matrices
- POST /overhangs/evaluate   ← score one assignment (per-junction fidelities)
- POST /overhangs/optimize   ← calibrate + anneal
- POST /overhangs/batch      ← random valid assignments and their distribution
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, HTTPException

from backend.app.config.config_optimizer import OptimizerConfig
from backend.app.core.overhang.annealing import DEFAULT_MAX_STEPS
from backend.app.core.config import settings
from backend.app.core.overhang.errors import (
    ConfigurationError,
    MatrixLoadError,
    OverhangOptimizerError,
    format_warnings,
)
from backend.app.core.overhang.fidelity import FidelityReport, JunctionFidelity
from backend.app.core.overhang.ligation_matrix import LigationMatrix, load_ligation_matrix
from backend.app.core.overhang.optimizer import SCHEDULE_SINGLE, summarize_batch
from backend.app.schemas.overhangs import (
    BatchRequest,
    BatchResponse,
    CalibrationOut,
    EvaluateRequest,
    FidelityOut,
    JunctionFidelityOut,
    MatrixInfo,
    OptimizeRequest,
    OptimizeResponse,
)
from backend.app.services.overhang_runs import run_batch, run_eval, run_optimization

router = APIRouter(prefix="/overhangs", tags=["overhangs"])
log = logging.getLogger(__name__)


@lru_cache(maxsize=16)
def _load_cached(path: str, mtime: float) -> LigationMatrix:
    return load_ligation_matrix(path)


def get_matrix(name: Optional[str]) -> LigationMatrix:
    if name and (Path(name).name != name or name.startswith(".")):
        raise HTTPException(status_code=400, detail=f"Invalid matrix name: {name!r}")
    path = settings.matrix_path(name)
    if not path.is_file():
        raise HTTPException(status_code=404, detail=f"Ligation matrix '{name or settings.DEFAULT_MATRIX}' not found.")
    try:
        return _load_cached(str(path), path.stat().st_mtime)
    except MatrixLoadError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _config(payload) -> OptimizerConfig:
    try:
        return OptimizerConfig.from_dict(payload.to_config_dict())
    except (ValueError, KeyError) as e:
        raise HTTPException(status_code=400, detail=str(e))


def _junction_out(j: Optional[JunctionFidelity]) -> Optional[JunctionFidelityOut]:
    if j is None:
        return None
    return JunctionFidelityOut(
        index=j.index, overhang=j.overhang, partner=j.partner,
        correct=j.correct, total=j.total, fidelity=j.fidelity,
    )


def _fidelity_out(report: FidelityReport) -> FidelityOut:
    return FidelityOut(
        fidelity=report.overall,
        score=report.score,
        minimize=report.minimize,
        overhangs=report.overhangs,
        sites=report.sites,
        junctions=[_junction_out(j) for j in report.junctions],
        lowestJunction=_junction_out(report.lowest),
    )


@router.get("/matrices", response_model=List[MatrixInfo])
def list_matrices():
    """List ligation matrices found in MATRIX_DIR."""
    out: List[MatrixInfo] = []
    for p in sorted(Path(settings.MATRIX_DIR).glob("*.csv")):
        try:
            m = _load_cached(str(p), p.stat().st_mtime)
        except MatrixLoadError as e:
            log.warning("skipping unreadable matrix %s: %s", p, e)
            continue
        out.append(MatrixInfo(name=p.stem, overhangs=len(m), overhangSize=m.overhang_size))
    return out


@router.post("/evaluate", response_model=FidelityOut)
def evaluate(payload: EvaluateRequest):
    """Score one assignment against the selected matrix."""
    matrix = get_matrix(payload.matrix)
    cfg = _config_from_eval(payload)
    try:
        report = run_eval(matrix, cfg, payload.overhangs)
    except (OverhangOptimizerError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _fidelity_out(report)


def _config_from_eval(payload: EvaluateRequest) -> OptimizerConfig:
    try:
        return OptimizerConfig.from_dict({"mismatch": payload.mismatch, "minimize": payload.minimize})
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def calibration_trial_budget(cfg: OptimizerConfig) -> int:
    """Worst-case useful calibration trials for one request (every replica walks all steps)."""
    passes = 1 if cfg.schedule == SCHEDULE_SINGLE else 2
    return cfg.calibration_iter * (DEFAULT_MAX_STEPS + 1) * passes * cfg.replicas


@router.post("/optimize", response_model=OptimizeResponse)
def optimize(payload: OptimizeRequest):
    """Calibrate the temperature and run the annealed search."""
    matrix = get_matrix(payload.matrix)
    cfg = _config(payload)
    if cfg.iter * cfg.replicas > settings.API_MAX_ITERATIONS:
        raise HTTPException(status_code=400, detail=f"iterations x replicas exceeds {settings.API_MAX_ITERATIONS}.")
    if calibration_trial_budget(cfg) > settings.API_MAX_CALIBRATION_TRIALS:
        raise HTTPException(
            status_code=400,
            detail=f"calibrationIterations x calibration steps x replicas exceeds {settings.API_MAX_CALIBRATION_TRIALS}.",
        )
    if cfg.seed is None and settings.DEFAULT_SEED is not None:
        cfg = cfg.merged(seed=settings.DEFAULT_SEED)
    try:
        run = run_optimization(matrix, cfg, reference_sequence=payload.referenceSequence)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except OverhangOptimizerError as e:
        raise HTTPException(status_code=422, detail=str(e))

    res = run.result
    cal = res.calibration
    return OptimizeResponse(
        result=_fidelity_out(res.report),
        pool=[list(j.candidates) for j in run.pool],
        schedule=res.schedule,
        calibration=CalibrationOut(
            exponent=cal.exponent, target=cal.target, converged=cal.converged, steps=cal.steps,
            highExponent=cal.high.exponent if cal.high is not None else None,
        ) if cal is not None else None,
        searchIterations=res.search_iterations,
        improvements=[r.as_row() for r in res.improvements],
        replicaScores=[r.score for r in run.replicas],
        warnings=format_warnings(res.warnings),
    )


@router.post("/batch", response_model=BatchResponse)
def batch(payload: BatchRequest):
    """Score N random constraint-valid assignments (no search)."""
    if payload.n > settings.API_MAX_BATCH:
        raise HTTPException(status_code=400, detail=f"n exceeds {settings.API_MAX_BATCH}.")
    matrix = get_matrix(payload.matrix)
    cfg = _config(payload)
    try:
        _, records = run_batch(matrix, cfg, payload.n, reference_sequence=payload.referenceSequence)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except OverhangOptimizerError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return BatchResponse(records=[r.as_row() for r in records], summary=summarize_batch(records))
