# File: backend/app/core/export/overhang_exporter.py
# Version: v0.1.2

"""
Writers for optimizer output:
- improvement/eval records as CSV lines: fidelity, overhang_1..N[, site_1..N]
- batch_scoring.csv (one random assignment per line)
- result.json with per-junction fidelities and run statistics
"""

from __future__ import annotations

import csv
import io
import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Sequence

from backend.app.core.overhang.annealing import CalibrationResult
from backend.app.core.overhang.errors import format_warnings
from backend.app.core.overhang.fidelity import FidelityReport
from backend.app.core.overhang.models import BatchRecord, ImprovementRecord
from backend.app.core.overhang.optimizer import OptimizationResult, summarize_batch

BATCH_FILENAME = "batch_scoring.csv"
BATCH_SUMMARY_FILENAME = "batch_summary.json"
RESULT_FILENAME = "result.json"


def format_row(row: Sequence[str]) -> str:
    """Join one record as a CSV line (no trailing newline)."""
    buf = io.StringIO()
    csv.writer(buf, lineterminator="").writerow(list(row))
    return buf.getvalue()


def report_row(report: FidelityReport) -> List[str]:
    row = [f"{report.score:.15f}", *report.overhangs]
    if any(s is not None for s in report.sites):
        row.extend("" if s is None else str(s) for s in report.sites)
    return row


def improvement_lines(records: Iterable[ImprovementRecord]) -> List[str]:
    return [format_row(r.as_row()) for r in records]


def write_batch_csv(records: Sequence[BatchRecord], path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8") as fh:
        w = csv.writer(fh)
        for rec in records:
            w.writerow(rec.as_row())
    return path


def _calibration_dict(cal: CalibrationResult) -> Dict[str, Any]:
    return {
        "exponent": cal.exponent,
        "target": cal.target,
        "converged": cal.converged,
        "trials": [
            {"exponent": t.exponent, "acceptance_ratio": t.acceptance_ratio, "distance": t.distance}
            for t in cal.trials
        ],
    }


def result_to_dict(result: OptimizationResult) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "state": result.state.value,
        "seed": result.seed,
        "cancelled": result.cancelled,
        "schedule": list(result.schedule),
        "search_iterations": result.search_iterations,
        "result": result.report.as_dict(),
        "improvements": [r.as_row() for r in result.improvements],
        "warnings": format_warnings(result.warnings),
    }
    if result.calibration is not None:
        payload["calibration"] = _calibration_dict(result.calibration)
        if result.calibration.high is not None:
            payload["high_calibration"] = _calibration_dict(result.calibration.high)
    if result.search is not None:
        payload["stages"] = [
            {
                "exponent": s.exponent,
                "attempts": s.attempts,
                "useful": s.useful,
                "accepted": s.accepted,
                "improved": s.improved,
                "rejected": s.rejected,
                "skipped": s.skipped,
                "acceptance_ratio": s.acceptance_ratio,
            }
            for s in result.search.stages
        ]
    return payload


def write_result_json(result: OptimizationResult, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(result_to_dict(result), indent=2), encoding="utf-8")
    return path


def batch_summary_json(records: Sequence[BatchRecord], path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(summarize_batch(records), indent=2), encoding="utf-8")
    return path
