# File: backend/app/cli/optimize_cli.py
# Version: v0.3.0
"""
Command-line interface for the overhang fidelity optimizer.

Modes:
  • optimize (default): print the candidate pool, calibrate, anneal and print
    improving solutions as `fidelity,overhang_1..N[,site_1..N]`
  • --eval LIST: score one comma-separated assignment
  • --batch N:   score N random valid assignments into batch_scoring.csv

Usage:
    python -m backend.app.cli.optimize_cli matrix.csv --size 10 --mle 200 --seed 7
    python -m backend.app.cli.optimize_cli matrix.csv --olist AATG --olist ALL --olist S:120-160 \
        --seqfile ref.fasta --outdir out/
    python -m backend.app.cli.optimize_cli matrix.csv --eval AATG,GCTT,TACT

v0.3.0
- JSON run config (--config); flags override file values.
- --replicas/--workers run independent seeds and keep the best.

v0.2.0
- Backward compatible logging flag: accept both --log-level and legacy --log.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from backend.app.config.config_optimizer import load_optimizer_config
from backend.app.core.export.overhang_exporter import (
    BATCH_FILENAME,
    BATCH_SUMMARY_FILENAME,
    RESULT_FILENAME,
    batch_summary_json,
    format_row,
    improvement_lines,
    report_row,
    write_batch_csv,
    write_result_json,
)
from backend.app.core.overhang.errors import OverhangOptimizerError
from backend.app.core.overhang.ligation_matrix import load_ligation_matrix
from backend.app.core.overhang.optimizer import summarize_batch
from backend.app.core.overhang.sequence_utils import split_overhang_list
from backend.app.services.overhang_runs import run_batch, run_eval, run_optimization


def _split_multi(values: Optional[List[str]]) -> Optional[List[str]]:
    if not values:
        return None
    return split_overhang_list(values)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Overhang set fidelity optimizer")
    p.add_argument("matrix", type=Path, help="Ligation frequency matrix (CSV)")
    p.add_argument("--config", type=Path, help="JSON run configuration (flags override)")
    p.add_argument("--size", type=int, help="Number of junctions")
    p.add_argument("--olist", action="append",
                   help="Junction spec (repeatable): 'ALL', 'S:start-end' or 'AATG,GCTT,...'")
    p.add_argument("--overhang-size", dest="overhang_size", type=int, help="Overhang size (default 4)")
    p.add_argument("--mle", type=float, help="Minimum ligation efficiency M[o][rc(o)]")
    p.add_argument("--maxgc", type=int, help="Maximum GC count per overhang")
    p.add_argument("--maxat", type=int, help="Maximum AT count per overhang")
    p.add_argument("--ar", type=float, help="Target acceptance ratio (default 0.05)")
    p.add_argument("--iter", type=int, help="Iterations per annealing stage (default 1000)")
    p.add_argument("--calibration-iter", dest="calibration_iter", type=int,
                   help="Iterations per calibration trial (default 1000)")
    p.add_argument("--exclude", action="append", help="Comma-separated overhangs to discard (repeatable)")
    p.add_argument("--mismatch", action="append", help="Comma-separated mismatches to ignore, e.g. GT (repeatable)")
    p.add_argument("--minimize", action="store_true", default=None,
                   help="Minimize ligation fidelity instead of maximizing")
    p.add_argument("--init", help="Comma-separated overhangs to initialize the search")
    p.add_argument("--seqfile", help="Reference FASTA for S:start-end junction specs")
    p.add_argument("--prmfile", help="Positional parameter file (per-junction windows)")
    p.add_argument("--seed", type=int, help="RNG seed")
    p.add_argument("--schedule", choices=["single", "range"], help="Annealing schedule")
    p.add_argument("--duplicate-policy", dest="duplicate_policy", choices=["force", "raise"],
                   help="What to do when no unique overhang can be drawn")
    p.add_argument("--replicas", type=int, help="Independent runs (different seeds); best is kept")
    p.add_argument("--workers", type=int, help="Worker threads for replicas (0 = auto)")
    p.add_argument("--eval", dest="eval_list", help="Evaluate a single comma-separated solution")
    p.add_argument("--batch", type=int, default=0, help="Score N randomly picked overhang sets")
    p.add_argument("--outdir", type=Path, help="Write result.json / batch_scoring.csv here")
    p.add_argument("--log-level", dest="log_level", default="WARNING",
                   choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                   help="Logging level (default: WARNING)")
    p.add_argument("--log", dest="log_level", choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                   help=argparse.SUPPRESS)
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(level=getattr(logging, args.log_level))
    log = logging.getLogger("optimize_cli")

    try:
        cfg = load_optimizer_config(args.config).merged(
            size=args.size,
            olist=args.olist,
            overhang_size=args.overhang_size,
            mle=args.mle,
            maxgc=args.maxgc,
            maxat=args.maxat,
            ar=args.ar,
            iter=args.iter,
            calibration_iter=args.calibration_iter,
            exclude=_split_multi(args.exclude),
            mismatch=args.mismatch,
            minimize=args.minimize,
            init=split_overhang_list(args.init) if args.init else None,
            seqfile=args.seqfile,
            prmfile=args.prmfile,
            seed=args.seed,
            schedule=args.schedule,
            duplicate_policy=args.duplicate_policy,
            replicas=args.replicas,
            workers=args.workers,
        )
        log.info("MATRIX=%s | CONFIG=%s | OUTDIR=%s", args.matrix, args.config, args.outdir)

        matrix = load_ligation_matrix(args.matrix)

        if args.eval_list:
            report = run_eval(matrix, cfg, split_overhang_list(args.eval_list))
            print(format_row(report_row(report)))
            return 0

        if args.batch > 0:
            _, records = run_batch(matrix, cfg, args.batch)
            out = (args.outdir or Path(".")) / BATCH_FILENAME
            write_batch_csv(records, out)
            batch_summary_json(records, out.with_name(BATCH_SUMMARY_FILENAME))
            stats = summarize_batch(records)
            print(f"[OK] Wrote {out} ({len(records)} sets; max={stats['max']:.6f} mean={stats['mean']:.6f})")
            return 0

        run = run_optimization(matrix, cfg)

        print("List of overhangs")
        for line in run.pool.dump_lines():
            print(line)
        print("")
        for line in improvement_lines(run.result.improvements):
            print(line)
        print(format_row(report_row(run.result.report)))

        for w in run.result.warnings:
            print(f"[WARNING] {w}", file=sys.stderr)

        if args.outdir:
            path = write_result_json(run.result, args.outdir / RESULT_FILENAME)
            log.info("Result written: %s", path)
        return 0

    except (OverhangOptimizerError, ValueError, KeyError, OSError) as ex:
        print(f"[ERROR] {ex}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
