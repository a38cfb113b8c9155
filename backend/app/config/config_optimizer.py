# File: backend/app/config/config_optimizer.py
# Version: v0.2.0

"""
Run configuration loader for the overhang optimizer (attribute-access view).

JSON keys (all optional unless noted):

    {
      "size": 10,                    # junction count (or use "olist")
      "olist": ["AATG", "ALL", "S:100-140", "GCTT,TACT"],
      "overhang_size": 4,
      "mle": 100,                    # minimum ligation efficiency
      "maxgc": 3, "maxat": 3,
      "ar": 0.05,                    # target acceptance ratio
      "iter": 1000,                  # iterations per stage
      "calibration_iter": 1000,
      "exclude": ["AAAA", "GGCC"],
      "mismatch": ["GT"],
      "minimize": false,
      "init": ["AATG", "..."],
      "seqfile": "ref.fasta",
      "prmfile": "sites.prm",
      "seed": 7,
      "schedule": "single",          # or "range"
      "duplicate_policy": "force",   # or "raise"
      "replicas": 1,
      "workers": 0
    }

v0.2.0
- `merged(**overrides)` so CLI flags override file values (None = keep).
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

from backend.app.core.overhang.candidate_pool import DEFAULT_OVERHANG_SIZE, PoolFilters
from backend.app.core.overhang.optimizer import (
    DUPLICATE_FORCE,
    ITERATIONS_PER_STAGE,
    SCHEDULE_SINGLE,
    OptimizerParameters,
)
from backend.app.core.overhang.sequence_utils import split_overhang_list


def _opt_int(v: Any) -> Optional[int]:
    if v is None or v == -1:
        return None
    return int(v)


def _opt_float(v: Any) -> Optional[float]:
    if v is None or v == -1:
        return None
    return float(v)


def _str_list(v: Any) -> List[str]:
    if v is None:
        return []
    if isinstance(v, str):
        return [v]
    return [str(x) for x in v]


@dataclass(frozen=True)
class OptimizerConfig:
    size: Optional[int] = None
    olist: List[str] = field(default_factory=list)
    overhang_size: int = DEFAULT_OVERHANG_SIZE
    mle: Optional[float] = None
    maxgc: Optional[int] = None
    maxat: Optional[int] = None
    ar: float = 0.05
    iter: int = ITERATIONS_PER_STAGE
    calibration_iter: int = 1000
    exclude: List[str] = field(default_factory=list)
    mismatch: List[str] = field(default_factory=list)
    minimize: bool = False
    init: Optional[List[str]] = None
    seqfile: Optional[str] = None
    prmfile: Optional[str] = None
    seed: Optional[int] = None
    schedule: str = SCHEDULE_SINGLE
    duplicate_policy: str = DUPLICATE_FORCE
    replicas: int = 1
    workers: int = 0

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "OptimizerConfig":
        # -1 is the legacy "unset" marker for numeric thresholds
        init = d.get("init")
        cfg = cls(
            size=_opt_int(d.get("size")),
            olist=_str_list(d.get("olist")),
            overhang_size=int(d.get("overhang_size", DEFAULT_OVERHANG_SIZE)),
            mle=_opt_float(d.get("mle")),
            maxgc=_opt_int(d.get("maxgc")),
            maxat=_opt_int(d.get("maxat")),
            ar=float(d.get("ar", 0.05)),
            iter=int(d.get("iter", ITERATIONS_PER_STAGE)),
            calibration_iter=int(d.get("calibration_iter", 1000)),
            exclude=split_overhang_list(d.get("exclude")),
            mismatch=_str_list(d.get("mismatch")),
            minimize=bool(d.get("minimize", False)),
            init=split_overhang_list(init) if init else None,
            seqfile=d.get("seqfile"),
            prmfile=d.get("prmfile"),
            seed=int(d["seed"]) if d.get("seed") is not None else None,
            schedule=str(d.get("schedule", SCHEDULE_SINGLE)),
            duplicate_policy=str(d.get("duplicate_policy", DUPLICATE_FORCE)),
            replicas=int(d.get("replicas", 1)),
            workers=int(d.get("workers", 0)),
        )
        cfg.validate()
        return cfg

    @classmethod
    def from_json_file(cls, path: Path | str) -> "OptimizerConfig":
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError("optimizer config must be a JSON object")
        return cls.from_dict(data)

    def validate(self) -> None:
        if self.overhang_size <= 0:
            raise ValueError(f"overhang_size must be > 0, got {self.overhang_size}")
        if self.size is not None and self.size <= 0:
            raise ValueError(f"size must be > 0, got {self.size}")
        if not 0.0 <= self.ar <= 1.0:
            raise ValueError(f"ar must be in [0,1], got {self.ar}")
        if self.iter <= 0 or self.calibration_iter <= 0:
            raise ValueError("iter and calibration_iter must be > 0")
        if self.replicas <= 0:
            raise ValueError("replicas must be >= 1")

    def merged(self, **overrides: Any) -> "OptimizerConfig":
        """Copy with non-None overrides applied (CLI flags win over the file)."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        cfg = replace(self, **changes)
        cfg.validate()
        return cfg

    # ---- Views used by the optimizer ----

    def pool_filters(self) -> PoolFilters:
        return PoolFilters(
            overhang_size=self.overhang_size,
            min_ligation_efficiency=self.mle,
            max_gc=self.maxgc,
            max_at=self.maxat,
            exclude=frozenset(self.exclude),
        )

    def optimizer_params(self) -> OptimizerParameters:
        return OptimizerParameters(
            iterations=self.iter,
            calibration_iterations=self.calibration_iter,
            target_acceptance=self.ar,
            schedule=self.schedule,
            duplicate_policy=self.duplicate_policy,
            minimize=self.minimize,
        )


def load_optimizer_config(path: Optional[Path | str]) -> OptimizerConfig:
    """Load a JSON run configuration; defaults when `path` is None."""
    if path is None:
        return OptimizerConfig()
    return OptimizerConfig.from_json_file(path)


__all__ = ["OptimizerConfig", "load_optimizer_config"]
