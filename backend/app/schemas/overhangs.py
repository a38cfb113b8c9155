# File: backend/app/schemas/overhangs.py
# Version: v0.2.0
"""
DTOs for the overhang optimizer endpoints.

Requests mirror the CLI options (camelCase); `referenceSequence` replaces the
CLI's --seqfile for window specs ('S:start-end').
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, conint, confloat


class RunOptions(BaseModel):
    """Options shared by optimize and batch requests."""
    matrix: Optional[str] = Field(None, description="Matrix name under MATRIX_DIR (without .csv)")
    size: Optional[conint(ge=1)] = Field(None, description="Number of junctions")
    olist: List[str] = Field(default_factory=list, description="Per-junction specs: 'ALL', 'S:a-b' or comma list")
    overhangSize: conint(ge=1) = 4
    mle: Optional[confloat(ge=0)] = Field(None, description="Minimum ligation efficiency")
    maxGc: Optional[conint(ge=0)] = None
    maxAt: Optional[conint(ge=0)] = None
    exclude: List[str] = Field(default_factory=list)
    mismatch: List[str] = Field(default_factory=list, description="Mismatch pairs to ignore, e.g. ['GT']")
    minimize: bool = False
    referenceSequence: Optional[str] = None
    seed: Optional[int] = None

    def to_config_dict(self) -> Dict[str, Any]:
        return {
            "size": self.size,
            "olist": self.olist,
            "overhang_size": self.overhangSize,
            "mle": self.mle,
            "maxgc": self.maxGc,
            "maxat": self.maxAt,
            "exclude": self.exclude,
            "mismatch": self.mismatch,
            "minimize": self.minimize,
            "seed": self.seed,
        }


class OptimizeRequest(RunOptions):
    targetAcceptance: confloat(ge=0, le=1) = 0.05
    iterations: conint(ge=1) = 1000
    calibrationIterations: conint(ge=1) = 1000
    schedule: Literal["single", "range"] = "single"
    duplicatePolicy: Literal["force", "raise"] = "force"
    init: Optional[List[str]] = None
    replicas: conint(ge=1, le=16) = 1

    def to_config_dict(self) -> Dict[str, Any]:
        d = super().to_config_dict()
        d.update(
            ar=self.targetAcceptance,
            iter=self.iterations,
            calibration_iter=self.calibrationIterations,
            schedule=self.schedule,
            duplicate_policy=self.duplicatePolicy,
            init=self.init,
            replicas=self.replicas,
        )
        return d


class BatchRequest(RunOptions):
    n: conint(ge=1) = 200
    duplicatePolicy: Literal["force", "raise"] = "force"

    def to_config_dict(self) -> Dict[str, Any]:
        d = super().to_config_dict()
        d["duplicate_policy"] = self.duplicatePolicy
        return d


class EvaluateRequest(BaseModel):
    matrix: Optional[str] = None
    overhangs: List[str] = Field(..., min_length=1)
    mismatch: List[str] = Field(default_factory=list)
    minimize: bool = False


class JunctionFidelityOut(BaseModel):
    index: int
    overhang: str
    partner: str
    correct: float
    total: float
    fidelity: float


class FidelityOut(BaseModel):
    fidelity: float
    score: float
    minimize: bool
    overhangs: List[str]
    sites: List[Optional[int]] = Field(default_factory=list)
    junctions: List[JunctionFidelityOut]
    lowestJunction: Optional[JunctionFidelityOut] = None


class CalibrationOut(BaseModel):
    exponent: int
    target: float
    converged: bool
    steps: int
    highExponent: Optional[int] = None


class OptimizeResponse(BaseModel):
    result: FidelityOut
    pool: List[List[str]]
    schedule: List[int]
    calibration: Optional[CalibrationOut] = None
    searchIterations: int
    improvements: List[List[str]]
    replicaScores: List[float] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class BatchResponse(BaseModel):
    records: List[List[str]]
    summary: Dict[str, float]


class MatrixInfo(BaseModel):
    name: str
    overhangs: int
    overhangSize: int
