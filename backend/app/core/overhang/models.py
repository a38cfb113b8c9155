# File: backend/app/core/overhang/models.py
# Version: v0.1.0

"""
Result and state types shared by the calibrator and the Monte Carlo optimizer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class OptimizerState(str, Enum):
    IDLE = "idle"
    CALIBRATING = "calibrating"
    SEARCHING = "searching"
    DONE = "done"


class DrawOutcome(str, Enum):
    """Result of drawing an overhang that must not collide with the current set."""
    ACCEPTED = "accepted"
    FORCED_DUPLICATE = "forced_duplicate"
    REJECTED = "rejected"


@dataclass(frozen=True)
class DrawResult:
    overhang: str
    outcome: DrawOutcome
    attempts: int


@dataclass(frozen=True)
class ImprovementRecord:
    """One line of the improving-solution stream: score, overhangs[, sites]."""
    score: float
    overhangs: List[str]
    sites: List[Optional[int]] = field(default_factory=list)

    def as_row(self) -> List[str]:
        row = [f"{self.score:.15f}", *self.overhangs]
        if any(s is not None for s in self.sites):
            row.extend("" if s is None else str(s) for s in self.sites)
        return row


@dataclass
class StageResult:
    exponent: int
    attempts: int = 0
    useful: int = 0
    accepted: int = 0
    improved: int = 0
    rejected: int = 0
    skipped: int = 0

    @property
    def acceptance_ratio(self) -> float:
        """Accepted moves over attempted trials (skipped duplicate draws count as attempts)."""
        return self.accepted / self.attempts if self.attempts else 0.0


@dataclass
class SearchOutcome:
    """Everything one annealing pass produced; returned instead of mutating shared state."""
    best_overhangs: List[str]
    best_score: float
    final_overhangs: List[str]
    final_score: float
    stages: List[StageResult] = field(default_factory=list)
    improvements: List[ImprovementRecord] = field(default_factory=list)
    warnings: List[Warning] = field(default_factory=list)
    cancelled: bool = False

    @property
    def useful_iterations(self) -> int:
        return sum(s.useful for s in self.stages)

    @property
    def acceptance_ratio(self) -> float:
        return self.stages[-1].acceptance_ratio if self.stages else 0.0


@dataclass(frozen=True)
class BatchRecord:
    score: float
    overhangs: List[str]

    def as_row(self) -> List[str]:
        return [f"{self.score:.15f}", *self.overhangs]


__all__ = [
    "OptimizerState",
    "DrawOutcome",
    "DrawResult",
    "ImprovementRecord",
    "StageResult",
    "SearchOutcome",
    "BatchRecord",
]
