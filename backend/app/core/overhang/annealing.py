# File: backend/app/core/overhang/annealing.py
# Version: v0.3.0

"""
Temperature calibration for the Monte Carlo overhang search.

A temperature is an integer exponent e; the Metropolis criterion accepts a
non-improving move with probability exp(-|delta| / scale(e)), where scale is
monotonically increasing in e.

The calibrator runs short, genuine search passes at successive exponents
(starting at `start_exponent`) and walks down while the measured acceptance
ratio is above target, or up while it is below, for at most `max_steps`
steps. The exponent with the smallest |target - ratio| wins. Every pass may
find a better assignment; the best one is returned on the result.

v0.3.0
- `CalibrationResult.high` carries the high-ratio pass of a range schedule.

v0.2.0
- Two-point schedule: calibrate a high and a low ratio and anneal through all
  exponents in between.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .errors import CalibrationWarning
from .models import SearchOutcome

logger = logging.getLogger(__name__)

# Legacy k/N scaling constants. They only set the unit of the temperature
# knob; any positive factor works.
LEGACY_K = 1.38064852e-23
LEGACY_N = 6.02214085e-23
DEFAULT_SCALE_FACTOR = LEGACY_K / LEGACY_N
DEFAULT_SCALE_BASE = 2.0

DEFAULT_TARGET_RATIO = 0.05
DEFAULT_HIGH_RATIO = 0.95
DEFAULT_TRIAL_ITERATIONS = 1000
DEFAULT_MAX_STEPS = 100
DEFAULT_TOLERANCE = 0.03


@dataclass(frozen=True)
class TemperatureScale:
    """scale(e) = factor * base ** e."""
    factor: float = DEFAULT_SCALE_FACTOR
    base: float = DEFAULT_SCALE_BASE

    def __post_init__(self) -> None:
        if self.factor <= 0 or self.base <= 1:
            raise ValueError("TemperatureScale needs factor > 0 and base > 1")

    def scale(self, exponent: int) -> float:
        return self.factor * self.base ** exponent

    def acceptance_probability(self, delta: float, exponent: int) -> float:
        """Metropolis probability for a move of cost |delta| at this exponent."""
        return math.exp(-abs(delta) / self.scale(exponent))


@dataclass(frozen=True)
class CalibrationTrial:
    exponent: int
    acceptance_ratio: float
    distance: float


@dataclass
class CalibrationResult:
    exponent: int
    target: float
    trials: List[CalibrationTrial] = field(default_factory=list)
    converged: bool = False
    best: Optional[SearchOutcome] = None
    warnings: List[Warning] = field(default_factory=list)
    cancelled: bool = False
    # high-ratio calibration of a range schedule, kept apart from `trials`
    high: Optional["CalibrationResult"] = None

    def passes(self) -> List["CalibrationResult"]:
        return [self] if self.high is None else [self.high, self]

    @property
    def steps(self) -> int:
        return max(0, len(self.trials) - 1)

    @property
    def chosen(self) -> Optional[CalibrationTrial]:
        for t in self.trials:
            if t.exponent == self.exponent:
                return t
        return None


TrialRunner = Callable[[int], SearchOutcome]


class AnnealingCalibrator:
    """Finds the exponent whose acceptance ratio is closest to a target."""

    def __init__(
        self,
        run_trial: TrialRunner,
        *,
        start_exponent: int = 0,
        max_steps: int = DEFAULT_MAX_STEPS,
        tolerance: float = DEFAULT_TOLERANCE,
    ):
        self.run_trial = run_trial
        self.start_exponent = int(start_exponent)
        self.max_steps = int(max_steps)
        self.tolerance = float(tolerance)

    def calibrate(self, target: float = DEFAULT_TARGET_RATIO) -> CalibrationResult:
        if not 0.0 <= target <= 1.0:
            raise ValueError(f"target acceptance ratio must be in [0,1], got {target}")

        result = CalibrationResult(exponent=self.start_exponent, target=target)
        logger.info("Calibration: target acceptance ratio %.3f", target)

        def trial(exp: int) -> float:
            outcome = self.run_trial(exp)
            ratio = outcome.acceptance_ratio
            result.trials.append(CalibrationTrial(exp, ratio, abs(target - ratio)))
            if result.best is None or outcome.best_score > result.best.best_score:
                result.best = outcome
            result.warnings.extend(outcome.warnings)
            result.cancelled = result.cancelled or outcome.cancelled
            logger.info("  E=%d -> acceptance ratio %.4f", exp, ratio)
            return ratio

        ratio = trial(self.start_exponent)
        crossed = ratio == target
        exp = self.start_exponent
        steps = 0

        if ratio > target:
            logger.info("Lowering E...")
            while not result.cancelled and steps < self.max_steps:
                exp -= 1
                steps += 1
                ratio = trial(exp)
                if ratio <= target:
                    crossed = True
                    break
        elif ratio < target:
            logger.info("Raising E...")
            while not result.cancelled and steps < self.max_steps:
                exp += 1
                steps += 1
                ratio = trial(exp)
                if ratio >= target:
                    crossed = True
                    break

        # first-tried exponent wins ties
        closest = min(result.trials, key=lambda t: t.distance)
        result.exponent = closest.exponent
        result.converged = crossed and closest.distance <= self.tolerance

        if not result.converged and not result.cancelled:
            w = CalibrationWarning(target, closest.exponent, closest.acceptance_ratio, steps)
            result.warnings.append(w)
            logger.warning("%s", w)
        logger.info(
            "Calibration done: E=%d ratio=%.4f (target %.3f, steps=%d, converged=%s)",
            closest.exponent, closest.acceptance_ratio, target, steps, result.converged,
        )
        return result


def build_schedule(high: int, low: int) -> List[int]:
    """Descending integer exponents from high down to low (inclusive)."""
    if high < low:
        high, low = low, high
    return list(range(high, low - 1, -1))


__all__ = [
    "DEFAULT_SCALE_FACTOR",
    "DEFAULT_SCALE_BASE",
    "DEFAULT_TARGET_RATIO",
    "DEFAULT_HIGH_RATIO",
    "DEFAULT_TRIAL_ITERATIONS",
    "DEFAULT_MAX_STEPS",
    "DEFAULT_TOLERANCE",
    "TemperatureScale",
    "CalibrationTrial",
    "CalibrationResult",
    "AnnealingCalibrator",
    "build_schedule",
]
