# File: backend/app/core/overhang/errors.py
# Version: v0.1.0

"""
Exceptions and warning types raised by the overhang optimizer.

Fatal configuration problems raise; recoverable conditions are recorded on
the result objects as warning instances so callers can decide what to do.
"""

from __future__ import annotations

from typing import Dict, List, Optional


class OverhangOptimizerError(RuntimeError):
    """Base class for all optimizer failures."""


class MatrixLoadError(OverhangOptimizerError):
    """Ligation matrix file is unreadable or malformed."""


class ConfigurationError(OverhangOptimizerError, ValueError):
    """Invalid run configuration (junction specs, overhang lists, options)."""


class NoOverhangCandidatesError(ConfigurationError):
    """Raised when a junction has zero candidate overhangs after filtering."""
    def __init__(self, junction_index: int, spec: str, reasons: Dict[str, int]):
        self.junction_index = junction_index
        self.spec = spec
        self.reasons = dict(sorted(reasons.items(), key=lambda kv: kv[1], reverse=True))
        super().__init__(
            f"junction {junction_index} ('{spec}') has no candidate overhangs: {self.formatted_reasons()}"
        )

    def formatted_reasons(self) -> str:
        if not any(self.reasons.values()):
            return "no candidates (no reason counters recorded)"
        return ", ".join(f"{k}:{v}" for k, v in self.reasons.items() if v)


class InitialAssignmentError(ConfigurationError):
    """Initial assignment does not match the junction count."""
    def __init__(self, expected: int, got: int):
        self.expected = expected
        self.got = got
        super().__init__(f"initialization list has {got} overhangs, expected {expected}")


class DuplicateOverhangError(OverhangOptimizerError):
    """A unique overhang could not be drawn and the duplicate policy forbids forcing one."""
    def __init__(self, junction_index: int, overhang: str, attempts: int):
        self.junction_index = junction_index
        self.overhang = overhang
        self.attempts = attempts
        super().__init__(
            f"junction {junction_index}: no unique overhang after {attempts} draws (last draw {overhang})"
        )


# ---------------------------------------------------------------------
# Warnings (recorded on results, never raised by the optimizer itself)
# ---------------------------------------------------------------------

class ForcedDuplicateWarning(UserWarning):
    """An overhang was placed although it (or its reverse complement) is already used."""
    def __init__(self, junction_index: int, overhang: str, attempts: int):
        self.junction_index = junction_index
        self.overhang = overhang
        self.attempts = attempts
        super().__init__(
            f"junction {junction_index}: forced duplicate overhang {overhang} after {attempts} draws"
        )


class CalibrationWarning(UserWarning):
    """Temperature calibration did not reach the target acceptance ratio."""
    def __init__(self, target: float, exponent: int, ratio: Optional[float], steps: int):
        self.target = target
        self.exponent = exponent
        self.ratio = ratio
        self.steps = steps
        super().__init__(
            f"calibration did not converge after {steps} steps: target={target:.3f}, "
            f"closest exponent={exponent} (ratio={ratio if ratio is None else round(ratio, 4)})"
        )


def format_warnings(items: List[Warning]) -> List[str]:
    return [str(w) for w in items]


__all__ = [
    "OverhangOptimizerError",
    "MatrixLoadError",
    "ConfigurationError",
    "NoOverhangCandidatesError",
    "InitialAssignmentError",
    "DuplicateOverhangError",
    "ForcedDuplicateWarning",
    "CalibrationWarning",
    "format_warnings",
]
