# File: backend/app/core/overhang/fidelity.py
# Version: v0.2.0

"""
Ligation fidelity of a complete overhang assignment.

For junction i with overhang o and reverse complement c:

    correct_i = M[o][c] + M[c][o]
    total_i   = sum_j M[o][o_j] + M[o][c_j] + M[c][o_j] + M[c][c_j]

(terms matching the mismatch-ignore set are left out of total_i). The junction
fidelity is correct_i / total_i, or a neutral 1.0 when total_i == 0. The set
fidelity is the product over junctions; with `minimize=True` the score is
1 - fidelity.

v0.2.0
- Per-junction report (downstream risk reporting needs the individual values).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .ligation_matrix import LigationMatrix, MismatchIgnoreTable
from .sequence_utils import reverse_complement


@dataclass(frozen=True)
class JunctionFidelity:
    index: int
    overhang: str
    partner: str
    correct: float
    total: float
    fidelity: float

    @property
    def neutral(self) -> bool:
        """True when the junction had no observed ligation events (factor 1)."""
        return self.total <= 0


@dataclass
class FidelityReport:
    overhangs: List[str]
    junctions: List[JunctionFidelity]
    overall: float
    minimize: bool = False
    sites: List[Optional[int]] = field(default_factory=list)

    @property
    def score(self) -> float:
        """Objective value (1 - overall when minimizing)."""
        return 1.0 - self.overall if self.minimize else self.overall

    @property
    def lowest(self) -> Optional[JunctionFidelity]:
        if not self.junctions:
            return None
        return min(self.junctions, key=lambda j: j.fidelity)

    def weak_junctions(self, threshold: float) -> List[JunctionFidelity]:
        return [j for j in self.junctions if j.fidelity < threshold]

    def as_dict(self) -> dict:
        return {
            "fidelity": self.overall,
            "score": self.score,
            "minimize": self.minimize,
            "overhangs": list(self.overhangs),
            "sites": list(self.sites),
            "junctions": [
                {
                    "index": j.index,
                    "overhang": j.overhang,
                    "partner": j.partner,
                    "correct": j.correct,
                    "total": j.total,
                    "fidelity": j.fidelity,
                }
                for j in self.junctions
            ],
        }


class FidelityEvaluator:
    """Scores assignments against a ligation matrix. Pure and deterministic."""

    def __init__(
        self,
        matrix: LigationMatrix,
        ignore: Optional[MismatchIgnoreTable] = None,
        minimize: bool = False,
    ):
        self.matrix = matrix
        self.ignore = ignore or MismatchIgnoreTable()
        self.minimize = minimize

    def _term(self, a: str, b: str) -> float:
        if self.ignore and self.ignore.ignored(a, b):
            return 0.0
        return self.matrix.lookup(a, b)

    def junction_terms(self, overhangs: Sequence[str]) -> List[JunctionFidelity]:
        lookup = self.matrix.lookup
        comps = [reverse_complement(o) for o in overhangs]
        out: List[JunctionFidelity] = []
        for i, (o1, c1) in enumerate(zip(overhangs, comps)):
            correct = lookup(o1, c1) + lookup(c1, o1)
            total = 0.0
            for o2, c2 in zip(overhangs, comps):
                total += self._term(o1, o2) + self._term(o1, c2) + self._term(c1, o2) + self._term(c1, c2)
            fid = correct / total if total > 0 else 1.0
            out.append(JunctionFidelity(i, o1, c1, correct, total, fid))
        return out

    def fidelity(self, overhangs: Sequence[str]) -> float:
        """Raw set fidelity (product of junction fidelities), ignoring `minimize`."""
        f = 1.0
        for j in self.junction_terms(overhangs):
            f *= j.fidelity
        return f

    def evaluate(self, overhangs: Sequence[str]) -> float:
        """Objective value: fidelity, or 1 - fidelity when minimizing."""
        f = self.fidelity(overhangs)
        return 1.0 - f if self.minimize else f

    def report(self, overhangs: Sequence[str], sites: Optional[Sequence[Optional[int]]] = None) -> FidelityReport:
        junctions = self.junction_terms(overhangs)
        overall = 1.0
        for j in junctions:
            overall *= j.fidelity
        return FidelityReport(
            overhangs=list(overhangs),
            junctions=junctions,
            overall=overall,
            minimize=self.minimize,
            sites=list(sites) if sites is not None else [],
        )


__all__ = ["JunctionFidelity", "FidelityReport", "FidelityEvaluator"]
