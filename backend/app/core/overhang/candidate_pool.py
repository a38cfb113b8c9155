# File: backend/app/core/overhang/candidate_pool.py
# Version: v0.3.0

"""
Per-junction candidate overhang pools.

Each junction is described by a spec string:
  • 'ALL'            every overhang observed in the ligation matrix (sorted)
  • 'S:<start>-<end>' every k-mer inside a 1-based inclusive window of the
                     reference sequence (k = overhang size)
  • 'AAAC,GGTA,...'  an explicit comma list

Raw candidates are filtered in this order:
  1) exact duplicates and entries whose reverse complement is already kept
  2) palindromic overhangs
  3) explicitly excluded overhangs (and their reverse complements)
  4) overhangs whose self-pairing frequency M[o][rc(o)] is below the minimum
     ligation efficiency
  5) overhangs above the maximum GC or AT count

Output keeps first-seen order. A junction with zero candidates raises
`NoOverhangCandidatesError`; one candidate makes the junction fixed.

v0.3.0
- Optional per-junction site positions carried through filtering (positional
  parameter files).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .errors import ConfigurationError, NoOverhangCandidatesError
from .ligation_matrix import LigationMatrix
from .sequence_utils import (
    gc_at_counts,
    is_dna,
    is_palindromic,
    reverse_complement,
    split_overhang_list,
    window_kmers,
)

logger = logging.getLogger(__name__)

ALL_SPEC = "ALL"
DEFAULT_OVERHANG_SIZE = 4

_WINDOW_RE = re.compile(r"^S:(\d+)-(\d+)$", re.IGNORECASE)

DROP_REASONS = ("duplicate", "rc_duplicate", "palindrome", "excluded", "low_efficiency", "gc_high", "at_high")


@dataclass(frozen=True)
class PoolFilters:
    """Pool construction knobs (None disables a threshold)."""
    overhang_size: int = DEFAULT_OVERHANG_SIZE
    min_ligation_efficiency: Optional[float] = None
    max_gc: Optional[int] = None
    max_at: Optional[int] = None
    exclude: frozenset = frozenset()


@dataclass
class Junction:
    index: int
    candidates: List[str]
    spec: str = ""
    sites: Dict[str, int] = field(default_factory=dict)
    dropped: Dict[str, int] = field(default_factory=dict)

    @property
    def is_fixed(self) -> bool:
        return len(self.candidates) == 1

    @property
    def is_variable(self) -> bool:
        return len(self.candidates) > 1

    def site_of(self, overhang: str) -> Optional[int]:
        return self.sites.get(overhang)


@dataclass
class CandidatePool:
    """Immutable-by-convention list of junction pools consumed by the optimizer."""
    junctions: List[Junction]
    overhang_size: int = DEFAULT_OVERHANG_SIZE

    def __len__(self) -> int:
        return len(self.junctions)

    def __getitem__(self, idx: int) -> Junction:
        return self.junctions[idx]

    def __iter__(self):
        return iter(self.junctions)

    @property
    def variable_positions(self) -> List[int]:
        return [j.index for j in self.junctions if j.is_variable]

    @property
    def is_degenerate(self) -> bool:
        return not self.variable_positions

    @property
    def has_sites(self) -> bool:
        return any(j.sites for j in self.junctions)

    def sites_for(self, overhangs: Sequence[str]) -> List[Optional[int]]:
        return [self.junctions[i].site_of(o) for i, o in enumerate(overhangs)]

    def dump_lines(self) -> List[str]:
        """'index=o1,o2,...' lines, as printed before a search."""
        return [f"{j.index}={','.join(j.candidates)}" for j in self.junctions]

    def summary(self) -> str:
        fixed = sum(1 for j in self.junctions if j.is_fixed)
        return (
            f"{len(self.junctions)} junctions ({len(self.variable_positions)} variable, {fixed} fixed), "
            f"pool sizes={[len(j.candidates) for j in self.junctions]}"
        )


class CandidatePoolBuilder:
    """Builds filtered candidate pools from junction specs."""

    def __init__(
        self,
        matrix: LigationMatrix,
        filters: Optional[PoolFilters] = None,
        reference_sequence: Optional[str] = None,
    ):
        self.matrix = matrix
        self.filters = filters or PoolFilters()
        self.reference_sequence = (reference_sequence or "").upper() or None
        self._exclude = {o.upper() for o in self.filters.exclude}

    # ---------------- Spec resolution ----------------

    @staticmethod
    def expand_specs(size: Optional[int], specs: Optional[Sequence[str]]) -> List[str]:
        """Pad explicit specs with 'ALL' up to `size` junctions."""
        out = [str(s).strip() for s in (specs or []) if str(s).strip()]
        if size is None and not out:
            raise ConfigurationError(
                "You have to specify the number of junctions (size) or a list of overhang specs (olist)"
            )
        if size is not None:
            if size < 1:
                raise ConfigurationError(f"junction count must be >= 1, got {size}")
            if len(out) < size:
                out.extend([ALL_SPEC] * (size - len(out)))
        return out

    def raw_candidates(self, spec: str) -> List[str]:
        s = spec.strip()
        if s.upper() == ALL_SPEC:
            return list(self.matrix.overhangs)
        m = _WINDOW_RE.match(s)
        if m:
            if not self.reference_sequence:
                raise ConfigurationError(f"spec '{spec}' needs a reference sequence (seqfile)")
            start, end = int(m.group(1)), int(m.group(2))
            try:
                return window_kmers(self.reference_sequence, start, end, self.filters.overhang_size)
            except ValueError as e:
                raise ConfigurationError(f"spec '{spec}': {e}") from None
        return split_overhang_list(s)

    # ---------------- Filtering ----------------

    def filter_candidates(self, raw: Iterable[str], index: int = 0, spec: str = "") -> Junction:
        size = self.filters.overhang_size
        reasons: Dict[str, int] = {k: 0 for k in DROP_REASONS}
        kept: Dict[str, None] = {}

        for o in raw:
            if len(o) != size or not is_dna(o):
                raise ConfigurationError(
                    f"junction {index}: '{o}' is not a {size}-nt overhang over ACGT"
                )
            o_rc = reverse_complement(o)

            if o in kept:
                reasons["duplicate"] += 1; continue
            if o_rc in kept:
                reasons["rc_duplicate"] += 1; continue
            if is_palindromic(o):
                reasons["palindrome"] += 1; continue
            if o in self._exclude or o_rc in self._exclude:
                reasons["excluded"] += 1; continue

            mle = self.filters.min_ligation_efficiency
            if mle is not None and self.matrix.lookup(o, o_rc) < mle:
                reasons["low_efficiency"] += 1; continue

            gc, at = gc_at_counts(o)
            if self.filters.max_gc is not None and gc > self.filters.max_gc:
                reasons["gc_high"] += 1; continue
            if self.filters.max_at is not None and at > self.filters.max_at:
                reasons["at_high"] += 1; continue

            kept[o] = None

        if not kept:
            raise NoOverhangCandidatesError(index, spec, reasons)

        return Junction(index=index, candidates=list(kept), spec=spec, dropped=reasons)

    # ---------------- Public API ----------------

    def build(self, size: Optional[int] = None, specs: Optional[Sequence[str]] = None) -> CandidatePool:
        resolved = self.expand_specs(size, specs)
        junctions = [
            self.filter_candidates(self.raw_candidates(spec), index=i, spec=spec)
            for i, spec in enumerate(resolved)
        ]
        pool = CandidatePool(junctions=junctions, overhang_size=self.filters.overhang_size)
        logger.info("Candidate pool: %s", pool.summary())
        return pool

    def build_from_sites(self, raw_pools: Sequence[Mapping[str, int]]) -> CandidatePool:
        """Build a pool from {overhang: site} maps (positional parameter files)."""
        junctions: List[Junction] = []
        for i, sites in enumerate(raw_pools):
            junction = self.filter_candidates(list(sites), index=i, spec="prm")
            junction.sites = {o: int(sites[o]) for o in junction.candidates}
            junctions.append(junction)
        pool = CandidatePool(junctions=junctions, overhang_size=self.filters.overhang_size)
        logger.info("Candidate pool (positional): %s", pool.summary())
        return pool


__all__ = [
    "ALL_SPEC",
    "DEFAULT_OVERHANG_SIZE",
    "PoolFilters",
    "Junction",
    "CandidatePool",
    "CandidatePoolBuilder",
]
