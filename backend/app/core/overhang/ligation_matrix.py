# File: backend/app/core/overhang/ligation_matrix.py
# Version: v0.2.1

"""
Pairwise ligation-frequency matrix and mismatch-ignore table.

CSV layout (row/column):
    <corner>,AAAA,AAAC,...
    AAAA,12,,...
    AAAC,,3,...

The first header cell is a corner label and is ignored. Every following row is a
row-label overhang followed by numeric frequencies; blank cells count as 0.
Entries absent from the file are 0 as well.

v0.2.1
- Reject negative frequencies (they would break the [0,1] fidelity bound).

v0.2.0
- Mismatch-ignore table moved here from the evaluator so the decision for an
  (o1, o2) pair is computed once per matrix.
"""

from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from .errors import ConfigurationError, MatrixLoadError
from .sequence_utils import DNA_ALPHABET, is_dna

logger = logging.getLogger(__name__)

WATSON_CRICK_PAIRS = frozenset({frozenset("AT"), frozenset("CG")})


class LigationMatrix:
    """Read-only mapping Overhang -> (Overhang -> frequency)."""

    def __init__(self, rows: Mapping[str, Mapping[str, float]], source: Optional[str] = None):
        self._rows: Dict[str, Dict[str, float]] = {r: dict(cols) for r, cols in rows.items()}
        self.source = source
        lengths = {len(o) for o in self._rows}
        for cols in self._rows.values():
            lengths.update(len(o) for o in cols)
        if len(lengths) > 1:
            raise MatrixLoadError(f"inconsistent overhang lengths in matrix: {sorted(lengths)}")
        self.overhang_size: int = lengths.pop() if lengths else 0
        self._overhangs: Tuple[str, ...] = tuple(sorted(self._rows))

    # ---------------- Loading ----------------

    @classmethod
    def from_csv(cls, path: Path | str) -> "LigationMatrix":
        p = Path(path)
        try:
            with p.open("r", newline="", encoding="utf-8") as fh:
                rows = list(csv.reader(fh))
        except (OSError, UnicodeDecodeError) as e:
            raise MatrixLoadError(f"Can't open '{p}': {e}") from e
        matrix = cls(_parse_rows(rows, str(p)), source=str(p))
        logger.info("Loaded ligation matrix %s: %d overhangs (size %d)", p, len(matrix), matrix.overhang_size)
        return matrix

    # ---------------- Access ----------------

    def lookup(self, o1: str, o2: str) -> float:
        """Frequency of o1 (row) ligating to o2 (column); 0 when absent."""
        row = self._rows.get(o1)
        if row is None:
            return 0.0
        return row.get(o2, 0.0)

    def row(self, o1: str) -> Mapping[str, float]:
        return dict(self._rows.get(o1, {}))

    @property
    def overhangs(self) -> Tuple[str, ...]:
        """Sorted row labels (the 'all observed overhangs' set)."""
        return self._overhangs

    def __contains__(self, overhang: object) -> bool:
        return overhang in self._rows

    def __len__(self) -> int:
        return len(self._rows)

    def __repr__(self) -> str:
        return f"LigationMatrix(n={len(self)}, size={self.overhang_size}, source={self.source!r})"


def _parse_rows(rows: List[List[str]], source: str) -> Dict[str, Dict[str, float]]:
    rows = [r for r in rows if any(cell.strip() for cell in r)]
    if not rows:
        raise MatrixLoadError(f"'{source}' is empty")

    header = [c.strip().upper() for c in rows[0][1:]]
    if not header or not all(is_dna(c) for c in header):
        raise MatrixLoadError(f"'{source}': header must list column overhangs over ACGT")

    out: Dict[str, Dict[str, float]] = {}
    for lineno, raw in enumerate(rows[1:], start=2):
        label = raw[0].strip().upper()
        if not is_dna(label):
            raise MatrixLoadError(f"'{source}' line {lineno}: invalid row label '{raw[0]}'")
        cells = raw[1:]
        if len(cells) > len(header):
            raise MatrixLoadError(
                f"'{source}' line {lineno}: {len(cells)} values for {len(header)} columns"
            )
        values = out.setdefault(label, {})
        for col, cell in zip(header, cells):
            cell = cell.strip()
            if cell == "":
                values[col] = 0.0
                continue
            try:
                v = float(cell)
            except ValueError:
                raise MatrixLoadError(
                    f"'{source}' line {lineno}: non-numeric value '{cell}' in column {col}"
                ) from None
            if v < 0:
                raise MatrixLoadError(f"'{source}' line {lineno}: negative frequency {v} in column {col}")
            values[col] = v
    if not out:
        raise MatrixLoadError(f"'{source}' has a header but no data rows")
    return out


def load_ligation_matrix(path: Path | str) -> LigationMatrix:
    return LigationMatrix.from_csv(path)


# ---------------------------------------------------------------------
# Mismatch-ignore set
# ---------------------------------------------------------------------

def parse_mismatch_pairs(items: Iterable[str] | str | None) -> FrozenSet[FrozenSet[str]]:
    """
    Parse 'GT,GA' (or ['GT', 'GA']) into unordered base pairs.

    Same-base pairs ('GG') are allowed. Watson-Crick pairs are rejected: ignoring
    them would drop the correct-ligation terms from the denominator.
    """
    if items is None:
        return frozenset()
    if isinstance(items, str):
        items = [items]
    pairs = set()
    for chunk in items:
        for token in str(chunk).split(","):
            token = token.strip().upper()
            if not token:
                continue
            if len(token) != 2 or not set(token) <= DNA_ALPHABET:
                raise ConfigurationError(f"invalid mismatch pair '{token}' (expected two bases, e.g. 'GT')")
            pair = frozenset(token)
            if pair in WATSON_CRICK_PAIRS:
                raise ConfigurationError(f"mismatch pair '{token}' is a Watson-Crick pair and cannot be ignored")
            pairs.add(pair)
    return frozenset(pairs)


class MismatchIgnoreTable:
    """
    Decides whether the (o1, o2) cross term is omitted from fidelity totals.

    o1 is read 5'->3' against o2 read 3'->5' (plain reversal); the term is ignored
    when any aligned base pair is in the ignore set.
    """

    def __init__(self, pairs: Iterable[FrozenSet[str]] = ()):
        self.pairs: FrozenSet[FrozenSet[str]] = frozenset(pairs)
        self._cache: Dict[Tuple[str, str], bool] = {}

    def __bool__(self) -> bool:
        return bool(self.pairs)

    def ignored(self, o1: str, o2: str) -> bool:
        if not self.pairs:
            return False
        key = (o1, o2)
        hit = self._cache.get(key)
        if hit is None:
            o2_r = o2[::-1]
            hit = any(frozenset((b1, b2)) in self.pairs for b1, b2 in zip(o1, o2_r))
            self._cache[key] = hit
        return hit


__all__ = [
    "LigationMatrix",
    "load_ligation_matrix",
    "parse_mismatch_pairs",
    "MismatchIgnoreTable",
]
