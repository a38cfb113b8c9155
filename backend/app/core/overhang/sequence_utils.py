# File: backend/app/core/overhang/sequence_utils.py
# Version: v0.2.1

"""
Small sequence helpers shared by the pool builder, evaluator and adapters.

v0.2.1
- Header-less plain sequence files are accepted.

v0.2.0
- Reference sequences are read with Biopython (first FASTA record, or every
  record concatenated when `concatenate=True`).
"""

from __future__ import annotations

import io
from functools import lru_cache
from pathlib import Path
from typing import Dict, Iterable, List, Tuple

from Bio import SeqIO

DNA_ALPHABET = frozenset("ACGT")

_RC_MAP = str.maketrans("ACGTacgt", "TGCAtgca")


@lru_cache(maxsize=None)
def reverse_complement(seq: str) -> str:
    """Reverse complement (cached)."""
    return seq.translate(_RC_MAP)[::-1]


def is_palindromic(overhang: str) -> bool:
    """True if the overhang equals its own reverse complement."""
    return overhang == reverse_complement(overhang)


def is_dna(seq: str) -> bool:
    return bool(seq) and set(seq) <= DNA_ALPHABET


def gc_at_counts(seq: str) -> Tuple[int, int]:
    """(GC count, AT count); case-insensitive, other characters ignored."""
    s = seq.upper()
    return s.count("G") + s.count("C"), s.count("A") + s.count("T")


def normalize_overhang(raw: str) -> str:
    return raw.strip().upper()


def split_overhang_list(raw: str | Iterable[str] | None) -> List[str]:
    """Split 'AAAC,GGTA' (or a list of such strings) into upper-cased tokens."""
    if raw is None:
        return []
    items = [raw] if isinstance(raw, str) else list(raw)
    out: List[str] = []
    for item in items:
        out.extend(normalize_overhang(t) for t in str(item).split(",") if t.strip())
    return out


# --- Reference sequence --------------------------------------------------------

def load_reference_sequence(path: Path | str, *, concatenate: bool = True) -> str:
    """
    Load a reference sequence from FASTA and return it upper-cased without whitespace.

    With `concatenate=True` all records are joined (every non-header line of the
    file counts); otherwise only the first record is used. A file whose first
    non-blank line is not a `>` header is read as one plain sequence.
    """
    p = Path(path)
    text = p.read_text(encoding="utf-8")
    if not text.lstrip().startswith(">"):
        seq = "".join(text.split()).upper()
        if not seq:
            raise ValueError(f"No sequence found in {p}")
        return seq
    records = list(SeqIO.parse(io.StringIO(text), "fasta"))
    if not records:
        raise ValueError(f"No FASTA records found in {p}")
    if not concatenate:
        records = records[:1]
    seq = "".join(str(rec.seq) for rec in records)
    return "".join(seq.split()).upper()


def window_kmers(sequence: str, start: int, end: int, k: int) -> List[str]:
    """
    Every k-mer lying fully inside the 1-based inclusive window [start, end].

    Order is first-seen; repeats are collapsed. K-mers with non-ACGT characters
    are skipped.
    """
    if start < 1 or end < start:
        raise ValueError(f"invalid window {start}-{end}")
    seen: Dict[str, None] = {}
    i = start - 1
    while i + k <= min(end, len(sequence)):
        kmer = sequence[i:i + k]
        if is_dna(kmer):
            seen.setdefault(kmer, None)
        i += 1
    return list(seen)


__all__ = [
    "DNA_ALPHABET",
    "reverse_complement",
    "is_palindromic",
    "is_dna",
    "gc_at_counts",
    "normalize_overhang",
    "split_overhang_list",
    "load_reference_sequence",
    "window_kmers",
]
