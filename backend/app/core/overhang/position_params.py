# File: backend/app/core/overhang/position_params.py
# Version: v0.1.2

"""
Positional parameter files: seed per-junction search windows around
approximate positions on a reference sequence.

Format (one `name=value` per line, blank lines and '#' comments skipped):

    sequence=ATGGCT...
    overhang=0,120,1,AATG      # id, position (0-based), fixed flag, overhang
    overhang=1,480,0,          # non-fixed: scan k-mers around position 480

A fixed entry contributes its overhang at the given position. A non-fixed entry
contributes every k-mer starting in [position - half_width, position + half_width),
keeping, per overhang, the start nearest to `position`. The fixed flag is off
for an empty field, `0`, `false`, `no` or `n`; any other value (`1`, `2`, `y`) turns it on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List

from .errors import ConfigurationError
from .sequence_utils import is_dna, normalize_overhang

logger = logging.getLogger(__name__)

DEFAULT_HALF_WIDTH = 25

# any other flag value marks the entry as fixed
_NOT_FIXED = {"", "0", "false", "no", "n"}


@dataclass
class PositionalParams:
    sequence: str
    raw_pools: List[Dict[str, int]] = field(default_factory=list)
    extra: Dict[str, str] = field(default_factory=dict)


def _parse_entry(value: str, lineno: int) -> tuple:
    parts = [p.strip() for p in value.split(",")]
    if len(parts) < 3:
        raise ConfigurationError(f"line {lineno}: overhang entry needs 'id,position,fixed[,overhang]'")
    try:
        jid = int(parts[0])
        pos = int(parts[1])
    except ValueError:
        raise ConfigurationError(f"line {lineno}: junction id and position must be integers") from None
    fixed = parts[2].lower() not in _NOT_FIXED
    oh = normalize_overhang(parts[3]) if len(parts) > 3 else ""
    if fixed and not oh:
        raise ConfigurationError(f"line {lineno}: fixed entry for junction {jid} has no overhang")
    return jid, pos, fixed, oh


def parse_positional_params(
    text: str,
    *,
    overhang_size: int = 4,
    half_width: int = DEFAULT_HALF_WIDTH,
) -> PositionalParams:
    sequence = ""
    entries = []
    extra: Dict[str, str] = {}

    for lineno, line in enumerate(text.splitlines(), start=1):
        line = line.split("#", 1)[0].strip()
        if not line:
            continue
        if "=" not in line:
            raise ConfigurationError(f"line {lineno}: expected name=value, got '{line}'")
        name, value = (s.strip() for s in line.split("=", 1))
        if name == "overhang":
            entries.append(_parse_entry(value, lineno))
        elif name == "sequence":
            sequence = "".join(value.split()).upper()
        else:
            extra[name] = value

    data: Dict[int, Dict[str, int]] = {}
    for jid, start, fixed, oh in entries:
        sites = data.setdefault(jid, {})
        if fixed:
            sites[oh] = start
            continue
        if not sequence:
            raise ConfigurationError(f"junction {jid}: non-fixed entry requires a 'sequence=' line")
        for pos in range(start - half_width, start + half_width):
            if pos < 0 or pos + overhang_size > len(sequence):
                continue
            kmer = sequence[pos:pos + overhang_size]
            if not is_dna(kmer):
                continue
            prev = sites.get(kmer)
            if prev is None or abs(start - pos) < abs(start - prev):
                sites[kmer] = pos

    ids = sorted(data)
    if ids != list(range(len(ids))):
        raise ConfigurationError(f"junction ids must be contiguous from 0, got {ids}")
    for jid in ids:
        if not data[jid]:
            raise ConfigurationError(f"junction {jid}: window produced no overhangs")

    logger.info("Positional params: %d junctions, sequence length %d", len(ids), len(sequence))
    return PositionalParams(sequence=sequence, raw_pools=[data[j] for j in ids], extra=extra)


def load_positional_params(path: Path | str, **kwargs) -> PositionalParams:
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Can't open '{p}': {e}") from e
    return parse_positional_params(text, **kwargs)


__all__ = ["DEFAULT_HALF_WIDTH", "PositionalParams", "parse_positional_params", "load_positional_params"]
