# File: backend/tests/conftest.py
# Version: v0.2.0
"""
Test bootstrap: ensure project root is on sys.path so 'backend.*' imports work.

This avoids requiring editable installs or extra plugins. It keeps tests hermetic
to the repo layout (works in CI and locally).

v0.2.0
- Shared toy ligation matrices (in-memory and CSV) for optimizer tests.
"""
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]  # repo root (../.. from this file)
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from backend.app.core.overhang.ligation_matrix import LigationMatrix  # noqa: E402
from backend.app.core.overhang.sequence_utils import reverse_complement  # noqa: E402

# Ten non-palindromic overhangs, no two of them reverse complements.
TOY_OVERHANGS = ["AAAC", "AAGC", "ACTG", "AGCA", "ATCC", "CAAG", "CTAC", "GACA", "GCAT", "TACC"]


def toy_rows():
    rows = {}
    for o in TOY_OVERHANGS:
        rows.setdefault(o, {})
        rows.setdefault(reverse_complement(o), {})
    for i, o in enumerate(TOY_OVERHANGS):
        c = reverse_complement(o)
        rows[o][c] = rows[c][o] = 300.0 + 20 * i
    for i, oi in enumerate(TOY_OVERHANGS):
        for j, oj in enumerate(TOY_OVERHANGS):
            if i >= j:
                continue
            v = float(((i * 7 + j * 3) % 5) * 4)
            if v:
                cj = reverse_complement(oj)
                rows[oi][cj] = rows[cj][oi] = v
    return rows


def write_matrix_csv(path: Path, rows) -> Path:
    labels = sorted(set(rows) | {c for cols in rows.values() for c in cols})
    lines = ["overhang," + ",".join(labels)]
    for r in labels:
        cols = rows.get(r, {})
        lines.append(r + "," + ",".join("" if c not in cols else f"{cols[c]:g}" for c in labels))
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def toy_matrix():
    return LigationMatrix(toy_rows(), source="toy")


@pytest.fixture
def toy_matrix_csv(tmp_path):
    return write_matrix_csv(tmp_path / "toy.csv", toy_rows())


@pytest.fixture
def write_matrix():
    return write_matrix_csv
