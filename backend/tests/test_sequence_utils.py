# File: backend/tests/test_sequence_utils.py
# Version: v0.1.0
"""
Reference sequence loading: FASTA records and header-less plain files.
"""

from __future__ import annotations

import pytest

from backend.app.core.overhang.sequence_utils import load_reference_sequence


def test_fasta_records_are_joined(tmp_path):
    p = tmp_path / "ref.fa"
    p.write_text(">one\nacgt\nAACC\n>two\nGGTT\n", encoding="utf-8")
    assert load_reference_sequence(p) == "ACGTAACCGGTT"
    assert load_reference_sequence(p, concatenate=False) == "ACGTAACC"


def test_plain_sequence_file(tmp_path):
    p = tmp_path / "ref.txt"
    p.write_text("\nacgtac\nGGTT  \n", encoding="utf-8")
    assert load_reference_sequence(p) == "ACGTACGGTT"


def test_empty_file_is_rejected(tmp_path):
    p = tmp_path / "empty.txt"
    p.write_text("\n  \n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_reference_sequence(p)
