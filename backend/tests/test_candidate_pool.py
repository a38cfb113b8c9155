# File: backend/tests/test_candidate_pool.py
# Version: v0.1.0
"""
Candidate pool construction: spec expansion and the filter chain.
"""

from __future__ import annotations

import pytest

from backend.app.core.overhang.candidate_pool import CandidatePoolBuilder, PoolFilters
from backend.app.core.overhang.errors import ConfigurationError, NoOverhangCandidatesError
from backend.app.core.overhang.ligation_matrix import LigationMatrix


def _palindrome_matrix():
    labels = ["AATT", "GGCC", "CCGG", "TTAA"]
    return LigationMatrix({o: {p: 10.0 for p in labels} for o in labels})


def test_palindromes_are_dropped_from_all():
    # every one of these four is its own reverse complement
    builder = CandidatePoolBuilder(_palindrome_matrix())
    with pytest.raises(NoOverhangCandidatesError) as ei:
        builder.build(size=3)
    assert ei.value.junction_index == 0
    assert ei.value.reasons["palindrome"] == 4


def test_palindrome_dropped_from_explicit_list():
    builder = CandidatePoolBuilder(_palindrome_matrix())
    j = builder.filter_candidates(["AATT", "AAAC"], index=0)
    assert j.candidates == ["AAAC"]
    assert j.dropped["palindrome"] == 1


def test_reverse_complements_collapse_to_first_seen():
    builder = CandidatePoolBuilder(LigationMatrix({}))
    j = builder.filter_candidates(["AACC", "GGTT", "AAGG", "AACC"], index=1, spec="x")
    assert j.candidates == ["AACC", "AAGG"]
    assert j.dropped["rc_duplicate"] == 1
    assert j.dropped["duplicate"] == 1


def test_all_spec_uses_sorted_matrix_labels(toy_matrix):
    pool = CandidatePoolBuilder(toy_matrix).build(size=2)
    assert len(pool) == 2
    cands = pool[0].candidates
    assert len(cands) == 10
    assert cands == sorted(cands)
    assert pool[0].candidates == pool[1].candidates
    assert pool.variable_positions == [0, 1]


def test_expand_specs_pads_with_all():
    assert CandidatePoolBuilder.expand_specs(3, ["AAAC"]) == ["AAAC", "ALL", "ALL"]
    assert CandidatePoolBuilder.expand_specs(None, ["AAAC", "ALL"]) == ["AAAC", "ALL"]
    with pytest.raises(ConfigurationError):
        CandidatePoolBuilder.expand_specs(None, None)
    with pytest.raises(ConfigurationError):
        CandidatePoolBuilder.expand_specs(0, [])


def test_fixed_and_variable_junctions(toy_matrix):
    pool = CandidatePoolBuilder(toy_matrix).build(size=3, specs=["AAAC", "AAGC,ACTG"])
    assert pool[0].is_fixed
    assert pool[1].is_variable and pool[2].is_variable
    assert pool.variable_positions == [1, 2]
    assert pool.dump_lines()[0] == "0=AAAC"
    assert pool.dump_lines()[1] == "1=AAGC,ACTG"


def test_degenerate_pool(toy_matrix):
    pool = CandidatePoolBuilder(toy_matrix).build(specs=["AAAC", "ACTG"])
    assert pool.is_degenerate


def test_exclude_covers_reverse_complement(toy_matrix):
    filters = PoolFilters(exclude=frozenset({"GTTT"}))
    j = CandidatePoolBuilder(toy_matrix, filters).filter_candidates(["AAAC", "AAGC"])
    assert j.candidates == ["AAGC"]
    assert j.dropped["excluded"] == 1


def test_min_ligation_efficiency_uses_self_pairing(toy_matrix):
    # AAAC pairs at 300, AAGC at 320
    filters = PoolFilters(min_ligation_efficiency=310)
    j = CandidatePoolBuilder(toy_matrix, filters).filter_candidates(["AAAC", "AAGC"])
    assert j.candidates == ["AAGC"]
    assert j.dropped["low_efficiency"] == 1


def test_gc_at_limits():
    builder = CandidatePoolBuilder(LigationMatrix({}), PoolFilters(max_gc=2, max_at=3))
    j = builder.filter_candidates(["GGCA", "AAAC", "AATA", "ACTG"])
    assert j.candidates == ["AAAC", "ACTG"]
    assert j.dropped["gc_high"] == 1
    assert j.dropped["at_high"] == 1


def test_zero_candidates_reports_reasons():
    builder = CandidatePoolBuilder(LigationMatrix({}), PoolFilters(exclude=frozenset({"AAAC"})))
    with pytest.raises(NoOverhangCandidatesError) as ei:
        builder.build(specs=["AAAC,GTTT"])
    # GTTT is dropped through its reverse complement AAAC
    assert "excluded:2" in str(ei.value)
    assert ei.value.spec == "AAAC,GTTT"


def test_invalid_overhang_rejected():
    builder = CandidatePoolBuilder(LigationMatrix({}))
    with pytest.raises(ConfigurationError):
        builder.filter_candidates(["AAA"])
    with pytest.raises(ConfigurationError):
        builder.filter_candidates(["AANC"])


def test_sequence_window_spec():
    builder = CandidatePoolBuilder(LigationMatrix({}), reference_sequence="aaacgttt")
    pool = builder.build(specs=["S:1-6"])
    # ACGT (positions 3-6) is palindromic
    assert pool[0].candidates == ["AAAC", "AACG"]


def test_sequence_window_requires_reference():
    with pytest.raises(ConfigurationError):
        CandidatePoolBuilder(LigationMatrix({})).build(specs=["S:1-10"])
    with pytest.raises(ConfigurationError):
        CandidatePoolBuilder(LigationMatrix({}), reference_sequence="AAAC").build(specs=["S:5-2"])


def test_build_from_sites_keeps_positions():
    builder = CandidatePoolBuilder(LigationMatrix({}))
    pool = builder.build_from_sites([{"AAAC": 10}, {"AAGC": 40, "AGCT": 41, "GCTT": 42}])
    assert pool[0].is_fixed
    # AGCT is palindromic, GCTT is the reverse complement of AAGC
    assert pool[1].candidates == ["AAGC"]
    assert pool.sites_for(["AAAC", "AAGC"]) == [10, 40]
    assert pool.has_sites
