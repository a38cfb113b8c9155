# File: backend/tests/test_api_overhangs.py
# Version: v0.1.1
"""
Overhang API endpoints against a temporary matrix directory.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from backend.app.core.config import settings
from backend.app.main import app

client = TestClient(app)


@pytest.fixture
def matrix_dir(tmp_path, toy_matrix_csv, monkeypatch):
    monkeypatch.setattr(settings, "MATRIX_DIR", toy_matrix_csv.parent)
    monkeypatch.setattr(settings, "DEFAULT_MATRIX", "toy")
    return toy_matrix_csv.parent


def test_list_matrices(matrix_dir):
    r = client.get("/api/overhangs/matrices")
    assert r.status_code == 200
    items = r.json()
    assert [m["name"] for m in items] == ["toy"]
    assert items[0]["overhangSize"] == 4
    assert items[0]["overhangs"] == 20


def test_evaluate(matrix_dir):
    r = client.post("/api/overhangs/evaluate", json={"overhangs": ["AAAC", "ACTG", "AGCA"]})
    assert r.status_code == 200
    data = r.json()
    assert 0.0 < data["fidelity"] <= 1.0
    assert data["score"] == data["fidelity"]
    assert [j["partner"] for j in data["junctions"]] == ["GTTT", "CAGT", "TGCT"]
    assert data["lowestJunction"]["index"] in (0, 1, 2)


def test_evaluate_bad_mismatch(matrix_dir):
    r = client.post("/api/overhangs/evaluate", json={"overhangs": ["AAAC"], "mismatch": ["AT"]})
    assert r.status_code == 400


def test_unknown_matrix(matrix_dir):
    r = client.post("/api/overhangs/evaluate", json={"matrix": "nope", "overhangs": ["AAAC"]})
    assert r.status_code == 404
    r = client.post("/api/overhangs/evaluate", json={"matrix": "../toy", "overhangs": ["AAAC"]})
    assert r.status_code == 400


def test_optimize(matrix_dir):
    payload = {"size": 3, "olist": ["AAAC"], "iterations": 100, "calibrationIterations": 50, "seed": 2}
    r = client.post("/api/overhangs/optimize", json=payload)
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["result"]["overhangs"][0] == "AAAC"
    assert data["pool"][0] == ["AAAC"]
    assert len(data["schedule"]) == 1
    assert data["calibration"]["exponent"] == data["schedule"][0]
    assert data["calibration"]["highExponent"] is None
    assert data["improvements"]


def test_optimize_limits_and_errors(matrix_dir):
    r = client.post("/api/overhangs/optimize", json={"size": 3, "iterations": settings.API_MAX_ITERATIONS + 1})
    assert r.status_code == 400
    r = client.post("/api/overhangs/optimize", json={"olist": ["S:1-10"], "iterations": 10})
    assert r.status_code == 400
    r = client.post("/api/overhangs/optimize", json={"iterations": 10})
    assert r.status_code == 400


def test_optimize_rejects_oversized_calibration(matrix_dir):
    r = client.post("/api/overhangs/optimize", json={"size": 3, "iterations": 10, "calibrationIterations": 10**6})
    assert r.status_code == 400
    assert "calibrationIterations" in r.json()["detail"]
    # a range schedule calibrates twice
    cal_iter = settings.API_MAX_CALIBRATION_TRIALS // 202 + 1
    payload = {"size": 3, "iterations": 10, "calibrationIterations": cal_iter, "schedule": "range"}
    r = client.post("/api/overhangs/optimize", json=payload)
    assert r.status_code == 400


def test_batch(matrix_dir):
    r = client.post("/api/overhangs/batch", json={"size": 3, "n": 25, "seed": 1})
    assert r.status_code == 200
    data = r.json()
    assert len(data["records"]) == 25
    assert data["summary"]["count"] == 25
    assert data["summary"]["max"] >= data["summary"]["min"]


def test_batch_with_reference_sequence(matrix_dir):
    payload = {"olist": ["S:1-8", "ALL"], "referenceSequence": "aaacgttggc", "n": 5, "seed": 1}
    r = client.post("/api/overhangs/batch", json=payload)
    assert r.status_code == 200, r.text
    assert len(r.json()["records"]) == 5
