"""
API Tests
=========
HTTP surface exercised through FastAPI's TestClient against batches
written to tmp_path. Module-level paths are patched per test.
"""
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from main import app, create_app


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def root(write_batch, iso):
    return write_batch("MC_PRODUCTS_LIST", [
        {"type": "SCREEN_LOAD", "ts": iso(0)},
        {"type": "SCREEN_LOAD", "ts": iso(200)},
        {"type": "ERROR", "ts": iso(300), "message": "TypeError: a is undefined"},
    ])


# ===================================================================
# Health / discovery
# ===================================================================
def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_list_features(client, root):
    with patch("issue_engine.core.config.LOG_ROOT", root):
        resp = client.get("/features")
    assert resp.status_code == 200
    assert resp.json() == {"features": ["MC_PRODUCTS_LIST"]}


def test_list_features_without_input(client, tmp_path):
    with patch("issue_engine.core.config.LOG_ROOT", str(tmp_path / "none")):
        assert client.get("/features").status_code == 404


# ===================================================================
# On-demand feature analysis
# ===================================================================
def test_feature_issues(client, root):
    with patch("issue_engine.core.config.LOG_ROOT", root):
        resp = client.get("/features/MC_PRODUCTS_LIST/issues")
    assert resp.status_code == 200
    body = resp.json()
    assert body["featureId"] == "MC_PRODUCTS_LIST"
    rule_ids = [i["ruleId"] for i in body["issues"]]
    assert "R01" in rule_ids and "R07" in rule_ids
    assert body["ruleFailures"] == []


def test_feature_issues_missing(client, root):
    with patch("issue_engine.core.config.LOG_ROOT", root):
        assert client.get("/features/MC_NOPE/issues").status_code == 404


# ===================================================================
# Full run + results
# ===================================================================
def test_analyze_then_results(client, root, tmp_path):
    out = str(tmp_path / "docs" / "issues.json")
    with patch("issue_engine.core.config.LOG_ROOT", root), \
         patch("issue_engine.core.config.ISSUES_OUTPUT_PATH", out):
        resp = client.post("/api/analyze", json={"workers": 2})
        results = client.get("/results")
    assert resp.status_code == 200
    body = resp.json()
    assert body["total_features"] == 1
    assert body["total_issues"] >= 2
    assert body["output_path"].endswith("issues.json")

    assert results.status_code == 200
    assert results.json()["summary"]["totalIssues"] == body["total_issues"]


def test_analyze_missing_input(client, tmp_path):
    with patch("issue_engine.core.config.LOG_ROOT", str(tmp_path / "none")), \
         patch("issue_engine.core.config.ISSUES_OUTPUT_PATH", str(tmp_path / "issues.json")):
        resp = client.post("/api/analyze", json={})
    assert resp.status_code == 404
    assert not (tmp_path / "issues.json").exists()


@pytest.mark.parametrize("field", ["output_path", "log_root"])
def test_analyze_rejects_client_paths(client, root, tmp_path, field):
    victim = tmp_path / "elsewhere" / "victim.txt"
    victim.parent.mkdir()
    victim.write_text("precious", encoding="utf-8")
    out = tmp_path / "issues.json"

    with patch("issue_engine.core.config.LOG_ROOT", root), \
         patch("issue_engine.core.config.ISSUES_OUTPUT_PATH", str(out)):
        resp = client.post("/api/analyze", json={field: str(victim)})

    assert resp.status_code == 422
    assert victim.read_text(encoding="utf-8") == "precious"
    assert not out.exists()


def test_analyze_rejects_bad_workers(client):
    assert client.post("/api/analyze", json={"workers": 0}).status_code == 422


def test_results_absent(client, tmp_path):
    with patch("issue_engine.core.config.ISSUES_OUTPUT_PATH", str(tmp_path / "missing.json")):
        assert client.get("/results").status_code == 404


# ===================================================================
# App factory
# ===================================================================
def test_cors_off_by_default():
    with patch("issue_engine.core.config.API_CORS_ORIGINS", []):
        resp = TestClient(create_app()).get("/health", headers={"Origin": "http://localhost:3000"})
    assert "access-control-allow-origin" not in resp.headers


def test_cors_origins_from_config():
    with patch("issue_engine.core.config.API_CORS_ORIGINS", ["http://localhost:3000"]):
        client = TestClient(create_app())
    resp = client.get("/health", headers={"Origin": "http://localhost:3000"})
    assert resp.headers["access-control-allow-origin"] == "http://localhost:3000"
