"""
Integration Tests — Analysis Pipeline
======================================
End-to-end runs over on-disk batches: report shape, determinism,
parallel/sequential equivalence and fatal-error behaviour.
"""
import json

import pytest

from issue_engine.core.config import RuleSettings
from issue_engine.core.errors import MissingInputError, OutputWriteError
from issue_engine.services.analysis_service import analyze_all, analyze_feature, run_analysis
from issue_engine.services.results_writer import ResultsWriter


# ===================================================================
# Fixtures
# ===================================================================
@pytest.fixture
def populated_root(write_batch, log_root, iso):
    write_batch("MC_PRODUCTS_LIST", [
        {"type": "SCREEN_LOAD", "ts": iso(0), "context": {"callerScreen": "MC_DRAWING_LIST"}},
        {"type": "SCREEN_LOAD", "ts": iso(200)},
        {"type": "UI_CLICK", "ts": iso(1000), "traceId": "TR-1", "elementId": "BTN_SEARCH",
         "inputValues": {"elementType": "BUTTON", "buttonLabel": "Search"}},
        {"type": "BACKEND", "ts": iso(2500), "processName": "SEARCH_RESULT", "rowCount": 0},
        {"type": "SCREENSHOT", "ts": iso(2800), "traceId": "TR-1", "trigger": "BTN_SEARCH_AFTER",
         "file": "screenshots/MC_PRODUCTS_LIST/2025-01-10T09-15-02-800Z_MC_PRODUCTS_LIST_BTN_SEARCH_AFTER_TR-1.jpg"},
        {"type": "ERROR", "ts": iso(3000), "message": "ReferenceError: x is not defined"},
    ], console=[
        {"level": "error", "args": ["search failed"], "lastTraceId": "TR-1", "ts": iso(2600)},
    ], raw_lines=["{broken"])
    write_batch("MC_HISTORY", [
        {"type": "SCREEN_LOAD", "ts": iso(0), "context": {"screenMode": "view"}},
        {"type": "BACKEND", "ts": iso(100), "traceId": "TR-9", "processName": "LOAD", "status": 500},
    ])
    shots = log_root / "screenshots" / "MC_PRODUCTS_LIST"
    shots.mkdir(parents=True)
    (shots / "2025-01-10T09-15-01-000Z_MC_PRODUCTS_LIST_BTN_SEARCH_BEFORE_TR-1.jpg").write_bytes(b"x")
    return str(log_root)


# ===================================================================
# Single feature
# ===================================================================
class TestAnalyzeFeature:

    def test_expected_rules_fire(self, populated_root):
        result = analyze_feature("MC_PRODUCTS_LIST", populated_root, RuleSettings())
        rule_ids = {i.rule_id for i in result.issues}
        assert {"R01", "R04", "R07", "R10", "R11"} <= rule_ids
        assert result.failures == []

    def test_search_issue_carries_evidence(self, populated_root):
        result = analyze_feature("MC_PRODUCTS_LIST", populated_root, RuleSettings())
        (search,) = [i for i in result.issues if i.rule_id == "R04"]
        assert search.severity == "Medium"
        assert search.trace_ids == ["TR-1"]
        assert len(search.screenshots) == 2
        assert [c.message for c in search.console_entries] == ["search failed"]

    def test_every_issue_cites_batch_events(self, populated_root):
        result = analyze_feature("MC_PRODUCTS_LIST", populated_root, RuleSettings())
        seqs = {e.seq for e in result.view.events}
        for issue in result.issues:
            assert issue.evidence
            assert {r.seq for r in issue.evidence} <= seqs

    def test_missing_feature(self, populated_root):
        with pytest.raises(MissingInputError):
            analyze_feature("MC_NOPE", populated_root, RuleSettings())


# ===================================================================
# Full run
# ===================================================================
class TestRunAnalysis:

    def test_report_shape(self, populated_root, tmp_path):
        _, path = run_analysis(populated_root, str(tmp_path / "out" / "issues.json"), RuleSettings(), workers=2)
        data = json.loads(open(path, encoding="utf-8").read())

        summary = data["summary"]
        assert summary["totalFeatures"] == 2
        assert summary["malformedRecords"] == 1
        assert list(summary["bySeverity"]) == ["Critical", "High", "Low", "Medium"]
        assert list(summary["byRule"]) == sorted(summary["byRule"])
        assert summary["totalIssues"] == len(data["issues"])
        assert list(data["features"]) == ["MC_HISTORY", "MC_PRODUCTS_LIST"]
        assert data["features"]["MC_HISTORY"]["screenName"] == "System operation history"

        scores = [i["priorityScore"] for i in data["issues"]]
        assert scores == sorted(scores, reverse=True)
        assert {"id", "ruleId", "featureId", "evidence", "contextSummary"} <= set(data["issues"][0])

    def test_rerun_is_byte_identical(self, populated_root, tmp_path):
        _, first = run_analysis(populated_root, str(tmp_path / "a.json"), RuleSettings(), workers=4)
        _, second = run_analysis(populated_root, str(tmp_path / "b.json"), RuleSettings(), workers=1)
        assert open(first, "rb").read() == open(second, "rb").read()

    def test_report_replaced_not_appended(self, populated_root, tmp_path):
        out = str(tmp_path / "issues.json")
        run_analysis(populated_root, out, RuleSettings())
        size = len(open(out, "rb").read())
        run_analysis(populated_root, out, RuleSettings())
        assert len(open(out, "rb").read()) == size

    def test_missing_input_writes_nothing(self, tmp_path):
        out = tmp_path / "issues.json"
        with pytest.raises(MissingInputError):
            run_analysis(str(tmp_path / "nowhere"), str(out), RuleSettings())
        assert not out.exists()

    def test_fatal_feature_aborts_run(self, populated_root):
        with pytest.raises(MissingInputError):
            analyze_all(populated_root, RuleSettings(), feature_ids=["MC_HISTORY", "MC_GONE"])

    def test_unwritable_destination(self, populated_root, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")
        with pytest.raises(OutputWriteError):
            run_analysis(populated_root, str(blocker / "issues.json"), RuleSettings())

    def test_rule_failure_reported(self, populated_root, tmp_path):
        from unittest.mock import patch
        from issue_engine.rules import registry

        def boom(view, settings):
            raise KeyError("missing field")

        specs = [registry.RuleSpec("R99", "boom", boom)] + registry.registered_rules()
        with patch("issue_engine.services.analysis_service.run_rules",
                   lambda view, settings: registry.run_rules(view, settings, specs)):
            report = analyze_all(populated_root, RuleSettings())

        failures = report.summary.rule_failures
        assert {f.feature_id for f in failures} == {"MC_HISTORY", "MC_PRODUCTS_LIST"}
        assert all(f.rule_id == "R99" for f in failures)
        assert report.summary.total_issues > 0

    def test_empty_root(self, log_root, tmp_path):
        report = analyze_all(str(log_root), RuleSettings())
        assert report.summary.total_features == 0
        assert report.issues == []
        assert json.loads(ResultsWriter.to_json(report))["summary"]["totalIssues"] == 0
