"""
Unit Tests — Event Store Reader
================================
Feature discovery, record normalisation, malformed-record tolerance,
console stream merging and the screenshot index build.

Batches are written to tmp_path; nothing outside it is touched.
"""
from datetime import datetime, timezone

import pytest

from issue_engine.core.errors import MissingInputError
from issue_engine.parser.event_reader import (
    discover_features,
    normalize_record,
    read_feature_batch,
)


# ===========================================================================
# 1. Discovery
# ===========================================================================
class TestDiscoverFeatures:

    def test_missing_features_dir_is_fatal(self, tmp_path):
        with pytest.raises(MissingInputError):
            discover_features(str(tmp_path / "nowhere"))

    def test_lists_main_streams_sorted(self, write_batch, iso):
        write_batch("MC_PRODUCTS_LIST", [{"type": "SCREEN_LOAD", "ts": iso()}], console=[])
        root = write_batch("MC_DRAWING_LIST", [{"type": "SCREEN_LOAD", "ts": iso()}])
        assert discover_features(root) == ["MC_DRAWING_LIST", "MC_PRODUCTS_LIST"]

    def test_empty_dir(self, log_root):
        assert discover_features(str(log_root)) == []


# ===========================================================================
# 2. Record normalisation
# ===========================================================================
class TestNormalizeRecord:

    def test_flat_record_keys_land_in_payload(self, iso):
        e = normalize_record(
            {"type": "UI_CLICK", "traceId": "TR-1", "ts": iso(), "elementId": "BTN_SEARCH",
             "payload": {"label": "Search"}},
            "MC_PRODUCTS_LIST", seq=1,
        )
        assert e.element_id == "BTN_SEARCH"
        assert e.label == "Search"
        assert "ts" not in e.payload and "traceId" not in e.payload

    def test_screen_defaults_to_feature(self, iso):
        e = normalize_record({"type": "SCREEN_LOAD", "ts": iso()}, "MC_HISTORY", seq=1)
        assert e.feature_id == "MC_HISTORY"
        assert e.screen_id == "MC_HISTORY"

    def test_timestamp_fallbacks(self, iso):
        a = normalize_record({"type": "BACKEND", "timestamp": iso(1)}, "F", seq=1)
        b = normalize_record({"type": "BACKEND", "_savedAt": iso(2)}, "F", seq=2)
        assert a.timestamp < b.timestamp

    def test_naive_timestamp_is_utc(self):
        e = normalize_record({"type": "BACKEND", "ts": "2025-01-10T09:15:00"}, "F", seq=1)
        assert e.timestamp == datetime(2025, 1, 10, 9, 15, tzinfo=timezone.utc)

    def test_console_falls_back_to_last_trace_id(self, iso):
        e = normalize_record({"level": "error", "lastTraceId": "TR-7", "ts": iso()}, "F", seq=1,
                             default_type="CONSOLE")
        assert e.type == "CONSOLE"
        assert e.trace_id == "TR-7"

    @pytest.mark.parametrize("raw", [
        [1, 2],
        "text",
        {"type": "UI_CLICK"},
        {"type": "BOGUS", "ts": "2025-01-10T09:15:00Z"},
        {"ts": "2025-01-10T09:15:00Z"},
        {"type": "UI_CLICK", "ts": "yesterday"},
        {"type": ["UI_CLICK"], "ts": "2025-01-10T09:15:00Z"},
        {"type": {"name": "UI_CLICK"}, "ts": "2025-01-10T09:15:00Z"},
        {"type": "UI_CLICK", "ts": ["2025-01-10T09:15:00Z"]},
    ])
    def test_malformed_records_return_none(self, raw):
        assert normalize_record(raw, "F", seq=1) is None


# ===========================================================================
# 3. Batch loading
# ===========================================================================
class TestReadFeatureBatch:

    def test_missing_batch_is_fatal(self, log_root):
        with pytest.raises(MissingInputError):
            read_feature_batch("MC_NOPE", str(log_root))

    def test_sorted_by_timestamp_and_malformed_counted(self, write_batch, iso):
        root = write_batch(
            "MC_PRODUCTS_LIST",
            [
                {"type": "SCREEN_LOAD", "ts": iso(0), "context": {"screenMode": "search"}},
                {"type": "UI_CLICK", "timestamp": iso(1000), "traceId": "TR-1", "elementId": "BTN_SEARCH"},
                {"type": "BACKEND", "_savedAt": iso(500), "processName": "INITIAL_SNAPSHOT"},
            ],
            raw_lines=[
                "",
                "not json",
                "[1, 2]",
                '{"type": "UI_CLICK"}',
                '{"type": "BOGUS", "ts": "2025-01-10T09:15:00Z"}',
            ],
        )
        batch = read_feature_batch("MC_PRODUCTS_LIST", root)

        assert [e.type for e in batch.events] == ["SCREEN_LOAD", "BACKEND", "UI_CLICK"]
        assert batch.malformed_records == 4

    def test_unhashable_type_counts_as_malformed(self, write_batch, iso):
        root = write_batch("MC_PRODUCTS_LIST", [
            {"type": "SCREEN_LOAD", "ts": iso(0)},
            {"type": ["UI_CLICK"], "ts": iso(100), "elementId": "BTN_SEARCH"},
            {"type": {"kind": "BACKEND"}, "ts": iso(200)},
            {"type": "UI_CLICK", "ts": iso(300), "traceId": "TR-1", "elementId": "BTN_SEARCH"},
        ], raw_lines=["[" * 5000])
        batch = read_feature_batch("MC_PRODUCTS_LIST", root)

        assert [e.type for e in batch.events] == ["SCREEN_LOAD", "UI_CLICK"]
        assert batch.malformed_records == 3

    def test_console_stream_joins_batch_with_unique_seq(self, write_batch, iso):
        root = write_batch(
            "MC_PRODUCTS_LIST",
            [
                {"type": "UI_CLICK", "ts": iso(0), "traceId": "TR-1", "elementId": "BTN_SEARCH"},
                {"type": "BACKEND", "ts": iso(300), "traceId": "TR-1", "processName": "SEARCH_RESULT"},
            ],
            console=[{"type": "CONSOLE", "level": "error", "args": ["boom", {"a": 1}],
                      "lastTraceId": "TR-1", "ts": iso(100)}],
        )
        batch = read_feature_batch("MC_PRODUCTS_LIST", root)

        console = [e for e in batch.events if e.type == "CONSOLE"]
        assert len(console) == 1
        assert console[0].trace_id == "TR-1"
        assert console[0].message == 'boom {"a": 1}'
        seqs = [e.seq for e in batch.events]
        assert len(set(seqs)) == len(seqs)
        assert console[0].seq > max(e.seq for e in batch.events if e.type != "CONSOLE")

    def test_equal_timestamps_keep_file_order(self, write_batch, iso):
        root = write_batch("F", [
            {"type": "UI_CLICK", "ts": iso(0), "traceId": "TR-1", "elementId": "A"},
            {"type": "UI_CLICK", "ts": iso(0), "traceId": "TR-2", "elementId": "B"},
        ])
        batch = read_feature_batch("F", root)
        assert [e.element_id for e in batch.events] == ["A", "B"]

    def test_screenshot_sources_merged(self, write_batch, log_root, iso):
        after = "2025-01-10T09-15-01-500Z_MC_PRODUCTS_LIST_BTN_SEARCH_AFTER_TR-1.jpg"
        before = "2025-01-10T09-15-01-000Z_MC_PRODUCTS_LIST_BTN_SEARCH_BEFORE_TR-1.jpg"
        orphan = "2025-01-10T09-15-00-000Z_MC_PRODUCTS_LIST_SCREEN_LOAD_null.png"

        shots = log_root / "screenshots" / "MC_PRODUCTS_LIST"
        shots.mkdir(parents=True)
        for name in (after, before, orphan, "notes.txt"):
            (shots / name).write_bytes(b"x")

        root = write_batch("MC_PRODUCTS_LIST", [
            {"type": "UI_CLICK", "ts": iso(1000), "traceId": "TR-1", "elementId": "BTN_SEARCH"},
            {"type": "SCREENSHOT", "ts": iso(1500), "traceId": "TR-1", "trigger": "BTN_SEARCH_AFTER",
             "file": f"screenshots/MC_PRODUCTS_LIST/{after}"},
        ])
        batch = read_feature_batch("MC_PRODUCTS_LIST", root)

        tr1 = batch.screenshots["TR-1"]
        assert [a.file_name for a in tr1] == [before, after]
        assert tr1[1].source == "log"
        assert tr1[0].source == "dir"
        assert [a.file_name for a in batch.unattributed_screenshots] == [orphan]
