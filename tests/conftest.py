"""
Shared builders for engine tests: in-memory events/views and on-disk batches.
"""
import json
from datetime import datetime, timedelta, timezone

import pytest

from issue_engine.core.config import RuleSettings
from issue_engine.correlation.context_summary import summarize_view
from issue_engine.correlation.trace_correlator import correlate
from issue_engine.models.event import Event
from issue_engine.parser.event_reader import EventBatch

BASE = datetime(2025, 1, 10, 9, 15, 0, tzinfo=timezone.utc)
FEATURE = "MC_PRODUCTS_LIST"


def _event(etype, seq, at_ms=0, trace=None, screen=FEATURE, feature=FEATURE, **payload):
    return Event(
        type=etype,
        feature_id=feature,
        trace_id=trace,
        screen_id=screen,
        timestamp=BASE + timedelta(milliseconds=at_ms),
        seq=seq,
        payload=payload,
    )


def _view(events, feature_id=FEATURE, settings=None, screenshots=None, unattributed=None):
    batch = EventBatch(
        feature_id=feature_id,
        events=sorted(events, key=lambda e: e.sort_key),
        screenshots=screenshots or {},
        unattributed_screenshots=unattributed or [],
    )
    return summarize_view(correlate(batch, settings or RuleSettings()))


def _iso(at_ms=0):
    t = BASE + timedelta(milliseconds=at_ms)
    return t.strftime("%Y-%m-%dT%H:%M:%S.") + f"{t.microsecond // 1000:03d}Z"


@pytest.fixture
def make_event():
    return _event


@pytest.fixture
def make_view():
    return _view


@pytest.fixture
def iso():
    return _iso


@pytest.fixture
def log_root(tmp_path):
    root = tmp_path / "logs"
    (root / "features").mkdir(parents=True)
    return root


@pytest.fixture
def write_batch(log_root):
    """Write <feature>.jsonl (and optionally .console.jsonl); extra raw lines are appended verbatim."""
    def _write(feature_id, records, console=None, raw_lines=()):
        lines = [json.dumps(r, ensure_ascii=False) for r in records] + list(raw_lines)
        (log_root / "features" / f"{feature_id}.jsonl").write_text("\n".join(lines) + "\n", encoding="utf-8")
        if console is not None:
            (log_root / "features" / f"{feature_id}.console.jsonl").write_text(
                "\n".join(json.dumps(r, ensure_ascii=False) for r in console) + "\n", encoding="utf-8"
            )
        return str(log_root)
    return _write
