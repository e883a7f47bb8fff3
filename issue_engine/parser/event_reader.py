"""
Event Store Reader
==================
Loads one feature batch from append-only line-delimited storage.

Layout:
    <log_root>/features/<featureId>.jsonl            main event stream
    <log_root>/features/<featureId>.console.jsonl    optional console stream
    <log_root>/screenshots/<featureId>/              screenshot images

Pipeline:
    1. Read each line; skip blanks
    2. Parse JSON; non-objects and broken lines are malformed
    3. Normalise the flat instrumentation record into an Event
       (ts/_savedAt → timestamp, lastTraceId → trace id for CONSOLE,
       remaining keys → payload)
    4. Sort by (timestamp, seq)
    5. Build the merged screenshot index

Contract:
    - Malformed records are counted and skipped, never fatal.
    - A missing main stream is fatal (MissingInputError).
    - seq is unique across both streams of a batch.
"""
import json
import os
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import ValidationError

from issue_engine.core.constants import EVENT_TYPES, EventType
from issue_engine.core.errors import MissingInputError
from issue_engine.models.event import Event, ScreenshotArtifact
from issue_engine.parser.screenshot_index import (
    artifacts_from_events,
    merge_screenshot_sources,
    scan_screenshot_dir,
)

logger = logging.getLogger(__name__)

FEATURES_DIR = "features"
SCREENSHOTS_DIR = "screenshots"
EVENTS_SUFFIX = ".jsonl"
CONSOLE_SUFFIX = ".console.jsonl"

# Keys consumed by the Event envelope; everything else lands in payload
_ENVELOPE_KEYS = {"type", "featureId", "traceId", "screenId", "timestamp", "ts", "_savedAt", "payload"}


@dataclass
class EventBatch:
    """Everything the reader produced for one feature."""
    feature_id: str
    events: list[Event] = field(default_factory=list)
    screenshots: dict[str, list[ScreenshotArtifact]] = field(default_factory=dict)
    unattributed_screenshots: list[ScreenshotArtifact] = field(default_factory=list)
    malformed_records: int = 0


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------
def features_path(log_root: str) -> str:
    return os.path.join(log_root, FEATURES_DIR)


def discover_features(log_root: str) -> list[str]:
    """Return sorted feature ids with a main event stream under log_root."""
    feat_dir = features_path(log_root)
    if not os.path.isdir(feat_dir):
        raise MissingInputError(
            f"Features directory not found: {os.path.abspath(feat_dir)} "
            f"(set LOG_ROOT to the directory containing features/)"
        )
    return sorted(
        name[: -len(EVENTS_SUFFIX)]
        for name in os.listdir(feat_dir)
        if name.endswith(EVENTS_SUFFIX) and not name.endswith(CONSOLE_SUFFIX)
    )


# ---------------------------------------------------------------------------
# Record normalisation
# ---------------------------------------------------------------------------
def normalize_record(
    raw: Any,
    feature_id: str,
    seq: int,
    default_type: Optional[str] = None,
) -> Optional[Event]:
    """
    Turn one decoded JSON value into an Event, or None if it is malformed.

    Parameters
    ----------
    raw : Any
        Decoded JSON line.
    feature_id : str
        Batch id, used when the record carries none.
    seq : int
        Position of the record within the batch.
    default_type : str | None
        Type assumed when the record has none (console stream).
    """
    if not isinstance(raw, dict):
        return None

    etype = raw.get("type") or default_type
    if not isinstance(etype, str) or etype not in EVENT_TYPES:
        return None

    timestamp = raw.get("timestamp") or raw.get("ts") or raw.get("_savedAt")
    if isinstance(timestamp, bool) or not isinstance(timestamp, (str, int, float)) or timestamp == "":
        return None

    trace_id = raw.get("traceId")
    if not trace_id and etype == EventType.CONSOLE:
        trace_id = raw.get("lastTraceId")

    payload: dict[str, Any] = {}
    if isinstance(raw.get("payload"), dict):
        payload.update(raw["payload"])
    payload.update({k: v for k, v in raw.items() if k not in _ENVELOPE_KEYS})

    record_feature = raw.get("featureId") or feature_id
    try:
        return Event(
            type=etype,
            feature_id=str(record_feature),
            trace_id=str(trace_id) if trace_id else None,
            screen_id=str(raw.get("screenId") or record_feature),
            timestamp=timestamp,
            seq=seq,
            payload=payload,
        )
    except ValidationError:
        return None


def read_jsonl_events(
    path: str,
    feature_id: str,
    start_seq: int = 0,
    default_type: Optional[str] = None,
) -> tuple[list[Event], int, int]:
    """
    Read one JSONL file.

    Returns
    -------
    tuple[list[Event], int, int]
        (events in file order, malformed count, next free seq)
    """
    events: list[Event] = []
    malformed = 0
    seq = start_seq

    with open(path, "r", encoding="utf-8", errors="replace") as fh:
        for line_no, line in enumerate(fh, start=1):
            line = line.strip()
            if not line:
                continue
            seq += 1
            try:
                raw = json.loads(line)
            except (ValueError, RecursionError):
                malformed += 1
                logger.debug("%s:%d is not valid JSON, skipped", path, line_no)
                continue
            try:
                event = normalize_record(raw, feature_id, seq, default_type)
            except (TypeError, ValueError, RecursionError):
                event = None
            if event is None:
                malformed += 1
                logger.debug("%s:%d is not a valid event record, skipped", path, line_no)
                continue
            events.append(event)

    return events, malformed, seq


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def read_feature_batch(feature_id: str, log_root: str) -> EventBatch:
    """
    Load a feature's events (sorted by timestamp) and its merged screenshot index.

    Raises
    ------
    MissingInputError
        When <log_root>/features/<feature_id>.jsonl does not exist.
    """
    feat_dir = features_path(log_root)
    events_file = os.path.join(feat_dir, feature_id + EVENTS_SUFFIX)
    if not os.path.isfile(events_file):
        raise MissingInputError(f"No event batch for feature '{feature_id}': {os.path.abspath(events_file)}")

    events, malformed, next_seq = read_jsonl_events(events_file, feature_id)

    console_file = os.path.join(feat_dir, feature_id + CONSOLE_SUFFIX)
    if os.path.isfile(console_file):
        console_events, console_bad, _ = read_jsonl_events(
            console_file, feature_id, start_seq=next_seq, default_type=EventType.CONSOLE
        )
        events.extend(console_events)
        malformed += console_bad

    events.sort(key=lambda e: e.sort_key)

    if malformed:
        logger.warning("Feature %s: skipped %d malformed record(s)", feature_id, malformed)

    screen_ids = sorted({e.screen_id for e in events if e.screen_id})
    from_log = artifacts_from_events(events)
    from_dir = scan_screenshot_dir(os.path.join(log_root, SCREENSHOTS_DIR, feature_id), feature_id, screen_ids)
    screenshots, unattributed = merge_screenshot_sources(from_log, from_dir)

    logger.info(
        "Feature %s: %d event(s), %d screenshot trace(s), %d unattributed screenshot(s)",
        feature_id, len(events), len(screenshots), len(unattributed),
    )
    return EventBatch(
        feature_id=feature_id,
        events=events,
        screenshots=screenshots,
        unattributed_screenshots=unattributed,
        malformed_records=malformed,
    )
