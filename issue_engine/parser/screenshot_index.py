"""
Screenshot Index
================
Builds the per-feature screenshot index from two independent sources:

    1. SCREENSHOT events in the feature's event stream ("log" source)
    2. Image files under screenshots/<featureId>/ ("dir" source), whose names
       encode  <ts>_<screenId>_<trigger>_<traceId>.<ext>

Merge contract:
    - Set union keyed by trace id; one artifact per file name.
    - Log-sourced entries win on conflicting metadata (trace id, trigger,
      timestamp) because they are inserted first.
    - A log entry without a trace id recovers it from its file name.
    - Artifacts with no recoverable trace id are returned separately,
      never dropped.
    - Output is sorted, so the same inputs always produce the same index.
"""
import os
import re
import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from issue_engine.core.constants import EventType
from issue_engine.models.event import Event, ScreenshotArtifact

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS: tuple[str, ...] = (".jpg", ".jpeg", ".png")

# Trace ids minted by the browser logger: TR-<epochMs>-<base36 suffix>
_TRACE_SUFFIX = re.compile(r"_(TR-\d+-[A-Za-z0-9]+)$")

# ISO timestamp with ':' and '.' replaced by '-' (file-system safe)
_FILENAME_TS = re.compile(
    r"^(\d{4}-\d{2}-\d{2})T(\d{2})-(\d{2})-(\d{2})(?:-(\d{1,6}))?Z?$"
)

# What JS writes into a template string for a missing trace id
_MISSING_TRACE = {"", "null", "undefined"}

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _parse_filename_ts(raw: str) -> Optional[datetime]:
    m = _FILENAME_TS.match(raw)
    if not m:
        return None
    date, hh, mm, ss, frac = m.groups()
    micros = int((frac or "0").ljust(6, "0"))
    try:
        base = datetime.fromisoformat(f"{date}T{hh}:{mm}:{ss}")
    except ValueError:
        return None
    return base.replace(microsecond=micros, tzinfo=timezone.utc)


def trace_id_from_filename(file_name: str) -> Optional[str]:
    """Recover the trace id encoded at the end of a screenshot file name."""
    stem = os.path.splitext(os.path.basename(file_name))[0]
    m = _TRACE_SUFFIX.search(stem)
    if m:
        return m.group(1)
    if "_" not in stem:
        return None
    tail = stem.rsplit("_", 1)[1]
    return None if tail in _MISSING_TRACE else tail


def parse_screenshot_filename(
    file_name: str,
    feature_id: str,
    known_screen_ids: Iterable[str] = (),
) -> Optional[ScreenshotArtifact]:
    """
    Parse  <ts>_<screenId>_<trigger>_<traceId>.<ext>  into an artifact.

    Screen ids and triggers both contain underscores (MC_PRODUCTS_LIST,
    BTN_SEARCH_BEFORE), so the boundary between them is resolved against
    the screen ids actually seen in the batch (longest match wins), with
    the feature id as a fallback candidate.

    Returns None for non-image files.
    """
    base = os.path.basename(file_name)
    stem, ext = os.path.splitext(base)
    if ext.lower() not in IMAGE_EXTENSIONS:
        return None

    trace_id = trace_id_from_filename(base)
    m = _TRACE_SUFFIX.search(stem)
    if m:
        rest = stem[:m.start()]
    elif "_" in stem:
        rest = stem.rsplit("_", 1)[0]
    else:
        rest = stem

    ts_raw, _, middle = rest.partition("_")
    timestamp = _parse_filename_ts(ts_raw)

    screen_id, trigger = "", middle
    candidates = sorted(set(known_screen_ids) | {feature_id}, key=len, reverse=True)
    for sid in candidates:
        if sid and middle.startswith(sid + "_"):
            screen_id, trigger = sid, middle[len(sid) + 1:]
            break
        if sid and middle == sid:
            screen_id, trigger = sid, ""
            break

    return ScreenshotArtifact(
        feature_id=feature_id,
        trace_id=trace_id,
        screen_id=screen_id,
        trigger=trigger,
        file_path=f"screenshots/{feature_id}/{base}",
        timestamp=timestamp,
        source="dir",
    )


def artifacts_from_events(events: Iterable[Event]) -> list[ScreenshotArtifact]:
    """Convert SCREENSHOT events into artifacts (log source)."""
    artifacts: list[ScreenshotArtifact] = []
    for e in events:
        if e.type != EventType.SCREENSHOT:
            continue
        path = e.payload.get("file") or e.payload.get("filePath")
        if not path:
            logger.debug("SCREENSHOT event seq=%d has no file path, skipped", e.seq)
            continue
        trace_id = e.trace_id
        if not trace_id or trace_id in _MISSING_TRACE:
            trace_id = trace_id_from_filename(str(path))
        artifacts.append(ScreenshotArtifact(
            feature_id=e.feature_id,
            trace_id=trace_id,
            screen_id=e.screen_id,
            trigger=str(e.payload.get("trigger") or ""),
            file_path=str(path),
            timestamp=e.timestamp,
            source="log",
        ))
    return artifacts


def scan_screenshot_dir(
    directory: str,
    feature_id: str,
    known_screen_ids: Iterable[str] = (),
) -> list[ScreenshotArtifact]:
    """List image files of one feature's screenshot directory (dir source)."""
    if not os.path.isdir(directory):
        return []
    known = list(known_screen_ids)
    artifacts: list[ScreenshotArtifact] = []
    for name in sorted(os.listdir(directory)):
        artifact = parse_screenshot_filename(name, feature_id, known)
        if artifact is not None:
            artifacts.append(artifact)
    return artifacts


def _sort_key(a: ScreenshotArtifact) -> tuple[datetime, str]:
    return (a.timestamp or _EPOCH, a.file_name)


def merge_screenshot_sources(
    from_log: Iterable[ScreenshotArtifact],
    from_dir: Iterable[ScreenshotArtifact],
) -> tuple[dict[str, list[ScreenshotArtifact]], list[ScreenshotArtifact]]:
    """
    Union both sources into a trace-id index.

    Returns
    -------
    tuple[dict[str, list[ScreenshotArtifact]], list[ScreenshotArtifact]]
        (trace id → artifacts sorted by time, artifacts with no trace id)
    """
    by_file: dict[str, ScreenshotArtifact] = {}
    for artifact in list(from_log) + list(from_dir):
        by_file.setdefault(artifact.file_name, artifact)

    index: dict[str, list[ScreenshotArtifact]] = {}
    unattributed: list[ScreenshotArtifact] = []
    for artifact in by_file.values():
        if artifact.trace_id:
            index.setdefault(artifact.trace_id, []).append(artifact)
        else:
            unattributed.append(artifact)

    merged = {tid: sorted(items, key=_sort_key) for tid, items in sorted(index.items())}
    return merged, sorted(unattributed, key=_sort_key)
