"""
Event Model
===========
Pydantic models for ingested records. This is the contract between the
Event Store Reader and every downstream consumer.

Event fields:
    type        — one of EVENT_TYPES (SCREEN_LOAD, UI_CLICK, BACKEND, ...)
    feature_id  — batch key the event was recorded under
    trace_id    — correlation key, None for some console/error/backend records
    screen_id   — screen the event happened on
    timestamp   — timezone-aware; authoritative for ordering
    seq         — line number in the source file, tie-breaker for equal timestamps
    payload     — type-specific fields (elementId, inputValues, processName, ...)

ScreenshotArtifact fields:
    trace_id    — None when neither the event nor the file name carries one
    trigger     — e.g. SCREEN_LOAD, BTN_SEARCH_BEFORE, BTN_SEARCH_AFTER
    file_path   — path as reported by its source
    source      — "log" (SCREENSHOT event) or "dir" (directory listing)
"""
import json
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Event(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    type: str
    feature_id: str
    trace_id: Optional[str] = None
    screen_id: str = ""
    timestamp: datetime
    seq: int = 0
    payload: dict[str, Any] = {}

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, v: datetime) -> datetime:
        return _as_utc(v)

    @property
    def sort_key(self) -> tuple[datetime, int]:
        return (self.timestamp, self.seq)

    @property
    def element_id(self) -> str:
        return str(self.payload.get("elementId") or "")

    @property
    def label(self) -> str:
        return str(self.payload.get("label") or "")

    @property
    def input_values(self) -> dict[str, Any]:
        iv = self.payload.get("inputValues")
        return iv if isinstance(iv, dict) else {}

    @property
    def context(self) -> Optional[dict[str, Any]]:
        ctx = self.payload.get("context")
        return ctx if isinstance(ctx, dict) else None

    @property
    def process_name(self) -> str:
        return str(self.payload.get("processName") or "")

    @property
    def message(self) -> str:
        """ERROR message, or console arguments rendered as one line."""
        if self.type != "CONSOLE":
            return str(self.payload.get("message") or "")
        args = self.payload.get("args")
        if not isinstance(args, list):
            return str(args or "")
        parts = []
        for a in args:
            if isinstance(a, (dict, list)):
                parts.append(json.dumps(a, ensure_ascii=False, sort_keys=True))
            else:
                parts.append(str(a))
        return " ".join(parts)


class ScreenshotArtifact(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    feature_id: str
    trace_id: Optional[str] = None
    screen_id: str = ""
    trigger: str = ""
    file_path: str
    timestamp: Optional[datetime] = None
    source: str = "log"

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v) if v is not None else None

    @property
    def file_name(self) -> str:
        return self.file_path.replace("\\", "/").rsplit("/", 1)[-1]
