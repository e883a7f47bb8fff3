"""
Interaction Model
=================
Derived, read-only structures produced by the Trace Correlator and the
Context Summarizer and consumed by every rule.

    Interaction      — all events sharing one trace id, plus attributed
                       screenshots and console entries
    ContextSummary   — ordered labeled fragments describing the conditions
                       around an interaction
    CorrelatedView   — everything one feature batch knows, in one value;
                       the only input a rule receives
"""
from typing import Optional

from pydantic import BaseModel, ConfigDict

from issue_engine.core.constants import EventType
from issue_engine.models.event import Event, ScreenshotArtifact

SUMMARY_SEPARATOR = " | "

UNGROUPED_KEY = "ungrouped"


class ContextFragment(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    text: str

    def render(self) -> str:
        return f"{self.label}:{self.text}"


class ContextSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    fragments: list[ContextFragment] = []

    def has(self, label: str) -> bool:
        return any(f.label == label for f in self.fragments)

    @property
    def text(self) -> str:
        return SUMMARY_SEPARATOR.join(f.render() for f in self.fragments)


class Interaction(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    trace_id: Optional[str] = None
    ungrouped: bool = False
    events: list[Event] = []
    screenshots: list[ScreenshotArtifact] = []
    console_entries: list[Event] = []
    context_summary: ContextSummary = ContextSummary()

    @property
    def primary_event(self) -> Optional[Event]:
        """First UI_CLICK, else BACKEND, else ERROR, else the first event."""
        for etype in (EventType.UI_CLICK, EventType.BACKEND, EventType.ERROR):
            for e in self.events:
                if e.type == etype:
                    return e
        return self.events[0] if self.events else None

    def events_of(self, etype: str) -> list[Event]:
        return [e for e in self.events if e.type == etype]


class CorrelatedView(BaseModel):
    model_config = ConfigDict(frozen=True)

    feature_id: str
    events: list[Event] = []
    interactions: list[Interaction] = []
    unattributed_screenshots: list[ScreenshotArtifact] = []
    malformed_records: int = 0

    def events_of(self, etype: str) -> list[Event]:
        return [e for e in self.events if e.type == etype]

    def by_trace(self) -> dict[str, Interaction]:
        return {i.trace_id: i for i in self.interactions if i.trace_id}

    def interaction_of(self, event: Event) -> Optional[Interaction]:
        """Interaction that owns the event (matched by seq, then trace id)."""
        for i in self.interactions:
            if any(e.seq == event.seq for e in i.events):
                return i
        if event.trace_id:
            return self.by_trace().get(event.trace_id)
        return None
