"""
Trace Correlator
================
Partitions one feature batch into Interactions keyed by trace id.

Grouping rules:
    - Trace id is the only grouping key. Two interactions may share a
      screen id; they never share a trace id.
    - CONSOLE entries carry the trace id of the last interaction at capture
      time and attach to it explicitly. Entries whose trace id is unknown
      (or absent) go to the "ungrouped" pseudo-interaction.
    - ERROR events without a trace id become singleton interactions.
    - Other untraced events attach to the most recent UI_CLICK interaction
      when that click happened within attach_window_ms; otherwise they go
      to the "ungrouped" pseudo-interaction.
    - Screenshots attach by exact trace id.

The "current click" cursor is local to one correlate() call, so features
can be correlated concurrently without sharing state.
"""
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional

from issue_engine.core.config import RuleSettings
from issue_engine.core.constants import EventType
from issue_engine.models.event import Event, ScreenshotArtifact
from issue_engine.models.interaction import UNGROUPED_KEY, CorrelatedView, Interaction
from issue_engine.parser.event_reader import EventBatch

logger = logging.getLogger(__name__)


@dataclass
class _Group:
    key: str
    trace_id: Optional[str]
    ungrouped: bool = False
    events: list[Event] = field(default_factory=list)
    console: list[Event] = field(default_factory=list)


@dataclass
class _CorrelationCursor:
    """Last UI_CLICK seen while walking the batch in time order."""
    click: Optional[Event] = None

    def advance(self, event: Event) -> None:
        if event.type == EventType.UI_CLICK and event.trace_id:
            self.click = event

    def attach_target(self, event: Event, window: timedelta) -> Optional[str]:
        if self.click is None:
            return None
        if event.timestamp - self.click.timestamp > window:
            return None
        return self.click.trace_id


def correlate(batch: EventBatch, settings: RuleSettings) -> CorrelatedView:
    """
    Build the correlated view of one feature batch.

    Parameters
    ----------
    batch : EventBatch
        Output of the Event Store Reader (events sorted by timestamp).
    settings : RuleSettings
        Supplies attach_window_ms.

    Returns
    -------
    CorrelatedView
        Interactions ordered by their first event. Context summaries are
        left empty; the summarizer fills them.
    """
    window = timedelta(milliseconds=settings.attach_window_ms)
    cursor = _CorrelationCursor()
    groups: dict[str, _Group] = {}
    ungrouped = _Group(key=UNGROUPED_KEY, trace_id=None, ungrouped=True)
    pending_console: list[Event] = []

    def group_for(trace_id: str) -> _Group:
        if trace_id not in groups:
            groups[trace_id] = _Group(key=trace_id, trace_id=trace_id)
        return groups[trace_id]

    for event in batch.events:
        if event.type == EventType.CONSOLE:
            # resolved after every traced group is known
            pending_console.append(event)
            continue

        if event.trace_id:
            group_for(event.trace_id).events.append(event)
        elif event.type == EventType.ERROR:
            key = f"ungrouped-error-{event.seq}"
            groups[key] = _Group(key=key, trace_id=None, ungrouped=True, events=[event])
        else:
            target = cursor.attach_target(event, window)
            if target:
                group_for(target).events.append(event)
            else:
                ungrouped.events.append(event)

        cursor.advance(event)

    for entry in pending_console:
        if entry.trace_id and entry.trace_id in groups:
            groups[entry.trace_id].console.append(entry)
        else:
            ungrouped.console.append(entry)

    all_groups = list(groups.values())
    if ungrouped.events or ungrouped.console:
        all_groups.append(ungrouped)

    interactions = [
        _to_interaction(g, batch.screenshots)
        for g in sorted(all_groups, key=_group_order)
    ]

    if ungrouped.events or ungrouped.console:
        logger.info(
            "Feature %s: %d untraced event(s) and %d console entr(ies) left ungrouped",
            batch.feature_id, len(ungrouped.events), len(ungrouped.console),
        )

    return CorrelatedView(
        feature_id=batch.feature_id,
        events=batch.events,
        interactions=interactions,
        unattributed_screenshots=batch.unattributed_screenshots,
        malformed_records=batch.malformed_records,
    )


def _group_order(group: _Group):
    first = group.events[0] if group.events else (group.console[0] if group.console else None)
    if first is None:
        return (1, None, 0, group.key)
    return (0, first.timestamp, first.seq, group.key)


def _to_interaction(group: _Group, screenshots: dict[str, list[ScreenshotArtifact]]) -> Interaction:
    shots = screenshots.get(group.trace_id, []) if group.trace_id else []
    return Interaction(
        key=group.key,
        trace_id=group.trace_id,
        ungrouped=group.ungrouped,
        events=sorted(group.events, key=lambda e: e.sort_key),
        screenshots=list(shots),
        console_entries=sorted(group.console, key=lambda e: e.sort_key),
    )
