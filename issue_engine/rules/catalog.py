"""
Rule Catalog
============
The fixed set of hand-authored detection heuristics R01..R11.

Each rule is a pure function of (CorrelatedView, RuleSettings). Windows and
keyword lists come from RuleSettings; nothing here hard-codes a threshold.
Every finding cites the concrete events it is based on, including rules
about missing data (R10/R11 cite the load/context event they inspected).
"""
import json
import re
from datetime import timedelta
from typing import Any, Iterable, Optional

from issue_engine.core.config import RuleSettings
from issue_engine.core.constants import (
    INITIAL_SNAPSHOT,
    RESULT_COUNT_UNAVAILABLE,
    SEARCH_RESULT,
    EventType,
)
from issue_engine.correlation.context_summary import form_snapshot, form_values
from issue_engine.models.event import Event
from issue_engine.models.finding import EventRef, Finding
from issue_engine.models.interaction import CorrelatedView
from issue_engine.rules.registry import rule
from issue_engine.rules.severity_keywords import (
    classify_backend_status,
    classify_error_severity,
    normalize_message,
)

# Upper bound on event refs cited by batch-wide rules
_MAX_CITED = 20

_DIGITS = re.compile(r"\d+")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _finding(
    view: CorrelatedView,
    rule_id: str,
    category: str,
    severity: str,
    reproducibility: str,
    confidence: float,
    description: str,
    fix_suggestion: str,
    evidence_key: str,
    events: Iterable[Event],
    occurrences: int = 1,
    sample: str = "",
) -> Finding:
    cited = list(events)
    return Finding(
        rule_id=rule_id,
        category=category,
        feature_id=view.feature_id,
        screen_id=cited[0].screen_id if cited else view.feature_id,
        severity=severity,
        reproducibility=reproducibility,
        confidence=confidence,
        description=description,
        fix_suggestion=fix_suggestion,
        evidence_key=evidence_key,
        evidence=[EventRef.of(e) for e in cited],
        occurrences=occurrences,
        sample=sample,
    )


def _ms(delta: timedelta) -> int:
    return int(delta.total_seconds() * 1000)


def _matches(pattern: re.Pattern, event: Event) -> bool:
    return bool(
        pattern.search(event.element_id)
        or pattern.search(event.label)
        or pattern.search(str(event.input_values.get("buttonLabel") or ""))
    )


def _filled(value: Any) -> bool:
    return value not in (None, "") and not (isinstance(value, (list, dict)) and not value)


def _row_count(payload: dict[str, Any]) -> Optional[int]:
    """
    Rows reported by a SEARCH_RESULT, or None when no number can be read.

    resultCount usually holds paginator text: "1 - 10 / 25" gives the total
    after the last slash, any other text its last integer.
    """
    for key in ("rowCount", "resultCount"):
        value = payload.get(key)
        if isinstance(value, bool) or value is None:
            continue
        if isinstance(value, int):
            return value
        if isinstance(value, str):
            numbers = _DIGITS.findall(value.rsplit("/", 1)[-1].replace(",", ""))
            if numbers:
                return int(numbers[-1])
    return None


def _count_missing(payload: dict[str, Any]) -> bool:
    if str(payload.get("resultCount") or "").strip() == RESULT_COUNT_UNAVAILABLE:
        return True
    return all(payload.get(key) in (None, "") for key in ("rowCount", "resultCount"))



# ---------------------------------------------------------------------------
# R01: Error log
# ---------------------------------------------------------------------------
@rule("R01", "Error log")
def detect_error_log(view: CorrelatedView, settings: RuleSettings) -> list[Finding]:
    findings: list[Finding] = []

    for e in view.events_of(EventType.ERROR):
        message = e.message
        result = classify_error_severity(message, settings.critical_error_keywords)
        detail = e.payload.get("detail")
        sample = message or "(no message)"
        if detail:
            sample += " / detail=" + json.dumps(detail, ensure_ascii=False, sort_keys=True)[:80]
        findings.append(_finding(
            view, "R01", "ERROR", result.severity, "Unknown", 0.99,
            description=f"Error logged on {e.screen_id}: {(message or '(no message)')[:80]}",
            fix_suggestion="Check the stack trace in the browser console around this timestamp "
                           "and fix the failing screen script.",
            evidence_key=f"{e.screen_id}:{normalize_message(message)}",
            events=[e],
            sample=sample,
        ))

    for e in view.events_of(EventType.CONSOLE):
        if str(e.payload.get("level") or "").lower() != "error":
            continue
        message = e.message
        result = classify_error_severity(message, settings.critical_error_keywords)
        findings.append(_finding(
            view, "R01", "ERROR", result.severity, "Unknown", 0.8,
            description=f"console.error on {e.screen_id}: {(message or '(empty)')[:80]}",
            fix_suggestion="Trace the console.error call using the captured stack and the "
                           "interaction it was recorded after.",
            evidence_key=f"console:{e.screen_id}:{normalize_message(message)}",
            events=[e],
            sample=(message + (" / " + str(e.payload.get("stack")) if e.payload.get("stack") else ""))[:200],
        ))

    return findings


# ---------------------------------------------------------------------------
# R02: Unknown feature
# ---------------------------------------------------------------------------
@rule("R02", "Unknown feature")
def detect_unknown_feature(view: CorrelatedView, settings: RuleSettings) -> list[Finding]:
    unknown = [e for e in view.events if e.feature_id == settings.unknown_feature_id]
    if not unknown:
        return []
    return [_finding(
        view, "R02", "UNKNOWN_FEATURE", "Medium", "Likely", 0.95,
        description=f"{len(unknown)} event(s) were recorded before the logger was given a feature id",
        fix_suggestion="Make sure the instrumentation init(featureId) call runs before the "
                       "screen emits its first event.",
        evidence_key="unknown-feature",
        events=unknown[:_MAX_CITED],
        occurrences=len(unknown),
        sample=", ".join(sorted({e.type for e in unknown})),
    )]


# ---------------------------------------------------------------------------
# R03: Duplicate bind
# ---------------------------------------------------------------------------
@rule("R03", "Duplicate bind")
def detect_duplicate_bind(view: CorrelatedView, settings: RuleSettings) -> list[Finding]:
    window = timedelta(milliseconds=settings.duplicate_bind_window_ms)
    by_element: dict[tuple[str, str], list[Event]] = {}
    for click in view.events_of(EventType.UI_CLICK):
        if click.element_id:
            by_element.setdefault((click.screen_id, click.element_id), []).append(click)

    findings: list[Finding] = []
    for (screen_id, element_id), clicks in sorted(by_element.items()):
        for prev, cur in zip(clicks, clicks[1:]):
            gap = cur.timestamp - prev.timestamp
            if gap > window:
                continue
            findings.append(_finding(
                view, "R03", "DUPLICATE_BIND", "Medium", "Sometimes", 0.9,
                description=f"Element '{element_id}' recorded two clicks {_ms(gap)}ms apart "
                            f"(handler bound more than once?)",
                fix_suggestion="Check that addEventListener is not called again on re-render "
                               "and that the init guard flag is honoured.",
                evidence_key=f"{screen_id}:{element_id}",
                events=[prev, cur],
                sample=f"gap={_ms(gap)}ms",
            ))
    return findings


# ---------------------------------------------------------------------------
# R04: Search unavailable
# ---------------------------------------------------------------------------
@rule("R04", "Search unavailable")
def detect_search_unavailable(view: CorrelatedView, settings: RuleSettings) -> list[Finding]:
    pattern = re.compile(settings.search_element_pattern, re.IGNORECASE)
    findings: list[Finding] = []

    for click in view.events_of(EventType.UI_CLICK):
        if not _matches(pattern, click):
            continue
        interaction = view.interaction_of(click)
        results = [
            e for e in (interaction.events if interaction else [])
            if e.type == EventType.BACKEND and e.process_name == SEARCH_RESULT
        ]

        if not results:
            reason, cited, text = "missing", [click], "no SEARCH_RESULT was recorded"
        else:
            res = results[0]
            rows = _row_count(res.payload)
            if _count_missing(res.payload):
                reason, cited, text = "unavailable", [click, res], "the result count could not be read"
            elif rows == 0 and not form_values(click):
                reason, cited, text = "zero-rows", [click, res], "0 rows were returned with no search criteria"
            else:
                continue

        findings.append(_finding(
            view, "R04", "SEARCH_UNAVAILABLE", "Medium", "Sometimes", 0.85,
            description=f"Search via '{click.element_id or click.label}': {text}",
            fix_suggestion="Verify the search request completes and that the result-count selector "
                           "matches the rendered table.",
            evidence_key=f"{click.screen_id}:{click.element_id}:{reason}",
            events=cited,
            sample=reason,
        ))
    return findings


# ---------------------------------------------------------------------------
# R05: API not called
# ---------------------------------------------------------------------------
@rule("R05", "API not called")
def detect_api_not_called(view: CorrelatedView, settings: RuleSettings) -> list[Finding]:
    pattern = re.compile(settings.action_element_pattern, re.IGNORECASE)
    timeout = timedelta(milliseconds=settings.api_timeout_ms)
    backends = [
        e for e in view.events_of(EventType.BACKEND)
        if e.process_name != INITIAL_SNAPSHOT
    ]

    findings: list[Finding] = []
    for click in view.events_of(EventType.UI_CLICK):
        element_type = click.input_values.get("elementType")
        if element_type and str(element_type).upper() != "BUTTON":
            continue
        if not _matches(pattern, click):
            continue
        answered = any(
            b.sort_key > click.sort_key and b.timestamp - click.timestamp <= timeout
            for b in backends
        )
        if answered:
            continue
        name = click.input_values.get("buttonLabel") or click.element_id
        findings.append(_finding(
            view, "R05", "API_NOT_CALLED", "High", "Likely", 0.75,
            description=f"No backend activity within {settings.api_timeout_ms}ms of pressing '{name}'",
            fix_suggestion="Confirm the click handler is bound and that the AJAX request is sent "
                           "(browser Network tab).",
            evidence_key=f"{click.screen_id}:{click.element_id}",
            events=[click],
        ))
    return findings


# ---------------------------------------------------------------------------
# R06: Rapid back
# ---------------------------------------------------------------------------
@rule("R06", "Rapid back")
def detect_rapid_back(view: CorrelatedView, settings: RuleSettings) -> list[Finding]:
    pattern = re.compile(settings.back_element_pattern, re.IGNORECASE)
    window = timedelta(milliseconds=settings.rapid_back_window_ms)
    min_clicks = max(2, settings.rapid_back_min_clicks)

    by_element: dict[tuple[str, str], list[Event]] = {}
    for click in view.events_of(EventType.UI_CLICK):
        if _matches(pattern, click):
            by_element.setdefault((click.screen_id, click.element_id), []).append(click)

    findings: list[Finding] = []
    for (screen_id, element_id), clicks in sorted(by_element.items()):
        i = 0
        while i < len(clicks):
            j = i
            while j + 1 < len(clicks) and clicks[j + 1].timestamp - clicks[i].timestamp <= window:
                j += 1
            burst = clicks[i:j + 1]
            if len(burst) < min_clicks:
                i += 1
                continue
            span = _ms(burst[-1].timestamp - burst[0].timestamp)
            findings.append(_finding(
                view, "R06", "RAPID_BACK", "Low", "Sometimes", 0.85,
                description=f"Back action '{element_id}' fired {len(burst)} times within {span}ms",
                fix_suggestion="Guard the back button against re-entry until navigation completes.",
                evidence_key=f"{screen_id}:{element_id}",
                events=burst,
                sample=f"{len(burst)} clicks in {span}ms",
            ))
            i = j + 1
    return findings


# ---------------------------------------------------------------------------
# R07: Duplicate load
# ---------------------------------------------------------------------------
@rule("R07", "Duplicate load")
def detect_duplicate_load(view: CorrelatedView, settings: RuleSettings) -> list[Finding]:
    window = timedelta(milliseconds=settings.duplicate_load_window_ms)
    findings: list[Finding] = []
    previous: Optional[Event] = None

    for e in view.events:
        if e.type == EventType.UI_CLICK:
            previous = None
        elif e.type == EventType.SCREEN_LOAD:
            if (
                previous is not None
                and previous.screen_id == e.screen_id
                and e.timestamp - previous.timestamp <= window
            ):
                gap = _ms(e.timestamp - previous.timestamp)
                findings.append(_finding(
                    view, "R07", "DUPLICATE_LOAD", "Low", "Sometimes", 0.8,
                    description=f"Screen '{e.screen_id}' loaded twice {gap}ms apart without navigation",
                    fix_suggestion="Check the one-shot guard in the screen's load/resize hook; "
                                   "the resize event may fire more than once.",
                    evidence_key=e.screen_id,
                    events=[previous, e],
                    sample=f"gap={gap}ms",
                ))
            previous = e
    return findings


# ---------------------------------------------------------------------------
# R08: Backend failure
# ---------------------------------------------------------------------------
@rule("R08", "Backend failure")
def detect_backend_failure(view: CorrelatedView, settings: RuleSettings) -> list[Finding]:
    findings: list[Finding] = []
    for e in view.events_of(EventType.BACKEND):
        status = e.payload.get("status")
        severity = classify_backend_status(
            status, settings.backend_success_statuses, settings.backend_critical_statuses
        )
        if severity is None:
            continue
        process = e.process_name or "(unnamed)"
        findings.append(_finding(
            view, "R08", "BACKEND_FAILURE", severity, "Always", 0.95,
            description=f"Backend process '{process}' reported status {status}",
            fix_suggestion="Check the REST response code and error body; connection, permission "
                           "and missing-parameter failures are the usual causes.",
            evidence_key=f"{e.screen_id}:{process}:{status}",
            events=[e],
            sample=str(e.payload.get("message") or e.payload.get("error") or "")[:120],
        ))
    return findings


# ---------------------------------------------------------------------------
# R09: Form residual
# ---------------------------------------------------------------------------
@rule("R09", "Form residual")
def detect_form_residual(view: CorrelatedView, settings: RuleSettings) -> list[Finding]:
    pattern = re.compile(settings.clear_element_pattern, re.IGNORECASE)
    timeline = [e for e in view.events if e.type != EventType.CONSOLE]
    findings: list[Finding] = []

    for click in view.events_of(EventType.UI_CLICK):
        if not _matches(pattern, click):
            continue
        before = form_snapshot(click) or {}
        if not any(_filled(v) for v in before.values()):
            continue
        after_event = next(
            (
                e for e in timeline
                if e.sort_key > click.sort_key
                and e.screen_id == click.screen_id
                and form_snapshot(e) is not None
            ),
            None,
        )
        if after_event is None:
            continue
        after = form_snapshot(after_event)
        residual = {
            k: v for k, v in sorted(after.items())
            if _filled(v) and _filled(before.get(k))
        }
        if not residual:
            continue
        findings.append(_finding(
            view, "R09", "FORM_RESIDUAL", "Low", "Likely", 0.7,
            description=f"{len(residual)} field(s) still filled after '{click.element_id}'",
            fix_suggestion="Reset the form in the clear action's completion callback and check "
                           "which components the AJAX update re-renders.",
            evidence_key=f"{click.screen_id}:{click.element_id}",
            events=[click, after_event],
            sample=json.dumps(residual, ensure_ascii=False, sort_keys=True)[:120],
        ))
    return findings


# ---------------------------------------------------------------------------
# R10: Low log coverage
# ---------------------------------------------------------------------------
@rule("R10", "Low log coverage")
def detect_low_log_coverage(view: CorrelatedView, settings: RuleSettings) -> list[Finding]:
    loads = view.events_of(EventType.SCREEN_LOAD)
    if not loads:
        return []
    clicks = len(view.events_of(EventType.UI_CLICK))
    backends = sum(1 for e in view.events_of(EventType.BACKEND) if e.process_name != INITIAL_SNAPSHOT)
    if clicks >= settings.min_click_events or backends >= settings.min_backend_events:
        return []
    return [_finding(
        view, "R10", "LOW_LOG_COVERAGE", "Low", "Unknown", 0.6,
        description=f"Only {clicks} click(s) and {backends} backend record(s) after the screen loaded "
                    f"(expected at least {settings.min_click_events} or {settings.min_backend_events})",
        fix_suggestion="Confirm the logger works on this screen and exercise every operation in the test.",
        evidence_key="coverage",
        events=[loads[0]],
        sample=f"clicks={clicks} backends={backends}",
    )]


# ---------------------------------------------------------------------------
# R11: No screen mode
# ---------------------------------------------------------------------------
@rule("R11", "No screen mode")
def detect_no_screen_mode(view: CorrelatedView, settings: RuleSettings) -> list[Finding]:
    if view.feature_id == settings.unknown_feature_id:
        return []
    if any(i.context_summary.has("mode") for i in view.interactions):
        return []

    loads = view.events_of(EventType.SCREEN_LOAD)
    cited = loads[0] if loads else next((e for e in view.events if e.context is not None), None)
    if cited is None:
        return []

    ctx_state = "has no screenMode" if cited.context is not None else "is missing"
    return [_finding(
        view, "R11", "NO_SCREEN_MODE", "Low", "Always", 0.9,
        description=f"No screen mode recorded; the context of {cited.type} {ctx_state}",
        fix_suggestion=f"Pass the mode when initialising the logger, e.g. "
                       f"init('{view.feature_id}', {{ screenMode: 'search' }}).",
        evidence_key="screen-mode",
        events=[cited],
    )]
