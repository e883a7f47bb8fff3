"""
Scorer & Deduplicator
=====================
Turns raw findings into scored, deduplicated, sorted Issues.

Pipeline:
    1. Merge findings sharing (rule_id, feature_id, evidence_key)
    2. Score each merged finding
    3. Enrich with labels, screenshots, console entries and context summary
    4. Sort: score desc → rule id → first occurrence → id

Score:
    round(severity*40 + reproducibility*20 + frequency*20 + confidence*20)
    with confidence clamped to [0, 1] and halves rounded up.
"""
import logging
import math
from typing import Iterable

from issue_engine.core.constants import (
    CATEGORY_LABELS,
    DIFFICULTY,
    REPRO_WEIGHT,
    SEVERITY_WEIGHT,
    EventType,
    screen_name,
)
from issue_engine.models.event import Event, ScreenshotArtifact
from issue_engine.models.finding import Finding
from issue_engine.models.interaction import UNGROUPED_KEY, CorrelatedView, Interaction
from issue_engine.models.issue import ConsoleEntry, Issue
from issue_engine.utils.issue_fingerprint import dedup_key, generate_issue_id

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Priority score
# ---------------------------------------------------------------------------
def frequency_weight(occurrences: int) -> float:
    if occurrences >= 3:
        return 1.0
    if occurrences == 2:
        return 0.7
    return 0.4


def clamp_confidence(confidence: float) -> float:
    return min(1.0, max(0.0, float(confidence)))


def calc_priority_score(
    severity: str,
    reproducibility: str,
    occurrences: int,
    confidence: float,
) -> int:
    """
    Compute the 0-100 priority score of a finding.

    Parameters
    ----------
    severity : str
        Critical / High / Medium / Low.
    reproducibility : str
        Always / Likely / Sometimes / Unknown.
    occurrences : int
        Merged occurrence count.
    confidence : float
        Rule confidence; values outside [0, 1] are clamped.

    Returns
    -------
    int
        Weighted score, monotonic in every input.
    """
    raw = (
        SEVERITY_WEIGHT[severity] * 40
        + REPRO_WEIGHT[reproducibility] * 20
        + frequency_weight(occurrences) * 20
        + clamp_confidence(confidence) * 20
    )
    # half-up; 1e-9 absorbs float error at .5 boundaries
    return int(math.floor(raw + 0.5 + 1e-9))


# ---------------------------------------------------------------------------
# Deduplication
# ---------------------------------------------------------------------------
def _merge_pair(base: Finding, other: Finding) -> Finding:
    severity = max(base.severity, other.severity, key=lambda s: SEVERITY_WEIGHT[s])
    by_seq = {r.seq: r for r in base.evidence}
    for ref in other.evidence:
        by_seq.setdefault(ref.seq, ref)
    return base.model_copy(update={
        "severity": severity,
        "confidence": max(base.confidence, other.confidence),
        "occurrences": base.occurrences + other.occurrences,
        "evidence": sorted(by_seq.values(), key=lambda r: (r.timestamp, r.seq)),
    })


def merge_findings(findings: Iterable[Finding]) -> list[Finding]:
    """
    Merge findings with identical (rule_id, feature_id, evidence_key).

    Occurrences add up, severity and confidence take the maximum, evidence
    is unioned by event seq. The first finding's reproducibility,
    description and sample are kept.
    """
    merged: dict[tuple[str, str, str], Finding] = {}
    for f in findings:
        key = dedup_key(f)
        if key in merged:
            merged[key] = _merge_pair(merged[key], f)
        else:
            merged[key] = f.model_copy(update={
                "evidence": sorted(f.evidence, key=lambda r: (r.timestamp, r.seq)),
            })
    return list(merged.values())


# ---------------------------------------------------------------------------
# Enrichment
# ---------------------------------------------------------------------------
def _owning_interactions(view: CorrelatedView, finding: Finding) -> list[Interaction]:
    """Interactions holding the cited events, in citation order, without the catch-all bucket."""
    owners: dict[str, Interaction] = {}
    for ref in finding.evidence:
        for i in view.interactions:
            if i.key == UNGROUPED_KEY or i.key in owners:
                continue
            if any(e.seq == ref.seq for e in i.events) or (ref.trace_id and i.trace_id == ref.trace_id):
                owners[i.key] = i
    return list(owners.values())


def _console_entry(event: Event) -> ConsoleEntry:
    return ConsoleEntry(
        seq=event.seq,
        level=str(event.payload.get("level") or ""),
        message=event.message,
        stack=str(event.payload.get("stack") or ""),
        trace_id=event.trace_id,
        timestamp=event.timestamp,
    )


def _attachments(
    view: CorrelatedView,
    finding: Finding,
) -> tuple[list[ScreenshotArtifact], list[ConsoleEntry], str]:
    owners = _owning_interactions(view, finding)

    screenshots: dict[str, ScreenshotArtifact] = {}
    console: dict[int, Event] = {}
    for i in owners:
        for shot in i.screenshots:
            screenshots.setdefault(shot.file_path, shot)
        for entry in i.console_entries:
            console.setdefault(entry.seq, entry)

    cited = {r.seq for r in finding.evidence}
    for e in view.events:
        if e.seq in cited and e.type == EventType.CONSOLE:
            console.setdefault(e.seq, e)

    summary = next((i.context_summary.text for i in owners if i.context_summary.text), "")
    entries = [_console_entry(e) for e in sorted(console.values(), key=lambda e: e.sort_key)]
    return list(screenshots.values()), entries, summary


def build_issue(view: CorrelatedView, finding: Finding) -> Issue:
    screenshots, console_entries, summary = _attachments(view, finding)
    first_seen = finding.first_seen
    confidence = clamp_confidence(finding.confidence)
    return Issue(
        id=generate_issue_id(finding.feature_id, finding.rule_id, first_seen, finding.evidence_key),
        rule_id=finding.rule_id,
        category=finding.category,
        category_label=CATEGORY_LABELS.get(finding.category, finding.category),
        feature_id=finding.feature_id,
        screen_id=finding.screen_id,
        screen_name=screen_name(finding.screen_id),
        severity=finding.severity,
        reproducibility=finding.reproducibility,
        difficulty=DIFFICULTY.get(finding.category, "Medium"),
        confidence=confidence,
        occurrences=finding.occurrences,
        frequency_weight=frequency_weight(finding.occurrences),
        priority_score=calc_priority_score(
            finding.severity, finding.reproducibility, finding.occurrences, confidence
        ),
        description=finding.description,
        fix_suggestion=finding.fix_suggestion,
        sample=finding.sample,
        evidence_key=finding.evidence_key,
        trace_ids=finding.trace_ids,
        evidence=finding.evidence,
        first_seen=first_seen,
        last_seen=max(r.timestamp for r in finding.evidence),
        screenshots=screenshots,
        console_entries=console_entries,
        context_summary=summary,
    )


# ---------------------------------------------------------------------------
# Sorting
# ---------------------------------------------------------------------------
def sort_issues(issues: Iterable[Issue], by_feature: bool = False) -> list[Issue]:
    """Score desc, then rule id, then first occurrence; featureId breaks ties across features."""
    if by_feature:
        return sorted(issues, key=lambda i: (-i.priority_score, i.rule_id, i.first_seen, i.feature_id, i.id))
    return sorted(issues, key=lambda i: (-i.priority_score, i.rule_id, i.first_seen, i.id))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def score_findings(view: CorrelatedView, findings: Iterable[Finding]) -> list[Issue]:
    """
    Score one feature's findings.

    Parameters
    ----------
    view : CorrelatedView
        View the findings were produced from (source of attachments).
    findings : Iterable[Finding]
        Raw rule output.

    Returns
    -------
    list[Issue]
        Deduplicated issues for the feature, sorted.
    """
    findings = list(findings)
    merged = merge_findings(findings)
    issues = sort_issues(build_issue(view, f) for f in merged)
    logger.info(
        "Feature %s: %d finding(s) → %d issue(s)",
        view.feature_id, len(findings), len(issues),
    )
    return issues
