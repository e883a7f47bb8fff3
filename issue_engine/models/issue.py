"""
Issue / Report Models
=====================
Scored, deduplicated issues and the report document handed to renderers.

An Issue is created once per analysis run from a unique
(rule_id, feature_id, evidence_key) combination and never mutated after.
The report is replaced wholesale on every run.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from issue_engine.models.event import ScreenshotArtifact
from issue_engine.models.finding import EventRef


class _CamelModel(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class ConsoleEntry(_CamelModel):
    seq: int
    level: str = ""
    message: str = ""
    stack: str = ""
    trace_id: Optional[str] = None
    timestamp: datetime


class Issue(_CamelModel):
    id: str
    rule_id: str
    category: str
    category_label: str
    feature_id: str
    screen_id: str
    screen_name: str
    severity: str
    reproducibility: str
    difficulty: str
    confidence: float
    occurrences: int
    frequency_weight: float
    priority_score: int
    description: str
    fix_suggestion: str = ""
    sample: str = ""
    evidence_key: str
    trace_ids: list[str] = []
    evidence: list[EventRef]
    first_seen: datetime
    last_seen: datetime
    screenshots: list[ScreenshotArtifact] = []
    console_entries: list[ConsoleEntry] = []
    context_summary: str = ""
    status: str = "Open"


class RuleFailure(_CamelModel):
    feature_id: str
    rule_id: str
    error: str


class FeatureStats(_CamelModel):
    feature_id: str
    screen_name: str
    event_count: int
    malformed_records: int
    interaction_count: int
    screenshot_count: int
    issue_count: int
    by_severity: dict[str, int]
    max_score: int


class ReportSummary(_CamelModel):
    total_features: int
    total_events: int
    malformed_records: int
    total_issues: int
    by_severity: dict[str, int]
    by_rule: dict[str, int]
    by_category: dict[str, int]
    rule_failures: list[RuleFailure] = []


class AnalysisReport(_CamelModel):
    summary: ReportSummary
    features: dict[str, FeatureStats]
    issues: list[Issue]
