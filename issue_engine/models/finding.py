"""
Finding Model
=============
Pydantic model for the unscored output of one rule.

Fields:
    rule_id         — R01..R11
    category        — key into CATEGORY_LABELS / DIFFICULTY
    severity        — Critical / High / Medium / Low
    reproducibility — Always / Likely / Sometimes / Unknown
    confidence      — rule's own certainty; clamped to [0, 1] by the scorer
    evidence_key    — normalised identity used for deduplication
    evidence        — concrete events that triggered the rule (never empty)
    occurrences     — how many times the condition was observed
    sample          — short excerpt for humans (message, snapshot, ...)
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from issue_engine.core.constants import REPRO_WEIGHT, SEVERITY_WEIGHT
from issue_engine.models.event import Event


class EventRef(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    seq: int
    type: str
    trace_id: Optional[str] = None
    timestamp: datetime

    @classmethod
    def of(cls, event: Event) -> "EventRef":
        return cls(seq=event.seq, type=event.type, trace_id=event.trace_id, timestamp=event.timestamp)


class Finding(BaseModel):
    model_config = ConfigDict(frozen=True)

    rule_id: str
    category: str
    feature_id: str
    screen_id: str = ""
    severity: str
    reproducibility: str
    confidence: float
    description: str
    fix_suggestion: str = ""
    evidence_key: str
    evidence: list[EventRef] = Field(min_length=1)
    occurrences: int = 1
    sample: str = ""

    @field_validator("severity")
    @classmethod
    def _known_severity(cls, v: str) -> str:
        if v not in SEVERITY_WEIGHT:
            raise ValueError(f"unknown severity '{v}'")
        return v

    @field_validator("reproducibility")
    @classmethod
    def _known_repro(cls, v: str) -> str:
        if v not in REPRO_WEIGHT:
            raise ValueError(f"unknown reproducibility '{v}'")
        return v

    @property
    def trace_ids(self) -> list[str]:
        return sorted({r.trace_id for r in self.evidence if r.trace_id})

    @property
    def first_seen(self) -> datetime:
        return min(r.timestamp for r in self.evidence)
