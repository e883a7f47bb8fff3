"""
Issue Fingerprint Utility
=========================
Generates stable identifiers for issues so that re-running the engine on
an unchanged batch yields the same ids.

Dedup Key:
    rule_id + feature_id + evidence_key
    Identifies the same condition across findings of one run.

Issue Id:
    <featureId>-<ruleId>-<firstSeen YYYYMMDDTHHMMSSffffff>-<evidence hash>
    Human-sortable, unique per dedup key; no wall-clock value involved.
"""
import hashlib
from datetime import datetime

from issue_engine.models.finding import Finding

EVIDENCE_HASH_CHARS = 6


def dedup_key(finding: Finding) -> tuple[str, str, str]:
    """Merge key for findings describing the same condition."""
    return (finding.rule_id, finding.feature_id, finding.evidence_key.strip())


def evidence_hash(evidence_key: str) -> str:
    """
    Short, deterministic digest of an evidence key.

    Parameters
    ----------
    evidence_key : str
        Normalised evidence key of the finding.

    Returns
    -------
    str
        First EVIDENCE_HASH_CHARS hex characters of its sha256.
    """
    return hashlib.sha256(evidence_key.strip().encode("utf-8")).hexdigest()[:EVIDENCE_HASH_CHARS]


def generate_issue_id(feature_id: str, rule_id: str, first_seen: datetime, evidence_key: str) -> str:
    stamp = first_seen.strftime("%Y%m%dT%H%M%S%f")
    return f"{feature_id}-{rule_id}-{stamp}-{evidence_hash(evidence_key)}"
