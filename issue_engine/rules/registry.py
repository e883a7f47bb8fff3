"""
Rule Registry
=============
Registry of independent detection rules and the runner that applies them.

Rule contract:
    rule(view: CorrelatedView, settings: RuleSettings) -> list[Finding]
    - pure: reads only the view and settings
    - independent: never consumes another rule's findings
    - explained: every Finding cites events of this batch

Runner contract:
    - rules run in rule-id order
    - a rule that raises is logged, recorded as a RuleFailure and
      contributes nothing; the other rules still run
    - a finding citing an event outside the batch is rejected the same way
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from issue_engine.core.config import RuleSettings
from issue_engine.models.finding import Finding
from issue_engine.models.interaction import CorrelatedView
from issue_engine.models.issue import RuleFailure

logger = logging.getLogger(__name__)

RuleFn = Callable[[CorrelatedView, RuleSettings], list[Finding]]


@dataclass(frozen=True)
class RuleSpec:
    rule_id: str
    name: str
    fn: RuleFn


@dataclass
class RuleRunResult:
    findings: list[Finding] = field(default_factory=list)
    failures: list[RuleFailure] = field(default_factory=list)


_REGISTRY: dict[str, RuleSpec] = {}


def rule(rule_id: str, name: str) -> Callable[[RuleFn], RuleFn]:
    """Register a rule function under rule_id."""
    def decorator(fn: RuleFn) -> RuleFn:
        if rule_id in _REGISTRY and _REGISTRY[rule_id].fn is not fn:
            raise ValueError(f"Rule {rule_id} registered twice")
        _REGISTRY[rule_id] = RuleSpec(rule_id=rule_id, name=name, fn=fn)
        return fn
    return decorator


def registered_rules() -> list[RuleSpec]:
    # catalog registers itself on import
    import issue_engine.rules.catalog  # noqa: F401
    return [_REGISTRY[k] for k in sorted(_REGISTRY)]


def run_rules(
    view: CorrelatedView,
    settings: RuleSettings,
    rules: Optional[Iterable[RuleSpec]] = None,
) -> RuleRunResult:
    """Run every rule against one correlated view, isolating failures."""
    result = RuleRunResult()
    known_seqs = {e.seq for e in view.events}

    for spec in (registered_rules() if rules is None else list(rules)):
        try:
            findings = spec.fn(view, settings)
        except Exception as e:
            logger.warning(
                "Rule %s (%s) failed on feature %s: %s",
                spec.rule_id, spec.name, view.feature_id, e, exc_info=True,
            )
            result.failures.append(RuleFailure(
                feature_id=view.feature_id,
                rule_id=spec.rule_id,
                error=f"{type(e).__name__}: {e}",
            ))
            continue

        stray = [f for f in findings if any(r.seq not in known_seqs for r in f.evidence)]
        if stray:
            logger.warning(
                "Rule %s cited events outside feature %s; its findings were discarded",
                spec.rule_id, view.feature_id,
            )
            result.failures.append(RuleFailure(
                feature_id=view.feature_id,
                rule_id=spec.rule_id,
                error="finding cites events outside the batch",
            ))
            continue

        if findings:
            logger.debug("Rule %s produced %d finding(s) for %s", spec.rule_id, len(findings), view.feature_id)
        result.findings.extend(findings)

    return result
