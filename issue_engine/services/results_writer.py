"""
Results Writer
==============
Serializes analysed features into the issues.json report document.

Document shape:
    summary   — totals, per-severity/rule/category counts, rule failures
    features  — per-feature statistics keyed by feature id
    issues    — every issue, globally sorted

The document contains no wall-clock values, so an unchanged input always
produces byte-identical output. It is written atomically.
"""
import json
import logging
import os
import tempfile
from collections import Counter
from typing import TYPE_CHECKING, Any, Iterable

from issue_engine.core.constants import SEVERITIES, screen_name
from issue_engine.core.errors import OutputWriteError
from issue_engine.models.interaction import CorrelatedView
from issue_engine.models.issue import AnalysisReport, FeatureStats, Issue, ReportSummary
from issue_engine.scoring.scorer import sort_issues

if TYPE_CHECKING:
    from issue_engine.services.analysis_service import FeatureResult

logger = logging.getLogger(__name__)


def _severity_counts(issues: Iterable[Issue]) -> dict[str, int]:
    counts = Counter(i.severity for i in issues)
    return {s: counts.get(s, 0) for s in sorted(SEVERITIES)}


def _sorted_counts(values: Iterable[str]) -> dict[str, int]:
    counts = Counter(values)
    return {k: counts[k] for k in sorted(counts)}


class ResultsWriter:
    """
    Builds the report document from per-feature results and writes it to disk.
    """

    @staticmethod
    def feature_stats(view: CorrelatedView, issues: list[Issue]) -> FeatureStats:
        screenshot_count = len({
            s.file_path for i in view.interactions for s in i.screenshots
        }) + len(view.unattributed_screenshots)
        return FeatureStats(
            feature_id=view.feature_id,
            screen_name=screen_name(view.feature_id),
            event_count=len(view.events),
            malformed_records=view.malformed_records,
            interaction_count=len(view.interactions),
            screenshot_count=screenshot_count,
            issue_count=len(issues),
            by_severity=_severity_counts(issues),
            max_score=max((i.priority_score for i in issues), default=0),
        )

    @staticmethod
    def build_report(results: list["FeatureResult"]) -> AnalysisReport:
        """
        Assemble the report document.

        Parameters
        ----------
        results : list[FeatureResult]
            One entry per analysed feature, any order.

        Returns
        -------
        AnalysisReport
            Features keyed in id order; issues sorted by score, rule id,
            first occurrence, then feature id.
        """
        ordered = sorted(results, key=lambda r: r.feature_id)
        issues = sort_issues((i for r in ordered for i in r.issues), by_feature=True)

        summary = ReportSummary(
            total_features=len(ordered),
            total_events=sum(len(r.view.events) for r in ordered),
            malformed_records=sum(r.view.malformed_records for r in ordered),
            total_issues=len(issues),
            by_severity=_severity_counts(issues),
            by_rule=_sorted_counts(i.rule_id for i in issues),
            by_category=_sorted_counts(i.category for i in issues),
            rule_failures=[f for r in ordered for f in r.failures],
        )
        features = {
            r.feature_id: ResultsWriter.feature_stats(r.view, r.issues)
            for r in ordered
        }
        return AnalysisReport(summary=summary, features=features, issues=issues)

    @staticmethod
    def to_json(report: AnalysisReport) -> str:
        data = report.model_dump(mode="json", by_alias=True)
        return json.dumps(data, indent=2, ensure_ascii=False) + "\n"

    @staticmethod
    def write_report(report: AnalysisReport, output_path: str) -> str:
        """
        Write the report atomically (temp file in the target directory, then replace).

        Returns
        -------
        str
            Absolute path of the written report.

        Raises
        ------
        OutputWriteError
            When the destination directory or file cannot be written.
        """
        abs_output = os.path.abspath(output_path)
        out_dir = os.path.dirname(abs_output)
        content = ResultsWriter.to_json(report)

        tmp_path = None
        try:
            os.makedirs(out_dir, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".issues-", suffix=".tmp", dir=out_dir)
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(content)
            os.replace(tmp_path, abs_output)
        except OSError as e:
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise OutputWriteError(f"Cannot write report to {abs_output}: {e}") from e

        logger.info("Wrote %d issue(s) to %s", len(report.issues), abs_output)
        return abs_output

    @staticmethod
    def read_report(output_path: str) -> dict[str, Any]:
        with open(output_path, "r", encoding="utf-8") as fh:
            return json.load(fh)
