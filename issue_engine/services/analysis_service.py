"""
Analysis Service
================
Drives the per-feature pipeline and the parallel run over every feature.

Per feature (strictly sequential):
    Reader → Correlator → Summarizer → Rule Engine → Scorer

Across features:
    Independent worker threads, no shared mutable state. Results are
    collected in feature-id order, so scheduling never changes the report.
    A fatal error in any feature aborts the run before anything is written.
"""
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Optional

from issue_engine.core import config
from issue_engine.core.config import RuleSettings, load_rule_settings
from issue_engine.correlation.context_summary import summarize_view
from issue_engine.correlation.trace_correlator import correlate
from issue_engine.models.interaction import CorrelatedView
from issue_engine.models.issue import AnalysisReport, Issue, RuleFailure
from issue_engine.parser.event_reader import discover_features, read_feature_batch
from issue_engine.rules.registry import run_rules
from issue_engine.scoring.scorer import score_findings
from issue_engine.services.results_writer import ResultsWriter

logger = logging.getLogger(__name__)


@dataclass
class FeatureResult:
    """Output of one feature's pipeline."""
    feature_id: str
    view: CorrelatedView
    issues: list[Issue] = field(default_factory=list)
    failures: list[RuleFailure] = field(default_factory=list)


def analyze_feature(
    feature_id: str,
    log_root: Optional[str] = None,
    settings: Optional[RuleSettings] = None,
) -> FeatureResult:
    """
    Run the full pipeline for one feature batch.

    Raises
    ------
    MissingInputError
        When the feature has no event file.
    """
    root = log_root or config.LOG_ROOT
    settings = settings or load_rule_settings()

    batch = read_feature_batch(feature_id, root)
    view = summarize_view(correlate(batch, settings))
    run = run_rules(view, settings)
    issues = score_findings(view, run.findings)

    if run.failures:
        logger.warning(
            "Feature %s: %d rule(s) failed: %s",
            feature_id, len(run.failures), ", ".join(f.rule_id for f in run.failures),
        )
    return FeatureResult(feature_id=feature_id, view=view, issues=issues, failures=run.failures)


def analyze_all(
    log_root: Optional[str] = None,
    settings: Optional[RuleSettings] = None,
    workers: Optional[int] = None,
    feature_ids: Optional[list[str]] = None,
) -> AnalysisReport:
    """
    Analyse every feature under log_root in parallel and build the report.

    Parameters
    ----------
    log_root : str | None
        Defaults to LOG_ROOT.
    settings : RuleSettings | None
        Defaults to load_rule_settings().
    workers : int | None
        Defaults to ANALYSIS_WORKERS.
    feature_ids : list[str] | None
        Restrict the run; defaults to every discovered feature.

    Returns
    -------
    AnalysisReport
        Complete report. Never partial: any fatal error propagates.
    """
    root = log_root or config.LOG_ROOT
    settings = settings or load_rule_settings()
    ids = sorted(feature_ids) if feature_ids is not None else discover_features(root)
    max_workers = max(1, workers or config.ANALYSIS_WORKERS)

    logger.info("Analysing %d feature(s) under %s with %d worker(s)", len(ids), root, max_workers)

    results: list[FeatureResult] = []
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures: dict[str, Future] = {
            fid: pool.submit(analyze_feature, fid, root, settings) for fid in ids
        }
        try:
            for fid in ids:
                results.append(futures[fid].result())
        except Exception:
            for f in futures.values():
                f.cancel()
            raise

    return ResultsWriter.build_report(results)


def run_analysis(
    log_root: Optional[str] = None,
    output_path: Optional[str] = None,
    settings: Optional[RuleSettings] = None,
    workers: Optional[int] = None,
) -> tuple[AnalysisReport, str]:
    """Analyse everything and write the report. Returns (report, absolute output path)."""
    report = analyze_all(log_root=log_root, settings=settings, workers=workers)
    path = ResultsWriter.write_report(report, output_path or config.ISSUES_OUTPUT_PATH)
    s = report.summary
    logger.info(
        "Analysis complete: %d feature(s), %d event(s), %d issue(s), %d rule failure(s)",
        s.total_features, s.total_events, s.total_issues, len(s.rule_failures),
    )
    return report, path
