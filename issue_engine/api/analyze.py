"""
POST /api/analyze
=================
Runs the full analysis over every feature batch under LOG_ROOT and writes
issues.json to ISSUES_OUTPUT_PATH. Paths come from server configuration only;
a request body naming a path is rejected.

The run happens in a worker thread so the event loop stays responsive.
Fatal conditions map to HTTP errors; nothing is written when they occur.
"""
import time
import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, ConfigDict, field_validator

from issue_engine.core.errors import MissingInputError, OutputWriteError
from issue_engine.services.analysis_service import run_analysis

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Analysis"])


# ---------------------------------------------------------------------------
# Request / Response schemas
# ---------------------------------------------------------------------------
class AnalyzeRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    workers: Optional[int] = None

    @field_validator("workers")
    @classmethod
    def validate_workers(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 1:
            raise ValueError("workers must be at least 1")
        return v


class AnalyzeResponse(BaseModel):
    output_path: str
    total_features: int
    total_events: int
    total_issues: int
    by_severity: dict[str, int]
    rule_failures: int
    elapsed_ms: int


# ---------------------------------------------------------------------------
# Endpoint
# ---------------------------------------------------------------------------
@router.post("/analyze", response_model=AnalyzeResponse)
async def analyze(request: AnalyzeRequest):
    """Analyse all features and write the report."""
    logger.info(f"[API] Analysis requested (workers={request.workers or 'default'})")
    start = time.time()

    try:
        report, path = await asyncio.to_thread(
            run_analysis,
            workers=request.workers,
        )
    except MissingInputError as exc:
        logger.error(f"[API] Missing input: {exc}")
        raise HTTPException(status_code=404, detail=str(exc))
    except OutputWriteError as exc:
        logger.error(f"[API] Report not written: {exc}")
        raise HTTPException(status_code=500, detail=str(exc))

    summary = report.summary
    return AnalyzeResponse(
        output_path=path,
        total_features=summary.total_features,
        total_events=summary.total_events,
        total_issues=summary.total_issues,
        by_severity=summary.by_severity,
        rule_failures=len(summary.rule_failures),
        elapsed_ms=int((time.time() - start) * 1000),
    )
