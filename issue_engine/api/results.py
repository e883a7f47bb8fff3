"""
GET /results
Returns the last written issues.json report.
"""
import os

from fastapi import APIRouter, HTTPException

from issue_engine.core import config
from issue_engine.services.results_writer import ResultsWriter

router = APIRouter(tags=["Results"])


@router.get("/results")
async def get_results():
    path = config.ISSUES_OUTPUT_PATH
    if not os.path.isfile(path):
        raise HTTPException(status_code=404, detail=f"No report at {os.path.abspath(path)}; run POST /api/analyze first")
    return ResultsWriter.read_report(path)
