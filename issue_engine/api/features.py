"""
GET /features
GET /features/{feature_id}/issues
Lists discovered feature batches and analyses one of them on demand
(nothing is written to disk).
"""
import asyncio
import logging

from fastapi import APIRouter, HTTPException

from issue_engine.core import config
from issue_engine.core.errors import MissingInputError
from issue_engine.services.analysis_service import analyze_feature
from issue_engine.parser.event_reader import discover_features

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/features", tags=["Features"])


@router.get("")
async def list_features():
    try:
        return {"features": discover_features(config.LOG_ROOT)}
    except MissingInputError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.get("/{feature_id}/issues")
async def feature_issues(feature_id: str):
    try:
        result = await asyncio.to_thread(analyze_feature, feature_id, config.LOG_ROOT)
    except MissingInputError as exc:
        logger.warning(f"[API] {exc}")
        raise HTTPException(status_code=404, detail=str(exc))

    return {
        "featureId": feature_id,
        "issues": [i.model_dump(mode="json", by_alias=True) for i in result.issues],
        "ruleFailures": [f.model_dump(mode="json", by_alias=True) for f in result.failures],
    }
