"""
HTTP entry point for the issue engine.

    uvicorn main:app          or          python main.py
"""
import time
import logging

import uvicorn
from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware

from issue_engine.api.analyze import router as analyze_router
from issue_engine.api.features import router as features_router
from issue_engine.api.results import router as results_router
from issue_engine.core import config
from issue_engine.utils.logging_config import setup_logging

setup_logging()
logger = logging.getLogger("main")


class RequestLogMiddleware(BaseHTTPMiddleware):
    """One line per request with status and duration; failures re-raised after logging."""

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        route = f"{request.method} {request.url.path}"
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(f"{route} failed")
            raise
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(f"{route} -> {response.status_code} ({elapsed_ms:.1f}ms)")
        return response


def create_app() -> FastAPI:
    application = FastAPI(title="Interaction Log Issue Engine API")
    application.add_middleware(RequestLogMiddleware)
    if config.API_CORS_ORIGINS:
        application.add_middleware(
            CORSMiddleware,
            allow_origins=config.API_CORS_ORIGINS,
            allow_methods=["GET", "POST"],
            allow_headers=["Content-Type"],
        )

    @application.get("/health")
    async def health_check():
        return {"status": "ok"}

    application.include_router(features_router)
    application.include_router(results_router)
    application.include_router(analyze_router)
    return application


app = create_app()

if __name__ == "__main__":
    uvicorn.run("main:app", host=config.API_HOST, port=config.API_PORT)
