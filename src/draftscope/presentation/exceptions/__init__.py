"""Global exception handlers -- map replay exceptions to HTTP responses."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ...domain.exceptions import (
    FetchFailure,
    InvalidPlaybackSpeed,
    ReplayError,
    SessionClosed,
    UnknownFlag,
)

logger = structlog.get_logger(__name__)


def _error_response(status: int, code: str, message: str, **extra: Any) -> JSONResponse:
    body: dict[str, Any] = {
        "error": {
            "code": code,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **extra,
        }
    }
    return JSONResponse(status_code=status, content=body)


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app."""

    @app.exception_handler(UnknownFlag)
    async def unknown_flag_handler(request: Request, exc: UnknownFlag) -> JSONResponse:
        return _error_response(404, exc.code, exc.message)

    @app.exception_handler(InvalidPlaybackSpeed)
    async def speed_handler(request: Request, exc: InvalidPlaybackSpeed) -> JSONResponse:
        return _error_response(422, exc.code, exc.message)

    @app.exception_handler(FetchFailure)
    async def fetch_failure_handler(request: Request, exc: FetchFailure) -> JSONResponse:
        logger.warning("fetch_failure", path=request.url.path, status_code=exc.status_code)
        return _error_response(502, exc.code, exc.message, retryable=exc.retryable)

    @app.exception_handler(SessionClosed)
    async def closed_handler(request: Request, exc: SessionClosed) -> JSONResponse:
        return _error_response(409, exc.code, exc.message)

    @app.exception_handler(ReplayError)
    async def replay_error_handler(request: Request, exc: ReplayError) -> JSONResponse:
        logger.error("unhandled_replay_error", code=exc.code, message=exc.message)
        return _error_response(500, exc.code, exc.message)
