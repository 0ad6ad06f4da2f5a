"""
Draftscope -- FastAPI Application Entry Point
Serves one live replay session to the rendering collaborator.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI

from ...application import LiveReplaySession
from ...config import Settings, settings as default_settings
from ...domain.exceptions import FetchFailure
from ...infrastructure.feed import ReplayFeedClient
from ...infrastructure.logging import bind_session, setup_logging
from ..exceptions import register_exception_handlers
from .routes import health, replay

logger = structlog.get_logger(__name__)


def create_app(
    session: Optional[LiveReplaySession] = None,
    settings: Settings = default_settings,
) -> FastAPI:
    """Build the app around ``session``, or around one built from ``settings``."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client: Optional[ReplayFeedClient] = None
        if app.state.session is None and settings.submission_id:
            client = ReplayFeedClient.from_settings(settings)
            app.state.session = LiveReplaySession.from_settings(client, settings.submission_id, settings)
            bind_session(settings.submission_id)
        session = app.state.session
        if session is not None and not session.is_open and not session.is_closed:
            try:
                await session.open()
            except FetchFailure as exc:
                # stays up; /refresh retries
                logger.warning("initial_load_failed", error=exc.message)
        yield
        if app.state.session is not None:
            await app.state.session.close()
        if client is not None:
            await client.close()

    app = FastAPI(
        title="Draftscope Replay",
        description="Point-in-time reconstruction and playback of monitored document history.",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.session = session
    app.state.settings = settings
    register_exception_handlers(app)

    app.include_router(health.router, tags=["health"])
    app.include_router(replay.router, prefix="/api/v1/replay", tags=["replay"])
    return app


def run():
    """CLI entry point."""
    import uvicorn

    setup_logging(level=default_settings.log_level, json_output=default_settings.json_logs)
    uvicorn.run(
        create_app(),
        host=default_settings.host,
        port=default_settings.port,
    )
