"""Health check endpoints."""

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/healthz")
async def healthz(request: Request):
    """Readiness probe."""
    session = getattr(request.app.state, "session", None)
    last_error = session.last_error if session is not None else None
    return {
        "status": "ok",
        "service": "draftscope",
        "session_open": bool(session is not None and session.is_open),
        "last_error": last_error.message if last_error else None,
    }


@router.get("/livez")
async def livez():
    """Liveness probe."""
    return {"status": "alive"}
