"""Replay API -- playback control and reconstructed content for one session."""

from fastapi import APIRouter, Depends, HTTPException, Request

from ....application import LiveReplaySession
from ....domain.entities import CorrelatedFlag
from ..schemas import (
    ContentResponse,
    ControlsResponse,
    FlagResponse,
    HighlightResponse,
    HighlightsResponse,
    PlaybackStateResponse,
    RefreshResponse,
    SeekRequest,
    SpeedRequest,
    StepRequest,
)

router = APIRouter()


def get_session(request: Request) -> LiveReplaySession:
    session = getattr(request.app.state, "session", None)
    if session is None:
        raise HTTPException(status_code=503, detail="No replay session configured")
    return session


def _state(session: LiveReplaySession) -> PlaybackStateResponse:
    return PlaybackStateResponse.build(
        session.playback_state(),
        len(session.timeline),
        session.current_entry(),
    )


@router.get("/state", response_model=PlaybackStateResponse)
async def playback_state(session: LiveReplaySession = Depends(get_session)):
    """Current scrub position, play/pause state and speed."""
    return _state(session)


@router.get("/controls", response_model=ControlsResponse)
async def controls(request: Request):
    """Speed presets and the coarse skip size offered to the player."""
    settings = request.app.state.settings
    return ControlsResponse(speed_presets=settings.speed_presets, step_size=settings.step_size)


@router.get("/content", response_model=ContentResponse)
async def current_content(session: LiveReplaySession = Depends(get_session)):
    """Document content reconstructed at the current position."""
    return ContentResponse.build(session.current_content())


@router.get("/flags", response_model=list[FlagResponse])
async def flags(at_position: bool = False, session: LiveReplaySession = Depends(get_session)):
    """Flags with their timeline positions; ``at_position`` keeps only the current one."""
    length = len(session.timeline)
    if at_position:
        position = session.playback_state().position
        items = [CorrelatedFlag(f, position) for f in session.current_flags_at_position()]
    else:
        items = session.flag_positions()
    return [FlagResponse.build(i, length) for i in items]


@router.post("/flags/{flag_id}/select", response_model=PlaybackStateResponse)
async def select_flag(flag_id: str, session: LiveReplaySession = Depends(get_session)):
    session.select_flag(flag_id)
    return _state(session)


@router.get("/flags/{flag_id}/highlights", response_model=HighlightsResponse)
async def flag_highlights(flag_id: str, session: LiveReplaySession = Depends(get_session)):
    """Highlight ranges for a flag, suppressed away from its correlated position."""
    ranges = session.active_highlights(flag_id)
    correlated = {i.flag.id: i.timeline_index for i in session.flag_positions()}
    suppressed = correlated.get(flag_id) != session.playback_state().position
    return HighlightsResponse(
        flag_id=flag_id,
        suppressed=suppressed,
        ranges=[HighlightResponse.build(r) for r in ranges],
    )


@router.post("/play", response_model=PlaybackStateResponse)
async def play(session: LiveReplaySession = Depends(get_session)):
    session.play()
    return _state(session)


@router.post("/pause", response_model=PlaybackStateResponse)
async def pause(session: LiveReplaySession = Depends(get_session)):
    session.pause()
    return _state(session)


@router.post("/toggle", response_model=PlaybackStateResponse)
async def toggle(session: LiveReplaySession = Depends(get_session)):
    session.toggle()
    return _state(session)


@router.post("/seek", response_model=PlaybackStateResponse)
async def seek(request: SeekRequest, session: LiveReplaySession = Depends(get_session)):
    session.seek(request.index)
    return _state(session)


@router.post("/step", response_model=PlaybackStateResponse)
async def step(request: StepRequest, session: LiveReplaySession = Depends(get_session)):
    session.step(request.delta)
    return _state(session)


@router.post("/end", response_model=PlaybackStateResponse)
async def seek_end(session: LiveReplaySession = Depends(get_session)):
    session.seek_end()
    return _state(session)


@router.post("/speed", response_model=PlaybackStateResponse)
async def speed(request: SpeedRequest, session: LiveReplaySession = Depends(get_session)):
    session.set_speed(request.factor)
    return _state(session)


@router.post("/refresh", response_model=RefreshResponse)
async def refresh(session: LiveReplaySession = Depends(get_session)):
    """Fetch now instead of waiting for the next background poll."""
    swapped = await session.refresh()
    return RefreshResponse(swapped=swapped, entries=len(session.timeline))
