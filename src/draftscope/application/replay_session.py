"""LiveReplaySession -- one replay engine instance per monitored submission.

The session owns everything that changes while an instructor watches a
submission: the current :class:`TimelineIndex`, the flags and their timeline
positions, the :class:`PlaybackController`, a reconstruction memo, and two
background tasks:

* the **poller** re-fetches the feed every ``poll_interval`` seconds, but only
  while playback is paused;
* the **playback clock** ticks the controller every ``tick_interval`` seconds
  while playing.

A refresh builds a complete new timeline and swaps it in only when its entry
count differs from the current one; the scrub position is left as the same
index. After :meth:`close` no fetch result is applied.
"""
from __future__ import annotations

import asyncio
import contextlib
from typing import Any, Awaitable, Callable, Optional, Protocol

import structlog

from ..config import Settings
from ..domain.entities import (
    ChangeSet,
    CorrelatedFlag,
    Flag,
    FlagStatus,
    HighlightRange,
    PlaybackState,
    PlaybackStatus,
    ReconstructedContent,
    TimelineEntry,
)
from ..domain.exceptions import FetchFailure, SessionClosed, UnknownFlag
from ..engines.flag_correlator import correlate, flags_at, resolve_highlights
from ..engines.playback import PlaybackController
from ..engines.reconstruction import ReconstructionCache, diff_texts
from ..engines.timeline_index import TimelineIndex
from ..infrastructure.feed import ReplayFeed, ReplayQuery, SessionSummary

logger = structlog.get_logger(__name__)


class ReplayFeedSource(Protocol):
    """What the session needs from the upstream store."""

    async def get_replay(self, submission_id: str, query: ReplayQuery | None = None) -> ReplayFeed: ...

    async def get_flags(self, submission_id: str) -> list[Flag]: ...

    async def list_sessions(self, project_id: str, file_id: str) -> list[SessionSummary]: ...

    async def update_flag(self, submission_id: str, flag_id: str, status: FlagStatus) -> None: ...

    async def pause_capture(self, submission_id: str) -> None: ...

    async def resume_capture(self, submission_id: str) -> None: ...

    async def force_poll(self, submission_id: str) -> dict[str, Any]: ...


class LiveReplaySession:
    def __init__(
        self,
        feed: ReplayFeedSource,
        submission_id: str,
        query: ReplayQuery | None = None,
        poll_interval: float = 10.0,
        playback_base_interval: float = 1.0,
        speed: float = 1.0,
        cache_size: int = 256,
    ) -> None:
        self.feed = feed
        self.submission_id = submission_id
        self.query = query or ReplayQuery()
        self.poll_interval = poll_interval
        self.cache_size = cache_size

        self.controller = PlaybackController(speed=speed, base_interval_seconds=playback_base_interval)
        self.controller.add_listener(self._on_status_change)

        self._timeline = TimelineIndex()
        self._cache = ReconstructionCache(self._timeline, cache_size)
        self._replay: Optional[ReplayFeed] = None
        self._flags: list[Flag] = []
        self._correlated: list[CorrelatedFlag] = []
        self._selected_flag_id: Optional[str] = None
        self.sessions: list[SessionSummary] = []
        self.last_error: Optional[FetchFailure] = None

        self._poll_task: Optional[asyncio.Task[None]] = None
        self._playback_task: Optional[asyncio.Task[None]] = None
        self._opened = False
        self._closed = False
        self._log = logger.bind(submission_id=submission_id)

    @classmethod
    def from_settings(
        cls,
        feed: ReplayFeedSource,
        submission_id: str,
        settings: Settings,
        query: ReplayQuery | None = None,
    ) -> "LiveReplaySession":
        return cls(
            feed,
            submission_id,
            query=query,
            poll_interval=settings.poll_interval_seconds,
            playback_base_interval=settings.playback_base_interval_seconds,
            speed=settings.default_speed,
            cache_size=settings.reconstruction_cache_size,
        )

    # ------------------------------------------
    # Lifecycle
    # ------------------------------------------

    @property
    def is_open(self) -> bool:
        return self._opened and not self._closed

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    @property
    def is_clock_running(self) -> bool:
        return self._playback_task is not None and not self._playback_task.done()

    async def open(self) -> None:
        """Fetch replay data and flags, then start background polling.

        Raises:
            FetchFailure: The initial load failed; the session stays empty.
        """
        self._ensure_not_closed()
        replay, flags = await self._fetch()
        if self._closed:
            self._log.debug("open_abandoned")
            return
        self._swap_timeline(replay)
        self._set_flags(flags)
        self._opened = True
        self._log.info(
            "replay_session_opened",
            entries=len(self._timeline),
            keyframes=self._timeline.keyframe_count,
            flags=len(self._flags),
        )
        await self._load_sessions()
        self.start_polling()

    async def close(self) -> None:
        """Tear the session down; anything still in flight is dropped."""
        if self._closed:
            return
        self._closed = True
        tasks = [t for t in (self._poll_task, self._playback_task) if t is not None]
        self._poll_task = None
        self._playback_task = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._log.info("replay_session_closed")

    async def __aenter__(self) -> "LiveReplaySession":
        await self.open()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def _ensure_not_closed(self) -> None:
        if self._closed:
            raise SessionClosed()

    # ------------------------------------------
    # Fetching and reconciliation
    # ------------------------------------------

    async def _fetch(self) -> tuple[ReplayFeed, list[Flag]]:
        try:
            replay, flags = await asyncio.gather(
                self.feed.get_replay(self.submission_id, self.query),
                self.feed.get_flags(self.submission_id),
            )
        except FetchFailure as exc:
            if not self._closed:
                self.last_error = exc
            raise
        if not self._closed:
            self.last_error = None
        return replay, flags

    async def refresh(self) -> bool:
        """Re-fetch the feed and reconcile. Returns True if the timeline was swapped.

        An unchanged entry count means the fetched replay data is discarded so
        the displayed reconstruction does not move under the user.

        Raises:
            FetchFailure: The store could not be reached; current state is kept.
        """
        self._ensure_not_closed()
        replay, flags = await self._fetch()
        if self._closed:
            self._log.debug("refresh_abandoned")
            return False

        candidate = TimelineIndex.build(replay.keyframes, replay.diffs)
        swapped = False
        if len(candidate) != len(self._timeline):
            self._log.info(
                "timeline_swapped",
                previous_entries=len(self._timeline),
                entries=len(candidate),
                position=self.controller.position,
            )
            self._swap_timeline(replay, candidate)
            swapped = True
        else:
            self._log.debug("timeline_unchanged", entries=len(candidate))
        self._set_flags(flags)
        return swapped

    async def load_session(self, query: ReplayQuery) -> None:
        """Switch to another work session or time window and start from its beginning."""
        self._ensure_not_closed()
        self.query = query
        replay, flags = await self._fetch()
        if self._closed:
            return
        self._swap_timeline(replay)
        self._set_flags(flags)
        self.controller.seek(0)

    def _swap_timeline(self, replay: ReplayFeed, index: TimelineIndex | None = None) -> None:
        self._replay = replay
        self._timeline = index if index is not None else TimelineIndex.build(replay.keyframes, replay.diffs)
        self._cache = ReconstructionCache(self._timeline, self.cache_size)
        self.controller.set_length(len(self._timeline))
        self._correlated = correlate(self._flags, self._timeline.entries)

    def _set_flags(self, flags: list[Flag]) -> None:
        self._flags = list(flags)
        self._correlated = correlate(self._flags, self._timeline.entries)

    async def _load_sessions(self) -> None:
        if self._replay is None or not self._replay.project_id or not self._replay.file_id:
            return
        try:
            self.sessions = await self.feed.list_sessions(self._replay.project_id, self._replay.file_id)
        except FetchFailure as exc:
            self._log.warning("session_list_unavailable", error=exc.message)
            self.sessions = []

    async def list_sessions(self) -> list[SessionSummary]:
        self._ensure_not_closed()
        await self._load_sessions()
        return self.sessions

    # ------------------------------------------
    # Background tasks
    # ------------------------------------------

    def _spawn(self, factory: Callable[[], Awaitable[None]]) -> Optional[asyncio.Task[None]]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # no loop: the caller drives tick()/refresh() by hand
            return None
        return loop.create_task(factory())

    def start_polling(self) -> None:
        if not self.is_open or self.controller.is_playing or self.is_polling:
            return
        self._poll_task = self._spawn(self._poll_loop)
        if self._poll_task is not None:
            self._log.debug("polling_started", interval=self.poll_interval)

    def stop_polling(self) -> None:
        task, self._poll_task = self._poll_task, None
        if task is not None and not task.done():
            task.cancel()
            self._log.debug("polling_stopped")

    async def _poll_loop(self) -> None:
        while not self._closed and not self.controller.is_playing:
            await asyncio.sleep(self.poll_interval)
            if self._closed or self.controller.is_playing:
                break
            try:
                await self.refresh()
            except FetchFailure as exc:
                self._log.warning("background_refresh_failed", error=exc.message, retryable=exc.retryable)
            except Exception:
                # the poller outlives any single bad fetch
                self._log.exception("background_refresh_crashed")

    def _start_clock(self) -> None:
        if self._closed or self.is_clock_running:
            return
        self._playback_task = self._spawn(self._playback_loop)

    def _stop_clock(self) -> None:
        task, self._playback_task = self._playback_task, None
        # the clock stops itself when a tick pauses playback
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _playback_loop(self) -> None:
        while not self._closed and self.controller.is_playing:
            await asyncio.sleep(self.controller.tick_interval)
            if self._closed or not self.controller.is_playing:
                break
            self.controller.tick()

    def _on_status_change(self, previous: PlaybackStatus, current: PlaybackStatus) -> None:
        if current is PlaybackStatus.PLAYING:
            self.stop_polling()
            self._start_clock()
        else:
            self._stop_clock()
            self.start_polling()

    # ------------------------------------------
    # Views for the renderer
    # ------------------------------------------

    @property
    def timeline(self) -> TimelineIndex:
        return self._timeline

    @property
    def replay(self) -> Optional[ReplayFeed]:
        return self._replay

    @property
    def flags(self) -> list[Flag]:
        return list(self._flags)

    def playback_state(self) -> PlaybackState:
        return self.controller.state

    def current_entry(self) -> Optional[TimelineEntry]:
        if not len(self._timeline):
            return None
        return self._timeline[self.controller.position]

    def content_at(self, index: int) -> ReconstructedContent:
        seq = self._timeline.sequence_at(index)
        if seq is None:
            return ReconstructedContent.empty()
        return self._cache.get(seq)

    def current_content(self) -> ReconstructedContent:
        return self.content_at(self.controller.position)

    def current_changes(self) -> ChangeSet:
        """What the current step changed relative to the previous position."""
        position = self.controller.position
        previous = self.content_at(position - 1).text if position > 0 else ""
        return diff_texts(previous, self.current_content().text)

    def flag_positions(self) -> list[CorrelatedFlag]:
        return list(self._correlated)

    def current_flags_at_position(self) -> list[Flag]:
        return flags_at(self._correlated, self.controller.position)

    def _correlated_flag(self, flag_id: str) -> CorrelatedFlag:
        for item in self._correlated:
            if item.flag.id == flag_id:
                return item
        raise UnknownFlag(flag_id)

    @property
    def selected_flag(self) -> Optional[Flag]:
        if self._selected_flag_id is None:
            return None
        for flag in self._flags:
            if flag.id == self._selected_flag_id:
                return flag
        return None

    def select_flag(self, flag_id: str) -> CorrelatedFlag:
        """Jump to a flag's timeline position, pause, and make it the highlighted flag."""
        item = self._correlated_flag(flag_id)
        self._selected_flag_id = flag_id
        self.controller.seek(item.timeline_index)
        self.controller.pause()
        return item

    def clear_selection(self) -> None:
        self._selected_flag_id = None

    def active_highlights(self, flag_id: str | None = None) -> list[HighlightRange]:
        flag_id = flag_id or self._selected_flag_id
        if flag_id is None:
            return []
        item = self._correlated_flag(flag_id)
        return resolve_highlights(
            item.flag,
            item.timeline_index,
            self.controller.position,
            self.current_content().text,
        )

    # ------------------------------------------
    # Playback transitions
    # ------------------------------------------

    def play(self) -> PlaybackState:
        return self.controller.play()

    def pause(self) -> PlaybackState:
        return self.controller.pause()

    def toggle(self) -> PlaybackState:
        return self.controller.toggle()

    def tick(self) -> PlaybackState:
        return self.controller.tick()

    def seek(self, index: int) -> PlaybackState:
        return self.controller.seek(index)

    def step(self, delta: int) -> PlaybackState:
        return self.controller.step(delta)

    def seek_end(self) -> PlaybackState:
        return self.controller.seek_end()

    def set_speed(self, factor: float) -> PlaybackState:
        return self.controller.set_speed(factor)

    # ------------------------------------------
    # Upstream actions
    # ------------------------------------------

    async def set_flag_status(self, flag_id: str, status: FlagStatus) -> Flag:
        """Record a review decision upstream and mirror it on the local flag."""
        self._ensure_not_closed()
        item = self._correlated_flag(flag_id)
        await self.feed.update_flag(self.submission_id, flag_id, status)
        updated = item.flag.with_status(status)
        if self._closed:
            self._log.debug("flag_update_abandoned", flag_id=flag_id)
            return updated
        self._flags = [updated if f.id == flag_id else f for f in self._flags]
        self._correlated = [
            CorrelatedFlag(updated, c.timeline_index) if c.flag.id == flag_id else c
            for c in self._correlated
        ]
        return updated

    async def pause_capture(self) -> None:
        self._ensure_not_closed()
        await self.feed.pause_capture(self.submission_id)

    async def resume_capture(self) -> None:
        self._ensure_not_closed()
        await self.feed.resume_capture(self.submission_id)

    async def force_poll(self) -> dict[str, Any]:
        """Ask upstream to capture now, then reconcile with whatever it produced."""
        self._ensure_not_closed()
        result = await self.feed.force_poll(self.submission_id)
        if self._closed:
            self._log.debug("force_poll_abandoned")
            return result
        await self.refresh()
        return result
