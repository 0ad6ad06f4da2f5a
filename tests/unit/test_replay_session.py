"""Unit tests for the live replay session: reconciliation, polling and teardown."""
import asyncio

import pytest
from factories import FakeFeed, ai_flag, growing_feed

from draftscope.application import LiveReplaySession
from draftscope.config import Settings
from draftscope.domain.entities import FlagStatus
from draftscope.domain.exceptions import FetchFailure, SessionClosed, UnknownFlag
from draftscope.infrastructure.feed import ReplayQuery, SessionSummary


def _session(feed, **kwargs):
    kwargs.setdefault("poll_interval", 60.0)
    kwargs.setdefault("playback_base_interval", 60.0)
    return LiveReplaySession(feed, "sub-1", **kwargs)


class TestOpen:
    @pytest.mark.asyncio
    async def test_open_loads_timeline_and_flags(self, fake_feed):
        fake_feed.sessions = [SessionSummary(session_id="s1")]
        async with _session(fake_feed) as session:
            assert session.is_open
            assert len(session.timeline) == 5
            assert session.current_content().text == "a"
            assert [(c.flag.id, c.timeline_index) for c in session.flag_positions()] == [("flag-1", 2)]
            assert [s.session_id for s in session.sessions] == ["s1"]
            assert session.is_polling
        assert session.is_closed
        assert not session.is_polling

    @pytest.mark.asyncio
    async def test_failed_open_surfaces_and_stays_empty(self, fake_feed):
        fake_feed.failure = FetchFailure("store down", status_code=503)
        session = _session(fake_feed)
        with pytest.raises(FetchFailure):
            await session.open()
        assert not session.is_open
        assert len(session.timeline) == 0
        assert session.last_error is fake_feed.failure
        assert session.current_content().text == ""
        await session.close()

    @pytest.mark.asyncio
    async def test_from_settings(self, fake_feed):
        settings = Settings(poll_interval_seconds=30, default_speed=2.0, reconstruction_cache_size=8)
        session = LiveReplaySession.from_settings(fake_feed, "sub-1", settings)
        assert session.poll_interval == 30
        assert session.playback_state().speed == 2.0
        assert session.cache_size == 8


class TestReconciliation:
    @pytest.mark.asyncio
    async def test_growth_keeps_position_and_content(self, fake_feed):
        async with _session(fake_feed) as session:
            session.seek(2)
            before = session.current_content()
            fake_feed.replay = growing_feed(8)
            assert await session.refresh() is True
            assert len(session.timeline) == 8
            assert session.playback_state().position == 2
            assert session.current_content() == before

    @pytest.mark.asyncio
    async def test_same_length_discards_fetch(self, fake_feed):
        async with _session(fake_feed) as session:
            timeline = session.timeline
            fake_feed.replay = growing_feed(5)
            assert await session.refresh() is False
            assert session.timeline is timeline

    @pytest.mark.asyncio
    async def test_flags_refresh_even_when_timeline_unchanged(self, fake_feed):
        async with _session(fake_feed) as session:
            fake_feed.flags.append(ai_flag("flag-2", t=5))
            await session.refresh()
            assert [f.id for f in session.flags] == ["flag-1", "flag-2"]

    @pytest.mark.asyncio
    async def test_fetch_failure_keeps_last_state(self, fake_feed):
        async with _session(fake_feed) as session:
            session.seek(3)
            fake_feed.failure = FetchFailure("timeout")
            with pytest.raises(FetchFailure):
                await session.refresh()
            assert session.last_error is not None
            assert session.current_content().text == "aaaa"

            fake_feed.failure = None
            await session.refresh()
            assert session.last_error is None

    @pytest.mark.asyncio
    async def test_load_session_restarts_at_zero(self, fake_feed):
        async with _session(fake_feed) as session:
            session.seek(4)
            query = ReplayQuery(session_id="s2")
            fake_feed.replay = growing_feed(3)
            await session.load_session(query)
            assert fake_feed.queries[-1] == query
            assert len(session.timeline) == 3
            assert session.playback_state().position == 0


class TestBackgroundTasks:
    @pytest.mark.asyncio
    async def test_polling_only_while_paused(self, fake_feed):
        async with _session(fake_feed) as session:
            assert session.is_polling
            session.play()
            assert not session.is_polling
            assert session.is_clock_running
            session.pause()
            assert session.is_polling
            assert not session.is_clock_running

    @pytest.mark.asyncio
    async def test_poller_picks_up_new_entries(self, fake_feed):
        async with _session(fake_feed, poll_interval=0.01) as session:
            fake_feed.replay = growing_feed(7)
            for _ in range(100):
                if len(session.timeline) == 7:
                    break
                await asyncio.sleep(0.01)
            assert len(session.timeline) == 7

    @pytest.mark.asyncio
    async def test_poller_survives_fetch_failures(self, fake_feed):
        async with _session(fake_feed, poll_interval=0.01) as session:
            fake_feed.failure = FetchFailure("flaky")
            calls = fake_feed.replay_calls
            for _ in range(100):
                if fake_feed.replay_calls >= calls + 2:
                    break
                await asyncio.sleep(0.01)
            assert fake_feed.replay_calls >= calls + 2
            assert session.is_polling

    @pytest.mark.asyncio
    async def test_poller_survives_unexpected_errors(self, fake_feed):
        async with _session(fake_feed, poll_interval=0.01) as session:
            fake_feed.failure = ValueError("could not convert string to float")
            calls = fake_feed.replay_calls
            for _ in range(100):
                if fake_feed.replay_calls >= calls + 2:
                    break
                await asyncio.sleep(0.01)
            assert session.is_polling

            fake_feed.failure = None
            fake_feed.replay = growing_feed(6)
            for _ in range(100):
                if len(session.timeline) == 6:
                    break
                await asyncio.sleep(0.01)
            assert len(session.timeline) == 6
        assert session.is_closed

    @pytest.mark.asyncio
    async def test_playback_clock_runs_to_the_end(self, fake_feed):
        async with _session(fake_feed, playback_base_interval=0.01) as session:
            session.play()
            for _ in range(100):
                if not session.playback_state().is_playing:
                    break
                await asyncio.sleep(0.01)
            state = session.playback_state()
            assert state.position == 4
            assert not state.is_playing
            assert not session.is_clock_running
            assert session.is_polling

    @pytest.mark.asyncio
    async def test_result_arriving_after_close_is_dropped(self, fake_feed):
        session = _session(fake_feed)
        await session.open()
        fake_feed.gate.clear()
        pending = asyncio.create_task(session.refresh())
        await asyncio.sleep(0)
        await session.close()

        fake_feed.replay = growing_feed(9)
        fake_feed.gate.set()
        assert await pending is False
        assert len(session.timeline) == 5

    @pytest.mark.asyncio
    async def test_closed_session_rejects_work(self, fake_feed):
        session = _session(fake_feed)
        await session.open()
        await session.close()
        await session.close()
        with pytest.raises(SessionClosed):
            await session.refresh()
        session.play()
        assert not session.is_clock_running


    @pytest.mark.asyncio
    async def test_flag_update_finishing_after_close_is_not_mirrored(self, fake_feed):
        session = _session(fake_feed)
        await session.open()
        fake_feed.gate.clear()
        pending = asyncio.create_task(session.set_flag_status("flag-1", FlagStatus.NEEDS_FOLLOWUP))
        await asyncio.sleep(0)
        await session.close()
        fake_feed.gate.set()

        updated = await pending
        assert updated.status is FlagStatus.NEEDS_FOLLOWUP
        assert session.flags[0].status is FlagStatus.UNREVIEWED
        assert session.flag_positions()[0].flag.status is FlagStatus.UNREVIEWED

    @pytest.mark.asyncio
    async def test_force_poll_finishing_after_close_skips_refresh(self, fake_feed):
        session = _session(fake_feed)
        await session.open()
        fake_feed.gate.clear()
        pending = asyncio.create_task(session.force_poll())
        await asyncio.sleep(0)
        await session.close()
        fake_feed.replay = growing_feed(9)
        fake_feed.gate.set()

        assert await pending == {"status": "polled"}
        assert len(session.timeline) == 5


class TestFlags:
    @pytest.mark.asyncio
    async def test_select_flag_seeks_and_pauses(self, fake_feed):
        async with _session(fake_feed) as session:
            session.play()
            item = session.select_flag("flag-1")
            assert item.timeline_index == 2
            state = session.playback_state()
            assert state.position == 2
            assert not state.is_playing
            assert session.selected_flag.id == "flag-1"
            assert [f.id for f in session.current_flags_at_position()] == ["flag-1"]

    @pytest.mark.asyncio
    async def test_highlights_only_at_correlated_position(self, fake_feed):
        async with _session(fake_feed) as session:
            session.select_flag("flag-1")
            assert [(r.start, r.end) for r in session.active_highlights()] == [(0, 2)]
            session.step(1)
            assert session.active_highlights() == []
            session.clear_selection()
            assert session.active_highlights() == []

    @pytest.mark.asyncio
    async def test_unknown_flag(self, fake_feed):
        async with _session(fake_feed) as session:
            with pytest.raises(UnknownFlag):
                session.select_flag("missing")

    @pytest.mark.asyncio
    async def test_set_flag_status(self, fake_feed):
        async with _session(fake_feed) as session:
            updated = await session.set_flag_status("flag-1", FlagStatus.FALSE_POSITIVE)
            assert updated.status is FlagStatus.FALSE_POSITIVE
            assert session.flags[0].status is FlagStatus.FALSE_POSITIVE
            assert session.flag_positions()[0].flag.status is FlagStatus.FALSE_POSITIVE
            assert fake_feed.flag_updates == [("sub-1", "flag-1", FlagStatus.FALSE_POSITIVE)]


class TestUpstreamActions:
    @pytest.mark.asyncio
    async def test_capture_controls(self, fake_feed):
        async with _session(fake_feed) as session:
            await session.pause_capture()
            await session.resume_capture()
            fake_feed.replay = growing_feed(6)
            result = await session.force_poll()
            assert result == {"status": "polled"}
            assert fake_feed.actions == ["pause", "resume", "poll"]
            assert len(session.timeline) == 6


class TestChanges:
    @pytest.mark.asyncio
    async def test_current_changes(self, fake_feed):
        async with _session(fake_feed) as session:
            assert session.current_changes().added[0].text == "a"
            session.seek(3)
            changes = session.current_changes()
            assert [(c.start, c.end) for c in changes.added] == [(3, 4)]
            assert changes.removed == ()


def test_session_without_event_loop_is_driven_by_hand():
    session = _session(FakeFeed(growing_feed(3)))
    session.controller.set_length(3)
    session.play()
    assert not session.is_clock_running
    session.tick()
    session.tick()
    assert session.playback_state().position == 2
    assert not session.playback_state().is_playing
