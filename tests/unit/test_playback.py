"""Unit tests for the playback state machine."""
import math

import pytest

from draftscope.domain.entities import PlaybackStatus
from draftscope.domain.exceptions import InvalidPlaybackSpeed
from draftscope.engines.playback import PlaybackController


class TestPlayAndTick:
    def test_reaching_the_end_pauses(self):
        controller = PlaybackController(length=3, speed=1.0)
        controller.play()
        controller.tick()
        controller.tick()
        assert controller.position == 2
        assert controller.status is PlaybackStatus.PAUSED

    def test_tick_advances_one_entry(self):
        controller = PlaybackController(length=5)
        controller.play()
        state = controller.tick()
        assert state.position == 1
        assert state.is_playing

    def test_tick_while_paused_does_nothing(self):
        controller = PlaybackController(length=5)
        assert controller.tick().position == 0

    def test_play_on_empty_timeline_is_noop(self):
        controller = PlaybackController(length=0)
        state = controller.play()
        assert not state.is_playing
        assert state.position == 0

    def test_play_from_end_restarts(self):
        controller = PlaybackController(length=4)
        controller.seek(3)
        assert controller.play().position == 0
        assert controller.is_playing

    def test_single_entry_pauses_on_first_tick(self):
        controller = PlaybackController(length=1)
        controller.play()
        assert controller.tick().position == 0
        assert not controller.is_playing

    def test_growth_reopens_forward_motion(self):
        controller = PlaybackController(length=2)
        controller.play()
        controller.tick()
        assert not controller.is_playing
        controller.set_length(4)
        controller.play()
        assert controller.position == 1
        assert controller.tick().position == 2

    def test_toggle(self):
        controller = PlaybackController(length=3)
        assert controller.toggle().is_playing
        assert not controller.toggle().is_playing


class TestSeek:
    @pytest.mark.parametrize("target, expected", [(-5, 0), (0, 0), (2, 2), (99, 4)])
    def test_clamped(self, target, expected):
        assert PlaybackController(length=5).seek(target).position == expected

    def test_does_not_change_play_state(self):
        controller = PlaybackController(length=5)
        controller.play()
        controller.seek(2)
        assert controller.is_playing

    def test_step(self):
        controller = PlaybackController(length=10)
        assert controller.step(5).position == 5
        assert controller.step(-7).position == 0
        assert controller.step(50).position == 9

    def test_seek_end_pauses(self):
        controller = PlaybackController(length=6)
        controller.play()
        state = controller.seek_end()
        assert state.position == 5
        assert not state.is_playing

    def test_shrinking_timeline_clamps_position(self):
        controller = PlaybackController(length=10)
        controller.seek(8)
        assert controller.set_length(4).position == 3


class TestSpeed:
    def test_speed_changes_interval_only(self):
        controller = PlaybackController(length=5, base_interval_seconds=1.0)
        controller.seek(3)
        state = controller.set_speed(4)
        assert state.speed == 4.0
        assert state.position == 3
        assert controller.tick_interval == 0.25

    @pytest.mark.parametrize("bad", [0, -1, math.inf, math.nan, True, "2"])
    def test_invalid_speed_rejected(self, bad):
        controller = PlaybackController(length=5)
        with pytest.raises(InvalidPlaybackSpeed):
            controller.set_speed(bad)
        assert controller.speed == 1.0

    def test_invalid_initial_speed(self):
        with pytest.raises(InvalidPlaybackSpeed):
            PlaybackController(speed=0)


class TestListeners:
    def test_notified_on_status_change(self):
        seen = []
        controller = PlaybackController(length=2)
        controller.add_listener(lambda prev, cur: seen.append((prev, cur)))
        controller.play()
        controller.play()
        controller.tick()
        assert seen == [
            (PlaybackStatus.PAUSED, PlaybackStatus.PLAYING),
            (PlaybackStatus.PLAYING, PlaybackStatus.PAUSED),
        ]
