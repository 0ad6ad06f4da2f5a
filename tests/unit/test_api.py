"""Unit tests for the replay HTTP surface."""
import pytest
from factories import FakeFeed, growing_feed
from fastapi.testclient import TestClient

from draftscope.application import LiveReplaySession
from draftscope.config import Settings
from draftscope.domain.exceptions import FetchFailure
from draftscope.presentation.api.main import create_app


@pytest.fixture
def session(fake_feed):
    return LiveReplaySession(fake_feed, "sub-1", poll_interval=60.0, playback_base_interval=60.0)


@pytest.fixture
def client(session):
    with TestClient(create_app(session=session)) as c:
        yield c


class TestHealth:
    def test_healthz(self, client):
        resp = client.get("/healthz")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["session_open"] is True
        assert data["last_error"] is None

    def test_livez(self, client):
        assert client.get("/livez").json() == {"status": "alive"}

    def test_without_session(self):
        with TestClient(create_app(settings=Settings(submission_id=None))) as c:
            assert c.get("/healthz").json()["session_open"] is False
            assert c.get("/api/v1/replay/state").status_code == 503


class TestPlaybackRoutes:
    def test_initial_state(self, client):
        data = client.get("/api/v1/replay/state").json()
        assert data["position"] == 0
        assert data["is_playing"] is False
        assert data["length"] == 5
        assert data["sequence_number"] == 1
        assert data["kind"] == "keyframe"
        assert data["percent"] == 0.0

    def test_seek_and_content(self, client):
        data = client.post("/api/v1/replay/seek", json={"index": 2}).json()
        assert data["position"] == 2
        assert data["percent"] == 50.0
        content = client.get("/api/v1/replay/content").json()
        assert content["text"] == "aaa"
        assert content["char_count"] == 3
        assert content["possibly_incomplete"] is False

    def test_seek_is_clamped(self, client):
        assert client.post("/api/v1/replay/seek", json={"index": 99}).json()["position"] == 4

    def test_step_and_end(self, client):
        assert client.post("/api/v1/replay/step", json={"delta": 3}).json()["position"] == 3
        assert client.post("/api/v1/replay/step", json={"delta": -1}).json()["position"] == 2
        assert client.post("/api/v1/replay/end").json()["position"] == 4

    def test_play_pause_toggle(self, client):
        assert client.post("/api/v1/replay/play").json()["is_playing"] is True
        assert client.post("/api/v1/replay/pause").json()["is_playing"] is False
        assert client.post("/api/v1/replay/toggle").json()["is_playing"] is True
        assert client.post("/api/v1/replay/toggle").json()["is_playing"] is False

    def test_speed(self, client):
        assert client.post("/api/v1/replay/speed", json={"factor": 2}).json()["speed"] == 2.0

    def test_invalid_speed(self, client):
        resp = client.post("/api/v1/replay/speed", json={"factor": -1})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "INVALID_PLAYBACK_SPEED"


class TestFlagRoutes:
    def test_flags_with_positions(self, client):
        [flag] = client.get("/api/v1/replay/flags").json()
        assert flag["id"] == "flag-1"
        assert flag["timeline_index"] == 2
        assert flag["percent"] == 50.0
        assert flag["label"] == "AI Generated"

    def test_flags_at_position(self, client):
        assert client.get("/api/v1/replay/flags", params={"at_position": True}).json() == []
        client.post("/api/v1/replay/seek", json={"index": 2})
        assert len(client.get("/api/v1/replay/flags", params={"at_position": True}).json()) == 1

    def test_select_and_highlights(self, client):
        state = client.post("/api/v1/replay/flags/flag-1/select").json()
        assert state["position"] == 2
        data = client.get("/api/v1/replay/flags/flag-1/highlights").json()
        assert data["suppressed"] is False
        assert [(r["start"], r["end"]) for r in data["ranges"]] == [(0, 2)]

    def test_highlights_suppressed_away_from_flag(self, client):
        client.post("/api/v1/replay/seek", json={"index": 4})
        data = client.get("/api/v1/replay/flags/flag-1/highlights").json()
        assert data["suppressed"] is True
        assert data["ranges"] == []

    def test_unknown_flag(self, client):
        resp = client.post("/api/v1/replay/flags/nope/select")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "FLAG_NOT_FOUND"


class TestRefreshRoute:
    def test_refresh_swaps_on_growth(self, client, fake_feed):
        fake_feed.replay = growing_feed(7)
        assert client.post("/api/v1/replay/refresh").json() == {"swapped": True, "entries": 7}
        assert client.post("/api/v1/replay/refresh").json() == {"swapped": False, "entries": 7}

    def test_refresh_failure_is_bad_gateway(self, client, fake_feed):
        fake_feed.failure = FetchFailure("store down", status_code=503, retryable=True)
        resp = client.post("/api/v1/replay/refresh")
        assert resp.status_code == 502
        assert resp.json()["error"]["retryable"] is True


def test_app_survives_failed_initial_load():
    feed = FakeFeed(growing_feed(3))
    feed.failure = FetchFailure("down")
    session = LiveReplaySession(feed, "sub-1", poll_interval=60.0)
    with TestClient(create_app(session=session)) as c:
        assert c.get("/healthz").json()["last_error"] == "down"
        feed.failure = None
        assert c.post("/api/v1/replay/refresh").json()["entries"] == 3


def test_controls_come_from_settings(session):
    settings = Settings(speed_presets=[1.0, 8.0], step_size=10)
    with TestClient(create_app(session=session, settings=settings)) as c:
        assert c.get("/api/v1/replay/controls").json() == {"speed_presets": [1.0, 8.0], "step_size": 10}
