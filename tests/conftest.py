"""Root conftest -- shared fixtures for all test suites."""
from __future__ import annotations

import os

import pytest

# keep a developer's .env out of the test run
os.environ["DRAFTSCOPE_ENVIRONMENT"] = "testing"
os.environ.pop("DRAFTSCOPE_SUBMISSION_ID", None)

from factories import FakeFeed, ai_flag, append_diff, growing_feed, keyframe  # noqa: E402

from draftscope.domain.entities import Diff, Keyframe  # noqa: E402
from draftscope.infrastructure.feed import ReplayFeed  # noqa: E402


@pytest.fixture
def hello_records() -> tuple[list[Keyframe], list[Diff]]:
    """Keyframe "Hello" at seq 1 and a diff appending " world" at seq 2."""
    return [keyframe(1, "Hello")], [append_diff(2, 1, "Hello", " world")]


@pytest.fixture
def five_entry_feed() -> ReplayFeed:
    return growing_feed(5, project_id="p1", file_id="f1")


@pytest.fixture
def fake_feed(five_entry_feed) -> FakeFeed:
    return FakeFeed(five_entry_feed, flags=[ai_flag("flag-1", t=3.2, ranges=((0, 2),))])
