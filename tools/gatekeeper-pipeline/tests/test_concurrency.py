from __future__ import annotations

import pytest

from gatekeeper_pipeline.concurrency import CancellationToken, RunTracker
from gatekeeper_pipeline.errors import RunCancelled


def test_newer_run_cancels_previous_for_same_key() -> None:
    tracker = RunTracker()
    first = tracker.start("acme/widget#17")

    second = tracker.start("acme/widget#17")

    assert first.cancelled
    assert "superseded" in (first.reason or "")
    assert not second.cancelled
    assert tracker.active("acme/widget#17") is second


def test_different_keys_are_independent() -> None:
    tracker = RunTracker()
    first = tracker.start("acme/widget#17")

    tracker.start("acme/widget#18")

    assert not first.cancelled


def test_finish_only_clears_own_token() -> None:
    tracker = RunTracker()
    first = tracker.start("k")
    second = tracker.start("k")

    tracker.finish("k", first)
    assert tracker.active("k") is second

    tracker.finish("k", second)
    assert tracker.active("k") is None


def test_token_raises_once_cancelled() -> None:
    token = CancellationToken()
    token.raise_if_cancelled()

    token.cancel("stop")
    token.cancel("ignored")

    with pytest.raises(RunCancelled, match="stop"):
        token.raise_if_cancelled()
