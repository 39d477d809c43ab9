"""In-flight submission guard."""

from __future__ import annotations

import asyncio

import pytest

from snapsight.pipelines.analysis import InFlightTracker


def test_mark_submitted_is_idempotent():
    tracker = InFlightTracker()

    assert tracker.mark_submitted("a") is True
    assert tracker.mark_submitted("a") is False
    assert tracker.is_submitted("a")
    assert len(tracker) == 1

    tracker.clear("a")
    tracker.clear("a")
    assert "a" not in tracker


def test_submission_keeps_refs_on_success():
    tracker = InFlightTracker()
    tracker.mark_submitted("already")

    with tracker.submission(["already", "new"]) as marked:
        assert marked == ["new"]

    assert tracker.snapshot() == frozenset({"already", "new"})


def test_submission_releases_only_its_own_refs_on_error():
    tracker = InFlightTracker()
    tracker.mark_submitted("already")

    with pytest.raises(ValueError):
        with tracker.submission(["already", "x", "y"]):
            raise ValueError("enqueue failed")

    assert tracker.snapshot() == frozenset({"already"})


@pytest.mark.asyncio
async def test_submission_releases_refs_on_cancellation():
    tracker = InFlightTracker()
    entered = asyncio.Event()

    async def submit() -> None:
        with tracker.submission(["slow"]):
            entered.set()
            await asyncio.sleep(10)

    task = asyncio.create_task(submit())
    await entered.wait()
    assert "slow" in tracker

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert "slow" not in tracker
