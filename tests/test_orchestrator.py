"""Capture orchestration: idempotent submission, batching, failures and cancellation."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from snapsight.domain.errors import AnalysisFailure
from snapsight.domain.models import AnalysisResult
from snapsight.pipelines.analysis import Priority
from snapsight.services.orchestrator import CaptureOrchestrator


def _orchestrator(backend, **kwargs) -> CaptureOrchestrator:
    kwargs.setdefault("immediate_analysis", False)
    kwargs.setdefault("batch_size", 5)
    kwargs.setdefault("batch_delay", 0)
    return CaptureOrchestrator(backend, **kwargs)


@pytest.mark.asyncio
async def test_double_submission_creates_one_job(backend, capture_factory):
    orchestrator = _orchestrator(backend)
    capture = capture_factory("file:///x.jpg")
    orchestrator.append_capture(capture)
    backend.gate = asyncio.Event()

    first = orchestrator.submit_for_analysis([capture])
    second = orchestrator.submit_for_analysis([capture], Priority.HIGH)

    assert len(first) == 1
    assert second == []
    assert orchestrator.counters().in_progress == 1

    backend.gate.set()
    await orchestrator.wait_idle()

    assert backend.calls == [["file:///x.jpg"]]
    assert orchestrator.get_capture("file:///x.jpg").analyzed
    assert len(orchestrator.tracker) == 0


@pytest.mark.asyncio
async def test_analyzed_captures_are_not_resubmitted(backend, capture_factory):
    orchestrator = _orchestrator(backend)
    orchestrator.append_capture(capture_factory("file:///done.jpg", analyzed=True))

    assert orchestrator.analyze_pending() == []
    assert backend.calls == []


@pytest.mark.asyncio
async def test_submissions_are_split_into_batches(backend, capture_factory):
    orchestrator = _orchestrator(backend, batch_size=2)
    captures = [capture_factory(f"file:///{index}.jpg") for index in range(5)]
    orchestrator.replace_captures(captures)

    handles = orchestrator.analyze_pending()
    await orchestrator.wait_idle()

    assert [handle.size for handle in handles] == [2, 2, 1]
    assert [len(call) for call in backend.calls] == [2, 2, 1]
    assert orchestrator.analyzed_count == 5
    assert orchestrator.pending_count == 0


@pytest.mark.asyncio
async def test_error_payload_fails_only_that_item(backend, capture_factory):
    orchestrator = _orchestrator(backend)
    captures = [capture_factory(uri) for uri in ("file:///a.jpg", "file:///x.jpg", "file:///b.jpg")]
    orchestrator.replace_captures(captures)
    backend.error_payload_uris = {"file:///x.jpg"}
    analyzed, errors, completed = [], [], []
    orchestrator.events.register_handlers(
        on_image_analyzed=lambda item: analyzed.append(item.uri),
        on_error=lambda error, item: errors.append((type(error), item.uri)),
        on_analysis_complete=lambda results, failed: completed.append((len(results), len(failed))),
    )

    orchestrator.analyze_pending()
    await orchestrator.wait_idle()

    failed = orchestrator.get_capture("file:///x.jpg")
    assert failed.analysis_failed
    assert not failed.analyzed
    assert failed.failed_reason == "rejected by model"
    assert sorted(analyzed) == ["file:///a.jpg", "file:///b.jpg"]
    assert errors == [(AnalysisFailure, "file:///x.jpg")]
    assert completed == [(2, 1)]
    assert "file:///x.jpg" not in orchestrator.tracker


@pytest.mark.asyncio
async def test_backend_crash_for_one_item_fails_only_its_job(backend, capture_factory):
    orchestrator = _orchestrator(backend, batch_size=1)
    captures = [capture_factory(uri) for uri in ("file:///a.jpg", "file:///x.jpg", "file:///b.jpg")]
    orchestrator.replace_captures(captures)
    backend.raise_for_uris = {"file:///x.jpg"}

    orchestrator.analyze_pending()
    await orchestrator.wait_idle()

    by_uri = {capture.uri: capture for capture in orchestrator.captures}
    assert by_uri["file:///a.jpg"].analyzed
    assert by_uri["file:///b.jpg"].analyzed
    assert by_uri["file:///x.jpg"].analysis_failed
    assert not by_uri["file:///x.jpg"].analyzed
    assert len(orchestrator.tracker) == 0

    # Failed captures stay eligible for the next batch.
    backend.raise_for_uris = set()
    handles = orchestrator.analyze_pending()
    await orchestrator.wait_idle()
    assert len(handles) == 1
    assert orchestrator.get_capture("file:///x.jpg").analyzed


@pytest.mark.asyncio
async def test_missing_result_marks_item_failed(backend, capture_factory):
    orchestrator = _orchestrator(backend)
    orchestrator.replace_captures([capture_factory("file:///a.jpg"), capture_factory("file:///gone.jpg")])
    backend.omit_uris = {"file:///gone.jpg"}

    orchestrator.analyze_pending()
    await orchestrator.wait_idle()

    assert orchestrator.get_capture("file:///a.jpg").analyzed
    assert orchestrator.get_capture("file:///gone.jpg").analysis_failed


@pytest.mark.asyncio
async def test_canceling_queued_job_releases_its_captures(backend, capture_factory):
    orchestrator = _orchestrator(backend, batch_size=1)
    orchestrator.replace_captures([capture_factory("file:///first.jpg"), capture_factory("file:///second.jpg")])
    backend.gate = asyncio.Event()

    orchestrator.analyze_pending()
    await asyncio.sleep(0)

    assert orchestrator.cancel("file:///second.jpg") is True
    assert "file:///second.jpg" not in orchestrator.tracker
    assert orchestrator.cancel("file:///unknown.jpg") is False

    backend.gate.set()
    await orchestrator.wait_idle()

    assert backend.calls == [["file:///first.jpg"]]
    assert not orchestrator.get_capture("file:///second.jpg").analyzed


@pytest.mark.asyncio
async def test_canceling_through_job_handle_releases_its_captures(backend, capture_factory):
    orchestrator = _orchestrator(backend, batch_size=1)
    orchestrator.replace_captures([capture_factory("file:///a.jpg"), capture_factory("file:///b.jpg")])
    backend.gate = asyncio.Event()
    completed: list[tuple[int, int]] = []
    orchestrator.events.register_handlers(
        on_analysis_complete=lambda results, failed: completed.append((len(results), len(failed))),
    )

    handles = orchestrator.analyze_pending()
    await asyncio.sleep(0)

    assert handles[1].cancel() is True
    assert "file:///b.jpg" not in orchestrator.tracker
    assert handles[1].cancel() is False

    backend.gate.set()
    await orchestrator.wait_idle()

    assert backend.calls == [["file:///a.jpg"]]
    assert len(orchestrator.tracker) == 0
    assert completed == [(1, 0)]

    retry = orchestrator.analyze_pending()
    await orchestrator.wait_idle()

    assert [handle.size for handle in retry] == [1]
    assert orchestrator.get_capture("file:///b.jpg").analyzed


@pytest.mark.asyncio
async def test_events_fire_once_per_submission(backend, capture_factory):
    orchestrator = _orchestrator(backend, batch_size=5)
    orchestrator.replace_captures([capture_factory(f"file:///{index}.jpg") for index in range(12)])
    backend.error_payload_uris = {"file:///7.jpg"}
    starts: list[int] = []
    completed: list[tuple[int, int]] = []
    orchestrator.events.register_handlers(
        on_analysis_start=starts.append,
        on_analysis_complete=lambda results, failed: completed.append((len(results), len(failed))),
    )

    handles = orchestrator.analyze_pending()
    await orchestrator.wait_idle()

    assert len(handles) == 3
    assert [len(call) for call in backend.calls] == [5, 5, 2]
    assert starts == [12]
    assert completed == [(11, 1)]


@pytest.mark.asyncio
async def test_batches_of_one_submission_are_spaced_by_batch_delay(capture_factory):
    stamps: list[float] = []

    async def analyze(captures):
        stamps.append(asyncio.get_running_loop().time())
        return [AnalysisResult(uri=capture.uri, title="ok") for capture in captures]

    backend = AsyncMock()
    backend.analyze.side_effect = analyze
    orchestrator = _orchestrator(backend, batch_size=1, batch_delay=0.05)
    orchestrator.replace_captures([capture_factory(f"file:///{index}.jpg") for index in range(3)])

    orchestrator.analyze_pending()
    await orchestrator.wait_idle()

    assert len(stamps) == 3
    gaps = [later - earlier for earlier, later in zip(stamps, stamps[1:])]
    assert all(gap >= 0.04 for gap in gaps)
    assert orchestrator.analyzed_count == 3


@pytest.mark.asyncio
async def test_separate_submissions_are_not_delayed(capture_factory):
    stamps: list[float] = []

    async def analyze(captures):
        stamps.append(asyncio.get_running_loop().time())
        return [AnalysisResult(uri=capture.uri, title="ok") for capture in captures]

    backend = AsyncMock()
    backend.analyze.side_effect = analyze
    orchestrator = _orchestrator(backend, batch_delay=5.0)
    first = capture_factory("file:///first.jpg")
    second = capture_factory("file:///second.jpg")
    orchestrator.replace_captures([first, second])

    orchestrator.submit_for_analysis([first])
    orchestrator.submit_for_analysis([second], Priority.HIGH)
    await asyncio.wait_for(orchestrator.wait_idle(), timeout=1.0)

    assert len(stamps) == 2


@pytest.mark.asyncio
async def test_canceled_running_job_result_is_discarded(backend, capture_factory):
    orchestrator = _orchestrator(backend)
    orchestrator.append_capture(capture_factory("file:///slow.jpg"))
    backend.gate = asyncio.Event()

    orchestrator.analyze_pending()
    await asyncio.sleep(0)
    assert orchestrator.queue.current_job is not None

    assert orchestrator.cancel("file:///slow.jpg") is True
    assert "file:///slow.jpg" in orchestrator.tracker

    backend.gate.set()
    await orchestrator.wait_idle()

    capture = orchestrator.get_capture("file:///slow.jpg")
    assert backend.calls == [["file:///slow.jpg"]]
    assert not capture.analyzed
    assert not capture.analysis_failed
    assert len(orchestrator.tracker) == 0


@pytest.mark.asyncio
async def test_urgent_submission_sheds_background_work(backend, capture_factory):
    orchestrator = _orchestrator(backend, batch_size=1)
    running = capture_factory("file:///running.jpg")
    background = capture_factory("file:///background.jpg")
    urgent = capture_factory("file:///urgent.jpg")
    orchestrator.replace_captures([running, background, urgent])
    backend.gate = asyncio.Event()

    orchestrator.submit_for_analysis([running], Priority.NORMAL)
    await asyncio.sleep(0)
    orchestrator.submit_for_analysis([background], Priority.LOW)
    orchestrator.submit_for_analysis([urgent], Priority.URGENT)

    assert "file:///background.jpg" not in orchestrator.tracker

    backend.gate.set()
    await orchestrator.wait_idle()

    assert backend.calls == [["file:///running.jpg"], ["file:///urgent.jpg"]]


@pytest.mark.asyncio
async def test_enqueue_failure_releases_marked_refs(backend, capture_factory, monkeypatch):
    orchestrator = _orchestrator(backend)
    capture = capture_factory("file:///x.jpg")
    orchestrator.append_capture(capture)

    def broken_enqueue(job, priority):
        raise RuntimeError("queue unavailable")

    monkeypatch.setattr(orchestrator.queue, "enqueue", broken_enqueue)

    with pytest.raises(RuntimeError):
        orchestrator.submit_for_analysis([capture])

    assert len(orchestrator.tracker) == 0
    assert orchestrator.counters().pending == 1


@pytest.mark.asyncio
async def test_no_refs_leak_under_mixed_faults(backend, capture_factory):
    orchestrator = _orchestrator(backend, batch_size=2)
    uris = [f"file:///{index}.jpg" for index in range(7)]
    orchestrator.replace_captures([capture_factory(uri) for uri in uris])
    backend.raise_for_uris = {uris[1]}
    backend.error_payload_uris = {uris[4]}
    backend.omit_uris = {uris[6]}

    orchestrator.analyze_pending()
    await orchestrator.wait_idle()

    assert len(orchestrator.tracker) == 0
    counters = orchestrator.counters()
    assert counters.total == 7
    assert counters.in_progress == 0
    assert counters.analyzed + counters.pending == 7


@pytest.mark.asyncio
async def test_immediate_mode_submits_new_captures_at_high_priority(backend, capture_factory):
    orchestrator = _orchestrator(backend, immediate_analysis=True)

    handles = orchestrator.on_new_capture(capture_factory("file:///now.jpg"))
    await orchestrator.wait_idle()

    assert [handle.priority for handle in handles] == [Priority.HIGH]
    assert orchestrator.get_capture("file:///now.jpg").analyzed


@pytest.mark.asyncio
async def test_utterance_captures_and_submits(backend, capture_source):
    orchestrator = _orchestrator(backend, capture_source=capture_source)

    capture = await orchestrator.handle_utterance("  what breed is this dog ")
    await orchestrator.wait_idle()

    assert capture is not None
    assert capture.custom_prompt == "what breed is this dog"
    assert backend.calls == [[capture.uri]]
    assert orchestrator.get_capture(capture.uri).analyzed


@pytest.mark.asyncio
@pytest.mark.parametrize("mode", ["none", "raise"])
async def test_capture_failure_is_skipped(backend, capture_source, mode):
    orchestrator = _orchestrator(backend, capture_source=capture_source)
    if mode == "none":
        capture_source.fail = True
    else:
        capture_source.raise_error = True

    assert await orchestrator.handle_utterance("hello") is None
    assert orchestrator.captures == ()
    assert backend.calls == []


@pytest.mark.asyncio
async def test_backend_called_once_per_job_with_async_mock(capture_factory):
    backend = AsyncMock()
    backend.analyze.return_value = [AnalysisResult(uri="file:///m.jpg", title="Mocked")]
    orchestrator = _orchestrator(backend)
    orchestrator.append_capture(capture_factory("file:///m.jpg"))
    started: list[int] = []
    orchestrator.events.register_handlers(on_analysis_start=started.append)

    orchestrator.analyze_pending()
    await orchestrator.wait_idle()

    backend.analyze.assert_awaited_once()
    assert started == [1]
    assert orchestrator.get_capture("file:///m.jpg").analysis.title == "Mocked"


@pytest.mark.asyncio
async def test_idle_listener_runs_when_queue_drains(backend, capture_factory):
    orchestrator = _orchestrator(backend)
    orchestrator.append_capture(capture_factory("file:///a.jpg"))
    idle: list[bool] = []
    orchestrator.add_idle_listener(lambda: idle.append(orchestrator.is_analyzing))

    orchestrator.analyze_pending()
    await orchestrator.wait_idle()

    assert idle == [False]
