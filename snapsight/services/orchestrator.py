"""Capture collection owner and analysis submission front door."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple
from uuid import uuid4

from snapsight.application.interfaces import AnalysisBackend, CaptureSource
from snapsight.config.settings import settings
from snapsight.domain.errors import AnalysisFailure, CaptureFailure
from snapsight.domain.models import AnalysisResult, Capture
from snapsight.pipelines.analysis import (
    AnalysisCounters,
    AnalysisEventBus,
    AnalysisJob,
    AnalysisPriorityQueue,
    InFlightTracker,
    JobHandle,
    Priority,
    calculate_counters,
    log_counters,
)
from snapsight.telemetry import observe_items, observe_job

logger = logging.getLogger(__name__)


@dataclass
class _Submission:
    """Progress of one ``submit_for_analysis`` call across its jobs."""

    total: int
    job_ids: Set[str]
    started: bool = False
    processed: List[Capture] = field(default_factory=list)
    failed: List[Capture] = field(default_factory=list)


class CaptureOrchestrator:
    """Own the capture collection and route captures through the analysis queue.

    The collection, the in-flight tracker and the queue are only mutated
    here, and never across an ``await``. Results are merged back by capture
    uri, so a capture replaced in the collection while its job was running
    still receives its analysis.
    """

    def __init__(
        self,
        backend: AnalysisBackend,
        *,
        capture_source: Optional[CaptureSource] = None,
        queue: Optional[AnalysisPriorityQueue] = None,
        tracker: Optional[InFlightTracker] = None,
        events: Optional[AnalysisEventBus] = None,
        immediate_analysis: Optional[bool] = None,
        batch_size: Optional[int] = None,
        batch_delay: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._backend = backend
        self._capture_source = capture_source
        self._queue = queue or AnalysisPriorityQueue()
        self._tracker = tracker or InFlightTracker()
        self.events = events or AnalysisEventBus()
        self.immediate_analysis = (
            settings.analysis.immediate if immediate_analysis is None else immediate_analysis
        )
        self._batch_size = batch_size or settings.analysis.batch_size
        self._batch_delay = (
            settings.analysis.batch_delay if batch_delay is None else batch_delay
        )
        self._clock = clock
        self._captures: List[Capture] = []
        self._idle_listeners: List[Callable[[], None]] = []
        self._processors: set[asyncio.Task[Any]] = set()
        self._submissions: Dict[str, _Submission] = {}

    @property
    def captures(self) -> Tuple[Capture, ...]:
        return tuple(self._captures)

    @property
    def queue(self) -> AnalysisPriorityQueue:
        return self._queue

    @property
    def tracker(self) -> InFlightTracker:
        return self._tracker

    @property
    def is_analyzing(self) -> bool:
        return self._queue.is_processing or len(self._queue) > 0

    @property
    def pending_count(self) -> int:
        return self.counters().pending

    @property
    def analyzed_count(self) -> int:
        return self.counters().analyzed

    def get_capture(self, uri: str) -> Optional[Capture]:
        for capture in self._captures:
            if capture.uri == uri:
                return capture
        return None

    def now_ms(self) -> int:
        return int(self._clock() * 1000)

    def counters(self) -> AnalysisCounters:
        return calculate_counters(self._captures, self._tracker.snapshot())

    def add_idle_listener(self, callback: Callable[[], None]) -> None:
        """Call ``callback`` every time the queue runs dry."""

        self._idle_listeners.append(callback)

    # ------------------------------------------------------------------
    # Collection
    # ------------------------------------------------------------------

    def append_capture(self, capture: Capture) -> None:
        self._captures.append(capture)
        log_counters(self.counters(), "append")

    def replace_captures(self, captures: Iterable[Capture]) -> None:
        self._captures = list(captures)
        log_counters(self.counters(), "replace")

    def on_new_capture(self, capture: Capture) -> List[JobHandle]:
        """Add a fresh capture; submit it right away in immediate mode."""

        self.append_capture(capture)
        if not self.immediate_analysis:
            return []
        return self.submit_for_analysis([capture], Priority.HIGH)

    async def capture_photo(self, prompt: Optional[str] = None) -> Optional[Capture]:
        """Take a photo through the capture source; ``None`` when that fails."""

        if self._capture_source is None:
            logger.warning("Capture requested but no capture source is configured")
            return None
        try:
            photo = await self._capture_source.capture_photo()
            if photo is None:
                raise CaptureFailure("Capture source returned no photo")
        except Exception as exc:
            logger.warning("Photo capture failed: %s", exc)
            return None

        return Capture(
            uri=photo.uri,
            timestamp=self.now_ms(),
            custom_prompt=prompt or None,
        )

    async def handle_utterance(self, text: str) -> Optional[Capture]:
        """Capture a photo tagged with a spoken prompt and analyze it first."""

        prompt = text.strip()
        capture = await self.capture_photo(prompt)
        if capture is None:
            return None
        self.on_new_capture(capture)
        # No-op when immediate mode already submitted it.
        self.submit_for_analysis([capture], Priority.HIGH)
        return capture

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit_for_analysis(
        self,
        captures: Sequence[Capture],
        priority: Priority = Priority.NORMAL,
    ) -> List[JobHandle]:
        """Queue captures in batches and make sure the processor is running.

        Captures that are already analyzed or in flight are skipped, so the
        same capture can be submitted from several places without being sent
        twice. Must be called from within the event loop.
        """

        priority = Priority(priority)
        if priority >= Priority.URGENT:
            self.shed_background_work(Priority.NORMAL)

        candidates: List[Capture] = []
        seen: set[str] = set()
        for capture in captures:
            current = self.get_capture(capture.uri) or capture
            if current.analyzed or current.uri in self._tracker or current.uri in seen:
                continue
            seen.add(current.uri)
            candidates.append(current)

        if not candidates:
            logger.debug("Nothing to submit at priority %s", priority.name)
            return []

        handles: List[JobHandle] = []
        submission_id = uuid4().hex
        with self._tracker.submission(capture.uri for capture in candidates) as marked:
            marked_refs = set(marked)
            batch = [capture for capture in candidates if capture.uri in marked_refs]
            try:
                for start in range(0, len(batch), self._batch_size):
                    job = AnalysisJob(
                        captures=batch[start : start + self._batch_size],
                        submission_id=submission_id,
                    )
                    handle = self._queue.enqueue(job, priority)
                    # Cancel through the orchestrator so refs are released.
                    handles.append(replace(handle, _cancel=self._cancel_job))
            except BaseException:
                for handle in handles:
                    self._queue.cancel(handle.job_id)
                raise

        self._submissions[submission_id] = _Submission(
            total=len(batch),
            job_ids={handle.job_id for handle in handles},
        )

        logger.info(
            "Submitted %d capture(s) in %d job(s) at priority %s",
            len(batch),
            len(handles),
            priority.name,
        )
        self._ensure_processing()
        return handles

    def analyze_pending(self, priority: Priority = Priority.NORMAL) -> List[JobHandle]:
        """Manual batch over every capture that is neither analyzed nor in flight."""

        pending = [
            capture
            for capture in self._captures
            if not capture.analyzed and capture.uri not in self._tracker
        ]
        if not pending:
            logger.info("No pending captures to analyze")
            return []
        return self.submit_for_analysis(pending, priority)

    def cancel(self, identifier: str) -> bool:
        """Cancel a job by id or capture uri.

        A queued job is dropped and its captures become submittable again; the
        running job is flagged and its result discarded when it lands.
        """

        return self._cancel_job(identifier) is not None

    def _cancel_job(self, identifier: str) -> Optional[AnalysisJob]:
        job = self._queue.cancel(identifier)
        if job is not None and job is not self._queue.current_job:
            self._release(job)
        return job

    def shed_background_work(self, min_priority: Priority = Priority.NORMAL) -> int:
        removed = self._queue.cancel_lower_priority_than(min_priority)
        for job in removed:
            self._release(job)
        return len(removed)

    async def wait_idle(self) -> None:
        """Wait until every processor started so far has drained the queue."""

        while self._processors:
            await asyncio.gather(*list(self._processors), return_exceptions=True)

    async def shutdown(self) -> None:
        for job in self._queue.clear():
            self._release(job)
        for task in list(self._processors):
            task.cancel()
        await self.wait_idle()
        self._submissions.clear()

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _ensure_processing(self) -> None:
        if self._queue.is_processing:
            return
        task = asyncio.get_running_loop().create_task(
            self._queue.start_processing(self._run_job, on_idle=self._on_queue_idle)
        )
        self._processors.add(task)
        task.add_done_callback(self._processors.discard)

    async def _run_job(self, job: AnalysisJob) -> None:
        captures = list(job.captures)
        processed: List[Capture] = []
        failed: List[Capture] = []
        outcome = "aborted"
        begun = False
        submission = self._submissions.get(job.submission_id or "")

        try:
            if submission is not None and submission.started and self._batch_delay > 0:
                # Rate limit between consecutive batches of one submission.
                await asyncio.sleep(self._batch_delay)

            if job.canceled:
                outcome = "canceled"
            else:
                self._begin(job, submission)
                begun = True
                try:
                    results = await self._backend.analyze(captures)
                except Exception as exc:
                    if job.canceled:
                        outcome = "canceled"
                    else:
                        outcome = "failed"
                        logger.error("Analysis job=%s failed: %s", job.job_id, exc)
                        failure = exc if isinstance(exc, AnalysisFailure) else AnalysisFailure(str(exc))
                        for capture in captures:
                            failed.append(self._mark_failed(capture, failure))
                else:
                    if job.canceled:
                        outcome = "canceled"
                    else:
                        processed, failed = self._merge_results(captures, results)
                        outcome = "success" if not failed else ("partial" if processed else "failed")
        finally:
            for capture in captures:
                self._tracker.clear(capture.uri)
            observe_job(job.priority.name.lower(), outcome)

        if outcome == "canceled":
            logger.info("Discarded result of canceled job=%s", job.job_id)
            observe_items("discarded", len(captures))
        observe_items("analyzed", len(processed))
        observe_items("failed", len(failed))
        if submission is not None:
            self._settle(job, processed, failed)
        elif begun:
            self.events.emit_complete(processed, failed)

    def _begin(self, job: AnalysisJob, submission: Optional[_Submission]) -> None:
        if submission is None:
            self.events.emit_start(len(job.captures))
        elif not submission.started:
            submission.started = True
            self.events.emit_start(submission.total)

    def _settle(
        self,
        job: AnalysisJob,
        processed: Sequence[Capture] = (),
        failed: Sequence[Capture] = (),
    ) -> None:
        """Fold one finished or dropped job into its submission.

        ``on_analysis_complete`` fires once, after the last job of a
        submission that actually started.
        """

        submission = self._submissions.get(job.submission_id or "")
        if submission is None or job.job_id not in submission.job_ids:
            return
        submission.job_ids.discard(job.job_id)
        submission.processed.extend(processed)
        submission.failed.extend(failed)
        if submission.job_ids:
            return
        del self._submissions[job.submission_id]
        if submission.started:
            self.events.emit_complete(submission.processed, submission.failed)

    def _merge_results(
        self,
        captures: Sequence[Capture],
        results: Optional[Sequence[AnalysisResult]],
    ) -> Tuple[List[Capture], List[Capture]]:
        by_uri = {result.uri: result for result in results or ()}
        processed: List[Capture] = []
        failed: List[Capture] = []
        for capture in captures:
            result = by_uri.get(capture.uri)
            if result is None:
                failed.append(
                    self._mark_failed(capture, AnalysisFailure("No analysis result returned"))
                )
            elif result.failed:
                failed.append(
                    self._mark_failed(capture, AnalysisFailure(result.error or "Unknown error"), result)
                )
            else:
                updated = self._update(
                    capture,
                    analyzed=True,
                    analysis=result,
                    analysis_failed=False,
                    failed_reason=None,
                    analysis_date=datetime.now(timezone.utc),
                )
                self.events.emit_image_analyzed(updated)
                processed.append(updated)
        return processed, failed

    def _mark_failed(
        self,
        capture: Capture,
        error: AnalysisFailure,
        result: Optional[AnalysisResult] = None,
    ) -> Capture:
        updated = self._update(
            capture,
            analyzed=False,
            analysis=result,
            analysis_failed=True,
            failed_reason=str(error),
        )
        self.events.emit_error(error, updated)
        return updated

    def _update(self, capture: Capture, **changes: Any) -> Capture:
        for index, stored in enumerate(self._captures):
            if stored.uri == capture.uri:
                updated = stored.model_copy(update=changes)
                self._captures[index] = updated
                return updated
        return capture.model_copy(update=changes)

    def _release(self, job: AnalysisJob) -> None:
        for uri in job.uris:
            self._tracker.clear(uri)
        self._settle(job)

    def _on_queue_idle(self) -> None:
        log_counters(self.counters(), "idle")
        for listener in list(self._idle_listeners):
            try:
                listener()
            except Exception:
                logger.exception("Queue idle listener failed")


__all__ = ["CaptureOrchestrator"]
