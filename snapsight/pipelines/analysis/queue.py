"""Priority-ordered analysis queue with a single sequential processor.

Jobs are ordered by priority (highest first) and, within a priority, by
enqueue time so older work is never overtaken by newer work of the same rank.
Only one job executes at a time; this keeps the analysis backend below its
rate limits. Queued jobs can be cancelled outright, the running job can only
be flagged as canceled and the caller discards its result.
"""

from __future__ import annotations

import itertools
import logging
import time
from typing import Awaitable, Callable, List, Optional

from snapsight.telemetry import set_queue_depth

from .types import AnalysisJob, JobHandle, Priority

logger = logging.getLogger(__name__)

Worker = Callable[[AnalysisJob], Awaitable[None]]
IdleCallback = Callable[[], None]


class AnalysisPriorityQueue:
    """Ordered queue of analysis jobs drained by one processor loop."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._entries: List[AnalysisJob] = []
        self._current: Optional[AnalysisJob] = None
        self._processing = False
        self._clock = clock
        self._sequence = itertools.count()

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def current_job(self) -> Optional[AnalysisJob]:
        return self._current

    def __len__(self) -> int:
        return len(self._entries)

    def pending(self) -> List[AnalysisJob]:
        """Snapshot of queued jobs in execution order."""

        return list(self._entries)

    def enqueue(self, job: AnalysisJob, priority: Priority = Priority.NORMAL) -> JobHandle:
        """Insert ``job`` and return a handle that can cancel it.

        Enqueueing never starts the processor; call ``start_processing``.
        """

        job.priority = Priority(priority)
        job.enqueued_at = self._clock()
        job.sequence = next(self._sequence)
        self._entries.append(job)
        self._sort()
        set_queue_depth(len(self._entries))
        logger.info(
            "Enqueued job=%s priority=%s items=%d depth=%d",
            job.job_id,
            job.priority.name,
            len(job.captures),
            len(self._entries),
        )
        return JobHandle(
            job_id=job.job_id,
            priority=job.priority,
            _cancel=self.cancel,
            size=len(job.captures),
        )

    def cancel(self, identifier: str) -> Optional[AnalysisJob]:
        """Cancel the job matching a job id or capture uri.

        A queued job is removed and returned. The running job is only flagged
        ``canceled`` and returned; its worker still runs to completion.
        """

        if self._current is not None and self._current.matches(identifier):
            self._current.canceled = True
            logger.info("Flagged running job=%s as canceled", self._current.job_id)
            return self._current

        for index, job in enumerate(self._entries):
            if job.matches(identifier):
                del self._entries[index]
                job.canceled = True
                set_queue_depth(len(self._entries))
                logger.info("Removed queued job=%s", job.job_id)
                return job
        return None

    def cancel_lower_priority_than(self, min_priority: Priority) -> List[AnalysisJob]:
        """Drop queued jobs below ``min_priority`` and return them."""

        kept: List[AnalysisJob] = []
        removed: List[AnalysisJob] = []
        for job in self._entries:
            (kept if job.priority >= min_priority else removed).append(job)
        for job in removed:
            job.canceled = True
        self._entries = kept
        if removed:
            set_queue_depth(len(self._entries))
            logger.info(
                "Shed %d job(s) below priority %s",
                len(removed),
                Priority(min_priority).name,
            )
        return removed

    def clear(self) -> List[AnalysisJob]:
        """Drop every queued job and flag the running one as canceled."""

        removed = self._entries
        self._entries = []
        for job in removed:
            job.canceled = True
        if self._current is not None:
            self._current.canceled = True
        set_queue_depth(0)
        return removed

    async def start_processing(
        self,
        worker: Worker,
        on_idle: Optional[IdleCallback] = None,
    ) -> None:
        """Drain the queue one job at a time; no-op if already draining."""

        if self._processing:
            return

        self._processing = True
        try:
            while self._entries:
                job = self._entries.pop(0)
                set_queue_depth(len(self._entries))
                if job.canceled:
                    continue
                self._current = job
                try:
                    await worker(job)
                except Exception:
                    logger.exception("Analysis job=%s failed", job.job_id)
                finally:
                    self._current = None
        finally:
            self._processing = False

        if on_idle is not None:
            try:
                on_idle()
            except Exception:
                logger.exception("Queue idle callback failed")

    def _sort(self) -> None:
        # list.sort is stable; sequence breaks ties between equal timestamps.
        self._entries.sort(key=AnalysisJob.sort_key)


__all__ = ["AnalysisPriorityQueue", "IdleCallback", "Worker"]
