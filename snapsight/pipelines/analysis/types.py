"""Typed containers shared across the analysis pipeline.

These live in their own module so ``queue``, ``events`` and the orchestrator
service can import them without creating circular dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable, List, Optional
from uuid import uuid4

from snapsight.domain.models import Capture


class Priority(IntEnum):
    """Analysis priority; higher values are serviced first."""

    LOW = 1  # background / automatic
    NORMAL = 2  # manual "Analyze" batches
    HIGH = 3  # voice-prompted and immediate captures
    URGENT = 4


@dataclass
class AnalysisJob:
    """One unit of queued work: the captures sent in a single backend call."""

    captures: List[Capture]
    priority: Priority = Priority.NORMAL
    enqueued_at: float = 0.0
    sequence: int = 0
    job_id: str = field(default_factory=lambda: uuid4().hex)
    canceled: bool = False
    submission_id: Optional[str] = None

    @property
    def uris(self) -> List[str]:
        return [capture.uri for capture in self.captures]

    def matches(self, identifier: str) -> bool:
        """True when ``identifier`` is this job's id or one of its capture uris."""

        return identifier == self.job_id or identifier in self.uris

    def sort_key(self) -> tuple[int, float, int]:
        return (-int(self.priority), self.enqueued_at, self.sequence)


@dataclass(frozen=True)
class JobHandle:
    """Returned by ``enqueue`` so the submitter can cancel its own job."""

    job_id: str
    priority: Priority
    _cancel: Callable[[str], object] = field(repr=False, compare=False)
    size: int = 0

    def cancel(self) -> bool:
        return self._cancel(self.job_id) is not None


@dataclass(frozen=True)
class AnalysisCounters:
    """Badge counters derived from the capture collection."""

    total: int
    analyzed: int
    unanalyzed: int
    in_progress: int
    pending: int


__all__ = ["AnalysisCounters", "AnalysisJob", "JobHandle", "Priority"]
