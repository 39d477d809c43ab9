"""Badge counters over the capture collection."""

from __future__ import annotations

import logging
from typing import AbstractSet, Sequence

from snapsight.domain.models import Capture

from .types import AnalysisCounters

logger = logging.getLogger(__name__)


def calculate_counters(
    captures: Sequence[Capture],
    in_flight: AbstractSet[str],
) -> AnalysisCounters:
    """Count captures by analysis state.

    ``pending`` is what the red badge shows: not analyzed (failed ones
    included) and not currently out for analysis.
    """

    analyzed = sum(1 for capture in captures if capture.analyzed)
    in_progress = sum(1 for capture in captures if capture.uri in in_flight)
    pending = sum(
        1
        for capture in captures
        if not capture.analyzed and capture.uri not in in_flight
    )
    return AnalysisCounters(
        total=len(captures),
        analyzed=analyzed,
        unanalyzed=len(captures) - analyzed,
        in_progress=in_progress,
        pending=pending,
    )


def log_counters(counters: AnalysisCounters, source: str) -> None:
    logger.debug(
        "[%s] total=%d analyzed=%d unanalyzed=%d in_progress=%d pending=%d",
        source,
        counters.total,
        counters.analyzed,
        counters.unanalyzed,
        counters.in_progress,
        counters.pending,
    )


__all__ = ["calculate_counters", "log_counters"]
