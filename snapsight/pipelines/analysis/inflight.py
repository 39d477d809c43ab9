"""Submission guard for captures that are already out for analysis."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterable, Iterator, List

logger = logging.getLogger(__name__)


class InFlightTracker:
    """Set of content references submitted for analysis but not yet resolved."""

    def __init__(self) -> None:
        self._refs: set[str] = set()

    def mark_submitted(self, ref: str) -> bool:
        """Record ``ref`` as in flight; returns False if it already was."""

        if ref in self._refs:
            return False
        self._refs.add(ref)
        return True

    def clear(self, ref: str) -> None:
        self._refs.discard(ref)

    def is_submitted(self, ref: str) -> bool:
        return ref in self._refs

    def snapshot(self) -> frozenset[str]:
        return frozenset(self._refs)

    @contextmanager
    def submission(self, refs: Iterable[str]) -> Iterator[List[str]]:
        """Mark ``refs`` for the duration of a submission attempt.

        Yields the references this call actually marked. If the block raises
        (cancellation included) those references are released again so a
        failed enqueue never leaves a capture stuck as in flight.
        """

        marked = [ref for ref in refs if self.mark_submitted(ref)]
        try:
            yield marked
        except BaseException:
            for ref in marked:
                self.clear(ref)
            logger.warning("Submission aborted, released %d reference(s)", len(marked))
            raise

    def __contains__(self, ref: object) -> bool:
        return ref in self._refs

    def __len__(self) -> int:
        return len(self._refs)


__all__ = ["InFlightTracker"]
