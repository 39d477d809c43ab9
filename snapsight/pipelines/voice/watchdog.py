"""Liveness check for speech engines that stop delivering events silently."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class LivenessWatchdog:
    """Periodic idle check that runs beside the voice state machine.

    Every ``check_interval`` seconds, if ``is_listening()`` holds and no
    activity was recorded for more than ``idle_threshold`` seconds, the
    watchdog calls ``on_stalled(attempt)``. After ``max_retries`` restarts
    without activity it calls ``on_exhausted()`` and stops itself.
    """

    def __init__(
        self,
        *,
        check_interval: float,
        idle_threshold: float,
        max_retries: int,
        is_listening: Callable[[], bool],
        on_stalled: Callable[[int], None],
        on_exhausted: Callable[[], None],
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._check_interval = check_interval
        self._idle_threshold = idle_threshold
        self._max_retries = max_retries
        self._is_listening = is_listening
        self._on_stalled = on_stalled
        self._on_exhausted = on_exhausted
        self._clock = clock
        self._handle: Optional[asyncio.TimerHandle] = None
        self._last_activity = clock()
        self._retries = 0
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def retries(self) -> int:
        return self._retries

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._retries = 0
        self._last_activity = self._clock()
        self._schedule()

    def stop(self) -> None:
        self._running = False
        self._retries = 0
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def touch(self) -> None:
        """Record speech activity; an engine that talks is alive."""

        self._last_activity = self._clock()
        self._retries = 0

    def _schedule(self) -> None:
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self._check_interval, self._check)

    def _check(self) -> None:
        self._handle = None
        if not self._running:
            return

        idle_for = self._clock() - self._last_activity
        if self._is_listening() and idle_for > self._idle_threshold:
            if self._retries >= self._max_retries:
                logger.warning(
                    "No speech activity for %.1fs after %d restart(s), giving up",
                    idle_for,
                    self._retries,
                )
                self._running = False
                self._on_exhausted()
                return
            self._retries += 1
            self._last_activity = self._clock()
            logger.info(
                "No speech activity for %.1fs, restarting engine (attempt %d/%d)",
                idle_for,
                self._retries,
                self._max_retries,
            )
            self._on_stalled(self._retries)

        if self._running:
            self._schedule()


__all__ = ["LivenessWatchdog"]
