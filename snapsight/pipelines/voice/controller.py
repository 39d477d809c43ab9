"""Continuous voice recognition on top of a single-utterance speech engine.

The controller turns an engine that recognizes one utterance per ``start()``
into a continuous listen -> recognize -> act -> relisten cycle:

``inactive -> listening -> processing -> cooldown -> listening``

with an ``error_backoff`` branch whose delay grows with the number of
consecutive engine errors. Every state owns at most one timer (silence,
cooldown, backoff or restart) and any transition cancels it, so a stale timer
can never fire into a later state. A separate liveness watchdog restarts an
engine that stopped producing events without reporting an error.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import Any, Callable, Coroutine, Optional, Sequence

from snapsight.application.interfaces import SpeechEngine
from snapsight.config.settings import VoiceConfig, settings
from snapsight.domain.errors import (
    InvalidVoiceTransition,
    SpeechEngineError,
    SpeechUnavailableError,
)
from snapsight.telemetry import observe_transition, observe_voice_error

from .backoff import next_delay
from .types import ALLOWED_TRANSITIONS, VoiceCallbacks, VoiceErrorReport, VoiceState
from .watchdog import LivenessWatchdog

logger = logging.getLogger(__name__)


def _first_candidate(values: Sequence[str] | str | None) -> str:
    """Best transcription from an engine result; engines may send a bare string."""

    if not values:
        return ""
    if isinstance(values, str):
        return values.strip()
    return (values[0] or "").strip()


class VoiceRecognitionController:
    """Drive a ``SpeechEngine`` through the voice lifecycle state machine."""

    def __init__(
        self,
        engine: SpeechEngine,
        config: Optional[VoiceConfig] = None,
        callbacks: Optional[VoiceCallbacks] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._engine = engine
        self._config = config or settings.voice
        self.callbacks = callbacks or VoiceCallbacks()

        self._state = VoiceState.INACTIVE
        self._generation = 0
        self._active = False
        self._suppressed = False
        self._exhausted = False
        self._engine_ready = False
        self._consecutive_errors = 0
        self._buffer = ""
        self._timer: Optional[asyncio.TimerHandle] = None
        self._tasks: set[asyncio.Task[Any]] = set()

        self._watchdog = LivenessWatchdog(
            check_interval=self._config.liveness_check_interval,
            idle_threshold=self._config.liveness_idle_threshold,
            max_retries=self._config.liveness_max_retries,
            is_listening=lambda: self._active and self._state is VoiceState.LISTENING,
            on_stalled=self._on_stalled,
            on_exhausted=self._on_liveness_exhausted,
            clock=clock,
        )

    @property
    def state(self) -> VoiceState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def is_suppressed(self) -> bool:
        return self._suppressed

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    @property
    def consecutive_errors(self) -> int:
        return self._consecutive_errors

    @property
    def buffered_text(self) -> str:
        return self._buffer

    @property
    def has_pending_timer(self) -> bool:
        return self._timer is not None

    @property
    def watchdog(self) -> LivenessWatchdog:
        return self._watchdog

    # ------------------------------------------------------------------
    # Host operations
    # ------------------------------------------------------------------

    async def activate(self) -> None:
        """Start continuous listening.

        Also re-arms a controller that stopped after too many errors.

        Raises:
            SpeechUnavailableError: the engine is missing or reports itself
                unavailable; the controller stays inactive.
        """

        if self._state in (VoiceState.LISTENING, VoiceState.PROCESSING, VoiceState.COOLDOWN):
            self._active = True
            return
        if self._state is VoiceState.ERROR_BACKOFF and not self._exhausted:
            self._active = True
            return

        try:
            available = await self._engine.is_available()
        except Exception:
            logger.warning("Speech availability check failed", exc_info=True)
            available = False
        if not available:
            raise SpeechUnavailableError("Speech recognition is not available on this device")

        if not self._engine_ready:
            self._engine.setup(self)
            self._engine_ready = True

        self._active = True
        self._exhausted = False
        self._consecutive_errors = 0
        self._watchdog.start()
        logger.info("Voice recognition activated language=%s", self._config.language)
        await self._start_listening()

    async def deactivate(self) -> None:
        """Stop listening from any state; clears every pending timer."""

        self._active = False
        self._exhausted = False
        self._buffer = ""
        self._watchdog.stop()
        if self._state is not VoiceState.INACTIVE:
            self._transition(VoiceState.INACTIVE)
        else:
            self._cancel_timer()
        await self._safe_stop()
        logger.info("Voice recognition deactivated")

    async def destroy(self) -> None:
        """Deactivate, release the engine and cancel background tasks."""

        await self.deactivate()
        for task in list(self._tasks):
            task.cancel()
        if self._engine_ready:
            try:
                self._engine.destroy()
            except Exception:
                logger.warning("Speech engine destroy failed", exc_info=True)
            self._engine_ready = False

    def set_analysis_suppressed(self, suppressed: bool) -> None:
        """Hold automatic relistening while a blocking analysis runs.

        While suppressed the controller parks in ``cooldown`` or
        ``error_backoff`` once their timers elapse; lifting suppression resumes
        listening from there.
        """

        if suppressed == self._suppressed:
            return
        self._suppressed = suppressed
        if suppressed:
            return
        if not self._active or self._timer is not None:
            return
        if self._state is VoiceState.COOLDOWN or (
            self._state is VoiceState.ERROR_BACKOFF and not self._exhausted
        ):
            self._spawn(self._start_listening())

    async def process_speech_result(self) -> bool:
        """Act on the buffered utterance exactly once.

        Both the engine's final result and the silence timer end up here. The
        first caller moves the state to ``processing`` before its first await;
        any later caller for the same utterance finds the controller no longer
        listening and returns False.
        """

        if self._state is not VoiceState.LISTENING:
            return False
        text = self._buffer.strip()
        if not text:
            return False

        self._transition(VoiceState.PROCESSING)
        generation = self._generation
        self._buffer = ""
        self._consecutive_errors = 0
        logger.info("Finalized utterance: %s", text)

        await self._safe_stop()

        handler = self.callbacks.on_final_text
        if handler is not None:
            try:
                result = handler(text)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Final text handler failed")

        if generation != self._generation:
            return True
        self._transition(VoiceState.COOLDOWN)
        self._arm_timer(self._config.cooldown_period, self._on_cooldown_elapsed)
        return True

    # ------------------------------------------------------------------
    # SpeechListener slots
    # ------------------------------------------------------------------

    def on_speech_start(self) -> None:
        self._watchdog.touch()
        self._consecutive_errors = 0
        if self._state is VoiceState.LISTENING:
            self._cancel_timer()

    def on_speech_end(self) -> None:
        if self._state is not VoiceState.LISTENING:
            return
        self._watchdog.touch()
        if self._buffer.strip():
            self._arm_silence_timer()

    def on_speech_partial_results(self, values: Sequence[str]) -> None:
        text = _first_candidate(values)
        if self._state is not VoiceState.LISTENING or not text:
            return
        self._watchdog.touch()
        self._buffer = text
        self._emit("on_partial_text", self.callbacks.on_partial_text, text)
        self._arm_silence_timer()

    def on_speech_results(self, values: Sequence[str]) -> None:
        text = _first_candidate(values)
        if self._state is not VoiceState.LISTENING or not text:
            return
        self._watchdog.touch()
        self._buffer = text
        self._spawn(self.process_speech_result())

    def on_speech_volume_changed(self, value: float) -> None:
        if self._state is not VoiceState.LISTENING:
            return
        level = min(max(float(value), 0.0) * 10, 100.0)
        self._emit("on_volume", self.callbacks.on_volume, level)
        if self._buffer.strip():
            self._arm_silence_timer()

    def on_speech_error(self, error: SpeechEngineError) -> None:
        if self._state not in (
            VoiceState.LISTENING,
            VoiceState.PROCESSING,
            VoiceState.COOLDOWN,
        ):
            logger.debug("Ignoring speech error in state %s: %s", self._state.value, error)
            return
        self._handle_error(error)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _start_listening(self) -> None:
        if self._state in (VoiceState.LISTENING, VoiceState.PROCESSING):
            return
        if not self._active:
            return

        self._buffer = ""
        self._transition(VoiceState.LISTENING)
        generation = self._generation
        options = {
            "partial_results": self._config.partial_results,
            "max_results": self._config.max_results,
        }
        try:
            await self._engine.start(self._config.language, options)
        except Exception as exc:
            error = (
                exc
                if isinstance(exc, SpeechEngineError)
                else SpeechEngineError("start_failed", str(exc))
            )
            if error.is_benign_start_failure:
                logger.info("Speech engine already running: %s", error.message)
                return
            if generation == self._generation:
                self._handle_error(error)
            return

        if generation != self._generation and (
            not self._active or self._state is VoiceState.INACTIVE
        ):
            # Deactivated while the engine was starting.
            await self._safe_stop()

    def _handle_error(self, error: SpeechEngineError) -> None:
        self._consecutive_errors += 1
        count = self._consecutive_errors
        observe_voice_error(error.code)
        if error.is_no_match:
            logger.debug("Speech engine reported no match (%d consecutive)", count)
        else:
            logger.warning("Speech engine error code=%s (%d consecutive): %s", error.code, count, error.message)

        self._transition(VoiceState.ERROR_BACKOFF)
        exhausted = count >= self._config.max_consecutive_errors
        if exhausted:
            self._exhausted = True
            logger.warning(
                "Stopping automatic restarts after %d consecutive errors",
                count,
            )
            self._spawn(self._safe_stop())
        else:
            delay = next_delay(
                count,
                base=self._config.backoff_base,
                factor=self._config.backoff_factor,
                exponent_cap=self._config.backoff_exponent_cap,
                max_delay=self._config.backoff_max_delay,
            )
            logger.info("Restarting speech engine in %.2fs", delay)
            self._arm_timer(delay, self._on_backoff_elapsed)

        self._emit(
            "on_error",
            self.callbacks.on_error,
            VoiceErrorReport(
                code=error.code,
                message=error.message,
                consecutive_errors=count,
                exhausted=exhausted,
            ),
        )

    def _transition(self, target: VoiceState) -> None:
        source = self._state
        if target not in ALLOWED_TRANSITIONS[source]:
            raise InvalidVoiceTransition(f"{source.value} -> {target.value}")
        self._cancel_timer()
        self._state = target
        self._generation += 1
        observe_transition(source.value, target.value)
        logger.debug("Voice state %s -> %s", source.value, target.value)
        self._emit("on_state_change", self.callbacks.on_state_change, source, target)

    def _arm_silence_timer(self) -> None:
        self._arm_timer(self._config.silence_duration, self._on_silence_elapsed)

    def _arm_timer(self, delay: float, callback: Callable[[], None]) -> None:
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(delay, callback)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_silence_elapsed(self) -> None:
        self._timer = None
        if self._state is VoiceState.LISTENING and self._buffer.strip():
            self._spawn(self.process_speech_result())

    def _on_cooldown_elapsed(self) -> None:
        self._timer = None
        if self._state is not VoiceState.COOLDOWN or not self._active:
            return
        if self._suppressed:
            logger.debug("Cooldown elapsed during analysis, holding")
            return
        self._spawn(self._start_listening())

    def _on_backoff_elapsed(self) -> None:
        self._timer = None
        if self._state is not VoiceState.ERROR_BACKOFF or not self._active:
            return
        if self._exhausted or self._suppressed:
            return
        self._spawn(self._start_listening())

    def _on_stalled(self, attempt: int) -> None:
        if self._state is not VoiceState.LISTENING:
            return
        self._transition(VoiceState.INACTIVE)
        self._spawn(self._restart_engine())

    async def _restart_engine(self) -> None:
        generation = self._generation
        await self._safe_stop()
        if generation != self._generation or not self._active:
            return
        self._arm_timer(self._config.liveness_restart_delay, self._on_restart_elapsed)

    def _on_restart_elapsed(self) -> None:
        self._timer = None
        if self._state is VoiceState.INACTIVE and self._active:
            self._spawn(self._start_listening())

    def _on_liveness_exhausted(self) -> None:
        self._emit(
            "on_error",
            self.callbacks.on_error,
            VoiceErrorReport(
                code="liveness",
                message="No speech activity detected; voice recognition turned off",
                consecutive_errors=self._consecutive_errors,
                exhausted=True,
            ),
        )
        self._spawn(self.deactivate())

    async def _safe_stop(self) -> None:
        try:
            await self._engine.stop()
        except Exception:
            logger.warning("Speech engine stop failed", exc_info=True)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Voice background task failed", exc_info=exc)

    @staticmethod
    def _emit(name: str, handler: Optional[Callable[..., Any]], *args: Any) -> None:
        if handler is None:
            return
        try:
            handler(*args)
        except Exception:
            logger.exception("Voice callback %s raised", name)


__all__ = ["VoiceRecognitionController"]
