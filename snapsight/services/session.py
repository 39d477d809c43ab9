"""One capture session: voice recognition wired to the capture orchestrator."""

from __future__ import annotations

import logging
from typing import List, Optional

from snapsight.application.interfaces import (
    AnalysisBackend,
    CaptureSource,
    SpeechEngine,
    UnavailableSpeechEngine,
)
from snapsight.config.settings import Settings, settings
from snapsight.domain.models import Capture
from snapsight.pipelines.analysis import JobHandle, Priority
from snapsight.pipelines.voice import (
    VoiceCallbacks,
    VoiceErrorReport,
    VoiceRecognitionController,
    VoiceState,
)

from .analysis_client import HttpAnalysisClient
from .orchestrator import CaptureOrchestrator

logger = logging.getLogger(__name__)


class CaptureSession:
    """Route finalized utterances to captures and hold voice during manual batches."""

    def __init__(
        self,
        orchestrator: CaptureOrchestrator,
        voice: VoiceRecognitionController,
        *,
        backend: Optional[AnalysisBackend] = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.voice = voice
        self._backend = backend
        self.partial_text = ""
        self.volume = 0.0
        self.last_voice_error: Optional[VoiceErrorReport] = None
        self.last_utterance: Optional[str] = None

        voice.callbacks = VoiceCallbacks(
            on_final_text=self._on_final_text,
            on_partial_text=self._on_partial_text,
            on_volume=self._on_volume,
            on_error=self._on_voice_error,
            on_state_change=self._on_voice_state_change,
        )
        orchestrator.add_idle_listener(self._on_analysis_idle)

    @property
    def captures(self) -> tuple[Capture, ...]:
        return self.orchestrator.captures

    async def activate_voice(self) -> None:
        self.last_voice_error = None
        await self.voice.activate()

    async def deactivate_voice(self) -> None:
        await self.voice.deactivate()
        self.partial_text = ""
        self.volume = 0.0

    def add_capture(self, uri: str, prompt: Optional[str] = None, timestamp: Optional[int] = None) -> Capture:
        """Register a photo the host captured itself."""

        capture = Capture(
            uri=uri,
            timestamp=timestamp if timestamp is not None else self.orchestrator.now_ms(),
            custom_prompt=prompt or None,
        )
        self.orchestrator.on_new_capture(capture)
        return capture

    def analyze_pending(self, priority: Priority = Priority.NORMAL) -> List[JobHandle]:
        """Run the manual "Analyze" batch; voice stays parked until it drains."""

        self.voice.set_analysis_suppressed(True)
        handles = self.orchestrator.analyze_pending(priority)
        if not handles and not self.orchestrator.is_analyzing:
            self.voice.set_analysis_suppressed(False)
        return handles

    def cancel(self, identifier: str) -> bool:
        return self.orchestrator.cancel(identifier)

    async def close(self) -> None:
        await self.voice.destroy()
        await self.orchestrator.shutdown()
        closer = getattr(self._backend, "aclose", None)
        if closer is not None:
            await closer()

    async def _on_final_text(self, text: str) -> None:
        self.last_utterance = text
        self.partial_text = ""
        await self.orchestrator.handle_utterance(text)

    def _on_partial_text(self, text: str) -> None:
        self.partial_text = text

    def _on_volume(self, level: float) -> None:
        self.volume = level

    def _on_voice_error(self, report: VoiceErrorReport) -> None:
        self.last_voice_error = report
        if report.exhausted:
            logger.warning("Voice recognition needs re-activation: %s", report.message)

    def _on_voice_state_change(self, old: VoiceState, new: VoiceState) -> None:
        if new is not VoiceState.LISTENING:
            self.volume = 0.0

    def _on_analysis_idle(self) -> None:
        self.voice.set_analysis_suppressed(False)


def build_default_session(
    app_settings: Settings = settings,
    *,
    speech_engine: Optional[SpeechEngine] = None,
    capture_source: Optional[CaptureSource] = None,
    backend: Optional[AnalysisBackend] = None,
) -> CaptureSession:
    """Session backed by the HTTP analysis server.

    Voice reports unavailable until the host supplies a speech engine.
    """

    backend = backend or HttpAnalysisClient(app_settings.analysis)
    orchestrator = CaptureOrchestrator(
        backend,
        capture_source=capture_source,
        immediate_analysis=app_settings.analysis.immediate,
        batch_size=app_settings.analysis.batch_size,
        batch_delay=app_settings.analysis.batch_delay,
    )
    voice = VoiceRecognitionController(
        speech_engine or UnavailableSpeechEngine(),
        app_settings.voice,
    )
    return CaptureSession(orchestrator, voice, backend=backend)


__all__ = ["CaptureSession", "build_default_session"]
