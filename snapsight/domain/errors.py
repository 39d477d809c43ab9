"""Error taxonomy for the capture-and-analysis core."""

from __future__ import annotations


class SnapSightError(RuntimeError):
    """Base class for errors raised by the capture-and-analysis core."""


class CaptureFailure(SnapSightError):
    """Raised when the capture source returns nothing or fails to take a photo."""


class AnalysisFailure(SnapSightError):
    """Raised when the analysis backend call fails or returns an error payload."""


class SpeechEngineError(SnapSightError):
    """Error event reported by the speech engine, classified by code."""

    def __init__(self, code: int | str | None, message: str = "") -> None:
        super().__init__(f"Error {code}: {message or 'Unknown error'}")
        self.code = code
        self.message = message or "Unknown error"

    @property
    def is_no_match(self) -> bool:
        """True for the routine "no recognition match" code emitted after silence."""

        return self.code == 7

    @property
    def is_benign_start_failure(self) -> bool:
        """True when a start attempt failed only because the engine was already running."""

        text = self.message.lower()
        return "already started" in text or "busy" in text


class SpeechUnavailableError(SnapSightError):
    """Raised when no speech engine is available or microphone access is missing."""


class InvalidVoiceTransition(SnapSightError):
    """Raised when the voice controller is asked to leave the lifecycle graph."""


__all__ = [
    "AnalysisFailure",
    "CaptureFailure",
    "InvalidVoiceTransition",
    "SnapSightError",
    "SpeechEngineError",
    "SpeechUnavailableError",
]
