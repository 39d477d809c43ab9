"""Contracts for the collaborators the core consumes but does not implement."""

from .interfaces import (
    AnalysisBackend,
    CaptureSource,
    SpeechEngine,
    SpeechListener,
    UnavailableSpeechEngine,
)

__all__ = [
    "AnalysisBackend",
    "CaptureSource",
    "SpeechEngine",
    "SpeechListener",
    "UnavailableSpeechEngine",
]
