"""Domain models and errors shared by the pipelines and services."""

from .errors import (
    AnalysisFailure,
    CaptureFailure,
    InvalidVoiceTransition,
    SnapSightError,
    SpeechEngineError,
    SpeechUnavailableError,
)
from .models import AnalysisResult, Capture, RawPhoto

__all__ = [
    "AnalysisFailure",
    "AnalysisResult",
    "Capture",
    "CaptureFailure",
    "InvalidVoiceTransition",
    "RawPhoto",
    "SnapSightError",
    "SpeechEngineError",
    "SpeechUnavailableError",
]
