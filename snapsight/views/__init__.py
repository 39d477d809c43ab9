"""Pydantic schemas used as views in the MVC architecture."""

from .common import ErrorResponse
from .session import (
    AnalyzeRequest,
    AnalyzeResponse,
    CaptureCreateRequest,
    CaptureListResponse,
    CountersResponse,
    JobHandleResponse,
    SessionStatusResponse,
    VoiceErrorResponse,
    VoiceStatusResponse,
)

__all__ = [
    "AnalyzeRequest",
    "AnalyzeResponse",
    "CaptureCreateRequest",
    "CaptureListResponse",
    "CountersResponse",
    "ErrorResponse",
    "JobHandleResponse",
    "SessionStatusResponse",
    "VoiceErrorResponse",
    "VoiceStatusResponse",
]
