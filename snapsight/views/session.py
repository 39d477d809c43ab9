"""Request and response schemas for the capture session endpoints."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from snapsight.domain.models import Capture
from snapsight.pipelines.analysis import Priority
from snapsight.pipelines.voice import VoiceState


class CaptureCreateRequest(BaseModel):
    uri: str = Field(min_length=1, description="Content reference of the captured photo")
    prompt: Optional[str] = Field(default=None, max_length=500)
    timestamp: Optional[int] = Field(default=None, ge=0, description="Epoch milliseconds")


class AnalyzeRequest(BaseModel):
    priority: Priority = Priority.NORMAL


class JobHandleResponse(BaseModel):
    job_id: str
    priority: Priority


class AnalyzeResponse(BaseModel):
    jobs: List[JobHandleResponse]
    submitted: int


class CountersResponse(BaseModel):
    total: int
    analyzed: int
    unanalyzed: int
    in_progress: int
    pending: int


class VoiceErrorResponse(BaseModel):
    code: Optional[str] = None
    message: str
    consecutive_errors: int
    exhausted: bool


class VoiceStatusResponse(BaseModel):
    state: VoiceState
    active: bool
    suppressed: bool
    exhausted: bool
    consecutive_errors: int
    partial_text: str = ""
    volume: float = 0.0
    last_error: Optional[VoiceErrorResponse] = None


class SessionStatusResponse(BaseModel):
    counters: CountersResponse
    is_analyzing: bool
    queued_jobs: int
    voice: VoiceStatusResponse


class CaptureListResponse(BaseModel):
    captures: List[Capture]
