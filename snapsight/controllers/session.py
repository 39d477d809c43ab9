"""Capture session controller: captures, manual analysis, cancellation and voice."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from snapsight.controllers.dependencies import CaptureSessionDep
from snapsight.domain.errors import SpeechUnavailableError
from snapsight.domain.models import Capture
from snapsight.services.session import CaptureSession
from snapsight.views import (
    AnalyzeRequest,
    AnalyzeResponse,
    CaptureCreateRequest,
    CaptureListResponse,
    CountersResponse,
    ErrorResponse,
    JobHandleResponse,
    SessionStatusResponse,
    VoiceErrorResponse,
    VoiceStatusResponse,
)

router = APIRouter(prefix="/session", tags=["session"])


def _voice_status(session: CaptureSession) -> VoiceStatusResponse:
    voice = session.voice
    report = session.last_voice_error
    last_error = None
    if report is not None:
        last_error = VoiceErrorResponse(
            code=None if report.code is None else str(report.code),
            message=report.message,
            consecutive_errors=report.consecutive_errors,
            exhausted=report.exhausted,
        )
    return VoiceStatusResponse(
        state=voice.state,
        active=voice.is_active,
        suppressed=voice.is_suppressed,
        exhausted=voice.exhausted,
        consecutive_errors=voice.consecutive_errors,
        partial_text=session.partial_text,
        volume=session.volume,
        last_error=last_error,
    )


@router.get("/status", response_model=SessionStatusResponse)
async def get_status(session: CaptureSessionDep) -> SessionStatusResponse:
    orchestrator = session.orchestrator
    counters = orchestrator.counters()
    return SessionStatusResponse(
        counters=CountersResponse(
            total=counters.total,
            analyzed=counters.analyzed,
            unanalyzed=counters.unanalyzed,
            in_progress=counters.in_progress,
            pending=counters.pending,
        ),
        is_analyzing=orchestrator.is_analyzing,
        queued_jobs=len(orchestrator.queue),
        voice=_voice_status(session),
    )


@router.get("/captures", response_model=CaptureListResponse)
async def list_captures(session: CaptureSessionDep) -> CaptureListResponse:
    return CaptureListResponse(captures=list(session.captures))


@router.post("/captures", response_model=Capture, status_code=status.HTTP_201_CREATED)
async def add_capture(payload: CaptureCreateRequest, session: CaptureSessionDep) -> Capture:
    uri = payload.uri.strip()
    if not uri:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Capture uri cannot be empty",
        )
    if session.orchestrator.get_capture(uri) is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Capture with this uri already exists",
        )
    return session.add_capture(uri, payload.prompt, payload.timestamp)


@router.post("/analyze", response_model=AnalyzeResponse, status_code=status.HTTP_202_ACCEPTED)
async def analyze_pending(
    session: CaptureSessionDep,
    payload: AnalyzeRequest | None = None,
) -> AnalyzeResponse:
    request = payload or AnalyzeRequest()
    handles = session.analyze_pending(request.priority)
    jobs = [JobHandleResponse(job_id=handle.job_id, priority=handle.priority) for handle in handles]
    return AnalyzeResponse(jobs=jobs, submitted=sum(handle.size for handle in handles))


@router.delete(
    "/jobs/{identifier}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}},
)
async def cancel_job(identifier: str, session: CaptureSessionDep) -> None:
    if not session.cancel(identifier):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No queued or running job matches this identifier",
        )


@router.post(
    "/voice/activate",
    response_model=VoiceStatusResponse,
    responses={503: {"model": ErrorResponse}},
)
async def activate_voice(session: CaptureSessionDep) -> VoiceStatusResponse:
    try:
        await session.activate_voice()
    except SpeechUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    return _voice_status(session)


@router.post("/voice/deactivate", response_model=VoiceStatusResponse)
async def deactivate_voice(session: CaptureSessionDep) -> VoiceStatusResponse:
    await session.deactivate_voice()
    return _voice_status(session)
