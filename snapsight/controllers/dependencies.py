"""Common FastAPI dependencies reused across controllers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from snapsight.services.session import CaptureSession


def get_capture_session(request: Request) -> CaptureSession:
    """Return the capture session attached to the running application."""

    session = getattr(request.app.state, "session", None)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Capture session is not initialised",
        )
    return session


CaptureSessionDep = Annotated[CaptureSession, Depends(get_capture_session)]


__all__ = ["CaptureSessionDep", "get_capture_session"]
