"""Request metrics middleware."""

from __future__ import annotations

import time
from typing import Iterable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from snapsight.telemetry import observe_request

UNMATCHED_ROUTE = "<unmatched>"


def route_label(request: Request, status_code: int) -> str:
    """Route template for metrics labels (``/session/jobs/{identifier}``).

    Requests that matched no route share a single label.
    """

    path = getattr(request.scope.get("route"), "path", None)
    if path:
        return path
    if status_code == 404:
        return UNMATCHED_ROUTE
    return request.url.path


class TelemetryMiddleware(BaseHTTPMiddleware):
    """Count and time session API requests; Prometheus scrapes are not recorded."""

    def __init__(self, app: ASGIApp, exclude_paths: Iterable[str] = ("/metrics",)) -> None:
        super().__init__(app)
        self._exclude_paths = frozenset(exclude_paths)

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        if request.url.path in self._exclude_paths:
            return await call_next(request)

        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            observe_request(
                request.method,
                route_label(request, status_code),
                status_code,
                time.perf_counter() - started,
            )
