"""Colored one-line request logging."""

from __future__ import annotations

import logging
import time
from typing import Any

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

logger = logging.getLogger("snapsight.middleware.requests")

COLOR_RESET = "\u001b[0m"
COLOR_GREEN = "\u001b[32m"
COLOR_CYAN = "\u001b[36m"
COLOR_YELLOW = "\u001b[33m"
COLOR_RED = "\u001b[31m"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path, status and duration for each HTTP request."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        started = time.perf_counter()
        entry: dict[str, Any] = {
            "method": request.method,
            "path": request.url.path,
            "client_ip": request.client.host if request.client else None,
        }

        try:
            response = await call_next(request)
        except Exception:
            entry["status_code"] = 500
            entry["duration_ms"] = self._elapsed_ms(started)
            logger.exception(self._format(entry))
            raise

        entry["status_code"] = response.status_code
        entry["duration_ms"] = self._elapsed_ms(started)
        logger.info(self._format(entry))
        return response

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return round((time.perf_counter() - started) * 1000, 2)

    @staticmethod
    def _format(entry: dict[str, Any]) -> str:
        status = entry.get("status_code") or 0
        if 200 <= status < 300:
            color = COLOR_GREEN
        elif 400 <= status < 500:
            color = COLOR_YELLOW
        elif status >= 500:
            color = COLOR_RED
        else:
            color = COLOR_CYAN

        message = ", ".join(
            f"{name}={value if value is not None else '-'}" for name, value in entry.items()
        )
        return f"{color}{message}{COLOR_RESET}"
