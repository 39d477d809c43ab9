"""HTTP client for the batch image analysis server."""

from __future__ import annotations

import base64
import logging
from pathlib import Path
from typing import List, Optional, Sequence
from urllib.parse import unquote, urlparse

import httpx
from fastapi.concurrency import run_in_threadpool

from snapsight.application.interfaces import AnalysisBackend
from snapsight.config.settings import AnalysisConfig, settings
from snapsight.domain.errors import AnalysisFailure
from snapsight.domain.models import AnalysisResult, Capture

from .response_contract import BatchAnalysisResponse, failed_result, to_analysis_result

logger = logging.getLogger(__name__)

ANALYZE_BATCH_PATH = "/api/perplexity/analyze-batch"


def _content_type(uri: str) -> str:
    return "image/png" if uri.lower().endswith(".png") else "image/jpeg"


def _local_path(uri: str) -> Path:
    parsed = urlparse(uri)
    if parsed.scheme == "file":
        return Path(unquote(parsed.path))
    return Path(uri)


async def encode_image(uri: str) -> str:
    """Return ``uri`` as a base64 data URI; data URIs pass through unchanged."""

    if uri.startswith("data:"):
        return uri

    path = _local_path(uri)
    try:
        raw = await run_in_threadpool(path.read_bytes)
    except OSError as exc:
        raise AnalysisFailure(f"Could not read image {uri}: {exc}") from exc
    encoded = base64.b64encode(raw).decode("ascii")
    return f"data:{_content_type(uri)};base64,{encoded}"


class HttpAnalysisClient(AnalysisBackend):
    """Send one batch of captures per request to the analysis server.

    The server answers with one entry per image in request order. Entries
    flagged ``error`` become failure payloads for that capture only; transport
    errors and malformed bodies fail the whole batch with ``AnalysisFailure``.
    """

    def __init__(
        self,
        config: Optional[AnalysisConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._config = config or settings.analysis
        headers = {"Accept": "application/json"}
        if self._config.api_key:
            headers["Authorization"] = f"Bearer {self._config.api_key}"
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self._config.server_url,
            timeout=self._config.request_timeout,
            headers=headers,
        )

    async def analyze(self, captures: Sequence[Capture]) -> List[AnalysisResult]:
        if not captures:
            return []

        images = [await encode_image(capture.uri) for capture in captures]
        prompts = [capture.custom_prompt or "" for capture in captures]

        logger.info("Posting %d image(s) to %s", len(images), ANALYZE_BATCH_PATH)
        try:
            response = await self._client.post(
                ANALYZE_BATCH_PATH,
                json={"base64Images": images, "userPrompts": prompts},
            )
        except httpx.HTTPError as exc:
            raise AnalysisFailure(f"Analysis server unreachable: {exc}") from exc

        if response.is_error:
            raise AnalysisFailure(self._error_message(response))

        try:
            payload = response.json()
        except ValueError as exc:
            raise AnalysisFailure("Analysis server returned a non-JSON body") from exc

        batch = BatchAnalysisResponse.from_payload(payload)
        results: List[AnalysisResult] = []
        for index, capture in enumerate(captures):
            if index < len(batch.results):
                results.append(to_analysis_result(capture.uri, batch.results[index]))
            else:
                results.append(failed_result(capture.uri, "No result returned for image"))
        return results

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if isinstance(body, dict) and body.get("message"):
            return str(body["message"])
        return f"Server error: {response.status_code}"


__all__ = ["ANALYZE_BATCH_PATH", "HttpAnalysisClient", "encode_image"]
