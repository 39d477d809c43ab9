"""Shared fakes and fixtures for the capture-and-analysis tests."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, List, Mapping, Optional, Sequence

import pytest

from snapsight.application.interfaces import (
    AnalysisBackend,
    CaptureSource,
    SpeechEngine,
    SpeechListener,
)
from snapsight.config.settings import VoiceConfig
from snapsight.domain.errors import AnalysisFailure, SpeechEngineError
from snapsight.domain.models import AnalysisResult, Capture, RawPhoto


class FakeSpeechEngine(SpeechEngine):
    """Speech engine driven by the test through the ``emit_*`` helpers."""

    def __init__(self, available: bool = True) -> None:
        self.available = available
        self.listener: Optional[SpeechListener] = None
        self.start_calls: List[tuple[str, Mapping[str, Any]]] = []
        self.stop_calls = 0
        self.destroyed = False
        self.start_errors: List[Exception] = []
        self.running = False

    async def is_available(self) -> bool:
        return self.available

    def setup(self, listener: SpeechListener) -> None:
        self.listener = listener

    async def start(self, language: str, options: Mapping[str, Any]) -> None:
        self.start_calls.append((language, dict(options)))
        if self.start_errors:
            raise self.start_errors.pop(0)
        self.running = True

    async def stop(self) -> None:
        self.stop_calls += 1
        self.running = False

    def destroy(self) -> None:
        self.destroyed = True

    def emit_speech_start(self) -> None:
        self.listener.on_speech_start()

    def emit_partial(self, text: str) -> None:
        self.listener.on_speech_partial_results([text])

    def emit_final(self, text: str) -> None:
        self.listener.on_speech_results([text, "alternative"])

    def emit_volume(self, value: float) -> None:
        self.listener.on_speech_volume_changed(value)

    def emit_error(self, code: Any = 7, message: str = "No match") -> None:
        self.listener.on_speech_error(SpeechEngineError(code, message))


class FakeBackend(AnalysisBackend):
    """Analysis backend with switches for item errors, crashes and blocking."""

    def __init__(self) -> None:
        self.calls: List[List[str]] = []
        self.error_payload_uris: set[str] = set()
        self.raise_for_uris: set[str] = set()
        self.omit_uris: set[str] = set()
        self.gate: Optional[asyncio.Event] = None

    async def analyze(self, captures: Sequence[Capture]) -> List[AnalysisResult]:
        uris = [capture.uri for capture in captures]
        self.calls.append(uris)
        if self.gate is not None:
            await self.gate.wait()
        if any(uri in self.raise_for_uris for uri in uris):
            raise AnalysisFailure("backend exploded")
        results = []
        for uri in uris:
            if uri in self.omit_uris:
                continue
            if uri in self.error_payload_uris:
                results.append(AnalysisResult(uri=uri, error="rejected by model"))
            else:
                results.append(AnalysisResult(uri=uri, title=f"Title for {uri}"))
        return results


class FakeCaptureSource(CaptureSource):
    def __init__(self) -> None:
        self.counter = 0
        self.fail = False
        self.raise_error = False

    async def capture_photo(self) -> Optional[RawPhoto]:
        if self.raise_error:
            raise RuntimeError("camera busy")
        if self.fail:
            return None
        self.counter += 1
        return RawPhoto(uri=f"file:///photos/{self.counter}.jpg", width=640, height=480)


async def _wait_for(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


def make_capture(uri: str, **fields: Any) -> Capture:
    return Capture(uri=uri, timestamp=1_700_000_000_000, **fields)


@pytest.fixture
def wait_for():
    return _wait_for


@pytest.fixture
def capture_factory():
    return make_capture


@pytest.fixture
def speech_engine() -> FakeSpeechEngine:
    return FakeSpeechEngine()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def capture_source() -> FakeCaptureSource:
    return FakeCaptureSource()


@pytest.fixture
def voice_config() -> VoiceConfig:
    """Lifecycle timings shrunk to milliseconds; liveness effectively off."""

    return VoiceConfig(
        silence_duration=0.05,
        cooldown_period=0.05,
        backoff_base=0.01,
        backoff_factor=1.5,
        backoff_max_delay=0.05,
        max_consecutive_errors=5,
        liveness_check_interval=60.0,
        liveness_idle_threshold=60.0,
        liveness_restart_delay=0.01,
    )
