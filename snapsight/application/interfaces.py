from abc import ABC, abstractmethod
from typing import Any, List, Mapping, Optional, Protocol, Sequence

from snapsight.domain.errors import SpeechEngineError
from snapsight.domain.models import AnalysisResult, Capture, RawPhoto


class SpeechListener(Protocol):
    """Event slots a speech engine reports to"""

    def on_speech_start(self) -> None:
        ...

    def on_speech_end(self) -> None:
        ...

    def on_speech_results(self, values: Sequence[str]) -> None:
        ...

    def on_speech_partial_results(self, values: Sequence[str]) -> None:
        ...

    def on_speech_volume_changed(self, value: float) -> None:
        ...

    def on_speech_error(self, error: SpeechEngineError) -> None:
        ...


class SpeechEngine(ABC):
    """Platform speech recognizer that handles one utterance per start()"""

    @abstractmethod
    async def is_available(self) -> bool:
        ...

    @abstractmethod
    def setup(self, listener: SpeechListener) -> None:
        ...

    @abstractmethod
    async def start(self, language: str, options: Mapping[str, Any]) -> None:
        ...

    @abstractmethod
    async def stop(self) -> None:
        ...

    @abstractmethod
    def destroy(self) -> None:
        ...


class AnalysisBackend(ABC):
    """Vision analysis contract: one result per capture, in input order"""

    @abstractmethod
    async def analyze(self, captures: Sequence[Capture]) -> List[AnalysisResult]:
        ...


class CaptureSource(ABC):
    """Camera contract; ``None`` signals a non-fatal capture failure"""

    @abstractmethod
    async def capture_photo(self) -> Optional[RawPhoto]:
        ...


class UnavailableSpeechEngine(SpeechEngine):
    """Engine slot used until the host provides a real recognizer."""

    async def is_available(self) -> bool:
        return False

    def setup(self, listener: SpeechListener) -> None:
        return None

    async def start(self, language: str, options: Mapping[str, Any]) -> None:
        raise SpeechEngineError("unavailable", "No speech engine configured")

    async def stop(self) -> None:
        return None

    def destroy(self) -> None:
        return None
