"""States, reports and callbacks of the voice recognition lifecycle."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Mapping, Optional, Union


class VoiceState(str, Enum):
    INACTIVE = "inactive"
    LISTENING = "listening"
    PROCESSING = "processing"
    COOLDOWN = "cooldown"
    ERROR_BACKOFF = "error_backoff"


ALLOWED_TRANSITIONS: Mapping[VoiceState, frozenset[VoiceState]] = {
    VoiceState.INACTIVE: frozenset({VoiceState.LISTENING}),
    VoiceState.LISTENING: frozenset(
        {VoiceState.PROCESSING, VoiceState.ERROR_BACKOFF, VoiceState.INACTIVE}
    ),
    VoiceState.PROCESSING: frozenset(
        {VoiceState.COOLDOWN, VoiceState.ERROR_BACKOFF, VoiceState.INACTIVE}
    ),
    VoiceState.COOLDOWN: frozenset(
        {VoiceState.LISTENING, VoiceState.ERROR_BACKOFF, VoiceState.INACTIVE}
    ),
    VoiceState.ERROR_BACKOFF: frozenset({VoiceState.LISTENING, VoiceState.INACTIVE}),
}


@dataclass(frozen=True)
class VoiceErrorReport:
    """Structured error handed to the host.

    ``exhausted`` means auto-restart has stopped and the host must call
    ``activate()`` again.
    """

    code: Union[int, str, None]
    message: str
    consecutive_errors: int
    exhausted: bool = False


FinalTextHandler = Callable[[str], Union[Awaitable[None], None]]


@dataclass
class VoiceCallbacks:
    on_final_text: Optional[FinalTextHandler] = None
    on_partial_text: Optional[Callable[[str], None]] = None
    on_volume: Optional[Callable[[float], None]] = None
    on_error: Optional[Callable[[VoiceErrorReport], None]] = None
    on_state_change: Optional[Callable[[VoiceState, VoiceState], None]] = None


__all__ = [
    "ALLOWED_TRANSITIONS",
    "FinalTextHandler",
    "VoiceCallbacks",
    "VoiceErrorReport",
    "VoiceState",
]
