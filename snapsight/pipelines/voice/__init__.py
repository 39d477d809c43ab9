"""Voice recognition pipeline package.

1. `types` – lifecycle states, allowed transitions, callbacks and reports.
2. `backoff` – restart delay after consecutive engine errors.
3. `watchdog` – restart an engine that went quiet without an error.
4. `controller` – the state machine that ties the above to a speech engine.
"""

from .backoff import next_delay
from .controller import VoiceRecognitionController
from .types import (
    ALLOWED_TRANSITIONS,
    FinalTextHandler,
    VoiceCallbacks,
    VoiceErrorReport,
    VoiceState,
)
from .watchdog import LivenessWatchdog

__all__ = [
    "ALLOWED_TRANSITIONS",
    "FinalTextHandler",
    "LivenessWatchdog",
    "VoiceCallbacks",
    "VoiceErrorReport",
    "VoiceRecognitionController",
    "VoiceState",
    "next_delay",
]
