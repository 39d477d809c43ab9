"""Lifecycle notifications from the analysis pipeline to one UI observer."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

from snapsight.domain.models import Capture

logger = logging.getLogger(__name__)

StartHandler = Callable[[int], None]
CompleteHandler = Callable[[Sequence[Capture], Sequence[Capture]], None]
ItemHandler = Callable[[Capture], None]
ErrorHandler = Callable[[BaseException, Optional[Capture]], None]


@dataclass(frozen=True)
class AnalysisEventHandlers:
    """Complete set of observer callbacks; any slot may be ``None``."""

    on_analysis_start: Optional[StartHandler] = None
    on_analysis_complete: Optional[CompleteHandler] = None
    on_image_analyzed: Optional[ItemHandler] = None
    on_error: Optional[ErrorHandler] = None


class AnalysisEventBus:
    """Typed callback slots owned by one orchestrator.

    Registering replaces the whole handler set in one assignment, so an
    emission never sees a mix of old and new handlers.
    """

    def __init__(self) -> None:
        self._handlers = AnalysisEventHandlers()

    @property
    def handlers(self) -> AnalysisEventHandlers:
        return self._handlers

    def register(self, handlers: Optional[AnalysisEventHandlers]) -> None:
        self._handlers = handlers or AnalysisEventHandlers()

    def register_handlers(self, **handlers: Any) -> None:
        """Keyword form of ``register``; omitted slots are cleared."""

        self.register(AnalysisEventHandlers(**handlers))

    def unregister(self) -> None:
        self._handlers = AnalysisEventHandlers()

    def emit_start(self, count: int) -> None:
        self._dispatch("on_analysis_start", self._handlers.on_analysis_start, count)

    def emit_complete(
        self,
        results: Sequence[Capture],
        failed: Sequence[Capture],
    ) -> None:
        self._dispatch(
            "on_analysis_complete",
            self._handlers.on_analysis_complete,
            list(results),
            list(failed),
        )

    def emit_image_analyzed(self, item: Capture) -> None:
        self._dispatch("on_image_analyzed", self._handlers.on_image_analyzed, item)

    def emit_error(self, error: BaseException, failed_item: Optional[Capture] = None) -> None:
        self._dispatch("on_error", self._handlers.on_error, error, failed_item)

    @staticmethod
    def _dispatch(name: str, handler: Optional[Callable[..., Any]], *args: Any) -> None:
        if handler is None:
            return
        try:
            handler(*args)
        except Exception:
            logger.exception("Analysis observer %s raised", name)


__all__ = ["AnalysisEventBus", "AnalysisEventHandlers"]
