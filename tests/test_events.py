"""Analysis event bus registration and dispatch."""

from __future__ import annotations

from snapsight.pipelines.analysis import AnalysisEventBus, AnalysisEventHandlers


def test_register_replaces_the_whole_handler_set(capture_factory):
    bus = AnalysisEventBus()
    first: list[str] = []
    second: list[str] = []

    bus.register_handlers(
        on_analysis_start=lambda count: first.append(f"start:{count}"),
        on_error=lambda error, item: first.append("error"),
    )
    bus.register_handlers(on_analysis_start=lambda count: second.append(f"start:{count}"))

    bus.emit_start(3)
    bus.emit_error(RuntimeError("x"), capture_factory("file:///a.jpg"))

    assert first == []
    assert second == ["start:3"]
    assert bus.handlers.on_error is None


def test_unregister_is_safe_to_repeat():
    bus = AnalysisEventBus()
    bus.register(AnalysisEventHandlers(on_analysis_start=lambda count: None))

    bus.unregister()
    bus.unregister()
    bus.register(None)

    bus.emit_start(1)
    bus.emit_complete([], [])
    assert bus.handlers == AnalysisEventHandlers()


def test_observer_exceptions_do_not_escape(capture_factory):
    bus = AnalysisEventBus()
    received: list[str] = []

    def explode(item):
        raise RuntimeError("observer bug")

    bus.register_handlers(
        on_image_analyzed=explode,
        on_analysis_complete=lambda results, failed: received.append(f"{len(results)}/{len(failed)}"),
    )

    bus.emit_image_analyzed(capture_factory("file:///a.jpg"))
    bus.emit_complete([capture_factory("file:///a.jpg")], [])

    assert received == ["1/0"]
