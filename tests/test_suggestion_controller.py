"""Tests for SuggestionStateController domain manager."""

from __future__ import annotations

import asyncio
from typing import Any, Sequence

import pytest

from patternwand.ai.errors import SuggestionTransportError
from patternwand.services import telemetry
from patternwand.ui.domain.suggestion_controller import SOURCE_PICKER, SuggestionStateController
from patternwand.ui.events import (
    Event,
    EventBus,
    PatternContentLoaded,
    PatternPicked,
    PatternSelectionChanged,
    SuggestionFailed,
    SuggestionRequested,
    SuggestionsReady,
    SuggestionStreamChunk,
)
from patternwand.ui.models.suggestion_models import SuggestionStatus


# =============================================================================
# Fixtures
# =============================================================================


class MockSuggester:
    """Mock PatternSuggester for testing."""

    def __init__(
        self,
        result: list[str] | None = None,
        *,
        chunks: Sequence[str] = (),
        error: BaseException | None = None,
    ) -> None:
        self.result = ["summarize"] if result is None else result
        self.chunks = list(chunks)
        self.error = error
        self.calls: list[tuple[str, list[str]]] = []
        self.gates: dict[str, asyncio.Event] = {}
        self.results_by_input: dict[str, list[str]] = {}
        self.late_chunks: list[str] = []

    async def suggest(self, user_input: str, known_identifiers: Sequence[str], *, on_chunk: Any = None) -> list[str]:
        self.calls.append((user_input, list(known_identifiers)))
        for chunk in self.chunks:
            if on_chunk is not None:
                on_chunk(chunk)
        gate = self.gates.get(user_input)
        if gate is not None:
            await gate.wait()
        for chunk in self.late_chunks:
            if on_chunk is not None:
                on_chunk(chunk)
        if self.error is not None:
            raise self.error
        return list(self.results_by_input.get(user_input, self.result))


class RecordingLoader:
    def __init__(self, error: Exception | None = None) -> None:
        self.calls: list[str] = []
        self.error = error

    def __call__(self, name: str) -> str:
        self.calls.append(name)
        if self.error is not None:
            raise self.error
        return f"# {name}\n"


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def suggester() -> MockSuggester:
    return MockSuggester()


@pytest.fixture
def loader() -> RecordingLoader:
    return RecordingLoader()


@pytest.fixture
def catalog() -> list[str]:
    return ["review_code", "summarize"]


@pytest.fixture
def controller(
    suggester: MockSuggester, loader: RecordingLoader, catalog: list[str], event_bus: EventBus
) -> SuggestionStateController:
    return SuggestionStateController(suggester, lambda: catalog, loader, event_bus)


def _record(bus: EventBus, *event_types: type[Event]) -> list[Event]:
    received: list[Event] = []
    for event_type in event_types:
        bus.subscribe(event_type, received.append)
    return received


# =============================================================================
# Initialization Tests
# =============================================================================


class TestSuggestionStateControllerInit:
    """Tests for the initial state."""

    def test_initial_state(self, controller: SuggestionStateController) -> None:
        state = controller.state
        assert state.status is SuggestionStatus.IDLE
        assert state.busy is False
        assert state.current == []
        assert state.selected is None
        assert controller.is_busy() is False

    def test_state_is_a_snapshot(self, controller: SuggestionStateController) -> None:
        snapshot = controller.state
        snapshot.current.append("tampered")
        snapshot.busy = True
        assert controller.state.current == []
        assert controller.is_busy() is False


# =============================================================================
# Request Tests
# =============================================================================


class TestRequestSuggestions:
    """Tests for SuggestionStateController.request_suggestions()."""

    @pytest.mark.asyncio
    async def test_success_transitions_to_ready(
        self, controller: SuggestionStateController, event_bus: EventBus
    ) -> None:
        received = _record(event_bus, SuggestionRequested, SuggestionsReady)

        result = await controller.request_suggestions("summarize this")

        assert result == ["summarize"]
        state = controller.state
        assert state.status is SuggestionStatus.READY
        assert state.busy is False
        assert state.current == ["summarize"]
        assert state.generation == 1
        assert [type(event) for event in received] == [SuggestionRequested, SuggestionsReady]
        assert received[1].patterns == ("summarize",)

    @pytest.mark.asyncio
    async def test_busy_while_requesting(
        self, controller: SuggestionStateController, suggester: MockSuggester
    ) -> None:
        gate = suggester.gates["slow"] = asyncio.Event()
        task = asyncio.create_task(controller.request_suggestions("slow"))
        await asyncio.sleep(0)

        assert controller.is_busy() is True
        assert controller.state.status is SuggestionStatus.REQUESTING

        gate.set()
        await task
        assert controller.is_busy() is False

    @pytest.mark.asyncio
    async def test_reads_catalog_at_request_start(
        self, controller: SuggestionStateController, suggester: MockSuggester, catalog: list[str]
    ) -> None:
        await controller.request_suggestions("first")
        catalog.append("extract_wisdom")
        await controller.request_suggestions("second")

        assert suggester.calls[0][1] == ["review_code", "summarize"]
        assert suggester.calls[1][1] == ["review_code", "summarize", "extract_wisdom"]

    @pytest.mark.asyncio
    async def test_empty_result_is_still_ready(
        self, event_bus: EventBus, loader: RecordingLoader
    ) -> None:
        controller = SuggestionStateController(MockSuggester(result=[]), lambda: ["a"], loader, event_bus)
        received = _record(event_bus, SuggestionsReady)

        assert await controller.request_suggestions("nothing fits") == []
        assert controller.state.status is SuggestionStatus.READY
        assert received[0].patterns == ()

    @pytest.mark.asyncio
    async def test_blank_input_is_ignored(
        self, controller: SuggestionStateController, suggester: MockSuggester, event_bus: EventBus
    ) -> None:
        received = _record(event_bus, SuggestionRequested)

        assert await controller.request_suggestions("  \n") is None
        assert await controller.request_suggestions("") is None

        assert suggester.calls == []
        assert received == []
        assert controller.state.status is SuggestionStatus.IDLE

    @pytest.mark.asyncio
    async def test_chunks_are_published(self, event_bus: EventBus, loader: RecordingLoader) -> None:
        suggester = MockSuggester(chunks=['{"pat', 'terns"'])
        controller = SuggestionStateController(suggester, lambda: ["summarize"], loader, event_bus)
        received = _record(event_bus, SuggestionStreamChunk)

        await controller.request_suggestions("x")

        assert [event.content for event in received] == ['{"pat', 'terns"']
        assert all(event.generation == 1 for event in received)

    @pytest.mark.asyncio
    async def test_transport_failure_resets_busy(
        self, event_bus: EventBus, loader: RecordingLoader, telemetry_events: list[dict[str, Any]]
    ) -> None:
        error = SuggestionTransportError(message="Chat stream failed: reset", partial='{"pat')
        controller = SuggestionStateController(MockSuggester(error=error), lambda: ["a"], loader, event_bus)
        received = _record(event_bus, SuggestionFailed)

        result = await controller.request_suggestions("x")

        assert result == []
        state = controller.state
        assert state.status is SuggestionStatus.FAILED
        assert state.busy is False
        assert state.current == []
        assert state.error == "Chat stream failed: reset"
        assert received[0].error == "Chat stream failed: reset"
        assert telemetry_events[-1]["event"] == telemetry.SUGGESTION_TRANSPORT_FAILED
        assert telemetry_events[-1]["partial_length"] == 5

    @pytest.mark.asyncio
    async def test_unexpected_error_fails_without_raising(
        self, event_bus: EventBus, loader: RecordingLoader
    ) -> None:
        controller = SuggestionStateController(
            MockSuggester(error=RuntimeError("bug")), lambda: ["a"], loader, event_bus
        )

        assert await controller.request_suggestions("x") == []
        assert controller.state.status is SuggestionStatus.FAILED
        assert controller.state.error == "bug"

    @pytest.mark.asyncio
    async def test_request_after_failure_recovers(
        self, event_bus: EventBus, loader: RecordingLoader
    ) -> None:
        suggester = MockSuggester(error=RuntimeError("flaky"))
        controller = SuggestionStateController(suggester, lambda: ["summarize"], loader, event_bus)
        await controller.request_suggestions("x")

        suggester.error = None
        assert await controller.request_suggestions("x") == ["summarize"]
        assert controller.state.status is SuggestionStatus.READY
        assert controller.state.error is None

    @pytest.mark.asyncio
    async def test_cancellation_returns_to_idle_and_reraises(
        self, controller: SuggestionStateController, suggester: MockSuggester
    ) -> None:
        suggester.gates["slow"] = asyncio.Event()
        task = asyncio.create_task(controller.request_suggestions("slow"))
        await asyncio.sleep(0)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert controller.state.status is SuggestionStatus.IDLE
        assert controller.is_busy() is False


# =============================================================================
# Supersession Tests
# =============================================================================


class TestLastRequestWins:
    """Tests for generation-based supersession."""

    @pytest.mark.asyncio
    async def test_stale_result_is_dropped(
        self, controller: SuggestionStateController, suggester: MockSuggester, event_bus: EventBus
    ) -> None:
        received = _record(event_bus, SuggestionsReady)
        gate = suggester.gates["old"] = asyncio.Event()
        suggester.results_by_input = {"old": ["review_code"], "new": ["summarize"]}

        old_task = asyncio.create_task(controller.request_suggestions("old"))
        await asyncio.sleep(0)
        new_result = await controller.request_suggestions("new")
        gate.set()
        old_result = await old_task

        assert new_result == ["summarize"]
        assert old_result is None
        state = controller.state
        assert state.current == ["summarize"]
        assert state.generation == 2
        assert state.status is SuggestionStatus.READY
        assert [event.generation for event in received] == [2]

    @pytest.mark.asyncio
    async def test_stale_failure_is_dropped(self, event_bus: EventBus, loader: RecordingLoader) -> None:
        suggester = MockSuggester(result=["summarize"])
        controller = SuggestionStateController(suggester, lambda: ["summarize"], loader, event_bus)
        received = _record(event_bus, SuggestionFailed)
        gate = suggester.gates["old"] = asyncio.Event()

        old_task = asyncio.create_task(controller.request_suggestions("old"))
        await asyncio.sleep(0)
        await controller.request_suggestions("new")
        suggester.error = SuggestionTransportError(message="late failure")
        gate.set()

        assert await old_task is None
        assert controller.state.status is SuggestionStatus.READY
        assert received == []

    @pytest.mark.asyncio
    async def test_stale_chunks_are_not_published(self, event_bus: EventBus, loader: RecordingLoader) -> None:
        suggester = MockSuggester(chunks=["early"])
        suggester.late_chunks = ["late"]
        controller = SuggestionStateController(suggester, lambda: ["summarize"], loader, event_bus)
        received = _record(event_bus, SuggestionStreamChunk)
        gate = suggester.gates["old"] = asyncio.Event()

        old_task = asyncio.create_task(controller.request_suggestions("old"))
        await asyncio.sleep(0)
        await controller.request_suggestions("new")
        gate.set()
        await old_task

        assert [(event.generation, event.content) for event in received] == [
            (1, "early"),
            (2, "early"),
            (2, "late"),
        ]

    @pytest.mark.asyncio
    async def test_canceling_superseded_request_keeps_newer_result(
        self, controller: SuggestionStateController, suggester: MockSuggester
    ) -> None:
        suggester.gates["old"] = asyncio.Event()

        old_task = asyncio.create_task(controller.request_suggestions("old"))
        await asyncio.sleep(0)
        await controller.request_suggestions("new")
        old_task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await old_task

        assert controller.state.status is SuggestionStatus.READY
        assert controller.state.current == ["summarize"]


# =============================================================================
# Selection Tests
# =============================================================================


class TestSelection:
    """Tests for selection reconciliation."""

    def test_new_value_loads_exactly_once(
        self, controller: SuggestionStateController, loader: RecordingLoader, event_bus: EventBus
    ) -> None:
        received = _record(event_bus, PatternSelectionChanged, PatternContentLoaded)

        assert controller.select_pattern("summarize") is True

        assert loader.calls == ["summarize"]
        assert controller.selected == "summarize"
        assert [type(event) for event in received] == [PatternSelectionChanged, PatternContentLoaded]
        assert received[0].previous is None
        assert received[0].source == "selector"
        assert received[1].content == "# summarize\n"

    def test_same_value_has_no_side_effect(
        self, controller: SuggestionStateController, loader: RecordingLoader, event_bus: EventBus
    ) -> None:
        controller.select_pattern("summarize")
        received = _record(event_bus, PatternSelectionChanged, PatternContentLoaded)

        assert controller.select_pattern("summarize") is False

        assert loader.calls == ["summarize"]
        assert received == []

    def test_switching_loads_each_new_value_once(
        self, controller: SuggestionStateController, loader: RecordingLoader
    ) -> None:
        controller.select_pattern("summarize")
        controller.select_pattern("review_code")
        controller.select_pattern("review_code")
        controller.select_pattern("summarize")

        assert loader.calls == ["summarize", "review_code", "summarize"]

    def test_clearing_publishes_without_loading(
        self, controller: SuggestionStateController, loader: RecordingLoader, event_bus: EventBus
    ) -> None:
        controller.select_pattern("summarize")
        received = _record(event_bus, PatternSelectionChanged)

        assert controller.select_pattern("") is True
        assert controller.select_pattern(None) is False

        assert controller.selected is None
        assert loader.calls == ["summarize"]
        assert len(received) == 1
        assert received[0].name is None
        assert received[0].previous == "summarize"

    def test_loader_failure_is_logged_not_raised(self, event_bus: EventBus) -> None:
        loader = RecordingLoader(error=LookupError("missing"))
        controller = SuggestionStateController(MockSuggester(), lambda: [], loader, event_bus)
        received = _record(event_bus, PatternContentLoaded)

        assert controller.select_pattern("ghost") is True
        assert controller.selected == "ghost"
        assert loader.calls == ["ghost"]
        assert received == []

    def test_external_picker_routes_through_selection(
        self, controller: SuggestionStateController, loader: RecordingLoader, event_bus: EventBus
    ) -> None:
        received = _record(event_bus, PatternSelectionChanged)
        controller.bind_external_selection(event_bus)

        event_bus.publish(PatternPicked(name="review_code"))
        event_bus.publish(PatternPicked(name="review_code"))

        assert loader.calls == ["review_code"]
        assert [event.source for event in received] == ["picker"]

    def test_selector_echo_does_not_reload(
        self, controller: SuggestionStateController, loader: RecordingLoader, event_bus: EventBus
    ) -> None:
        controller.bind_external_selection(event_bus)

        def selector_echo(event: PatternSelectionChanged) -> None:
            controller.select_pattern(event.name)

        event_bus.subscribe(PatternSelectionChanged, selector_echo)
        event_bus.publish(PatternPicked(name="summarize"))

        assert loader.calls == ["summarize"]
        assert controller.selected == "summarize"

    def test_subscriber_redirect_loads_only_final_value(
        self, controller: SuggestionStateController, loader: RecordingLoader, event_bus: EventBus
    ) -> None:
        loaded = _record(event_bus, PatternContentLoaded)

        def redirect(event: PatternSelectionChanged) -> None:
            if event.name == "summarize":
                controller.select_pattern("review_code", source=SOURCE_PICKER)

        event_bus.subscribe(PatternSelectionChanged, redirect)

        assert controller.select_pattern("summarize") is True

        assert controller.selected == "review_code"
        assert loader.calls == ["review_code"]
        assert [event.name for event in loaded] == ["review_code"]

    def test_unbind_stops_external_selection(
        self, controller: SuggestionStateController, loader: RecordingLoader, event_bus: EventBus
    ) -> None:
        controller.bind_external_selection(event_bus)
        controller.unbind_external_selection(event_bus)

        event_bus.publish(PatternPicked(name="summarize"))

        assert loader.calls == []

    @pytest.mark.asyncio
    async def test_selection_survives_new_requests(
        self, controller: SuggestionStateController
    ) -> None:
        controller.select_pattern("review_code")
        await controller.request_suggestions("summarize")
        assert controller.selected == "review_code"
