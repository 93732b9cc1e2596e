"""Suggestion state controller domain service.

Coordinates suggestion requests and the selected pattern. This is the
single owner of :class:`SuggestionSessionState`; every change goes through
its methods and is announced on the event bus.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Protocol, Sequence

from ...ai.errors import SuggestionTransportError
from ...ai.streaming import ChunkObserver
from ...services import telemetry
from ..events import (
    EventBus,
    PatternContentLoaded,
    PatternPicked,
    PatternSelectionChanged,
    SuggestionFailed,
    SuggestionRequested,
    SuggestionsReady,
    SuggestionStreamChunk,
)
from ..models.suggestion_models import SuggestionSessionState

LOGGER = logging.getLogger(__name__)

SOURCE_SELECTOR = "selector"
SOURCE_PICKER = "picker"


class Suggester(Protocol):
    """What the controller needs from the suggestion pipeline."""

    async def suggest(
        self,
        user_input: str,
        known_identifiers: Sequence[str],
        *,
        on_chunk: ChunkObserver | None = None,
    ) -> list[str]:
        ...


class SuggestionStateController:
    """Domain controller for pattern suggestions and pattern selection.

    Requests follow "last request wins": every request captures a
    generation number when it starts, and its outcome is applied only if
    no newer request has started since.

    Selection is a single owned cell with compare-before-assign, so the
    selector control and external pickers can both write to it without
    feedback loops.

    Events Emitted:
        - SuggestionRequested: When a request starts
        - SuggestionStreamChunk: For each fragment of the current request
        - SuggestionsReady: When the current request validated
        - SuggestionFailed: When the current request failed
        - PatternSelectionChanged: When the selection actually changes
        - PatternContentLoaded: After a newly selected pattern was loaded
    """

    def __init__(
        self,
        suggester: Suggester,
        catalog_provider: Callable[[], Sequence[str]],
        content_loader: Callable[[str], Any],
        event_bus: EventBus,
    ) -> None:
        """Initialize the controller.

        Args:
            suggester: Runs one suggestion cycle (prompt, stream, validation).
            catalog_provider: Returns the known pattern names, read at request start.
            content_loader: Loads a pattern's content; called once per new selection.
            event_bus: The event bus for publishing events.
        """
        self._suggester = suggester
        self._catalog_provider = catalog_provider
        self._content_loader = content_loader
        self._bus = event_bus
        self._state = SuggestionSessionState()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> SuggestionSessionState:
        """Return a snapshot of the session state."""
        return self._state.snapshot()

    @property
    def selected(self) -> str | None:
        return self._state.selected

    def is_busy(self) -> bool:
        return self._state.busy

    # ------------------------------------------------------------------
    # Suggestion Lifecycle
    # ------------------------------------------------------------------

    async def request_suggestions(self, user_input: str) -> list[str] | None:
        """Request suggestions for *user_input*, superseding any in-flight request.

        Returns:
            The validated suggestions (possibly empty) when this request is
            still the latest one on completion, an empty list when it failed,
            and ``None`` when the input was blank or the outcome was superseded.

        Raises:
            asyncio.CancelledError: The awaiting task was canceled.
        """
        if not user_input or not user_input.strip():
            LOGGER.debug("SuggestionStateController.request_suggestions: empty input ignored")
            return None

        generation = self._state.generation + 1
        self._state.mark_requesting(generation)
        LOGGER.debug(
            "SuggestionStateController.request_suggestions: generation=%d, input_length=%d",
            generation,
            len(user_input),
        )
        self._bus.publish(SuggestionRequested(generation=generation, user_input=user_input))

        try:
            known = list(self._catalog_provider())
            suggestions = await self._suggester.suggest(
                user_input,
                known,
                on_chunk=lambda chunk: self._handle_chunk(generation, chunk),
            )
        except asyncio.CancelledError:
            if self._is_current(generation):
                self._state.mark_idle()
                LOGGER.debug("SuggestionStateController: generation=%d canceled", generation)
            raise
        except SuggestionTransportError as exc:
            telemetry.emit(telemetry.SUGGESTION_TRANSPORT_FAILED, exc.to_dict())
            return self._fail(generation, exc.message)
        except Exception as exc:
            LOGGER.debug("Suggestion pipeline raised", exc_info=True)
            return self._fail(generation, str(exc) or type(exc).__name__)

        if not self._is_current(generation):
            LOGGER.debug(
                "SuggestionStateController: dropping stale result, generation=%d, latest=%d",
                generation,
                self._state.generation,
            )
            return None

        self._state.mark_ready(suggestions)
        LOGGER.debug(
            "SuggestionStateController: generation=%d ready with %d suggestion(s)",
            generation,
            len(suggestions),
        )
        self._bus.publish(SuggestionsReady(generation=generation, patterns=tuple(suggestions)))
        return list(suggestions)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select_pattern(self, name: str | None, *, source: str = SOURCE_SELECTOR) -> bool:
        """Set the selected pattern.

        Setting the current value again is a no-op. A new pattern name is
        loaded exactly once; clearing the selection loads nothing.

        Returns:
            ``True`` when the selection changed.
        """
        normalized = name or None
        previous = self._state.selected
        if normalized == previous:
            LOGGER.debug("SuggestionStateController.select_pattern: %r unchanged (source=%s)", normalized, source)
            return False

        self._state.selected = normalized
        LOGGER.debug(
            "SuggestionStateController.select_pattern: %r -> %r (source=%s)",
            previous,
            normalized,
            source,
        )
        self._bus.publish(PatternSelectionChanged(name=normalized, previous=previous, source=source))
        if normalized is None:
            return True
        if self._state.selected != normalized:
            # A subscriber moved the selection on and has loaded its own value.
            LOGGER.debug(
                "SuggestionStateController.select_pattern: %r superseded by %r before load",
                normalized,
                self._state.selected,
            )
            return True
        self._load_pattern(normalized)
        return True

    def bind_external_selection(self, event_bus: EventBus | None = None) -> None:
        """Route :class:`PatternPicked` events from *event_bus* into :meth:`select_pattern`."""
        bus = event_bus or self._bus
        bus.subscribe(PatternPicked, self._on_pattern_picked)

    def unbind_external_selection(self, event_bus: EventBus | None = None) -> None:
        bus = event_bus or self._bus
        bus.unsubscribe(PatternPicked, self._on_pattern_picked)

    # ------------------------------------------------------------------
    # Internal Helpers
    # ------------------------------------------------------------------

    def _is_current(self, generation: int) -> bool:
        return generation == self._state.generation

    def _handle_chunk(self, generation: int, chunk: str) -> None:
        if self._is_current(generation):
            self._bus.publish(SuggestionStreamChunk(generation=generation, content=chunk))

    def _fail(self, generation: int, error: str) -> list[str] | None:
        if not self._is_current(generation):
            LOGGER.debug(
                "SuggestionStateController: ignoring failure of stale generation=%d: %s",
                generation,
                error,
            )
            return None
        self._state.mark_failed(error)
        LOGGER.warning(
            "SuggestionStateController: request failed, generation=%d, error=%s",
            generation,
            error,
        )
        self._bus.publish(SuggestionFailed(generation=generation, error=error))
        return []

    def _on_pattern_picked(self, event: PatternPicked) -> None:
        self.select_pattern(event.name, source=SOURCE_PICKER)

    def _load_pattern(self, name: str) -> None:
        try:
            content = self._content_loader(name)
        except Exception as exc:
            LOGGER.warning("Failed to load pattern %s: %s", name, exc)
            return
        if isinstance(content, str):
            self._bus.publish(PatternContentLoaded(name=name, content=content))


__all__ = ["SuggestionStateController", "Suggester", "SOURCE_SELECTOR", "SOURCE_PICKER"]
