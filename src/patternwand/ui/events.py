"""Event bus infrastructure for decoupled suggestion UI communication.

The suggestion controller publishes every state change here; the display
layer (a selector control, a picker dialog, a console printer) subscribes
without holding a reference to the controller.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import (
    Callable,
    Generic,
    TypeVar,
    TYPE_CHECKING,
)
from weakref import WeakMethod, ref

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from typing import DefaultDict

logger = logging.getLogger(__name__)

E = TypeVar("E", bound="Event")

Handler = Callable[[E], None]


@dataclass(slots=True)
class Event:
    """Base class for all events in the system.

    Subclasses use ``@dataclass(slots=True)``::

        @dataclass(slots=True)
        class PatternPicked(Event):
            name: str
    """

    pass


# High-frequency event types that should not log each publish
_QUIET_EVENT_TYPES: set[type] = set()


# =============================================================================
# Suggestion Events
# =============================================================================


@dataclass(slots=True)
class SuggestionRequested(Event):
    """Emitted when a suggestion request starts and the control becomes busy.

    Attributes:
        generation: Monotonic request number; later requests supersede earlier ones.
        user_input: The text the suggestions are requested for.
    """

    generation: int
    user_input: str


@dataclass(slots=True)
class SuggestionStreamChunk(Event):
    """Emitted for each streamed fragment of the current request.

    Attributes:
        generation: Request the fragment belongs to.
        content: The text fragment.
    """

    generation: int
    content: str


_QUIET_EVENT_TYPES.add(SuggestionStreamChunk)


@dataclass(slots=True)
class SuggestionsReady(Event):
    """Emitted when the current request validated, even to an empty list.

    Attributes:
        generation: Request the result belongs to.
        patterns: Validated pattern names, at most five.
    """

    generation: int
    patterns: tuple[str, ...]


@dataclass(slots=True)
class SuggestionFailed(Event):
    """Emitted when the current request failed; the control is usable again.

    Attributes:
        generation: Request that failed.
        error: Description of the failure, for logs and status lines.
    """

    generation: int
    error: str


# =============================================================================
# Selection Events
# =============================================================================


@dataclass(slots=True)
class PatternPicked(Event):
    """Published by an external picker (dialog, command palette) choosing a pattern.

    Attributes:
        name: The picked pattern name.
    """

    name: str


@dataclass(slots=True)
class PatternSelectionChanged(Event):
    """Emitted once per actual change of the selected pattern.

    Attributes:
        name: The new selection, or ``None`` when cleared.
        previous: The selection before the change.
        source: Which side requested the change (``"selector"``, ``"picker"``, ...).
    """

    name: str | None
    previous: str | None
    source: str


@dataclass(slots=True)
class PatternContentLoaded(Event):
    """Emitted after the content of a newly selected pattern was loaded.

    Attributes:
        name: The selected pattern name.
        content: The pattern's prompt text.
    """

    name: str
    content: str


class EventBus(Generic[E]):
    """A typed publish-subscribe event bus for decoupled communication.

    Handlers are stored as weak references where possible so a destroyed
    widget or controller drops out of the bus on its own.

    Example::

        bus = EventBus()

        def on_ready(event: SuggestionsReady) -> None:
            print(event.patterns)

        bus.subscribe(SuggestionsReady, on_ready)
        bus.publish(SuggestionsReady(generation=1, patterns=("summarize",)))
        bus.unsubscribe(SuggestionsReady, on_ready)

    Thread Safety:
        This implementation is NOT thread-safe. All operations should be
        performed from the thread running the asyncio event loop.
    """

    __slots__ = ("_handlers",)

    def __init__(self) -> None:
        self._handlers: DefaultDict[type[Event], list[_HandlerRef]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Register a handler to receive events of exactly ``event_type``.

        Subscribing the same handler twice results in two invocations per
        publish.
        """
        handler_ref = _HandlerRef.create(handler)
        self._handlers[event_type].append(handler_ref)
        logger.debug(
            "Subscribed handler %s to event type %s",
            _handler_name(handler),
            event_type.__name__,
        )

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Remove the first registration of ``handler``; unknown handlers are ignored."""
        handlers = self._handlers.get(event_type)
        if handlers is None:
            return

        for i, handler_ref in enumerate(handlers):
            if handler_ref.matches(handler):
                handlers.pop(i)
                logger.debug(
                    "Unsubscribed handler %s from event type %s",
                    _handler_name(handler),
                    event_type.__name__,
                )
                return

    def publish(self, event: E) -> None:
        """Broadcast an event to all registered handlers.

        Handlers are invoked synchronously in the order they were
        registered. If a handler raises an exception, it is logged
        and remaining handlers continue to be invoked.
        """
        event_type = type(event)
        handlers = self._handlers.get(event_type)
        is_quiet = event_type in _QUIET_EVENT_TYPES

        if handlers is None:
            if not is_quiet:
                logger.debug("No handlers for event type %s", event_type.__name__)
            return

        if not is_quiet:
            logger.debug(
                "Publishing %s to %d handler(s)",
                event_type.__name__,
                len(handlers),
            )

        found_dead = False

        # Handlers may subscribe or unsubscribe while we iterate.
        for handler_ref in list(handlers):
            handler = handler_ref.resolve()
            if handler is None:
                found_dead = True
                continue

            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Handler %s raised exception for event %s",
                    _handler_name(handler),
                    event_type.__name__,
                )

        if found_dead:
            handlers[:] = [item for item in handlers if item.resolve() is not None]

    def clear(self) -> None:
        """Remove all registered handlers."""
        self._handlers.clear()
        logger.debug("Cleared all event handlers")

    def handler_count(self, event_type: type[E] | None = None) -> int:
        """Return the number of registered handlers, for one type or in total."""
        if event_type is not None:
            return len(self._handlers.get(event_type, []))
        return sum(len(handlers) for handlers in self._handlers.values())


class _HandlerRef:
    """Wrapper for handler references supporting both weak and strong refs.

    Bound methods are held through :class:`WeakMethod`; plain functions and
    lambdas are held strongly.
    """

    __slots__ = ("_ref", "_is_weak")

    def __init__(self, handler_ref: WeakMethod | ref | Handler, is_weak: bool) -> None:
        self._ref = handler_ref
        self._is_weak = is_weak

    @classmethod
    def create(cls, handler: Handler) -> _HandlerRef:
        if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
            try:
                return cls(WeakMethod(handler), is_weak=True)
            except TypeError:
                # Some callables can't be weakly referenced
                pass

        return cls(handler, is_weak=False)

    def resolve(self) -> Handler | None:
        if not self._is_weak:
            return self._ref  # type: ignore[return-value]
        return self._ref()  # type: ignore[operator]

    def matches(self, handler: Handler) -> bool:
        resolved = self.resolve()
        if resolved is None:
            return False
        return resolved == handler


def _handler_name(handler: Handler) -> str:
    """Get a human-readable name for a handler for logging purposes."""
    if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
        cls_name = type(handler.__self__).__name__
        return f"{cls_name}.{handler.__func__.__name__}"
    if hasattr(handler, "__name__"):
        return handler.__name__
    return repr(handler)


__all__ = [
    "Event",
    "EventBus",
    "Handler",
    "SuggestionRequested",
    "SuggestionStreamChunk",
    "SuggestionsReady",
    "SuggestionFailed",
    "PatternPicked",
    "PatternSelectionChanged",
    "PatternContentLoaded",
]
