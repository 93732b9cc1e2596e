"""In-process telemetry hooks for pattern suggestion outcomes."""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping

LOGGER = logging.getLogger(__name__)

SUGGESTION_VALIDATED = "pattern_suggestion.validated"
SUGGESTION_PARSE_FAILED = "pattern_suggestion.parse_failed"
SUGGESTION_INVALID_STRUCTURE = "pattern_suggestion.invalid_structure"
SUGGESTION_MODEL_ERROR = "pattern_suggestion.model_error"
SUGGESTION_TRANSPORT_FAILED = "pattern_suggestion.transport_failed"

_EVENT_LISTENERS: dict[str, list[Callable[[dict[str, Any]], None]]] = {}


def register_event_listener(event_name: str, callback: Callable[[dict[str, Any]], None]) -> None:
    """Register a callback invoked whenever :func:`emit` fires *event_name*."""

    if not event_name or callback is None:
        return
    listeners = _EVENT_LISTENERS.setdefault(event_name, [])
    if callback not in listeners:
        listeners.append(callback)


def unregister_event_listener(event_name: str, callback: Callable[[dict[str, Any]], None]) -> None:
    """Remove *callback* from *event_name* if it was registered."""

    listeners = _EVENT_LISTENERS.get(event_name)
    if not listeners or callback not in listeners:
        return
    listeners.remove(callback)
    if not listeners:
        _EVENT_LISTENERS.pop(event_name, None)


def emit(event_name: str, payload: Mapping[str, Any] | None = None) -> None:
    """Broadcast a structured telemetry event to in-process listeners."""

    if not event_name:
        return
    event_payload = {"event": event_name}
    if payload:
        event_payload.update(payload)
    listeners = list(_EVENT_LISTENERS.get(event_name, ()))
    for callback in listeners:
        try:
            callback(dict(event_payload))
        except Exception:  # pragma: no cover - listeners must not break emitters
            LOGGER.debug("Telemetry listener %s failed", callback, exc_info=True)
    LOGGER.debug("Telemetry emit %s: %s", event_name, event_payload)


__all__ = [
    "SUGGESTION_VALIDATED",
    "SUGGESTION_PARSE_FAILED",
    "SUGGESTION_INVALID_STRUCTURE",
    "SUGGESTION_MODEL_ERROR",
    "SUGGESTION_TRANSPORT_FAILED",
    "register_event_listener",
    "unregister_event_listener",
    "emit",
]
