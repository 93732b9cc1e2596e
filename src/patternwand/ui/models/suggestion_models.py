"""Suggestion session state models.

These dataclasses and enums describe the state owned by the suggestion
controller. The display layer only ever receives snapshots.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum


def _utcnow() -> datetime:
    """Return current UTC time."""
    return datetime.now(timezone.utc)


class SuggestionStatus(Enum):
    """Status of the suggestion cycle.

    Values:
        IDLE: No request has run yet, or the last one was canceled.
        REQUESTING: A request is streaming from the model.
        READY: The latest request validated (possibly to an empty list).
        FAILED: The latest request failed; the control is usable again.
    """

    IDLE = "idle"
    REQUESTING = "requesting"
    READY = "ready"
    FAILED = "failed"


@dataclass(slots=True)
class SuggestionSessionState:
    """State of one suggestion session.

    Attributes:
        status: Current status of the suggestion cycle.
        busy: Whether a request is in flight.
        current: Validated suggestions of the latest completed request.
        selected: Currently selected pattern, if any.
        generation: Number of the most recently started request.
        error: Description of the latest failure, if any.
        updated_at: When the state last changed.
    """

    status: SuggestionStatus = SuggestionStatus.IDLE
    busy: bool = False
    current: list[str] = field(default_factory=list)
    selected: str | None = None
    generation: int = 0
    error: str | None = None
    updated_at: datetime = field(default_factory=_utcnow)

    def mark_requesting(self, generation: int) -> None:
        """Transition to requesting state for a new request."""
        self.status = SuggestionStatus.REQUESTING
        self.busy = True
        self.current = []
        self.generation = generation
        self.error = None
        self.updated_at = _utcnow()

    def mark_ready(self, suggestions: list[str]) -> None:
        """Transition to ready state with validated suggestions."""
        self.status = SuggestionStatus.READY
        self.busy = False
        self.current = list(suggestions)
        self.updated_at = _utcnow()

    def mark_failed(self, error: str) -> None:
        """Transition to failed state, clearing suggestions."""
        self.status = SuggestionStatus.FAILED
        self.busy = False
        self.current = []
        self.error = error
        self.updated_at = _utcnow()

    def mark_idle(self) -> None:
        """Return to idle after a canceled request."""
        self.status = SuggestionStatus.IDLE
        self.busy = False
        self.updated_at = _utcnow()

    def snapshot(self) -> SuggestionSessionState:
        """Return an independent copy safe to hand to readers."""
        return replace(self, current=list(self.current))


__all__ = [
    "SuggestionStatus",
    "SuggestionSessionState",
]
