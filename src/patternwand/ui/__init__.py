"""UI-side state for the pattern suggestion control (no widgets live here)."""

from .domain import SuggestionStateController
from .events import EventBus
from .models.suggestion_models import SuggestionSessionState, SuggestionStatus

__all__ = [
    # Event Bus
    "EventBus",
    # Domain
    "SuggestionStateController",
    # Models
    "SuggestionSessionState",
    "SuggestionStatus",
]
