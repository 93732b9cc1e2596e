"""Domain layer for the suggestion control.

Domain managers hold state and business logic independent of any widget
toolkit. They receive dependencies via constructor injection and notify
the display layer through the event bus.

Domain Managers:
    - SuggestionStateController: Suggestion requests and pattern selection
"""

from __future__ import annotations

from .suggestion_controller import SuggestionStateController

__all__: list[str] = [
    "SuggestionStateController",
]
