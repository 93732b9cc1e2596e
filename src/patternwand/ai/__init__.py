"""Prompt building, chat streaming, and response validation for pattern suggestions."""

from .client import AIClient, AIStreamEvent, ChatTransport, ClientSettings
from .prompts import IsolatedPrompt, PromptContext, build_pattern_prompt
from .streaming import consume_stream
from .suggestions import PatternSuggester
from .validation import validate_pattern_response

__all__ = [
    "AIClient",
    "AIStreamEvent",
    "ChatTransport",
    "ClientSettings",
    "IsolatedPrompt",
    "PromptContext",
    "build_pattern_prompt",
    "consume_stream",
    "PatternSuggester",
    "validate_pattern_response",
]
