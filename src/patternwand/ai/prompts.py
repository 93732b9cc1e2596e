"""Prompt templates for pattern suggestion.

The suggestion prompt is isolated: it is rebuilt from scratch for every
request, carries no conversation history, and must never be merged with
another system prompt. Its output contract is a single JSON object::

    {"patterns": ["name1", "name2", "name3", "name4", "name5"]}
"""

from __future__ import annotations

from dataclasses import dataclass
from itertools import islice
from typing import Iterable, Sequence

# Keeps the embedded catalog well under the model's context window.
PATTERN_LIST_LIMIT = 150
RESPONSE_SHAPE = '{"patterns":["name1","name2","name3","name4","name5"]}'
QUERY_DIRECTIVE = "OUTPUT JSON NOW:"
_RULES: tuple[str, ...] = (
    "Output ONLY the JSON object, no other text",
    "Select exactly 5 patterns from AVAILABLE_PATTERNS that match the query intent",
    'If the query mentions "summarize" → include summarize-related patterns',
    'If the query mentions "code" or "review" → include code-related patterns',
    'If the query mentions "security" → include security-related patterns',
    "Pattern names must EXACTLY match entries in AVAILABLE_PATTERNS",
    "NO greetings, NO explanations, NO markdown, NO code fences, NO formatting",
    'First character must be "{", last character must be "}"',
)


@dataclass(frozen=True, slots=True)
class IsolatedPrompt:
    """System instruction and wrapped user message for one suggestion request."""

    system_text: str
    user_text: str

    def messages(self) -> list[dict[str, str]]:
        """Render the two chat messages sent to the transport, system first."""
        return [
            {"role": "system", "content": self.system_text},
            {"role": "user", "content": self.user_text},
        ]


@dataclass(frozen=True, slots=True)
class PromptContext:
    """Inputs of a single suggestion request."""

    user_input: str
    known_identifiers: tuple[str, ...]

    @classmethod
    def create(cls, user_input: str, known_identifiers: Iterable[str]) -> "PromptContext":
        return cls(user_input=user_input, known_identifiers=tuple(known_identifiers))

    def build(self, *, limit: int = PATTERN_LIST_LIMIT) -> IsolatedPrompt:
        return build_pattern_prompt(self.user_input, self.known_identifiers, limit=limit)


def build_pattern_prompt(
    user_input: str,
    known_identifiers: Sequence[str],
    *,
    limit: int = PATTERN_LIST_LIMIT,
) -> IsolatedPrompt:
    """Build the isolated system/user prompt pair for a suggestion request.

    Args:
        user_input: Raw text the user typed; embedded verbatim.
        known_identifiers: Catalog pattern names, in catalog order.
        limit: Maximum number of pattern names embedded in the prompt.

    Returns:
        The :class:`IsolatedPrompt` for this request.
    """
    return IsolatedPrompt(
        system_text=pattern_suggestion_system_prompt(known_identifiers, limit=limit),
        user_text=format_pattern_query(user_input),
    )


def pattern_suggestion_system_prompt(
    known_identifiers: Iterable[str],
    *,
    limit: int = PATTERN_LIST_LIMIT,
) -> str:
    """Return the JSON-only system instruction embedding the capped catalog."""
    if limit < 1:
        raise ValueError("limit must be a positive integer")
    pattern_list = ", ".join(islice(known_identifiers, limit))
    return f"""{_framing_section()}

FUNCTION: pattern_matcher
INPUT: A query string describing what the user wants to do
OUTPUT: Exactly one JSON object

AVAILABLE_PATTERNS = [{pattern_list}]

RESPONSE FORMAT (you MUST output ONLY this, nothing else):
{RESPONSE_SHAPE}

RULES:
{_rules_section()}
"""


def format_pattern_query(user_input: str) -> str:
    """Wrap raw user input as quoted data followed by the JSON directive."""
    return f'"{user_input}"\n\n{QUERY_DIRECTIVE}'


def _framing_section() -> str:
    return (
        "You are a JSON-only API endpoint. You do NOT have conversational abilities. "
        "You cannot greet, explain, or help. You can ONLY output valid JSON."
    )


def _rules_section() -> str:
    return "\n".join(f"- {rule}" for rule in _RULES)


__all__ = [
    "PATTERN_LIST_LIMIT",
    "RESPONSE_SHAPE",
    "QUERY_DIRECTIVE",
    "IsolatedPrompt",
    "PromptContext",
    "build_pattern_prompt",
    "pattern_suggestion_system_prompt",
    "format_pattern_query",
]
