"""Pattern suggestion for free-text user requests."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

from .client import ChatTransport
from .prompts import PATTERN_LIST_LIMIT, PromptContext
from .streaming import ChunkObserver, consume_stream
from .validation import MAX_SUGGESTIONS, validate_pattern_response

LOGGER = logging.getLogger(__name__)

JSON_OBJECT_FORMAT: Mapping[str, Any] = {"type": "json_object"}


class PatternSuggester:
    """Runs one isolated suggestion cycle against a chat transport.

    Each call builds a fresh prompt from the user input and the current
    catalog, streams the model's answer, and validates it against that
    same catalog snapshot. No history is kept between calls.
    """

    def __init__(
        self,
        client: ChatTransport,
        *,
        temperature: float | None = 0.0,
        max_tokens: int | None = 300,
        pattern_list_limit: int = PATTERN_LIST_LIMIT,
        json_response_format: bool = False,
    ) -> None:
        self._client = client
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._pattern_list_limit = pattern_list_limit
        self._json_response_format = json_response_format

    async def suggest(
        self,
        user_input: str,
        known_identifiers: Sequence[str],
        *,
        on_chunk: ChunkObserver | None = None,
        max_suggestions: int = MAX_SUGGESTIONS,
    ) -> list[str]:
        """Suggest up to *max_suggestions* catalog patterns for *user_input*.

        Args:
            user_input: What the user typed.
            known_identifiers: Catalog pattern names, in catalog order.
            on_chunk: Optional observer for live display of streamed text.
            max_suggestions: Maximum number of names returned.

        Returns:
            Validated pattern names; empty when the model produced nothing usable.

        Raises:
            SuggestionTransportError: The chat stream failed. Partial text is
                never validated.
        """
        if not user_input or not user_input.strip():
            return []
        context = PromptContext.create(user_input, known_identifiers)
        messages = self._build_messages(context)
        response_text = await self._complete_chat(messages, on_chunk)
        return self._parse_response(response_text, context, max_suggestions)

    def _build_messages(self, context: PromptContext) -> list[dict[str, str]]:
        prompt = context.build(limit=self._pattern_list_limit)
        LOGGER.debug(
            "Built suggestion prompt: %d catalog name(s), %d system char(s)",
            min(len(context.known_identifiers), self._pattern_list_limit),
            len(prompt.system_text),
        )
        return prompt.messages()

    async def _complete_chat(
        self,
        messages: Sequence[Mapping[str, Any]],
        on_chunk: ChunkObserver | None,
    ) -> str:
        stream = self._client.stream_chat(
            messages,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
            response_format=JSON_OBJECT_FORMAT if self._json_response_format else None,
        )
        return await consume_stream(stream, on_chunk)

    def _parse_response(self, text: str, context: PromptContext, max_suggestions: int) -> list[str]:
        suggestions = validate_pattern_response(
            text,
            frozenset(context.known_identifiers),
            limit=max_suggestions,
        )
        LOGGER.debug("Validated %d suggestion(s) for input of %d char(s)", len(suggestions), len(context.user_input))
        return suggestions


__all__ = ["PatternSuggester", "JSON_OBJECT_FORMAT"]
