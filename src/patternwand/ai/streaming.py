"""Consumption of streamed chat responses."""

from __future__ import annotations

import logging
from typing import AsyncIterable, Callable

import httpx
from openai import APIError

from .client import AIStreamEvent
from .errors import SuggestionTransportError

LOGGER = logging.getLogger(__name__)

ChunkObserver = Callable[[str], None]

_TRANSPORT_ERRORS: tuple[type[BaseException], ...] = (
    APIError,
    httpx.HTTPError,
    httpx.StreamError,
    OSError,
    TimeoutError,
)


class StreamAccumulator:
    """Append-only text buffer fed by stream fragments in arrival order."""

    __slots__ = ("_parts", "_saw_delta")

    def __init__(self) -> None:
        self._parts: list[str] = []
        self._saw_delta = False

    @property
    def text(self) -> str:
        return "".join(self._parts)

    @property
    def chunk_count(self) -> int:
        return len(self._parts)

    def feed(self, fragment: str) -> None:
        self._parts.append(fragment)

    def extract(self, item: AIStreamEvent | str) -> str | None:
        """Return the text fragment carried by *item*, or ``None`` to skip it.

        ``content.done`` repeats the full message; it only counts when the
        transport never sent deltas.
        """
        if isinstance(item, str):
            return item or None
        event_type = getattr(item, "type", "") or ""
        content = getattr(item, "content", None)
        if event_type == "content.delta":
            if content:
                self._saw_delta = True
                return str(content)
            return None
        if event_type == "content.done":
            if content and not self._saw_delta and not self._parts:
                return str(content)
            return None
        if event_type.startswith("refusal"):
            LOGGER.debug("Ignoring refusal stream event (%s)", event_type)
        return None


async def consume_stream(
    stream: AsyncIterable[AIStreamEvent | str],
    on_chunk: ChunkObserver | None = None,
) -> str:
    """Drive *stream* to completion and return the accumulated text.

    Args:
        stream: Async iterable of raw text fragments or normalized stream events.
        on_chunk: Optional observer called once per fragment for live display.
            Exceptions raised by the observer are logged and ignored.

    Returns:
        The concatenation of every fragment, in arrival order.

    Raises:
        SuggestionTransportError: The stream failed before signalling its end.
    """
    accumulator = StreamAccumulator()
    try:
        async for item in stream:
            fragment = accumulator.extract(item)
            if fragment is None:
                continue
            accumulator.feed(fragment)
            _notify(on_chunk, fragment)
    except _TRANSPORT_ERRORS as exc:
        LOGGER.debug(
            "Stream failed after %d chunk(s): %s",
            accumulator.chunk_count,
            exc,
        )
        raise SuggestionTransportError(
            message=f"Chat stream failed: {exc}",
            details={"exception": type(exc).__name__, "chunks": accumulator.chunk_count},
            partial=accumulator.text,
        ) from exc

    LOGGER.debug("Stream completed with %d chunk(s)", accumulator.chunk_count)
    return accumulator.text


def _notify(observer: ChunkObserver | None, fragment: str) -> None:
    if observer is None:
        return
    try:
        observer(fragment)
    except Exception:
        LOGGER.debug("Chunk observer raised; continuing accumulation", exc_info=True)


__all__ = ["ChunkObserver", "StreamAccumulator", "consume_stream"]
