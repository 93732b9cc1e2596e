"""Validation of model output into a safe list of known pattern names.

The model is asked for ``{"patterns": [...]}`` and nothing else, but in
practice it fences the JSON in markdown, wraps it in prose, invents names,
or returns something that is not JSON at all. Each of those collapses to
an empty (or shorter) list here; nothing in this module raises to callers
of :func:`validate_pattern_response`.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Collection, Iterable, Mapping
from typing import Any

from jsonschema import Draft7Validator
from jsonschema.exceptions import best_match

from ..services import telemetry
from .errors import ResponseParseError, ResponseValidationError

LOGGER = logging.getLogger(__name__)

MAX_SUGGESTIONS = 5

_LEADING_FENCE_RE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_TRAILING_FENCE_RE = re.compile(r"\s*```$")

RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "patterns": {"type": "array"},
        "error": {},
    },
    "required": ["patterns"],
    "additionalProperties": True,
}

_RESPONSE_VALIDATOR = Draft7Validator(RESPONSE_SCHEMA)


def strip_code_fence(text: str) -> str:
    """Remove one leading and one trailing markdown fence, trimming whitespace."""

    cleaned = text.strip()
    cleaned = _LEADING_FENCE_RE.sub("", cleaned, count=1)
    cleaned = _TRAILING_FENCE_RE.sub("", cleaned, count=1)
    return cleaned.strip()


def parse_pattern_response(raw: str) -> list[Any]:
    """Decode *raw* and return the unfiltered ``patterns`` array.

    A top-level ``error`` field is logged but does not discard the array
    that accompanies it.

    Raises:
        ResponseParseError: *raw* is not JSON once fences are removed.
        ResponseValidationError: The JSON is not an object with a ``patterns`` array.
    """
    if not isinstance(raw, str):
        raise ResponseParseError(
            message="Response is not text",
            details={"type": type(raw).__name__},
        )
    cleaned = strip_code_fence(raw)
    try:
        parsed = json.loads(cleaned)
    except (ValueError, RecursionError) as exc:
        raise ResponseParseError(
            message=f"Response is not valid JSON: {exc}",
            details={"length": len(cleaned), "preview": cleaned[:120]},
        ) from exc

    if isinstance(parsed, Mapping) and parsed.get("error"):
        LOGGER.warning("Pattern suggestion returned error: %s", parsed.get("error"))
        telemetry.emit(telemetry.SUGGESTION_MODEL_ERROR, {"error": str(parsed.get("error"))})

    error = best_match(_RESPONSE_VALIDATOR.iter_errors(parsed))
    if error is not None:
        raise ResponseValidationError(
            message=_format_schema_error(error),
            details={"type": type(parsed).__name__},
        )
    return list(parsed["patterns"])


def filter_known_patterns(
    candidates: Iterable[Any],
    known_identifiers: Collection[str],
    *,
    limit: int = MAX_SUGGESTIONS,
) -> list[str]:
    """Keep string candidates that exactly match a known name, in order, up to *limit*."""

    known = known_identifiers if isinstance(known_identifiers, (set, frozenset)) else frozenset(known_identifiers)
    accepted: list[str] = []
    if limit < 1:
        return accepted
    for candidate in candidates:
        if isinstance(candidate, str) and candidate in known:
            accepted.append(candidate)
            if len(accepted) >= limit:
                break
    return accepted


def validate_pattern_response(
    raw: str,
    known_identifiers: Collection[str],
    *,
    limit: int = MAX_SUGGESTIONS,
) -> list[str]:
    """Turn raw model output into at most *limit* known pattern names.

    Args:
        raw: Complete response text accumulated from the stream.
        known_identifiers: Catalog names considered valid at validation time.
        limit: Maximum number of names returned.

    Returns:
        Known pattern names in response order; empty when nothing usable
        was found.
    """
    try:
        candidates = parse_pattern_response(raw)
    except ResponseParseError as exc:
        LOGGER.warning("Failed to parse pattern suggestion response: %s", exc.message)
        telemetry.emit(telemetry.SUGGESTION_PARSE_FAILED, exc.to_dict())
        return []
    except ResponseValidationError as exc:
        LOGGER.warning("Invalid pattern suggestion structure: %s", exc.message)
        telemetry.emit(telemetry.SUGGESTION_INVALID_STRUCTURE, exc.to_dict())
        return []

    validated = filter_known_patterns(candidates, known_identifiers, limit=limit)
    if candidates and not validated:
        LOGGER.info("None of the %d suggested pattern(s) exist in the catalog", len(candidates))
    elif len(validated) < min(len(candidates), limit):
        LOGGER.debug(
            "Dropped unknown pattern names (%d candidate(s), %d kept)",
            len(candidates),
            len(validated),
        )
    telemetry.emit(
        telemetry.SUGGESTION_VALIDATED,
        {"candidates": len(candidates), "accepted": len(validated)},
    )
    return validated


def _format_schema_error(error: Any) -> str:
    path = ".".join(str(part) for part in error.path)
    if path:
        return f"{path}: {error.message}"
    return str(error.message)


__all__ = [
    "MAX_SUGGESTIONS",
    "RESPONSE_SCHEMA",
    "strip_code_fence",
    "parse_pattern_response",
    "filter_known_patterns",
    "validate_pattern_response",
]
