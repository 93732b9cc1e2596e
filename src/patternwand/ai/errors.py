"""Error types for the pattern suggestion pipeline.

Every error here is recoverable: the transport failure resets the busy
state, and the parse/validation failures collapse into an empty suggestion
list. They are distinct types so logs and telemetry can tell them apart.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


class ErrorCode:
    """Constants for error codes attached to suggestion errors."""

    TRANSPORT = "transport_error"
    PARSE = "parse_error"
    VALIDATION = "validation_error"
    PATTERN_NOT_FOUND = "pattern_not_found"


@dataclass
class SuggestionError(Exception):
    """Base exception for the suggestion pipeline.

    Attributes:
        code: Machine-readable error identifier.
        message: Human-readable error description.
        details: Additional structured error information.
    """

    code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a dictionary for logging and telemetry payloads."""
        result: dict[str, Any] = {
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = dict(self.details)
        return result

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


@dataclass
class SuggestionTransportError(SuggestionError):
    """The chat stream failed before signalling completion.

    ``partial`` holds whatever text arrived before the failure. It is kept
    for diagnostics only and must never be validated.
    """

    code: str = field(default=ErrorCode.TRANSPORT)
    message: str = field(default="Chat stream failed before completion")
    details: dict[str, Any] = field(default_factory=dict)
    partial: str = field(default="")

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["partial_length"] = len(self.partial)
        return result


@dataclass
class ResponseParseError(SuggestionError):
    """The model output could not be decoded as JSON."""

    code: str = field(default=ErrorCode.PARSE)
    message: str = field(default="Response is not valid JSON")
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class ResponseValidationError(SuggestionError):
    """The model output decoded but carried no usable ``patterns`` array."""

    code: str = field(default=ErrorCode.VALIDATION)
    message: str = field(default="Response has no usable patterns array")
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class PatternNotFoundError(SuggestionError, LookupError):
    """Raised by catalogs asked to select a pattern they do not hold."""

    code: str = field(default=ErrorCode.PATTERN_NOT_FOUND)
    message: str = field(default="Pattern not found in catalog")
    details: dict[str, Any] = field(default_factory=dict)
    name: str = field(default="")

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.name:
            result["name"] = self.name
        return result


__all__ = [
    "ErrorCode",
    "SuggestionError",
    "SuggestionTransportError",
    "ResponseParseError",
    "ResponseValidationError",
    "PatternNotFoundError",
]
