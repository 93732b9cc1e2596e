"""Shared pytest fixtures."""

from __future__ import annotations

import os
from typing import Any, Iterator

import pytest

from patternwand.services import telemetry

KNOWN_PATTERNS = (
    "analyze_paper",
    "create_summary",
    "extract_article_wisdom",
    "extract_main_idea",
    "extract_wisdom",
    "review_code",
    "summarize",
)

_TELEMETRY_EVENTS = (
    telemetry.SUGGESTION_VALIDATED,
    telemetry.SUGGESTION_PARSE_FAILED,
    telemetry.SUGGESTION_INVALID_STRUCTURE,
    telemetry.SUGGESTION_MODEL_ERROR,
    telemetry.SUGGESTION_TRANSPORT_FAILED,
)


@pytest.fixture
def known_patterns() -> frozenset[str]:
    return frozenset(KNOWN_PATTERNS)


@pytest.fixture
def telemetry_events() -> Iterator[list[dict[str, Any]]]:
    """Collect every suggestion telemetry payload emitted during a test."""

    captured: list[dict[str, Any]] = []
    for name in _TELEMETRY_EVENTS:
        telemetry.register_event_listener(name, captured.append)
    yield captured
    for name in _TELEMETRY_EVENTS:
        telemetry.unregister_event_listener(name, captured.append)


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer PATTERNWAND_* variables from leaking into tests."""

    for name in list(os.environ):
        if name.startswith("PATTERNWAND_"):
            monkeypatch.delenv(name, raising=False)
