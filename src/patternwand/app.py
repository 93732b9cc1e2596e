"""Console entry point for pattern suggestions."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, TextIO, get_args, get_origin, get_type_hints

from .ai.client import AIClient, ClientSettings
from .ai.suggestions import PatternSuggester
from .services.catalog import DirectoryPatternCatalog, PatternCatalog
from .services.settings import Settings, SettingsStore, redact_secret
from .ui.domain.suggestion_controller import SuggestionStateController
from .ui.events import EventBus, PatternContentLoaded, SuggestionStreamChunk
from .utils import logging as logging_utils

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_LOGGER = logging.getLogger(__name__)
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}

EXIT_OK = 0
EXIT_NO_SUGGESTIONS = 1
EXIT_USAGE = 2


@dataclass(slots=True)
class SuggestionRuntime:
    """Objects wired together for one console session."""

    controller: SuggestionStateController
    client: AIClient
    catalog: PatternCatalog
    event_bus: EventBus


def configure_logging(debug: bool = False, *, force: bool = False) -> None:
    """Configure structured logging for the console tool."""

    level = logging.DEBUG if debug else logging.WARNING
    logging_utils.setup_logging(level, force=force)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        settings = active_store.load(overrides=overrides)
    except (OSError, ValueError) as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        settings = Settings()
    return settings


def build_runtime(
    settings: Settings,
    *,
    client: AIClient | None = None,
    catalog: PatternCatalog | None = None,
    event_bus: EventBus | None = None,
    debug_logging: bool = False,
) -> SuggestionRuntime:
    """Wire catalog, chat client, suggester and controller from *settings*."""

    active_client = client or AIClient(_client_settings(settings, debug_logging=debug_logging))
    active_catalog = catalog or DirectoryPatternCatalog(settings.patterns_dir)
    bus = event_bus or EventBus()
    suggester = PatternSuggester(
        active_client,
        temperature=settings.temperature,
        max_tokens=settings.max_tokens,
        pattern_list_limit=settings.pattern_list_limit,
        json_response_format=settings.json_response_format,
    )
    controller = SuggestionStateController(
        suggester,
        active_catalog.list_patterns,
        active_catalog.select_pattern,
        bus,
    )
    controller.bind_external_selection()
    return SuggestionRuntime(controller=controller, client=active_client, catalog=active_catalog, event_bus=bus)


async def run_query(
    runtime: SuggestionRuntime,
    query: str,
    *,
    show: bool = False,
    stream: bool = False,
    stdout: TextIO | None = None,
    stderr: TextIO | None = None,
) -> int:
    """Run one suggestion request and print the result; returns the exit status."""

    out = stdout or sys.stdout
    err = stderr or sys.stderr
    bus = runtime.event_bus

    def _echo_chunk(event: SuggestionStreamChunk) -> None:
        err.write(event.content)
        err.flush()

    def _print_content(event: PatternContentLoaded) -> None:
        out.write(event.content)
        if not event.content.endswith("\n"):
            out.write("\n")

    if stream:
        bus.subscribe(SuggestionStreamChunk, _echo_chunk)
    if show:
        bus.subscribe(PatternContentLoaded, _print_content)
    try:
        suggestions = await runtime.controller.request_suggestions(query)
        if stream:
            err.write("\n")
    finally:
        if stream:
            bus.unsubscribe(SuggestionStreamChunk, _echo_chunk)

    try:
        if not suggestions:
            state = runtime.controller.state
            if state.error:
                err.write(f"Suggestion request failed: {state.error}\n")
            else:
                err.write("No matching patterns suggested.\n")
            return EXIT_NO_SUGGESTIONS

        for name in suggestions:
            out.write(f"{name}\n")
        if show:
            out.write("\n")
            runtime.controller.select_pattern(suggestions[0])
        return EXIT_OK
    finally:
        if show:
            bus.unsubscribe(PatternContentLoaded, _print_content)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point invoked by the `patternwand` console script."""

    args = _parse_cli_args(argv)

    debug = _env_flag("PATTERNWAND_DEBUG", default=False)
    configure_logging(debug)

    settings_path = args.settings_path or os.environ.get("PATTERNWAND_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    settings_store = SettingsStore(resolved_path)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        return EXIT_USAGE
    if args.patterns_dir:
        cli_overrides["patterns_dir"] = args.patterns_dir

    overrides_mapping: Dict[str, Any] | None = cli_overrides or None
    settings = load_settings(resolved_path, store=settings_store, overrides=overrides_mapping)

    if args.dump_settings:
        _dump_settings(settings, settings_store, overrides=cli_overrides)
        return EXIT_OK

    query = " ".join(args.query).strip()
    if not query:
        print("A query is required (e.g. `patternwand summarize this article`).", file=sys.stderr)
        return EXIT_USAGE
    if not settings.api_key:
        print(
            "No API key configured; set PATTERNWAND_API_KEY or use --set api_key=...",
            file=sys.stderr,
        )
        return EXIT_USAGE

    if settings.debug_logging and not debug:
        configure_logging(True, force=True)
        debug = True

    runtime = build_runtime(settings, debug_logging=debug)
    if not runtime.catalog.list_patterns():
        print(f"No patterns found in {_describe_catalog(runtime.catalog)}", file=sys.stderr)
        return EXIT_USAGE

    try:
        return asyncio.run(_run_and_close(runtime, query, show=args.show, stream=args.stream))
    except KeyboardInterrupt:  # pragma: no cover - manual shutdown path
        _LOGGER.info("Shutdown requested by user.")
        return EXIT_NO_SUGGESTIONS


async def _run_and_close(runtime: SuggestionRuntime, query: str, *, show: bool, stream: bool) -> int:
    try:
        return await run_query(runtime, query, show=show, stream=stream)
    finally:
        await runtime.client.aclose()


def _client_settings(settings: Settings, *, debug_logging: bool = False) -> ClientSettings:
    return ClientSettings(
        base_url=settings.base_url,
        api_key=settings.api_key,
        model=settings.model,
        organization=settings.organization,
        request_timeout=settings.request_timeout,
        default_headers=settings.default_headers,
        metadata=settings.metadata,
        debug_logging=debug_logging or settings.debug_logging,
    )


def _describe_catalog(catalog: PatternCatalog) -> str:
    root = getattr(catalog, "root", None)
    return str(root) if root is not None else type(catalog).__name__


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _parse_cli_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="patternwand",
        add_help=True,
        description="Suggest the patterns that best fit a free-text request.",
    )
    parser.add_argument("query", nargs="*", help="What you want to do, in plain words.")
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings payload (with secrets redacted) and exit.",
    )
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        help="Override the default ~/.patternwand/settings.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override persisted settings for this run (repeatable).",
    )
    parser.add_argument(
        "--patterns-dir",
        metavar="DIR",
        help="Directory holding one sub-directory per pattern.",
    )
    parser.add_argument(
        "--stream",
        action="store_true",
        help="Echo the raw model output to stderr while it streams.",
    )
    parser.add_argument(
        "--show",
        action="store_true",
        help="Select the top suggestion and print its prompt.",
    )
    return parser.parse_intermixed_args(argv)


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if not items:
        return overrides

    fields = Settings.__dataclass_fields__  # type: ignore[attr-defined]
    type_hints = get_type_hints(Settings)
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in fields:
            raise ValueError(f"Unknown setting '{key}'.")
        annotation = type_hints.get(key, fields[key].type)
        overrides[key] = _coerce_value(annotation, raw_value.strip())
    return overrides


def _coerce_value(annotation: Any, raw_value: str) -> Any:
    target = _resolve_annotation(annotation)
    normalized = raw_value.strip()

    if _accepts_none(annotation) and normalized.lower() in {"none", "null"}:
        return None
    if target is str or target is Any:
        return normalized
    if target is bool:
        return _parse_bool(normalized)
    if target is int:
        return int(normalized, 10)
    if target is float:
        return float(normalized)
    if target is list:
        try:
            return json.loads(normalized or "[]")
        except json.JSONDecodeError as exc:
            raise ValueError("List overrides must be valid JSON arrays") from exc
    if target is dict:
        try:
            payload = json.loads(normalized or "{}")
        except json.JSONDecodeError as exc:
            raise ValueError("Dict overrides must be valid JSON objects") from exc
        if not isinstance(payload, dict):
            raise ValueError("Dict overrides must be valid JSON objects")
        return payload
    return normalized


def _resolve_annotation(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is None:
        return annotation
    if origin in {list, dict}:
        return origin
    args = [arg for arg in get_args(annotation) if arg is not type(None)]
    if not args:
        return origin
    return _resolve_annotation(args[0])


def _accepts_none(annotation: Any) -> bool:
    return annotation is type(None) or type(None) in get_args(annotation)


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    payload = asdict(settings)
    api_key = payload.get("api_key", "")
    if isinstance(api_key, str):
        payload["api_key"] = redact_secret(api_key)
    metadata = {
        "path": str(store.path),
        "key_path": str(store.vault.key_path),
        "cli_overrides": sorted(overrides.keys()),
        "environment_variables": _active_env_overrides(),
    }
    output = {"settings": payload, "meta": metadata}
    json.dump(output, destination, indent=2)
    destination.write("\n")


def _active_env_overrides() -> list[str]:
    return sorted(name for name in os.environ if name.startswith("PATTERNWAND_"))


if __name__ == "__main__":  # pragma: no cover - manual invocation
    sys.exit(main())
