"""Logging setup for the ``patternwand`` console tool.

Suggestions are written to stdout, so every log record goes to stderr.
Setting ``PATTERNWAND_LOG_FILE`` (or passing ``log_file``) adds a rotating
file copy of the same records for bug reports.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import TextIO

__all__ = ["setup_logging"]

_HANDLER_PREFIX = "patternwand"
_CONSOLE_FORMAT = "patternwand: %(levelname)s %(name)s: %(message)s"
_FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_TRANSPORT_LOGGERS: tuple[str, ...] = ("httpx", "httpcore", "openai")


def setup_logging(
    level: int = logging.WARNING,
    *,
    stream: TextIO | None = None,
    log_file: Path | str | None = None,
    force: bool = False,
) -> list[logging.Handler]:
    """Attach the tool's stderr (and optional file) handlers to the root logger.

    Handlers installed by other code are left alone. Calling again is a
    no-op unless ``force`` is set, in which case the tool's own handlers are
    replaced.

    Returns:
        The handlers owned by the tool after the call.
    """

    root = logging.getLogger()
    owned = _owned_handlers(root)
    if owned and not force:
        return owned
    for handler in owned:
        root.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(stream or sys.stderr)
    console.set_name(f"{_HANDLER_PREFIX}.console")
    console.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    handlers: list[logging.Handler] = [console]

    target = log_file or os.environ.get("PATTERNWAND_LOG_FILE")
    if target:
        path = Path(target).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            path, maxBytes=1_000_000, backupCount=3, encoding="utf-8"
        )
        file_handler.set_name(f"{_HANDLER_PREFIX}.file")
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        handlers.append(file_handler)

    for handler in handlers:
        handler.setLevel(level)
        root.addHandler(handler)
    root.setLevel(level)
    _quiet_transport_loggers(level)
    return handlers


def _owned_handlers(root: logging.Logger) -> list[logging.Handler]:
    return [h for h in root.handlers if (h.get_name() or "").startswith(f"{_HANDLER_PREFIX}.")]


def _quiet_transport_loggers(root_level: int) -> None:
    # Request/response chatter from the HTTP stack only shows at WARNING and up.
    quiet_level = max(root_level, logging.WARNING)
    for logger_name in _TRANSPORT_LOGGERS:
        logging.getLogger(logger_name).setLevel(quiet_level)
