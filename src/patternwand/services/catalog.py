"""Pattern catalog providers.

The suggestion core only reads from a catalog: it lists the known pattern
names and asks for a pattern's content once the user selects one.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol, Sequence, runtime_checkable

from ..ai.errors import PatternNotFoundError

LOGGER = logging.getLogger(__name__)

PATTERN_PROMPT_FILE = "system.md"
_DEFAULT_PATTERNS_DIR = Path.home() / ".config" / "fabric" / "patterns"


@runtime_checkable
class PatternCatalog(Protocol):
    """Read-only view over the known patterns."""

    def list_patterns(self) -> Sequence[str]:
        """Return known pattern names in catalog order."""
        ...

    def select_pattern(self, name: str) -> str:
        """Return the prompt content for *name*."""
        ...


class DirectoryPatternCatalog:
    """Catalog backed by a directory holding one sub-directory per pattern.

    A sub-directory counts as a pattern when it contains ``system.md``.
    Names are listed sorted so prompts stay deterministic across runs.
    """

    def __init__(self, root: Path | str | None = None, *, encoding: str = "utf-8") -> None:
        self._root = Path(root).expanduser() if root else _DEFAULT_PATTERNS_DIR
        self._encoding = encoding

    @property
    def root(self) -> Path:
        return self._root

    def list_patterns(self) -> list[str]:
        if not self._root.is_dir():
            LOGGER.warning("Pattern directory %s does not exist", self._root)
            return []
        names = [
            entry.name
            for entry in self._root.iterdir()
            if entry.is_dir() and (entry / PATTERN_PROMPT_FILE).is_file()
        ]
        names.sort()
        LOGGER.debug("Discovered %d pattern(s) under %s", len(names), self._root)
        return names

    def select_pattern(self, name: str) -> str:
        path = self._pattern_path(name)
        if path is None or not path.is_file():
            raise PatternNotFoundError(
                message=f"Pattern '{name}' not found in {self._root}",
                name=name,
            )
        return path.read_text(encoding=self._encoding)

    def _pattern_path(self, name: str) -> Path | None:
        # Names come from the model via the selector; refuse anything path-like.
        if not name or name in {".", ".."} or "/" in name or "\\" in name:
            return None
        return self._root / name / PATTERN_PROMPT_FILE


def default_patterns_dir() -> Path:
    """Return the directory scanned when no patterns directory is configured."""

    return _DEFAULT_PATTERNS_DIR


__all__ = [
    "PATTERN_PROMPT_FILE",
    "PatternCatalog",
    "DirectoryPatternCatalog",
    "default_patterns_dir",
]
