"""HSK 3.0 level lookup.

The registry is loaded once at startup from a JSON object mapping
words to levels ("1".."6" or "7-9") and is read-only afterwards.
"""

from __future__ import annotations

import json
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

import structlog

logger = structlog.get_logger(__name__)

DEFAULT_HSK_PATH = Path(__file__).parent.parent / "data" / "hsk30.json"


class HskRegistry:
    """Immutable word -> HSK level mapping."""

    def __init__(self, levels: Mapping[str, str]):
        self._levels = MappingProxyType(dict(levels))

    def lookup(self, word: str) -> str | None:
        return self._levels.get(word)

    def __contains__(self, word: object) -> bool:
        return word in self._levels

    def __len__(self) -> int:
        return len(self._levels)

    @property
    def levels(self) -> Mapping[str, str]:
        return self._levels


_registry: HskRegistry | None = None


def load_hsk_registry(path: Path | None = None) -> HskRegistry:
    """Load the HSK table and install it as the process-wide registry.

    A missing or unreadable file yields an empty registry (lookups return
    None) and a warning.
    """
    global _registry
    path = path or DEFAULT_HSK_PATH

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("hsk.load_failed", path=str(path), error=str(e))
        data = {}

    levels = {str(word): str(level) for word, level in data.items()}
    _registry = HskRegistry(levels)
    logger.info("hsk.loaded", path=str(path), words=len(levels))
    return _registry


def get_hsk_registry() -> HskRegistry:
    """Get the loaded registry, loading the bundled table on first use."""
    if _registry is None:
        return load_hsk_registry()
    return _registry


def reset_hsk_registry() -> None:
    global _registry
    _registry = None
