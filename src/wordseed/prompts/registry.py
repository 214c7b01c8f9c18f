"""Prompt Registry - Load prompts from packaged Markdown templates.

Templates live next to this module in ``templates/`` and use
``{variable_name}`` placeholders. Literal JSON braces in a template are
left alone; only the names passed as variables are substituted.

Usage:
    from wordseed.prompts.registry import get_prompt

    prompt = get_prompt(
        "yes_no",
        language_name="Chinese",
        word="晚上",
        meaning="night",
    )
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

import structlog

logger = structlog.get_logger(__name__)

PROMPTS_DIR = Path(__file__).parent / "templates"


def _get_prompt_uncached(key: str) -> str:
    """Load raw prompt from file without caching.

    Raises:
        FileNotFoundError: If prompt file doesn't exist
    """
    file_path = PROMPTS_DIR / f"{key}.md"
    if not file_path.exists():
        raise FileNotFoundError(f"Prompt not found: {key} (looked at {file_path})")

    return file_path.read_text(encoding="utf-8")


@lru_cache(maxsize=32)
def _get_cached_prompt(key: str) -> str:
    return _get_prompt_uncached(key)


def get_prompt(key: str, use_cache: bool = True, **variables: object) -> str:
    """Load prompt from file and substitute variables.

    Args:
        key: Template name without extension, e.g. "multiple_choice"
        use_cache: Whether to use cached version (default True)
        **variables: Values for {name} placeholders

    Returns:
        Prompt string with variables substituted
    """
    content = _get_cached_prompt(key) if use_cache else _get_prompt_uncached(key)

    for var_name, var_value in variables.items():
        content = content.replace(f"{{{var_name}}}", str(var_value))

    return content


def list_prompts() -> list[str]:
    """List all available prompt keys."""
    if not PROMPTS_DIR.exists():
        logger.warning("prompts_dir_not_found", path=str(PROMPTS_DIR))
        return []

    return sorted(path.stem for path in PROMPTS_DIR.glob("*.md"))


def clear_cache() -> None:
    """Clear the prompt cache."""
    _get_cached_prompt.cache_clear()
