"""Application configuration loader.

Loads centralized configuration from data/config/wordseed_v1.yaml,
falling back to built-in defaults when the file is absent.

Usage:
    from wordseed.config.app_config import load_app_config, get_provider_config

    config = load_app_config()
    provider = get_provider_config("lmstudio")
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml

logger = structlog.get_logger(__name__)

# Config file path (relative to project root)
CONFIG_FILE = Path("data/config/wordseed_v1.yaml")


@dataclass
class ProviderConfig:
    """Configuration for a single LLM provider."""

    base_url: str | None
    default_model: str
    api_key_env: str | None = None

    def get_api_key(self) -> str | None:
        """Get API key from environment variable."""
        if self.api_key_env:
            return os.environ.get(self.api_key_env)
        return None


@dataclass
class PracticeConfig:
    """Tunables for generation and scheduling."""

    default_provider: str = "lmstudio"
    max_attempts: int = 3
    generation_timeout_s: float = 90.0
    concurrency: int = 5
    target_questions_per_type: int = 2
    supported_languages: list[str] = field(default_factory=lambda: ["zh", "ja", "en", "sv"])


@dataclass
class AppConfig:
    """Application-wide configuration."""

    providers: dict[str, ProviderConfig] = field(default_factory=dict)
    practice: PracticeConfig = field(default_factory=PracticeConfig)
    paths: dict[str, str] = field(default_factory=dict)

    @property
    def db_path(self) -> Path:
        return Path(self.paths.get("db", "db/wordseed.db"))


# Module-level cache
_cached_config: AppConfig | None = None


def _get_defaults() -> dict[str, Any]:
    """Get default configuration values."""
    return {
        "providers": {
            "lmstudio": {
                "base_url": "http://localhost:1234/v1",
                "default_model": "llama-3.2-3b-instruct",
                "api_key_env": None,
            },
            "openai": {
                "base_url": None,
                "default_model": "gpt-4o-mini",
                "api_key_env": "OPENAI_API_KEY",
            },
            "gemini": {
                "base_url": "https://generativelanguage.googleapis.com/v1beta/openai/",
                "default_model": "gemini-2.5-flash",
                "api_key_env": "GEMINI_API_KEY",
            },
        },
        "practice": {
            "default_provider": "lmstudio",
            "max_attempts": 3,
            "generation_timeout_s": 90.0,
            "concurrency": 5,
            "target_questions_per_type": 2,
            "supported_languages": ["zh", "ja", "en", "sv"],
        },
        "paths": {
            "db": "db/wordseed.db",
            "config_dir": "data/config",
            "hsk_data": "",
        },
    }


def _parse_config(data: dict[str, Any]) -> AppConfig:
    """Parse configuration dictionary into AppConfig object."""
    defaults = _get_defaults()

    providers = {}
    for name, pconfig in (data.get("providers") or defaults["providers"]).items():
        providers[name] = ProviderConfig(
            base_url=pconfig.get("base_url"),
            default_model=pconfig.get("default_model", "default"),
            api_key_env=pconfig.get("api_key_env"),
        )

    practice_data = {**defaults["practice"], **(data.get("practice") or {})}
    practice = PracticeConfig(
        default_provider=practice_data["default_provider"],
        max_attempts=int(practice_data["max_attempts"]),
        generation_timeout_s=float(practice_data["generation_timeout_s"]),
        concurrency=int(practice_data["concurrency"]),
        target_questions_per_type=int(practice_data["target_questions_per_type"]),
        supported_languages=list(practice_data["supported_languages"]),
    )

    paths = {**defaults["paths"], **(data.get("paths") or {})}

    return AppConfig(providers=providers, practice=practice, paths=paths)


def load_app_config(force_reload: bool = False, config_path: Path | None = None) -> AppConfig:
    """Load application config, falling back to defaults.

    Args:
        force_reload: If True, ignore cached config and reload from file.
        config_path: Override the config file location.

    Returns:
        AppConfig object with all settings.
    """
    global _cached_config

    if _cached_config is not None and not force_reload and config_path is None:
        return _cached_config

    path = config_path or CONFIG_FILE
    data: dict[str, Any]

    if path.exists():
        logger.debug("loading_app_config", source=str(path))
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    else:
        logger.info("using_default_config")
        data = _get_defaults()

    _cached_config = _parse_config(data)
    return _cached_config


def get_provider_config(provider: str) -> ProviderConfig | None:
    """Get configuration for a specific provider.

    Args:
        provider: Provider name (e.g., "lmstudio", "openai")

    Returns:
        ProviderConfig or None if provider not found.
    """
    config = load_app_config()
    return config.providers.get(provider)


def clear_config_cache() -> None:
    """Clear the configuration cache.

    Useful for testing or when config is modified at runtime.
    """
    global _cached_config
    _cached_config = None
