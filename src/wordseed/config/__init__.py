"""Configuration package for the practice engine."""

from wordseed.config.app_config import (
    AppConfig,
    PracticeConfig,
    ProviderConfig,
    clear_config_cache,
    get_provider_config,
    load_app_config,
)

__all__ = [
    "AppConfig",
    "PracticeConfig",
    "ProviderConfig",
    "clear_config_cache",
    "get_provider_config",
    "load_app_config",
]
