"""Cached settings loaders.

Each loader builds its settings object once per process. Call
``clear_all_caches()`` in tests (or after changing the environment) to force
a reload.
"""

from __future__ import annotations

from functools import lru_cache

from .logs import LoggingSettings
from .storage import StorageSettings


@lru_cache(maxsize=1)
def get_storage_settings() -> StorageSettings:
    """Get cached object storage settings.

    Returns:
        Validated and frozen StorageSettings instance.
    """
    return StorageSettings()


@lru_cache(maxsize=1)
def get_logging_settings() -> LoggingSettings:
    """Get cached logging settings.

    Returns:
        Validated and frozen LoggingSettings instance.
    """
    return LoggingSettings()


def clear_all_caches() -> None:
    """Clear every cached settings instance."""
    get_storage_settings.cache_clear()
    get_logging_settings.cache_clear()
