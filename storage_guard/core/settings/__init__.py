"""Pydantic Settings v2 configuration.

- Environment variables as the single source of truth in production
- Optional YAML/conf.d files (``conf/storage.yaml``, ``conf/logging.yaml``)
- LRU-cached loaders
- Immutable (frozen) settings models, SecretStr for credentials

Configuration precedence (highest to lowest):
    1. init kwargs (testing/overrides)
    2. YAML/conf.d files
    3. Environment variables
    4. .env file
    5. secrets_dir
"""

from __future__ import annotations

from .loader import clear_all_caches, get_logging_settings, get_storage_settings
from .logs import LoggingSettings
from .storage import StorageBackendType, StorageSettings

__all__ = [
    "LoggingSettings",
    "StorageBackendType",
    "StorageSettings",
    "clear_all_caches",
    "get_logging_settings",
    "get_storage_settings",
]
