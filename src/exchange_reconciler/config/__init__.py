"""Application configuration helpers."""

from __future__ import annotations

from .env import first_env_var
from .errors import ConfigurationError, MissingConfigurationError
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy
from .logging import configure_logging
from .passes import PassConfig, get_pass_config
from .storage import StorageConfig, get_storage_config
from .store import StoreConfig, get_store_config

__all__ = [
    "ConfigurationError",
    "MissingConfigurationError",
    "PassConfig",
    "RateLimit",
    "ResilienceConfig",
    "RetryPolicy",
    "StorageConfig",
    "StoreConfig",
    "configure_logging",
    "first_env_var",
    "get_pass_config",
    "get_storage_config",
    "get_store_config",
]
