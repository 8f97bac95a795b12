"""
Configuration system with Pydantic validation.

Single source of truth for all configuration parameters.
"""

from .schema import (
    ConfigSchema,
    StorageConfig,
    OrdersConfig,
    SchedulerConfig,
    LoggingConfig,
    AppConfig,
    StorageBackend,
    LogLevel,
)

from .loader import (
    ConfigLoader,
    apply_env_overrides,
    load_config,
    load_env_files,
)

__all__ = [
    "ConfigSchema",
    "StorageConfig",
    "OrdersConfig",
    "SchedulerConfig",
    "LoggingConfig",
    "AppConfig",
    "StorageBackend",
    "LogLevel",
    "ConfigLoader",
    "apply_env_overrides",
    "load_config",
    "load_env_files",
]
