"""
Pydantic models for config.yaml.

Every block has defaults, so a missing file or an empty mapping is a
valid configuration. Invalid values fail at load time, never later.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict
from typing import Dict, Any
from pathlib import Path
from enum import Enum

import pytz


# ============================================================================
# ENUMS
# ============================================================================

class StorageBackend(str, Enum):
    """Supported key-value store backends."""
    MEMORY = "memory"
    SQLITE = "sqlite"


class LogLevel(str, Enum):
    """Log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


# ============================================================================
# STORAGE CONFIGURATION
# ============================================================================

class StorageConfig(BaseModel):
    """Key-value store and write-behind settings."""

    backend: StorageBackend = Field(
        default=StorageBackend.SQLITE,
        description="Key-value store backend"
    )

    path: Path = Field(
        default=Path("data/ubazol.db"),
        description="SQLite database file (sqlite backend only)"
    )

    write_behind: bool = Field(
        default=True,
        description="Persist on a background worker (False writes inline)"
    )

    flush_timeout_seconds: float = Field(
        gt=0,
        le=60,
        default=5.0,
        description="Max wait for pending writes on flush/shutdown"
    )

    model_config = ConfigDict(validate_assignment=True)


# ============================================================================
# ORDER CONFIGURATION
# ============================================================================

class OrdersConfig(BaseModel):
    """Order lifecycle settings."""

    estimated_delivery_minutes: int = Field(
        ge=1,
        le=24 * 60,
        default=30,
        description="ETA offset applied when an order is created"
    )

    enforce_transitions: bool = Field(
        default=False,
        description="Only accept status changes listed in ALLOWED_TRANSITIONS"
    )


# ============================================================================
# DEMO SCHEDULER CONFIGURATION
# ============================================================================

class SchedulerConfig(BaseModel):
    """
    Demo status progression for new orders.

    RULES:
    - prepare step must come after the confirm step
    """

    enabled: bool = Field(
        default=True,
        description="Advance new orders automatically (demo mode)"
    )

    confirm_after_seconds: float = Field(
        ge=0,
        default=5.0,
        description="Delay before a new order becomes confirmed"
    )

    prepare_after_seconds: float = Field(
        ge=0,
        default=10.0,
        description="Delay before a new order becomes preparing"
    )

    @model_validator(mode="after")
    def validate_step_order(self):
        if self.prepare_after_seconds < self.confirm_after_seconds:
            raise ValueError(
                f"prepare_after_seconds ({self.prepare_after_seconds}) must be >= "
                f"confirm_after_seconds ({self.confirm_after_seconds})"
            )
        return self


# ============================================================================
# LOGGING CONFIGURATION
# ============================================================================

class LoggingConfig(BaseModel):
    """Per-stream log files and console output."""

    log_dir: Path = Field(
        default=Path("logs"),
        description="Directory holding one subdirectory per log stream"
    )

    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Threshold for the per-stream files"
    )

    console_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Threshold for the terminal (CLI --quiet forces WARNING)"
    )

    console_colors: bool = Field(
        default=True,
        description="ANSI level colors on the terminal"
    )

    json_logs: bool = Field(
        default=True,
        description="JSON lines in the files (False writes plain text)"
    )

    max_bytes: int = Field(
        ge=100_000,
        le=100_000_000,
        default=5_000_000,
        description="Rotate a stream file once it reaches this size"
    )

    backup_count: int = Field(
        ge=1,
        le=20,
        default=3,
        description="Rotated files kept per stream"
    )


# ============================================================================
# APP CONFIGURATION
# ============================================================================

class AppConfig(BaseModel):
    """Presentation-facing settings."""

    timezone: str = Field(
        default="America/New_York",
        description="Zone used for local times (tracking ETA)"
    )

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        if v not in pytz.all_timezones_set:
            raise ValueError(f"Unknown timezone: {v}")
        return v


class ConfigSchema(BaseModel):
    """
    Master configuration schema.

    Every block has defaults, so an empty mapping is a valid config.
    """

    storage: StorageConfig = Field(default_factory=StorageConfig)
    orders: OrdersConfig = Field(default_factory=OrdersConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    app: AppConfig = Field(default_factory=AppConfig)

    model_config = ConfigDict(validate_assignment=True)

    @classmethod
    def from_yaml(cls, path: Path) -> "ConfigSchema":
        """Load config from YAML file."""
        import yaml
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConfigSchema":
        """Load config from dictionary."""
        return cls(**data)

    def to_yaml(self, path: Path) -> None:
        """Save config to YAML file."""
        import yaml
        data = self.model_dump(mode="json")
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)
