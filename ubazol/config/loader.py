"""
Configuration loader with environment variable handling.

Priority (highest to lowest):
1. OS environment variables (UBAZOL_*)
2. .env.local / .env files (loaded into the process env, never
   overriding variables that are already set)
3. config.yaml (optional)
4. Schema defaults
"""

import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from dotenv import load_dotenv
import yaml


ENV_FILES = (".env.local", ".env")

# env var -> (block, field)
ENV_OVERRIDES = {
    "UBAZOL_STORAGE_BACKEND": ("storage", "backend"),
    "UBAZOL_STORAGE_PATH": ("storage", "path"),
    "UBAZOL_TIMEZONE": ("app", "timezone"),
    "UBAZOL_LOG_LEVEL": ("logging", "log_level"),
}


def load_env_files(directories: Iterable[Path]) -> List[Path]:
    """
    Load .env.local then .env from each directory, in order.

    Returns:
        The env files that were found and loaded
    """
    loaded: List[Path] = []
    for directory in directories:
        for name in ENV_FILES:
            env_file = Path(directory) / name
            if env_file.is_file():
                load_dotenv(env_file, override=False)
                loaded.append(env_file)
    return loaded


def apply_env_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    """Copy non-empty UBAZOL_* variables into their config blocks."""
    for env_name, (block, field) in ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value is None or not value.strip():
            continue
        section = config.get(block)
        if not isinstance(section, dict):
            section = config[block] = {}
        section[field] = value.strip()
    return config


class ConfigLoader:
    """Reads config_dir/config.yaml plus env files in config_dir."""

    def __init__(self, config_dir: Path = Path("config")):
        self.config_dir = Path(config_dir)
        self.config_file = self.config_dir / "config.yaml"

    def load(self) -> Dict[str, Any]:
        """
        Merged, unvalidated configuration mapping.

        Raises:
            ValueError: config.yaml does not hold a mapping
        """
        config: Dict[str, Any] = {}

        if self.config_file.exists():
            with open(self.config_file, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f)
            if loaded is not None and not isinstance(loaded, dict):
                raise ValueError(f"Configuration file must hold a mapping: {self.config_file}")
            config = loaded or {}

        load_env_files([self.config_dir])
        return apply_env_overrides(config)

    def load_and_validate(self):
        """
        Returns:
            ConfigSchema instance

        Raises:
            ValueError: if any value fails validation
        """
        from .schema import ConfigSchema

        config_dict = self.load()
        try:
            return ConfigSchema(**config_dict)
        except Exception as e:
            raise ValueError(f"Configuration validation failed: {e}") from e


def load_config(config_dir: Optional[Path] = None):
    """
    Load and validate configuration.

    Args:
        config_dir: Directory holding config.yaml. None means schema
            defaults plus env files found in the working directory and
            its config/ subdirectory

    Returns:
        Validated ConfigSchema instance
    """
    if config_dir is not None:
        return ConfigLoader(config_dir).load_and_validate()

    from .schema import ConfigSchema

    cwd = Path.cwd()
    load_env_files([cwd, cwd / "config"])
    try:
        return ConfigSchema(**apply_env_overrides({}))
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}") from e
