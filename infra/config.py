"""
Configuration Manager
---------------------
Loads configuration from YAML with environment variable overrides.

Rules:
- Secrets never in config files; they come from the environment (or .env)
- SENTINEL_<SECTION>_<KEY> overrides 'section.key' from the file
- Override values are parsed as YAML scalars ("3" -> 3, "false" -> False)
"""

from pathlib import Path
from typing import Any, Dict, Optional
import os

from dotenv import load_dotenv
import yaml

from .logging import get_logger

ENV_PREFIX = "SENTINEL_"


class ConfigManager:
    """
    Centralized configuration management.
    Loads configuration from YAML with environment variable overrides.
    """

    def __init__(self, config_path: str = "config.yaml", env_file: Optional[str] = ".env"):
        self._config_path = Path(config_path)
        self._config: Dict[str, Any] = {}
        self._logger = get_logger("infra.config")

        if env_file and Path(env_file).exists():
            load_dotenv(env_file, override=False)
            self._logger.debug(f"Loaded environment from {env_file}")

        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from file."""
        if self._config_path.exists():
            with open(self._config_path, "r", encoding="utf-8") as f:
                self._config = yaml.safe_load(f) or {}
            self._logger.info(f"Loaded config from {self._config_path}")
        else:
            self._config = {}
            self._logger.warning(f"Config file not found: {self._config_path}")

    @staticmethod
    def env_key(key: str) -> str:
        return f"{ENV_PREFIX}{key.upper().replace('.', '_')}"

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value.
        Supports dot notation: 'section.key'
        Environment variables override file config.
        """
        env_value = os.getenv(self.env_key(key))
        if env_value is not None:
            try:
                return yaml.safe_load(env_value)
            except yaml.YAMLError:
                return env_value

        value: Any = self._config
        for part in key.split("."):
            if isinstance(value, dict) and part in value:
                value = value[part]
            else:
                return default

        return value

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value (runtime only, not persisted)."""
        parts = key.split(".")
        config = self._config

        for part in parts[:-1]:
            config = config.setdefault(part, {})

        config[parts[-1]] = value

    def get_section(self, section: str) -> Dict[str, Any]:
        """Get an entire configuration section."""
        return dict(self._config.get(section) or {})
