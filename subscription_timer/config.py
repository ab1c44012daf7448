"""Configuration management - loads settings.yaml and environment variables."""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from subscription_timer.models import AppSettings

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "settings.yaml"


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""

    pass


class Config:
    """Application configuration loader.

    Loads settings.yaml and provides validated access to:
    - Timer and cache cadence
    - Lifecycle defaults (extension strategy)
    - Datastore, events and clock settings
    - Seed tenants for the in-memory datastore
    """

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to settings.yaml. If not provided, uses the CONFIG_PATH
                        env var or the settings file shipped with the project
        """
        self._config_path = self._resolve_config_path(config_path)
        self._settings: Optional[AppSettings] = None
        self._load_config()

    def _resolve_config_path(self, config_path: Optional[str]) -> Path:
        if config_path:
            return Path(config_path)

        env_path = os.getenv("CONFIG_PATH")
        if env_path:
            return Path(env_path)

        if DEFAULT_CONFIG_PATH.exists():
            return DEFAULT_CONFIG_PATH
        return Path("config/settings.yaml")

    def _load_config(self) -> None:
        """Load and validate settings.yaml."""
        if not self._config_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {self._config_path}\n"
                f"Please create config/settings.yaml or set CONFIG_PATH environment variable"
            )

        try:
            with open(self._config_path, encoding="utf-8") as f:
                raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse YAML configuration: {e}")

        if not raw_config:
            raise ConfigurationError(f"Configuration file is empty: {self._config_path}")
        if not isinstance(raw_config, dict):
            raise ConfigurationError(f"Configuration root must be a mapping: {self._config_path}")

        try:
            self._settings = AppSettings(**raw_config)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}")

    @property
    def settings(self) -> AppSettings:
        """Get validated settings."""
        if self._settings is None:
            raise ConfigurationError("Configuration not loaded")
        return self._settings

    @property
    def config_path(self) -> Path:
        return self._config_path

    @property
    def timer(self):
        return self.settings.timer

    @property
    def cache(self):
        return self.settings.cache

    @property
    def lifecycle(self):
        return self.settings.lifecycle

    @property
    def datastore(self):
        return self.settings.datastore

    @property
    def events(self):
        return self.settings.events

    @property
    def clock_mode(self) -> str:
        """Clock mode; the CLOCK_MODE env var overrides settings.yaml."""
        mode = os.getenv("CLOCK_MODE") or self.settings.clock.mode
        if mode not in ("system", "virtual"):
            raise ConfigurationError(f"Invalid CLOCK_MODE: {mode} (expected 'system' or 'virtual')")
        return mode

    def get_seed_tenant_ids(self) -> list[str]:
        """Get IDs of tenants seeded into the in-memory datastore."""
        return [tenant.tenant_id for tenant in self.settings.tenants]

    def reload(self) -> None:
        """Reload configuration from disk."""
        self._load_config()


# Global configuration instance
_config_instance: Optional[Config] = None


def get_config(config_path: Optional[str] = None) -> Config:
    """Get global configuration instance (singleton).

    Args:
        config_path: Optional path to configuration file (only used on first call)
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = Config(config_path)
    return _config_instance


def reload_config() -> None:
    """Reload global configuration from disk."""
    global _config_instance
    if _config_instance:
        _config_instance.reload()
    else:
        _config_instance = Config()


def reset_config() -> None:
    """Drop the global configuration instance (for testing)."""
    global _config_instance
    _config_instance = None
