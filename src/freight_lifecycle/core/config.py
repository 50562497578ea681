"""
Configuration management for the freight lifecycle engine.

Handles loading and accessing:
- Business configuration (config.yaml)
- Environment variables
"""

from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings


class LifecycleSettings(BaseModel):
    """Tunables for the transition service."""

    max_conflict_retries: int = Field(2, ge=0)
    notifications_enabled: bool = True
    recalculations_enabled: bool = True


class LoggingSettings(BaseModel):
    """Log output settings."""

    level: str = "INFO"
    format: str = "json"


class EnvironmentSettings(BaseSettings):
    """Environment variables configuration."""

    # Database
    database_url: str = Field("sqlite:///./freight_lifecycle.db", alias="DATABASE_URL")

    # Logging overrides
    log_level: Optional[str] = Field(None, alias="LOG_LEVEL")
    log_format: Optional[str] = Field(None, alias="LOG_FORMAT")

    # Alternate config directory
    config_dir: Optional[str] = Field(None, alias="LIFECYCLE_CONFIG_DIR")

    class Config:
        """Pydantic configuration."""

        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


class ConfigManager:
    """
    Central configuration manager for the lifecycle engine.

    Loads and provides access to:
    - Business configuration from config/config.yaml
    - Environment variables from .env
    """

    def __init__(
        self,
        config_dir: Optional[Path] = None,
        env_settings: Optional[EnvironmentSettings] = None,
    ) -> None:
        """
        Initialize the configuration manager.

        Args:
            config_dir: Optional path to config directory. Defaults to
                LIFECYCLE_CONFIG_DIR, then project root/config.
            env_settings: Optional pre-built environment settings.
        """
        self._env_settings: Optional[EnvironmentSettings] = env_settings

        if config_dir is None:
            if self.env.config_dir:
                config_dir = Path(self.env.config_dir)
            else:
                # Default to config/ directory in project root
                project_root = Path(__file__).resolve().parents[3]
                config_dir = project_root / "config"

        self.config_dir = Path(config_dir)
        self._business_config: Optional[dict[str, Any]] = None

    @property
    def business_config(self) -> dict[str, Any]:
        """Load and return business configuration from config.yaml."""
        if self._business_config is None:
            config_path = self.config_dir / "config.yaml"
            if config_path.exists():
                with open(config_path, "r") as f:
                    self._business_config = yaml.safe_load(f) or {}
            else:
                self._business_config = {}
        return self._business_config

    @property
    def env(self) -> EnvironmentSettings:
        """Load and return environment settings."""
        if self._env_settings is None:
            self._env_settings = EnvironmentSettings()
        return self._env_settings

    def get_lifecycle_settings(self) -> LifecycleSettings:
        """Get transition service settings from business config."""
        return LifecycleSettings(**self.business_config.get("lifecycle", {}))

    def get_logging_settings(self) -> LoggingSettings:
        """
        Get logging settings.

        Environment variables win over the logging section of config.yaml.
        """
        settings = LoggingSettings(**self.business_config.get("logging", {}))
        if self.env.log_level:
            settings.level = self.env.log_level
        if self.env.log_format:
            settings.format = self.env.log_format
        return settings

    def get_company_info(self) -> dict[str, Any]:
        """Get company information from business config."""
        return self.business_config.get("company", {})

    def get_database_path(self) -> Path:
        """
        Resolve the SQLite file path from DATABASE_URL.

        Raises:
            ValueError: If the URL does not use the sqlite scheme
        """
        url = self.env.database_url
        prefix = "sqlite:///"
        if not url.startswith(prefix):
            raise ValueError(f"Unsupported database URL: {url}")
        return Path(url[len(prefix):])


# Global config instance
_config_manager: Optional[ConfigManager] = None


def get_config() -> ConfigManager:
    """
    Get the global configuration manager instance.

    Returns:
        ConfigManager singleton instance
    """
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager


def reset_config() -> None:
    """Drop the cached global instance so the next get_config() reloads."""
    global _config_manager
    _config_manager = None
