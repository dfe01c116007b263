"""Configuration system for request interception.

This module provides configuration management for interception sessions,
including YAML loading, validation, and environment-specific overrides.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator

from .browser_factory import BrowserConfig

logger = logging.getLogger(__name__)


ENV_VAR = 'NETWATCH_ENV'


class SessionSettings(BaseModel):
    """Effective settings for interception sessions."""

    resolution_timeout_ms: int = Field(default=5000, ge=1, description="Bounded wait for driver acknowledgement")
    drain_timeout_ms: int = Field(default=10000, ge=0, description="How long disable waits for in-flight requests")
    navigation_timeout_ms: int = Field(default=30000, ge=1, description="Timeout for the optional starting navigation")
    navigation_wait_until: str = Field(default="networkidle", description="Playwright load state to wait for")
    default_priority: int = Field(default=0, description="Default cooperative tie-break value")

    @field_validator('navigation_wait_until')
    @classmethod
    def validate_wait_until(cls, v):
        valid = {'load', 'domcontentloaded', 'networkidle', 'commit'}
        if v not in valid:
            raise ValueError(f"navigation_wait_until must be one of: {valid}")
        return v


class InterceptionConfig(BaseModel):
    """Root configuration for the interception system."""

    environment: str = Field(default="production", description="Environment name")
    session: Dict[str, Any] = Field(default_factory=dict, description="Session settings")
    browser: Dict[str, Any] = Field(default_factory=dict, description="Browser configuration")
    environments: Dict[str, Dict[str, Any]] = Field(
        default_factory=dict,
        description="Environment-specific overrides"
    )

    @field_validator('environment')
    @classmethod
    def validate_environment(cls, v):
        valid_environments = {'production', 'staging', 'development', 'test'}
        if v not in valid_environments:
            raise ValueError(f"Environment must be one of: {valid_environments}")
        return v

    def _section(self, name: str) -> Dict[str, Any]:
        """Get a config section with environment overrides applied."""
        config = dict(getattr(self, name))
        env_config = self.environments.get(self.environment, {})
        if name in env_config:
            config.update(env_config[name])
        return config

    def get_session_settings(self) -> SessionSettings:
        """Get session settings with environment overrides applied."""
        return SessionSettings(**self._section('session'))

    def get_browser_config(self) -> BrowserConfig:
        """Get browser configuration with environment overrides applied."""
        return BrowserConfig.from_dict(self._section('browser'))


class InterceptionConfigManager:
    """Manager for interception configuration loading and caching."""

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        """Initialize configuration manager.

        Args:
            config_path: Path to config YAML file. Defaults to config/interception.yaml
        """
        if config_path is None:
            project_root = Path(__file__).parent.parent.parent
            config_path = project_root / "config" / "interception.yaml"

        self.config_path = Path(config_path)
        self._config: Optional[InterceptionConfig] = None
        self._loaded_env = None

    def load_config(self, force_reload: bool = False) -> InterceptionConfig:
        """Load configuration from YAML file.

        A missing file yields the built-in defaults.

        Raises:
            yaml.YAMLError: If YAML is invalid
            ValueError: If configuration validation fails
        """
        current_env = os.environ.get(ENV_VAR, 'production')

        if self._config is not None and not force_reload and current_env == self._loaded_env:
            return self._config

        config_data: Dict[str, Any] = {}
        if self.config_path.exists():
            try:
                with open(self.config_path, 'r') as f:
                    config_data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise yaml.YAMLError(f"Invalid YAML in {self.config_path}: {e}")
        else:
            logger.info(f"Config file {self.config_path} not found, using defaults")

        if current_env != 'production':
            config_data['environment'] = current_env

        try:
            self._config = InterceptionConfig(**config_data)
        except Exception as e:
            raise ValueError(f"Configuration validation failed: {e}")

        self._loaded_env = current_env
        return self._config

    @property
    def config(self) -> InterceptionConfig:
        """Get current configuration, loading if necessary."""
        if self._config is None:
            return self.load_config()
        return self._config

    @property
    def environment(self) -> str:
        return self.config.environment


# Global config manager instance
_config_manager: Optional[InterceptionConfigManager] = None


def get_config(config_path: Optional[Union[str, Path]] = None) -> InterceptionConfigManager:
    """Get global interception configuration manager.

    Args:
        config_path: Path to config file (only used on first call)
    """
    global _config_manager
    if _config_manager is None:
        _config_manager = InterceptionConfigManager(config_path)
    return _config_manager
