"""Configuration loading and validation for the universal adapter.

Settings come from the ``UNIVERSAL_CONFIG`` environment variable (JSON) or a
YAML file, and are validated with pydantic so that typos in keys fail at cold
start instead of silently falling back to defaults.
"""

import json
import logging
import os
from functools import lru_cache
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

CONFIG_ENV = "UNIVERSAL_CONFIG"
CONFIG_PATH_ENV = "UNIVERSAL_CONFIG_PATH"
DEFAULT_CONFIG_PATH = "universal.yaml"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


class LoggingSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    level: str = Field(default="INFO", description="Root log level")
    pretty: bool = Field(default=False, description="Indented JSON for local runs")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"level must be one of {', '.join(LOG_LEVELS)}")
        return level


class SecretsSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    expiration_seconds: int = Field(default=3600, ge=0, description="Secrets cache lifetime")
    aws_name_template: str = Field(default="/universal/{package}/all")
    google_name_template: str = Field(default="universal--{package}")
    retry_attempts: int = Field(default=3, ge=1, le=10, description="Attempts on throttling")


class OpenWhiskSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    default_api_host: str = Field(default="https://localhost")

    @field_validator("default_api_host")
    @classmethod
    def validate_api_host(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("default_api_host must start with http:// or https://")
        return v.rstrip("/")


class AdapterSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    secrets: SecretsSettings = Field(default_factory=SecretsSettings)
    openwhisk: OpenWhiskSettings = Field(default_factory=OpenWhiskSettings)


def validate_config(config: Any, source: str = "configuration") -> AdapterSettings:
    """Validate a parsed configuration dictionary.

    Raises:
        ConfigurationError: If the structure or a value is invalid
    """
    if config is None:
        return AdapterSettings()
    if not isinstance(config, dict):
        raise ConfigurationError(f"{source} must be a dictionary")
    try:
        return AdapterSettings.model_validate(config)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ConfigurationError(f"Invalid {source}: {problems}") from e


def load_and_validate_config(config_path: str = DEFAULT_CONFIG_PATH) -> AdapterSettings:
    """Load and validate settings from a YAML file.

    An empty file yields the defaults.

    Raises:
        ConfigurationError: If the YAML is invalid or fails validation
        FileNotFoundError: If the file does not exist
    """
    try:
        with open(config_path, "r") as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}")
    return validate_config(config, source=config_path)


def load_settings(environ: Optional[Dict[str, str]] = None) -> AdapterSettings:
    """Resolve settings from the environment, a YAML file, or defaults.

    Raises:
        ConfigurationError: If the configured source is invalid
    """
    environ = os.environ if environ is None else environ

    config_json = environ.get(CONFIG_ENV)
    if config_json:
        try:
            config = json.loads(config_json)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {CONFIG_ENV}: {e}") from e
        logger.debug(f"Loaded configuration from {CONFIG_ENV}")
        return validate_config(config, source=CONFIG_ENV)

    config_path = environ.get(CONFIG_PATH_ENV, DEFAULT_CONFIG_PATH)
    try:
        settings = load_and_validate_config(config_path)
    except FileNotFoundError:
        if CONFIG_PATH_ENV in environ:
            raise ConfigurationError(f"Configuration file not found: {config_path}")
        return AdapterSettings()
    logger.debug(f"Loaded configuration from {config_path}")
    return settings


@lru_cache(maxsize=1)
def get_settings() -> AdapterSettings:
    """Process-wide settings, loaded once per cold start."""
    return load_settings()
