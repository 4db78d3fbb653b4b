"""
Configuration management for the query HTTP adapter process.

YAML-based configuration with environment variable overrides, validated with
Pydantic models.

Example usage:
    >>> config_manager = ConfigManager()
    >>> config = config_manager.load_config("config.yaml")
    >>> print(config.endpoint.path)

Environment variable overrides:
    - QUERY_HTTP_HOST: Overrides server.host
    - QUERY_HTTP_PORT: Overrides server.port
    - QUERY_HTTP_PATH: Overrides endpoint.path
    - QUERY_HTTP_LOG_LEVEL: Overrides logging.level
    - QUERY_HTTP_ENGINE: Overrides engine.factory
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .exceptions import ConfigurationError


DEFAULT_HOST = "localhost"
DEFAULT_PORT = 4000
DEFAULT_PATH = "/graphql"

logger = logging.getLogger(__name__)


class ServerConfig(BaseModel):
    """Server configuration section.

    Attributes:
        host (str): Bind address. Defaults to 'localhost'.
        port (int): Listen port between 1 and 65535. Defaults to 4000.
        debug (bool): Include tracebacks in rendered forwarded errors.
    """
    host: str = Field(default=DEFAULT_HOST, description="Server bind address")
    port: int = Field(default=DEFAULT_PORT, description="Server port number", ge=1, le=65535)
    debug: bool = Field(default=False, description="Enable debug mode")


class LoggingConfig(BaseModel):
    """Logging configuration section."""
    level: str = Field(default="INFO", description="Logging level")
    format_json: bool = Field(default=True, description="Emit JSON log lines")
    include_source_location: bool = Field(default=False, description="Add file/line to log lines")


class EndpointConfig(BaseModel):
    """HTTP endpoint configuration section."""
    path: str = Field(default=DEFAULT_PATH, description="Route serving GET and POST queries")

    @field_validator("path")
    @classmethod
    def _ensure_leading_slash(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError("path must start with '/'")
        return v


class EngineConfig(BaseModel):
    """Query engine configuration section.

    Attributes:
        factory (str): ``module:attribute`` naming a zero-argument callable
            that returns the query engine.
        options (dict): Static execution options handed to the engine with
            every request.
    """
    factory: str = Field(description="Import path of the engine factory, module:attribute")
    options: Dict[str, Any] = Field(default_factory=dict, description="Static execution options")

    @field_validator("factory")
    @classmethod
    def _ensure_import_path(cls, v: str) -> str:
        module, _, attribute = v.partition(":")
        if not module or not attribute:
            raise ValueError("factory must look like 'package.module:attribute'")
        return v


class Config(BaseModel):
    """Main configuration container."""
    model_config = ConfigDict(validate_assignment=True)

    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    endpoint: EndpointConfig = Field(default_factory=EndpointConfig)
    engine: EngineConfig


class ConfigManager:
    """Loads YAML configuration, applies environment overrides and validates it."""

    def __init__(self) -> None:
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")
        self.config: Optional[Config] = None

    def load_config(self, config_path: str) -> Config:
        """
        Load configuration from YAML file with environment variable overrides.

        Args:
            config_path: Path to the YAML configuration file

        Returns:
            Config: Populated configuration object

        Raises:
            FileNotFoundError: If the config file doesn't exist
            ConfigurationError: If YAML parsing or validation fails
        """
        self.logger.info(f"Loading configuration from: {config_path}")

        config_file = Path(config_path)
        if not config_file.exists():
            self.logger.error(f"Configuration file not found: {config_path}")
            raise FileNotFoundError(
                f"Configuration file not found: {config_path}\n"
                f"Please ensure the file exists and is readable."
            )

        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                yaml_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            self.logger.error(f"Invalid YAML format in {config_path}: {e}")
            raise ConfigurationError(f"Invalid YAML format in {config_path}: {e}") from e

        if yaml_data is None:
            self.logger.warning("YAML file is empty, using default configuration")
            yaml_data = {}
        if not isinstance(yaml_data, dict):
            raise ConfigurationError(f"Top level of {config_path} must be a mapping")

        yaml_data = self._apply_env_overrides(yaml_data)

        if 'engine' not in yaml_data:
            raise ConfigurationError("Missing required 'engine' section in configuration")

        try:
            config = Config(**yaml_data)
        except ValidationError as e:
            self.logger.error(f"Configuration validation failed: {e}")
            raise ConfigurationError(f"Configuration validation failed: {e}") from e

        self.logger.info("Configuration loaded and validated successfully")
        self.config = config
        return config

    def _apply_env_overrides(self, yaml_data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides to YAML data."""
        overrides = [
            ('QUERY_HTTP_HOST', 'server', 'host'),
            ('QUERY_HTTP_PORT', 'server', 'port'),
            ('QUERY_HTTP_PATH', 'endpoint', 'path'),
            ('QUERY_HTTP_LOG_LEVEL', 'logging', 'level'),
            ('QUERY_HTTP_ENGINE', 'engine', 'factory'),
        ]

        for env_name, section, key in overrides:
            if env_name not in os.environ:
                continue
            section_data = yaml_data.get(section)
            if not isinstance(section_data, dict):
                section_data = {}
                yaml_data[section] = section_data
            section_data[key] = os.environ[env_name]
            self.logger.debug(f"Applied {env_name} to {section}.{key}")

        return yaml_data
