"""Configuration management module.

This module handles loading and validating configuration from multiple sources:
- Configuration files (YAML)
- Environment variables
"""

import os
from pathlib import Path
from typing import Any

import yaml
from aiohttp import hdrs
from pydantic import BaseModel, Field, field_validator

HTTP_METHODS: tuple[str, ...] = tuple(
    str(method)
    for method in (
        hdrs.METH_GET,
        hdrs.METH_HEAD,
        hdrs.METH_POST,
        hdrs.METH_PUT,
        hdrs.METH_PATCH,
        hdrs.METH_DELETE,
        hdrs.METH_OPTIONS,
        hdrs.METH_TRACE,
        hdrs.METH_CONNECT,
    )
)


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = Field(default="0.0.0.0", description="Server bind address")
    port: int = Field(default=8080, ge=1, le=65535, description="Server port")
    keepalive_timeout: int = Field(default=75, ge=1, description="Keep-alive timeout in seconds")
    client_max_size: int = Field(
        default=10 * 1024 * 1024, ge=1, description="Maximum request body size in bytes"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format (json or text)")
    output: str = Field(default="stdout", description="Log output (stdout, stderr or file path)")
    correlation_id_header: str = Field(
        default="X-Request-ID", description="Header name for correlation ID"
    )
    redact_headers: list[str] = Field(
        default_factory=lambda: ["Authorization", "Cookie", "Set-Cookie"],
        description="Headers to redact from logs",
    )
    trace_routes: bool = Field(
        default=False, description="Log every route match attempt at DEBUG level"
    )

    @field_validator("level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v_upper


class RouterOptions(BaseModel):
    """Options applied to every route a router compiles."""

    strict: bool = Field(
        default=False, description="Trailing slash is significant for non-prefix routes"
    )
    case_sensitive: bool = Field(default=False, description="Match literal segments by case")
    merge_params: bool = Field(
        default=False, description="Merge captured params into the parent's instead of replacing"
    )


class RouteConfig(BaseModel):
    """A declarative route answering with a fixed response."""

    name: str | None = Field(default=None, description="Route name for URL generation")
    path: str = Field(description="Path template")
    methods: list[str] = Field(default_factory=lambda: ["GET"], description="HTTP methods")
    status: int = Field(default=200, ge=100, le=599, description="Response status code")
    body: str | None = Field(default=None, description="Response body")
    content_type: str = Field(default="text/plain", description="Response content type")

    @field_validator("methods")
    @classmethod
    def validate_methods(cls, v: list[str]) -> list[str]:
        """Validate methods are known HTTP verbs."""
        methods = [m.upper() for m in v]
        for method in methods:
            if method not in HTTP_METHODS:
                raise ValueError(f"Invalid HTTP method: {method}. Must be one of {HTTP_METHODS}")
        return methods


class RedirectConfig(BaseModel):
    """A declarative redirect between paths or route names."""

    source: str = Field(description="Source path or route name")
    destination: str = Field(description="Destination URL, path or route name")
    code: int = Field(default=301, description="Redirect status code")

    @field_validator("code")
    @classmethod
    def validate_code(cls, v: int) -> int:
        """Validate code is a redirect status."""
        if not 300 <= v <= 399:
            raise ValueError(f"Invalid redirect code: {v}. Must be a 3xx status")
        return v


class AppConfig(BaseModel):
    """Main application configuration."""

    environment: str = Field(default="development", description="Environment name")
    server: ServerConfig = Field(default_factory=ServerConfig)
    router: RouterOptions = Field(default_factory=RouterOptions)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    routes: list[RouteConfig] = Field(default_factory=list)
    redirects: list[RedirectConfig] = Field(default_factory=list)


class ConfigLoader:
    """Loads and validates configuration from multiple sources."""

    def __init__(self, config_path: str | None = None):
        """Initialize the configuration loader.

        Args:
            config_path: Path to configuration file. If None, uses environment variable
                        SWITCHYARD_CONFIG_PATH or defaults to config/switchyard.yaml
        """
        self.config_path = self._resolve_config_path(config_path)

    def _resolve_config_path(self, config_path: str | None) -> Path:
        """Resolve configuration file path."""
        if config_path:
            return Path(config_path)

        env_path = os.getenv("SWITCHYARD_CONFIG_PATH")
        if env_path:
            return Path(env_path)

        # Try environment-specific config first
        env = os.getenv("SWITCHYARD_ENV", "development")
        env_specific = Path(f"config/switchyard.{env}.yaml")
        if env_specific.exists():
            return env_specific

        return Path("config/switchyard.yaml")

    def load(self) -> AppConfig:
        """Load and validate configuration.

        Returns:
            Validated AppConfig instance

        Raises:
            ValueError: If configuration is invalid
        """
        config_dict = self._load_from_file()
        config_dict = self._override_from_env(config_dict)

        try:
            config = AppConfig(**config_dict)
        except Exception as e:
            raise ValueError(f"Configuration validation failed: {e}") from e

        return config

    def _load_from_file(self) -> dict[str, Any]:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            # Missing file means defaults
            return {}

        with open(self.config_path) as f:
            config_dict = yaml.safe_load(f) or {}

        return config_dict

    def _override_from_env(self, config_dict: dict[str, Any]) -> dict[str, Any]:
        """Override configuration with environment variables.

        Environment variables follow the pattern: SWITCHYARD_<SECTION>_<KEY>
        For example: SWITCHYARD_SERVER_PORT=8080
        """
        # Server config
        if host := os.getenv("SWITCHYARD_SERVER_HOST"):
            config_dict.setdefault("server", {})["host"] = host
        if port := os.getenv("SWITCHYARD_SERVER_PORT"):
            config_dict.setdefault("server", {})["port"] = int(port)

        # Logging config
        if log_level := os.getenv("SWITCHYARD_LOG_LEVEL"):
            config_dict.setdefault("logging", {})["level"] = log_level
        if log_format := os.getenv("SWITCHYARD_LOG_FORMAT"):
            config_dict.setdefault("logging", {})["format"] = log_format
        if trace := os.getenv("SWITCHYARD_LOG_TRACE_ROUTES"):
            config_dict.setdefault("logging", {})["trace_routes"] = trace.lower() == "true"

        # Router options
        for key in ("strict", "case_sensitive", "merge_params"):
            if value := os.getenv(f"SWITCHYARD_ROUTER_{key.upper()}"):
                config_dict.setdefault("router", {})[key] = value.lower() == "true"

        # Environment
        if env := os.getenv("SWITCHYARD_ENV"):
            config_dict["environment"] = env

        return config_dict


def load_config(config_path: str | None = None) -> AppConfig:
    """Load configuration (convenience function).

    Args:
        config_path: Optional path to configuration file

    Returns:
        Validated AppConfig instance
    """
    loader = ConfigLoader(config_path)
    return loader.load()
