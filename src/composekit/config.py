"""Configuration management for Composekit.

This module defines the configuration schema using Pydantic settings,
supporting TOML files, environment variables, and programmatic overrides.

Configuration loading priority (highest to lowest):
1. Programmatic overrides (passed to ComposekitConfig constructor)
2. Environment variables (COMPOSEKIT_* prefix)
3. TOML configuration file
4. Default values defined in this module

Example TOML configuration:
    [compose]
    binary = "docker-compose"
    command_timeout_seconds = 120

    [[triggers]]
    id = "poll-web"
    project_name = "web-stack"
    condition = "{{ containers | selectattr('State', 'ne', 'running') | list | length > 0 }}"

Example environment variable override:
    COMPOSEKIT_COMPOSE__BINARY="/usr/local/bin/docker-compose"
    COMPOSEKIT_TRIGGER_DEFAULTS__INTERVAL_SECONDS=30
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import tomli
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ComposeConfig(BaseSettings):
    """Docker Compose invocation configuration.

    Attributes:
        binary: Compose executable placed first on every command line
        docker_host_variable: Name of the variable carrying the Docker host
        status_stdout_variable: Name of the variable redirecting compose
            status messages to stdout
        command_timeout_seconds: Maximum duration of a single compose command
            (0 disables the timeout)
    """

    model_config = SettingsConfigDict(
        env_prefix="COMPOSEKIT_COMPOSE__",
        extra="forbid",
    )

    binary: str = Field(default="docker-compose", min_length=1)
    docker_host_variable: str = Field(default="DOCKER_HOST", min_length=1)
    status_stdout_variable: str = Field(default="COMPOSE_STATUS_STDOUT", min_length=1)
    command_timeout_seconds: int = Field(default=300, ge=0, le=86400)


class TriggerDefaults(BaseSettings):
    """Defaults applied to triggers that do not set these fields.

    Attributes:
        interval_seconds: Time between two poll cycles of a trigger
        fire_without_condition: Whether a trigger without a condition
            emits an execution on every successful poll
    """

    model_config = SettingsConfigDict(
        env_prefix="COMPOSEKIT_TRIGGER_DEFAULTS__",
        extra="forbid",
    )

    interval_seconds: float = Field(default=60.0, gt=0.0, le=86400.0)
    fire_without_condition: bool = Field(default=True)


class WebhookConfig(BaseSettings):
    """Webhook execution emitter configuration.

    Attributes:
        url: Endpoint receiving execution requests (None disables the webhook)
        auth_header: Optional Authorization header value
        timeout_seconds: Request timeout in seconds
        enabled: Send requests when True
    """

    model_config = SettingsConfigDict(
        env_prefix="COMPOSEKIT_WEBHOOK__",
        extra="forbid",
    )

    url: str | None = Field(default=None)
    auth_header: str | None = Field(default=None)
    timeout_seconds: int = Field(default=30, ge=1, le=300)
    enabled: bool = Field(default=True)


class LoggingConfig(BaseSettings):
    """Logging configuration.

    Attributes:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Log format (json or console)
        file: Optional log file path (None for stdout only)
        rotation_size_mb: Log file rotation size in megabytes
        retention_count: Number of rotated log files to keep
    """

    model_config = SettingsConfigDict(
        env_prefix="COMPOSEKIT_LOGGING__",
        extra="forbid",
    )

    level: str = Field(default="INFO")
    format: str = Field(default="console")
    file: Path | None = Field(default=None)
    rotation_size_mb: int = Field(default=50, ge=1, le=1000)
    retention_count: int = Field(default=10, ge=1, le=100)

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level is recognized."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v_upper

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format is recognized."""
        valid_formats = {"json", "console"}
        v_lower = v.lower()
        if v_lower not in valid_formats:
            raise ValueError(f"Invalid log format: {v}. Must be one of {valid_formats}")
        return v_lower


class ComposekitConfig(BaseSettings):
    """Root configuration for Composekit.

    Aggregates all subsystem configurations. ``triggers`` holds raw trigger
    definitions; they are validated into ``ComposeStatusTrigger`` objects by
    the ``watch`` command so that trigger defaults can be applied first.

    Environment variable format for nested config:
        COMPOSEKIT_<SECTION>__<KEY>=value
    """

    model_config = SettingsConfigDict(
        env_prefix="COMPOSEKIT_",
        env_nested_delimiter="__",
        extra="forbid",
    )

    compose: ComposeConfig = Field(default_factory=ComposeConfig)
    trigger_defaults: TriggerDefaults = Field(default_factory=TriggerDefaults)
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    triggers: list[dict[str, Any]] = Field(default_factory=list)


def load_config(config_path: Path | None = None) -> ComposekitConfig:
    """Load configuration from TOML file with environment variable overrides.

    Configuration search order (first found is used):
    1. config_path if explicitly provided
    2. ./composekit.toml (current directory)
    3. ~/.config/composekit/config.toml (user config directory)

    Args:
        config_path: Explicit path to TOML config file. If None, searches
                    default locations.

    Returns:
        ComposekitConfig: Fully resolved configuration instance.

    Raises:
        FileNotFoundError: If config_path is explicitly provided but doesn't exist.
        ValueError: If TOML file contains invalid configuration.
    """
    toml_data: dict[str, Any] = {}

    if config_path is not None:
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        selected_path = config_path
    else:
        search_paths = [
            Path.cwd() / "composekit.toml",
            Path.home() / ".config" / "composekit" / "config.toml",
        ]
        selected_path = None
        for path in search_paths:
            if path.exists():
                selected_path = path
                break

    if selected_path is not None:
        with open(selected_path, "rb") as f:
            toml_data = tomli.load(f)

    # Pydantic will automatically overlay environment variables
    try:
        return ComposekitConfig(**toml_data)
    except Exception as e:
        if selected_path:
            raise ValueError(
                f"Invalid configuration in {selected_path}: {e}"
            ) from e
        else:
            raise ValueError(f"Invalid configuration: {e}") from e
