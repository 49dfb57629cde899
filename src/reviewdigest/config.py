"""Configuration management for Review Digest.

This module defines the configuration schema using Pydantic settings.
All values come from environment variables; there is no configuration file.

Configuration loading priority (highest to lowest):
1. Programmatic overrides (passed to the config constructors)
2. Environment variables
3. Default values defined in this module

Environment variables:
    GITLAB_BASE_URL="https://gitlab.example.com"
    GITLAB_TOKEN="glpat-..."
    GITLAB_PROJECT_ID="group/project"
    SLACK_WEBHOOK_URL="https://hooks.slack.com/services/..."
    DIGEST_SCHEDULE__HOUR=11
    DIGEST_LOGGING__FORMAT=console
    RELAY_BOT_TOKEN="123456:ABC..."
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigError(Exception):
    """Raised when startup configuration is missing or invalid.

    Configuration errors are fatal: the process reports them and exits.
    """

    pass


class GitLabConfig(BaseSettings):
    """GitLab API configuration.

    Attributes:
        base_url: GitLab instance URL, with or without the /api/v4 suffix
        token: Personal or project access token
        project_id: Numeric project ID or "group/project" path
        per_page: Merge requests requested per page
        max_pages: Upper bound on pages fetched in one listing
        timeout_seconds: HTTP request timeout in seconds
    """

    model_config = SettingsConfigDict(
        env_prefix="GITLAB_",
        extra="forbid",
    )

    base_url: str = Field(description="GitLab base URL")
    token: str = Field(min_length=1, description="GitLab API token")
    project_id: str = Field(min_length=1, description="Project ID or path")
    per_page: int = Field(default=50, ge=1, le=100)
    max_pages: int = Field(default=20, ge=1, le=1000)
    timeout_seconds: int = Field(default=30, ge=1, le=300)

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Validate the base URL uses an HTTP scheme."""
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Invalid GitLab base URL: {v!r}. Must start with http:// or https://")
        return v.rstrip("/")


class SlackConfig(BaseSettings):
    """Slack incoming webhook configuration.

    Attributes:
        webhook_url: Incoming webhook URL of the target channel
        timeout_seconds: HTTP request timeout in seconds
    """

    model_config = SettingsConfigDict(
        env_prefix="SLACK_",
        extra="forbid",
    )

    webhook_url: str = Field(min_length=1, description="Slack incoming webhook URL")
    timeout_seconds: int = Field(default=30, ge=1, le=300)


class ScheduleConfig(BaseSettings):
    """Daily digest schedule.

    The UTC offset is explicit so the fire time never depends on the
    timezone of the host running the process.

    Attributes:
        hour: Hour of day (0-23) in the configured offset
        minute: Minute of hour (0-59)
        utc_offset_hours: Fixed offset from UTC, in hours
    """

    model_config = SettingsConfigDict(
        env_prefix="DIGEST_SCHEDULE__",
        extra="forbid",
    )

    hour: int = Field(default=11, ge=0, le=23)
    minute: int = Field(default=30, ge=0, le=59)
    utc_offset_hours: int = Field(default=6, ge=-12, le=14)


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
        env_prefix="DIGEST_LOGGING__",
        extra="forbid",
    )

    level: str = Field(default="INFO")
    format: str = Field(default="json")
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


class RelayLoggingConfig(LoggingConfig):
    """Logging configuration of the relay bot, read from RELAY_LOGGING__*."""

    model_config = SettingsConfigDict(
        env_prefix="RELAY_LOGGING__",
        extra="forbid",
    )


class DigestConfig(BaseSettings):
    """Root configuration of the digest service.

    Aggregates the GitLab source, the Slack sink, the schedule and logging.
    Each section reads its own environment prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="DIGEST_",
        env_nested_delimiter="__",
        extra="forbid",
    )

    gitlab: GitLabConfig = Field(default_factory=GitLabConfig)
    slack: SlackConfig = Field(default_factory=SlackConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


class RelayConfig(BaseSettings):
    """Configuration of the interactive relay bot.

    Attributes:
        bot_token: Telegram bot token
        trigger: Message prefix that marks code to run
        playground_url: Go playground compile endpoint
        api_base_url: Telegram Bot API base URL
        poll_timeout_seconds: Long-poll timeout for receiving updates
        request_timeout_seconds: Timeout for playground and send requests
    """

    model_config = SettingsConfigDict(
        env_prefix="RELAY_",
        extra="forbid",
    )

    bot_token: str = Field(min_length=1, description="Telegram bot token")
    trigger: str = Field(default="/run", min_length=1)
    playground_url: str = Field(default="https://play.golang.org/compile")
    api_base_url: str = Field(default="https://api.telegram.org")
    poll_timeout_seconds: int = Field(default=60, ge=0, le=600)
    request_timeout_seconds: int = Field(default=30, ge=1, le=300)
    logging: RelayLoggingConfig = Field(default_factory=RelayLoggingConfig)


def load_config() -> DigestConfig:
    """Load the digest service configuration from the environment.

    Returns:
        DigestConfig: Fully resolved configuration instance.

    Raises:
        ConfigError: If a required variable is missing or a value is invalid.

    Example:
        >>> config = load_config()
        >>> config.schedule.hour
        11
    """
    try:
        return DigestConfig()
    except Exception as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def load_relay_config() -> RelayConfig:
    """Load the relay bot configuration from the environment.

    Raises:
        ConfigError: If the bot token is missing or a value is invalid.
    """
    try:
        return RelayConfig()
    except Exception as e:
        raise ConfigError(f"Invalid relay configuration: {e}") from e
