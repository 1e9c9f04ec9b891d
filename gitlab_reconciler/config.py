"""Configuration models and environment variable parsing for gitlab_reconciler."""

import json
import os
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, HttpUrl, SecretStr, field_validator

from gitlab_reconciler.exceptions import ConfigurationError

# Load environment variables from .env file if it exists
load_dotenv()

DEFAULT_BASE_URL = "https://gitlab.com/api/v4"


class GitLabConfig(BaseModel):
    """Connection settings for a GitLab instance."""

    token: SecretStr = Field(..., description="GitLab personal or project access token")
    base_url: HttpUrl = Field(
        default=DEFAULT_BASE_URL, description="GitLab REST API v4 base URL"
    )

    @field_validator("token")
    def validate_token(cls, v: SecretStr) -> SecretStr:
        """Validate that the token is not empty."""
        value = v.get_secret_value()
        if not value or value.strip() == "":
            raise ValueError("GitLab token cannot be empty")
        return SecretStr(value.strip())


class ClientConfig(BaseModel):
    """Configuration for HTTP client behavior."""

    timeout_seconds: float = Field(
        default=30.0, gt=0, le=600, description="Request timeout in seconds"
    )
    retry_attempts: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Number of retry attempts for failed requests",
    )
    retry_delay: float = Field(
        default=1.0,
        ge=0.0,
        le=30.0,
        description="Initial delay between retries in seconds",
    )
    rate_limit_per_minute: int = Field(
        default=600, ge=1, description="Maximum requests per minute"
    )
    page_size: int = Field(
        default=20,
        ge=1,
        le=100,
        description="Items requested per page when draining listings",
    )


class PollingConfig(BaseModel):
    """Configuration for waiting on asynchronous remote operations."""

    interval: float = Field(
        default=3.0, gt=0, description="Seconds between completion probes"
    )
    initial_delay: float = Field(
        default=5.0, ge=0, description="Grace period before the first probe"
    )
    timeout: float = Field(
        default=600.0, gt=0, description="Overall deadline in seconds"
    )


class LoggingConfig(BaseModel):
    """Configuration for structured logging."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format (json or text)")

    @field_validator("level")
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {', '.join(sorted(valid_levels))}")
        return v.upper()

    @field_validator("format")
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        if v.lower() not in {"json", "text"}:
            raise ValueError("Log format must be 'json' or 'text'")
        return v.lower()


class Config(BaseModel):
    """Main configuration for the reconciler."""

    model_config = ConfigDict(validate_assignment=True)

    gitlab: GitLabConfig
    client: ClientConfig = Field(default_factory=ClientConfig)
    polling: PollingConfig = Field(default_factory=PollingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls) -> "Config":
        """Create configuration from environment variables.

        Returns:
            Config instance populated from environment variables.

        Raises:
            ConfigurationError: If required environment variables are missing.
        """
        token = os.getenv("GITLAB_TOKEN")
        if not token:
            raise ConfigurationError("GITLAB_TOKEN environment variable is required")

        base_url = os.getenv("GITLAB_BASE_URL", DEFAULT_BASE_URL)

        return cls(
            gitlab=GitLabConfig(token=token, base_url=base_url),
            client=ClientConfig(
                timeout_seconds=float(os.getenv("GITLAB_TIMEOUT_SECONDS", "30")),
                retry_attempts=int(os.getenv("GITLAB_RETRY_ATTEMPTS", "3")),
                retry_delay=float(os.getenv("GITLAB_RETRY_DELAY", "1.0")),
                rate_limit_per_minute=int(os.getenv("GITLAB_RATE_LIMIT_PER_MINUTE", "600")),
                page_size=int(os.getenv("GITLAB_PAGE_SIZE", "20")),
            ),
            polling=PollingConfig(
                interval=float(os.getenv("GITLAB_POLL_INTERVAL", "3")),
                initial_delay=float(os.getenv("GITLAB_POLL_INITIAL_DELAY", "5")),
                timeout=float(os.getenv("GITLAB_POLL_TIMEOUT", "600")),
            ),
            logging=LoggingConfig(
                level=os.getenv("LOG_LEVEL", "INFO"),
                format=os.getenv("LOG_FORMAT", "json"),
            ),
        )

    @classmethod
    def from_file(cls, config_path: Path) -> "Config":
        """Create configuration from a YAML or JSON file.

        Args:
            config_path: Path to the configuration file

        Returns:
            Config instance populated from the file

        Raises:
            ConfigurationError: If the file format is unsupported or cannot be parsed
            FileNotFoundError: If the configuration file doesn't exist
        """
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        file_extension = config_path.suffix.lower()

        try:
            if file_extension == ".json":
                with open(config_path) as f:
                    config_data = json.load(f)
            elif file_extension in [".yaml", ".yml"]:
                with open(config_path) as f:
                    config_data = yaml.safe_load(f)
            else:
                raise ConfigurationError(
                    f"Unsupported configuration file format: {file_extension}. Supported formats: .json, .yaml, .yml"
                )

            return cls(**config_data)

        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in configuration file: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file: {e}") from e
