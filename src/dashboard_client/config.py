"""Configuration management for Dashboard Client.

Settings are plain pydantic models with documented defaults. They can be
loaded from an optional JSON file and overridden by environment variables.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://127.0.0.1:8000"
DEFAULT_API_VERSION = "v1"
DEFAULT_TIMEOUT_MS = 10000
DEFAULT_MAX_RETRIES = 2
DEFAULT_POLLING_INTERVAL_MS = 5000
MIN_POLLING_INTERVAL_MS = 1000
MAX_POLLING_INTERVAL_MS = 60000
VALID_LOG_LEVELS = ["debug", "info", "warning", "error"]

# Environment variable -> (section, field)
ENV_OVERRIDES = {
    "DASHBOARD_API_URL": ("api", "base_url"),
    "DASHBOARD_API_VERSION": ("api", "api_version"),
    "DASHBOARD_API_TIMEOUT_MS": ("api", "timeout_ms"),
    "DASHBOARD_MAX_RETRIES": ("retry", "max_retries"),
    "DASHBOARD_POLLING_INTERVAL_MS": ("polling", "interval_ms"),
    "DASHBOARD_LOG_LEVEL": (None, "log_level"),
}


class ConfigurationError(Exception):
    """Exception raised when configuration cannot be loaded or is invalid."""

    pass


class ApiConfig(BaseModel):
    """Configuration for the backend API connection."""

    base_url: str = Field(
        default=DEFAULT_BASE_URL, description="Backend base URL, may carry a version"
    )
    api_version: str = Field(
        default=DEFAULT_API_VERSION,
        description="API version path segment (e.g. v1) used for path collapsing",
    )
    timeout_ms: int = Field(
        default=DEFAULT_TIMEOUT_MS, description="Request timeout in milliseconds"
    )
    headers: Dict[str, str] = Field(
        default_factory=lambda: {
            "Content-Type": "application/json",
            "Accept": "application/json",
        },
        description="Default headers sent with every request",
    )

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        if not value:
            raise ValueError("base_url cannot be empty")
        return value.rstrip("/")

    @field_validator("api_version")
    @classmethod
    def strip_slashes(cls, value: str) -> str:
        return value.strip("/")

    @field_validator("timeout_ms")
    @classmethod
    def positive_timeout(cls, value: int) -> int:
        if value <= 0:
            raise ValueError(f"timeout_ms must be positive. Got: {value}")
        return value

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0


class RetryConfig(BaseModel):
    """Configuration for the two retry layers.

    Transport retries happen inside a single request; operation retries
    re-run the whole operation from the async operation controller. Worst
    case attempts are (max_retries + 1) * (operation_max_retries + 1).
    """

    max_retries: int = Field(
        default=DEFAULT_MAX_RETRIES,
        description="Transport-level retries for transient failures",
    )
    base_delay_ms: int = Field(
        default=1000, description="Transport backoff base delay in milliseconds"
    )
    operation_max_retries: int = Field(
        default=2, description="Operation-level retries in AsyncOperation"
    )
    operation_retry_delay_ms: int = Field(
        default=2000, description="Operation-level backoff base delay in milliseconds"
    )

    @field_validator(
        "max_retries", "base_delay_ms", "operation_max_retries", "operation_retry_delay_ms"
    )
    @classmethod
    def non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError(f"retry settings must not be negative. Got: {value}")
        return value


class PollingConfig(BaseModel):
    """Configuration for periodic update polling."""

    interval_ms: int = Field(
        default=DEFAULT_POLLING_INTERVAL_MS,
        description="Default polling interval in milliseconds",
    )
    page_size: int = Field(
        default=100, description="Maximum items fetched per category on each tick"
    )

    @field_validator("interval_ms")
    @classmethod
    def interval_in_range(cls, value: int) -> int:
        if value < MIN_POLLING_INTERVAL_MS or value > MAX_POLLING_INTERVAL_MS:
            raise ValueError(
                f"interval_ms must be between {MIN_POLLING_INTERVAL_MS} and "
                f"{MAX_POLLING_INTERVAL_MS}. Got: {value}"
            )
        return value


class DashboardConfig(BaseModel):
    """Top-level configuration for the dashboard data-access layer."""

    api: ApiConfig = Field(default_factory=ApiConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    polling: PollingConfig = Field(default_factory=PollingConfig)
    log_level: str = Field(default="info", description="Logging level")

    @field_validator("log_level")
    @classmethod
    def known_log_level(cls, value: str) -> str:
        value = value.lower()
        if value not in VALID_LOG_LEVELS:
            raise ValueError(
                f"log_level must be one of {VALID_LOG_LEVELS}. Got: {value}"
            )
        return value


def _apply_env_overrides(config_data: Dict[str, Any]) -> None:
    for env_name, (section, field_name) in ENV_OVERRIDES.items():
        if env_name not in os.environ:
            continue
        value = os.environ[env_name]
        if section is None:
            config_data[field_name] = value
        else:
            config_data.setdefault(section, {})[field_name] = value
        logger.debug(f"Configuration override from {env_name}")


def load_config(
    config_path: Optional[Union[str, Path]] = None, use_env: bool = True
) -> DashboardConfig:
    """Load configuration from an optional JSON file and environment variables.

    Args:
        config_path: Path to a JSON config file (optional)
        use_env: Whether environment variables override file values

    Returns:
        DashboardConfig instance

    Raises:
        ConfigurationError: If the file is missing, not valid JSON, or values
            fail validation

    Environment Variables:
        DASHBOARD_API_URL: Backend base URL
        DASHBOARD_API_VERSION: API version segment
        DASHBOARD_API_TIMEOUT_MS: Request timeout in milliseconds
        DASHBOARD_MAX_RETRIES: Transport retry count
        DASHBOARD_POLLING_INTERVAL_MS: Default polling interval
        DASHBOARD_LOG_LEVEL: Logging level
    """
    config_data: Dict[str, Any] = {}

    if config_path is not None:
        path = Path(config_path).expanduser()
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}")
        try:
            with open(path) as f:
                config_data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in configuration file: {e}")
        if not isinstance(config_data, dict):
            raise ConfigurationError(
                f"Configuration file must contain a JSON object: {path}"
            )

    if use_env:
        _apply_env_overrides(config_data)

    try:
        return DashboardConfig.model_validate(config_data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}")


def configure_logging(level: Union[str, DashboardConfig] = "info") -> None:
    """Configure root logging for hosts embedding the client.

    Args:
        level: Level name, or a DashboardConfig whose log_level is used
    """
    if isinstance(level, DashboardConfig):
        level = level.log_level
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
