"""Environment driven settings for the bridge, its client and the preview server.

All settings can be configured via environment variables with the prefix ``MCP_``
(``WIDGET_PREVIEW_PORT`` and ``WIDGET_MOCK_SCRIPT`` for the preview server), or
from a ``.env`` file. Numeric values that are missing, non-numeric or not
positive fall back to their defaults instead of failing.
"""

import math
from pathlib import Path
from typing import Any, Final, Literal

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_BASE_URL: Final[str] = "http://localhost:5173"
DEFAULT_ROUTE: Final[str] = "/__mcp"
DEFAULT_HOST: Final[str] = "localhost"
DEFAULT_PORT: Final[int] = 5173
DEFAULT_PREVIEW_PORT: Final[int] = 5174
DEFAULT_TIMEOUT_SECONDS: Final[float] = 5.0


def positive_number_or_default(value: Any, default: float) -> float:
    """Parse ``value`` as a positive number, falling back to ``default``."""
    if value is None or value == "":
        return default
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(parsed) or parsed <= 0:
        return default
    return parsed


class ClientSettings(BaseSettings):
    """Settings for the handshake client."""

    model_config = SettingsConfigDict(env_prefix="MCP_", env_file=".env", extra="ignore")

    base_url: str = DEFAULT_BASE_URL
    route: str = DEFAULT_ROUTE
    connect_timeout: float = DEFAULT_TIMEOUT_SECONDS
    """Seconds allowed for the initialize call."""
    request_timeout: float = DEFAULT_TIMEOUT_SECONDS
    """Seconds allowed for each call after initialize."""

    @field_validator("connect_timeout", "request_timeout", mode="before")
    @classmethod
    def _timeout_or_default(cls, value: Any) -> float:
        return positive_number_or_default(value, DEFAULT_TIMEOUT_SECONDS)

    @field_validator("base_url", "route", mode="before")
    @classmethod
    def _blank_is_unset(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_BASE_URL if info.field_name == "base_url" else DEFAULT_ROUTE
        return value


class BridgeSettings(BaseSettings):
    """Settings for the bridge server process."""

    model_config = SettingsConfigDict(env_prefix="MCP_", env_file=".env", extra="ignore")

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    route: str = DEFAULT_ROUTE
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    server_name: str = "vite"
    server_version: str = "0.3.0-streamable"

    @field_validator("port", mode="before")
    @classmethod
    def _port_or_default(cls, value: Any) -> int:
        return int(positive_number_or_default(value, DEFAULT_PORT))


class PreviewSettings(BaseSettings):
    """Settings for the widget preview server."""

    model_config = SettingsConfigDict(env_prefix="MCP_", env_file=".env", extra="ignore", populate_by_name=True)

    port: int = Field(default=DEFAULT_PREVIEW_PORT, validation_alias="WIDGET_PREVIEW_PORT")
    base_url: str = DEFAULT_BASE_URL
    route: str = DEFAULT_ROUTE
    mock_script: Path | None = Field(default=None, validation_alias="WIDGET_MOCK_SCRIPT")
    request_timeout: float = DEFAULT_TIMEOUT_SECONDS

    @field_validator("port", mode="before")
    @classmethod
    def _port_or_default(cls, value: Any) -> int:
        return int(positive_number_or_default(value, DEFAULT_PREVIEW_PORT))

    @field_validator("request_timeout", mode="before")
    @classmethod
    def _timeout_or_default(cls, value: Any) -> float:
        return positive_number_or_default(value, DEFAULT_TIMEOUT_SECONDS)
