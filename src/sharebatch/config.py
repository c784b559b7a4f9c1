"""
Configuration management for the sharebatch transport.

Supports configuration via environment variables and .env files. A
TransportConfig instance is a read-only snapshot handed to each component
at construction.
"""

from typing import Any, Callable, Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class TransportConfig(BaseSettings):
    """
    Configuration settings for the sharebatch transport.

    All settings can be configured via environment variables with the SHAREBATCH_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="SHAREBATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
    )

    # Endpoint settings
    base_url: Optional[str] = Field(
        default=None,
        description="Absolute site URL used to resolve relative request URLs"
    )

    # Header settings
    headers: Dict[str, str] = Field(
        default_factory=dict,
        description="Headers sent with every request (overridden per call)"
    )
    client_tag_prefix: str = Field(
        default="ShareBatchPy",
        description="Prefix of the X-ClientService-ClientTag header"
    )
    client_tag_max_length: int = Field(
        default=32,
        ge=1,
        description="Maximum length of the client tag header value"
    )

    # Retry settings
    max_attempts: int = Field(
        default=7,
        ge=1,
        description="Maximum attempts for throttled or unavailable requests"
    )
    initial_retry_delay_ms: int = Field(
        default=100,
        ge=1,
        description="First backoff delay, doubled after each retry"
    )

    # HTTP settings
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for the default HTTPX transport"
    )

    # Logging settings
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format"
    )

    # Factory for the default underlying transport
    transport_factory: Optional[Callable[[], Any]] = Field(
        default=None,
        exclude=True,
        description="Builds the underlying transport when none is supplied"
    )


# Global config instance
_config: Optional[TransportConfig] = None


def get_config() -> TransportConfig:
    """Get or create the global configuration instance."""
    global _config
    if _config is None:
        _config = TransportConfig()
    return _config


def set_config(config: TransportConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
