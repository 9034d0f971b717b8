"""
Pydantic models for application configuration.

This module defines all configuration models that are validated when loading
YAML configuration files. The models ensure type safety and provide sensible
defaults for optional settings.

Configuration files:
    - config/exchanges.yaml: Exchange endpoint, connection and subscription settings
    - config/service.yaml: Service runner settings (optional)

Credentials are never read from YAML; they come from the environment
(GATEIO_API_KEY, GATEIO_API_SECRET).

Example:
    >>> from dtrader.config.models import AppConfig
    >>> config = AppConfig(...)
    >>> gateio = config.get_exchange("gateio")
    >>> gateio.connection.max_reconnect_attempts
    10
"""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator


# =============================================================================
# ENUMS
# =============================================================================


class LogFormat(str, Enum):
    """Logging format options."""

    JSON = "json"
    TEXT = "text"


class LogLevel(str, Enum):
    """Logging level options."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


# =============================================================================
# EXCHANGE CONFIGURATION
# =============================================================================


DEFAULT_GATEIO_URL = "wss://api.gateio.ws/ws/v4/"


class WebSocketEndpoints(BaseModel):
    """WebSocket endpoint URL for an exchange."""

    model_config = {"frozen": True, "extra": "forbid"}

    url: str = Field(
        default=DEFAULT_GATEIO_URL,
        description="WebSocket URL (single endpoint for all channels)",
    )

    @field_validator("url")
    @classmethod
    def validate_scheme(cls, v: str) -> str:
        """Require a ws:// or wss:// URL."""
        if not v.startswith(("ws://", "wss://")):
            raise ValueError(f"WebSocket URL must start with ws:// or wss://: {v}")
        return v


class ConnectionSettings(BaseModel):
    """
    Connection lifecycle settings.

    Backoff delay for attempt k (1-based) is
    min(reconnect_delay_seconds * reconnect_backoff_factor ** (k - 1),
    max_reconnect_delay_seconds).
    """

    model_config = {"frozen": True, "extra": "forbid"}

    connect_timeout_seconds: float = Field(
        default=10.0,
        description="Deadline for the transport open event",
        gt=0,
    )
    settle_delay_seconds: float = Field(
        default=3.0,
        description="Pause after open before arming keepalive timers",
        ge=0,
    )
    ping_interval_seconds: float = Field(
        default=30.0,
        description="Seconds between liveness probes",
        gt=0,
    )
    ping_timeout_seconds: float = Field(
        default=10.0,
        description="Deadline for a correlated response (probe or request)",
        gt=0,
    )
    reconnect_delay_seconds: float = Field(
        default=1.0,
        description="Base delay before the first reconnect attempt",
        gt=0,
    )
    reconnect_backoff_factor: float = Field(
        default=1.5,
        description="Growth factor applied per reconnect attempt",
        ge=1,
    )
    max_reconnect_delay_seconds: float = Field(
        default=30.0,
        description="Upper bound on any single reconnect delay",
        gt=0,
    )
    max_reconnect_attempts: int = Field(
        default=10,
        description="Maximum reconnection attempts before giving up",
        ge=1,
        le=100,
    )

    @model_validator(mode="after")
    def validate_delays(self) -> "ConnectionSettings":
        """Ensure the delay cap is not below the base delay."""
        if self.max_reconnect_delay_seconds < self.reconnect_delay_seconds:
            raise ValueError(
                "max_reconnect_delay_seconds must be >= reconnect_delay_seconds"
            )
        return self


class SubscriptionSettings(BaseModel):
    """Authenticated balance subscription settings."""

    model_config = {"frozen": True, "extra": "forbid"}

    enabled: bool = Field(
        default=True,
        description="Whether to authenticate and subscribe to balances",
    )
    channel: str = Field(
        default="spot.balances",
        description="Balance channel name",
        min_length=1,
    )
    currency: str = Field(
        default="USDT",
        description="Currency whose balance is reported",
        min_length=1,
    )
    initial_delay_seconds: float = Field(
        default=5.0,
        description="Delay after keepalive start before the first subscribe",
        ge=0,
    )
    refresh_after_seconds: float = Field(
        default=120.0,
        description="Re-subscribe period while authenticated",
        gt=0,
    )
    auth_failure_codes: List[int] = Field(
        default_factory=lambda: [1, 4],
        description="Subscribe-ack error codes treated as fatal credential failures",
    )

    @field_validator("currency")
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        """Currency codes are upper case on the wire."""
        return v.upper()


class ExchangeConfig(BaseModel):
    """Configuration for a single exchange."""

    model_config = {"frozen": True, "extra": "forbid"}

    enabled: bool = Field(
        default=True,
        description="Whether this exchange is enabled",
    )
    websocket: WebSocketEndpoints = Field(
        default_factory=WebSocketEndpoints,
        description="WebSocket endpoint configuration",
    )
    connection: ConnectionSettings = Field(
        default_factory=ConnectionSettings,
        description="Connection settings",
    )
    subscription: SubscriptionSettings = Field(
        default_factory=SubscriptionSettings,
        description="Balance subscription settings",
    )


# =============================================================================
# CREDENTIALS
# =============================================================================


class Credentials(BaseModel):
    """API key pair used to sign subscription requests."""

    model_config = {"frozen": True, "extra": "forbid"}

    api_key: str = Field(
        ...,
        description="Public API key (KEY field)",
        min_length=1,
    )
    api_secret: SecretStr = Field(
        ...,
        description="Secret used as the HMAC-SHA512 key",
    )

    @field_validator("api_secret")
    @classmethod
    def validate_secret(cls, v: SecretStr) -> SecretStr:
        """Reject an empty secret."""
        if not v.get_secret_value():
            raise ValueError("api_secret must not be empty")
        return v

    @property
    def masked_key(self) -> str:
        """Return the key truncated for logging."""
        return f"{self.api_key[:8]}..."


# =============================================================================
# SERVICE CONFIGURATION
# =============================================================================


class LoggingConfig(BaseModel):
    """Logging configuration."""

    model_config = {"frozen": True, "extra": "forbid"}

    format: LogFormat = Field(
        default=LogFormat.JSON,
        description="Log output format",
    )
    level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Default log level",
    )


class ServiceSettings(BaseModel):
    """Balance-monitor service settings."""

    model_config = {"frozen": True, "extra": "forbid"}

    exchange: str = Field(
        default="gateio",
        description="Exchange the service connects to",
    )
    status_interval_seconds: float = Field(
        default=30.0,
        description="Seconds between status log lines",
        gt=0,
    )


# =============================================================================
# ROOT CONFIGURATION
# =============================================================================


class AppConfig(BaseModel):
    """
    Root application configuration.

    Aggregates all configuration sections into a single validated object.

    Example:
        >>> config = AppConfig(exchanges={"gateio": ExchangeConfig()})
        >>> config.get_enabled_exchanges()
        ['gateio']
    """

    model_config = {"frozen": True, "extra": "forbid"}

    exchanges: Dict[str, ExchangeConfig] = Field(
        ...,
        description="Exchange configurations keyed by name",
    )
    credentials: Optional[Credentials] = Field(
        default=None,
        description="API credentials (required when subscription is enabled)",
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging configuration",
    )
    service: ServiceSettings = Field(
        default_factory=ServiceSettings,
        description="Service runner settings",
    )

    @model_validator(mode="after")
    def validate_config(self) -> "AppConfig":
        """Validate cross-references in configuration."""
        if self.service.exchange not in self.exchanges:
            raise ValueError(
                f"Service references unknown exchange: {self.service.exchange}"
            )
        return self

    def get_exchange(self, name: str) -> Optional[ExchangeConfig]:
        """
        Get exchange configuration by name.

        Args:
            name: Exchange name (e.g., "gateio")

        Returns:
            Optional[ExchangeConfig]: Exchange config or None if not found.
        """
        return self.exchanges.get(name)

    def get_enabled_exchanges(self) -> List[str]:
        """
        Get list of enabled exchange names.

        Returns:
            List[str]: Names of enabled exchanges.
        """
        return [name for name, config in self.exchanges.items() if config.enabled]
