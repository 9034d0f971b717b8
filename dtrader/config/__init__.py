"""
Configuration management for DTrader.

This module handles loading and validating configuration from YAML files.
All configuration values are validated using Pydantic models to ensure
type safety and catch configuration errors early.

The configuration system supports:
- Exchange WebSocket endpoint and connection lifecycle settings
- Balance subscription settings
- Service runner and logging settings
- API credentials from the environment

Configuration is loaded from YAML files in the config/ directory:
    - exchanges.yaml: Exchange connection and subscription settings
    - service.yaml: Service settings and logging (optional)

Environment variables:
    - GATEIO_API_KEY / GATEIO_API_SECRET: API credentials
    - LOG_LEVEL: Application log level
    - LOG_FORMAT: json or text

Example:
    >>> from dtrader.config import load_config, AppConfig
    >>> config = load_config()
    >>> settings = config.get_exchange("gateio").connection
    >>> print(settings.ping_interval_seconds)
    30.0

Modules:
    loader: Configuration file loading utilities
    models: Pydantic models for configuration validation
"""

from dtrader.config.loader import ConfigLoadError, ConfigLoader, load_config
from dtrader.config.models import (
    # Enums
    LogFormat,
    LogLevel,
    # Exchange config
    ConnectionSettings,
    ExchangeConfig,
    SubscriptionSettings,
    WebSocketEndpoints,
    # Credentials
    Credentials,
    # Service config
    LoggingConfig,
    ServiceSettings,
    # Root config
    AppConfig,
)

__all__: list[str] = [
    # Loader
    "load_config",
    "ConfigLoader",
    "ConfigLoadError",
    # Enums
    "LogFormat",
    "LogLevel",
    # Exchange config
    "WebSocketEndpoints",
    "ConnectionSettings",
    "SubscriptionSettings",
    "ExchangeConfig",
    # Credentials
    "Credentials",
    # Service config
    "LoggingConfig",
    "ServiceSettings",
    # Root config
    "AppConfig",
]
