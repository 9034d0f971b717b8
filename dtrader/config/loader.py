"""
Configuration loader for YAML-based application configuration.

This module provides utilities to load and validate configuration from YAML
files. All configuration is validated using Pydantic models to ensure type
safety and catch configuration errors early.

Configuration files expected:
    - config/exchanges.yaml: Exchange endpoint, connection and subscription settings
    - config/service.yaml: Service settings and logging format (optional)

Environment variables override:
    - GATEIO_API_KEY: Public API key
    - GATEIO_API_SECRET: API secret
    - LOG_LEVEL: Application log level
    - LOG_FORMAT: Log output format (json or text)

Example:
    >>> from dtrader.config.loader import load_config
    >>> config = load_config("config")
    >>> print(config.get_enabled_exchanges())
    ['gateio']
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from dtrader.config.models import (
    AppConfig,
    ConnectionSettings,
    Credentials,
    ExchangeConfig,
    LogFormat,
    LoggingConfig,
    LogLevel,
    ServiceSettings,
    SubscriptionSettings,
    WebSocketEndpoints,
)

API_KEY_ENV = "GATEIO_API_KEY"
API_SECRET_ENV = "GATEIO_API_SECRET"


class ConfigLoadError(Exception):
    """
    Raised when configuration loading fails.

    Attributes:
        message: Error message describing what went wrong.
        file_path: Path to the file that caused the error, if applicable.
        cause: Original exception that caused the error, if any.
    """

    def __init__(
        self,
        message: str,
        file_path: Optional[Path] = None,
        cause: Optional[Exception] = None,
    ):
        """
        Initialize ConfigLoadError.

        Args:
            message: Error message.
            file_path: Path to the problematic file.
            cause: Original exception.
        """
        self.message = message
        self.file_path = file_path
        self.cause = cause
        super().__init__(message)


class ConfigLoader:
    """
    Loads and validates application configuration from YAML files.

    Expects the following directory structure:
        config/
        ├── exchanges.yaml    - Exchange connections and subscriptions
        └── service.yaml      - Service settings (optional)

    Example:
        >>> loader = ConfigLoader("config")
        >>> config = loader.load()
        >>> print(config.exchanges.keys())
        dict_keys(['gateio'])
    """

    def __init__(self, config_dir: Path | str = "config"):
        """
        Initialize config loader.

        Args:
            config_dir: Path to configuration directory (default: 'config').

        Raises:
            ConfigLoadError: If config directory does not exist.
        """
        self.config_dir = Path(config_dir)
        if not self.config_dir.exists():
            raise ConfigLoadError(
                f"Configuration directory not found: {self.config_dir}",
                file_path=self.config_dir,
            )
        if not self.config_dir.is_dir():
            raise ConfigLoadError(
                f"Configuration path is not a directory: {self.config_dir}",
                file_path=self.config_dir,
            )

    def _load_yaml(self, filename: str, required: bool = True) -> Dict[str, Any]:
        """
        Load a YAML file from the config directory.

        Args:
            filename: Name of YAML file (e.g., 'exchanges.yaml').
            required: Whether a missing file is an error.

        Returns:
            Dict containing parsed YAML content (empty for a missing
            optional file).

        Raises:
            ConfigLoadError: If file not found, empty, or invalid YAML.
        """
        file_path = self.config_dir / filename
        if not file_path.exists():
            if not required:
                return {}
            raise ConfigLoadError(
                f"Configuration file not found: {file_path}",
                file_path=file_path,
            )

        try:
            with open(file_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigLoadError(
                f"Invalid YAML syntax in {file_path}: {e}",
                file_path=file_path,
                cause=e,
            ) from e
        except OSError as e:
            raise ConfigLoadError(
                f"Error reading {file_path}: {e}",
                file_path=file_path,
                cause=e,
            ) from e

        if data is None:
            raise ConfigLoadError(
                f"Configuration file is empty: {file_path}",
                file_path=file_path,
            )
        if not isinstance(data, dict):
            raise ConfigLoadError(
                f"Configuration file must contain a mapping: {file_path}",
                file_path=file_path,
            )
        return data

    def _load_exchanges(self) -> Dict[str, ExchangeConfig]:
        """
        Load exchange configurations from exchanges.yaml.

        Returns:
            Dict of ExchangeConfig keyed by exchange name.

        Raises:
            ConfigLoadError: If validation fails or no exchanges configured.
        """
        data = self._load_yaml("exchanges.yaml")
        exchanges: Dict[str, ExchangeConfig] = {}

        try:
            raw_exchanges = data.get("exchanges") or {}
            for exchange_name, exchange_data in raw_exchanges.items():
                exchange_data = exchange_data or {}
                ws_data = exchange_data.get("websocket") or {}
                conn_data = exchange_data.get("connection") or {}
                sub_data = exchange_data.get("subscription") or {}

                exchanges[exchange_name] = ExchangeConfig(
                    enabled=exchange_data.get("enabled", True),
                    websocket=WebSocketEndpoints(**ws_data),
                    connection=ConnectionSettings(**conn_data),
                    subscription=SubscriptionSettings(**sub_data),
                )

        except ValidationError as e:
            raise ConfigLoadError(
                f"Invalid exchange configuration: {e}",
                file_path=self.config_dir / "exchanges.yaml",
                cause=e,
            ) from e

        if not exchanges:
            raise ConfigLoadError(
                "No exchanges configured in exchanges.yaml",
                file_path=self.config_dir / "exchanges.yaml",
            )

        return exchanges

    def _load_service(self) -> tuple[ServiceSettings, LoggingConfig]:
        """
        Load service and logging settings from service.yaml.

        Environment variables:
            - LOG_LEVEL: Log level (overrides the file)
            - LOG_FORMAT: Log format (overrides the file)

        Returns:
            Tuple of (ServiceSettings, LoggingConfig).

        Raises:
            ConfigLoadError: If validation fails.
        """
        data = self._load_yaml("service.yaml", required=False)

        try:
            service = ServiceSettings(**(data.get("service") or {}))
            log_data = dict(data.get("logging") or {})
            log_data["level"] = self._get_log_level(log_data.get("level"))
            log_data["format"] = self._get_log_format(log_data.get("format"))
            logging_config = LoggingConfig(**log_data)
        except ValidationError as e:
            raise ConfigLoadError(
                f"Invalid service configuration: {e}",
                file_path=self.config_dir / "service.yaml",
                cause=e,
            ) from e

        return service, logging_config

    def _get_log_level(self, default: Optional[str]) -> LogLevel:
        """
        Get log level from environment.

        Environment variables:
            - LOG_LEVEL: Log level (default: value from file, else INFO)

        Returns:
            LogLevel enum value.
        """
        level_str = os.getenv("LOG_LEVEL", default or "INFO").upper()
        try:
            return LogLevel(level_str)
        except ValueError:
            return LogLevel.INFO

    def _get_log_format(self, default: Optional[str]) -> LogFormat:
        """
        Get log format from environment.

        Returns:
            LogFormat enum value.
        """
        format_str = os.getenv("LOG_FORMAT", default or "json").lower()
        try:
            return LogFormat(format_str)
        except ValueError:
            return LogFormat.JSON

    def _load_credentials(self) -> Optional[Credentials]:
        """
        Load API credentials from environment.

        Environment variables:
            - GATEIO_API_KEY: Public API key
            - GATEIO_API_SECRET: API secret

        Returns:
            Credentials, or None if either variable is unset or empty.
        """
        api_key = os.getenv(API_KEY_ENV)
        api_secret = os.getenv(API_SECRET_ENV)
        if not api_key or not api_secret:
            return None
        return Credentials(api_key=api_key, api_secret=api_secret)

    def load(self) -> AppConfig:
        """
        Load and validate all configuration files.

        This is the main entry point for loading configuration. It loads
        all YAML files, merges environment variables, and returns a fully
        validated AppConfig object.

        Returns:
            AppConfig: Validated application configuration.

        Raises:
            ConfigLoadError: If any configuration is invalid or missing, or if
                an enabled balance subscription has no credentials.

        Example:
            >>> loader = ConfigLoader("config")
            >>> config = loader.load()
            >>> print(config.get_enabled_exchanges())
        """
        try:
            exchanges = self._load_exchanges()
            service, logging_config = self._load_service()
            credentials = self._load_credentials()

            config = AppConfig(
                exchanges=exchanges,
                credentials=credentials,
                logging=logging_config,
                service=service,
            )

        except ConfigLoadError:
            raise
        except ValidationError as e:
            raise ConfigLoadError(
                f"Configuration validation failed: {e}",
                cause=e,
            ) from e
        except Exception as e:
            raise ConfigLoadError(
                f"Unexpected error loading configuration: {e}",
                cause=e,
            ) from e

        exchange = config.get_exchange(config.service.exchange)
        if exchange is not None and exchange.subscription.enabled and credentials is None:
            raise ConfigLoadError(
                f"Missing {API_KEY_ENV} or {API_SECRET_ENV} in environment variables"
            )

        return config


def load_config(config_dir: Path | str = "config") -> AppConfig:
    """
    Convenience function to load application configuration.

    This is the recommended way to load configuration in application code.

    Args:
        config_dir: Path to configuration directory (default: 'config').

    Returns:
        AppConfig: Validated application configuration.

    Raises:
        ConfigLoadError: If configuration loading fails.

    Example:
        >>> from dtrader.config import load_config
        >>> config = load_config()
        >>> config.get_exchange("gateio").websocket.url
        'wss://api.gateio.ws/ws/v4/'
    """
    loader = ConfigLoader(config_dir)
    return loader.load()
