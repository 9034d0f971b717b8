"""
Service runner base and logging setup.

Every long-running entry point follows the same lifecycle:

    load config -> configure logging -> _initialize() -> _run() -> _cleanup()

SIGINT and SIGTERM set ``shutdown_event``; ``_run()`` is expected to return
once it is set. ``_cleanup()`` always runs, also after a failed start.
"""

import asyncio
import logging
import signal
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import structlog

from dtrader.config.loader import load_config
from dtrader.config.models import AppConfig, LogFormat, LoggingConfig


def setup_logging(
    level: str = "INFO",
    log_format: LogFormat | str = LogFormat.JSON,
) -> None:
    """
    Configure structured logging.

    Args:
        level: Standard logging level name.
        log_format: "json" for one JSON object per line, "text" for
            human-readable console output.
    """
    format_name = getattr(log_format, "value", log_format)
    renderer = (
        structlog.dev.ConsoleRenderer(colors=False)
        if str(format_name).lower() == LogFormat.TEXT.value
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
        force=True,
    )

    # Frame-level noise from the websockets library
    logging.getLogger("websockets").setLevel(logging.WARNING)


class ServiceRunner(ABC):
    """
    Base class for long-running services.

    Attributes:
        config_path: Configuration directory.
        config: Loaded configuration (None until run() loads it).
        shutdown_event: Set when the service should stop.
        logger: Logger bound to the service name.
    """

    def __init__(self, config_path: Path | str = "config", config: Optional[AppConfig] = None):
        """
        Initialize service runner.

        Args:
            config_path: Configuration directory.
            config: Pre-loaded configuration; skips loading from config_path.
        """
        self.config_path = config_path
        self.config = config
        self.shutdown_event = asyncio.Event()
        self.logger = structlog.get_logger(self.service_name)

    @property
    @abstractmethod
    def service_name(self) -> str:
        """Service identifier used in logs."""
        pass

    @abstractmethod
    async def _initialize(self) -> None:
        """Build service components from self.config."""
        pass

    @abstractmethod
    async def _run(self) -> None:
        """Run until shutdown_event is set or the service cannot continue."""
        pass

    @abstractmethod
    async def _cleanup(self) -> None:
        """Release resources. Called once, also after failures."""
        pass

    def configure_logging(self, logging_config: LoggingConfig) -> None:
        """Apply the configured logging level and format."""
        setup_logging(logging_config.level.value, logging_config.format)

    def request_shutdown(self, reason: str = "requested") -> None:
        """Ask the service to stop."""
        if not self.shutdown_event.is_set():
            self.logger.info("shutdown_requested", service=self.service_name, reason=reason)
            self.shutdown_event.set()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_shutdown, sig.name)
            except (NotImplementedError, RuntimeError):
                self.logger.debug("signal_handler_unavailable", signal=sig.name)

    def _remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError):
                pass

    async def run(self) -> None:
        """
        Run the full service lifecycle.

        Raises:
            ConfigLoadError: If configuration could not be loaded.
            Exception: Whatever _initialize() or _run() raised.
        """
        if self.config is None:
            self.config = load_config(self.config_path)
        self.configure_logging(self.config.logging)

        self.logger.info("service_starting", service=self.service_name)
        self._install_signal_handlers()
        try:
            await self._initialize()
            await self._run()
        finally:
            self.logger.info("service_stopping", service=self.service_name)
            await self._cleanup()
            self._remove_signal_handlers()
            self.logger.info("service_stopped", service=self.service_name)
