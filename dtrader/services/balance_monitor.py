"""
Balance monitor service entry point.

This service:
- Connects to the Gate.io WebSocket and keeps the session alive
- Subscribes to authenticated spot balance updates
- Logs the configured currency's balance on every update
- Logs session status every 30 seconds

Usage:
    dtrader-balance-monitor

    Or as a module:
    python -m dtrader.services.balance_monitor

Environment Variables:
    GATEIO_API_KEY: Public API key (required)
    GATEIO_API_SECRET: API secret (required)
    LOG_LEVEL: Logging level (default: INFO)
    LOG_FORMAT: json or text (default: json)
    CONFIG_PATH: Path to config directory (default: config)

Exit codes:
    0: Graceful shutdown after SIGINT/SIGTERM
    1: Startup failure, or the session could not recover
"""

import asyncio
import os
import sys
from pathlib import Path
from typing import Any, Callable, Optional

import structlog

from dtrader import __version__
from dtrader.adapters.gateio import GateIOWebSocketSession
from dtrader.config.models import AppConfig
from dtrader.exceptions import SessionError
from dtrader.services.base import ServiceRunner, setup_logging

logger = structlog.get_logger(__name__)


class SessionTerminatedError(RuntimeError):
    """The session stopped recovering while the service was running."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Session terminated: {reason}")


class BalanceMonitorService(ServiceRunner):
    """
    Keeps one Gate.io session alive and reports its balance and status.

    Attributes:
        session: The exchange session (None until initialized).
        balance_updates: Number of balance updates received.
    """

    def __init__(
        self,
        config_path: Path | str = "config",
        config: Optional[AppConfig] = None,
        connect_factory: Optional[Callable[..., Any]] = None,
    ) -> None:
        """Initialize the balance monitor service."""
        super().__init__(config_path, config)
        self.session: Optional[GateIOWebSocketSession] = None
        self.balance_updates = 0
        self._connect_factory = connect_factory
        self._status_task: Optional[asyncio.Task] = None
        self._balance_task: Optional[asyncio.Task] = None

    @property
    def service_name(self) -> str:
        """Return service name."""
        return "balance-monitor"

    async def _initialize(self) -> None:
        """Create the exchange session."""
        if self.config is None:
            raise RuntimeError("Configuration not loaded")

        exchange_name = self.config.service.exchange
        exchange_config = self.config.get_exchange(exchange_name)
        if exchange_config is None or not exchange_config.enabled:
            raise RuntimeError(f"Exchange not enabled: {exchange_name}")

        credentials = self.config.credentials
        if credentials is not None:
            self.logger.info("credentials_loaded", api_key=credentials.masked_key)

        self.session = GateIOWebSocketSession.from_config(
            exchange_config,
            credentials=credentials,
            connect_factory=self._connect_factory,
        )
        self.logger.info("session_created", exchange=exchange_name, url=self.session.url)

    async def _run(self) -> None:
        """Connect, then report until shutdown or until the session gives up."""
        if self.session is None or self.config is None:
            raise RuntimeError("Service not properly initialized")

        await self.session.connect()
        self.logger.info("session_ready", exchange=self.session.exchange_name)

        self._status_task = asyncio.create_task(
            self._status_loop(self.config.service.status_interval_seconds)
        )
        self._balance_task = asyncio.create_task(self._consume_balances(self.session))

        shutdown = asyncio.create_task(self.shutdown_event.wait())
        terminal = asyncio.create_task(self.session.wait_terminal())
        try:
            await asyncio.wait({shutdown, terminal}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            shutdown.cancel()
            terminal.cancel()

        if not self.shutdown_event.is_set() and terminal.done() and not terminal.cancelled():
            reason = terminal.result()
            self.logger.error(
                "session_terminated",
                exchange=self.session.exchange_name,
                reason=reason,
                **self.session.get_reconnect_status().model_dump(),
            )
            raise SessionTerminatedError(reason)

    async def _status_loop(self, interval: float) -> None:
        """Log session status every interval seconds."""
        try:
            while not self.shutdown_event.is_set():
                await asyncio.sleep(interval)
                self.log_status()
        except asyncio.CancelledError:
            self.logger.debug("status_loop_cancelled")
            raise

    def log_status(self) -> None:
        """Log one status line."""
        if self.session is None:
            return

        status = self.session.get_status()
        reconnect = self.session.get_reconnect_status()
        balance = self.session.latest_balance
        last_ping = self.session.last_ping

        self.logger.info(
            "session_status",
            connected=status.connected,
            authenticated=status.authenticated,
            reconnecting=status.reconnecting,
            reconnect_attempts=f"{reconnect.attempts}/{reconnect.max_attempts}",
            last_latency_ms=round(last_ping.latency_ms, 2) if last_ping else None,
            balance=f"{balance.total:.6f}" if balance else None,
            currency=balance.currency if balance else None,
            balance_updates=self.balance_updates,
        )

    async def _consume_balances(self, session: GateIOWebSocketSession) -> None:
        """Count balance updates from the session stream."""
        try:
            async for snapshot in session.stream_balances():
                self.balance_updates += 1
                self.logger.debug(
                    "balance_received",
                    currency=snapshot.currency,
                    total=str(snapshot.total),
                )
        except asyncio.CancelledError:
            self.logger.debug("balance_consumer_cancelled")
            raise

    async def _cleanup(self) -> None:
        """Close the session and stop background tasks."""
        tasks = [t for t in (self._status_task, self._balance_task) if t is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        if self.session is not None:
            try:
                await self.session.close()
                self.logger.info("session_closed", exchange=self.session.exchange_name)
            except SessionError as e:
                self.logger.error(
                    "session_close_error",
                    exchange=self.session.exchange_name,
                    error=str(e),
                )
                raise


async def main(config_path: Optional[str] = None) -> int:
    """
    Main entry point.

    Returns:
        int: Process exit code.
    """
    # Set up initial logging; run() reconfigures from the loaded config
    setup_logging(os.getenv("LOG_LEVEL", "INFO"), os.getenv("LOG_FORMAT", "json"))

    config_path = config_path or os.getenv("CONFIG_PATH", "config")
    logger.info(
        "balance_monitor_starting",
        version=__version__,
        config_path=config_path,
    )

    service = BalanceMonitorService(config_path=config_path)

    try:
        await service.run()
    except Exception as e:
        logger.error("service_failed", error=str(e), error_type=type(e).__name__)
        return 1

    logger.info("balance_monitor_shutdown_complete")
    return 0


def cli() -> None:
    """Console script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
