"""
Abstract base class for exchange sessions.

This module defines the ExchangeSession interface that exchange-specific
session implementations must follow. A session owns one persistent
connection and is responsible for keeping it alive; callers only connect,
close, and query status.

Example:
    >>> class GateIOWebSocketSession(ExchangeSession):
    ...     @property
    ...     def exchange_name(self) -> str:
    ...         return "gateio"
    ...     # ... implement other abstract methods
"""

from abc import ABC, abstractmethod

from dtrader.models.session import ReconnectStatus, SessionStatus


class ExchangeSession(ABC):
    """
    Abstract base class for exchange sessions.

    The session is responsible for:
    - Managing one WebSocket connection with automatic reconnection
    - Measuring liveness with periodic probes
    - Authenticating subscriptions when credentials are configured
    - Reporting connection and reconnect status

    Attributes:
        exchange_name: Lowercase exchange identifier (e.g., "gateio").
        is_connected: True if the socket is open.
    """

    @property
    @abstractmethod
    def exchange_name(self) -> str:
        """
        Return the lowercase exchange identifier.

        Returns:
            str: Lowercase exchange name (e.g., "gateio").
        """
        pass

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """
        Check if the socket is open.

        Note:
            This should be a fast, non-blocking check.
        """
        pass

    @abstractmethod
    async def connect(self) -> None:
        """
        Connect and wait until the session is ready.

        Idempotent: when already ready this returns immediately; when an
        attempt is in flight this waits for it.

        Raises:
            ConnectTimeoutError: If the socket did not open in time.
            TransportError: If the socket failed to open.
            AuthenticationError: If credentials were permanently rejected.
            SessionClosedError: If close() was called.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """
        Tear the session down.

        Cancels timers and scheduled reconnects, rejects pending requests,
        and waits for the transport to confirm closure. Safe to call
        multiple times.
        """
        pass

    @abstractmethod
    def get_status(self) -> SessionStatus:
        """Return connected/authenticated/reconnecting flags."""
        pass

    @abstractmethod
    def get_reconnect_status(self) -> ReconnectStatus:
        """Return reconnect attempt count, limit and progress."""
        pass
