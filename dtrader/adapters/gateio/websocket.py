"""
Gate.io WebSocket session.

Owns one WebSocket connection to the Gate.io v4 endpoint at a time and
keeps it alive. Handles the connection lifecycle, latency probes,
authenticated balance subscription, and automatic reconnection.

Connection Management:
    - Connect timeout guard (10s) and a settle delay (3s) after open before
      keepalive timers are armed
    - Application-level "server.ping" probes every 30 seconds, correlated by id
    - Auto-reconnect with exponential backoff: delay for attempt k is
      min(1s * 1.5 ** (k - 1), 30s), at most 10 attempts; a successful open
      resets the attempt counter
    - A fatal authentication failure disables reconnection permanently

Lifecycle:
    disconnected -> connecting -> open -> disconnected (lost) -> ... -> closed

All state lives on the event loop: socket events and timer tasks run
one at a time, so the session needs no locks.

Gate.io-Specific Details:
    - Single WebSocket endpoint for all channels
    - Probe: {"id": 1, "method": "server.ping", "params": []}
    - Probe ack: {"id": 1, "result": "pong"}
    - Exchange-initiated probes are answered with a probe ack

Example:
    >>> session = GateIOWebSocketSession(
    ...     url="wss://api.gateio.ws/ws/v4/",
    ...     credentials=Credentials(api_key="...", api_secret="..."),
    ... )
    >>> await session.connect()
    >>> async for balance in session.stream_balances():
    ...     print(balance.total)
"""

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

import structlog
import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from dtrader.adapters.gateio.auth import SUBSCRIBE_EVENT, UPDATE_EVENT, SubscriptionManager
from dtrader.adapters.gateio.correlator import PING_METHOD, PONG_RESULT, RequestCorrelator
from dtrader.config.models import (
    DEFAULT_GATEIO_URL,
    ConnectionSettings,
    Credentials,
    ExchangeConfig,
    SubscriptionSettings,
)
from dtrader.exceptions import (
    AuthenticationError,
    ConnectionLostError,
    ConnectTimeoutError,
    MalformedFrameError,
    ReconnectExhaustedError,
    SessionClosedError,
    SessionError,
    TransportError,
)
from dtrader.interfaces.exchange_session import ExchangeSession
from dtrader.models.balance import BalanceSnapshot
from dtrader.models.session import (
    AuthState,
    ConnectionState,
    PingResult,
    ReconnectStatus,
    SessionStatus,
)

logger = structlog.get_logger(__name__)

EXCHANGE = "gateio"
CLOSE_TIMEOUT_SECONDS = 10
BALANCE_QUEUE_SIZE = 1000

TERMINAL_CLOSED = "closed"
TERMINAL_AUTH_FAILED = "auth_failed"
TERMINAL_RECONNECT_EXHAUSTED = "reconnect_exhausted"


def compute_backoff_delay(
    attempt: int,
    base_delay: float,
    factor: float,
    max_delay: float,
) -> float:
    """
    Compute the delay before a reconnect attempt.

    Args:
        attempt: 1-based attempt number.
        base_delay: Delay before the first attempt, in seconds.
        factor: Growth factor per attempt.
        max_delay: Upper bound, in seconds.

    Returns:
        float: min(base_delay * factor ** (attempt - 1), max_delay).

    Example:
        >>> [compute_backoff_delay(k, 1.0, 1.5, 30.0) for k in (1, 2, 3)]
        [1.0, 1.5, 2.25]
    """
    if attempt < 1:
        raise ValueError(f"attempt must be >= 1, got {attempt}")
    return min(base_delay * factor ** (attempt - 1), max_delay)


class GateIOWebSocketSession(ExchangeSession):
    """
    Persistent Gate.io WebSocket session.

    Keeps at most one socket open, replaced wholesale on reconnect. Ping and
    subscription timers belong to the current socket and are cancelled
    whenever it goes away.

    Attributes:
        url: WebSocket endpoint URL.
        settings: Connection lifecycle settings.

    Example:
        >>> session = GateIOWebSocketSession.from_config(exchange_config, credentials)
        >>> await session.connect()
        >>> session.get_status()
        SessionStatus(connected=True, authenticated=False, reconnecting=False, ...)
        >>> await session.close()
    """

    def __init__(
        self,
        url: str = DEFAULT_GATEIO_URL,
        connection: Optional[ConnectionSettings] = None,
        credentials: Optional[Credentials] = None,
        subscription: Optional[SubscriptionSettings] = None,
        connect_factory: Optional[Callable[..., Awaitable[Any]]] = None,
    ):
        """
        Initialize session. Nothing is opened until connect() is called.

        Args:
            url: WebSocket endpoint URL.
            connection: Connection lifecycle settings (defaults apply when omitted).
            credentials: API key pair. Without credentials the session only
                keeps the connection alive; with them it also subscribes to
                balances, unless the subscription is disabled.
            subscription: Balance subscription settings.
            connect_factory: Opens a socket; called like websockets.connect.
        """
        self.url = url
        self.settings = connection or ConnectionSettings()
        self._connect_factory = connect_factory or websockets.connect

        self._correlator = RequestCorrelator(timeout=self.settings.ping_timeout_seconds)
        self._subscription: Optional[SubscriptionManager] = None
        if credentials is not None and (subscription is None or subscription.enabled):
            self._subscription = SubscriptionManager(credentials, subscription)

        self._ws: Optional[Any] = None
        self._state = ConnectionState.DISCONNECTED
        self._closing = False
        self._ready = asyncio.Event()
        self._closed = asyncio.Event()
        self._terminal = asyncio.Event()
        self._terminal_reason: Optional[str] = None

        self._reconnect_attempts = 0
        self._reconnecting = False
        self._connected_at: Optional[datetime] = None
        self._last_message_at: Optional[datetime] = None
        self._last_ping: Optional[PingResult] = None
        self._latest_balance: Optional[BalanceSnapshot] = None
        self._balances: asyncio.Queue = asyncio.Queue(maxsize=BALANCE_QUEUE_SIZE)
        self._dropped_balances = 0
        self._overflow_logged = False

        self._attempt_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._ping_task: Optional[asyncio.Task] = None
        self._subscription_task: Optional[asyncio.Task] = None
        self._close_task: Optional[asyncio.Task] = None

        logger.info(
            "websocket_session_initialized",
            exchange=EXCHANGE,
            url=url,
            ping_interval=self.settings.ping_interval_seconds,
            max_attempts=self.settings.max_reconnect_attempts,
            authenticated_variant=self._subscription is not None,
        )

    @classmethod
    def from_config(
        cls,
        exchange_config: ExchangeConfig,
        credentials: Optional[Credentials] = None,
        connect_factory: Optional[Callable[..., Awaitable[Any]]] = None,
    ) -> "GateIOWebSocketSession":
        """
        Build a session from exchange configuration.

        Args:
            exchange_config: Exchange configuration from config/exchanges.yaml.
            credentials: API key pair, if the balance variant is wanted.
            connect_factory: Optional socket factory override.

        Returns:
            GateIOWebSocketSession: A session that has not connected yet.
        """
        return cls(
            url=exchange_config.websocket.url,
            connection=exchange_config.connection,
            credentials=credentials,
            subscription=exchange_config.subscription,
            connect_factory=connect_factory,
        )

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    @property
    def exchange_name(self) -> str:
        """Return exchange identifier."""
        return EXCHANGE

    @property
    def is_connected(self) -> bool:
        """Check if the socket is open."""
        return self._state == ConnectionState.OPEN and self._ws is not None

    @property
    def is_ready(self) -> bool:
        """Check if the socket is open and keepalive timers are armed."""
        return self._ready.is_set()

    @property
    def state(self) -> ConnectionState:
        """Get the transport lifecycle state."""
        return self._state

    @property
    def auth_state(self) -> AuthState:
        """Get the authentication state."""
        if self._subscription is None:
            return AuthState.UNAUTHENTICATED
        return self._subscription.state

    @property
    def connected_at(self) -> Optional[datetime]:
        """Get when the current socket opened."""
        return self._connected_at

    @property
    def last_message_at(self) -> Optional[datetime]:
        """Get timestamp of last received message."""
        return self._last_message_at

    @property
    def last_ping(self) -> Optional[PingResult]:
        """Get the most recent successful probe."""
        return self._last_ping

    @property
    def latest_balance(self) -> Optional[BalanceSnapshot]:
        """Get the most recent balance of the configured currency."""
        return self._latest_balance

    @property
    def dropped_balances(self) -> int:
        """Get the number of balance updates dropped from a full stream queue."""
        return self._dropped_balances

    @property
    def pending_requests(self) -> int:
        """Get the number of correlated requests awaiting a response."""
        return len(self._correlator)

    @property
    def terminal_reason(self) -> Optional[str]:
        """Get why the session stopped recovering, if it did."""
        return self._terminal_reason

    def get_status(self) -> SessionStatus:
        """Return connected/authenticated/reconnecting flags."""
        auth_state = self.auth_state
        return SessionStatus(
            connected=self.is_connected,
            authenticated=auth_state == AuthState.AUTHENTICATED,
            reconnecting=self._reconnecting,
            state=self._state,
            auth_state=auth_state,
        )

    def get_reconnect_status(self) -> ReconnectStatus:
        """Return reconnect attempt count, limit and progress."""
        return ReconnectStatus(
            attempts=self._reconnect_attempts,
            max_attempts=self.settings.max_reconnect_attempts,
            reconnecting=self._reconnecting,
        )

    async def wait_terminal(self) -> str:
        """
        Wait until the session can no longer recover on its own.

        Returns:
            str: "reconnect_exhausted", "auth_failed" or "closed".
        """
        await self._terminal.wait()
        return self._terminal_reason or TERMINAL_CLOSED

    # -------------------------------------------------------------------------
    # Connect / close
    # -------------------------------------------------------------------------

    async def connect(self) -> None:
        """
        Connect and wait until the session is ready.

        Idempotent - returns at once when ready, and joins an attempt or a
        reconnect already in progress. A failed initial attempt schedules a
        reconnect in the background before raising.

        Raises:
            ConnectTimeoutError: If the socket did not open in time.
            TransportError: If the socket failed to open or was lost.
            ReconnectExhaustedError: If the joined reconnect gave up.
            AuthenticationError: If credentials were permanently rejected.
            SessionClosedError: If close() was called.
        """
        if self._closing:
            raise SessionClosedError("Session is closed")
        if self._subscription is not None and self._subscription.auth_failed:
            raise self._terminal_error()

        if self._ready.is_set():
            logger.debug("websocket_already_connected", exchange=EXCHANGE, url=self.url)
            return

        if self._reconnecting and self._reconnect_task is not None:
            await self._join(self._reconnect_task)
            if self._ready.is_set():
                return
            raise self._terminal_error()

        if self._attempt_task is None or self._attempt_task.done():
            self._attempt_task = asyncio.create_task(self._initial_attempt())
        await self._join(self._attempt_task)

    async def close(self) -> None:
        """
        Gracefully close the session.

        Cancels keepalive timers and any scheduled reconnect, rejects pending
        requests with SessionClosedError, and waits for the transport to
        confirm closure. Safe to call multiple times.
        """
        if self._state == ConnectionState.CLOSED:
            return
        if self._close_task is None:
            self._close_task = asyncio.create_task(self._close())
        await asyncio.shield(self._close_task)

    async def _close(self) -> None:
        logger.info("websocket_closing", exchange=EXCHANGE, url=self.url)
        self._closing = True
        self._state = ConnectionState.CLOSING
        self._ready.clear()

        tasks = self._cancel_tasks(
            self._attempt_task,
            self._reconnect_task,
            self._ping_task,
            self._subscription_task,
        )
        self._reconnecting = False
        self._correlator.reject_all(SessionClosedError("Connection closed by user"))

        ws = self._ws
        if ws is not None:
            try:
                await ws.close()
            except (WebSocketException, OSError) as e:
                logger.warning(
                    "websocket_close_error", exchange=EXCHANGE, url=self.url, error=str(e)
                )

        if self._reader_task is not None and not self._reader_task.done():
            try:
                await asyncio.wait_for(
                    asyncio.gather(self._reader_task, return_exceptions=True),
                    timeout=CLOSE_TIMEOUT_SECONDS,
                )
            except asyncio.TimeoutError:
                logger.warning("websocket_close_unconfirmed", exchange=EXCHANGE, url=self.url)

        await asyncio.gather(*tasks, return_exceptions=True)

        self._ws = None
        self._ping_task = None
        self._subscription_task = None
        self._state = ConnectionState.CLOSED
        self._closed.set()
        self._set_terminal(TERMINAL_CLOSED)
        logger.info("websocket_disconnected", exchange=EXCHANGE, url=self.url)

    async def _join(self, task: asyncio.Task) -> None:
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            if self._closing and task.cancelled():
                raise SessionClosedError("Session closed while connecting") from None
            raise

    def _terminal_error(self) -> SessionError:
        if self._closing:
            return SessionClosedError("Session is closed")
        if self._subscription is not None and self._subscription.auth_failed:
            return self._subscription.last_error or AuthenticationError(
                "Authentication failed"
            )
        if self._reconnect_attempts >= self.settings.max_reconnect_attempts:
            return ReconnectExhaustedError(
                f"Max reconnection attempts ({self.settings.max_reconnect_attempts}) exceeded",
                attempts=self._reconnect_attempts,
            )
        return ConnectionLostError("Connection lost")

    async def _initial_attempt(self) -> None:
        try:
            await self._establish()
        except SessionClosedError:
            raise
        except SessionError:
            self._schedule_reconnect()
            raise

    async def _establish(self) -> None:
        """
        Open one socket and arm keepalive timers after the settle delay.

        Raises:
            ConnectTimeoutError: If the open event did not arrive in time.
            TransportError: If the socket failed to open.
            ConnectionLostError: If the socket closed during the settle delay.
            SessionClosedError: If close() was called meanwhile.
        """
        self._state = ConnectionState.CONNECTING
        if self._reconnecting:
            logger.info(
                "websocket_reconnecting",
                exchange=EXCHANGE,
                url=self.url,
                attempt=self._reconnect_attempts,
                max_attempts=self.settings.max_reconnect_attempts,
            )
        else:
            logger.info("websocket_connecting", exchange=EXCHANGE, url=self.url)

        try:
            ws = await asyncio.wait_for(
                self._connect_factory(
                    self.url,
                    ping_interval=None,  # Liveness is probed with server.ping
                    ping_timeout=None,
                    close_timeout=CLOSE_TIMEOUT_SECONDS,
                    max_size=2**20,  # 1MB max message size
                ),
                timeout=self.settings.connect_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            self._mark_disconnected()
            logger.error(
                "websocket_connect_timeout",
                exchange=EXCHANGE,
                url=self.url,
                timeout_seconds=self.settings.connect_timeout_seconds,
            )
            raise ConnectTimeoutError("Connection timeout", cause=e) from e
        except (WebSocketException, OSError) as e:
            self._mark_disconnected()
            logger.error(
                "websocket_connection_failed", exchange=EXCHANGE, url=self.url, error=str(e)
            )
            raise TransportError(f"Failed to connect to Gate.io WebSocket: {e}", cause=e) from e

        if self._closing:
            await ws.close()
            raise SessionClosedError("Session closed while connecting")

        self._ws = ws
        self._state = ConnectionState.OPEN
        self._reconnect_attempts = 0
        self._connected_at = datetime.now(timezone.utc)
        self._terminal.clear()
        self._terminal_reason = None
        self._reader_task = asyncio.create_task(self._read_loop(ws))

        logger.info(
            "websocket_connected",
            exchange=EXCHANGE,
            url=self.url,
            reconnected=self._reconnecting,
        )

        await asyncio.sleep(self.settings.settle_delay_seconds)

        if self._ws is not ws or self._state != ConnectionState.OPEN:
            raise ConnectionLostError("Connection lost before keepalive started")

        self._start_keepalive()
        self._ready.set()

    def _mark_disconnected(self) -> None:
        if not self._closing:
            self._state = ConnectionState.DISCONNECTED

    # -------------------------------------------------------------------------
    # Reconnect
    # -------------------------------------------------------------------------

    def _schedule_reconnect(self) -> None:
        """Start the backoff loop unless one is running or reconnect is disabled."""
        if self._closing or self._reconnecting:
            return
        if self._subscription is not None and self._subscription.auth_failed:
            return
        if self._reconnect_attempts >= self.settings.max_reconnect_attempts:
            logger.error(
                "websocket_max_reconnect_exceeded",
                exchange=EXCHANGE,
                url=self.url,
                max_attempts=self.settings.max_reconnect_attempts,
            )
            self._set_terminal(TERMINAL_RECONNECT_EXHAUSTED)
            return

        self._reconnecting = True
        self._reconnect_task = asyncio.create_task(self._reconnect_loop())

    async def _reconnect_loop(self) -> None:
        try:
            recovered = await self._run_reconnect_attempts()
        finally:
            self._reconnecting = False

        if recovered or self._closing:
            return
        if self._subscription is not None and self._subscription.auth_failed:
            return

        logger.error(
            "websocket_max_reconnect_exceeded",
            exchange=EXCHANGE,
            url=self.url,
            max_attempts=self.settings.max_reconnect_attempts,
        )
        self._set_terminal(TERMINAL_RECONNECT_EXHAUSTED)

    async def _run_reconnect_attempts(self) -> bool:
        while self._reconnect_attempts < self.settings.max_reconnect_attempts:
            self._reconnect_attempts += 1
            attempt = self._reconnect_attempts
            delay = compute_backoff_delay(
                attempt,
                self.settings.reconnect_delay_seconds,
                self.settings.reconnect_backoff_factor,
                self.settings.max_reconnect_delay_seconds,
            )

            logger.info(
                "websocket_reconnect_scheduled",
                exchange=EXCHANGE,
                url=self.url,
                attempt=attempt,
                max_attempts=self.settings.max_reconnect_attempts,
                delay_seconds=delay,
            )
            await asyncio.sleep(delay)

            if self._closing:
                return False

            try:
                await self._establish()
            except SessionClosedError:
                return False
            except SessionError as e:
                logger.error(
                    "websocket_reconnect_failed",
                    exchange=EXCHANGE,
                    url=self.url,
                    attempt=attempt,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue

            logger.info("websocket_reconnected", exchange=EXCHANGE, url=self.url)
            return True

        return False

    def _stop_reconnection(self) -> None:
        """Disable reconnection for the rest of the session's lifetime."""
        if self._reconnect_task is not None and self._reconnect_task is not asyncio.current_task():
            self._reconnect_task.cancel()
        self._reconnect_task = None
        self._reconnecting = False
        self._reconnect_attempts = self.settings.max_reconnect_attempts
        logger.error(
            "websocket_reconnection_stopped",
            exchange=EXCHANGE,
            url=self.url,
            reason=TERMINAL_AUTH_FAILED,
        )

    def _set_terminal(self, reason: str) -> None:
        if self._terminal.is_set():
            return
        self._terminal_reason = reason
        self._terminal.set()
        logger.info("websocket_session_terminal", exchange=EXCHANGE, reason=reason)

    # -------------------------------------------------------------------------
    # Receiving
    # -------------------------------------------------------------------------

    async def _read_loop(self, ws: Any) -> None:
        try:
            while True:
                raw_message = await ws.recv()
                if self._closing:
                    continue
                self._last_message_at = datetime.now(timezone.utc)

                try:
                    await self._dispatch(raw_message)
                except MalformedFrameError as e:
                    logger.warning(
                        "websocket_invalid_json",
                        exchange=EXCHANGE,
                        url=self.url,
                        error=e.message,
                        raw=str(e.raw)[:100],
                    )
                except Exception as e:
                    logger.error(
                        "websocket_unexpected_error",
                        exchange=EXCHANGE,
                        url=self.url,
                        error=str(e),
                        error_type=type(e).__name__,
                    )

        except ConnectionClosed as e:
            logger.warning(
                "websocket_connection_closed",
                exchange=EXCHANGE,
                url=self.url,
                code=e.rcvd.code if e.rcvd is not None else None,
                reason=e.rcvd.reason if e.rcvd is not None else None,
            )
            self._handle_disconnection(ws, ConnectionLostError("Connection lost", cause=e))

        except (WebSocketException, OSError) as e:
            logger.error("websocket_error", exchange=EXCHANGE, url=self.url, error=str(e))
            self._handle_disconnection(
                ws, ConnectionLostError(f"Connection lost: {e}", cause=e)
            )

        except asyncio.CancelledError:
            logger.debug("websocket_reader_cancelled", exchange=EXCHANGE, url=self.url)
            raise

    @staticmethod
    def _decode(raw_message: Any) -> Dict[str, Any]:
        try:
            if isinstance(raw_message, (bytes, bytearray)):
                raw_message = raw_message.decode("utf-8")
            frame = json.loads(raw_message)
        except (UnicodeDecodeError, json.JSONDecodeError, TypeError) as e:
            raise MalformedFrameError(str(e), raw=raw_message, cause=e) from e

        if not isinstance(frame, dict):
            raise MalformedFrameError(
                f"Expected a JSON object, got {type(frame).__name__}", raw=raw_message
            )
        return frame

    async def _dispatch(self, raw_message: Any) -> None:
        frame = self._decode(raw_message)
        logger.debug("websocket_message_received", exchange=EXCHANGE, frame=frame)

        # Correlated responses (pongs, results, errors)
        if self._correlator.on_frame(frame):
            return

        # Balance channel: acks and pushes
        if self._subscription is not None and self._subscription.handles(frame):
            event = frame.get("event")
            if event == SUBSCRIBE_EVENT:
                self._on_subscription_ack(self._subscription, frame)
            elif event == UPDATE_EVENT:
                self._on_balance_update(self._subscription, frame)
            else:
                logger.debug("balance_channel_event_ignored", event=event)
            return

        # Exchange-initiated probe
        if frame.get("method") == PING_METHOD and frame.get("id") is not None:
            logger.debug("websocket_server_ping_received", exchange=EXCHANGE, id=frame["id"])
            await self._send_pong(frame["id"])
            return

        logger.debug("websocket_unhandled_frame", exchange=EXCHANGE, frame=frame)

    def _on_subscription_ack(
        self, subscription: SubscriptionManager, frame: Dict[str, Any]
    ) -> None:
        state = subscription.handle_ack(frame)
        if state == AuthState.AUTH_FAILED:
            self._stop_reconnection()

    def _on_balance_update(
        self, subscription: SubscriptionManager, frame: Dict[str, Any]
    ) -> None:
        snapshot = subscription.handle_update(frame)
        if snapshot is None:
            return

        self._latest_balance = snapshot
        if self._balances.full():
            self._balances.get_nowait()
            self._dropped_balances += 1
            # Warn once per overflow; a stream that drains the queue re-arms it.
            if not self._overflow_logged:
                self._overflow_logged = True
                logger.warning(
                    "balance_queue_full_dropping_oldest",
                    exchange=EXCHANGE,
                    max_size=self._balances.maxsize,
                )
        self._balances.put_nowait(snapshot)

    def _handle_disconnection(self, ws: Any, error: SessionError) -> None:
        """Tear down per-socket state and, unless disabled, schedule a reconnect."""
        if ws is not self._ws:
            return

        self._ws = None
        self._ready.clear()
        self._mark_disconnected()
        if self._subscription is not None:
            self._subscription.reset()
        self._cancel_tasks(self._ping_task, self._subscription_task)
        self._ping_task = None
        self._subscription_task = None
        self._correlator.reject_all(error)

        if self._closing:
            return

        if self._subscription is not None and self._subscription.auth_failed:
            logger.error(
                "websocket_reconnect_disabled",
                exchange=EXCHANGE,
                url=self.url,
                reason=TERMINAL_AUTH_FAILED,
            )
            self._set_terminal(TERMINAL_AUTH_FAILED)
            return

        self._schedule_reconnect()

    # -------------------------------------------------------------------------
    # Sending
    # -------------------------------------------------------------------------

    async def _send_raw(self, text: str) -> None:
        ws = self._ws
        if ws is None or self._state != ConnectionState.OPEN:
            raise ConnectionLostError("WebSocket not connected")
        try:
            await ws.send(text)
        except ConnectionClosed as e:
            raise ConnectionLostError(f"Connection lost while sending: {e}", cause=e) from e
        except (WebSocketException, OSError) as e:
            raise TransportError(f"Failed to send frame: {e}", cause=e) from e

    async def send(self, payload: Dict[str, Any]) -> None:
        """
        Send an uncorrelated frame.

        Args:
            payload: JSON-serializable frame.

        Raises:
            ConnectionLostError: If the socket is not open.
            TransportError: If sending failed.
        """
        await self._send_raw(json.dumps(payload))

    async def request(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """
        Send a correlated request and wait for its response.

        Args:
            method: Request method name.
            params: Request parameters.

        Returns:
            The response's result field.

        Raises:
            RequestTimeoutError: If no response arrived in time.
            ApiError: If the exchange answered with an error.
            ConnectionLostError: If the socket is not open or was lost.
            SessionClosedError: If close() was called meanwhile.
        """
        if not self.is_connected:
            raise ConnectionLostError("WebSocket not connected")
        return await self._correlator.request(self._send_raw, method, params)

    async def ping(self) -> PingResult:
        """
        Send a liveness probe and wait for its pong.

        Returns:
            PingResult: Round-trip latency and receive time.

        Raises:
            ProbeTimeoutError: If no pong arrived in time. The session
                is not torn down for this.
            ConnectionLostError: If the socket is not open or was lost.
        """
        if not self.is_connected:
            raise ConnectionLostError("WebSocket not connected")

        result = await self._correlator.request(self._send_raw, PING_METHOD)
        self._last_ping = result
        logger.info(
            "websocket_pong_latency",
            exchange=EXCHANGE,
            request_id=result.request_id,
            latency_ms=round(result.latency_ms, 2),
        )
        return result

    async def _send_pong(self, ping_id: Any) -> None:
        if not self.is_connected:
            logger.info("websocket_pong_skipped_not_connected", exchange=EXCHANGE, id=ping_id)
            return
        try:
            await self._send_raw(json.dumps({"id": ping_id, "result": PONG_RESULT}))
            logger.debug("websocket_pong_sent", exchange=EXCHANGE, id=ping_id)
        except TransportError as e:
            logger.error("websocket_pong_error", exchange=EXCHANGE, id=ping_id, error=str(e))

    async def subscribe_balances(self) -> bool:
        """
        Send a signed balance subscribe request.

        Returns:
            bool: True if sent, False if skipped because the socket is not open.

        Raises:
            RuntimeError: If the session has no credentials.
            TransportError: If sending failed.
        """
        if self._subscription is None:
            raise RuntimeError("Balance subscription requires credentials")
        if not self.is_connected:
            logger.info("balance_subscription_skipped_not_connected", exchange=EXCHANGE)
            return False

        await self.send(self._subscription.build_subscribe_request())
        logger.info(
            "balance_subscription_sent",
            exchange=EXCHANGE,
            channel=self._subscription.channel,
        )
        return True

    async def stream_balances(self) -> AsyncIterator[BalanceSnapshot]:
        """
        Stream balance updates of the configured currency.

        Survives reconnects; ends when the session is closed.

        Yields:
            BalanceSnapshot: Each parsed balance update.
        """
        while True:
            if not self._balances.empty():
                yield self._balances.get_nowait()
                continue
            self._overflow_logged = False
            if self._closed.is_set():
                return

            getter = asyncio.ensure_future(self._balances.get())
            closer = asyncio.ensure_future(self._closed.wait())
            try:
                await asyncio.wait({getter, closer}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                closer.cancel()
                if not getter.done():
                    getter.cancel()

            if getter.done() and not getter.cancelled():
                yield getter.result()

    # -------------------------------------------------------------------------
    # Keepalive timers
    # -------------------------------------------------------------------------

    def _start_keepalive(self) -> None:
        self._cancel_tasks(self._ping_task, self._subscription_task)
        self._ping_task = asyncio.create_task(self._ping_loop())
        self._subscription_task = None
        if self._subscription is not None:
            self._subscription_task = asyncio.create_task(
                self._subscription_cycle(self._subscription)
            )

    async def _ping_loop(self) -> None:
        """Probe now, then once per ping interval while the socket is open."""
        try:
            while self.is_connected:
                try:
                    await self.ping()
                except SessionError as e:
                    logger.warning(
                        "websocket_ping_failed",
                        exchange=EXCHANGE,
                        url=self.url,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                await asyncio.sleep(self.settings.ping_interval_seconds)
        except asyncio.CancelledError:
            logger.debug("websocket_ping_task_cancelled", exchange=EXCHANGE, url=self.url)
            raise

    async def _subscription_cycle(self, subscription: SubscriptionManager) -> None:
        """Subscribe once after the initial delay, then refresh while authenticated."""
        settings = subscription.settings
        try:
            await asyncio.sleep(settings.initial_delay_seconds)
            await self._subscribe_logged()

            while self.is_connected:
                await asyncio.sleep(settings.refresh_after_seconds)
                if self.is_connected and subscription.is_authenticated:
                    logger.info("balance_subscription_refresh", exchange=EXCHANGE)
                    await self._subscribe_logged()
        except asyncio.CancelledError:
            logger.debug("balance_subscription_task_cancelled", exchange=EXCHANGE)
            raise

    async def _subscribe_logged(self) -> None:
        try:
            await self.subscribe_balances()
        except TransportError as e:
            logger.error("balance_subscription_failed", exchange=EXCHANGE, error=str(e))

    @staticmethod
    def _cancel_tasks(*tasks: Optional[asyncio.Task]) -> List[asyncio.Task]:
        current = asyncio.current_task()
        cancelled = []
        for task in tasks:
            if task is not None and not task.done() and task is not current:
                task.cancel()
                cancelled.append(task)
        return cancelled

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"GateIOWebSocketSession(url={self.url}, "
            f"state={self._state.value}, "
            f"reconnect_attempts={self._reconnect_attempts})"
        )
