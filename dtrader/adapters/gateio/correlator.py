"""
Request/response correlation for Gate.io WebSocket frames.

Every correlated request carries an integer id drawn from a counter that
starts at 1 and is never reset for the lifetime of the correlator (it
survives reconnects). The matching response is located strictly by id,
never by arrival order, so any number of requests may be outstanding.

Each pending entry is removed exactly once: when its response arrives,
when its timeout fires, or when the whole table is rejected on teardown.
Removal and completion happen together, so a waiter cannot be completed
twice.

Frame formats:
    Request:   {"id": 7, "method": "server.ping", "params": []}
    Pong:      {"id": 7, "result": "pong"}
    Response:  {"id": 8, "result": {...}}
    Error:     {"id": 8, "error": {"code": 2, "message": "..."}}
"""

import asyncio
import itertools
import json
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog

from dtrader.exceptions import ApiError, ProbeTimeoutError, RequestTimeoutError
from dtrader.models.session import PingResult

logger = structlog.get_logger(__name__)

PING_METHOD = "server.ping"
PONG_RESULT = "pong"


@dataclass
class PendingRequest:
    """
    A correlated request awaiting its response.

    Attributes:
        request_id: Identifier sent on the wire.
        method: Request method name.
        future: Completed with the result or the failure.
        issued_at: Clock reading when the request was registered.
        timer: Handle of the timeout callback.
    """

    request_id: int
    method: str
    future: asyncio.Future
    issued_at: float
    timer: Optional[asyncio.TimerHandle] = None


class RequestCorrelator:
    """
    Maps outgoing request ids to pending waiters.

    Attributes:
        timeout: Seconds before an unanswered request fails.

    Example:
        >>> correlator = RequestCorrelator(timeout=10)
        >>> result = await correlator.request(ws_send, "server.ping")
        >>> print(f"{result.latency_ms:.1f} ms")
    """

    def __init__(
        self,
        timeout: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize correlator.

        Args:
            timeout: Seconds before an unanswered request fails.
            clock: Monotonic clock in seconds, used for latency.
        """
        self.timeout = timeout
        self._clock = clock
        self._ids = itertools.count(1)
        self._pending: Dict[int, PendingRequest] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._pending

    @property
    def pending_ids(self) -> List[int]:
        """Ids of requests still awaiting a response."""
        return list(self._pending)

    def register(self, method: str) -> PendingRequest:
        """
        Allocate the next id and arm its timeout.

        Must be called from within a running event loop.

        Args:
            method: Request method name.

        Returns:
            PendingRequest: The new pending entry.
        """
        loop = asyncio.get_running_loop()
        request_id = next(self._ids)
        pending = PendingRequest(
            request_id=request_id,
            method=method,
            future=loop.create_future(),
            issued_at=self._clock(),
        )
        pending.timer = loop.call_later(self.timeout, self._expire, request_id)
        pending.future.add_done_callback(
            lambda future, rid=request_id: self._on_future_done(rid, future)
        )
        self._pending[request_id] = pending
        return pending

    async def request(
        self,
        send: Callable[[str], Awaitable[None]],
        method: str,
        params: Optional[List[Any]] = None,
    ) -> Any:
        """
        Send a correlated request and wait for its response.

        Args:
            send: Coroutine function that transmits one text frame.
            method: Request method name.
            params: Request parameters (default: empty list).

        Returns:
            PingResult for a probe answered with "pong", otherwise the
            response's result field.

        Raises:
            RequestTimeoutError: If no response arrived in time
                (ProbeTimeoutError for probes).
            ApiError: If the exchange answered with an error object.
            SessionError: If sending failed, or the table was rejected.
            TypeError: If params cannot be encoded as JSON.
        """
        pending = self.register(method)
        frame = {
            "id": pending.request_id,
            "method": method,
            "params": list(params) if params is not None else [],
        }

        try:
            await send(json.dumps(frame))
        except BaseException:
            self._pop(pending.request_id)
            pending.future.cancel()
            raise

        logger.debug("request_sent", request_id=pending.request_id, method=method)
        return await pending.future

    def on_frame(self, frame: Dict[str, Any]) -> bool:
        """
        Complete the waiter matching a response frame.

        Args:
            frame: Decoded inbound frame.

        Returns:
            bool: True if the frame answered a pending request. Frames
            that did not are left for other handlers.
        """
        request_id = frame.get("id")
        if type(request_id) is not int or request_id not in self._pending:
            return False
        if "result" not in frame and "error" not in frame:
            return False

        pending = self._pop(request_id)
        if pending is None:
            return False

        error = frame.get("error")
        if error:
            if isinstance(error, dict):
                message = str(error.get("message", "unknown error"))
                code = error.get("code")
            else:
                message, code = str(error), None
            logger.warning(
                "request_error",
                request_id=request_id,
                method=pending.method,
                code=code,
                error=message,
            )
            self._fail(pending, ApiError(message, code=code, request_id=request_id))
        elif frame.get("result") == PONG_RESULT:
            latency_ms = max(0.0, (self._clock() - pending.issued_at) * 1000)
            logger.debug(
                "websocket_pong_received", request_id=request_id, latency_ms=latency_ms
            )
            self._succeed(
                pending,
                PingResult(
                    request_id=request_id,
                    latency_ms=latency_ms,
                    timestamp=datetime.now(timezone.utc),
                ),
            )
        else:
            logger.debug("request_succeeded", request_id=request_id, method=pending.method)
            self._succeed(pending, frame.get("result"))

        return True

    def reject_all(self, error: Exception) -> int:
        """
        Fail every pending request with the same error and clear the table.

        Args:
            error: Exception delivered to each waiter.

        Returns:
            int: Number of requests rejected.
        """
        entries = list(self._pending.values())
        self._pending.clear()
        for pending in entries:
            if pending.timer is not None:
                pending.timer.cancel()
            self._fail(pending, error)

        if entries:
            logger.info(
                "pending_requests_rejected",
                count=len(entries),
                error=str(error),
            )
        return len(entries)

    def _pop(self, request_id: int) -> Optional[PendingRequest]:
        pending = self._pending.pop(request_id, None)
        if pending is not None and pending.timer is not None:
            pending.timer.cancel()
        return pending

    def _expire(self, request_id: int) -> None:
        pending = self._pop(request_id)
        if pending is None:
            return

        if pending.method == PING_METHOD:
            error: RequestTimeoutError = ProbeTimeoutError(
                f"PONG timeout for ID: {request_id}", request_id=request_id
            )
        else:
            error = RequestTimeoutError(
                f"Request timeout for ID: {request_id}", request_id=request_id
            )
        logger.warning(
            "request_timeout",
            request_id=request_id,
            method=pending.method,
            timeout_seconds=self.timeout,
        )
        self._fail(pending, error)

    def _on_future_done(self, request_id: int, future: asyncio.Future) -> None:
        # A waiter that gave up (cancelled) must not leave its entry behind.
        if future.cancelled():
            self._pop(request_id)

    @staticmethod
    def _succeed(pending: PendingRequest, result: Any) -> None:
        if not pending.future.done():
            pending.future.set_result(result)

    @staticmethod
    def _fail(pending: PendingRequest, error: Exception) -> None:
        if not pending.future.done():
            pending.future.set_exception(error)
