"""
Error taxonomy for exchange sessions.

Per-request failures (RequestTimeoutError, ApiError) are delivered only to
the waiter of that request. Session-level failures (ConnectionLostError,
AuthenticationError) cascade to every pending waiter.

Hierarchy:
    SessionError
    ├── ConnectTimeoutError
    ├── TransportError
    │   └── ConnectionLostError
    ├── SessionClosedError
    ├── RequestTimeoutError
    │   └── ProbeTimeoutError
    ├── ApiError
    ├── AuthenticationError
    ├── MalformedFrameError
    └── ReconnectExhaustedError
"""

from typing import Any, Optional


class SessionError(Exception):
    """
    Base class for all session errors.

    Attributes:
        message: Error message describing what went wrong.
        cause: Original exception that caused the error, if any.
    """

    def __init__(self, message: str, cause: Optional[Exception] = None):
        self.message = message
        self.cause = cause
        super().__init__(message)


class ConnectTimeoutError(SessionError):
    """No transport open event within the connect deadline."""


class TransportError(SessionError):
    """The transport failed to open or to deliver a frame."""


class ConnectionLostError(TransportError):
    """The transport closed while requests were outstanding."""


class SessionClosedError(SessionError):
    """The session was closed by its caller."""


class RequestTimeoutError(SessionError):
    """
    No response arrived for a correlated request in time.

    Attributes:
        request_id: Identifier of the expired request.
    """

    def __init__(self, message: str, request_id: int):
        self.request_id = request_id
        super().__init__(message)


class ProbeTimeoutError(RequestTimeoutError):
    """No pong arrived for a liveness probe in time."""


class ApiError(SessionError):
    """
    The exchange answered a correlated request with an error object.

    Attributes:
        code: Exchange error code, if provided.
        request_id: Identifier of the failed request.
    """

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        request_id: Optional[int] = None,
    ):
        self.code = code
        self.request_id = request_id
        super().__init__(f"API Error: {message}")


class AuthenticationError(SessionError):
    """
    The exchange rejected the session credentials.

    Fatal: reconnection is disabled for the rest of the session's lifetime.

    Attributes:
        code: Exchange error code from the subscribe acknowledgement.
    """

    def __init__(self, message: str, code: Optional[int] = None):
        self.code = code
        super().__init__(message)


class MalformedFrameError(SessionError):
    """
    An inbound frame could not be decoded.

    Attributes:
        raw: The undecodable payload.
    """

    def __init__(self, message: str, raw: Any, cause: Optional[Exception] = None):
        self.raw = raw
        super().__init__(message, cause=cause)


class ReconnectExhaustedError(SessionError):
    """
    Every scheduled reconnect attempt failed.

    Attributes:
        attempts: Number of attempts made.
    """

    def __init__(self, message: str, attempts: int):
        self.attempts = attempts
        super().__init__(message)
