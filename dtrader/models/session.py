"""
Session state and status models.

This module defines the states a session moves through and the read-only
status snapshots handed to callers.

Models:
    ConnectionState: Transport lifecycle state
    AuthState: Subscription authentication state
    SessionStatus: Connected/authenticated/reconnecting snapshot
    ReconnectStatus: Reconnect progress snapshot
    PingResult: Outcome of a liveness probe
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class ConnectionState(str, Enum):
    """
    Transport lifecycle state.

    Attributes:
        DISCONNECTED: No socket (initial, after loss, or between attempts).
        CONNECTING: A socket is being opened.
        OPEN: The socket is open.
        CLOSING: The caller requested close; teardown in progress.
        CLOSED: Terminal state after close() completed.
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class AuthState(str, Enum):
    """
    Subscription authentication state.

    Attributes:
        UNAUTHENTICATED: No successful subscribe ack on the current socket.
        AUTHENTICATED: The last subscribe ack carried no error.
        AUTH_FAILED: The exchange rejected the credentials. Terminal.
    """

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    AUTH_FAILED = "auth_failed"


class SessionStatus(BaseModel):
    """
    Caller-visible session flags.

    Example:
        >>> status = session.get_status()
        >>> status.connected, status.authenticated, status.reconnecting
        (True, True, False)
    """

    model_config = {"frozen": True, "extra": "forbid"}

    connected: bool = Field(..., description="Socket is open")
    authenticated: bool = Field(..., description="Balance subscription acknowledged")
    reconnecting: bool = Field(..., description="A reconnect is scheduled or running")
    state: ConnectionState = Field(..., description="Transport lifecycle state")
    auth_state: AuthState = Field(..., description="Authentication state")


class ReconnectStatus(BaseModel):
    """Reconnect progress."""

    model_config = {"frozen": True, "extra": "forbid"}

    attempts: int = Field(..., description="Attempts since the last successful open", ge=0)
    max_attempts: int = Field(..., description="Attempt limit", ge=1)
    reconnecting: bool = Field(..., description="A reconnect is scheduled or running")

    @property
    def exhausted(self) -> bool:
        """Check if no further reconnect will be scheduled."""
        return not self.reconnecting and self.attempts >= self.max_attempts


class PingResult(BaseModel):
    """
    Outcome of a liveness probe.

    Attributes:
        request_id: Identifier of the probe.
        latency_ms: Round-trip time in milliseconds.
        timestamp: When the pong was received (UTC).
    """

    model_config = {"frozen": True, "extra": "forbid"}

    request_id: int = Field(..., ge=1)
    latency_ms: float = Field(..., ge=0)
    timestamp: datetime
