"""
Shared Pydantic data models for DTrader.

Modules:
    session: Session state enums, status snapshots and probe results
    balance: Spot balance snapshots

Example:
    >>> from dtrader.models import SessionStatus, BalanceSnapshot
"""

from dtrader.models.balance import BalanceSnapshot
from dtrader.models.session import (
    AuthState,
    ConnectionState,
    PingResult,
    ReconnectStatus,
    SessionStatus,
)

__all__: list[str] = [
    "AuthState",
    "BalanceSnapshot",
    "ConnectionState",
    "PingResult",
    "ReconnectStatus",
    "SessionStatus",
]
