"""
Abstract interfaces for DTrader.

The key interface is ExchangeSession, which defines the caller-facing
contract for a persistent exchange connection.

Modules:
    exchange_session: ExchangeSession ABC for exchange connections
"""

from dtrader.interfaces.exchange_session import ExchangeSession

__all__: list[str] = [
    "ExchangeSession",
]
