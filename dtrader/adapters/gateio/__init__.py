"""
Gate.io exchange adapter.

Provides the Gate.io v4 WebSocket session with request correlation,
signed balance subscription, and automatic reconnection.
"""

from dtrader.adapters.gateio.auth import SubscriptionManager, sign_request
from dtrader.adapters.gateio.correlator import RequestCorrelator
from dtrader.adapters.gateio.normalizer import GateIONormalizer
from dtrader.adapters.gateio.websocket import GateIOWebSocketSession, compute_backoff_delay

__all__ = [
    "GateIONormalizer",
    "GateIOWebSocketSession",
    "RequestCorrelator",
    "SubscriptionManager",
    "compute_backoff_delay",
    "sign_request",
]
