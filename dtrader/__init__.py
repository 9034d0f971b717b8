"""
DTrader Crypto.

A persistent exchange session layer for Gate.io: keeps one WebSocket
connection alive with latency probes, optionally authenticates and
subscribes to the spot balance stream, and recovers from disconnects with
exponential backoff.

This package provides:
- Configuration management (YAML files plus environment overrides)
- Data models for session status, probe results, and balances
- The ExchangeSession interface and its Gate.io implementation
- A balance-monitor service runner
"""

__version__ = "11.0.1"
