"""Service runner infrastructure and long-running services."""

from dtrader.services.base import ServiceRunner, setup_logging

__all__ = [
    "ServiceRunner",
    "setup_logging",
]
