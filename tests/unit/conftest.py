"""
Unit test configuration for tests/unit/.

Connection settings with millisecond timings so session tests run
without real delays. The in-memory transport lives in fakes.py.
"""

import pytest

from dtrader.config.models import ConnectionSettings, Credentials, SubscriptionSettings


@pytest.fixture
def fast_settings() -> ConnectionSettings:
    """Connection settings with millisecond timings and no settle delay."""
    return ConnectionSettings(
        connect_timeout_seconds=0.2,
        settle_delay_seconds=0,
        ping_interval_seconds=60,
        ping_timeout_seconds=0.1,
        reconnect_delay_seconds=0.01,
        reconnect_backoff_factor=1.5,
        max_reconnect_delay_seconds=0.05,
        max_reconnect_attempts=3,
    )


@pytest.fixture
def credentials() -> Credentials:
    """Test API key pair."""
    return Credentials(api_key="test-api-key-123456", api_secret="test-secret")


@pytest.fixture
def fast_subscription() -> SubscriptionSettings:
    """Subscription settings that subscribe immediately and never refresh in a test."""
    return SubscriptionSettings(
        initial_delay_seconds=0,
        refresh_after_seconds=60,
    )
