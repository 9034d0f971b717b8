"""Unit tests for reconnect backoff delays."""

import pytest

from dtrader.adapters.gateio.websocket import compute_backoff_delay
from dtrader.config.models import ConnectionSettings


class TestComputeBackoffDelay:
    """Test min(base * factor ** (attempt - 1), max)."""

    def test_default_schedule(self):
        """Test the delays produced by the default settings."""
        settings = ConnectionSettings()
        delays = [
            compute_backoff_delay(
                attempt,
                settings.reconnect_delay_seconds,
                settings.reconnect_backoff_factor,
                settings.max_reconnect_delay_seconds,
            )
            for attempt in range(1, settings.max_reconnect_attempts + 1)
        ]

        assert delays[:4] == pytest.approx([1.0, 1.5, 2.25, 3.375])
        assert delays[8] == pytest.approx(25.62890625)
        assert delays[9] == 30.0

    def test_first_attempt_uses_base(self):
        """Test that attempt 1 waits exactly the base delay."""
        assert compute_backoff_delay(1, 2.0, 3.0, 100.0) == 2.0

    def test_capped_at_max(self):
        """Test that the delay never exceeds the cap."""
        assert compute_backoff_delay(50, 1.0, 1.5, 30.0) == 30.0

    def test_factor_one_is_constant(self):
        """Test a flat schedule."""
        assert compute_backoff_delay(7, 0.5, 1.0, 30.0) == 0.5

    @pytest.mark.parametrize("attempt", [0, -1])
    def test_invalid_attempt(self, attempt):
        """Test that attempts are 1-based."""
        with pytest.raises(ValueError):
            compute_backoff_delay(attempt, 1.0, 1.5, 30.0)
