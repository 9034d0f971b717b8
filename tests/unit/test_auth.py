"""Unit tests for Gate.io request signing and the balance subscription state.

Tests cover:
- HMAC-SHA512 signatures against known digests
- Subscribe request shape
- Acknowledgement handling (success, fatal and transient errors)
- Balance update parsing through the manager
"""

from decimal import Decimal

import pytest

from dtrader.adapters.gateio.auth import SubscriptionManager, sign_request
from dtrader.config.models import Credentials, SubscriptionSettings
from dtrader.exceptions import AuthenticationError
from dtrader.models.session import AuthState

TIMESTAMP = 1700000000
TEST_SECRET_DIGEST = (
    "aba997b6e3e99b5d6f10534d913754c80a3f83d28f24b8d2a7f589cbb2757639"
    "e5c09e7ae544a9843c373dd9c0caf95b4bfab864b5f98bd928c64cf70afc97b8"
)
OTHER_SECRET_DIGEST = (
    "0ad74edff5902e02be18325194f27c79d02edc05747bd2d9907a638825ae2091"
    "14a3bdf66ed6c7bd3dca7cb69ae468b36ff1997f52ed6c3355eeb5cbd19ecc6e"
)


def ack(error=None):
    """Build a subscribe acknowledgement frame."""
    return {
        "time": TIMESTAMP,
        "channel": "spot.balances",
        "event": "subscribe",
        "error": error,
        "result": None if error else {"status": "success"},
    }


@pytest.fixture
def manager(credentials):
    return SubscriptionManager(credentials, SubscriptionSettings())


class TestSignRequest:
    """Test request signatures."""

    def test_known_digest(self):
        """Test the digest for a fixed secret and time."""
        signature = sign_request("test-secret", "spot.balances", "subscribe", TIMESTAMP)
        assert signature == TEST_SECRET_DIGEST

    def test_digest_depends_on_secret(self):
        """Test that a different secret produces a different digest."""
        signature = sign_request("other-secret", "spot.balances", "subscribe", TIMESTAMP)
        assert signature == OTHER_SECRET_DIGEST

    def test_digest_depends_on_time(self):
        """Test that the time is part of the signed string."""
        assert sign_request("test-secret", "spot.balances", "subscribe", TIMESTAMP + 1) != (
            TEST_SECRET_DIGEST
        )

    def test_digest_is_hex_sha512(self):
        """Test digest length and alphabet."""
        signature = sign_request("k", "spot.balances", "subscribe", TIMESTAMP)
        assert len(signature) == 128
        assert set(signature) <= set("0123456789abcdef")


class TestBuildSubscribeRequest:
    """Test the signed subscribe request."""

    def test_request_shape(self, manager):
        """Test every field of the subscribe request."""
        request = manager.build_subscribe_request(timestamp=TIMESTAMP)

        assert request == {
            "time": TIMESTAMP,
            "channel": "spot.balances",
            "event": "subscribe",
            "payload": [],
            "auth": {
                "method": "api_key",
                "KEY": "test-api-key-123456",
                "SIGN": TEST_SECRET_DIGEST,
            },
        }

    def test_time_from_clock(self, credentials):
        """Test that the request time is the clock truncated to seconds."""
        manager = SubscriptionManager(credentials, clock=lambda: TIMESTAMP + 0.9)
        request = manager.build_subscribe_request()

        assert request["time"] == TIMESTAMP
        assert request["auth"]["SIGN"] == TEST_SECRET_DIGEST

    def test_secret_not_sent(self, manager):
        """Test that the secret itself never appears in the request."""
        request = manager.build_subscribe_request(timestamp=TIMESTAMP)
        assert "test-secret" not in str(request)


class TestHandleAck:
    """Test subscribe acknowledgement handling."""

    def test_success_authenticates(self, manager):
        """Test that an ack without error authenticates."""
        assert manager.handle_ack(ack()) == AuthState.AUTHENTICATED
        assert manager.is_authenticated is True

    @pytest.mark.parametrize("code", [1, 4])
    def test_credential_failure_is_fatal(self, manager, code):
        """Test that configured credential codes fail permanently."""
        state = manager.handle_ack(ack({"code": code, "message": "invalid key"}))

        assert state == AuthState.AUTH_FAILED
        assert manager.auth_failed is True
        assert isinstance(manager.last_error, AuthenticationError)
        assert manager.last_error.code == code

    def test_other_error_is_transient(self, manager):
        """Test that other error codes leave the session unauthenticated."""
        state = manager.handle_ack(ack({"code": 2, "message": "invalid argument"}))

        assert state == AuthState.UNAUTHENTICATED
        assert manager.auth_failed is False
        assert manager.last_error is None

    def test_auth_failure_is_sticky(self, manager):
        """Test that a later success does not clear a fatal failure."""
        manager.handle_ack(ack({"code": 1, "message": "invalid key"}))
        manager.handle_ack(ack())
        manager.reset()

        assert manager.state == AuthState.AUTH_FAILED

    def test_reset_clears_authentication(self, manager):
        """Test that a disconnect forgets authentication."""
        manager.handle_ack(ack())
        manager.reset()

        assert manager.state == AuthState.UNAUTHENTICATED

    def test_custom_failure_codes(self, credentials):
        """Test configuring which codes are fatal."""
        manager = SubscriptionManager(
            credentials, SubscriptionSettings(auth_failure_codes=[7])
        )

        assert manager.handle_ack(ack({"code": 1, "message": "x"})) == AuthState.UNAUTHENTICATED
        assert manager.handle_ack(ack({"code": 7, "message": "x"})) == AuthState.AUTH_FAILED


class TestHandleUpdate:
    """Test balance pushes through the manager."""

    def test_handles_only_balance_channel(self, manager):
        """Test channel matching."""
        assert manager.handles({"channel": "spot.balances", "event": "update"})
        assert not manager.handles({"channel": "spot.orders", "event": "update"})
        assert not manager.handles({"id": 1, "result": "pong"})

    def test_update_for_configured_currency(self, manager):
        """Test extracting the configured currency."""
        snapshot = manager.handle_update(
            {
                "time": TIMESTAMP,
                "channel": "spot.balances",
                "event": "update",
                "result": [
                    {"currency": "BTC", "available": "0.1", "locked": "0"},
                    {"currency": "USDT", "available": "10.5", "locked": "2.25"},
                ],
            }
        )

        assert snapshot is not None
        assert snapshot.currency == "USDT"
        assert snapshot.total == Decimal("12.75")

    def test_update_without_currency(self, manager):
        """Test that an update lacking the currency yields nothing."""
        snapshot = manager.handle_update(
            {
                "channel": "spot.balances",
                "event": "update",
                "result": [{"currency": "BTC", "available": "0.1", "locked": "0"}],
            }
        )
        assert snapshot is None

    def test_non_array_payload_discarded(self, manager):
        """Test that a malformed payload is logged and discarded."""
        snapshot = manager.handle_update(
            {"channel": "spot.balances", "event": "update", "result": {"currency": "USDT"}}
        )
        assert snapshot is None

    def test_credentials_repr_hides_secret(self):
        """Test that the secret is masked in representations."""
        credentials = Credentials(api_key="abcdefghijkl", api_secret="super-secret")

        assert "super-secret" not in repr(credentials)
        assert credentials.masked_key == "abcdefgh..."
