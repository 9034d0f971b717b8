"""
Gate.io channel authentication and balance subscription.

Private channels are subscribed with a signed request. The signature is
HMAC-SHA512, keyed by the API secret, over the canonical string
``channel=<channel>&event=<event>&time=<unix_seconds>``, hex-encoded.

Subscribe request:
    {
        "time": 1700000000,
        "channel": "spot.balances",
        "event": "subscribe",
        "payload": [],
        "auth": {"method": "api_key", "KEY": "<api key>", "SIGN": "<hex digest>"}
    }

Subscribe acknowledgement:
    {"time": ..., "channel": "spot.balances", "event": "subscribe",
     "error": {"code": 4, "message": "..."}, "result": null}

An acknowledgement whose error code is a credential failure is fatal: the
session stops reconnecting and stays unauthenticated until a new session is
built with new credentials. Any other error is transient.
"""

import hashlib
import hmac
import time
from typing import Any, Callable, Dict, Optional

import structlog

from dtrader.adapters.gateio.normalizer import GateIONormalizer
from dtrader.config.models import Credentials, SubscriptionSettings
from dtrader.exceptions import AuthenticationError
from dtrader.models.balance import BalanceSnapshot
from dtrader.models.session import AuthState

logger = structlog.get_logger(__name__)

SUBSCRIBE_EVENT = "subscribe"
UPDATE_EVENT = "update"


def sign_request(secret: str, channel: str, event: str, timestamp: int) -> str:
    """
    Sign a channel request.

    Args:
        secret: API secret (HMAC key).
        channel: Channel name (e.g., "spot.balances").
        event: Event name (e.g., "subscribe").
        timestamp: Unix time in seconds, as sent in the "time" field.

    Returns:
        str: Hex-encoded HMAC-SHA512 digest (128 characters).
    """
    message = f"channel={channel}&event={event}&time={timestamp}"
    return hmac.new(
        secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha512
    ).hexdigest()


class SubscriptionManager:
    """
    Builds signed subscribe requests and tracks their acknowledgement.

    Attributes:
        settings: Subscription settings.
        state: Current authentication state.
        last_error: The fatal credential error, once one was received.

    Example:
        >>> manager = SubscriptionManager(credentials, SubscriptionSettings())
        >>> await ws.send(json.dumps(manager.build_subscribe_request()))
        >>> manager.handle_ack(ack_frame)
        <AuthState.AUTHENTICATED: 'authenticated'>
    """

    def __init__(
        self,
        credentials: Credentials,
        settings: Optional[SubscriptionSettings] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize subscription manager.

        Args:
            credentials: API key pair.
            settings: Subscription settings (defaults apply when omitted).
            clock: Wall clock in seconds, used for the request time.
        """
        self._credentials = credentials
        self.settings = settings or SubscriptionSettings()
        self._clock = clock
        self.state = AuthState.UNAUTHENTICATED
        self.last_error: Optional[AuthenticationError] = None

    @property
    def channel(self) -> str:
        """Balance channel name."""
        return self.settings.channel

    @property
    def is_authenticated(self) -> bool:
        """Check if the last acknowledgement succeeded."""
        return self.state == AuthState.AUTHENTICATED

    @property
    def auth_failed(self) -> bool:
        """Check if credentials were permanently rejected."""
        return self.state == AuthState.AUTH_FAILED

    def build_subscribe_request(self, timestamp: Optional[int] = None) -> Dict[str, Any]:
        """
        Build a signed subscribe request for the balance channel.

        Args:
            timestamp: Unix seconds to sign (default: now).

        Returns:
            Dict ready to be JSON-encoded and sent.
        """
        if timestamp is None:
            timestamp = int(self._clock())

        signature = sign_request(
            self._credentials.api_secret.get_secret_value(),
            self.channel,
            SUBSCRIBE_EVENT,
            timestamp,
        )
        return {
            "time": timestamp,
            "channel": self.channel,
            "event": SUBSCRIBE_EVENT,
            "payload": [],
            "auth": {
                "method": "api_key",
                "KEY": self._credentials.api_key,
                "SIGN": signature,
            },
        }

    def handles(self, frame: Dict[str, Any]) -> bool:
        """Check if a frame belongs to the balance channel."""
        return frame.get("channel") == self.channel

    def handle_ack(self, frame: Dict[str, Any]) -> AuthState:
        """
        Apply a subscribe acknowledgement.

        Args:
            frame: Decoded subscribe-ack frame.

        Returns:
            AuthState: The new state. AUTH_FAILED is terminal and is never
            left, even if a later acknowledgement succeeds.
        """
        if self.auth_failed:
            logger.warning("subscription_ack_after_auth_failure", channel=self.channel)
            return self.state

        error = frame.get("error")
        if not error:
            self.state = AuthState.AUTHENTICATED
            logger.info("balance_subscription_confirmed", channel=self.channel)
            return self.state

        code = error.get("code") if isinstance(error, dict) else None
        message = error.get("message") if isinstance(error, dict) else str(error)

        if code in self.settings.auth_failure_codes:
            self.state = AuthState.AUTH_FAILED
            self.last_error = AuthenticationError(
                f"Authentication failed for {self.channel}: {message}", code=code
            )
            logger.error(
                "balance_subscription_auth_failed",
                channel=self.channel,
                code=code,
                error=message,
                key=self._credentials.masked_key,
            )
        else:
            self.state = AuthState.UNAUTHENTICATED
            logger.error(
                "balance_subscription_error",
                channel=self.channel,
                code=code,
                error=message,
            )
        return self.state

    def handle_update(self, frame: Dict[str, Any]) -> Optional[BalanceSnapshot]:
        """
        Parse a balance push for the configured currency.

        Args:
            frame: Decoded update frame.

        Returns:
            BalanceSnapshot, or None if the currency was absent or the
            payload could not be parsed (both are logged, neither raises).
        """
        try:
            snapshot = GateIONormalizer.normalize_balance(
                frame.get("result"),
                self.settings.currency,
                frame_time=frame.get("time"),
            )
        except ValueError as e:
            logger.warning(
                "balance_update_invalid",
                channel=self.channel,
                error=str(e),
            )
            return None

        if snapshot is not None:
            logger.info(
                "balance_updated",
                currency=snapshot.currency,
                available=f"{snapshot.available:.6f}",
                locked=f"{snapshot.locked:.6f}",
                total=f"{snapshot.total:.6f}",
                change_type=snapshot.change_type,
            )
        return snapshot

    def reset(self) -> None:
        """Forget authentication after a disconnect. AUTH_FAILED is kept."""
        if not self.auth_failed:
            self.state = AuthState.UNAUTHENTICATED
