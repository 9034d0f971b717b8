"""
Gate.io data normalizer.

Converts Gate.io spot balance pushes to BalanceSnapshot models. All
financial values are converted to Decimal for precision.

Gate.io Balance Update Format:
    {
        "time": 1605248616,
        "time_ms": 1605248616763,
        "channel": "spot.balances",
        "event": "update",
        "result": [
            {
                "timestamp": "1605248616",
                "timestamp_ms": "1605248616763",
                "user": "1000001",
                "currency": "USDT",
                "change": "100",
                "available": "10.5",
                "locked": "2.25",
                "change_type": "order-create"
            }
        ]
    }
"""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import structlog

from dtrader.models.balance import BalanceSnapshot

logger = structlog.get_logger(__name__)


class GateIONormalizer:
    """
    Normalizes Gate.io data to unified models.

    Example:
        >>> snapshot = GateIONormalizer.normalize_balance(
        ...     entries=[{"currency": "USDT", "available": "10.5", "locked": "2.25"}],
        ...     currency="USDT",
        ... )
        >>> snapshot.total
        Decimal('12.75')
    """

    @staticmethod
    def parse_amount(value: Any) -> Decimal:
        """
        Parse a numeric-string amount.

        Missing or empty values count as zero.

        Raises:
            ValueError: If the value is not a finite number.
        """
        if value is None or value == "":
            return Decimal("0")
        try:
            amount = Decimal(str(value))
        except InvalidOperation as e:
            raise ValueError(f"Invalid amount: {value!r}") from e
        if not amount.is_finite():
            raise ValueError(f"Invalid amount: {value!r}")
        return amount

    @staticmethod
    def parse_timestamp(entry: Dict[str, Any], frame_time: Optional[int] = None) -> datetime:
        """
        Extract the update timestamp.

        Prefers the entry's millisecond timestamp, then its second
        timestamp, then the frame time; falls back to now.
        """
        try:
            if entry.get("timestamp_ms"):
                return datetime.fromtimestamp(
                    int(entry["timestamp_ms"]) / 1000, tz=timezone.utc
                )
            if entry.get("timestamp"):
                return datetime.fromtimestamp(int(entry["timestamp"]), tz=timezone.utc)
            if frame_time is not None:
                return datetime.fromtimestamp(int(frame_time), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError):
            logger.debug("balance_timestamp_unparseable", entry=entry)
        return datetime.now(timezone.utc)

    @staticmethod
    def list_currencies(entries: List[Any]) -> List[str]:
        """Return the currency codes present in a balance array."""
        return [
            str(item.get("currency"))
            for item in entries
            if isinstance(item, dict) and item.get("currency") is not None
        ]

    @staticmethod
    def normalize_balance(
        entries: Any,
        currency: str,
        frame_time: Optional[int] = None,
    ) -> Optional[BalanceSnapshot]:
        """
        Extract one currency's balance from a balance update.

        Args:
            entries: The update's result field (array of per-currency entries).
            currency: Currency to extract (e.g., "USDT").
            frame_time: The frame's "time" field, if present.

        Returns:
            BalanceSnapshot for the currency, or None when the array has no
            entry for it. Absence is not an error.

        Raises:
            ValueError: If the payload is not an array or an amount is invalid.
        """
        if not isinstance(entries, list):
            raise ValueError(
                f"Unexpected balance data format: {type(entries).__name__}"
            )

        entry = next(
            (
                item
                for item in entries
                if isinstance(item, dict) and item.get("currency") == currency
            ),
            None,
        )
        if entry is None:
            logger.info(
                "balance_currency_not_found",
                currency=currency,
                available_currencies=GateIONormalizer.list_currencies(entries),
            )
            return None

        snapshot = BalanceSnapshot(
            currency=currency,
            available=GateIONormalizer.parse_amount(entry.get("available")),
            locked=GateIONormalizer.parse_amount(entry.get("locked")),
            change_type=entry.get("change_type") or None,
            timestamp=GateIONormalizer.parse_timestamp(entry, frame_time),
        )

        logger.debug(
            "normalized_balance",
            currency=currency,
            available=str(snapshot.available),
            locked=str(snapshot.locked),
        )
        return snapshot
