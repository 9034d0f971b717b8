"""
Balance models.

All financial values use Decimal for precision to avoid floating-point errors.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, computed_field


class BalanceSnapshot(BaseModel):
    """
    Spot balance of a single currency.

    Attributes:
        currency: Currency code (e.g., "USDT").
        available: Funds available for trading.
        locked: Funds locked in open orders.
        change_type: Exchange-reported reason for the change, if any.
        timestamp: Exchange timestamp of the update (UTC).

    Example:
        >>> balance = BalanceSnapshot(
        ...     currency="USDT",
        ...     available=Decimal("10.5"),
        ...     locked=Decimal("2.25"),
        ...     timestamp=datetime.now(timezone.utc),
        ... )
        >>> balance.total
        Decimal('12.75')
    """

    model_config = {"frozen": True, "extra": "forbid"}

    currency: str = Field(
        ...,
        description="Currency code",
        min_length=1,
        max_length=20,
    )
    available: Decimal = Field(
        ...,
        description="Available balance",
    )
    locked: Decimal = Field(
        ...,
        description="Balance locked in orders",
    )
    change_type: Optional[str] = Field(
        default=None,
        description="Reason for the balance change",
        examples=["order-create", "order-match", "withdraw"],
    )
    timestamp: datetime = Field(
        ...,
        description="Exchange timestamp (UTC)",
    )

    @computed_field  # type: ignore[misc]
    @property
    def total(self) -> Decimal:
        """
        Calculate the total balance.

        Returns:
            Decimal: available + locked.
        """
        return self.available + self.locked
