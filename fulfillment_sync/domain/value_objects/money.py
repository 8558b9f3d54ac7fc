"""
Money value object for handling monetary amounts with currency.

The local platform stores prices as integer minor units (cents); the
fulfillment provider expects decimal amounts.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal


@dataclass(frozen=True)
class Money:
    """
    Immutable value object representing a monetary amount with currency.

    Attributes:
        amount: The monetary amount as Decimal for precision
        currency: Currency code (e.g., "USD")

    Example:
        >>> Money.from_minor_units(1999).amount
        Decimal('19.99')
    """

    amount: Decimal
    currency: str = "USD"

    def __post_init__(self) -> None:
        """Validate money object after initialization."""
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, "amount", Decimal(str(self.amount)))

        object.__setattr__(self, "amount", self.amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))

        if self.amount < 0:
            raise ValueError(f"Money amount cannot be negative: {self.amount}")

        if not self.currency or len(self.currency) != 3:
            raise ValueError(f"Invalid currency code: {self.currency}")

    @classmethod
    def from_minor_units(cls, minor_units: int, currency: str = "USD") -> "Money":
        """Build Money from an integer amount in minor units (e.g. cents)."""
        return cls(amount=Decimal(int(minor_units)) / Decimal(100), currency=currency)

    @classmethod
    def zero(cls, currency: str = "USD") -> "Money":
        return cls(amount=Decimal("0"), currency=currency)

    def to_float(self) -> float:
        """Amount as float, for JSON payloads."""
        return float(self.amount)

    def __str__(self) -> str:
        return f"{self.currency} {self.amount:.2f}"
