"""
Local order domain models.

These are the shapes the engine reads from the local order-management
platform. The platform adapter is responsible for building them.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class Customer:
    first_name: str = ""
    last_name: str = ""
    email_address: str = ""


@dataclass(frozen=True)
class ShippingAddress:
    street_line1: str = ""
    street_line2: str = ""
    city: str = ""
    province: str = ""
    postal_code: str = ""
    country_code: str = ""


@dataclass(frozen=True)
class OrderLine:
    """
    Order line as seen by the fulfillment sync.

    Attributes:
        sku: Variant SKU
        quantity: Units ordered
        unit_price_with_tax: Tax-inclusive unit price in minor units (cents)
    """

    sku: str
    quantity: int
    unit_price_with_tax: int


@dataclass
class LocalOrder:
    """
    Order on the local platform.

    Attributes:
        id: Platform order id
        code: Human-facing order code, sent to the provider as OrderNumber
        state: Current order state (e.g. "PaymentSettled", "Shipped")
        lines: Order lines
        customer: Customer data, if any
        shipping_address: Shipping address
        custom_fields: Platform custom fields (trackingCode, carrier, shipDate)
    """

    id: str
    code: str
    state: str
    lines: list[OrderLine] = field(default_factory=list)
    customer: Customer | None = None
    shipping_address: ShippingAddress = field(default_factory=ShippingAddress)
    custom_fields: dict[str, Any] = field(default_factory=dict)

    @property
    def tracking_code(self) -> str | None:
        value = self.custom_fields.get("trackingCode")
        return value or None


@dataclass(frozen=True)
class ProductVariant:
    id: str
    sku: str
    stock_on_hand: int = 0


@dataclass(frozen=True)
class OrderStateTransitionEvent:
    """Message published by the platform when an order changes state."""

    order_id: str
    from_state: str | None
    to_state: str
    occurred_at: datetime | None = None
