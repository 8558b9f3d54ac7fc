"""
Fulfillment provider payloads and sync results.

Field names on the wire use the provider's PascalCase keys; the dataclasses
here use snake_case and convert at the edges.
"""

from dataclasses import asdict, dataclass, field
from typing import Any

from fulfillment_sync.domain.models.order import LocalOrder
from fulfillment_sync.domain.value_objects.money import Money


@dataclass(frozen=True)
class FulfillmentOrderPayload:
    """Body for ``POST /api/orders``."""

    company_id: str
    order_number: str
    customer: dict[str, str]
    shipping_address: dict[str, str]
    items: list[dict[str, Any]]

    @classmethod
    def from_order(cls, order: LocalOrder, company_id: str) -> "FulfillmentOrderPayload":
        """
        Construye el payload a partir de la orden local.

        Los precios se convierten de unidades menores (con impuestos) a monto
        decimal.
        """
        customer = order.customer
        address = order.shipping_address
        return cls(
            company_id=company_id,
            order_number=order.code,
            customer={
                "FirstName": customer.first_name if customer else "",
                "LastName": customer.last_name if customer else "",
                "Email": customer.email_address if customer else "",
            },
            shipping_address={
                "Address1": address.street_line1,
                "Address2": address.street_line2,
                "City": address.city,
                "State": address.province,
                "Zip": address.postal_code,
                "Country": address.country_code,
            },
            items=[
                {
                    "SKU": line.sku,
                    "Quantity": line.quantity,
                    "UnitPrice": Money.from_minor_units(line.unit_price_with_tax).to_float(),
                }
                for line in order.lines
            ],
        )

    def to_api(self) -> dict[str, Any]:
        return {
            "CompanyId": self.company_id,
            "OrderNumber": self.order_number,
            "Customer": dict(self.customer),
            "ShippingAddress": dict(self.shipping_address),
            "Items": [dict(item) for item in self.items],
        }


@dataclass(frozen=True)
class RemoteOrderStatus:
    """Respuesta de ``GET /api/orders/{orderNumber}/status``."""

    order_id: str | None = None
    status: str | None = None
    tracking_number: str | None = None
    carrier: str | None = None
    ship_date: str | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "RemoteOrderStatus":
        order_id = data.get("OrderId")
        return cls(
            order_id=str(order_id) if order_id is not None else None,
            status=data.get("Status"),
            tracking_number=data.get("TrackingNumber") or None,
            carrier=data.get("Carrier"),
            ship_date=data.get("ShipDate"),
        )


@dataclass(frozen=True)
class RemoteInventoryItem:
    """Elemento de ``GET /api/inventory``."""

    sku: str
    available_quantity: int = 0
    on_hand_quantity: int | None = None

    @classmethod
    def from_api(cls, data: Any) -> "RemoteInventoryItem":
        """
        Raises:
            ValueError: Si el item no es un objeto, no trae SKU o la cantidad
                disponible no es entera
        """
        if not isinstance(data, dict):
            raise ValueError(f"Inventory item is not an object: {data!r}")

        sku = str(data.get("SKU") or "").strip()
        if not sku:
            raise ValueError(f"Inventory item without SKU: {data!r}")

        try:
            available = int(data.get("AvailableQuantity") or 0)
        except (TypeError, ValueError):
            raise ValueError(
                f"Invalid AvailableQuantity for SKU {sku}: {data.get('AvailableQuantity')!r}"
            ) from None

        return cls(sku=sku, available_quantity=available, on_hand_quantity=data.get("OnHandQuantity"))


@dataclass
class RemoteCallResult:
    """Resultado de crear una orden en el proveedor."""

    success: bool
    remote_order_id: str | None = None
    error: str | None = None
    attempts: int = 0
    response: dict[str, Any] | None = None


@dataclass
class InventorySyncResult:
    total_processed: int = 0
    updated: int = 0
    errors: int = 0
    skipped: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass
class TrackingSyncResult:
    orders_checked: int = 0
    tracking_updated: int = 0
    errors: int = 0
    details: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
