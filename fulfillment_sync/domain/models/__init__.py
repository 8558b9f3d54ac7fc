"""
Domain models for the fulfillment sync engine.
"""

from .fulfillment import (
    FulfillmentOrderPayload,
    InventorySyncResult,
    RemoteCallResult,
    RemoteInventoryItem,
    RemoteOrderStatus,
    TrackingSyncResult,
)
from .order import Customer, LocalOrder, OrderLine, OrderStateTransitionEvent, ProductVariant, ShippingAddress
from .sync import SyncConfig, SyncRecord, SyncStatus

__all__ = [
    "Customer",
    "FulfillmentOrderPayload",
    "InventorySyncResult",
    "LocalOrder",
    "OrderLine",
    "OrderStateTransitionEvent",
    "ProductVariant",
    "RemoteCallResult",
    "RemoteInventoryItem",
    "RemoteOrderStatus",
    "ShippingAddress",
    "SyncConfig",
    "SyncRecord",
    "SyncStatus",
    "TrackingSyncResult",
]
