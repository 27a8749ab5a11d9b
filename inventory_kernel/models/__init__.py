"""ORM models.  Importing this package registers every table on Base.metadata."""

from inventory_kernel.models.inventory import (
    AppliedEventModel,
    InventoryItemModel,
    ProductStatsModel,
    ValidityCheckModel,
)
from inventory_kernel.models.webhook_event import WebhookEventModel

__all__ = [
    "AppliedEventModel",
    "InventoryItemModel",
    "ProductStatsModel",
    "ValidityCheckModel",
    "WebhookEventModel",
]
