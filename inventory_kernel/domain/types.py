"""
inventory_kernel.domain.types -- Pure frozen dataclasses for the ledger.

ZERO I/O.  ORM models convert to these via ``to_dto()``; services return
only these, never live ORM objects, so callers cannot mutate ledger rows
outside a transaction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ItemStatus(str, Enum):
    """Item lifecycle status.

    Allowed transitions: AVAILABLE -> RESERVED (reserve),
    RESERVED -> SOLD (complete), RESERVED -> AVAILABLE (cancel).
    """

    AVAILABLE = "available"
    RESERVED = "reserved"
    SOLD = "sold"


ALLOWED_TRANSITIONS: frozenset[tuple[ItemStatus, ItemStatus]] = frozenset({
    (ItemStatus.AVAILABLE, ItemStatus.RESERVED),
    (ItemStatus.RESERVED, ItemStatus.SOLD),
    (ItemStatus.RESERVED, ItemStatus.AVAILABLE),
})


def is_allowed_transition(current: ItemStatus, target: ItemStatus) -> bool:
    return (current, target) in ALLOWED_TRANSITIONS


@dataclass(frozen=True)
class InventoryItem:
    """Immutable snapshot of one consumable item."""

    item_id: int
    product_id: str
    content: str
    status: ItemStatus
    order_id: str | None
    validity_checked: bool
    validity_score: float | None
    source: str
    category: str
    tags: frozenset[str] = field(default_factory=frozenset)
    added_at: datetime | None = None
    updated_at: datetime | None = None
    validation_date: datetime | None = None


@dataclass(frozen=True)
class ValidityCheck:
    """One append-only validity audit row."""

    check_id: int
    item_id: int
    result: str
    score: float | None
    method: str
    details: dict[str, Any] | None
    execution_time_ms: int | None
    checked_at: datetime


@dataclass(frozen=True)
class ProductStats:
    """Per-product aggregate counters.

    ``available_items + reserved_items + sold_items == total_items`` holds for
    every committed row.
    """

    product_id: str
    total_items: int = 0
    available_items: int = 0
    reserved_items: int = 0
    sold_items: int = 0
    valid_items: int = 0
    invalid_items: int = 0
    unchecked_items: int = 0
    last_updated: datetime | None = None

    @classmethod
    def zero(cls, product_id: str) -> ProductStats:
        """Stats for a product that has never held an item."""
        return cls(product_id=product_id)

    @property
    def is_consistent(self) -> bool:
        status_total = self.available_items + self.reserved_items + self.sold_items
        # Checked items without a score count as neither valid nor invalid.
        validity_total = self.valid_items + self.invalid_items + self.unchecked_items
        return status_total == self.total_items and validity_total <= self.total_items


@dataclass(frozen=True)
class LowStockProduct:
    product_id: str
    available_items: int


@dataclass(frozen=True)
class RestockCheck:
    product_id: str
    needs_restock: bool
    current_stock: int
    threshold: int


@dataclass(frozen=True)
class WebhookEvent:
    """Immutable snapshot of a recorded webhook event."""

    event_id: int
    event_type: str
    payload: dict[str, Any]
    processed: bool
    processing_result: dict[str, Any] | None
    created_at: datetime
    processed_at: datetime | None = None
    dedup_key: str | None = None
    claimed_at: datetime | None = None
