"""
ORM models for the item ledger.

Contract:
    InventoryItemModel, ValidityCheckModel, ProductStatsModel and
    AppliedEventModel persist item state, the validity audit trail, the
    per-product stats row and the external-event dedup keys.  Row models
    have ``to_dto()`` methods; services never hand ORM objects to callers.

Architecture: inventory_kernel/models. Imports from inventory_kernel.db.base
    and inventory_kernel.domain only.

Invariants enforced:
    - status is one of available/reserved/sold (CHECK constraint).
    - order_id is NULL exactly when the item is available (CHECK constraint).
    - dedup_key is UNIQUE on applied_events.
    - Items and validity checks are never deleted (no cascade deletes).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_kernel.db.base import (
    Base,
    IdentityBase,
    IdentityInteger,
    JSONDocument,
    TagArray,
)
from inventory_kernel.domain.types import (
    InventoryItem,
    ItemStatus,
    ProductStats,
    ValidityCheck,
)


class InventoryItemModel(IdentityBase):
    """One consumable item.  Retained forever for audit."""

    __tablename__ = "inventory"

    __table_args__ = (
        Index("ix_inventory_product_status_id", "product_id", "status", "id"),
        Index("ix_inventory_order_id", "order_id"),
        CheckConstraint(
            "status IN ('available', 'reserved', 'sold')",
            name="ck_inventory_status",
        ),
        CheckConstraint(
            "(order_id IS NULL) = (status = 'available')",
            name="ck_inventory_order_matches_status",
        ),
    )

    product_id: Mapped[str] = mapped_column(String(100), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ItemStatus.AVAILABLE.value,
    )
    order_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    validity_checked: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    validity_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    source: Mapped[str] = mapped_column(String(100), nullable=False, default="manual")
    category: Mapped[str] = mapped_column(String(100), nullable=False, default="general")
    tags: Mapped[list[str]] = mapped_column(TagArray, nullable=False, default=list)
    added_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    validation_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    checks: Mapped[list["ValidityCheckModel"]] = relationship(
        "ValidityCheckModel",
        back_populates="item",
        order_by="ValidityCheckModel.id",
    )

    def to_dto(self) -> InventoryItem:
        return InventoryItem(
            item_id=self.id,
            product_id=self.product_id,
            content=self.content,
            status=ItemStatus(self.status),
            order_id=self.order_id,
            validity_checked=self.validity_checked,
            validity_score=self.validity_score,
            source=self.source,
            category=self.category,
            tags=frozenset(self.tags or ()),
            added_at=self.added_date,
            updated_at=self.updated_date,
            validation_date=self.validation_date,
        )


class ValidityCheckModel(IdentityBase):
    """Append-only validity audit row."""

    __tablename__ = "validity_checks"

    __table_args__ = (
        Index("ix_validity_checks_inventory_id", "inventory_id"),
    )

    inventory_id: Mapped[int] = mapped_column(
        IdentityInteger,
        ForeignKey("inventory.id"),
        nullable=False,
    )
    result: Mapped[str] = mapped_column(String(50), nullable=False)
    score: Mapped[float | None] = mapped_column(Float, nullable=True)
    check_method: Mapped[str] = mapped_column(String(100), nullable=False)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSONDocument, nullable=True)
    execution_time: Mapped[int | None] = mapped_column(Integer, nullable=True)
    check_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    item: Mapped[InventoryItemModel] = relationship(
        "InventoryItemModel", back_populates="checks",
    )

    def to_dto(self) -> ValidityCheck:
        return ValidityCheck(
            check_id=self.id,
            item_id=self.inventory_id,
            result=self.result,
            score=self.score,
            method=self.check_method,
            details=self.details,
            execution_time_ms=self.execution_time,
            checked_at=self.check_date,
        )


class ProductStatsModel(Base):
    """
    Materialized per-product counters.

    The row doubles as the product's lock: every ledger mutation selects it
    FOR UPDATE before touching the product's items.
    """

    __tablename__ = "inventory_stats"

    __table_args__ = (
        Index("ix_inventory_stats_available", "available_items"),
    )

    product_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    total_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    available_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reserved_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sold_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    valid_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    invalid_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unchecked_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def to_dto(self) -> ProductStats:
        return ProductStats(
            product_id=self.product_id,
            total_items=self.total_items,
            available_items=self.available_items,
            reserved_items=self.reserved_items,
            sold_items=self.sold_items,
            valid_items=self.valid_items,
            invalid_items=self.invalid_items,
            unchecked_items=self.unchecked_items,
            last_updated=self.last_updated,
        )


class AppliedEventModel(IdentityBase):
    """Records that an external event's items are in the ledger."""

    __tablename__ = "applied_events"

    dedup_key: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    product_id: Mapped[str] = mapped_column(String(100), nullable=False)
    items_added: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    applied_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
