"""
ORM model for the durable webhook ingestion log.

Every event is written here with processed=false before any handling, so a
crash between receipt and handling leaves a re-drainable row.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import IdentityBase, JSONDocument
from inventory_kernel.domain.types import WebhookEvent


class WebhookEventModel(IdentityBase):
    __tablename__ = "webhook_events"

    __table_args__ = (
        Index("ix_webhook_events_processed_id", "processed", "id"),
        Index("ix_webhook_events_dedup_key", "dedup_key"),
    )

    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSONDocument, nullable=False)
    processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    processing_result: Mapped[dict[str, Any] | None] = mapped_column(
        JSONDocument, nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    # Informational; uniqueness is enforced on applied_events.
    dedup_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # Dispatch lease; set by claim_event, cleared when the event is marked.
    claimed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    def to_dto(self) -> WebhookEvent:
        return WebhookEvent(
            event_id=self.id,
            event_type=self.event_type,
            payload=self.payload or {},
            processed=self.processed,
            processing_result=self.processing_result,
            created_at=self.created_at,
            processed_at=self.processed_at,
            dedup_key=self.dedup_key,
            claimed_at=self.claimed_at,
        )
