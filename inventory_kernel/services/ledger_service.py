"""
InventoryLedger -- transactional store of consumable items per product.

Responsibility:
    Owns item rows, the validity audit trail and the per-product stats row.
    Every public mutation is exactly one database transaction: it either
    commits items and stats together or leaves nothing behind.

Architecture position:
    Kernel > Services -- imperative shell.  Called by the webhook ingestor
    (add_items, add_validity_check), the job launcher and scheduler
    (get_stats, get_low_stock_products) and the storefront order flow
    (reserve_items, complete_order, cancel_order).

Invariants enforced:
    - Product lock: every mutation first selects the product's stats row
      ``FOR UPDATE`` (creating it under a SAVEPOINT on first use).  All
      mutations of one product therefore serialize, and the stats recompute
      can never interleave with another writer's item changes.
    - Locking reservation: candidate items are read ``FOR UPDATE`` in id
      (insertion) order; the availability check and the claim happen in the
      same transaction.
    - Stats recompute runs inside the mutating transaction, so no committed
      state ever shows items without their stats.
    - available + reserved + sold == total for every committed stats row.
    - External-event idempotency: ``add_items(dedup_key=...)`` inserts a
      UNIQUE applied_events row in the same transaction as the items.

Failure modes:
    - StorageError: any SQLAlchemyError; the transaction is rolled back.
    - InsufficientStockError: reservation exceeds availability; no change.
    - OrderNotFoundError: complete/cancel with nothing reserved.
    - ItemNotFoundError: validity check or lookup for a missing item.
    - AlreadyAppliedError: dedup_key already applied; no change.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Iterable, Iterator

from sqlalchemy import and_, case, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.types import (
    InventoryItem,
    ItemStatus,
    LowStockProduct,
    ProductStats,
    RestockCheck,
    ValidityCheck,
)
from inventory_kernel.exceptions import (
    AlreadyAppliedError,
    InsufficientStockError,
    ItemNotFoundError,
    OrderNotFoundError,
    StorageError,
)
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.models.inventory import (
    AppliedEventModel,
    InventoryItemModel,
    ProductStatsModel,
    ValidityCheckModel,
)

logger = get_logger("services.ledger")

DEFAULT_VALID_SCORE_THRESHOLD = 0.8
DEFAULT_LOW_STOCK_THRESHOLD = 10


def _count_where(condition: Any) -> Any:
    return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)


class InventoryLedger:
    """
    Transactional item ledger.

    Contract:
        Each public method opens its own session from ``session_factory``,
        commits on success and rolls back on any error.  Callers receive
        frozen DTOs only.

    Non-goals:
        - Does NOT expire abandoned reservations.
        - Does NOT delete items.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        valid_score_threshold: float = DEFAULT_VALID_SCORE_THRESHOLD,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._valid_score_threshold = valid_score_threshold

    @property
    def valid_score_threshold(self) -> float:
        return self._valid_score_threshold

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def add_items(
        self,
        product_id: str,
        contents: Iterable[str],
        source: str = "manual",
        category: str = "general",
        tags: Iterable[str] = (),
        dedup_key: str | None = None,
    ) -> int:
        """
        Insert a batch of available items for ``product_id``.

        All-or-nothing.  When ``dedup_key`` is given the batch is recorded as
        the application of that external event; a second call with the same
        key raises AlreadyAppliedError and inserts nothing.

        Returns:
            Number of items inserted (0 for an empty batch).
        """
        batch = list(contents)
        for content in batch:
            if not isinstance(content, str) or not content:
                raise ValueError(f"Item content must be a non-empty string, got {content!r}")
        if not batch:
            return 0

        tag_list = sorted(set(tags))
        now = self._clock.now()

        with LogContext.bind(product_id=product_id):
            with self._unit_of_work("add_items") as session:
                stats = self._lock_product(session, product_id, now)
                if dedup_key is not None:
                    self._record_application(session, dedup_key, product_id, len(batch), now)
                session.add_all([
                    InventoryItemModel(
                        product_id=product_id,
                        content=content,
                        status=ItemStatus.AVAILABLE.value,
                        order_id=None,
                        validity_checked=False,
                        source=source,
                        category=category,
                        tags=list(tag_list),
                        added_date=now,
                        updated_date=now,
                    )
                    for content in batch
                ])
                session.flush()
                self._recompute_stats(session, stats, now)

            logger.info(
                "items_added",
                extra={
                    "count": len(batch),
                    "source": source,
                    "category": category,
                    "dedup_key": dedup_key,
                },
            )
        return len(batch)

    def reserve_items(
        self, product_id: str, order_id: str, quantity: int,
    ) -> list[InventoryItem]:
        """
        Claim the ``quantity`` oldest available items for ``order_id``.

        Returns exactly ``quantity`` distinct items now reserved by the order,
        or raises InsufficientStockError with no state change.
        """
        if quantity < 1:
            raise ValueError(f"quantity must be >= 1, got {quantity}")
        now = self._clock.now()

        with LogContext.bind(product_id=product_id, order_id=order_id):
            with self._unit_of_work("reserve_items") as session:
                stats = self._lock_product(session, product_id, now)

                rows = session.execute(
                    select(InventoryItemModel)
                    .where(
                        InventoryItemModel.product_id == product_id,
                        InventoryItemModel.status == ItemStatus.AVAILABLE.value,
                    )
                    .order_by(InventoryItemModel.id)
                    .limit(quantity)
                    .with_for_update()
                    .execution_options(populate_existing=True)
                ).scalars().all()

                if len(rows) < quantity:
                    logger.warning(
                        "reservation_insufficient_stock",
                        extra={"requested": quantity, "available": len(rows)},
                    )
                    raise InsufficientStockError(product_id, quantity, len(rows))

                for row in rows:
                    row.status = ItemStatus.RESERVED.value
                    row.order_id = order_id
                    row.updated_date = now
                session.flush()
                self._recompute_stats(session, stats, now)
                reserved = [row.to_dto() for row in rows]

            logger.info(
                "items_reserved",
                extra={"quantity": quantity, "item_ids": [i.item_id for i in reserved]},
            )
        return reserved

    def complete_order(self, order_id: str) -> int:
        """Move every item reserved by ``order_id`` to sold."""
        return self._settle_order(order_id, ItemStatus.SOLD, "complete_order")

    def cancel_order(self, order_id: str) -> int:
        """Return every item reserved by ``order_id`` to available."""
        return self._settle_order(order_id, ItemStatus.AVAILABLE, "cancel_order")

    def add_validity_check(
        self,
        item_id: int,
        result: str,
        score: float | None,
        method: str,
        details: dict[str, Any] | None = None,
        execution_time_ms: int | None = None,
    ) -> ValidityCheck:
        """Append a validity audit row and update the item's checked state."""
        now = self._clock.now()
        score_value = float(score) if score is not None else None

        with self._unit_of_work("add_validity_check") as session:
            item = session.get(InventoryItemModel, item_id)
            if item is None:
                raise ItemNotFoundError(item_id)

            stats = self._lock_product(session, item.product_id, now)
            session.refresh(item, with_for_update=True)

            check = ValidityCheckModel(
                inventory_id=item.id,
                result=result,
                score=score_value,
                check_method=method,
                details=details,
                execution_time=execution_time_ms,
                check_date=now,
            )
            session.add(check)

            item.validity_checked = True
            item.validity_score = score_value
            item.validation_date = now
            item.updated_date = now
            session.flush()
            self._recompute_stats(session, stats, now)
            dto = check.to_dto()
            product_id = item.product_id

        logger.info(
            "validity_check_recorded",
            extra={
                "item_id": item_id,
                "product_id": product_id,
                "result": result,
                "score": score_value,
                "method": method,
            },
        )
        return dto

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_stats(self, product_id: str) -> ProductStats:
        """Committed stats for ``product_id``; a zero row if it has none."""
        with self._unit_of_work("get_stats") as session:
            row = session.get(ProductStatsModel, product_id)
            return row.to_dto() if row is not None else ProductStats.zero(product_id)

    def get_low_stock_products(
        self, threshold: int = DEFAULT_LOW_STOCK_THRESHOLD,
    ) -> list[LowStockProduct]:
        """Products whose available count is below ``threshold``, scarcest first."""
        with self._unit_of_work("get_low_stock_products") as session:
            rows = session.execute(
                select(ProductStatsModel.product_id, ProductStatsModel.available_items)
                .where(ProductStatsModel.available_items < threshold)
                .order_by(ProductStatsModel.available_items, ProductStatsModel.product_id)
            ).all()
        return [LowStockProduct(product_id=pid, available_items=avail) for pid, avail in rows]

    def check_restock_needed(
        self, product_id: str, threshold: int = DEFAULT_LOW_STOCK_THRESHOLD,
    ) -> RestockCheck:
        stats = self.get_stats(product_id)
        return RestockCheck(
            product_id=product_id,
            needs_restock=stats.available_items < threshold,
            current_stock=stats.available_items,
            threshold=threshold,
        )

    def get_available_items(self, product_id: str, limit: int = 1) -> list[InventoryItem]:
        """Peek at the oldest available items without reserving them."""
        with self._unit_of_work("get_available_items") as session:
            rows = session.execute(
                select(InventoryItemModel)
                .where(
                    InventoryItemModel.product_id == product_id,
                    InventoryItemModel.status == ItemStatus.AVAILABLE.value,
                )
                .order_by(InventoryItemModel.id)
                .limit(limit)
            ).scalars().all()
            return [row.to_dto() for row in rows]

    def get_order_items(self, order_id: str) -> list[InventoryItem]:
        with self._unit_of_work("get_order_items") as session:
            rows = session.execute(
                select(InventoryItemModel)
                .where(InventoryItemModel.order_id == order_id)
                .order_by(InventoryItemModel.id)
            ).scalars().all()
            return [row.to_dto() for row in rows]

    def get_item(self, item_id: int) -> InventoryItem:
        with self._unit_of_work("get_item") as session:
            item = session.get(InventoryItemModel, item_id)
            if item is None:
                raise ItemNotFoundError(item_id)
            return item.to_dto()

    def get_validity_checks(self, item_id: int) -> list[ValidityCheck]:
        with self._unit_of_work("get_validity_checks") as session:
            rows = session.execute(
                select(ValidityCheckModel)
                .where(ValidityCheckModel.inventory_id == item_id)
                .order_by(ValidityCheckModel.id)
            ).scalars().all()
            return [row.to_dto() for row in rows]

    def is_applied(self, dedup_key: str) -> bool:
        """True when an external event with ``dedup_key`` is in the ledger."""
        with self._unit_of_work("is_applied") as session:
            found = session.execute(
                select(AppliedEventModel.id).where(AppliedEventModel.dedup_key == dedup_key)
            ).first()
            return found is not None

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    @contextmanager
    def _unit_of_work(self, operation: str) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error(
                "ledger_storage_failure",
                extra={"operation": operation},
                exc_info=True,
            )
            raise StorageError(operation, str(exc)) from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _settle_order(self, order_id: str, target: ItemStatus, operation: str) -> int:
        now = self._clock.now()

        with LogContext.bind(order_id=order_id):
            with self._unit_of_work(operation) as session:
                product_ids = session.execute(
                    select(InventoryItemModel.product_id)
                    .where(
                        InventoryItemModel.order_id == order_id,
                        InventoryItemModel.status == ItemStatus.RESERVED.value,
                    )
                    .distinct()
                    .order_by(InventoryItemModel.product_id)
                ).scalars().all()
                if not product_ids:
                    raise OrderNotFoundError(order_id)

                # Sorted lock order keeps multi-product orders deadlock-free.
                locked = [self._lock_product(session, pid, now) for pid in product_ids]

                rows = session.execute(
                    select(InventoryItemModel)
                    .where(
                        InventoryItemModel.order_id == order_id,
                        InventoryItemModel.status == ItemStatus.RESERVED.value,
                        InventoryItemModel.product_id.in_(product_ids),
                    )
                    .order_by(InventoryItemModel.id)
                    .with_for_update()
                    .execution_options(populate_existing=True)
                ).scalars().all()
                if not rows:
                    raise OrderNotFoundError(order_id)

                for row in rows:
                    row.status = target.value
                    row.order_id = order_id if target is ItemStatus.SOLD else None
                    row.updated_date = now
                session.flush()
                for stats in locked:
                    self._recompute_stats(session, stats, now)
                count = len(rows)

            logger.info(
                "order_completed" if target is ItemStatus.SOLD else "order_cancelled",
                extra={"count": count, "product_ids": list(product_ids)},
            )
        return count

    def _lock_product(
        self, session: Session, product_id: str, now: datetime,
    ) -> ProductStatsModel:
        """Lock (creating if needed) the product's stats row."""
        stats = session.execute(
            select(ProductStatsModel)
            .where(ProductStatsModel.product_id == product_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if stats is not None:
            return stats

        # First use of this product; another writer may create it concurrently.
        savepoint = session.begin_nested()
        try:
            stats = ProductStatsModel(
                product_id=product_id,
                total_items=0,
                available_items=0,
                reserved_items=0,
                sold_items=0,
                valid_items=0,
                invalid_items=0,
                unchecked_items=0,
                last_updated=now,
            )
            session.add(stats)
            session.flush()
            savepoint.commit()
            return stats
        except IntegrityError:
            logger.debug("product_stats_race_retry", extra={"product_id": product_id})
            savepoint.rollback()
            return session.execute(
                select(ProductStatsModel)
                .where(ProductStatsModel.product_id == product_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one()

    def _record_application(
        self,
        session: Session,
        dedup_key: str,
        product_id: str,
        items_added: int,
        now: datetime,
    ) -> None:
        existing = session.execute(
            select(AppliedEventModel).where(AppliedEventModel.dedup_key == dedup_key)
        ).scalar_one_or_none()
        if existing is not None:
            raise AlreadyAppliedError(dedup_key, existing.items_added)

        try:
            with session.begin_nested():
                session.add(AppliedEventModel(
                    dedup_key=dedup_key,
                    product_id=product_id,
                    items_added=items_added,
                    applied_at=now,
                ))
                session.flush()
        except IntegrityError as exc:
            raise AlreadyAppliedError(dedup_key) from exc

    def _recompute_stats(
        self, session: Session, stats: ProductStatsModel, now: datetime,
    ) -> None:
        """Single aggregate pass over the product's items into its stats row."""
        item = InventoryItemModel
        checked = item.validity_checked.is_(True)
        threshold = self._valid_score_threshold

        row = session.execute(
            select(
                func.count(item.id),
                _count_where(item.status == ItemStatus.AVAILABLE.value),
                _count_where(item.status == ItemStatus.RESERVED.value),
                _count_where(item.status == ItemStatus.SOLD.value),
                _count_where(and_(checked, item.validity_score >= threshold)),
                _count_where(and_(checked, item.validity_score < threshold)),
                _count_where(item.validity_checked.is_(False)),
            ).where(item.product_id == stats.product_id)
        ).one()

        (
            stats.total_items,
            stats.available_items,
            stats.reserved_items,
            stats.sold_items,
            stats.valid_items,
            stats.invalid_items,
            stats.unchecked_items,
        ) = (int(value) for value in row)
        stats.last_updated = now
        session.flush()
