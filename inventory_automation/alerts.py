"""
Alert sink boundary for the automation tasks.

Formatting and delivery (email, chat channels) live outside this package.
The scheduler only needs something that accepts the three notifications;
``LoggingAlertSink`` writes them as structured log lines.
"""

from __future__ import annotations

from typing import Any, Protocol, Sequence, runtime_checkable

from inventory_jobs.types import RestockOutcome
from inventory_kernel.domain.types import LowStockProduct
from inventory_kernel.logging_config import get_logger

logger = get_logger("automation.alerts")


@runtime_checkable
class AlertSink(Protocol):
    def send_low_stock_alert(
        self, products: Sequence[LowStockProduct], threshold: int,
    ) -> None:
        ...

    def send_restock_alert(self, outcomes: Sequence[RestockOutcome]) -> None:
        ...

    def send_error_alert(
        self, title: str, message: str, details: dict[str, Any] | None = None,
    ) -> None:
        ...


class LoggingAlertSink:
    """Default sink: one structured log line per alert."""

    def send_low_stock_alert(
        self, products: Sequence[LowStockProduct], threshold: int,
    ) -> None:
        logger.warning(
            "alert_low_stock",
            extra={
                "threshold": threshold,
                "product_count": len(products),
                "products": {p.product_id: p.available_items for p in products},
            },
        )

    def send_restock_alert(self, outcomes: Sequence[RestockOutcome]) -> None:
        started = [o.product_id for o in outcomes if o.success]
        failed = [o.product_id for o in outcomes if not o.success]
        logger.info(
            "alert_restock",
            extra={"started": started, "restock_failed": failed},
        )

    def send_error_alert(
        self, title: str, message: str, details: dict[str, Any] | None = None,
    ) -> None:
        logger.error(
            "alert_error",
            extra={"title": title, "error_message": message, "details": details or {}},
        )
