"""
JobLauncher -- starts collection and validation jobs for products.

Contract:
    Composes the ledger (read-only) with the job service.  Used by the
    scheduler's stock monitor and validation sweep and by the admin routes.

    - ``start_collection_job`` creates and starts a ``Collect_...`` job.
    - ``start_validation_job`` declines without any RPC when the product has
      no unchecked items; otherwise creates and starts a ``Validate_...`` job.
    - ``restock_low_products`` sizes and starts one collection job per
      low-stock product, isolating failures per product.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from inventory_jobs.types import JobService, JobType, LaunchResult, RestockOutcome
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.types import LowStockProduct
from inventory_kernel.exceptions import JobServiceError
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.services.ledger_service import InventoryLedger

logger = get_logger("jobs.launcher")

DEFAULT_TARGET_COUNT = 100


def restock_target(current_stock: int, threshold: int, baseline: int) -> int:
    """Collection size for a low product: ``max(2 * threshold - current, baseline)``."""
    return max(2 * threshold - current_stock, baseline)


class JobLauncher:
    def __init__(
        self,
        job_service: JobService,
        ledger: InventoryLedger,
        clock: Clock | None = None,
    ):
        self._jobs = job_service
        self._ledger = ledger
        self._clock = clock or SystemClock()

    def start_collection_job(
        self,
        product_id: str,
        config_id: str,
        target_count: int = DEFAULT_TARGET_COUNT,
    ) -> LaunchResult:
        """Create and start a collection job.  JobServiceError propagates."""
        if target_count < 1:
            raise ValueError(f"target_count must be >= 1, got {target_count}")

        stamp = self._timestamp()
        metadata = {
            "type": JobType.COLLECTION,
            "productId": product_id,
            "targetCount": target_count,
            "timestamp": stamp,
        }
        job_id = self._create_and_start(
            f"Collect_{product_id}_{stamp}", config_id, metadata,
        )

        with LogContext.bind(product_id=product_id, job_id=job_id):
            logger.info("collection_job_started", extra={"target_count": target_count})
        return LaunchResult(
            success=True,
            product_id=product_id,
            job_type=JobType.COLLECTION,
            message=f"Started collection job for {target_count} items",
            job_id=job_id,
            target_count=target_count,
        )

    def start_validation_job(self, product_id: str, config_id: str) -> LaunchResult:
        """Start a validation job over the product's unchecked backlog."""
        stats = self._ledger.get_stats(product_id)
        if stats.unchecked_items == 0:
            logger.info("validation_job_skipped", extra={"product_id": product_id})
            return LaunchResult(
                success=False,
                product_id=product_id,
                job_type=JobType.VALIDATION,
                message="No unchecked items to validate",
            )

        stamp = self._timestamp()
        metadata = {
            "type": JobType.VALIDATION,
            "productId": product_id,
            "uncheckedItems": stats.unchecked_items,
            "timestamp": stamp,
        }
        job_id = self._create_and_start(
            f"Validate_{product_id}_{stamp}", config_id, metadata,
        )

        with LogContext.bind(product_id=product_id, job_id=job_id):
            logger.info(
                "validation_job_started",
                extra={"unchecked_items": stats.unchecked_items},
            )
        return LaunchResult(
            success=True,
            product_id=product_id,
            job_type=JobType.VALIDATION,
            message=f"Started validation of {stats.unchecked_items} unchecked items",
            job_id=job_id,
            target_count=stats.unchecked_items,
        )

    def restock_low_products(
        self,
        low_products: Iterable[LowStockProduct],
        threshold: int,
        profiles: Mapping[str, str],
        baseline: int = DEFAULT_TARGET_COUNT,
    ) -> list[RestockOutcome]:
        """Start one collection job per low product that has a profile."""
        outcomes: list[RestockOutcome] = []

        for low in low_products:
            config_id = profiles.get(low.product_id)
            if not config_id:
                logger.warning(
                    "restock_skipped_no_profile", extra={"product_id": low.product_id},
                )
                outcomes.append(RestockOutcome(
                    product_id=low.product_id,
                    current_stock=low.available_items,
                    success=False,
                    message="No collection profile configured",
                ))
                continue

            target = restock_target(low.available_items, threshold, baseline)
            try:
                launch = self.start_collection_job(low.product_id, config_id, target)
            except JobServiceError as exc:
                logger.warning(
                    "restock_job_failed",
                    extra={"product_id": low.product_id, "error": str(exc)},
                )
                outcomes.append(RestockOutcome(
                    product_id=low.product_id,
                    current_stock=low.available_items,
                    success=False,
                    message=str(exc),
                    target_count=target,
                ))
                continue
            except Exception as exc:
                logger.exception("restock_job_unhandled", extra={"product_id": low.product_id})
                outcomes.append(RestockOutcome(
                    product_id=low.product_id,
                    current_stock=low.available_items,
                    success=False,
                    message=f"UNHANDLED_EXCEPTION: {exc}",
                    target_count=target,
                ))
                continue

            outcomes.append(RestockOutcome(
                product_id=low.product_id,
                current_stock=low.available_items,
                success=True,
                message=launch.message,
                job_id=launch.job_id,
                target_count=target,
            ))

        return outcomes

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _timestamp(self) -> str:
        return self._clock.now_utc().strftime("%Y%m%dT%H%M%SZ")

    def _create_and_start(
        self, name: str, config_id: str, metadata: dict[str, Any],
    ) -> str:
        handle = self._jobs.create_job(name, config_id, None, {"metadata": metadata})
        try:
            self._jobs.start_job(handle.job_id)
        except JobServiceError:
            logger.warning(
                "job_created_not_started",
                extra={"job_id": handle.job_id, "job_name": name},
            )
            raise
        return handle.job_id
