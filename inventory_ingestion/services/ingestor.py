"""
WebhookIngestor -- durable receipt and dispatch of job-service events.

Responsibility:
    Records every incoming event before any handling, routes recorded events
    to ledger mutations, and drains the unprocessed backlog.

Architecture position:
    Ingestion > Services.  Depends on the kernel ledger and the job-service
    protocol; called by the webhook endpoint and the scheduler's drain task.

Invariants enforced:
    - Record first: ``receive`` commits the event row (processed=false)
      before the caller is acknowledged and before any dispatch.
    - Failure isolation: ``dispatch`` never raises; every handler error is
      returned as a FAILED ``ProcessingResult``.
    - Idempotent application: item-producing events are applied under a
      dedup key (applied_events is UNIQUE), so re-dispatch after a lost
      ``mark_processed`` is a DUPLICATE no-op instead of double stock.
    - ``processed`` and ``processing_result`` are written in one transaction.
    - Single dispatcher: an event is dispatched only by the caller that won
      ``claim_event``; the inline background task and concurrent drains
      skip events someone else holds.  A lease older than
      ``claim_lease_seconds`` is treated as abandoned.

Failure modes:
    - StorageError from ``receive`` / ``mark_processed`` / reads.
    - WebhookEventNotFoundError from ``mark_processed`` / ``get_event``.
    - ValueError from ``receive`` for events without a string ``type``.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import timedelta
from typing import Any, Callable, Iterator

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from inventory_ingestion.domain.types import (
    DrainOutcome,
    DrainSummary,
    ProcessingResult,
    ProcessingStatus,
    WebhookEventType,
)
from inventory_ingestion.extraction import (
    derive_dedup_key,
    explicit_event_key,
    extract_content,
    extract_contents,
    job_completed_key,
    job_hit_key,
    parse_validity_hit,
)
from inventory_jobs.types import JobService, JobType
from inventory_kernel.db.engine import session_scope
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.types import WebhookEvent
from inventory_kernel.exceptions import (
    AlreadyAppliedError,
    InventoryKernelError,
    ItemNotFoundError,
    StorageError,
    WebhookEventNotFoundError,
)
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.models.webhook_event import WebhookEventModel
from inventory_kernel.services.ledger_service import InventoryLedger

logger = get_logger("ingestion.ingestor")

DEFAULT_PRODUCT_ID = "default"
DEFAULT_CATEGORY = "general"
ITEM_SOURCE = "job-service"
DEFAULT_DRAIN_LIMIT = 100
DEFAULT_CLAIM_LEASE_SECONDS = 600.0


def _tag_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple, set)):
        return [str(tag) for tag in value if tag not in (None, "")]
    return []


class WebhookIngestor:
    """
    Receives, records and dispatches job-service webhook events.

    Contract:
        ``receive`` -> ``dispatch`` -> ``mark_processed`` is the full life of
        an event; ``drain_unprocessed`` replays the last two for anything
        recorded but not yet marked.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        ledger: InventoryLedger,
        job_service: JobService,
        clock: Clock | None = None,
        claim_lease_seconds: float = DEFAULT_CLAIM_LEASE_SECONDS,
    ):
        self._session_factory = session_factory
        self._claim_lease_seconds = claim_lease_seconds
        self._ledger = ledger
        self._jobs = job_service
        self._clock = clock or SystemClock()
        self._handlers: dict[str, Callable[[dict[str, Any]], ProcessingResult]] = {
            WebhookEventType.JOB_COMPLETED.value: self._handle_job_completed,
            WebhookEventType.JOB_HIT.value: self._handle_job_hit,
            WebhookEventType.JOB_PROGRESS.value: self._handle_job_progress,
        }

    # -------------------------------------------------------------------------
    # Receipt
    # -------------------------------------------------------------------------

    def receive(self, event: dict[str, Any]) -> int:
        """Durably record ``event`` unprocessed and return its id."""
        if not isinstance(event, dict):
            raise ValueError("Webhook event must be a JSON object")
        event_type = event.get("type")
        if not isinstance(event_type, str) or not event_type:
            raise ValueError("Webhook event requires a string 'type'")

        dedup_key = derive_dedup_key(event)
        with self._transaction("receive") as session:
            row = WebhookEventModel(
                event_type=event_type,
                payload=event,
                processed=False,
                processing_result=None,
                created_at=self._clock.now(),
                dedup_key=dedup_key,
            )
            session.add(row)
            session.flush()
            event_id = row.id

        logger.info(
            "webhook_event_received",
            extra={"event_id": event_id, "event_type": event_type, "dedup_key": dedup_key},
        )
        return event_id

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def dispatch(self, event: dict[str, Any]) -> ProcessingResult:
        """Apply one event to the ledger.  Never raises."""
        event_type = event.get("type") if isinstance(event, dict) else None
        handler = self._handlers.get(event_type) if isinstance(event_type, str) else None
        if handler is None:
            logger.info("webhook_event_unhandled", extra={"event_type": event_type})
            return ProcessingResult(
                status=ProcessingStatus.UNHANDLED,
                message=f"Unknown event type: {event_type}",
            )

        try:
            result = handler(event)
        except AlreadyAppliedError as exc:
            logger.info(
                "webhook_event_duplicate",
                extra={"event_type": event_type, "dedup_key": exc.dedup_key},
            )
            return ProcessingResult(
                status=ProcessingStatus.DUPLICATE,
                message="Event already applied",
                dedup_key=exc.dedup_key,
            )
        except InventoryKernelError as exc:
            logger.warning(
                "webhook_dispatch_failed",
                extra={"event_type": event_type, "error_code": exc.code},
                exc_info=True,
            )
            return ProcessingResult.failed(str(exc), exc.code)
        except Exception as exc:
            logger.exception(
                "webhook_dispatch_unhandled_exception", extra={"event_type": event_type},
            )
            return ProcessingResult.failed(str(exc) or type(exc).__name__, "UNHANDLED_EXCEPTION")

        logger.info(
            "webhook_event_dispatched",
            extra={
                "event_type": event_type,
                "status": result.status.value,
                "items_added": result.items_added,
                "skipped": result.skipped,
            },
        )
        return result

    def claim_event(self, event_id: int) -> bool:
        """Take the dispatch lease on an unprocessed event; False if someone holds it.

        One conditional UPDATE decides the winner: under concurrent callers
        exactly one sees a row count of 1.
        """
        now = self._clock.now()
        stale_before = now - timedelta(seconds=self._claim_lease_seconds)
        with self._transaction("claim_event") as session:
            claimed = session.execute(
                update(WebhookEventModel)
                .where(
                    WebhookEventModel.id == event_id,
                    WebhookEventModel.processed.is_(False),
                    or_(
                        WebhookEventModel.claimed_at.is_(None),
                        WebhookEventModel.claimed_at < stale_before,
                    ),
                )
                .values(claimed_at=now)
                .execution_options(synchronize_session=False)
            ).rowcount
        return claimed == 1

    def release_claim(self, event_id: int) -> None:
        """Drop the lease on an event that is still unprocessed."""
        with self._transaction("release_claim") as session:
            session.execute(
                update(WebhookEventModel)
                .where(
                    WebhookEventModel.id == event_id,
                    WebhookEventModel.processed.is_(False),
                )
                .values(claimed_at=None)
                .execution_options(synchronize_session=False)
            )

    def mark_processed(self, event_id: int, result: ProcessingResult | dict[str, Any]) -> None:
        """Flag the event processed together with its result.  Repeats overwrite."""
        payload = result.to_dict() if isinstance(result, ProcessingResult) else dict(result)
        with self._transaction("mark_processed") as session:
            row = session.get(WebhookEventModel, event_id, with_for_update=True)
            if row is None:
                raise WebhookEventNotFoundError(event_id)
            row.processed = True
            row.processing_result = payload
            row.processed_at = self._clock.now()
            row.claimed_at = None

        logger.debug("webhook_event_marked", extra={"event_id": event_id})

    def process_event(self, event_id: int) -> ProcessingResult | None:
        """Claim, dispatch and mark one recorded event.

        Returns None when the event is already processed or another caller
        holds its claim.
        """
        event = self.get_event(event_id)
        if event.processed:
            return None
        with LogContext.bind(event_id=event_id):
            if not self.claim_event(event_id):
                logger.info("webhook_event_claimed_elsewhere")
                return None
            result = self.dispatch(event.payload)
            self.mark_processed(event_id, result)
        return result

    def drain_unprocessed(self, limit: int = DEFAULT_DRAIN_LIMIT) -> DrainSummary:
        """Claim, dispatch and mark up to ``limit`` oldest unprocessed events, each independently.

        Events claimed by another caller are skipped and counted in
        ``claimed_elsewhere``; they are not part of ``attempted``.
        """
        events = self.list_unprocessed(limit)
        outcomes: list[DrainOutcome] = []
        succeeded = failed = mark_failures = items_added = claimed_elsewhere = 0

        for event in events:
            with LogContext.bind(event_id=event.event_id):
                if not self.claim_event(event.event_id):
                    claimed_elsewhere += 1
                    logger.debug("webhook_event_claimed_elsewhere")
                    continue

                result = self.dispatch(event.payload)
                if result.success:
                    succeeded += 1
                    items_added += result.items_added
                else:
                    failed += 1

                try:
                    self.mark_processed(event.event_id, result)
                    marked = True
                except Exception:
                    logger.exception("webhook_mark_processed_failed")
                    mark_failures += 1
                    marked = False
                    self._release_after_failed_mark(event.event_id)

            outcomes.append(DrainOutcome(
                event_id=event.event_id,
                event_type=event.event_type,
                status=result.status,
                marked=marked,
            ))

        summary = DrainSummary(
            attempted=len(outcomes),
            succeeded=succeeded,
            failed=failed,
            mark_failures=mark_failures,
            items_added=items_added,
            claimed_elsewhere=claimed_elsewhere,
            outcomes=tuple(outcomes),
        )
        if events:
            logger.info("webhook_drain_completed", extra=summary.to_dict())
        return summary

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_event(self, event_id: int) -> WebhookEvent:
        with self._transaction("get_event") as session:
            row = session.get(WebhookEventModel, event_id)
            if row is None:
                raise WebhookEventNotFoundError(event_id)
            return row.to_dto()

    def list_unprocessed(self, limit: int = DEFAULT_DRAIN_LIMIT) -> list[WebhookEvent]:
        """Oldest unprocessed events first (insertion order)."""
        with self._transaction("list_unprocessed") as session:
            rows = session.execute(
                select(WebhookEventModel)
                .where(WebhookEventModel.processed.is_(False))
                .order_by(WebhookEventModel.id)
                .limit(limit)
            ).scalars().all()
            return [row.to_dto() for row in rows]

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------

    def _handle_job_completed(self, event: dict[str, Any]) -> ProcessingResult:
        job_id = event.get("jobId")
        if job_id in (None, ""):
            return ProcessingResult.failed("job.completed event has no jobId", "INVALID_EVENT")
        job_id = str(job_id)

        with LogContext.bind(job_id=job_id):
            descriptor = self._jobs.get_job_status(job_id)
            hits = self._jobs.get_hits(job_id)

            if descriptor.job_type == JobType.VALIDATION:
                return self._apply_validity_results(hits)

            metadata = descriptor.metadata
            product_id = str(metadata.get("productId") or DEFAULT_PRODUCT_ID)
            contents, skipped = extract_contents(hits)
            if skipped:
                logger.info(
                    "job_hits_skipped",
                    extra={"skipped": skipped, "total_hits": len(hits)},
                )
            if not contents:
                return ProcessingResult(
                    status=ProcessingStatus.IGNORED,
                    message="No extractable content in job results",
                    skipped=skipped,
                )

            dedup_key = explicit_event_key(event) or job_completed_key(job_id)
            added = self._ledger.add_items(
                product_id,
                contents,
                source=ITEM_SOURCE,
                category=str(metadata.get("category") or DEFAULT_CATEGORY),
                tags=_tag_list(metadata.get("tags")),
                dedup_key=dedup_key,
            )
        return ProcessingResult(
            status=ProcessingStatus.HANDLED,
            message=f"Added {added} items to {product_id}",
            items_added=added,
            skipped=skipped,
            dedup_key=dedup_key,
        )

    def _handle_job_hit(self, event: dict[str, Any]) -> ProcessingResult:
        hit = event.get("hit")
        if not isinstance(hit, dict):
            return ProcessingResult.failed("job.hit event has no hit record", "INVALID_EVENT")

        content = extract_content(hit)
        if content is None:
            return ProcessingResult(
                status=ProcessingStatus.IGNORED,
                message="No content found in hit",
                skipped=1,
            )

        job_id = event.get("jobId")
        metadata: dict[str, Any] = {}
        product_id = hit.get("productId") or event.get("productId")
        if not product_id and job_id not in (None, ""):
            metadata = self._jobs.get_job_status(str(job_id)).metadata
            product_id = metadata.get("productId")
        product_id = str(product_id or DEFAULT_PRODUCT_ID)

        dedup_key = explicit_event_key(event) or job_hit_key(job_id, hit)
        added = self._ledger.add_items(
            product_id,
            [content],
            source=ITEM_SOURCE,
            category=str(metadata.get("category") or DEFAULT_CATEGORY),
            tags=_tag_list(metadata.get("tags")),
            dedup_key=dedup_key,
        )
        return ProcessingResult(
            status=ProcessingStatus.HANDLED,
            message=f"Added {added} item to {product_id}",
            items_added=added,
            dedup_key=dedup_key,
        )

    def _handle_job_progress(self, event: dict[str, Any]) -> ProcessingResult:
        logger.info(
            "job_progress",
            extra={"job_id": event.get("jobId"), "progress": event.get("progress")},
        )
        return ProcessingResult(status=ProcessingStatus.HANDLED, message="Progress recorded")

    def _apply_validity_results(self, hits: list[Any]) -> ProcessingResult:
        recorded = skipped = 0
        for hit in hits:
            parsed = parse_validity_hit(hit)
            if parsed is None:
                skipped += 1
                continue
            try:
                self._ledger.add_validity_check(
                    parsed.item_id,
                    parsed.result,
                    parsed.score,
                    parsed.method,
                    parsed.details,
                    parsed.execution_time_ms,
                )
            except ItemNotFoundError:
                logger.warning("validity_result_unknown_item", extra={"item_id": parsed.item_id})
                skipped += 1
                continue
            recorded += 1

        return ProcessingResult(
            status=ProcessingStatus.HANDLED,
            message=f"Recorded {recorded} validity checks",
            checks_recorded=recorded,
            skipped=skipped,
        )

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _release_after_failed_mark(self, event_id: int) -> None:
        # Left claimed, the event would wait out the lease before the next drain retries it.
        try:
            self.release_claim(event_id)
        except StorageError:
            logger.warning("webhook_claim_release_failed", exc_info=True)

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[Session]:
        try:
            with session_scope(self._session_factory) as session:
                yield session
        except SQLAlchemyError as exc:
            logger.error(
                "ingestion_storage_failure",
                extra={"operation": operation},
                exc_info=True,
            )
            raise StorageError(operation, str(exc)) from exc
