"""
AutomationScheduler -- In-process periodic automation tasks.

Contract:
    Owns three ``PeriodicTask`` instances (stock monitor, webhook drain,
    validation sweep), each on its own daemon thread and timer.  Task
    bodies are public (``check_stock``, ``drain_webhooks``,
    ``sweep_validation``) so tests can drive them without threads.

Architecture: inventory_automation/services.  Composes the kernel ledger,
    the job launcher, the webhook ingestor and an AlertSink.

Invariants enforced:
    - Error isolation: every exception in a tick is logged and reported to
      the AlertSink; it never stops future ticks or the other tasks.
    - Skip-if-running: a task never overlaps itself.  An overlapping run is
      logged as ``task_run_skipped`` and returns None.
    - ``stop()`` prevents new ticks; a tick already in flight finishes.
    - All timestamps come from the injected Clock.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Mapping

from inventory_automation.alerts import AlertSink, LoggingAlertSink
from inventory_config.schema import SchedulerSettings
from inventory_ingestion.domain.types import DrainSummary
from inventory_ingestion.services.ingestor import WebhookIngestor
from inventory_jobs.launcher import JobLauncher
from inventory_jobs.types import LaunchResult, RestockOutcome
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.services.ledger_service import InventoryLedger

logger = get_logger("automation.scheduler")

STOCK_MONITOR = "stock_monitor"
WEBHOOK_DRAIN = "webhook_drain"
VALIDATION_SWEEP = "validation_sweep"

TASK_NAMES = (STOCK_MONITOR, WEBHOOK_DRAIN, VALIDATION_SWEEP)


# =============================================================================
# Status DTOs
# =============================================================================


@dataclass(frozen=True)
class TaskStatus:
    name: str
    interval_seconds: float
    running: bool
    in_flight: bool
    next_run_at: datetime | None = None
    last_run_at: datetime | None = None
    last_outcome: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "intervalSeconds": self.interval_seconds,
            "running": self.running,
            "inFlight": self.in_flight,
            "nextRunAt": self.next_run_at.isoformat() if self.next_run_at else None,
            "lastRunAt": self.last_run_at.isoformat() if self.last_run_at else None,
            "lastOutcome": self.last_outcome,
        }


@dataclass(frozen=True)
class SchedulerStatus:
    running: bool
    tasks: dict[str, TaskStatus] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "running": self.running,
            "tasks": {name: task.to_dict() for name, task in self.tasks.items()},
        }


# =============================================================================
# PeriodicTask
# =============================================================================


class PeriodicTask:
    """One named action on its own timer thread.

    The first run happens one interval after ``start()``.  ``run_once()``
    is the guarded entry point used by both the timer loop and callers
    that want an immediate run.
    """

    def __init__(
        self,
        name: str,
        interval_seconds: float,
        action: Callable[[], str | None],
        on_error: Callable[[str, Exception], None],
        clock: Clock | None = None,
    ):
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be > 0, got {interval_seconds}")
        self.name = name
        self.interval_seconds = interval_seconds
        self._action = action
        self._on_error = on_error
        self._clock = clock or SystemClock()
        self._run_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._next_run_at: datetime | None = None
        self._last_run_at: datetime | None = None
        self._last_outcome: str | None = None

    @property
    def is_running(self) -> bool:
        """True while a loop thread is alive and has not been told to stop."""
        return (
            self._thread is not None
            and self._thread.is_alive()
            and not self._stop_event.is_set()
        )

    @property
    def in_flight(self) -> bool:
        return self._run_lock.locked()

    def start(self) -> None:
        """Start a loop thread.

        A thread still finishing its last tick after ``stop()`` keeps its own
        stop event and exits on its own; the new thread gets a fresh one.
        """
        if self.is_running:
            return
        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self._run_loop,
            args=(self._stop_event,),
            name=f"automation-{self.name}",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        self._next_run_at = None

    def run_once(self) -> str | None:
        """Run the action unless a run is already in flight.

        Returns the outcome summary, or None when skipped or failed.
        """
        if not self._run_lock.acquire(blocking=False):
            logger.info("task_run_skipped", extra={"task_name": self.name})
            return None

        try:
            with LogContext.bind(task=self.name):
                self._last_run_at = self._clock.now()
                try:
                    outcome = self._action() or "ok"
                except Exception as exc:
                    logger.exception("task_run_failed")
                    self._last_outcome = f"error: {exc}"
                    self._report(exc)
                    return None
                self._last_outcome = outcome
                logger.debug("task_run_completed", extra={"outcome": outcome})
                return outcome
        finally:
            self._run_lock.release()

    def status(self) -> TaskStatus:
        return TaskStatus(
            name=self.name,
            interval_seconds=self.interval_seconds,
            running=self.is_running,
            in_flight=self.in_flight,
            next_run_at=self._next_run_at,
            last_run_at=self._last_run_at,
            last_outcome=self._last_outcome,
        )

    def _run_loop(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            self._next_run_at = self._clock.now() + timedelta(seconds=self.interval_seconds)
            if stop_event.wait(timeout=self.interval_seconds):
                break
            self.run_once()

    def _report(self, exc: Exception) -> None:
        try:
            self._on_error(self.name, exc)
        except Exception:
            logger.exception("alert_delivery_failed")


# =============================================================================
# AutomationScheduler
# =============================================================================


class AutomationScheduler:
    """Stock monitoring, backlog draining and revalidation on independent timers.

    ``collection_profiles`` and ``validation_profiles`` map productId to a
    job-service config id.  Only products present in the respective map are
    restocked or revalidated.
    """

    def __init__(
        self,
        ledger: InventoryLedger,
        launcher: JobLauncher,
        ingestor: WebhookIngestor,
        alert_sink: AlertSink | None = None,
        settings: SchedulerSettings | None = None,
        collection_profiles: Mapping[str, str] | None = None,
        validation_profiles: Mapping[str, str] | None = None,
        clock: Clock | None = None,
    ):
        self._ledger = ledger
        self._launcher = launcher
        self._ingestor = ingestor
        self._alerts = alert_sink or LoggingAlertSink()
        self._settings = settings or SchedulerSettings()
        self._collection_profiles = dict(collection_profiles or {})
        self._validation_profiles = dict(validation_profiles or {})
        self._clock = clock or SystemClock()
        self._lifecycle_lock = threading.Lock()
        self._running = False

        self._tasks: dict[str, PeriodicTask] = {
            STOCK_MONITOR: PeriodicTask(
                STOCK_MONITOR,
                self._settings.stock_interval_seconds,
                self._stock_monitor_tick,
                self._report_task_error,
                self._clock,
            ),
            WEBHOOK_DRAIN: PeriodicTask(
                WEBHOOK_DRAIN,
                self._settings.drain_interval_seconds,
                self._webhook_drain_tick,
                self._report_task_error,
                self._clock,
            ),
            VALIDATION_SWEEP: PeriodicTask(
                VALIDATION_SWEEP,
                self._settings.validation_interval_seconds,
                self._validation_sweep_tick,
                self._report_task_error,
                self._clock,
            ),
        }

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Start all three timers.  A second call while running is a no-op."""
        with self._lifecycle_lock:
            if self._running:
                return
            for task in self._tasks.values():
                task.start()
            self._running = True
        logger.info(
            "scheduler_started",
            extra={
                "stock_interval": self._settings.stock_interval_seconds,
                "drain_interval": self._settings.drain_interval_seconds,
                "validation_interval": self._settings.validation_interval_seconds,
            },
        )

    def stop(self, timeout: float = 30.0) -> None:
        """Prevent new ticks and wait up to ``timeout`` seconds per task."""
        with self._lifecycle_lock:
            for task in self._tasks.values():
                task.stop(timeout=timeout)
            was_running = self._running
            self._running = False
        if was_running:
            logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    def status(self) -> SchedulerStatus:
        return SchedulerStatus(
            running=self._running,
            tasks={name: task.status() for name, task in self._tasks.items()},
        )

    def run_task(self, name: str) -> str | None:
        """Run one task now, still subject to skip-if-running."""
        task = self._tasks.get(name)
        if task is None:
            raise KeyError(f"Unknown task: {name}")
        return task.run_once()

    # -------------------------------------------------------------------------
    # Task bodies (public for testing)
    # -------------------------------------------------------------------------

    def check_stock(self) -> list[RestockOutcome]:
        threshold = self._settings.stock_threshold
        low_products = self._ledger.get_low_stock_products(threshold)
        if not low_products:
            return []

        logger.info("low_stock_detected", extra={"product_count": len(low_products)})
        self._alerts.send_low_stock_alert(low_products, threshold)

        outcomes = self._launcher.restock_low_products(
            low_products,
            threshold,
            self._collection_profiles,
            baseline=self._settings.restock_baseline,
        )
        if outcomes:
            self._alerts.send_restock_alert(outcomes)
        return outcomes

    def drain_webhooks(self) -> DrainSummary:
        return self._ingestor.drain_unprocessed(self._settings.drain_batch_size)

    def sweep_validation(self) -> list[LaunchResult]:
        """Start a validation job for each profiled product with unchecked items."""
        results: list[LaunchResult] = []
        for product_id, config_id in sorted(self._validation_profiles.items()):
            with LogContext.bind(product_id=product_id):
                try:
                    stats = self._ledger.get_stats(product_id)
                    if stats.unchecked_items == 0:
                        continue
                    results.append(self._launcher.start_validation_job(product_id, config_id))
                except Exception as exc:
                    logger.exception("validation_sweep_product_failed")
                    self._report_task_error(
                        VALIDATION_SWEEP, exc, {"productId": product_id},
                    )
        return results

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _stock_monitor_tick(self) -> str:
        outcomes = self.check_stock()
        started = sum(1 for o in outcomes if o.success)
        return f"restocks_started={started} restocks_failed={len(outcomes) - started}"

    def _webhook_drain_tick(self) -> str:
        summary = self.drain_webhooks()
        return f"drained={summary.attempted} failed={summary.failed}"

    def _validation_sweep_tick(self) -> str:
        results = self.sweep_validation()
        started = sum(1 for r in results if r.success)
        return f"validations_started={started}"

    def _report_task_error(
        self, task_name: str, exc: Exception, details: dict[str, Any] | None = None,
    ) -> None:
        payload = {"task": task_name, "errorType": type(exc).__name__}
        if details:
            payload.update(details)
        try:
            self._alerts.send_error_alert(
                f"Automation task failed: {task_name}", str(exc), payload,
            )
        except Exception:
            logger.exception("alert_delivery_failed", extra={"task_name": task_name})
