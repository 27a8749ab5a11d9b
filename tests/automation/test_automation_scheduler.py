"""
Tests for inventory_automation.services.scheduler.

Task bodies are driven directly (no threads) for behaviour; PeriodicTask is
exercised with short intervals for the start/stop lifecycle and the
skip-if-running guard.
"""

import threading

import pytest

from inventory_automation.services.scheduler import (
    STOCK_MONITOR,
    TASK_NAMES,
    VALIDATION_SWEEP,
    WEBHOOK_DRAIN,
    AutomationScheduler,
    PeriodicTask,
)
from inventory_config.schema import SchedulerSettings
from inventory_ingestion.services.ingestor import WebhookIngestor
from inventory_jobs.launcher import JobLauncher


class RecordingAlertSink:
    def __init__(self, fail: bool = False):
        self.low_stock = []
        self.restocks = []
        self.errors = []
        self.fail = fail

    def send_low_stock_alert(self, products, threshold):
        self.low_stock.append((list(products), threshold))

    def send_restock_alert(self, outcomes):
        self.restocks.append(list(outcomes))

    def send_error_alert(self, title, message, details=None):
        if self.fail:
            raise ConnectionError("alert channel down")
        self.errors.append((title, message, details))


@pytest.fixture
def alerts():
    return RecordingAlertSink()


@pytest.fixture
def scheduler(session_factory, ledger, job_service, clock, alerts):
    launcher = JobLauncher(job_service, ledger, clock=clock)
    ingestor = WebhookIngestor(session_factory, ledger, job_service, clock=clock)
    return AutomationScheduler(
        ledger=ledger,
        launcher=launcher,
        ingestor=ingestor,
        alert_sink=alerts,
        settings=SchedulerSettings(stock_threshold=10, restock_baseline=100, drain_batch_size=100),
        collection_profiles={"P1": "collect-1"},
        validation_profiles={"P1": "validate-1", "P2": "validate-2"},
        clock=clock,
    )


def _wait_for(predicate, timeout: float = 5.0) -> bool:
    done = threading.Event()
    for _ in range(int(timeout / 0.01)):
        if predicate():
            return True
        done.wait(0.01)
    return predicate()


# =============================================================================
# Stock monitor
# =============================================================================


class TestStockMonitor:
    def test_nothing_low_sends_nothing(self, scheduler, ledger, alerts, job_service):
        ledger.add_items("P1", ["x"] * 20)

        assert scheduler.check_stock() == []
        assert alerts.low_stock == []
        assert job_service.created == []

    def test_low_products_alert_and_restock(self, scheduler, ledger, alerts, job_service):
        ledger.add_items("P1", ["x"] * 3)
        ledger.add_items("P9", ["x"] * 1)

        outcomes = scheduler.check_stock()

        assert len(alerts.low_stock) == 1
        products, threshold = alerts.low_stock[0]
        assert threshold == 10
        assert [p.product_id for p in products] == ["P9", "P1"]
        by_product = {o.product_id: o for o in outcomes}
        assert by_product["P1"].success is True
        assert by_product["P1"].target_count == 100
        assert by_product["P9"].success is False
        assert len(job_service.created) == 1
        assert job_service.created[0]["config_id"] == "collect-1"
        assert alerts.restocks == [outcomes]

    def test_ledger_failure_reports_error(self, scheduler, ledger, alerts, monkeypatch):
        def broken(threshold):
            raise RuntimeError("db unavailable")

        monkeypatch.setattr(ledger, "get_low_stock_products", broken)

        assert scheduler.run_task(STOCK_MONITOR) is None
        title, message, details = alerts.errors[0]
        assert STOCK_MONITOR in title
        assert message == "db unavailable"
        assert details["errorType"] == "RuntimeError"
        assert scheduler.status().tasks[STOCK_MONITOR].last_outcome == "error: db unavailable"


# =============================================================================
# Webhook drain
# =============================================================================


class TestWebhookDrain:
    def test_drains_backlog(self, scheduler, session_factory, ledger, job_service, clock):
        job_service.add_job("J1", {"productId": "P1"}, [{"data": {"SUCCESS": "a"}}])
        ingestor = WebhookIngestor(session_factory, ledger, job_service, clock=clock)
        ingestor.receive({"type": "job.completed", "jobId": "J1"})
        ingestor.receive({"type": "job.progress", "jobId": "J1"})

        outcome = scheduler.run_task(WEBHOOK_DRAIN)

        assert outcome == "drained=2 failed=0"
        assert ledger.get_stats("P1").total_items == 1
        assert ingestor.list_unprocessed() == []


# =============================================================================
# Validation sweep
# =============================================================================


class TestValidationSweep:
    def test_only_products_with_unchecked_items(self, scheduler, ledger, job_service):
        ledger.add_items("P1", ["a", "b"])

        results = scheduler.sweep_validation()

        assert [r.product_id for r in results] == ["P1"]
        assert job_service.created[0]["config_id"] == "validate-1"
        assert job_service.created[0]["options"]["metadata"]["uncheckedItems"] == 2

    def test_failing_product_does_not_stop_others(self, scheduler, ledger, job_service, alerts, monkeypatch):
        ledger.add_items("P1", ["a"])
        ledger.add_items("P2", ["b"])
        original = job_service.create_job

        def create(name, config_id, source_path=None, options=None):
            if config_id == "validate-1":
                raise RuntimeError("boom")
            return original(name, config_id, source_path, options)

        monkeypatch.setattr(job_service, "create_job", create)

        results = scheduler.sweep_validation()

        assert [r.product_id for r in results] == ["P2"]
        assert alerts.errors[0][2]["productId"] == "P1"


# =============================================================================
# Lifecycle and guards
# =============================================================================


class TestPeriodicTask:
    def test_runs_on_interval_until_stopped(self, clock):
        calls = []
        task = PeriodicTask("t", 0.01, lambda: calls.append(1) or "ok", lambda n, e: None, clock)

        task.start()
        assert _wait_for(lambda: len(calls) >= 2)
        task.stop(timeout=2)

        assert task.is_running is False
        count = len(calls)
        threading.Event().wait(0.05)
        assert len(calls) == count

    def test_overlapping_run_is_skipped(self, clock, captured_logs):
        entered = threading.Event()
        release = threading.Event()

        def slow():
            entered.set()
            release.wait(5)
            return "done"

        task = PeriodicTask("slow", 60, slow, lambda n, e: None, clock)
        worker = threading.Thread(target=task.run_once)
        worker.start()
        assert entered.wait(5)

        assert task.in_flight is True
        assert task.run_once() is None
        release.set()
        worker.join(5)

        assert task.status().last_outcome == "done"
        assert any(
            r["message"] == "task_run_skipped" and r["task_name"] == "slow"
            for r in captured_logs()
        )

    def test_restart_while_last_tick_is_finishing(self, clock):
        calls = []
        entered = threading.Event()
        release = threading.Event()

        def action():
            calls.append(1)
            if len(calls) == 1:
                entered.set()
                release.wait(5)
            return "ok"

        task = PeriodicTask("t", 0.01, action, lambda n, e: None, clock)
        task.start()
        assert entered.wait(5)

        task.stop(timeout=0.05)
        assert task.is_running is False
        task.start()
        release.set()

        try:
            assert _wait_for(lambda: len(calls) >= 3)
            assert task.is_running is True
        finally:
            task.stop(timeout=2)

    def test_error_callback_failure_is_contained(self, clock, captured_logs):
        def action():
            raise ValueError("bad tick")

        def on_error(name, exc):
            raise ConnectionError("sink down")

        task = PeriodicTask("t", 60, action, on_error, clock)

        assert task.run_once() is None
        messages = [r["message"] for r in captured_logs()]
        assert "task_run_failed" in messages
        assert "alert_delivery_failed" in messages

    def test_interval_must_be_positive(self, clock):
        with pytest.raises(ValueError):
            PeriodicTask("t", 0, lambda: None, lambda n, e: None, clock)


class TestSchedulerLifecycle:
    def test_start_stop(self, scheduler):
        scheduler.start()
        status = scheduler.status()
        assert status.running is True
        assert set(status.tasks) == set(TASK_NAMES)
        assert all(t.running for t in status.tasks.values())

        scheduler.stop(timeout=2)

        status = scheduler.status()
        assert status.running is False
        assert not any(t.running for t in status.tasks.values())

    def test_double_start_is_noop(self, scheduler, captured_logs):
        scheduler.start()
        scheduler.start()
        scheduler.stop(timeout=2)

        started = [r for r in captured_logs() if r["message"] == "scheduler_started"]
        assert len(started) == 1

    def test_status_reports_intervals(self, scheduler):
        tasks = scheduler.status().tasks
        assert tasks[STOCK_MONITOR].interval_seconds == 3600.0
        assert tasks[WEBHOOK_DRAIN].interval_seconds == 300.0
        assert tasks[VALIDATION_SWEEP].interval_seconds == 86400.0
        assert tasks[STOCK_MONITOR].last_run_at is None

    def test_run_task_records_outcome(self, scheduler, clock):
        outcome = scheduler.run_task(VALIDATION_SWEEP)

        task = scheduler.status().tasks[VALIDATION_SWEEP]
        assert outcome == "validations_started=0"
        assert task.last_outcome == outcome
        assert task.last_run_at == clock.now()

        later = clock.advance(60)
        scheduler.run_task(VALIDATION_SWEEP)
        assert scheduler.status().tasks[VALIDATION_SWEEP].last_run_at == later

    def test_run_unknown_task(self, scheduler):
        with pytest.raises(KeyError):
            scheduler.run_task("nope")

    def test_alert_sink_failure_is_only_logged(
        self, session_factory, ledger, job_service, clock, monkeypatch, captured_logs,
    ):
        sink = RecordingAlertSink(fail=True)
        scheduler = AutomationScheduler(
            ledger=ledger,
            launcher=JobLauncher(job_service, ledger, clock=clock),
            ingestor=WebhookIngestor(session_factory, ledger, job_service, clock=clock),
            alert_sink=sink,
            clock=clock,
        )
        monkeypatch.setattr(ledger, "get_low_stock_products", lambda threshold: 1 / 0)

        assert scheduler.run_task(STOCK_MONITOR) is None
        assert any(r["message"] == "alert_delivery_failed" for r in captured_logs())
