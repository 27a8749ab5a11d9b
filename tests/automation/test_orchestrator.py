"""Tests for inventory_automation.orchestrator.InventoryOrchestrator wiring."""

from inventory_automation.alerts import AlertSink, LoggingAlertSink
from inventory_automation.orchestrator import InventoryOrchestrator
from inventory_config.schema import (
    DatabaseSettings,
    InventorySettings,
    LedgerSettings,
    ProductProfile,
    SchedulerSettings,
)
from inventory_jobs.client import JobClient
from inventory_jobs.types import RestockOutcome
from inventory_kernel.db.engine import create_tables
from inventory_kernel.domain.types import LowStockProduct


class TestInventoryOrchestrator:
    def test_wires_shared_collaborators(self, session_factory, job_service, clock):
        settings = InventorySettings(ledger=LedgerSettings(valid_score_threshold=0.5))

        orchestrator = InventoryOrchestrator(session_factory, job_service, settings, clock=clock)

        assert orchestrator.ledger.valid_score_threshold == 0.5
        assert orchestrator.clock is clock
        assert orchestrator.job_service is job_service
        assert orchestrator.engine is None
        assert orchestrator.scheduler.is_running is False

    def test_end_to_end_restock_from_profiles(self, session_factory, job_service, clock):
        settings = InventorySettings(
            scheduler=SchedulerSettings(stock_threshold=5),
            products=(ProductProfile("P1", collection_config_id="c1"),),
        )
        orchestrator = InventoryOrchestrator(session_factory, job_service, settings, clock=clock)
        orchestrator.ledger.add_items("P1", ["a"])

        outcomes = orchestrator.scheduler.check_stock()

        assert outcomes[0].success is True
        assert outcomes[0].target_count == 100
        assert job_service.started == [outcomes[0].job_id]

    def test_from_settings_builds_engine_and_client(self, tmp_path):
        settings = InventorySettings(
            database=DatabaseSettings(url=f"sqlite:///{tmp_path / 'inv.db'}"),
        )

        orchestrator = InventoryOrchestrator.from_settings(settings)
        try:
            create_tables(orchestrator.engine)
            assert isinstance(orchestrator.job_service, JobClient)
            assert orchestrator.engine.dialect.name == "sqlite"
            assert orchestrator.ledger.add_items("P1", ["x"]) == 1
        finally:
            orchestrator.shutdown(timeout=1)

    def test_logging_sink_satisfies_protocol(self):
        assert isinstance(LoggingAlertSink(), AlertSink)


class TestLoggingAlertSink:
    def test_writes_structured_lines(self, captured_logs):
        sink = LoggingAlertSink()
        sink.send_low_stock_alert([LowStockProduct("P1", 2)], 10)
        sink.send_restock_alert([
            RestockOutcome("P1", 2, True, "started", job_id="J1", target_count=100),
            RestockOutcome("P2", 0, False, "no profile"),
        ])
        sink.send_error_alert("Task failed", "boom", {"task": "stock_monitor"})

        by_message = {r["message"]: r for r in captured_logs()}
        assert by_message["alert_low_stock"]["products"] == {"P1": 2}
        assert by_message["alert_restock"]["started"] == ["P1"]
        assert by_message["alert_restock"]["restock_failed"] == ["P2"]
        assert by_message["alert_error"]["error_message"] == "boom"
        assert by_message["alert_error"]["details"] == {"task": "stock_monitor"}
