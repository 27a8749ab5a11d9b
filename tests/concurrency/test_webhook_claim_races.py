"""
Concurrent dispatch of one recorded webhook event.

The inline background task and drain ticks can reach the same event at the
same moment.  Only one of them may dispatch it, and the stored result must
be the one from the dispatch that changed the ledger.

Skip with: pytest -m "not slow_locks"
"""

from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

import pytest
from sqlalchemy.orm import sessionmaker

from inventory_ingestion.services.ingestor import WebhookIngestor
from inventory_kernel.domain.clock import DeterministicClock
from inventory_kernel.services.ledger_service import InventoryLedger

pytestmark = pytest.mark.slow_locks

THREADS = 6


@pytest.fixture
def file_ingestor(file_engine, job_service):
    factory = sessionmaker(bind=file_engine, expire_on_commit=False)
    clock = DeterministicClock()
    ledger = InventoryLedger(factory, clock=clock)
    return WebhookIngestor(factory, ledger, job_service, clock=clock), ledger


class TestSqliteClaimRace:
    def test_parallel_process_event_dispatches_once(self, file_ingestor, job_service):
        ingestor, ledger = file_ingestor
        job_service.add_job(
            "J1",
            {"type": "collection", "productId": "P1"},
            [{"data": {"SUCCESS": f"h{i}"}} for i in range(3)],
        )
        event_id = ingestor.receive({"type": "job.completed", "jobId": "J1"})
        barrier = Barrier(THREADS)

        def work(n: int):
            barrier.wait()
            if n % 2:
                return ingestor.process_event(event_id)
            return ingestor.drain_unprocessed()

        with ThreadPoolExecutor(max_workers=THREADS) as pool:
            results = list(pool.map(work, range(THREADS)))

        dispatched = [r for r in results[1::2] if r is not None]
        drained = sum(s.attempted for s in results[0::2])
        assert len(dispatched) + drained == 1
        assert ledger.get_stats("P1").total_items == 3
        stored = ingestor.get_event(event_id)
        assert stored.processed is True
        assert stored.processing_result["itemsAdded"] == 3
        assert stored.processing_result["status"] == "handled"

    def test_parallel_validation_results_recorded_once(self, file_ingestor, job_service):
        ingestor, ledger = file_ingestor
        ledger.add_items("P1", ["a"])
        item = ledger.get_available_items("P1")[0]
        job_service.add_job(
            "V1",
            {"type": "validation", "productId": "P1"},
            [{"itemId": item.item_id, "score": 0.9, "result": "valid"}],
        )
        event_id = ingestor.receive({"type": "job.completed", "jobId": "V1"})
        barrier = Barrier(THREADS)

        def work(_: int):
            barrier.wait()
            return ingestor.process_event(event_id)

        with ThreadPoolExecutor(max_workers=THREADS) as pool:
            results = list(pool.map(work, range(THREADS)))

        assert len([r for r in results if r is not None]) == 1
        assert len(ledger.get_validity_checks(item.item_id)) == 1
