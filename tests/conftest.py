"""
Pytest fixtures for the inventory pipeline test suite.

Provides:
- Structured-logging setup and a ``captured_logs`` fixture
- SQLite engines (in-memory by default, file-backed for threaded tests)
- Ledger, deterministic clock and a fake job service

Environment Variables:
- INVENTORY_TEST_DATABASE_URL: PostgreSQL URL for ``postgres``-marked tests.
  Those tests are skipped when it is not set.
"""

import json
import logging
import os
from io import StringIO
from typing import Any

import pytest
from sqlalchemy.orm import sessionmaker

from inventory_jobs.types import JobDescriptor, JobHandle
from inventory_kernel.db.engine import build_engine, create_tables, drop_tables
from inventory_kernel.domain.clock import DeterministicClock
from inventory_kernel.exceptions import JobServiceError
from inventory_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from inventory_kernel.services.ledger_service import InventoryLedger


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture inventory_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger):
            ledger.add_items("p", ["a"])
            logs = captured_logs()
            assert any(r["message"] == "items_added" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("inventory_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    eng = build_engine("sqlite:///:memory:")
    create_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def file_engine(tmp_path):
    """File-backed SQLite so each thread gets its own connection."""
    eng = build_engine(f"sqlite:///{tmp_path / 'inventory.db'}", pool_timeout=30)
    create_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def postgres_engine():
    url = os.environ.get("INVENTORY_TEST_DATABASE_URL")
    if not url:
        pytest.skip("INVENTORY_TEST_DATABASE_URL not set")
    eng = build_engine(url, pool_size=20, max_overflow=20)
    drop_tables(eng)
    create_tables(eng)
    yield eng
    drop_tables(eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def clock():
    return DeterministicClock()


@pytest.fixture
def ledger(session_factory, clock):
    return InventoryLedger(session_factory, clock=clock)


# =============================================================================
# Job service fake
# =============================================================================


class FakeJobService:
    """In-memory stand-in for the external job service.

    ``jobs`` maps job id to ``(metadata, hits)``.  Set ``fail_on`` to an
    operation name to make that call raise JobServiceError.
    """

    def __init__(self):
        self.jobs: dict[str, tuple[dict[str, Any], list[Any]]] = {}
        self.created: list[dict[str, Any]] = []
        self.started: list[str] = []
        self.fail_on: set[str] = set()
        self._next_id = 1

    def add_job(self, job_id: str, metadata: dict[str, Any], hits: list[Any]) -> None:
        self.jobs[job_id] = (metadata, hits)

    def _check(self, operation: str) -> None:
        if operation in self.fail_on:
            raise JobServiceError("service unavailable", status_code=503, operation=operation)

    def get_service_status(self) -> dict[str, Any]:
        self._check("get_service_status")
        return {"status": "ok", "jobs": len(self.jobs)}

    def create_job(self, name, config_id, source_path=None, options=None) -> JobHandle:
        self._check("create_job")
        job_id = f"job-{self._next_id}"
        self._next_id += 1
        options = dict(options or {})
        self.created.append({
            "job_id": job_id,
            "name": name,
            "config_id": config_id,
            "source_path": source_path,
            "options": options,
        })
        self.jobs[job_id] = (options.get("metadata", {}), [])
        return JobHandle(job_id=job_id, raw={"id": job_id})

    def start_job(self, job_id: str) -> dict[str, Any]:
        self._check("start_job")
        self.started.append(job_id)
        return {"id": job_id, "state": "running"}

    def stop_job(self, job_id: str) -> dict[str, Any]:
        self._check("stop_job")
        return {"id": job_id, "state": "stopped"}

    def get_job_status(self, job_id: str) -> JobDescriptor:
        self._check("get_job_status")
        if job_id not in self.jobs:
            raise JobServiceError("Job not found", status_code=404, operation="get_job_status")
        metadata, _ = self.jobs[job_id]
        return JobDescriptor(job_id=job_id, state="completed", metadata=dict(metadata))

    def get_hits(self, job_id: str) -> list[Any]:
        self._check("get_hits")
        if job_id not in self.jobs:
            raise JobServiceError("Job not found", status_code=404, operation="get_hits")
        return list(self.jobs[job_id][1])


@pytest.fixture
def job_service():
    return FakeJobService()
