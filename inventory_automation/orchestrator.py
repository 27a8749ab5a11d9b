"""
InventoryOrchestrator -- DI container for the inventory pipeline.

Contract:
    Wires the ledger, job service, launcher, ingestor, alert sink and
    scheduler around one session factory and one Clock.  This is the single
    place the runtime graph is composed; the API layer and the serve script
    build one and pass it around.

Architecture: inventory_automation (top-level).  Only this module imports
    every other package.

Non-goals:
    - Does NOT start the scheduler automatically -- caller decides.
    - Does NOT create tables -- ``create_tables(orchestrator.engine)``.
"""

from __future__ import annotations

from typing import Callable

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from inventory_automation.alerts import AlertSink, LoggingAlertSink
from inventory_automation.services.scheduler import AutomationScheduler
from inventory_config.schema import InventorySettings
from inventory_ingestion.services.ingestor import WebhookIngestor
from inventory_jobs.client import JobClient
from inventory_jobs.launcher import JobLauncher
from inventory_jobs.types import JobService
from inventory_kernel.db.engine import build_engine
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.logging_config import get_logger
from inventory_kernel.services.ledger_service import InventoryLedger

logger = get_logger("automation.orchestrator")


class InventoryOrchestrator:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        job_service: JobService,
        settings: InventorySettings | None = None,
        alert_sink: AlertSink | None = None,
        clock: Clock | None = None,
        engine: Engine | None = None,
    ) -> None:
        self._engine = engine
        self._settings = settings or InventorySettings()
        self._clock = clock or SystemClock()
        self._session_factory = session_factory
        self._job_service = job_service
        self._alert_sink = alert_sink or LoggingAlertSink()

        self._ledger = InventoryLedger(
            session_factory,
            clock=self._clock,
            valid_score_threshold=self._settings.ledger.valid_score_threshold,
        )
        self._launcher = JobLauncher(job_service, self._ledger, clock=self._clock)
        self._ingestor = WebhookIngestor(
            session_factory, self._ledger, job_service, clock=self._clock,
        )
        self._scheduler = AutomationScheduler(
            ledger=self._ledger,
            launcher=self._launcher,
            ingestor=self._ingestor,
            alert_sink=self._alert_sink,
            settings=self._settings.scheduler,
            collection_profiles=self._settings.collection_profiles(),
            validation_profiles=self._settings.validation_profiles(),
            clock=self._clock,
        )

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def from_settings(
        cls,
        settings: InventorySettings,
        job_service: JobService | None = None,
        alert_sink: AlertSink | None = None,
        clock: Clock | None = None,
    ) -> InventoryOrchestrator:
        """Build the engine, session factory and job client from ``settings``."""
        db = settings.database
        engine = build_engine(
            db.url,
            echo=db.echo,
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
            pool_timeout=db.pool_timeout,
        )
        factory = sessionmaker(bind=engine, expire_on_commit=False)
        service = job_service or JobClient.from_settings(settings.job_service)

        logger.info(
            "orchestrator_built",
            extra={
                "dialect": engine.dialect.name,
                "product_profiles": len(settings.products),
                "config_checksum": settings.checksum,
            },
        )
        return cls(
            session_factory=factory,
            job_service=service,
            settings=settings,
            alert_sink=alert_sink,
            clock=clock,
            engine=engine,
        )

    def shutdown(self, timeout: float = 30.0) -> None:
        """Stop the scheduler and close the job client if it owns one."""
        self._scheduler.stop(timeout=timeout)
        close = getattr(self._job_service, "close", None)
        if callable(close):
            close()
        if self._engine is not None:
            self._engine.dispose()

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def settings(self) -> InventorySettings:
        return self._settings

    @property
    def engine(self) -> Engine | None:
        """The engine built by ``from_settings``; None when a factory was injected."""
        return self._engine

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def session_factory(self) -> Callable[[], Session]:
        return self._session_factory

    @property
    def job_service(self) -> JobService:
        return self._job_service

    @property
    def ledger(self) -> InventoryLedger:
        return self._ledger

    @property
    def launcher(self) -> JobLauncher:
        return self._launcher

    @property
    def ingestor(self) -> WebhookIngestor:
        return self._ingestor

    @property
    def scheduler(self) -> AutomationScheduler:
        return self._scheduler
