"""
inventory_jobs.types -- DTOs and the job-service protocol.

``JobService`` is the boundary the ingestor, launcher and scheduler depend
on; ``JobClient`` is the HTTP implementation and tests substitute fakes.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Protocol, runtime_checkable


class JobType:
    COLLECTION = "collection"
    VALIDATION = "validation"


@dataclass(frozen=True)
class JobHandle:
    """Opaque reference to a job created on the external service."""

    job_id: str
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class JobDescriptor:
    job_id: str
    state: str | None
    metadata: dict[str, Any] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def job_type(self) -> str | None:
        value = self.metadata.get("type")
        return str(value) if value is not None else None


@dataclass(frozen=True)
class LaunchResult:
    """Outcome of starting (or declining to start) a collection/validation job."""

    success: bool
    product_id: str
    job_type: str
    message: str
    job_id: str | None = None
    target_count: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class RestockOutcome:
    """Per-product result of one restock pass."""

    product_id: str
    current_stock: int
    success: bool
    message: str
    job_id: str | None = None
    target_count: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@runtime_checkable
class JobService(Protocol):
    """Synchronous RPC contract of the external job service."""

    def get_service_status(self) -> dict[str, Any]:
        ...

    def create_job(
        self,
        name: str,
        config_id: str,
        source_path: str | None = None,
        options: dict[str, Any] | None = None,
    ) -> JobHandle:
        ...

    def start_job(self, job_id: str) -> dict[str, Any]:
        ...

    def stop_job(self, job_id: str) -> dict[str, Any]:
        ...

    def get_job_status(self, job_id: str) -> JobDescriptor:
        ...

    def get_hits(self, job_id: str) -> list[dict[str, Any]]:
        ...
