"""
inventory_ingestion.domain.types -- Pure frozen dataclasses for webhook ingestion.

ZERO I/O.  ``ProcessingResult`` is what dispatch returns and what is stored
in ``webhook_events.processing_result`` (via ``to_dict()``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


# =============================================================================
# Enums
# =============================================================================


class WebhookEventType(str, Enum):
    """Event types emitted by the external job service."""

    JOB_COMPLETED = "job.completed"
    JOB_HIT = "job.hit"
    JOB_PROGRESS = "job.progress"


class ProcessingStatus(str, Enum):
    """Outcome of dispatching one event."""

    HANDLED = "handled"  # Ledger updated (or informational event logged)
    DUPLICATE = "duplicate"  # Already applied earlier; nothing changed
    IGNORED = "ignored"  # Well-formed but carried nothing to apply
    UNHANDLED = "unhandled"  # Unknown event type
    FAILED = "failed"  # Handler raised; error captured here


_SUCCESS_STATUSES = frozenset(
    {ProcessingStatus.HANDLED, ProcessingStatus.DUPLICATE, ProcessingStatus.IGNORED}
)


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class ProcessingResult:
    status: ProcessingStatus
    message: str
    items_added: int = 0
    checks_recorded: int = 0
    skipped: int = 0
    error_code: str | None = None
    dedup_key: str | None = None

    @property
    def success(self) -> bool:
        return self.status in _SUCCESS_STATUSES

    @classmethod
    def failed(cls, message: str, error_code: str) -> ProcessingResult:
        return cls(status=ProcessingStatus.FAILED, message=message, error_code=error_code)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "status": self.status.value,
            "message": self.message,
            "itemsAdded": self.items_added,
            "checksRecorded": self.checks_recorded,
            "skipped": self.skipped,
            "errorCode": self.error_code,
            "dedupKey": self.dedup_key,
        }


@dataclass(frozen=True)
class ValidityResult:
    """One validation-job hit, parsed for ``add_validity_check``."""

    item_id: int
    result: str
    score: float | None
    method: str
    details: dict[str, Any] | None = None
    execution_time_ms: int | None = None


@dataclass(frozen=True)
class DrainOutcome:
    event_id: int
    event_type: str
    status: ProcessingStatus | None
    marked: bool


@dataclass(frozen=True)
class DrainSummary:
    """What one drain pass did, event by event."""

    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    mark_failures: int = 0
    items_added: int = 0
    claimed_elsewhere: int = 0
    outcomes: tuple[DrainOutcome, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "markFailures": self.mark_failures,
            "itemsAdded": self.items_added,
            "claimedElsewhere": self.claimed_elsewhere,
        }
