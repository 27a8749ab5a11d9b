"""
inventory_ingestion -- webhook receipt, verification and dispatch.

Events from the job service are recorded first, then applied to the
inventory ledger under a dedup key so replay never double-adds stock.
"""

from inventory_ingestion.domain.types import (
    DrainOutcome,
    DrainSummary,
    ProcessingResult,
    ProcessingStatus,
    ValidityResult,
    WebhookEventType,
)
from inventory_ingestion.services.ingestor import WebhookIngestor
from inventory_ingestion.verification import (
    compute_signature,
    require_valid_signature,
    verify_signature,
)

__all__ = [
    "DrainOutcome",
    "DrainSummary",
    "ProcessingResult",
    "ProcessingStatus",
    "ValidityResult",
    "WebhookEventType",
    "WebhookIngestor",
    "compute_signature",
    "require_valid_signature",
    "verify_signature",
]
