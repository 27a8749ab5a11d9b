"""
Content extraction and dedup-key derivation for job-service records.

A result record ("hit") carries its content under one of several field
names depending on how the job was configured.  Extraction tries them in
order and skips malformed records individually; it never raises.
"""

from __future__ import annotations

from typing import Any, Iterable

from inventory_ingestion.domain.types import ValidityResult, WebhookEventType
from inventory_kernel.utils.hashing import hash_payload

# Tried in order inside ``hit["data"]``; ``capturedData`` is the top-level fallback.
DATA_CONTENT_FIELDS: tuple[str, ...] = ("SUCCESS", "DATA")
FALLBACK_CONTENT_FIELD = "capturedData"

DEFAULT_VALIDATION_METHOD = "job-service"


def _as_content(value: Any) -> str | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        value = str(value)
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return None


def extract_content(hit: Any) -> str | None:
    """Content string of one record, or None if it has none."""
    if not isinstance(hit, dict):
        return None

    data = hit.get("data")
    if isinstance(data, dict):
        for name in DATA_CONTENT_FIELDS:
            content = _as_content(data.get(name))
            if content is not None:
                return content

    return _as_content(hit.get(FALLBACK_CONTENT_FIELD))


def extract_contents(hits: Iterable[Any]) -> tuple[list[str], int]:
    """Contents of every usable record, plus the number skipped."""
    contents: list[str] = []
    skipped = 0
    for hit in hits:
        content = extract_content(hit)
        if content is None:
            skipped += 1
        else:
            contents.append(content)
    return contents, skipped


def parse_validity_hit(hit: Any) -> ValidityResult | None:
    """Parse a validation-job record; None when it is unusable."""
    if not isinstance(hit, dict):
        return None
    data = hit.get("data") if isinstance(hit.get("data"), dict) else {}

    def field_value(name: str) -> Any:
        return hit.get(name, data.get(name))

    try:
        item_id = int(field_value("itemId"))
    except (TypeError, ValueError):
        return None

    score = field_value("score")
    if score is not None:
        try:
            score = float(score)
        except (TypeError, ValueError):
            return None

    execution_time = field_value("executionTimeMs")
    try:
        execution_time = int(execution_time) if execution_time is not None else None
    except (TypeError, ValueError):
        execution_time = None

    details = field_value("details")
    return ValidityResult(
        item_id=item_id,
        result=str(field_value("result") or "unknown"),
        score=score,
        method=str(field_value("method") or DEFAULT_VALIDATION_METHOD),
        details=details if isinstance(details, dict) else None,
        execution_time_ms=execution_time,
    )


# =============================================================================
# Dedup keys
# =============================================================================

# Both webhook_events.dedup_key and applied_events.dedup_key are String(255).
MAX_DEDUP_KEY_LENGTH = 255
_KEY_PREFIX_KEPT = 160


def bounded_key(key: str) -> str:
    """``key`` unchanged if it fits the column, else a prefix plus its SHA-256."""
    if len(key) <= MAX_DEDUP_KEY_LENGTH:
        return key
    return f"{key[:_KEY_PREFIX_KEPT]}#{hash_payload(key)}"


def explicit_event_key(event: dict[str, Any]) -> str | None:
    """Key from an id the upstream service put on the event itself."""
    for name in ("eventId", "id"):
        value = event.get(name)
        if value not in (None, ""):
            return bounded_key(f"event:{value}")
    return None


def job_completed_key(job_id: str) -> str:
    return bounded_key(f"job.completed:{job_id}")


def job_hit_key(job_id: Any, hit: dict[str, Any]) -> str:
    """Key for one inline hit: its upstream id if present, else its content hash."""
    job_part = job_id if job_id not in (None, "") else "-"
    hit_id = hit.get("id") or hit.get("hitId")
    if hit_id not in (None, ""):
        return bounded_key(f"job.hit:{job_part}:{hit_id}")
    return bounded_key(f"job.hit:{job_part}:{hash_payload(hit)}")


def derive_dedup_key(event: dict[str, Any]) -> str | None:
    """The key dispatch will apply this event under (None for informational events)."""
    explicit = explicit_event_key(event)
    if explicit is not None:
        return explicit
    event_type = event.get("type")
    job_id = event.get("jobId")
    if event_type == WebhookEventType.JOB_COMPLETED.value and job_id not in (None, ""):
        return job_completed_key(str(job_id))
    if event_type == WebhookEventType.JOB_HIT.value and isinstance(event.get("hit"), dict):
        return job_hit_key(job_id, event["hit"])
    return None
