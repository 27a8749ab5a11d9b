"""
Webhook endpoint for job-service events.

The event is durably recorded before the 200 goes out.  Dispatch happens
after the response (background task) when inline processing is enabled,
otherwise on the next drain tick.  A failed background dispatch leaves the
event unprocessed for the drain task to retry.
"""

from __future__ import annotations

import json

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from inventory_api.dependencies import get_orchestrator
from inventory_automation.orchestrator import InventoryOrchestrator
from inventory_ingestion.services.ingestor import WebhookIngestor
from inventory_ingestion.verification import require_valid_signature
from inventory_kernel.exceptions import SignatureError, StorageError
from inventory_kernel.logging_config import LogContext, get_logger

logger = get_logger("api.webhook")

router = APIRouter(tags=["webhook"])


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=status_code)


def _process_after_response(ingestor: WebhookIngestor, event_id: int) -> None:
    with LogContext.bind(event_id=event_id):
        try:
            ingestor.process_event(event_id)
        except Exception:
            logger.exception("webhook_inline_processing_failed")


@router.post("/webhook")
async def receive_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    orchestrator: InventoryOrchestrator = Depends(get_orchestrator),
):
    """Verify, record and acknowledge one job-service event."""
    settings = orchestrator.settings.webhook
    raw = await request.body()

    try:
        require_valid_signature(
            settings.secret, raw, request.headers.get(settings.signature_header),
        )
    except SignatureError as exc:
        return _error(exc.reason, 401)

    try:
        event = json.loads(raw)
    except ValueError:
        return _error("Body is not valid JSON", 400)

    ingestor = orchestrator.ingestor
    try:
        event_id = await run_in_threadpool(ingestor.receive, event)
    except ValueError as exc:
        return _error(str(exc), 400)
    except StorageError:
        logger.exception("webhook_receive_failed")
        return _error("Failed to record event", 500)

    if settings.process_inline:
        background_tasks.add_task(_process_after_response, ingestor, event_id)

    return {"success": True, "eventId": event_id}
