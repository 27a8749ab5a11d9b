"""
Admin routes: stock queries, scheduler control and manual job launches.

Mounted behind the admin guard dependency supplied to ``create_app``.
Handlers are plain ``def`` so FastAPI runs the blocking ledger and job-service
calls in its threadpool.
"""

from fastapi import APIRouter, Depends, HTTPException, Query

from inventory_api.dependencies import get_orchestrator
from inventory_api.schemas import (
    RestockRequest,
    ValidateRequest,
    launch_payload,
    low_stock_payload,
    stats_payload,
)
from inventory_automation.orchestrator import InventoryOrchestrator
from inventory_kernel.logging_config import LogContext, get_logger

logger = get_logger("api.admin")

router = APIRouter(tags=["admin"])


# -----------------------------------------------------------------------------
# Inventory
# -----------------------------------------------------------------------------


@router.get("/inventory/low")
def low_stock(
    threshold: int = Query(default=10, ge=0),
    orchestrator: InventoryOrchestrator = Depends(get_orchestrator),
):
    products = orchestrator.ledger.get_low_stock_products(threshold)
    return low_stock_payload(products, threshold)


@router.get("/inventory/stats/{product_id}")
def product_stats(
    product_id: str,
    orchestrator: InventoryOrchestrator = Depends(get_orchestrator),
):
    return stats_payload(orchestrator.ledger.get_stats(product_id))


@router.post("/inventory/{product_id}")
def start_collection(
    product_id: str,
    body: RestockRequest,
    orchestrator: InventoryOrchestrator = Depends(get_orchestrator),
):
    """Start a collection job for ``product_id`` right away."""
    with LogContext.bind(product_id=product_id):
        result = orchestrator.launcher.start_collection_job(
            product_id, body.configId, body.targetCount,
        )
    return launch_payload(result)


@router.post("/validate/{product_id}")
def start_validation(
    product_id: str,
    body: ValidateRequest,
    orchestrator: InventoryOrchestrator = Depends(get_orchestrator),
):
    with LogContext.bind(product_id=product_id):
        result = orchestrator.launcher.start_validation_job(product_id, body.configId)
    return launch_payload(result)


# -----------------------------------------------------------------------------
# Automation
# -----------------------------------------------------------------------------


@router.post("/automation/start")
def start_automation(orchestrator: InventoryOrchestrator = Depends(get_orchestrator)):
    orchestrator.scheduler.start()
    return orchestrator.scheduler.status().to_dict()


@router.post("/automation/stop")
def stop_automation(orchestrator: InventoryOrchestrator = Depends(get_orchestrator)):
    orchestrator.scheduler.stop()
    return orchestrator.scheduler.status().to_dict()


@router.get("/automation/status")
def automation_status(orchestrator: InventoryOrchestrator = Depends(get_orchestrator)):
    return orchestrator.scheduler.status().to_dict()


@router.post("/automation/run/{task_name}")
def run_automation_task(
    task_name: str,
    orchestrator: InventoryOrchestrator = Depends(get_orchestrator),
):
    """Run one task immediately; ``outcome`` is null when it was already running or failed."""
    try:
        outcome = orchestrator.scheduler.run_task(task_name)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown task: {task_name}")
    logger.info("automation_task_triggered", extra={"task_name": task_name})
    return {
        "task": task_name,
        "outcome": outcome,
        "status": orchestrator.scheduler.status().tasks[task_name].to_dict(),
    }


# -----------------------------------------------------------------------------
# Job service
# -----------------------------------------------------------------------------


@router.get("/jobs/service-status")
def job_service_status(orchestrator: InventoryOrchestrator = Depends(get_orchestrator)):
    return orchestrator.job_service.get_service_status()
