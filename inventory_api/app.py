"""
FastAPI application factory.

``create_app`` takes a fully wired ``InventoryOrchestrator`` and an admin
guard dependency.  Authentication itself is outside this package; callers
pass whatever dependency enforces it.  Typed kernel errors are mapped to
JSON responses here so route handlers let them propagate.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Callable

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from inventory_api.dependencies import allow_all
from inventory_api.routers.admin import router as admin_router
from inventory_api.routers.webhook import router as webhook_router
from inventory_automation.orchestrator import InventoryOrchestrator
from inventory_kernel import __version__
from inventory_kernel.exceptions import (
    InsufficientStockError,
    InventoryKernelError,
    JobServiceError,
    NotFoundError,
)
from inventory_kernel.logging_config import get_logger

logger = get_logger("api.app")


def _error_body(exc: InventoryKernelError) -> dict[str, Any]:
    return {"success": False, "error": str(exc), "code": exc.code}


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(JobServiceError)
    async def _job_service_error(request: Request, exc: JobServiceError):
        logger.warning(
            "job_service_error_response",
            extra={"path": request.url.path, "upstream_status": exc.status_code},
        )
        body = _error_body(exc)
        body["upstreamStatus"] = exc.status_code
        return JSONResponse(body, status_code=502)

    @app.exception_handler(NotFoundError)
    async def _not_found(request: Request, exc: NotFoundError):
        return JSONResponse(_error_body(exc), status_code=404)

    @app.exception_handler(InsufficientStockError)
    async def _insufficient_stock(request: Request, exc: InsufficientStockError):
        return JSONResponse(_error_body(exc), status_code=409)

    @app.exception_handler(InventoryKernelError)
    async def _kernel_error(request: Request, exc: InventoryKernelError):
        logger.error(
            "request_failed",
            extra={"path": request.url.path, "error_code": exc.code},
            exc_info=exc,
        )
        return JSONResponse(_error_body(exc), status_code=500)


def create_app(
    orchestrator: InventoryOrchestrator,
    admin_guard: Callable[..., Any] | None = None,
    start_scheduler: bool = False,
) -> FastAPI:
    """Build the application around ``orchestrator``.

    With ``start_scheduler`` the automation tasks start with the app and
    stop on shutdown.  Without an ``admin_guard`` the admin routes are open.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if start_scheduler:
            orchestrator.scheduler.start()
        yield
        orchestrator.scheduler.stop()

    app = FastAPI(
        title="Inventory Pipeline API",
        description="Webhook ingestion and admin surface for the inventory ledger",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator

    if admin_guard is None:
        logger.warning("admin_routes_unguarded")
        admin_guard = allow_all

    app.include_router(webhook_router)
    app.include_router(admin_router, dependencies=[Depends(admin_guard)])
    _register_error_handlers(app)
    return app
