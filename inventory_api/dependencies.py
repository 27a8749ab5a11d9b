"""Request-scoped access to the wired pipeline."""

from fastapi import Request

from inventory_automation.orchestrator import InventoryOrchestrator


def get_orchestrator(request: Request) -> InventoryOrchestrator:
    return request.app.state.orchestrator


def allow_all() -> None:
    """Guard used when the application is built without one (local runs)."""
    return None
