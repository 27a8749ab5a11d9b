"""
inventory_automation -- periodic stock monitoring, backlog draining and
revalidation, plus the orchestrator that wires the whole pipeline.
"""

from inventory_automation.alerts import AlertSink, LoggingAlertSink
from inventory_automation.orchestrator import InventoryOrchestrator
from inventory_automation.services.scheduler import (
    STOCK_MONITOR,
    TASK_NAMES,
    VALIDATION_SWEEP,
    WEBHOOK_DRAIN,
    AutomationScheduler,
    PeriodicTask,
    SchedulerStatus,
    TaskStatus,
)

__all__ = [
    "AlertSink",
    "AutomationScheduler",
    "InventoryOrchestrator",
    "LoggingAlertSink",
    "PeriodicTask",
    "STOCK_MONITOR",
    "SchedulerStatus",
    "TASK_NAMES",
    "TaskStatus",
    "VALIDATION_SWEEP",
    "WEBHOOK_DRAIN",
]
