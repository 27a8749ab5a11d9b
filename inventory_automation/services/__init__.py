"""Automation services."""

from inventory_automation.services.scheduler import (
    AutomationScheduler,
    PeriodicTask,
    SchedulerStatus,
    TaskStatus,
)

__all__ = ["AutomationScheduler", "PeriodicTask", "SchedulerStatus", "TaskStatus"]
