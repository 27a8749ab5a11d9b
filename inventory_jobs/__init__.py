"""
inventory_jobs -- the external job service boundary.

``JobClient`` speaks HTTP to the service; ``JobLauncher`` turns product
needs (restock, validation backlog) into started jobs.
"""

from inventory_jobs.client import JobClient
from inventory_jobs.launcher import JobLauncher, restock_target
from inventory_jobs.types import (
    JobDescriptor,
    JobHandle,
    JobService,
    JobType,
    LaunchResult,
    RestockOutcome,
)

__all__ = [
    "JobClient",
    "JobDescriptor",
    "JobHandle",
    "JobLauncher",
    "JobService",
    "JobType",
    "LaunchResult",
    "RestockOutcome",
    "restock_target",
]
