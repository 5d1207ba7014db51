"""
Background Jobs Module

Handles scheduled tasks for:
- Periodic inventory forecast refresh
"""

from inventory_forecast.jobs.scheduler import scheduler, start_scheduler, shutdown_scheduler

__all__ = [
    "scheduler",
    "start_scheduler",
    "shutdown_scheduler",
]
