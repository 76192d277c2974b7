"""
Scheduling API Domain

Auto-scheduling runs, slot previews and clearing of auto-scheduled tasks.
"""

from auto_scheduler.api.scheduling_api import (
    # Runs
    schedule_all_tasks,
    schedule_tasks,
    enqueue_auto_schedule,
    # Preview
    get_task_slots,
    # Maintenance
    clear_auto_schedule,
)

__all__ = [
    "schedule_all_tasks",
    "schedule_tasks",
    "enqueue_auto_schedule",
    "get_task_slots",
    "clear_auto_schedule",
]
