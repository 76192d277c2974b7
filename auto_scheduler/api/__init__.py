"""
Auto Scheduler API

Structure:
    api/
    ├── __init__.py              # This file
    ├── scheduling/              # Scheduling domain
    │   └── __init__.py          # Re-exports from scheduling_api
    ├── shared/                  # Shared utilities
    │   ├── __init__.py          # Rate limiting + validators
    │   └── validators.py        # Input validators
    ├── scheduling_api.py        # Endpoints
    └── security.py              # Rate limiting

Usage:
    frappe.call("auto_scheduler.api.scheduling.schedule_all_tasks", ...)
"""

from . import scheduling
from . import shared

__all__ = [
    "scheduling",
    "shared",
]
