"""
Shared utilities for the Auto Scheduler API.

Rate limiting and input validators used by every endpoint module.
"""

from ..security import check_rate_limit, get_client_ip
from .validators import (
    validate_datetime_string,
    validate_docname,
    validate_limit,
    validate_task_names,
)

__all__ = [
    # Rate limiting
    "check_rate_limit",
    "get_client_ip",
    # Validators
    "validate_datetime_string",
    "validate_docname",
    "validate_limit",
    "validate_task_names",
]
