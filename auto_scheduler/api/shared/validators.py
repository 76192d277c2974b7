"""
Scheduling Validators

Input validation for the whitelisted scheduling endpoints.
"""

import json
import re
from typing import List, Optional, Union

import frappe
from frappe import _
from frappe.utils import cint

MAX_TASK_NAMES = 200
MAX_SLOT_LIMIT = 100


def validate_datetime_string(datetime_str: str, field_name: str = "datetime") -> str:
    """
    Validate datetime string format (YYYY-MM-DD HH:MM[:SS]).

    Args:
        datetime_str: Datetime string to validate
        field_name: Name of field for error messages

    Returns:
        str: Validated datetime string

    Raises:
        frappe.ValidationError: If datetime format is invalid
    """
    if not datetime_str:
        frappe.throw(_("{0} is required").format(field_name), frappe.ValidationError)

    datetime_str = str(datetime_str).strip()

    if not re.match(r"^\d{4}-\d{2}-\d{2}[ T]\d{2}:\d{2}(:\d{2})?$", datetime_str):
        frappe.throw(
            _("Invalid {0} format. Use YYYY-MM-DD HH:MM:SS").format(field_name),
            frappe.ValidationError
        )

    return datetime_str


def validate_docname(name: str, field_name: str = "name") -> str:
    """
    Validate a document name (ID).

    Raises:
        frappe.ValidationError: If name is empty, too long or suspicious
    """
    if not name:
        frappe.throw(_("{0} is required").format(field_name), frappe.ValidationError)

    name = str(name).strip()

    if len(name) > 140:
        frappe.throw(_("{0} is too long").format(field_name), frappe.ValidationError)

    dangerous_patterns = [
        r'<script', r'javascript:', r'SELECT\s+', r'UPDATE\s+',
        r'DELETE\s+', r'DROP\s+', r'UNION\s+', r'--', r';'
    ]
    for pattern in dangerous_patterns:
        if re.search(pattern, name, re.IGNORECASE):
            frappe.throw(_("Invalid {0}").format(field_name), frappe.ValidationError)

    return name


def validate_task_names(task_names: Union[str, List[str], None]) -> List[str]:
    """
    Validate a list of Planner Task names (JSON string or list).

    Returns:
        list: names without duplicates, in request order

    Raises:
        frappe.ValidationError: If the list is empty, malformed or too long
    """
    if isinstance(task_names, str):
        try:
            task_names = json.loads(task_names)
        except ValueError:
            frappe.throw(_("task_names must be a JSON list"), frappe.ValidationError)

    if not isinstance(task_names, (list, tuple)) or not task_names:
        frappe.throw(_("task_names must be a non-empty list"), frappe.ValidationError)

    if len(task_names) > MAX_TASK_NAMES:
        frappe.throw(
            _("Too many tasks in one request (max {0})").format(MAX_TASK_NAMES),
            frappe.ValidationError
        )

    result = []
    for name in task_names:
        name = validate_docname(name, "task_names")
        if name not in result:
            result.append(name)
    return result


def validate_limit(limit: Optional[Union[str, int]], default: int = 10) -> int:
    """Clamp a result limit to 1..MAX_SLOT_LIMIT."""
    value = cint(limit) if limit not in (None, "") else default
    if value <= 0:
        frappe.throw(_("limit must be positive"), frappe.ValidationError)
    return min(value, MAX_SLOT_LIMIT)
