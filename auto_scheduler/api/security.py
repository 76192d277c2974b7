"""
Security Utilities for the Scheduling APIs

Rate limiting backed by Frappe's cache. Scheduling endpoints require a
logged-in user, so limits are tracked per user (per IP for Guest).
"""

import frappe
from frappe import _
from frappe.utils import cint


def check_rate_limit(action: str, limit: int = 10, seconds: int = 60) -> None:
    """
    Check rate limit for an action by user (or IP address for Guest).

    Uses Frappe's cache (Redis) to track request counts.

    Args:
        action: Identifier for the action being rate limited
        limit: Maximum number of requests allowed
        seconds: Time window in seconds

    Raises:
        frappe.TooManyRequestsError: If rate limit exceeded
    """
    identity = frappe.session.user
    if not identity or identity == "Guest":
        identity = get_client_ip()
    cache_key = f"rate_limit:auto_scheduler:{action}:{identity}"

    current = cint(frappe.cache.get_value(cache_key) or 0)

    if current >= limit:
        frappe.log_error(
            title=_("Rate Limit Exceeded"),
            message=f"Identity: {identity}, Action: {action}, Limit: {limit}/{seconds}s"
        )
        frappe.throw(
            _("Too many requests. Please wait a moment and try again."),
            frappe.TooManyRequestsError
        )

    frappe.cache.set_value(cache_key, current + 1, expires_in_sec=seconds)


def get_client_ip() -> str:
    """
    Get the real client IP address, handling proxies.

    Returns:
        str: Client IP address
    """
    if not getattr(frappe.local, "request", None):
        return "unknown"

    # X-Forwarded-For can contain multiple IPs, take the first one
    forwarded_for = frappe.request.headers.get('X-Forwarded-For', '')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()

    real_ip = frappe.request.headers.get('X-Real-IP', '')
    if real_ip:
        return real_ip.strip()

    return frappe.request.remote_addr or 'unknown'
