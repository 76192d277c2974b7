"""
Scheduling API Endpoints

Whitelisted functions for the task planner UI. Every endpoint acts on the
logged-in user's own tasks and is rate limited per user.
"""

from datetime import timedelta
from typing import Any, Dict, List, Optional

import frappe
from frappe import _
from frappe.utils import get_datetime

from auto_scheduler.auto_scheduler.scheduling import tasks as scheduling_tasks
from auto_scheduler.auto_scheduler.scheduling.batch_scheduler import utc_now
from auto_scheduler.auto_scheduler.scheduling.exceptions import (
	AvailabilityFetchError,
	InvalidSettingsError,
	SchedulingRunInProgress,
)
from auto_scheduler.auto_scheduler.scheduling.models import SchedulableTask, SchedulingRunResult
from auto_scheduler.auto_scheduler.scheduling.persistence.frappe_tasks import FrappeTaskRepository
from auto_scheduler.api.shared import (
	check_rate_limit,
	validate_datetime_string,
	validate_docname,
	validate_limit,
	validate_task_names,
)


def _current_user() -> str:
	user = frappe.session.user
	if not user or user == "Guest":
		frappe.throw(_("Login required"), frappe.PermissionError)
	return user


def _isoformat(value) -> Optional[str]:
	return value.isoformat() if value else None


def _task_to_dict(task: SchedulableTask) -> Dict[str, Any]:
	return {
		"name": task.id,
		"title": task.title,
		"scheduled_start": _isoformat(task.scheduled_start),
		"scheduled_end": _isoformat(task.scheduled_end),
		"is_auto_scheduled": task.is_auto_scheduled,
		"schedule_locked": task.schedule_locked,
		"schedule_score": task.schedule_score,
	}


def _run_response(result: SchedulingRunResult) -> Dict[str, Any]:
	response = result.summary()
	response["tasks"] = [_task_to_dict(task) for task in result.tasks]
	response["unscheduled_tasks"] = list(result.pending)
	return response


def _throw_for_scheduling_error(user: str, error: Exception, action: str) -> None:
	"""Convierte errores de run en frappe.throw (y Error Log cuando corresponde)."""
	if isinstance(error, SchedulingRunInProgress):
		frappe.throw(
			_("A scheduling run is already in progress. Please try again shortly."),
			frappe.ValidationError
		)

	if isinstance(error, InvalidSettingsError):
		frappe.throw(
			_("Invalid Auto Schedule Settings: {0}").format("; ".join(error.problems)),
			frappe.ValidationError
		)

	if isinstance(error, AvailabilityFetchError):
		frappe.log_error(
			title=_("Calendar availability unavailable"),
			message=f"User: {user}, Action: {action}, Error: {str(error)}"
		)
		frappe.throw(
			_("Could not read your calendars. Nothing was scheduled."),
			frappe.ValidationError
		)

	frappe.log_error(f"Error in {action}: {str(error)}", "API Error")
	frappe.throw(_("Unexpected error while scheduling tasks"))


@frappe.whitelist(methods=['POST'])
def schedule_all_tasks() -> Dict[str, Any]:
	"""
	Agenda todas las tareas no completadas del usuario.

	Rate limited: 5 requests per minute per user.

	Returns:
		dict: {
			"scheduled": int,
			"pending": int,
			"locked": int,
			"tasks": [{"name", "title", "scheduled_start", ...}],
			"unscheduled_tasks": [str]
		}

	Example:
		```javascript
		frappe.call({
			method: "auto_scheduler.api.scheduling.schedule_all_tasks",
			callback: function(r) {
				frappe.show_alert(`${r.message.scheduled} tareas agendadas`);
			}
		});
		```
	"""
	check_rate_limit("schedule_all_tasks", limit=5, seconds=60)
	user = _current_user()

	try:
		result = scheduling_tasks.run_auto_schedule(user)
	except frappe.ValidationError:
		raise
	except Exception as e:
		_throw_for_scheduling_error(user, e, "schedule_all_tasks")

	return _run_response(result)


@frappe.whitelist(methods=['POST'])
def schedule_tasks(task_names) -> Dict[str, Any]:
	"""
	Agenda un subconjunto de tareas del usuario.

	Las tareas bloqueadas se devuelven sin cambios; sus slots se respetan.

	Rate limited: 10 requests per minute per user.

	Args:
		task_names: lista JSON de nombres de Planner Task
	"""
	check_rate_limit("schedule_tasks", limit=10, seconds=60)
	user = _current_user()
	task_names = validate_task_names(task_names)

	try:
		result = scheduling_tasks.run_auto_schedule(user, task_names)
	except frappe.ValidationError:
		raise
	except Exception as e:
		_throw_for_scheduling_error(user, e, "schedule_tasks")

	return _run_response(result)


@frappe.whitelist(methods=['GET'])
def get_task_slots(
	task_name: str,
	from_datetime: Optional[str] = None,
	to_datetime: Optional[str] = None,
	limit: Optional[int] = 10
) -> List[Dict[str, Any]]:
	"""
	Obtiene los mejores slots para una tarea sin agendarla.

	Las fechas se interpretan en la zona horaria del usuario. Por defecto el
	rango va desde ahora hasta la ventana de agendamiento más amplia.

	Rate limited: 30 requests per minute per user.

	Returns:
		list[dict]: [{"start": iso, "end": iso, "score": float}, ...] best-first
	"""
	check_rate_limit("get_task_slots", limit=30, seconds=60)
	user = _current_user()
	task_name = validate_docname(task_name, "task_name")
	limit = validate_limit(limit)

	if from_datetime:
		range_start = get_datetime(validate_datetime_string(from_datetime, "from_datetime"))
	else:
		range_start = utc_now()

	if to_datetime:
		range_end = get_datetime(validate_datetime_string(to_datetime, "to_datetime"))
	else:
		range_end = range_start + timedelta(days=max(scheduling_tasks.get_windows()))

	try:
		slots = scheduling_tasks.preview_task_slots(user, task_name, range_start, range_end, limit)
	except (frappe.ValidationError, frappe.DoesNotExistError):
		raise
	except Exception as e:
		_throw_for_scheduling_error(user, e, "get_task_slots")

	return [slot.as_dict() for slot in slots]


@frappe.whitelist(methods=['POST'])
def clear_auto_schedule(task_names=None) -> Dict[str, Any]:
	"""
	Quita el slot de las tareas auto-agendadas (no bloqueadas) del usuario.

	Args:
		task_names: lista JSON opcional; sin ella se limpian todas

	Returns:
		dict: {"cleared": int}
	"""
	check_rate_limit("clear_auto_schedule", limit=10, seconds=60)
	user = _current_user()
	if task_names:
		task_names = validate_task_names(task_names)
	else:
		task_names = None

	try:
		cleared = FrappeTaskRepository().clear_auto_schedule(user, task_names)
	except Exception as e:
		frappe.log_error(f"Error in clear_auto_schedule: {str(e)}", "API Error")
		frappe.throw(_("Error clearing auto-scheduled tasks"))

	return {"cleared": cleared}


@frappe.whitelist(methods=['POST'])
def enqueue_auto_schedule(task_names=None) -> Dict[str, Any]:
	"""
	Encola un run de agendamiento en background (cola "long").

	Returns:
		dict: {"queued": True}
	"""
	check_rate_limit("enqueue_auto_schedule", limit=5, seconds=60)
	user = _current_user()
	task_names = validate_task_names(task_names) if task_names else None

	scheduling_tasks.enqueue_auto_schedule(user, task_names)
	return {"queued": True}
