"""
Frappe Task Repository

Reads and writes Planner Task records for the scheduling engine.
Each commit is a single UPDATE followed by a commit, so it is atomic per task.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import frappe
import pytz
from frappe.utils import cint, flt, get_datetime, get_system_timezone

from ..exceptions import PersistenceError
from ..models import SchedulableTask, TimeSlot
from ..timeutils import to_aware, to_naive
from .base import TaskRepository

TASK_DOCTYPE = "Planner Task"
COMPLETED_STATUS = "Completed"

TASK_FIELDS = [
	"name",
	"title",
	"user",
	"status",
	"duration",
	"priority",
	"energy_level",
	"preferred_time",
	"due_date",
	"start_date",
	"postponed_until",
	"project",
	"schedule_locked",
	"scheduled_start",
	"scheduled_end",
	"is_auto_scheduled",
	"schedule_score",
	"last_scheduled",
]


def _datetime_or_none(value: Any, tz: pytz.BaseTzInfo) -> Optional[datetime]:
	if not value:
		return None
	return to_aware(get_datetime(value), tz)


def task_from_row(row: Dict[str, Any], system_tz: pytz.BaseTzInfo) -> SchedulableTask:
	"""Convierte una fila de Planner Task (frappe._dict) en SchedulableTask."""
	return SchedulableTask(
		id=row.get("name"),
		title=row.get("title") or "",
		duration_minutes=cint(row.get("duration")) or None,
		priority=row.get("priority") or None,
		energy_level=row.get("energy_level") or None,
		preferred_time=row.get("preferred_time") or None,
		due_date=_datetime_or_none(row.get("due_date"), system_tz),
		project_id=row.get("project") or None,
		schedule_locked=bool(cint(row.get("schedule_locked"))),
		status=row.get("status"),
		start_date=_datetime_or_none(row.get("start_date"), system_tz),
		postponed_until=_datetime_or_none(row.get("postponed_until"), system_tz),
		scheduled_start=_datetime_or_none(row.get("scheduled_start"), system_tz),
		scheduled_end=_datetime_or_none(row.get("scheduled_end"), system_tz),
		is_auto_scheduled=bool(cint(row.get("is_auto_scheduled"))),
		schedule_score=flt(row.get("schedule_score")) if row.get("schedule_score") is not None else None,
		last_scheduled=_datetime_or_none(row.get("last_scheduled"), system_tz),
	)


class FrappeTaskRepository(TaskRepository):
	"""Planner Task persistence through the Frappe ORM."""

	def __init__(self, system_timezone: Optional[str] = None):
		self.system_tz = pytz.timezone(system_timezone or get_system_timezone())

	def update_task_schedule(
		self,
		task_id: str,
		user_id: str,
		slot: TimeSlot,
		scheduled_at: datetime
	) -> SchedulableTask:
		"""
		Guarda el slot comprometido y hace commit.

		Raises:
			PersistenceError: si la tarea no existe, no es del usuario, o falla la escritura
		"""
		owner = frappe.db.get_value(TASK_DOCTYPE, task_id, "user")
		if owner is None:
			raise PersistenceError(f"{TASK_DOCTYPE} {task_id} does not exist", task_id=task_id)
		if owner != user_id:
			raise PersistenceError(f"{TASK_DOCTYPE} {task_id} does not belong to {user_id}", task_id=task_id)

		values = {
			"scheduled_start": to_naive(slot.start, self.system_tz),
			"scheduled_end": to_naive(slot.end, self.system_tz),
			"is_auto_scheduled": 1,
			"schedule_score": slot.score,
			"last_scheduled": to_naive(scheduled_at, self.system_tz),
		}

		try:
			frappe.db.set_value(TASK_DOCTYPE, task_id, values)
			frappe.db.commit()
		except Exception as e:
			frappe.db.rollback()
			raise PersistenceError(f"Could not update {TASK_DOCTYPE} {task_id}: {e}", task_id=task_id) from e

		rows = self._fetch({"name": task_id})
		if not rows:
			raise PersistenceError(f"{TASK_DOCTYPE} {task_id} disappeared after update", task_id=task_id)
		return rows[0]

	def get_tasks_by_ids(self, task_ids: Sequence[str], user_id: str) -> List[SchedulableTask]:
		if not task_ids:
			return []

		try:
			tasks = self._fetch({"name": ["in", list(task_ids)], "user": user_id})
		except Exception as e:
			raise PersistenceError(f"Could not read tasks for {user_id}: {e}") from e

		by_id = {task.id: task for task in tasks}
		return [by_id[task_id] for task_id in task_ids if task_id in by_id]

	def get_open_tasks(self, user_id: str) -> List[SchedulableTask]:
		"""Todas las tareas no completadas del usuario (incluye las bloqueadas)."""
		return self._fetch(
			{"user": user_id, "status": ["!=", COMPLETED_STATUS]},
			order_by="creation asc"
		)

	def clear_auto_schedule(self, user_id: str, task_ids: Optional[Sequence[str]] = None) -> int:
		"""
		Quita el slot de las tareas auto-agendadas no bloqueadas del usuario.

		Returns:
			int: cantidad de tareas liberadas
		"""
		filters = {"user": user_id, "is_auto_scheduled": 1, "schedule_locked": 0}
		if task_ids is not None:
			if not task_ids:
				return 0
			filters["name"] = ["in", list(task_ids)]

		names = frappe.get_all(TASK_DOCTYPE, filters=filters, pluck="name")
		for name in names:
			frappe.db.set_value(
				TASK_DOCTYPE,
				name,
				{
					"scheduled_start": None,
					"scheduled_end": None,
					"is_auto_scheduled": 0,
					"schedule_score": None,
				}
			)
		frappe.db.commit()
		return len(names)

	def get_missed_auto_scheduled(self, now: datetime) -> Dict[str, List[str]]:
		"""Auto-scheduled, unlocked, open tasks whose slot already ended, grouped by user."""
		rows = frappe.get_all(
			TASK_DOCTYPE,
			filters={
				"is_auto_scheduled": 1,
				"schedule_locked": 0,
				"status": ["!=", COMPLETED_STATUS],
				"scheduled_end": ["<", to_naive(now, self.system_tz)],
			},
			fields=["name", "user"]
		)
		missed: Dict[str, List[str]] = {}
		for row in rows:
			missed.setdefault(row.user, []).append(row.name)
		return missed

	def _fetch(self, filters: Dict[str, Any], order_by: Optional[str] = None) -> List[SchedulableTask]:
		rows = frappe.get_all(
			TASK_DOCTYPE,
			filters=filters,
			fields=TASK_FIELDS,
			order_by=order_by or "creation asc"
		)
		return [task_from_row(row, self.system_tz) for row in rows]
