# Copyright (c) 2026, Auto Scheduler contributors
# For license information, please see license.txt

"""
Planner Task DocType

Tarea del planificador que el motor puede ubicar en el calendario.
El motor escribe scheduled_start/end, is_auto_scheduled, schedule_score y
last_scheduled con frappe.db.set_value (sin pasar por validate).
"""

import frappe
from frappe import _
from frappe.model.document import Document
from frappe.utils import cint, get_datetime

from auto_scheduler.auto_scheduler.scheduling.models import (
	DEFAULT_TASK_DURATION,
	EnergyLevel,
	Priority,
	TimePreference,
	coerce_enum,
)


class PlannerTask(Document):
	"""
	Planner Task with validations.

	Validations:
	- user defaults to the session user
	- duration > 0 (empty means DEFAULT_TASK_DURATION)
	- scheduled_start and scheduled_end set together, start < end
	- priority / energy_level / preferred_time are valid values
	- A manual move of an auto-scheduled task clears is_auto_scheduled
	"""

	def validate(self) -> None:
		"""
		Validación antes de guardar.
		"""
		if not self.user:
			self.user = frappe.session.user

		self._validate_duration()
		self._validate_choices()
		self._validate_schedule()
		self._track_manual_move()

	def _validate_duration(self) -> None:
		"""Duración vacía toma el valor por defecto; negativa o cero falla."""
		if self.duration in (None, ""):
			self.duration = DEFAULT_TASK_DURATION
			return

		if cint(self.duration) <= 0:
			frappe.throw(_("Duration debe ser mayor que 0 minutos"))

	def _validate_choices(self) -> None:
		for fieldname, enum_cls in (
			("priority", Priority),
			("energy_level", EnergyLevel),
			("preferred_time", TimePreference),
		):
			try:
				value = coerce_enum(enum_cls, self.get(fieldname))
			except ValueError:
				frappe.throw(_("Valor inválido para {0}: {1}").format(fieldname, self.get(fieldname)))
			self.set(fieldname, value.value if value else None)

	def _validate_schedule(self) -> None:
		"""Valida que scheduled_start < scheduled_end y que vengan juntos."""
		if bool(self.scheduled_start) != bool(self.scheduled_end):
			frappe.throw(_("Scheduled Start y Scheduled End deben definirse juntos"))

		if self.scheduled_start and self.scheduled_end:
			if get_datetime(self.scheduled_start) >= get_datetime(self.scheduled_end):
				frappe.throw(_("Scheduled Start debe ser menor que Scheduled End"))

	def _track_manual_move(self) -> None:
		"""Si el usuario mueve o quita un slot auto-agendado, deja de ser auto-agendado."""
		if not cint(self.is_auto_scheduled):
			return

		if not self.scheduled_start:
			self.is_auto_scheduled = 0
			self.schedule_score = None
			return

		before = self.get_doc_before_save()
		if not before:
			return

		moved = (
			get_datetime(before.scheduled_start) != get_datetime(self.scheduled_start)
			or get_datetime(before.scheduled_end) != get_datetime(self.scheduled_end)
		)
		if moved:
			self.is_auto_scheduled = 0
			self.schedule_score = None
