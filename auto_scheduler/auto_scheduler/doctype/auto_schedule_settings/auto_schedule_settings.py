# Copyright (c) 2026, Auto Scheduler contributors
# For license information, please see license.txt

"""
Auto Schedule Settings DocType

Configuración de agendamiento automático, una por usuario.
Se valida al guardar con las mismas reglas que aplica el motor antes de un run.
"""

import json

import frappe
from frappe import _
from frappe.model.document import Document

from auto_scheduler.auto_scheduler.scheduling.calendar_sources.frappe_feeds import FEED_DOCTYPE
from auto_scheduler.auto_scheduler.scheduling.exceptions import InvalidSettingsError
from auto_scheduler.auto_scheduler.scheduling.settings import (
	collect_settings_problems,
	parse_id_list,
	parse_work_days,
	settings_from_dict,
)


class AutoScheduleSettings(Document):
	"""
	Auto Schedule Settings with validations.

	Validations:
	- One document per user
	- work_days / selected_calendars stored as JSON lists
	- Working hours, energy windows, buffer and time zone usable by the engine
	- Selected calendars belong to the same user
	"""

	def validate(self) -> None:
		"""
		Validación antes de guardar.
		"""
		if not self.user:
			self.user = frappe.session.user

		self._validate_unique_user()
		self._normalize_lists()
		self._validate_configuration()
		self._validate_calendars()

	def _validate_unique_user(self) -> None:
		existing = frappe.db.get_value(
			self.doctype,
			{"user": self.user, "name": ["!=", self.name]},
			"name"
		)
		if existing:
			frappe.throw(
				_("El usuario {0} ya tiene Auto Schedule Settings ({1})").format(self.user, existing)
			)

	def _normalize_lists(self) -> None:
		"""Guarda work_days y selected_calendars como listas JSON."""
		try:
			self.work_days = json.dumps(sorted(parse_work_days(self.work_days)))
			self.selected_calendars = json.dumps(parse_id_list(self.selected_calendars))
		except InvalidSettingsError as e:
			frappe.throw("<br>".join(e.problems), title=_("Invalid Auto Schedule Settings"))

	def _validate_configuration(self) -> None:
		try:
			settings = settings_from_dict(self.as_dict())
		except (InvalidSettingsError, ValueError) as e:
			frappe.throw(str(e), title=_("Invalid Auto Schedule Settings"))

		problems = collect_settings_problems(settings)
		if problems:
			frappe.throw("<br>".join(problems), title=_("Invalid Auto Schedule Settings"))

	def _validate_calendars(self) -> None:
		"""Valida que los calendarios seleccionados existan y sean del usuario."""
		calendar_ids = parse_id_list(self.selected_calendars)
		if not calendar_ids:
			return

		owned = frappe.get_all(
			FEED_DOCTYPE,
			filters={"name": ["in", calendar_ids], "user": self.user},
			pluck="name"
		)
		missing = [calendar_id for calendar_id in calendar_ids if calendar_id not in owned]
		if missing:
			frappe.throw(
				_("Calendarios no encontrados para {0}: {1}").format(self.user, ", ".join(missing))
			)
