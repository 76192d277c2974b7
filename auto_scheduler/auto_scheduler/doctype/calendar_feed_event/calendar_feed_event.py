# Copyright (c) 2026, Auto Scheduler contributors
# For license information, please see license.txt

"""
Calendar Feed Event DocType

Evento sincronizado de un Calendar Feed. Cuenta como tiempo ocupado salvo
que esté cancelado.
"""

import frappe
from frappe import _
from frappe.model.document import Document
from frappe.utils import cint, get_datetime, getdate


class CalendarFeedEvent(Document):
	"""
	Validations:
	- status is stored lowercase (providers send CONFIRMED / Cancelled)
	- timed events need end > start
	- all-day events may omit the end; if set it cannot be before the start day
	"""

	def validate(self) -> None:
		self.status = (self.status or "confirmed").lower()
		self._validate_range()

	def _validate_range(self) -> None:
		if cint(self.all_day):
			if self.end_datetime and getdate(self.end_datetime) < getdate(self.start_datetime):
				frappe.throw(_("End no puede ser anterior al día de Start"))
			return

		if not self.end_datetime:
			frappe.throw(_("End es obligatorio para eventos con hora"))

		if get_datetime(self.start_datetime) >= get_datetime(self.end_datetime):
			frappe.throw(_("Start debe ser menor que End"))
