# Copyright (c) 2026, Auto Scheduler contributors
# For license information, please see license.txt

"""
Calendar Feed DocType

Un calendario del usuario. Los jobs de sincronización escriben sus eventos
en Calendar Feed Event; el motor solo lee feeds habilitados.
"""

import frappe
from frappe.model.document import Document


class CalendarFeed(Document):

	def validate(self) -> None:
		if not self.user:
			self.user = frappe.session.user
		self.feed_name = (self.feed_name or "").strip()
