"""
Frappe Calendar Feed Source

Reads busy time from Calendar Feed Event records. Those records are written
by calendar sync integrations or by hand; this source only reads them.

Rules:
- Only enabled feeds owned by the user are visible
- Cancelled events are not busy
- All-day events block the whole local day

The source shares the request's DB connection, so it cannot run in a worker
thread. The fetch timeout is applied as a statement timeout on the database
session instead.
"""

from contextlib import contextmanager
from datetime import datetime, time, timedelta
from typing import Dict, List, Optional, Sequence

import frappe
import pytz
from frappe.utils import get_datetime, get_system_timezone, getdate

from ..exceptions import CalendarSourceError
from ..models import BusyInterval
from ..timeutils import to_aware, to_naive
from .base import CalendarSource

FEED_DOCTYPE = "Calendar Feed"
EVENT_DOCTYPE = "Calendar Feed Event"
EVENT_FIELDS = ["name", "calendar_feed", "start_datetime", "end_datetime", "all_day", "status"]
CANCELLED_STATUS = "cancelled"

# Holgura para días completos: el día local del usuario puede empezar antes o
# después que el día en la zona del sistema
ALL_DAY_SLACK = timedelta(days=1)


class FrappeFeedSource(CalendarSource):
	"""Source de eventos sincronizados en la base de datos del sitio."""

	# Usa frappe.local (conexión a DB por thread): no puede correr en otro thread
	thread_safe = False

	def __init__(
		self,
		user_timezone: Optional[str] = None,
		system_timezone: Optional[str] = None,
		statement_timeout: Optional[int] = None
	):
		self.system_tz = pytz.timezone(system_timezone or get_system_timezone())
		self.user_tz = pytz.timezone(user_timezone) if user_timezone else self.system_tz
		self.statement_timeout = statement_timeout

	def get_busy_intervals(
		self,
		user_id: str,
		calendar_ids: Sequence[str],
		range_start: datetime,
		range_end: datetime
	) -> Dict[str, List[BusyInterval]]:
		"""
		Obtiene eventos ocupados de los feeds habilitados del usuario.

		Raises:
			CalendarSourceError: si la consulta falla o excede el timeout
		"""
		try:
			with self._statement_timeout():
				feeds = frappe.get_all(
					FEED_DOCTYPE,
					filters={
						"name": ["in", list(calendar_ids)],
						"user": user_id,
						"is_enabled": 1
					},
					pluck="name"
				)
				if not feeds:
					return {}

				start_naive = to_naive(range_start, self.system_tz)
				end_naive = to_naive(range_end, self.system_tz)

				# Eventos con hora: condición de overlap start < fin AND end > inicio
				timed_events = frappe.get_all(
					EVENT_DOCTYPE,
					filters={
						"calendar_feed": ["in", feeds],
						"status": ["!=", CANCELLED_STATUS],
						"all_day": 0,
						"start_datetime": ["<", end_naive],
						"end_datetime": [">", start_naive]
					},
					fields=EVENT_FIELDS,
					order_by="start_datetime asc"
				)

				# Eventos de día completo: mismo overlap con holgura de un día.
				# Sin end_datetime el evento dura solo el día en que empieza.
				all_day_events = frappe.get_all(
					EVENT_DOCTYPE,
					filters={
						"calendar_feed": ["in", feeds],
						"status": ["!=", CANCELLED_STATUS],
						"all_day": 1,
						"start_datetime": ["<", end_naive + ALL_DAY_SLACK]
					},
					or_filters=[
						["end_datetime", ">=", start_naive - ALL_DAY_SLACK],
						["start_datetime", ">=", start_naive - ALL_DAY_SLACK]
					],
					fields=EVENT_FIELDS,
					order_by="start_datetime asc"
				)
		except Exception as e:
			raise CalendarSourceError(f"Could not read calendar feeds: {e}") from e

		result: Dict[str, List[BusyInterval]] = {feed: [] for feed in feeds}

		for event in timed_events:
			start = to_aware(get_datetime(event.start_datetime), self.system_tz)
			end = to_aware(get_datetime(event.end_datetime), self.system_tz)
			if end > start:
				result[event.calendar_feed].append(BusyInterval(start, end))

		for event in all_day_events:
			result[event.calendar_feed].append(self._all_day_interval(event))

		return result

	@contextmanager
	def _statement_timeout(self):
		"""Limita cada consulta de la sesión a statement_timeout segundos (0 = sin límite)."""
		if not self.statement_timeout:
			yield
			return

		frappe.db.set_execution_timeout(int(self.statement_timeout))
		try:
			yield
		finally:
			frappe.db.set_execution_timeout(0)

	def _all_day_interval(self, event) -> BusyInterval:
		"""Bloquea desde la medianoche local del primer día hasta la del día siguiente al último."""
		first_day = getdate(event.start_datetime)
		last_day = first_day
		if event.end_datetime:
			end_value = get_datetime(event.end_datetime)
			last_day = getdate(end_value)
			# Fin exclusivo a medianoche (Google, CalDAV): el día anterior es el último
			if end_value.time() == time(0, 0) and last_day > first_day:
				last_day -= timedelta(days=1)
		if last_day < first_day:
			last_day = first_day

		start = to_aware(first_day, self.user_tz)
		end = to_aware(last_day + timedelta(days=1), self.user_tz)
		return BusyInterval(start, end)
