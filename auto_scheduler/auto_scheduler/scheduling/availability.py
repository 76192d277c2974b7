"""
Calendar Availability Service

Collapses the busy time of every calendar the user selected for
conflict-checking into one ordered, non-overlapping list of BusyInterval.

Calendars absent from `selected_calendars` are invisible to the engine.
A failed or timed-out fetch is fatal to the run (fail-closed): unknown
calendars are never treated as free.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from .calendar_sources.base import CalendarSource
from .exceptions import AvailabilityFetchError, CalendarSourceError
from .intervals import merge_intervals
from .models import AutoScheduleSettings, BusyInterval

DEFAULT_FETCH_TIMEOUT = 10  # segundos


class CalendarAvailabilityProvider:
	"""Reads busy intervals for the selected calendars of one user."""

	def __init__(
		self,
		source: CalendarSource,
		settings: AutoScheduleSettings,
		timeout: Optional[float] = DEFAULT_FETCH_TIMEOUT,
		logger: Optional[logging.Logger] = None
	):
		self.source = source
		self.settings = settings
		self.timeout = timeout
		self.logger = logger or logging.getLogger(__name__)

	def get_busy_intervals(
		self,
		user_id: str,
		range_start: datetime,
		range_end: datetime
	) -> List[BusyInterval]:
		"""
		Obtiene intervalos ocupados para el rango.

		Algoritmo:
			1. Tomar sólo los calendarios en selected_calendars
			2. Consultar la fuente (con timeout si la fuente lo permite),
			   ampliando el rango por buffer_minutes en ambos lados
			3. Descartar calendarios no solicitados
			4. Merge de intervalos solapados/adyacentes
			5. Retornar lista ordenada por start

		Raises:
			AvailabilityFetchError: si la fuente falla o excede el timeout
		"""
		calendar_ids = list(self.settings.selected_calendars)
		if not calendar_ids:
			return []

		# El buffer puede alcanzar eventos justo fuera del rango
		pad = timedelta(minutes=self.settings.buffer_minutes or 0)
		query_start = range_start - pad
		query_end = range_end + pad

		by_calendar = self._fetch(user_id, calendar_ids, query_start, query_end)

		selected = set(calendar_ids)
		collected = []
		for calendar_id, intervals in by_calendar.items():
			if calendar_id not in selected:
				continue
			collected.extend(
				interval for interval in intervals
				if interval.start < query_end and interval.end > query_start
			)

		merged = merge_intervals(collected)
		self.logger.debug(
			f"Busy intervals for {user_id}: {len(collected)} events from "
			f"{len(by_calendar)} calendar(s) merged into {len(merged)}"
		)
		return merged

	def _fetch(
		self,
		user_id: str,
		calendar_ids: List[str],
		range_start: datetime,
		range_end: datetime
	) -> Dict[str, List[BusyInterval]]:
		if not (self.timeout and self.source.thread_safe):
			return self._call_source(user_id, calendar_ids, range_start, range_end)

		executor = ThreadPoolExecutor(max_workers=1)
		try:
			future = executor.submit(
				self._call_source, user_id, calendar_ids, range_start, range_end
			)
			return future.result(timeout=self.timeout)
		except FuturesTimeoutError:
			raise AvailabilityFetchError(
				f"Calendar fetch for {user_id} timed out after {self.timeout}s"
			)
		finally:
			# No esperar a un fetch colgado
			executor.shutdown(wait=False)

	def _call_source(
		self,
		user_id: str,
		calendar_ids: List[str],
		range_start: datetime,
		range_end: datetime
	) -> Dict[str, List[BusyInterval]]:
		try:
			return self.source.get_busy_intervals(user_id, calendar_ids, range_start, range_end)
		except CalendarSourceError as e:
			raise AvailabilityFetchError(f"Calendar fetch failed for {user_id}: {e}") from e
		except AvailabilityFetchError:
			raise
		except Exception as e:
			raise AvailabilityFetchError(
				f"Unexpected error reading calendars for {user_id}: {e}"
			) from e


class PrefetchedAvailability:
	"""
	Read-only, run-scoped view over busy intervals fetched once up front.

	Exposes the same `get_busy_intervals` contract as the provider, so the
	SlotFinder can be pointed at either.
	"""

	def __init__(self, intervals: Iterable[BusyInterval]):
		self._intervals = tuple(merge_intervals(intervals))

	@classmethod
	def fetch(
		cls,
		provider: CalendarAvailabilityProvider,
		user_id: str,
		range_start: datetime,
		range_end: datetime
	) -> "PrefetchedAvailability":
		return cls(provider.get_busy_intervals(user_id, range_start, range_end))

	def get_busy_intervals(
		self,
		user_id: str,
		range_start: datetime,
		range_end: datetime
	) -> List[BusyInterval]:
		return [
			interval for interval in self._intervals
			if interval.start < range_end and interval.end > range_start
		]

	def __len__(self) -> int:
		return len(self._intervals)
