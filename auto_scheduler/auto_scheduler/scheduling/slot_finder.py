"""
Slot Finder Service

Enumerates every slot where one task fits, scores them, and returns them
best-first. Considers:
- Working days and working hours (user's time zone)
- External busy time from the selected calendars, respected with buffer
- Synthetic conflicts of the current run (ConflictAccumulator)
- The task's own start constraints (start_date, postponed_until)

Hard constraints filter candidates out; they are never traded against score.
"""

import logging
import math
from datetime import datetime, time, timedelta
from typing import Iterator, List, Optional

import pytz

from .conflicts import ConflictAccumulator
from .intervals import clip_interval, expand_interval, free_windows
from .models import AutoScheduleSettings, BusyInterval, SchedulableTask, TimeSlot
from .scoring import SlotScorer

SLOT_INCREMENT_MINUTES = 15


def sunday_based_weekday(value: datetime) -> int:
	"""Weekday index with 0=Sunday..6=Saturday."""
	return (value.weekday() + 1) % 7


class SlotFinder:
	"""
	Finds and ranks candidate slots for a task.

	`availability` is anything exposing
	`get_busy_intervals(user_id, range_start, range_end)`: the live
	CalendarAvailabilityProvider or a run's PrefetchedAvailability.
	"""

	def __init__(
		self,
		availability,
		settings: AutoScheduleSettings,
		scorer: Optional[SlotScorer] = None,
		increment_minutes: int = SLOT_INCREMENT_MINUTES,
		logger: Optional[logging.Logger] = None
	):
		if increment_minutes <= 0:
			raise ValueError("increment_minutes must be positive")

		self.availability = availability
		self.settings = settings
		self.scorer = scorer or SlotScorer(settings)
		self.increment = timedelta(minutes=increment_minutes)
		self.tz = pytz.timezone(settings.timezone)
		self.logger = logger or logging.getLogger(__name__)

	def find_available_slots(
		self,
		task: SchedulableTask,
		range_start: datetime,
		range_end: datetime,
		user_id: str,
		conflicts: Optional[ConflictAccumulator] = None,
		now: Optional[datetime] = None
	) -> List[TimeSlot]:
		"""
		Obtiene los slots disponibles para una tarea, ordenados best-first.

		Args:
			task: tarea a ubicar
			range_start: inicio de la ventana de búsqueda (tz-aware)
			range_end: fin de la ventana de búsqueda (tz-aware)
			user_id: dueño de los calendarios
			conflicts: conflictos sintéticos del run (no se modifica)
			now: referencia para urgencia (default: range_start)

		Returns:
			list[TimeSlot]: ordenados por score desc, empate por start asc

		Algoritmo:
			1. Obtener busy intervals (externos + buffer) y unir con conflictos del run
			2. Recorrer días laborales dentro del rango, limitados a horas laborales
			3. Restar busy a cada ventana laboral -> huecos libres
			4. Generar candidatos cada SLOT_INCREMENT_MINUTES que quepan en un hueco
			5. Puntuar y ordenar
		"""
		if range_start.tzinfo is None or range_end.tzinfo is None:
			raise ValueError("range_start and range_end must be timezone-aware")

		if range_end <= range_start:
			return []

		now = now or range_start
		duration = timedelta(minutes=task.duration)
		buffer_minutes = self.settings.buffer_minutes or 0
		pad = timedelta(minutes=buffer_minutes)

		# 1. Busy externo (ampliado por buffer) + conflictos sintéticos (ya ampliados)
		external = self.availability.get_busy_intervals(user_id, range_start - pad, range_end + pad)
		blocked = [expand_interval(interval, buffer_minutes) for interval in external]
		project_intervals = []
		if conflicts is not None:
			blocked.extend(conflicts.intervals())
			project_intervals = conflicts.project_intervals(task.project_id)

		search_start = range_start
		if task.earliest_start and task.earliest_start > search_start:
			search_start = task.earliest_start

		slots = []
		for day_start, window in self._working_windows(search_start, range_end):
			for gap in free_windows(window, blocked):
				for slot_start in self._candidate_starts(gap, day_start, duration):
					slot_end = slot_start + duration
					score = self.scorer.score(task, slot_start, slot_end, now, project_intervals)
					slots.append(TimeSlot(slot_start, slot_end, score))

		slots.sort(key=lambda slot: (-slot.score, slot.start))

		self.logger.debug(
			f"Task {task.id}: {len(slots)} candidate slot(s) between "
			f"{range_start.isoformat()} and {range_end.isoformat()}"
		)
		return slots

	def add_scheduled_task_conflict(
		self,
		task: SchedulableTask,
		conflicts: ConflictAccumulator
	) -> None:
		"""Register a committed task so later searches in the run avoid it."""
		conflicts.add_scheduled_task_conflict(task)

	def _working_windows(
		self,
		range_start: datetime,
		range_end: datetime
	) -> Iterator:
		"""
		Yields (day_work_start, window) for every work day in the range.

		`window` is the working-hours interval clipped to the range; the
		unclipped day start anchors candidate alignment.
		"""
		current = range_start.astimezone(self.tz).date()
		last = range_end.astimezone(self.tz).date()

		while current <= last:
			midnight = datetime.combine(current, time(0, 0))
			if sunday_based_weekday(midnight) in self.settings.work_days:
				day_start = self.tz.localize(
					midnight + timedelta(hours=self.settings.work_hour_start)
				)
				day_end = self.tz.localize(
					midnight + timedelta(hours=self.settings.work_hour_end)
				)
				window = clip_interval(BusyInterval(day_start, day_end), range_start, range_end)
				if window:
					yield day_start, window
			current += timedelta(days=1)

	def _candidate_starts(
		self,
		gap: BusyInterval,
		anchor: datetime,
		duration: timedelta
	) -> Iterator[datetime]:
		"""Aligned start times inside `gap` where `duration` still fits."""
		step = self.increment.total_seconds()
		offset = (gap.start - anchor).total_seconds()
		steps = max(0, math.ceil(offset / step))
		candidate = anchor + timedelta(seconds=steps * step)

		while candidate + duration <= gap.end:
			yield candidate
			candidate += self.increment
