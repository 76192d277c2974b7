"""
Slot Scoring

Multi-criteria score for one candidate slot of one task. Higher is better.

Factors:
- Energy match: start hour inside the task's energy window
- Time-of-day preference: start inside the preferred third of the working day
- Urgency: earlier slots score higher; steeper curve when a due date is near
- Project grouping: slot adjacent to another slot of the same project
- Priority: constant per-task bonus (orders tasks, not slots)

Hard constraints (working hours, buffer, busy time) are never scored here:
the SlotFinder filters them out before scoring.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

import pytz

from .models import (
	AutoScheduleSettings,
	BusyInterval,
	Priority,
	SchedulableTask,
	TimePreference,
)
from .settings import working_window_thirds


@dataclass(frozen=True)
class ScoringWeights:
	"""Tunable weights. Only relative orderings are guaranteed, not values."""

	energy_match: float = 4.0
	time_preference: float = 3.0
	due_date_urgency: float = 2.5
	no_due_date_urgency: float = 1.0
	overdue_slot_factor: float = 0.25
	project_grouping: float = 1.5
	project_adjacency_minutes: int = 30
	urgency_horizon_hours: float = 24.0
	flat_horizon_hours: float = 168.0
	priority_high: float = 0.6
	priority_medium: float = 0.4
	priority_low: float = 0.2

	def priority_bonus(self, priority: Optional[Priority]) -> float:
		return {
			Priority.HIGH: self.priority_high,
			Priority.MEDIUM: self.priority_medium,
			Priority.LOW: self.priority_low,
		}.get(priority, 0.0)


DEFAULT_WEIGHTS = ScoringWeights()


def _hours_between(start: datetime, end: datetime) -> float:
	return (end - start).total_seconds() / 3600.0


class SlotScorer:
	"""Scores candidate slots against one user's settings."""

	def __init__(
		self,
		settings: AutoScheduleSettings,
		weights: Optional[ScoringWeights] = None
	):
		self.settings = settings
		self.weights = weights or DEFAULT_WEIGHTS
		self.tz = pytz.timezone(settings.timezone)
		self._thirds = working_window_thirds(settings)

	def score(
		self,
		task: SchedulableTask,
		start: datetime,
		end: datetime,
		now: datetime,
		project_intervals: Iterable[BusyInterval] = ()
	) -> float:
		"""
		Calcula el score total de un slot.

		Args:
			task: tarea a ubicar
			start: inicio del slot (tz-aware)
			end: fin del slot (tz-aware)
			now: instante de referencia del run
			project_intervals: slots ya ocupados por tareas del mismo proyecto

		Returns:
			float: suma de todos los factores
		"""
		local_start = start.astimezone(self.tz)

		total = self.energy_score(task, local_start)
		total += self.time_preference_score(task, local_start)
		total += self.urgency_score(task, start, end, now)
		total += self.project_score(task, start, end, project_intervals)
		total += self.weights.priority_bonus(task.priority)
		return total

	def energy_score(self, task: SchedulableTask, local_start: datetime) -> float:
		energy_range = self.settings.energy_range(task.energy_level)
		if not energy_range:
			return 0.0

		range_start, range_end = energy_range
		if range_start <= local_start.hour < range_end:
			return self.weights.energy_match
		return 0.0

	def time_preference_score(self, task: SchedulableTask, local_start: datetime) -> float:
		preference = task.preferred_time
		if preference is None or preference == TimePreference.ANYTIME:
			return 0.0

		hour = local_start.hour + local_start.minute / 60.0
		first_cut, second_cut = self._thirds

		if preference == TimePreference.MORNING:
			matches = hour < first_cut
		elif preference == TimePreference.AFTERNOON:
			matches = first_cut <= hour < second_cut
		else:
			matches = hour >= second_cut

		return self.weights.time_preference if matches else 0.0

	def urgency_score(
		self,
		task: SchedulableTask,
		start: datetime,
		end: datetime,
		now: datetime
	) -> float:
		hours_from_now = max(0.0, _hours_between(now, start))

		if not task.due_date:
			# Curva plana: sin fecha límite, poca prisa
			earliness = 1.0 / (1.0 + hours_from_now / self.weights.flat_horizon_hours)
			return self.weights.no_due_date_urgency * earliness

		hours_to_due = max(0.0, _hours_between(now, task.due_date))
		pressure = 1.0 / (1.0 + hours_to_due / 24.0)
		earliness = 1.0 / (1.0 + hours_from_now / self.weights.urgency_horizon_hours)

		score = self.weights.due_date_urgency * (0.5 + 0.5 * pressure) * earliness
		if end > task.due_date:
			score *= self.weights.overdue_slot_factor
		return score

	def project_score(
		self,
		task: SchedulableTask,
		start: datetime,
		end: datetime,
		project_intervals: Iterable[BusyInterval]
	) -> float:
		if not (self.settings.group_by_project and task.project_id):
			return 0.0

		max_gap_minutes = self.weights.project_adjacency_minutes
		for other in project_intervals:
			if other.overlaps(start, end):
				continue
			gap = max(
				(other.start - end).total_seconds(),
				(start - other.end).total_seconds()
			) / 60.0
			if gap <= max_gap_minutes:
				return self.weights.project_grouping
		return 0.0
