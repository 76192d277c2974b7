"""
In-memory doubles shared by the engine tests.

FakeCalendarSource and InMemoryTaskRepository implement the same ABCs as
the Frappe implementations, so the engine runs without a site.
"""

import copy
import time
from datetime import datetime

import pytz

from auto_scheduler.auto_scheduler.scheduling.calendar_sources.base import CalendarSource
from auto_scheduler.auto_scheduler.scheduling.exceptions import PersistenceError
from auto_scheduler.auto_scheduler.scheduling.models import AutoScheduleSettings, BusyInterval
from auto_scheduler.auto_scheduler.scheduling.persistence.base import TaskRepository

UTC = pytz.utc
USER = "planner@example.com"

# 2026-01-05 es lunes
MONDAY = (2026, 1, 5)
TUESDAY = (2026, 1, 6)
SATURDAY = (2026, 1, 10)


def dt(year, month, day, hour=0, minute=0, tz=UTC):
	return tz.localize(datetime(year, month, day, hour, minute))


def monday(hour, minute=0):
	return dt(*MONDAY, hour, minute)


def tuesday(hour, minute=0):
	return dt(*TUESDAY, hour, minute)


def busy(start, end):
	return BusyInterval(start, end)


def make_settings(**overrides):
	values = {
		"work_days": frozenset({1, 2, 3, 4, 5}),
		"work_hour_start": 9,
		"work_hour_end": 17,
		"selected_calendars": ("work",),
		"buffer_minutes": 0,
		"timezone": "UTC",
	}
	values.update(overrides)
	return AutoScheduleSettings(**values)


class FakeCalendarSource(CalendarSource):
	"""Returns canned busy intervals per calendar and records every call."""

	def __init__(self, events=None, error=None, delay=0, thread_safe=False):
		self.events = events or {}
		self.error = error
		self.delay = delay
		self.thread_safe = thread_safe
		self.calls = []

	def get_busy_intervals(self, user_id, calendar_ids, range_start, range_end):
		self.calls.append((user_id, tuple(calendar_ids), range_start, range_end))
		if self.delay:
			time.sleep(self.delay)
		if self.error:
			raise self.error
		return {calendar_id: list(intervals) for calendar_id, intervals in self.events.items()}


class InMemoryTaskRepository(TaskRepository):
	"""Dict-backed repository. `fail_for` ids raise PersistenceError on write."""

	def __init__(self, tasks=(), fail_for=()):
		self.tasks = {task.id: copy.deepcopy(task) for task in tasks}
		self.fail_for = set(fail_for)
		self.writes = []

	def update_task_schedule(self, task_id, user_id, slot, scheduled_at):
		if task_id in self.fail_for:
			raise PersistenceError(f"write failed for {task_id}", task_id=task_id)

		stored = self.tasks.get(task_id)
		if stored is None:
			raise PersistenceError(f"{task_id} does not exist", task_id=task_id)

		stored.scheduled_start = slot.start
		stored.scheduled_end = slot.end
		stored.is_auto_scheduled = True
		stored.schedule_score = slot.score
		stored.last_scheduled = scheduled_at
		self.writes.append((task_id, slot))
		return copy.deepcopy(stored)

	def get_tasks_by_ids(self, task_ids, user_id):
		return [copy.deepcopy(self.tasks[task_id]) for task_id in task_ids if task_id in self.tasks]

	def get_open_tasks(self, user_id):
		return [
			copy.deepcopy(task) for task in self.tasks.values()
			if task.status != "Completed"
		]
