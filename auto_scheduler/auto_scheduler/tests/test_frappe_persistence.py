"""
Tests for scheduling/persistence/frappe_tasks.py and
scheduling/calendar_sources/frappe_feeds.py

Database calls are patched with unittest.mock; no site is needed.
"""

import importlib.util
import unittest
from datetime import datetime
from unittest import mock

import pytz

from auto_scheduler.auto_scheduler.scheduling.exceptions import CalendarSourceError, PersistenceError
from auto_scheduler.auto_scheduler.scheduling.models import BusyInterval, Priority, TimeSlot
from auto_scheduler.auto_scheduler.tests.fakes import USER, monday

HAS_FRAPPE = importlib.util.find_spec("frappe") is not None

if HAS_FRAPPE:
	import frappe
	from auto_scheduler.auto_scheduler.scheduling.calendar_sources import frappe_feeds
	from auto_scheduler.auto_scheduler.scheduling.persistence import frappe_tasks

BOGOTA = pytz.timezone("America/Bogota")


def task_row(name, **values):
	row = {
		"name": name,
		"title": name,
		"user": USER,
		"status": "Open",
		"duration": 30,
		"schedule_locked": 0,
		"is_auto_scheduled": 0,
	}
	row.update(values)
	return frappe._dict(row)


@unittest.skipUnless(HAS_FRAPPE, "frappe is not installed")
class TestTaskFromRow(unittest.TestCase):

	def test_converts_types_and_time_zone(self):
		row = task_row(
			"TASK-1",
			duration=45,
			priority="High",
			energy_level="",
			preferred_time="MORNING",
			due_date="2026-01-07 17:00:00",
			project="P1",
			schedule_score=None,
		)

		task = frappe_tasks.task_from_row(row, BOGOTA)

		self.assertEqual(task.id, "TASK-1")
		self.assertEqual(task.duration, 45)
		self.assertEqual(task.priority, Priority.HIGH)
		self.assertIsNone(task.energy_level)
		self.assertEqual(task.project_id, "P1")
		self.assertEqual(task.due_date, BOGOTA.localize(datetime(2026, 1, 7, 17)))
		self.assertIsNone(task.schedule_score)
		self.assertFalse(task.schedule_locked)

	def test_empty_duration_uses_default(self):
		task = frappe_tasks.task_from_row(task_row("TASK-1", duration=None), BOGOTA)

		self.assertEqual(task.duration, 30)


@unittest.skipUnless(HAS_FRAPPE, "frappe is not installed")
class TestFrappeTaskRepository(unittest.TestCase):

	def setUp(self):
		patcher = mock.patch.object(frappe_tasks, "frappe")
		self.frappe = patcher.start()
		self.addCleanup(patcher.stop)
		self.repository = frappe_tasks.FrappeTaskRepository(system_timezone="America/Bogota")
		self.slot = TimeSlot(monday(14), monday(15), 3.5)

	def test_rejects_task_of_another_user(self):
		self.frappe.db.get_value.return_value = "someone@example.com"

		with self.assertRaises(PersistenceError):
			self.repository.update_task_schedule("TASK-1", USER, self.slot, monday(13))

		self.frappe.db.set_value.assert_not_called()

	def test_rejects_missing_task(self):
		self.frappe.db.get_value.return_value = None

		with self.assertRaises(PersistenceError) as ctx:
			self.repository.update_task_schedule("TASK-1", USER, self.slot, monday(13))

		self.assertEqual(ctx.exception.task_id, "TASK-1")

	def test_writes_naive_system_time(self):
		"""14:00 UTC is stored as 09:00 in a Bogota site."""
		self.frappe.db.get_value.return_value = USER
		self.frappe.get_all.return_value = [
			task_row("TASK-1", scheduled_start=datetime(2026, 1, 5, 9), scheduled_end=datetime(2026, 1, 5, 10))
		]

		task = self.repository.update_task_schedule("TASK-1", USER, self.slot, monday(13))

		doctype, name, values = self.frappe.db.set_value.call_args[0]
		self.assertEqual((doctype, name), ("Planner Task", "TASK-1"))
		self.assertEqual(values["scheduled_start"], datetime(2026, 1, 5, 9))
		self.assertEqual(values["scheduled_end"], datetime(2026, 1, 5, 10))
		self.assertEqual(values["is_auto_scheduled"], 1)
		self.assertEqual(values["schedule_score"], 3.5)
		self.frappe.db.commit.assert_called_once()
		self.assertEqual(task.scheduled_start, monday(14))

	def test_write_failure_rolls_back(self):
		self.frappe.db.get_value.return_value = USER
		self.frappe.db.set_value.side_effect = RuntimeError("lock wait timeout")

		with self.assertRaises(PersistenceError):
			self.repository.update_task_schedule("TASK-1", USER, self.slot, monday(13))

		self.frappe.db.rollback.assert_called_once()

	def test_get_tasks_by_ids_keeps_request_order(self):
		self.frappe.get_all.return_value = [task_row("B"), task_row("A")]

		tasks = self.repository.get_tasks_by_ids(["A", "B", "MISSING"], USER)

		self.assertEqual([task.id for task in tasks], ["A", "B"])
		filters = self.frappe.get_all.call_args[1]["filters"]
		self.assertEqual(filters["user"], USER)

	def test_clear_auto_schedule(self):
		self.frappe.get_all.return_value = ["A", "B"]

		cleared = self.repository.clear_auto_schedule(USER)

		self.assertEqual(cleared, 2)
		self.assertEqual(self.frappe.db.set_value.call_count, 2)
		filters = self.frappe.get_all.call_args[1]["filters"]
		self.assertEqual(filters["schedule_locked"], 0)

	def test_missed_tasks_grouped_by_user(self):
		self.frappe.get_all.return_value = [
			frappe._dict(name="A", user="one@example.com"),
			frappe._dict(name="B", user="two@example.com"),
			frappe._dict(name="C", user="one@example.com"),
		]

		missed = self.repository.get_missed_auto_scheduled(monday(14))

		self.assertEqual(missed, {"one@example.com": ["A", "C"], "two@example.com": ["B"]})
		filters = self.frappe.get_all.call_args[1]["filters"]
		self.assertEqual(filters["scheduled_end"], ["<", datetime(2026, 1, 5, 9)])


@unittest.skipUnless(HAS_FRAPPE, "frappe is not installed")
class TestFrappeFeedSource(unittest.TestCase):

	def setUp(self):
		patcher = mock.patch.object(frappe_feeds, "frappe")
		self.frappe = patcher.start()
		self.addCleanup(patcher.stop)
		self.source = frappe_feeds.FrappeFeedSource(
			user_timezone="America/Bogota", system_timezone="UTC"
		)

	def test_all_day_event_blocks_local_day(self):
		"""An exclusive midnight end does not block the following day."""
		event = frappe._dict(start_datetime="2026-01-05 00:00:00", end_datetime="2026-01-06 00:00:00")

		interval = self.source._all_day_interval(event)

		self.assertEqual(interval, BusyInterval(
			BOGOTA.localize(datetime(2026, 1, 5)),
			BOGOTA.localize(datetime(2026, 1, 6)),
		))

	def test_multi_day_all_day_event(self):
		event = frappe._dict(start_datetime="2026-01-05 00:00:00", end_datetime="2026-01-07 00:00:00")

		interval = self.source._all_day_interval(event)

		self.assertEqual(interval.end, BOGOTA.localize(datetime(2026, 1, 7)))

	def test_reads_timed_and_all_day_events(self):
		self.frappe.get_all.side_effect = [
			["cal-1"],
			[frappe._dict(
				calendar_feed="cal-1",
				start_datetime=datetime(2026, 1, 5, 10),
				end_datetime=datetime(2026, 1, 5, 11),
			)],
			[frappe._dict(
				calendar_feed="cal-1",
				start_datetime="2026-01-06 00:00:00",
				end_datetime=None,
			)],
		]

		result = self.source.get_busy_intervals(USER, ["cal-1", "cal-2"], monday(0), monday(23))

		self.assertEqual(list(result), ["cal-1"])
		self.assertEqual(result["cal-1"][0], BusyInterval(monday(10), monday(11)))
		self.assertEqual(result["cal-1"][1].start, BOGOTA.localize(datetime(2026, 1, 6)))

	def test_no_enabled_feeds(self):
		self.frappe.get_all.return_value = []

		self.assertEqual(self.source.get_busy_intervals(USER, ["cal-1"], monday(0), monday(23)), {})
		self.assertEqual(self.frappe.get_all.call_count, 1)

	def test_query_failure_is_a_source_error(self):
		self.frappe.get_all.side_effect = RuntimeError("db gone")

		with self.assertRaises(CalendarSourceError):
			self.source.get_busy_intervals(USER, ["cal-1"], monday(0), monday(23))

	def test_all_day_event_started_before_range_is_busy(self):
		"""A week-long all-day event that began three days earlier still blocks the range."""
		self.frappe.get_all.side_effect = [
			["cal-1"],
			[],
			[frappe._dict(
				calendar_feed="cal-1",
				start_datetime="2026-01-02 00:00:00",
				end_datetime="2026-01-09 00:00:00",
			)],
		]

		result = self.source.get_busy_intervals(USER, ["cal-1"], monday(0), monday(23))

		all_day_query = self.frappe.get_all.call_args_list[2][1]
		self.assertEqual(all_day_query["filters"]["start_datetime"], ["<", datetime(2026, 1, 6, 23)])
		self.assertIn(["end_datetime", ">=", datetime(2026, 1, 4)], all_day_query["or_filters"])
		self.assertNotIn("between", str(all_day_query["filters"]))

		interval = result["cal-1"][0]
		self.assertLessEqual(interval.start, monday(0))
		self.assertGreaterEqual(interval.end, monday(23))

	def test_statement_timeout_wraps_queries(self):
		source = frappe_feeds.FrappeFeedSource(system_timezone="UTC", statement_timeout=5)
		self.frappe.get_all.return_value = []

		source.get_busy_intervals(USER, ["cal-1"], monday(0), monday(23))

		self.assertEqual(
			self.frappe.db.set_execution_timeout.call_args_list,
			[mock.call(5), mock.call(0)]
		)

	def test_statement_timeout_is_reset_after_failure(self):
		source = frappe_feeds.FrappeFeedSource(system_timezone="UTC", statement_timeout=5)
		self.frappe.get_all.side_effect = RuntimeError("max_statement_time exceeded")

		with self.assertRaises(CalendarSourceError):
			source.get_busy_intervals(USER, ["cal-1"], monday(0), monday(23))

		self.frappe.db.set_execution_timeout.assert_called_with(0)

	def test_no_statement_timeout_by_default(self):
		self.frappe.get_all.return_value = []

		self.source.get_busy_intervals(USER, ["cal-1"], monday(0), monday(23))

		self.frappe.db.set_execution_timeout.assert_not_called()
