"""
Tests for scheduling/batch_scheduler.py

Tests the two-phase run: commit order, conflict tracking between tasks,
locked tasks, window fallback and failure isolation.
"""

import unittest
from datetime import timedelta

from auto_scheduler.auto_scheduler.scheduling.availability import CalendarAvailabilityProvider
from auto_scheduler.auto_scheduler.scheduling.batch_scheduler import (
	BatchScheduler,
	SequentialScoringStrategy,
	ThreadPoolScoringStrategy,
)
from auto_scheduler.auto_scheduler.scheduling.exceptions import (
	AvailabilityFetchError,
	CalendarSourceError,
	InvalidSettingsError,
)
from auto_scheduler.auto_scheduler.scheduling.models import SchedulableTask
from auto_scheduler.auto_scheduler.scheduling.scoring import SlotScorer
from auto_scheduler.auto_scheduler.tests.fakes import (
	USER,
	FakeCalendarSource,
	InMemoryTaskRepository,
	busy,
	make_settings,
	monday,
	tuesday,
)

NOW = monday(9)


def build_scheduler(tasks, events=None, fail_for=(), source=None, **options):
	settings = options.pop("settings", None) or make_settings()
	source = source or FakeCalendarSource({"work": events or []})
	repository = InMemoryTaskRepository(tasks, fail_for=fail_for)
	scheduler = BatchScheduler(
		CalendarAvailabilityProvider(source, settings),
		repository,
		settings,
		clock=lambda: NOW,
		**options
	)
	return scheduler, repository, source


def overlaps(a, b):
	return a.scheduled_start < b.scheduled_end and b.scheduled_start < a.scheduled_end


class ExplodingScorer(SlotScorer):
	"""Raises while scoring one specific task."""

	def score(self, task, start, end, now, project_intervals=()):
		if task.id == "BAD":
			raise RuntimeError("scoring exploded")
		return super().score(task, start, end, now, project_intervals)


class TestBatchScheduler(unittest.TestCase):

	def test_two_tasks_do_not_overlap(self):
		tasks = [
			SchedulableTask(id="T1", duration_minutes=60),
			SchedulableTask(id="T2", duration_minutes=60),
		]
		scheduler, _, _ = build_scheduler(tasks, windows=(1,))

		result = scheduler.schedule_multiple_tasks(tasks, USER)

		self.assertEqual([task.id for task in result], ["T1", "T2"])
		first, second = result
		self.assertFalse(overlaps(first, second))
		for task in result:
			self.assertTrue(task.is_auto_scheduled)
			self.assertGreaterEqual(task.scheduled_start, monday(9))
			self.assertLessEqual(task.scheduled_end, monday(17))

	def test_buffer_between_committed_tasks(self):
		tasks = [
			SchedulableTask(id="T1", duration_minutes=60),
			SchedulableTask(id="T2", duration_minutes=60),
		]
		scheduler, _, _ = build_scheduler(
			tasks, settings=make_settings(buffer_minutes=15), windows=(1,)
		)

		first, second = scheduler.schedule_multiple_tasks(tasks, USER)

		self.assertEqual(first.scheduled_start, monday(9))
		self.assertEqual(second.scheduled_start, monday(10, 15))

	def test_higher_score_commits_first(self):
		"""A task due soon takes the best slot even if it comes later in the input."""
		relaxed = SchedulableTask(id="RELAXED", duration_minutes=60)
		urgent = SchedulableTask(id="URGENT", duration_minutes=60, due_date=NOW + timedelta(hours=3))
		scheduler, _, _ = build_scheduler([relaxed, urgent])

		result = scheduler.run([relaxed, urgent], USER)

		self.assertEqual(result.scheduled, ["URGENT", "RELAXED"])
		by_id = {task.id: task for task in result.tasks}
		self.assertEqual(by_id["URGENT"].scheduled_start, monday(9))
		self.assertEqual(by_id["RELAXED"].scheduled_start, monday(10))

	def test_locked_task_is_untouched_and_blocks_time(self):
		locked = SchedulableTask(
			id="LOCKED",
			duration_minutes=60,
			schedule_locked=True,
			scheduled_start=monday(9),
			scheduled_end=monday(10),
		)
		other = SchedulableTask(id="T1", duration_minutes=60)
		scheduler, repository, _ = build_scheduler([locked, other])

		result = scheduler.run([locked, other], USER)

		self.assertEqual(result.locked, ["LOCKED"])
		self.assertEqual([task_id for task_id, _ in repository.writes], ["T1"])
		by_id = {task.id: task for task in result.tasks}
		self.assertEqual(by_id["LOCKED"].scheduled_start, monday(9))
		self.assertFalse(by_id["LOCKED"].is_auto_scheduled)
		self.assertEqual(by_id["T1"].scheduled_start, monday(10))

	def test_locked_tasks_outside_the_run_block_time(self):
		locked = SchedulableTask(
			id="LOCKED",
			duration_minutes=60,
			schedule_locked=True,
			scheduled_start=monday(9),
			scheduled_end=monday(10),
		)
		todo = SchedulableTask(id="TODO", duration_minutes=60)
		scheduler, repository, _ = build_scheduler([locked, todo])

		result = scheduler.run([todo], USER, locked_tasks=[locked])

		self.assertEqual(result.scheduled, ["TODO"])
		self.assertEqual(result.locked, [])
		self.assertEqual([task.id for task in result.tasks], ["TODO"])
		self.assertEqual(result.tasks[0].scheduled_start, monday(10))

	def test_same_input_same_assignment(self):
		def make_tasks():
			return [SchedulableTask(id=f"T{i}", duration_minutes=30 + 15 * (i % 3)) for i in range(5)]

		first, _, _ = build_scheduler(make_tasks())
		second, _, _ = build_scheduler(make_tasks())

		run_a = first.schedule_multiple_tasks(make_tasks(), USER)
		run_b = second.schedule_multiple_tasks(make_tasks(), USER)

		self.assertEqual(
			[(task.id, task.scheduled_start) for task in run_a],
			[(task.id, task.scheduled_start) for task in run_b]
		)

	def test_ties_keep_input_order(self):
		tasks = [
			SchedulableTask(id="B", duration_minutes=30),
			SchedulableTask(id="A", duration_minutes=30),
		]
		scheduler, _, _ = build_scheduler(tasks)

		result = scheduler.run(tasks, USER)

		self.assertEqual(result.scheduled, ["B", "A"])

	def test_falls_back_to_wider_window(self):
		task = SchedulableTask(id="T1", duration_minutes=60)
		scheduler, _, _ = build_scheduler(
			[task], events=[busy(monday(9), monday(17))], windows=(1, 3)
		)

		result = scheduler.run([task], USER)

		self.assertEqual(result.scheduled, ["T1"])
		self.assertEqual(result.tasks[0].scheduled_start, tuesday(9))

	def test_no_slot_leaves_task_unscheduled(self):
		task = SchedulableTask(id="T1", duration_minutes=60)
		scheduler, repository, _ = build_scheduler(
			[task], events=[busy(monday(9), monday(17))], windows=(1,)
		)

		result = scheduler.run([task], USER)

		self.assertEqual(result.unscheduled, ["T1"])
		self.assertEqual(repository.writes, [])
		self.assertFalse(result.tasks[0].has_schedule)
		self.assertEqual(result.summary()["pending"], 1)

	def test_persistence_failure_is_isolated(self):
		"""A failed write registers no conflict; the next task can use that time."""
		failing = SchedulableTask(id="FAIL", duration_minutes=60, due_date=NOW + timedelta(hours=3))
		other = SchedulableTask(id="OK", duration_minutes=60)
		scheduler, _, _ = build_scheduler([failing, other], fail_for={"FAIL"})

		result = scheduler.run([failing, other], USER)

		self.assertEqual(result.failed, ["FAIL"])
		self.assertEqual(result.scheduled, ["OK"])
		by_id = {task.id: task for task in result.tasks}
		self.assertEqual(by_id["OK"].scheduled_start, monday(9))
		self.assertFalse(by_id["FAIL"].has_schedule)

	def test_scoring_failure_skips_only_that_task(self):
		tasks = [
			SchedulableTask(id="BAD", duration_minutes=30),
			SchedulableTask(id="GOOD", duration_minutes=30),
		]
		settings = make_settings()
		scheduler, repository, _ = build_scheduler(
			tasks, settings=settings, scorer=ExplodingScorer(settings)
		)

		result = scheduler.run(tasks, USER)

		self.assertEqual(result.failed, ["BAD"])
		self.assertEqual(result.scheduled, ["GOOD"])
		self.assertEqual([task_id for task_id, _ in repository.writes], ["GOOD"])

	def test_availability_failure_aborts_before_writes(self):
		task = SchedulableTask(id="T1", duration_minutes=30)
		source = FakeCalendarSource(error=CalendarSourceError("feed down"))
		scheduler, repository, _ = build_scheduler([task], source=source)

		with self.assertRaises(AvailabilityFetchError):
			scheduler.run([task], USER)

		self.assertEqual(repository.writes, [])

	def test_invalid_settings_abort_before_fetch(self):
		task = SchedulableTask(id="T1", duration_minutes=30)
		scheduler, repository, source = build_scheduler(
			[task], settings=make_settings(work_hour_start=17, work_hour_end=9)
		)

		with self.assertRaises(InvalidSettingsError):
			scheduler.run([task], USER)

		self.assertEqual(source.calls, [])
		self.assertEqual(repository.writes, [])

	def test_invalid_windows(self):
		task = SchedulableTask(id="T1")
		for windows in ((), (0,), (7, 1)):
			scheduler, _, _ = build_scheduler([task], windows=windows)
			with self.assertRaises(InvalidSettingsError):
				scheduler.run([task], USER)

	def test_calendars_are_fetched_once_per_run(self):
		tasks = [SchedulableTask(id=f"T{i}", duration_minutes=30) for i in range(4)]
		scheduler, _, source = build_scheduler(tasks, windows=(1, 7))

		scheduler.run(tasks, USER)

		self.assertEqual(len(source.calls), 1)

	def test_committed_fields_are_stamped(self):
		task = SchedulableTask(id="T1", duration_minutes=30)
		scheduler, repository, _ = build_scheduler([task])

		scheduler.run([task], USER)

		stored = repository.tasks["T1"]
		self.assertTrue(stored.is_auto_scheduled)
		self.assertEqual(stored.last_scheduled, NOW)
		self.assertIsNotNone(stored.schedule_score)

	def test_thread_pool_matches_sequential(self):
		def make_tasks():
			return [
				SchedulableTask(
					id=f"T{i:02d}",
					duration_minutes=15 * (1 + i % 4),
					priority=("HIGH", "LOW", None)[i % 3],
					preferred_time=("MORNING", "AFTERNOON", "EVENING", None)[i % 4],
					due_date=NOW + timedelta(hours=4 * (i + 1)) if i % 2 else None,
				)
				for i in range(12)
			]

		events = [busy(monday(12), monday(13)), busy(tuesday(15), tuesday(16))]
		sequential, _, _ = build_scheduler(
			make_tasks(), events=events, scoring_strategy=SequentialScoringStrategy()
		)
		threaded, _, _ = build_scheduler(
			make_tasks(), events=events, scoring_strategy=ThreadPoolScoringStrategy(batch_size=4)
		)

		run_a = sequential.run(make_tasks(), USER)
		run_b = threaded.run(make_tasks(), USER)

		self.assertEqual(run_a.scheduled, run_b.scheduled)
		self.assertEqual(
			[task.scheduled_start for task in run_a.tasks],
			[task.scheduled_start for task in run_b.tasks]
		)


class TestScoringStrategies(unittest.TestCase):

	def test_thread_pool_keeps_input_order(self):
		strategy = ThreadPoolScoringStrategy(batch_size=3)

		self.assertEqual(strategy.map(lambda value: value * 2, range(10)), [value * 2 for value in range(10)])
		self.assertEqual(strategy.map(lambda value: value, []), [])

	def test_invalid_batch_size(self):
		with self.assertRaises(ValueError):
			ThreadPoolScoringStrategy(batch_size=0)
