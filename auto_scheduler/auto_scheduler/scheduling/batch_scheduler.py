"""
Batch Scheduler

Schedules a list of tasks for one user in a single run:

1. Scoring pass (read-only, optionally concurrent): probe every non-locked
   task against the window sequence and record its best achievable score.
2. Commitment pass (strictly sequential): highest score first, commit the
   best slot, persist it, then register it as a conflict so later tasks
   avoid it.
3. Re-read every requested task (locked ones included) and return them.

Run-level failures (invalid settings, calendar fetch) abort before anything
is written. Per-task failures are logged and the run continues.
"""

import logging
import time as timer
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import pytz

from .availability import PrefetchedAvailability
from .conflicts import ConflictAccumulator
from .exceptions import InvalidSettingsError, PersistenceError
from .models import AutoScheduleSettings, SchedulableTask, SchedulingRunResult, TimeSlot
from .persistence.base import TaskRepository
from .scoring import SlotScorer
from .settings import validate_settings
from .slot_finder import SLOT_INCREMENT_MINUTES, SlotFinder

DEFAULT_WINDOWS = (7,)  # días
DEFAULT_BATCH_SIZE = 8


class SequentialScoringStrategy:
	"""Runs scoring probes one after another in the calling thread."""

	def map(self, fn: Callable, items: Sequence) -> List:
		return [fn(item) for item in items]


class ThreadPoolScoringStrategy:
	"""
	Runs scoring probes concurrently in fixed-size batches.

	Probes inside one batch run in parallel; batches run one after another.
	Results keep input order. Probes must be read-only and must not raise.
	"""

	def __init__(self, batch_size: int = DEFAULT_BATCH_SIZE, max_workers: Optional[int] = None):
		if batch_size <= 0:
			raise ValueError("batch_size must be positive")
		self.batch_size = batch_size
		self.max_workers = max_workers or batch_size

	def map(self, fn: Callable, items: Sequence) -> List:
		items = list(items)
		results = []
		if not items:
			return results

		with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
			for i in range(0, len(items), self.batch_size):
				batch = items[i:i + self.batch_size]
				results.extend(executor.map(fn, batch))
		return results


@dataclass
class ProbeResult:
	task: SchedulableTask
	score: float = 0.0
	error: Optional[Exception] = None


def utc_now() -> datetime:
	return datetime.now(pytz.utc)


class BatchScheduler:
	"""Two-phase scheduler for one user's batch of tasks."""

	def __init__(
		self,
		availability,
		repository: TaskRepository,
		settings: AutoScheduleSettings,
		windows: Sequence[int] = DEFAULT_WINDOWS,
		scoring_strategy=None,
		scorer: Optional[SlotScorer] = None,
		increment_minutes: int = SLOT_INCREMENT_MINUTES,
		clock: Optional[Callable[[], datetime]] = None,
		logger: Optional[logging.Logger] = None
	):
		self.availability = availability
		self.repository = repository
		self.settings = settings
		self.windows = tuple(windows)
		self.scoring_strategy = scoring_strategy or SequentialScoringStrategy()
		self.scorer = scorer
		self.increment_minutes = increment_minutes
		self.clock = clock or utc_now
		self.logger = logger or logging.getLogger(__name__)
		self._metrics: List[Tuple[str, float]] = []

	def schedule_multiple_tasks(
		self,
		tasks: Sequence[SchedulableTask],
		user_id: str
	) -> List[SchedulableTask]:
		"""Schedule the batch and return the re-read snapshot of every task."""
		return self.run(tasks, user_id).tasks

	def run(
		self,
		tasks: Sequence[SchedulableTask],
		user_id: str,
		locked_tasks: Sequence[SchedulableTask] = ()
	) -> SchedulingRunResult:
		"""
		Ejecuta un run completo y retorna el resumen.

		Args:
			tasks: tareas del run (las bloqueadas se reportan en `locked`)
			user_id: dueño de las tareas
			locked_tasks: otras tareas bloqueadas del usuario, fuera del run;
				solo ocupan su slot, no aparecen en el resultado

		Raises:
			InvalidSettingsError: configuración inválida (antes de cualquier fetch)
			AvailabilityFetchError: calendarios no disponibles (antes de cualquier commit)
		"""
		self._metrics = []
		self._validate()

		with self._timed("run"):
			now = self.clock()
			result = SchedulingRunResult()

			conflicts = ConflictAccumulator(self.settings.buffer_minutes)
			for task in locked_tasks:
				if task.schedule_locked and task.has_schedule and task.scheduled_end > task.scheduled_start:
					conflicts.add_scheduled_task_conflict(task)

			to_schedule = []
			for task in tasks:
				if task.schedule_locked:
					result.locked.append(task.id)
					# El slot bloqueado se respeta como ocupado
					if task.has_schedule and task.scheduled_end > task.scheduled_start:
						conflicts.add_scheduled_task_conflict(task)
				else:
					to_schedule.append(task)

			self.logger.info(
				f"Auto-schedule run for {user_id}: {len(to_schedule)} task(s) to schedule, "
				f"{len(result.locked)} locked"
			)

			with self._timed("fetch_availability"):
				prefetched = PrefetchedAvailability.fetch(
					self.availability,
					user_id,
					now,
					now + timedelta(days=max(self.windows))
				)
			slot_finder = SlotFinder(
				prefetched,
				self.settings,
				scorer=self.scorer,
				increment_minutes=self.increment_minutes,
				logger=self.logger,
			)

			with self._timed("scoring_pass"):
				probes = self._scoring_pass(slot_finder, to_schedule, user_id, conflicts, now)

			with self._timed("sort"):
				ordered = []
				for probe in probes:
					if probe.error is not None:
						result.failed.append(probe.task.id)
					else:
						ordered.append(probe)
				# sort estable: empates mantienen el orden de entrada
				ordered.sort(key=lambda probe: -probe.score)

			with self._timed("commitment_pass"):
				for probe in ordered:
					self._commit_task(probe.task, slot_finder, conflicts, user_id, now, result)

			with self._timed("fetch_final_tasks"):
				result.tasks = self._reload(tasks, user_id)

		self.logger.info(
			f"Auto-schedule run for {user_id} finished: {len(result.scheduled)} scheduled, "
			f"{len(result.pending)} pending, {len(result.locked)} locked"
		)
		self._log_metrics(user_id)
		return result

	# ===== PHASES =====

	def _scoring_pass(
		self,
		slot_finder: SlotFinder,
		tasks: List[SchedulableTask],
		user_id: str,
		conflicts: ConflictAccumulator,
		now: datetime
	) -> List[ProbeResult]:
		"""
		Estima el mejor score de cada tarea sin comprometer nada.

		Todas las sondas leen la misma copia de los conflictos.
		"""
		snapshot = conflicts.snapshot()
		snapshot.intervals()

		def probe(task: SchedulableTask) -> ProbeResult:
			try:
				slot, _ = self._find_slot(task, slot_finder, snapshot, user_id, now)
				return ProbeResult(task=task, score=slot.score if slot else 0.0)
			except Exception as e:
				return ProbeResult(task=task, error=e)

		results = self.scoring_strategy.map(probe, tasks)

		for probe_result in results:
			if probe_result.error is not None:
				self.logger.error(
					f"Scoring failed for task {probe_result.task.id}: {probe_result.error}",
					exc_info=probe_result.error
				)
		return results

	def _commit_task(
		self,
		task: SchedulableTask,
		slot_finder: SlotFinder,
		conflicts: ConflictAccumulator,
		user_id: str,
		now: datetime,
		result: SchedulingRunResult
	) -> None:
		try:
			slot, window_days = self._find_slot(task, slot_finder, conflicts, user_id, now)
		except Exception as e:
			self.logger.error(f"Slot search failed for task {task.id}: {e}", exc_info=e)
			result.failed.append(task.id)
			return

		if slot is None:
			windows_label = ", ".join(f"{days}d" for days in self.windows)
			self.logger.info(
				f"No slot found for task {task.id} ({task.duration} min) "
				f"in windows: {windows_label}"
			)
			result.unscheduled.append(task.id)
			return

		# Persistir y luego registrar: un fallo al persistir no registra nada
		try:
			self.repository.update_task_schedule(task.id, user_id, slot, now)
		except Exception as e:
			self.logger.error(
				f"Could not save schedule for task {task.id}: {e}", exc_info=e
			)
			result.failed.append(task.id)
			return

		task.scheduled_start = slot.start
		task.scheduled_end = slot.end
		task.is_auto_scheduled = True
		task.schedule_score = slot.score
		task.last_scheduled = now
		slot_finder.add_scheduled_task_conflict(task, conflicts)

		result.scheduled.append(task.id)
		self.logger.debug(
			f"Task {task.id} scheduled {slot.start.isoformat()} - {slot.end.isoformat()} "
			f"(score {slot.score:.3f}, window {window_days}d)"
		)

	def _find_slot(
		self,
		task: SchedulableTask,
		slot_finder: SlotFinder,
		conflicts: ConflictAccumulator,
		user_id: str,
		now: datetime
	) -> Tuple[Optional[TimeSlot], Optional[int]]:
		"""First window (in order) with at least one slot wins."""
		for days in self.windows:
			slots = slot_finder.find_available_slots(
				task,
				now,
				now + timedelta(days=days),
				user_id,
				conflicts=conflicts,
				now=now,
			)
			if slots:
				return slots[0], days
			self.logger.debug(f"No available slots for task {task.id} in {days}d window")
		return None, None

	def _reload(self, tasks: Sequence[SchedulableTask], user_id: str) -> List[SchedulableTask]:
		task_ids = [task.id for task in tasks]
		try:
			return self.repository.get_tasks_by_ids(task_ids, user_id)
		except PersistenceError as e:
			self.logger.error(
				f"Could not re-read tasks for {user_id}, returning in-memory state: {e}"
			)
			return list(tasks)

	# ===== HELPERS =====

	def _validate(self) -> None:
		validate_settings(self.settings)
		if not self.windows or any(days <= 0 for days in self.windows):
			raise InvalidSettingsError(["Scheduling windows must be a non-empty list of positive day counts"])
		if list(self.windows) != sorted(self.windows):
			raise InvalidSettingsError(["Scheduling windows must be in increasing order"])

	@contextmanager
	def _timed(self, operation: str):
		started = timer.perf_counter()
		try:
			yield
		finally:
			self._metrics.append((operation, timer.perf_counter() - started))

	def _log_metrics(self, user_id: str) -> None:
		metrics: Dict[str, str] = {
			operation: f"{duration:.3f}s" for operation, duration in self._metrics
		}
		self.logger.debug(f"Auto-schedule metrics for {user_id}: {metrics}")

