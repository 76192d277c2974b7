"""
Scheduling Entry Points

Frappe-facing glue around the engine:
- run_auto_schedule: schedules a user's tasks synchronously
- run_auto_schedule_job: background-job wrapper (enqueued by the API)
- preview_task_slots: ranked candidates for one task, nothing is written
- reschedule_missed_tasks: daily cron, frees missed auto-scheduled slots

Site tuning lives in site_config.json (auto_scheduler_windows,
auto_scheduler_batch_size, auto_scheduler_fetch_timeout,
auto_scheduler_parallel_scoring).
"""

from contextlib import contextmanager
from datetime import datetime
from typing import Dict, List, Optional, Sequence

import frappe
from frappe import _
from frappe.utils import cint, get_system_timezone

from .availability import DEFAULT_FETCH_TIMEOUT, CalendarAvailabilityProvider
from .batch_scheduler import (
	DEFAULT_BATCH_SIZE,
	DEFAULT_WINDOWS,
	BatchScheduler,
	SequentialScoringStrategy,
	ThreadPoolScoringStrategy,
	utc_now,
)
from .calendar_sources.frappe_feeds import FrappeFeedSource
from .conflicts import ConflictAccumulator
from .exceptions import AutoSchedulerError, InvalidSettingsError, SchedulingRunInProgress
from .models import AutoScheduleSettings, SchedulableTask, SchedulingRunResult, TimeSlot
from .persistence.frappe_tasks import FrappeTaskRepository
from .settings import parse_id_list, settings_from_dict, validate_settings
from .slot_finder import SlotFinder
from .timeutils import to_aware

SETTINGS_DOCTYPE = "Auto Schedule Settings"
RUN_LOCK_KEY = "auto_scheduler:run_lock:{user}"
RUN_LOCK_TTL = 600  # segundos
RUN_JOB_METHOD = "auto_scheduler.auto_scheduler.scheduling.tasks.run_auto_schedule_job"


def get_logger():
	return frappe.logger("auto_scheduler")


# ===================
# Configuration
# ===================

def load_settings(user: str) -> AutoScheduleSettings:
	"""
	Lee Auto Schedule Settings del usuario.

	Sin documento se usan los valores por defecto. La zona horaria cae en la
	del usuario (User.time_zone) y luego en la del sistema.
	"""
	data = {}
	name = frappe.db.get_value(SETTINGS_DOCTYPE, {"user": user}, "name")
	if name:
		data = frappe.get_doc(SETTINGS_DOCTYPE, name).as_dict()

	if not data.get("timezone"):
		data["timezone"] = (
			frappe.db.get_value("User", user, "time_zone") or get_system_timezone()
		)

	return settings_from_dict(data)


def get_windows() -> tuple:
	"""Scheduling windows (days) from site config, default (7,)."""
	configured = frappe.conf.get("auto_scheduler_windows")
	if not configured:
		return DEFAULT_WINDOWS
	if isinstance(configured, int):
		configured = [configured]
	try:
		return tuple(int(days) for days in parse_id_list(configured))
	except ValueError:
		raise InvalidSettingsError([f"Invalid auto_scheduler_windows: {configured!r}"])


def get_scoring_strategy():
	if not cint(frappe.conf.get("auto_scheduler_parallel_scoring", 1)):
		return SequentialScoringStrategy()
	batch_size = cint(frappe.conf.get("auto_scheduler_batch_size")) or DEFAULT_BATCH_SIZE
	return ThreadPoolScoringStrategy(batch_size=batch_size)


def build_provider(settings: AutoScheduleSettings) -> CalendarAvailabilityProvider:
	timeout = cint(frappe.conf.get("auto_scheduler_fetch_timeout")) or DEFAULT_FETCH_TIMEOUT
	return CalendarAvailabilityProvider(
		FrappeFeedSource(user_timezone=settings.timezone, statement_timeout=timeout),
		settings,
		timeout=timeout,
		logger=get_logger()
	)


def build_scheduler(
	settings: AutoScheduleSettings,
	repository: Optional[FrappeTaskRepository] = None
) -> BatchScheduler:
	return BatchScheduler(
		build_provider(settings),
		repository or FrappeTaskRepository(),
		settings,
		windows=get_windows(),
		scoring_strategy=get_scoring_strategy(),
		logger=get_logger()
	)


# ===================
# Run lock
# ===================

@contextmanager
def user_run_lock(user: str):
	"""
	Un solo run activo por usuario.

	El lock vive en el cache (Redis) con TTL, así un worker caído no lo deja tomado.
	SET NX toma el lock en una sola operación.

	Raises:
		SchedulingRunInProgress: si otro run tiene el lock
	"""
	cache_key = RUN_LOCK_KEY.format(user=user)
	acquired = frappe.cache.set(frappe.cache.make_key(cache_key), 1, nx=True, ex=RUN_LOCK_TTL)
	if not acquired:
		raise SchedulingRunInProgress(user)

	try:
		yield
	finally:
		frappe.cache.delete_value(cache_key)


# ===================
# Runs
# ===================

def run_auto_schedule(user: str, task_names: Optional[Sequence[str]] = None) -> SchedulingRunResult:
	"""
	Agenda las tareas del usuario.

	Args:
		user: dueño de las tareas
		task_names: tareas a agendar; None = todas las no completadas

	Returns:
		SchedulingRunResult

	Raises:
		SchedulingRunInProgress, InvalidSettingsError, AvailabilityFetchError
	"""
	settings = load_settings(user)
	repository = FrappeTaskRepository()
	scheduler = build_scheduler(settings, repository)

	with user_run_lock(user):
		other_locked = []
		if task_names is None:
			tasks = repository.get_open_tasks(user)
		else:
			tasks = repository.get_tasks_by_ids(list(task_names), user)
			if tasks:
				other_locked = get_locked_tasks(repository, user, exclude=[task.id for task in tasks])

		if not tasks:
			get_logger().info(f"Auto-schedule run for {user}: nothing to schedule")
			return SchedulingRunResult()

		return scheduler.run(tasks, user, locked_tasks=other_locked)


def get_locked_tasks(
	repository: FrappeTaskRepository,
	user: str,
	exclude: Sequence[str] = ()
) -> List[SchedulableTask]:
	"""Tareas abiertas bloqueadas del usuario con slot válido, salvo `exclude`."""
	excluded = set(exclude)
	return [
		task for task in repository.get_open_tasks(user)
		if task.id not in excluded
		and task.schedule_locked
		and task.has_schedule
		and task.scheduled_end > task.scheduled_start
	]


def run_auto_schedule_job(user: str, task_names: Optional[List[str]] = None) -> Optional[Dict]:
	"""
	Wrapper para frappe.enqueue: los errores de run se registran en Error Log.

	Returns:
		dict: resumen del run, o None si no se ejecutó
	"""
	try:
		result = run_auto_schedule(user, task_names)
	except SchedulingRunInProgress as e:
		get_logger().info(str(e))
		return None
	except AutoSchedulerError as e:
		frappe.log_error(
			title=_("Auto-schedule run failed"),
			message=f"User: {user}\nError: {str(e)}"
		)
		return None

	return result.summary()


def enqueue_auto_schedule(user: str, task_names: Optional[List[str]] = None) -> None:
	frappe.enqueue(
		RUN_JOB_METHOD,
		queue="long",
		job_id=f"auto_schedule:{user}",
		deduplicate=True,
		user=user,
		task_names=task_names
	)


def preview_task_slots(
	user: str,
	task_name: str,
	range_start: datetime,
	range_end: datetime,
	limit: int = 10
) -> List[TimeSlot]:
	"""
	Slots candidatos para una tarea, sin comprometer nada.

	Los slots de tareas bloqueadas del usuario se respetan como ocupados.
	Fechas naive se interpretan en la zona horaria del usuario.

	Raises:
		frappe.DoesNotExistError: si la tarea no existe o no es del usuario
		InvalidSettingsError, AvailabilityFetchError
	"""
	settings = load_settings(user)
	validate_settings(settings)
	range_start = to_aware(range_start, settings.timezone)
	range_end = to_aware(range_end, settings.timezone)

	repository = FrappeTaskRepository()
	found = repository.get_tasks_by_ids([task_name], user)
	if not found:
		raise frappe.DoesNotExistError(_("Task {0} not found").format(task_name))
	task = found[0]

	conflicts = ConflictAccumulator(settings.buffer_minutes)
	for other in get_locked_tasks(repository, user, exclude=[task.id]):
		conflicts.add_scheduled_task_conflict(other)

	slot_finder = SlotFinder(build_provider(settings), settings, logger=get_logger())
	slots = slot_finder.find_available_slots(
		task,
		range_start,
		range_end,
		user,
		conflicts=conflicts,
		now=utc_now()
	)
	return slots[:limit] if limit else slots


def reschedule_missed_tasks() -> int:
	"""
	Libera slots auto-agendados que ya pasaron y re-agenda a sus dueños.
	Se ejecuta diario vía scheduler_events (hooks.py).

	Algoritmo:
		1. Buscar tareas auto-agendadas, no bloqueadas, no completadas,
		   con scheduled_end < now()
		2. Por usuario: limpiar el slot y encolar un run
		3. Log cantidad de tareas liberadas

	Returns:
		int: Cantidad de tareas liberadas
	"""
	repository = FrappeTaskRepository()
	missed = repository.get_missed_auto_scheduled(utc_now())

	cleared_count = 0
	for user, task_names in missed.items():
		try:
			cleared_count += repository.clear_auto_schedule(user, task_names)
			enqueue_auto_schedule(user)
		except Exception as e:
			get_logger().error(
				f"Error al re-agendar tareas vencidas de {user}: {str(e)}"
			)
			# Continuar con los demás usuarios
			continue

	if cleared_count > 0:
		get_logger().info(
			f"reschedule_missed_tasks: {cleared_count} tareas liberadas "
			f"({len(missed)} usuarios)"
		)

	return cleared_count
