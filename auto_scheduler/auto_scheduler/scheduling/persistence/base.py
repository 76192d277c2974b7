"""
Base Task Repository

Defines the persistence operations the BatchScheduler depends on.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Sequence

from ..models import SchedulableTask, TimeSlot


class TaskRepository(ABC):
	"""
	Interfaz base para la persistencia de tareas.

	Cada escritura debe ser atómica por tarea.
	"""

	@abstractmethod
	def update_task_schedule(
		self,
		task_id: str,
		user_id: str,
		slot: TimeSlot,
		scheduled_at: datetime
	) -> SchedulableTask:
		"""
		Guarda el slot comprometido de una tarea.

		Escribe scheduled_start, scheduled_end, is_auto_scheduled=True,
		schedule_score y last_scheduled.

		Returns:
			SchedulableTask: la tarea actualizada

		Raises:
			PersistenceError: si la escritura falla
		"""
		pass

	@abstractmethod
	def get_tasks_by_ids(self, task_ids: Sequence[str], user_id: str) -> List[SchedulableTask]:
		"""
		Relee tareas por id, limitadas al usuario.

		Returns:
			list: tareas en el mismo orden que task_ids (las inexistentes se omiten)
		"""
		pass
