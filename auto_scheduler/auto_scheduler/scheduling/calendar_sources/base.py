"""
Base Calendar Source

Defines the interface that every calendar source must implement.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Sequence

from ..models import BusyInterval


class CalendarSource(ABC):
	"""
	Interfaz base para fuentes de tiempo ocupado.

	Una fuente sólo lee; nunca escribe eventos en calendarios externos.
	"""

	# True si get_busy_intervals puede ejecutarse en otro thread
	# (necesario para aplicar el timeout del provider).
	thread_safe = False

	@abstractmethod
	def get_busy_intervals(
		self,
		user_id: str,
		calendar_ids: Sequence[str],
		range_start: datetime,
		range_end: datetime
	) -> Dict[str, List[BusyInterval]]:
		"""
		Obtiene intervalos ocupados por calendario.

		Args:
			user_id: dueño de los calendarios
			calendar_ids: calendarios a consultar (sólo los seleccionados)
			range_start: inicio del rango (tz-aware)
			range_end: fin del rango (tz-aware)

		Returns:
			dict: {calendar_id: [BusyInterval, ...]}

		Raises:
			CalendarSourceError: si algún calendario no puede leerse
		"""
		pass
