"""
Run-scoped Conflict Accumulator

Holds the "synthetic" busy intervals of one scheduling run: tasks committed
earlier in the run and tasks whose schedule is locked. One accumulator is
created per run and passed explicitly to every SlotFinder call, so runs for
different users never share it.

Every entry is stored already expanded by the run's buffer. Slot searches
test raw candidates against these entries, so the buffer is applied once.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from .intervals import merge_intervals
from .models import BusyInterval, SchedulableTask


@dataclass(frozen=True)
class ConflictEntry:
	task_id: Optional[str]
	project_id: Optional[str]
	start: datetime
	end: datetime
	buffered: BusyInterval


class ConflictAccumulator:
	"""Mutable set of synthetic conflicts for one run."""

	def __init__(self, buffer_minutes: int = 0):
		self.buffer_minutes = buffer_minutes or 0
		self._entries: List[ConflictEntry] = []
		self._merged: Optional[List[BusyInterval]] = []

	def add_interval(
		self,
		start: datetime,
		end: datetime,
		task_id: Optional[str] = None,
		project_id: Optional[str] = None
	) -> ConflictEntry:
		"""Register [start, end) as busy for the rest of the run."""
		if end <= start:
			raise ValueError(f"Conflict interval must end after it starts ({start} >= {end})")

		pad = timedelta(minutes=self.buffer_minutes)
		entry = ConflictEntry(
			task_id=task_id,
			project_id=project_id,
			start=start,
			end=end,
			buffered=BusyInterval(start - pad, end + pad),
		)
		self._entries.append(entry)
		self._merged = None
		return entry

	def add_scheduled_task_conflict(self, task: SchedulableTask) -> ConflictEntry:
		"""
		Registra el slot de una tarea recién comprometida (o bloqueada).

		Raises:
			ValueError: si la tarea no tiene scheduled_start/scheduled_end
		"""
		if not task.has_schedule:
			raise ValueError(f"Task {task.id} has no scheduled interval to register")
		return self.add_interval(
			task.scheduled_start,
			task.scheduled_end,
			task_id=task.id,
			project_id=task.project_id,
		)

	def intervals(self) -> List[BusyInterval]:
		"""Buffered conflicts, merged and ordered by start."""
		if self._merged is None:
			self._merged = merge_intervals(entry.buffered for entry in self._entries)
		return list(self._merged)

	def project_intervals(self, project_id: Optional[str]) -> List[BusyInterval]:
		"""Raw (unbuffered) intervals of conflicts belonging to one project."""
		if not project_id:
			return []
		return [
			BusyInterval(entry.start, entry.end)
			for entry in self._entries
			if entry.project_id == project_id
		]

	def task_ids(self) -> List[str]:
		return [entry.task_id for entry in self._entries if entry.task_id]

	def snapshot(self) -> "ConflictAccumulator":
		"""Independent copy; probes on the copy never affect this run."""
		clone = ConflictAccumulator(self.buffer_minutes)
		clone._entries = list(self._entries)
		clone._merged = None
		return clone

	def entries(self) -> Tuple[ConflictEntry, ...]:
		return tuple(self._entries)

	def __len__(self) -> int:
		return len(self._entries)
