"""
Scheduling Data Model

Plain data types shared by every part of the auto-scheduling engine:
- SchedulableTask: a task that can be placed on the calendar
- AutoScheduleSettings: per-user, read-only configuration for a run
- TimeSlot: a scored candidate slot (engine output, never persisted)
- BusyInterval: a range of time during which the user is unavailable

None of these types know about Frappe; the Frappe layer converts documents
into them (see persistence/frappe_tasks.py and settings.py).
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import FrozenSet, Optional, Tuple

DEFAULT_TASK_DURATION = 30  # minutos


class Priority(str, Enum):
	HIGH = "HIGH"
	MEDIUM = "MEDIUM"
	LOW = "LOW"
	NONE = "NONE"


class EnergyLevel(str, Enum):
	HIGH = "HIGH"
	MEDIUM = "MEDIUM"
	LOW = "LOW"


class TimePreference(str, Enum):
	MORNING = "MORNING"
	AFTERNOON = "AFTERNOON"
	EVENING = "EVENING"
	ANYTIME = "ANYTIME"


def coerce_enum(enum_cls, value):
	"""
	Convierte un valor crudo (str, enum o None) al enum indicado.

	Acepta mayúsculas o minúsculas ("high", "High", "HIGH").
	Valores vacíos se devuelven como None.

	Raises:
		ValueError: si el valor no pertenece al enum
	"""
	if value is None or value == "":
		return None
	if isinstance(value, enum_cls):
		return value
	try:
		return enum_cls(str(value).strip().upper())
	except ValueError:
		raise ValueError(f"Invalid {enum_cls.__name__}: {value!r}")


@dataclass
class SchedulableTask:
	"""
	A task eligible for auto-scheduling.

	`scheduled_start`, `scheduled_end`, `is_auto_scheduled`, `schedule_score`
	and `last_scheduled` are the only fields the engine ever writes.
	"""

	id: str
	title: str = ""
	duration_minutes: Optional[int] = None
	priority: Optional[Priority] = None
	energy_level: Optional[EnergyLevel] = None
	preferred_time: Optional[TimePreference] = None
	due_date: Optional[datetime] = None
	project_id: Optional[str] = None
	schedule_locked: bool = False
	status: Optional[str] = None
	start_date: Optional[datetime] = None
	postponed_until: Optional[datetime] = None
	scheduled_start: Optional[datetime] = None
	scheduled_end: Optional[datetime] = None
	is_auto_scheduled: bool = False
	schedule_score: Optional[float] = None
	last_scheduled: Optional[datetime] = None

	def __post_init__(self):
		self.priority = coerce_enum(Priority, self.priority)
		self.energy_level = coerce_enum(EnergyLevel, self.energy_level)
		self.preferred_time = coerce_enum(TimePreference, self.preferred_time)

	@property
	def duration(self) -> int:
		"""Duración efectiva en minutos (fallback DEFAULT_TASK_DURATION)."""
		if not self.duration_minutes or self.duration_minutes <= 0:
			return DEFAULT_TASK_DURATION
		return int(self.duration_minutes)

	@property
	def has_schedule(self) -> bool:
		return self.scheduled_start is not None and self.scheduled_end is not None

	@property
	def earliest_start(self) -> Optional[datetime]:
		"""Lower bound for placement from start_date / postponed_until."""
		bounds = [value for value in (self.start_date, self.postponed_until) if value]
		return max(bounds) if bounds else None


@dataclass(frozen=True)
class AutoScheduleSettings:
	"""
	Per-user auto-schedule configuration.

	Weekday indices follow 0=Sunday..6=Saturday. Hours are integers in the
	user's local time zone (`timezone`, an IANA name).
	"""

	work_days: FrozenSet[int] = frozenset({1, 2, 3, 4, 5})
	work_hour_start: int = 9
	work_hour_end: int = 17
	selected_calendars: Tuple[str, ...] = ()
	buffer_minutes: int = 15
	high_energy_start: Optional[int] = None
	high_energy_end: Optional[int] = None
	medium_energy_start: Optional[int] = None
	medium_energy_end: Optional[int] = None
	low_energy_start: Optional[int] = None
	low_energy_end: Optional[int] = None
	group_by_project: bool = False
	timezone: str = "UTC"

	def energy_range(self, level: Optional[EnergyLevel]) -> Optional[Tuple[int, int]]:
		"""Return the configured (start, end) hour range for an energy tier, if any."""
		if level is None:
			return None

		bounds = {
			EnergyLevel.HIGH: (self.high_energy_start, self.high_energy_end),
			EnergyLevel.MEDIUM: (self.medium_energy_start, self.medium_energy_end),
			EnergyLevel.LOW: (self.low_energy_start, self.low_energy_end),
		}[level]

		if bounds[0] is None or bounds[1] is None:
			return None
		return bounds


@dataclass(frozen=True)
class BusyInterval:
	"""A half-open [start, end) range during which the user is unavailable."""

	start: datetime
	end: datetime

	def overlaps(self, start: datetime, end: datetime) -> bool:
		return self.start < end and start < self.end


@dataclass(frozen=True)
class TimeSlot:
	"""A candidate slot. `score` is only comparable within one run."""

	start: datetime
	end: datetime
	score: float = 0.0

	def as_dict(self) -> dict:
		return {
			"start": self.start.isoformat(),
			"end": self.end.isoformat(),
			"score": round(self.score, 4),
		}


@dataclass
class SchedulingRunResult:
	"""
	Outcome of one scheduling run.

	`tasks` is the re-read snapshot of every requested task (locked ones included).
	The id lists let callers report how many tasks were scheduled vs left pending.
	"""

	tasks: list = field(default_factory=list)
	scheduled: list = field(default_factory=list)
	unscheduled: list = field(default_factory=list)
	failed: list = field(default_factory=list)
	locked: list = field(default_factory=list)

	@property
	def pending(self) -> list:
		return self.unscheduled + self.failed

	def summary(self) -> dict:
		return {
			"scheduled": len(self.scheduled),
			"pending": len(self.pending),
			"failed": len(self.failed),
			"locked": len(self.locked),
		}
