"""
Auto Schedule Settings

Parsing and validation of per-user auto-schedule configuration.

Settings are validated once, before a run starts: a bad configuration
(empty work days, inverted working hours, ...) would otherwise silently
produce zero usable slots for every task.
"""

import json
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple, Union

import pytz

from .exceptions import InvalidSettingsError
from .models import AutoScheduleSettings

ENERGY_FIELDS = (
	("high_energy_start", "high_energy_end"),
	("medium_energy_start", "medium_energy_end"),
	("low_energy_start", "low_energy_end"),
)


def parse_id_list(value: Union[str, Iterable, None]) -> List[str]:
	"""
	Convierte un campo JSON ("[\"a\", \"b\"]"), CSV ("a, b") o lista a list[str].

	Returns:
		list: ids sin duplicados, en el orden original
	"""
	if value is None or value == "":
		return []

	if isinstance(value, str):
		text = value.strip()
		if text.startswith("["):
			try:
				items = json.loads(text)
			except ValueError:
				raise InvalidSettingsError([f"Invalid JSON list: {text[:100]}"])
		else:
			items = text.split(",")
	else:
		items = list(value)

	result = []
	for item in items:
		item = str(item).strip()
		if item and item not in result:
			result.append(item)
	return result


def parse_work_days(value: Union[str, Iterable, None]) -> FrozenSet[int]:
	"""Parse work days (0=Sunday..6=Saturday) from JSON/CSV/iterable."""
	try:
		return frozenset(int(day) for day in parse_id_list(value))
	except ValueError:
		raise InvalidSettingsError([f"Invalid work days: {value!r}"])


def _optional_int(value: Any) -> Optional[int]:
	if value is None or value == "":
		return None
	return int(value)


def settings_from_dict(data: Dict[str, Any]) -> AutoScheduleSettings:
	"""
	Construye AutoScheduleSettings desde un dict (p.ej. doc.as_dict()).

	Campos ausentes toman los valores por defecto del dataclass.
	"""
	defaults = AutoScheduleSettings()
	kwargs = {}

	if data.get("work_days") not in (None, ""):
		kwargs["work_days"] = parse_work_days(data.get("work_days"))
	if data.get("selected_calendars") not in (None, ""):
		kwargs["selected_calendars"] = tuple(parse_id_list(data.get("selected_calendars")))

	for fieldname in ("work_hour_start", "work_hour_end", "buffer_minutes"):
		value = _optional_int(data.get(fieldname))
		kwargs[fieldname] = getattr(defaults, fieldname) if value is None else value

	for start_field, end_field in ENERGY_FIELDS:
		kwargs[start_field] = _optional_int(data.get(start_field))
		kwargs[end_field] = _optional_int(data.get(end_field))

	kwargs["group_by_project"] = bool(int(data.get("group_by_project") or 0))
	kwargs["timezone"] = data.get("timezone") or defaults.timezone

	return AutoScheduleSettings(**kwargs)


def _check_hour_range(label: str, start: Optional[int], end: Optional[int]) -> List[str]:
	if start is None and end is None:
		return []
	if start is None or end is None:
		return [f"{label}: start and end must both be set or both be empty"]

	problems = []
	if not (0 <= start <= 24 and 0 <= end <= 24):
		problems.append(f"{label}: hours must be between 0 and 24")
	if start >= end:
		problems.append(f"{label}: start ({start}) must be before end ({end})")
	return problems


def collect_settings_problems(settings: AutoScheduleSettings) -> List[str]:
	"""Return every configuration problem found (empty list when valid)."""
	problems = []

	if not settings.work_days:
		problems.append("At least one work day is required")
	invalid_days = sorted(day for day in settings.work_days if not 0 <= day <= 6)
	if invalid_days:
		problems.append(f"Invalid work days {invalid_days}: use 0 (Sunday) to 6 (Saturday)")

	problems.extend(
		_check_hour_range("Working hours", settings.work_hour_start, settings.work_hour_end)
	)

	if settings.buffer_minutes is None or settings.buffer_minutes < 0:
		problems.append("Buffer minutes must be zero or positive")

	for start_field, end_field in ENERGY_FIELDS:
		label = start_field.replace("_start", "").replace("_", " ").capitalize()
		problems.extend(
			_check_hour_range(label, getattr(settings, start_field), getattr(settings, end_field))
		)

	try:
		pytz.timezone(settings.timezone)
	except pytz.UnknownTimeZoneError:
		problems.append(f"Unknown time zone '{settings.timezone}'")

	return problems


def validate_settings(settings: AutoScheduleSettings) -> None:
	"""
	Valida la configuración antes de un run.

	Raises:
		InvalidSettingsError: con la lista completa de problemas
	"""
	problems = collect_settings_problems(settings)
	if problems:
		raise InvalidSettingsError(problems)


def working_window_thirds(settings: AutoScheduleSettings) -> Tuple[float, float]:
	"""Hour boundaries splitting the working day into morning/afternoon/evening."""
	span = settings.work_hour_end - settings.work_hour_start
	first = settings.work_hour_start + span / 3.0
	second = settings.work_hour_start + 2 * span / 3.0
	return first, second
