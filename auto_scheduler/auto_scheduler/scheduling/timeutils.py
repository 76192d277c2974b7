"""
Timezone helpers

Frappe stores naive datetimes in the system time zone; the engine works with
timezone-aware datetimes only. These helpers convert at the boundary.
"""

from datetime import date, datetime, time
from typing import Optional, Union

import pytz


def _get_tz(tz: Union[str, pytz.BaseTzInfo]) -> pytz.BaseTzInfo:
	return pytz.timezone(tz) if isinstance(tz, str) else tz


def to_aware(value: Optional[Union[datetime, date]], tz: Union[str, pytz.BaseTzInfo]) -> Optional[datetime]:
	"""
	Localiza un datetime naive en `tz` (los aware se dejan como están).

	Un date se interpreta como medianoche de ese día.
	"""
	if value is None:
		return None
	if not isinstance(value, datetime):
		value = datetime.combine(value, time(0, 0))
	if value.tzinfo is not None:
		return value
	return _get_tz(tz).localize(value)


def to_naive(value: Optional[datetime], tz: Union[str, pytz.BaseTzInfo]) -> Optional[datetime]:
	"""Convert an aware datetime to naive wall-clock time in `tz`."""
	if value is None:
		return None
	if value.tzinfo is None:
		return value
	return value.astimezone(_get_tz(tz)).replace(tzinfo=None)
