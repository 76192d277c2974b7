"""
Interval Algebra

Helpers over half-open [start, end) BusyInterval ranges:
- merge overlapping/adjacent intervals into a start-ordered list
- subtract busy blocks from a free window
- expand an interval by a buffer
"""

from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from .models import BusyInterval


def merge_intervals(intervals: Iterable[BusyInterval]) -> List[BusyInterval]:
	"""
	Une intervalos adyacentes o solapados.

	Args:
		intervals: intervalos en cualquier orden (se ignoran los vacíos)

	Returns:
		list: intervalos disjuntos, ordenados por start
	"""
	ordered = sorted(
		(interval for interval in intervals if interval.end > interval.start),
		key=lambda interval: (interval.start, interval.end)
	)
	if not ordered:
		return []

	merged = [ordered[0]]

	for current in ordered[1:]:
		last_merged = merged[-1]

		# Solapado o adyacente: extender el último
		if current.start <= last_merged.end:
			if current.end > last_merged.end:
				merged[-1] = BusyInterval(last_merged.start, current.end)
		else:
			merged.append(current)

	return merged


def interval_subtract(interval: BusyInterval, block: BusyInterval) -> List[BusyInterval]:
	"""
	Resta un bloqueo de un intervalo.

	Returns:
		list: 0, 1 o 2 intervalos resultantes
	"""
	# Sin solapamiento
	if block.end <= interval.start or block.start >= interval.end:
		return [interval]

	pieces = []
	if block.start > interval.start:
		pieces.append(BusyInterval(interval.start, block.start))
	if block.end < interval.end:
		pieces.append(BusyInterval(block.end, interval.end))
	return pieces


def free_windows(window: BusyInterval, busy: Iterable[BusyInterval]) -> List[BusyInterval]:
	"""Return the parts of `window` not covered by any busy interval, in order."""
	remaining = [window]
	for block in merge_intervals(busy):
		if block.start >= window.end:
			break
		if block.end <= window.start:
			continue
		new_remaining = []
		for interval in remaining:
			new_remaining.extend(interval_subtract(interval, block))
		remaining = new_remaining
	return remaining


def expand_interval(interval: BusyInterval, minutes: int) -> BusyInterval:
	"""Grow an interval by `minutes` on both sides."""
	if not minutes:
		return interval
	pad = timedelta(minutes=minutes)
	return BusyInterval(interval.start - pad, interval.end + pad)


def clip_interval(
	interval: BusyInterval,
	start: Optional[datetime] = None,
	end: Optional[datetime] = None
) -> Optional[BusyInterval]:
	"""Intersect an interval with [start, end]; None when nothing remains."""
	new_start = max(interval.start, start) if start else interval.start
	new_end = min(interval.end, end) if end else interval.end
	if new_end <= new_start:
		return None
	return BusyInterval(new_start, new_end)
