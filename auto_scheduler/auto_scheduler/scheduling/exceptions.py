"""
Scheduling Errors

Run-level errors (AvailabilityFetchError, InvalidSettingsError) abort a run
before anything is written. Per-task errors (PersistenceError) are caught by
the BatchScheduler and only affect the task that raised them.
"""

from typing import List, Optional


class AutoSchedulerError(Exception):
	"""Base class for every error raised by the scheduling engine."""
	pass


class AvailabilityFetchError(AutoSchedulerError):
	"""Calendar busy-time could not be retrieved for the user/range."""

	def __init__(self, message: str, calendar_id: Optional[str] = None):
		super().__init__(message)
		self.calendar_id = calendar_id


class CalendarSourceError(AutoSchedulerError):
	"""Raised by a CalendarSource when one feed cannot be read."""
	pass


class InvalidSettingsError(AutoSchedulerError):
	"""Auto Schedule Settings would produce no usable slot."""

	def __init__(self, problems: List[str]):
		super().__init__("; ".join(problems))
		self.problems = list(problems)


class PersistenceError(AutoSchedulerError):
	"""A task commit could not be written."""

	def __init__(self, message: str, task_id: Optional[str] = None):
		super().__init__(message)
		self.task_id = task_id


class SchedulingRunInProgress(AutoSchedulerError):
	"""Another scheduling run already holds the lock for this user."""

	def __init__(self, user_id: str):
		super().__init__(f"A scheduling run is already in progress for {user_id}")
		self.user_id = user_id
