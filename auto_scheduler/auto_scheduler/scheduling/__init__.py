"""
Auto-Scheduling Engine

This package places unscheduled tasks on the user's calendar:
- Data model (models.py) and errors (exceptions.py)
- Interval algebra (intervals.py) and settings validation (settings.py)
- Busy time from selected calendars (availability.py, calendar_sources/)
- Run-scoped synthetic conflicts (conflicts.py)
- Slot scoring (scoring.py) and slot search (slot_finder.py)
- Two-phase batch scheduling (batch_scheduler.py)
- Task persistence (persistence/)
- Frappe entry points and background jobs (tasks.py)
"""
