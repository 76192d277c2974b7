"""
Task Persistence Module

Stores the result of a scheduling commit:
- Base repository interface (base.py)
- Frappe implementation over the Planner Task DocType (frappe_tasks.py)
"""
