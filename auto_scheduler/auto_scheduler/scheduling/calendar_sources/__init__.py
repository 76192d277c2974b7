"""
Calendar Sources Module

Adapters that read busy time from the user's calendar feeds:
- Base source interface (base.py)
- Frappe implementation over synced Calendar Feed Events (frappe_feeds.py)
"""
