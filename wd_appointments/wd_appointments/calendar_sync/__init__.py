"""
Calendar Sync Module

Provides connectors for external calendars:
- Base connector interface (base.py)
- Factory for getting the right connector (factory.py)
- Google Calendar implementation (google_calendar.py)
"""
