"""
Scheduling Services Module

This module provides core business logic for appointment booking:
- Interval arithmetic (timewindow.py)
- Booking form rule sets (rules.py)
- Slot generation (slots.py)
- Conflict filtering (conflicts.py)
- Availability queries (availability.py)
- Atomic booking and state changes (booking.py)
- Scheduled tasks (tasks.py)

Nothing here imports frappe; stores and integrations are injected.
"""
