"""
WD Appointments API

Structure:
    api/
    ├── __init__.py              # This file
    ├── booking_api.py           # Whitelisted booking endpoints
    └── security.py              # Rate limiting, honeypot, input validation

Usage:
    frappe.call("wd_appointments.api.booking_api.get_available_slots", ...)
"""
