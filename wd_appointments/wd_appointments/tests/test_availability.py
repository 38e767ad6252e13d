"""
Tests for scheduling/availability.py

Tests the composed availability query and the AvailabilityService
collaborator wiring.
"""

import unittest
from datetime import date

from wd_appointments.wd_appointments.calendar_sync.base import CalendarConnector, CalendarSyncError
from wd_appointments.wd_appointments.scheduling.availability import AvailabilityService, find_available_slots
from wd_appointments.wd_appointments.scheduling.errors import NotFoundError, ValidationError
from wd_appointments.wd_appointments.scheduling.memory import InMemoryAppointmentStore, InMemoryFormStore
from wd_appointments.wd_appointments.scheduling.models import AppointmentStatus
from wd_appointments.wd_appointments.scheduling.rules import DateRange
from wd_appointments.wd_appointments.scheduling.timewindow import TimeWindow
from wd_appointments.wd_appointments.tests.utils import MONDAY, make_appointment, make_form, make_rule_set, utc

NOW = utc(2026, 1, 1, 8)


class StaticCalendar(CalendarConnector):
	"""Returns fixed busy intervals and records the windows it was asked for."""

	def __init__(self, busy=None, error=None):
		self.busy = busy or []
		self.error = error
		self.queries = []

	def list_busy(self, window):
		self.queries.append(window)
		if self.error:
			raise self.error
		return list(self.busy)

	def create_event(self, appointment):
		return None

	def update_event(self, event_id, appointment):
		return True

	def delete_event(self, event_id):
		return True


class TestFindAvailableSlots(unittest.TestCase):

	def test_monday_scenario(self):
		"""Monday 09:00-12:00, 60 minutes, no appointments -> 09-10, 10-11, 11-12."""
		rule_set = make_rule_set(60)
		slots = find_available_slots(rule_set, DateRange(MONDAY, MONDAY), [], [], now=NOW, form_id="BF-TEST")

		self.assertEqual(
			[(s.start, s.end) for s in slots],
			[
				(utc(2026, 1, 5, 9), utc(2026, 1, 5, 10)),
				(utc(2026, 1, 5, 10), utc(2026, 1, 5, 11)),
				(utc(2026, 1, 5, 11), utc(2026, 1, 5, 12)),
			]
		)

	def test_returns_list(self):
		slots = find_available_slots(make_rule_set(60), DateRange(MONDAY, MONDAY), [], [], now=NOW)
		self.assertIsInstance(slots, list)


class TestAvailabilityService(unittest.TestCase):
	"""Tests for AvailabilityService.get_available_slots()."""

	def setUp(self):
		self.store = InMemoryAppointmentStore()

	def make_service(self, calendar=None, **form_kwargs):
		forms = InMemoryFormStore([make_form(**form_kwargs)])
		return AvailabilityService(forms, self.store, calendar=calendar, clock=lambda: NOW)

	def test_existing_appointments_are_excluded(self):
		self.store.insert(make_appointment(utc(2026, 1, 5, 10), utc(2026, 1, 5, 11)))
		self.store.insert(make_appointment(
			utc(2026, 1, 5, 11), utc(2026, 1, 5, 12), status=AppointmentStatus.CANCELLED
		))

		slots = self.make_service().get_available_slots("BF-TEST", "2026-01-05", "2026-01-05")

		self.assertEqual([s.start.hour for s in slots], [9, 11])
		self.assertTrue(all(s.form_id == "BF-TEST" for s in slots))

	def test_busy_calendar_used_when_sync_enabled(self):
		calendar = StaticCalendar([TimeWindow(utc(2026, 1, 5, 9), utc(2026, 1, 5, 10))])
		service = self.make_service(calendar=calendar, calendar_sync=True)

		slots = service.get_available_slots("BF-TEST", date(2026, 1, 5), date(2026, 1, 5))

		self.assertEqual([s.start.hour for s in slots], [10, 11])
		self.assertEqual(len(calendar.queries), 1)

	def test_busy_calendar_ignored_when_sync_disabled(self):
		calendar = StaticCalendar([TimeWindow(utc(2026, 1, 5, 9), utc(2026, 1, 5, 10))])
		slots = self.make_service(calendar=calendar).get_available_slots("BF-TEST", MONDAY, MONDAY)

		self.assertEqual(len(slots), 3)
		self.assertEqual(calendar.queries, [])

	def test_calendar_failure_degrades_to_no_busy_data(self):
		calendar = StaticCalendar(error=CalendarSyncError("quota exceeded"))
		service = self.make_service(calendar=calendar, calendar_sync=True)

		with self.assertLogs("wd_appointments.wd_appointments.scheduling.availability", level="WARNING"):
			slots = service.get_available_slots("BF-TEST", MONDAY, MONDAY)

		self.assertEqual(len(slots), 3)

	def test_explicit_now_applies_notice(self):
		service = self.make_service(minimumNotice=2)
		slots = service.get_available_slots("BF-TEST", MONDAY, MONDAY, now=utc(2026, 1, 5, 8, 30))
		self.assertEqual([s.start.hour for s in slots], [11])

	def test_range_outside_date_range(self):
		service = self.make_service(dateRange={"start": "2026-02-01"})
		self.assertEqual(service.get_available_slots("BF-TEST", MONDAY, MONDAY), [])

	def test_invalid_dates(self):
		service = self.make_service()
		with self.assertRaises(ValidationError) as ctx:
			service.get_available_slots("BF-TEST", "2026-01-10", "2026-01-05")
		self.assertEqual(ctx.exception.code, "invalid_date_range")

		with self.assertRaises(ValidationError):
			service.get_available_slots("BF-TEST", "05/01/2026", "2026-01-05")

	def test_span_longer_than_horizon_rejected(self):
		service = self.make_service(max_future_days=90)
		with self.assertRaises(ValidationError) as ctx:
			service.get_available_slots("BF-TEST", "2026-01-01", "9999-12-31")
		self.assertEqual(ctx.exception.code, "invalid_date_range")

	def test_query_clamped_to_horizon(self):
		"""Mondays after NOW + max_future_days are never offered."""
		service = self.make_service(max_future_days=10)
		slots = service.get_available_slots("BF-TEST", "2026-01-03", "2026-01-13")

		self.assertEqual({s.start.date() for s in slots}, {MONDAY})

	def test_unknown_form(self):
		with self.assertRaises(NotFoundError):
			self.make_service().get_available_slots("BF-MISSING", MONDAY, MONDAY)

	def test_invalid_form_configuration(self):
		service = self.make_service(availableHours={"monday": [
			{"start": "09:00", "end": "11:00"},
			{"start": "10:00", "end": "12:00"},
		]})
		with self.assertRaises(ValidationError) as ctx:
			service.get_available_slots("BF-TEST", MONDAY, MONDAY)
		self.assertEqual(ctx.exception.code, "overlapping_hours")


if __name__ == "__main__":
	unittest.main()
