# Copyright (c) 2026, WD Appointments contributors
# See license.txt

"""
Tests for WD Appointments Settings

Tests settings validation and how the configured calendar connector is
built for the booking engine.
"""

from unittest.mock import patch

import frappe
from frappe.tests.utils import FrappeTestCase

from wd_appointments.wd_appointments.calendar_sync.base import CalendarSyncError, UnavailableCalendarConnector
from wd_appointments.wd_appointments.calendar_sync.google_calendar import GoogleCalendarConnector
from wd_appointments.wd_appointments.services import get_booking_transaction, get_calendar_connector
from wd_appointments.wd_appointments.storage import DEFAULT_MAX_FUTURE_DAYS, get_max_future_days

GOOGLE_SETTINGS = frappe._dict(
	calendar_sync_enabled=1,
	calendar_type="Google",
	google_calendar="Host Calendar",
)


class TestWDAppointmentsSettings(FrappeTestCase):
	"""Tests for WD Appointments Settings."""

	def test_negative_max_future_days_rejected(self):
		settings = frappe.get_single("WD Appointments Settings")
		settings.max_future_days = -1

		with self.assertRaises(frappe.ValidationError):
			settings.save(ignore_permissions=True)

	def test_max_future_days_default(self):
		self.assertEqual(get_max_future_days(frappe._dict(max_future_days=None)), DEFAULT_MAX_FUTURE_DAYS)
		self.assertEqual(get_max_future_days(frappe._dict(max_future_days=0)), 0)
		self.assertEqual(get_max_future_days(frappe._dict(max_future_days="30")), 30)

	def test_sync_without_account_rejected(self):
		settings = frappe.get_single("WD Appointments Settings")
		settings.calendar_type = "Google"
		settings.google_calendar = None
		settings.calendar_sync_enabled = 1

		with self.assertRaises(frappe.ValidationError):
			settings.save(ignore_permissions=True)


class TestCalendarConnectorWiring(FrappeTestCase):
	"""A connector that cannot be built must not block bookings."""

	@patch.object(GoogleCalendarConnector, "from_frappe_account", side_effect=RuntimeError("token refresh failed"))
	@patch("wd_appointments.wd_appointments.services.get_settings", return_value=GOOGLE_SETTINGS)
	def test_failed_connector_is_replaced(self, get_settings, from_frappe_account):
		connector = get_calendar_connector()

		self.assertIsInstance(connector, UnavailableCalendarConnector)
		with self.assertRaises(CalendarSyncError):
			connector.create_event(None)

	@patch.object(GoogleCalendarConnector, "from_frappe_account", side_effect=RuntimeError("token refresh failed"))
	@patch("wd_appointments.wd_appointments.services.get_settings", return_value=GOOGLE_SETTINGS)
	def test_booking_transaction_built_with_failed_connector(self, get_settings, from_frappe_account):
		booking = get_booking_transaction()

		self.assertIsInstance(booking.calendar, UnavailableCalendarConnector)
