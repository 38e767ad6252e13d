"""
Shared builders for the scheduling engine tests.
"""

from datetime import datetime

import pytz

from wd_appointments.wd_appointments.scheduling.interfaces import BookingFormDefinition, NotificationSink
from wd_appointments.wd_appointments.scheduling.models import Appointment, AppointmentStatus
from wd_appointments.wd_appointments.scheduling.rules import build

# 2026-01-05 es lunes
MONDAY = datetime(2026, 1, 5).date()


def utc(*args) -> datetime:
	return pytz.UTC.localize(datetime(*args))


def weekday_hours(*windows, days=("monday", "tuesday", "wednesday", "thursday", "friday")):
	"""availableHours blob with the same windows on every listed day."""
	return {day: [{"start": start, "end": end} for start, end in windows] for day in days}


def make_rule_set(duration=60, host_timezone="UTC", max_future_days=None, **config):
	"""
	Rule set with Monday 09:00-12:00 unless availableHours is given.
	"""
	config.setdefault("availableHours", {"monday": [{"start": "09:00", "end": "12:00"}]})
	return build(config, duration, host_timezone, max_future_days)


def make_form(form_id="BF-TEST", duration=60, host_timezone="UTC", email_verification=True,
		calendar_sync=False, allow_rescheduling=False, max_future_days=None, **config):
	config.setdefault("availableHours", {"monday": [{"start": "09:00", "end": "12:00"}]})
	return BookingFormDefinition(
		form_id=form_id,
		duration=duration,
		scheduling=config,
		host_timezone=host_timezone,
		email_verification=email_verification,
		calendar_sync=calendar_sync,
		allow_rescheduling=allow_rescheduling,
		max_future_days=max_future_days,
	)


def make_appointment(start, end, form_id="BF-TEST", status=AppointmentStatus.CONFIRMED, id=None):
	return Appointment(form_id=form_id, start=start, end=end, status=status, id=id)


class RecordingNotifier(NotificationSink):
	"""Keeps every emitted event in order."""

	def __init__(self):
		self.events = []

	def emit(self, event):
		self.events.append(event)

	@property
	def types(self):
		return [event.type.value for event in self.events]


class FailingNotifier(NotificationSink):

	def emit(self, event):
		raise RuntimeError("mail queue down")
