"""
Google Calendar Connector

Busy-time reads (freebusy.query) and best-effort event writes against
the Google Calendar v3 API, through an authorized googleapiclient
service object.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

import pytz
from googleapiclient.errors import HttpError

from wd_appointments.wd_appointments.scheduling.models import Appointment, BusyInterval
from wd_appointments.wd_appointments.scheduling.timewindow import TimeWindow

from .base import CalendarConnector, CalendarSyncError


class GoogleCalendarConnector(CalendarConnector):
	"""
	Connector para Google Calendar.

	Args:
		service: recurso `calendar` v3 de googleapiclient ya autorizado
		calendar_id: calendario del host (default "primary")
		summary: título de los eventos creados
	"""

	def __init__(self, service: Any, calendar_id: str = "primary", summary: str = "Appointment"):
		self.service = service
		self.calendar_id = calendar_id
		self.summary = summary

	@classmethod
	def from_frappe_account(cls, google_calendar: str, summary: str = "Appointment") -> "GoogleCalendarConnector":
		"""Build from a Frappe "Google Calendar" integration record."""
		import frappe
		from frappe.integrations.doctype.google_calendar.google_calendar import get_google_calendar_object

		account = frappe.get_doc("Google Calendar", google_calendar)
		service, account = get_google_calendar_object(account)
		return cls(service, calendar_id=account.google_calendar_id or "primary", summary=summary)

	def list_busy(self, window: TimeWindow) -> List[BusyInterval]:
		body = {
			"timeMin": _rfc3339(window.start),
			"timeMax": _rfc3339(window.end),
			"items": [{"id": self.calendar_id}],
		}
		try:
			response = self.service.freebusy().query(body=body).execute()
		except HttpError as e:
			raise CalendarSyncError(f"freebusy query failed: {e}") from e

		calendar = response.get("calendars", {}).get(self.calendar_id, {})
		if calendar.get("errors"):
			reasons = ", ".join(err.get("reason", "unknown") for err in calendar["errors"])
			raise CalendarSyncError(f"freebusy query failed for {self.calendar_id}: {reasons}")

		busy = []
		for period in calendar.get("busy", []):
			start = _parse_rfc3339(period["start"])
			end = _parse_rfc3339(period["end"])
			# Google puede devolver bloques de duración cero
			if start < end:
				busy.append(TimeWindow(start, end))
		return busy

	def create_event(self, appointment: Appointment) -> Optional[str]:
		try:
			event = self.service.events().insert(
				calendarId=self.calendar_id,
				body=self._event_body(appointment),
			).execute()
		except HttpError as e:
			raise CalendarSyncError(f"event creation failed: {e}") from e
		return event.get("id")

	def update_event(self, event_id: str, appointment: Appointment) -> bool:
		try:
			self.service.events().patch(
				calendarId=self.calendar_id,
				eventId=event_id,
				body={
					"start": {"dateTime": _rfc3339(appointment.start)},
					"end": {"dateTime": _rfc3339(appointment.end)},
				},
			).execute()
		except HttpError as e:
			raise CalendarSyncError(f"event update failed: {e}") from e
		return True

	def delete_event(self, event_id: str) -> bool:
		try:
			self.service.events().delete(calendarId=self.calendar_id, eventId=event_id).execute()
		except HttpError as e:
			# Ya eliminado en Google
			if getattr(e, "status_code", None) == 410 or getattr(getattr(e, "resp", None), "status", None) == 410:
				return False
			raise CalendarSyncError(f"event deletion failed: {e}") from e
		return True

	def _event_body(self, appointment: Appointment) -> Dict[str, Any]:
		client = appointment.client_info
		body: Dict[str, Any] = {
			"summary": f"{self.summary}: {client.name}" if client.name else self.summary,
			"start": {"dateTime": _rfc3339(appointment.start)},
			"end": {"dateTime": _rfc3339(appointment.end)},
			"extendedProperties": {
				"private": {
					"wd_appointment_id": appointment.id or "",
					"wd_booking_form": appointment.form_id,
				}
			},
		}
		if client.email:
			body["attendees"] = [{"email": client.email, "displayName": client.name or client.email}]
		return body


def _rfc3339(value: datetime) -> str:
	if value.tzinfo is None:
		value = pytz.UTC.localize(value)
	return value.astimezone(pytz.UTC).isoformat().replace("+00:00", "Z")


def _parse_rfc3339(value: str) -> datetime:
	parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
	if parsed.tzinfo is None:
		parsed = pytz.UTC.localize(parsed)
	return parsed
