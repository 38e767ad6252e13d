# Copyright (c) 2026, WD Appointments contributors
# For license information, please see license.txt

"""
Frappe Storage Adapters

Backs the engine's FormStore and AppointmentStore with DocTypes:
- Booking Form: title, duration, scheduling_settings (JSON), is_active
- Appointment: booking_form, start/end datetime, status, client fields
- WD Appointments Settings (single): timezone, email verification, calendar sync

Datetimes are stored naive in the host timezone, as Frappe Datetime
fields expect.
"""

import json
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterable, Iterator, List, Optional

import frappe
import pytz
from frappe.utils import cint, get_datetime

from wd_appointments.wd_appointments.scheduling.errors import NotFoundError, TransientBookingError
from wd_appointments.wd_appointments.scheduling.interfaces import (
	AppointmentStore,
	BookingFormDefinition,
	FormStore,
)
from wd_appointments.wd_appointments.scheduling.models import Appointment, AppointmentStatus, ClientInfo

SETTINGS_DOCTYPE = "WD Appointments Settings"
FORM_DOCTYPE = "Booking Form"
APPOINTMENT_DOCTYPE = "Appointment"

DEFAULT_MAX_FUTURE_DAYS = 90

APPOINTMENT_FIELDS = [
	"name",
	"booking_form",
	"start_datetime",
	"end_datetime",
	"status",
	"client_name",
	"client_email",
	"client_details",
	"calendar_event_id",
]


def get_settings():
	"""WD Appointments Settings (cached single doc)."""
	return frappe.get_cached_doc(SETTINGS_DOCTYPE)


def get_host_timezone(settings=None) -> str:
	"""
	Resuelve la zona horaria del host.

	"system timezone" o vacío usan la zona del sistema de Frappe.
	"""
	settings = settings or get_settings()
	tz_name = settings.timezone or "system timezone"
	if tz_name == "system timezone":
		tz_name = frappe.utils.get_system_timezone() or "UTC"

	try:
		pytz.timezone(tz_name)
	except pytz.UnknownTimeZoneError:
		frappe.log_error(
			f"Invalid timezone '{tz_name}' in {SETTINGS_DOCTYPE}, usando UTC",
			"WD Appointments Timezone"
		)
		tz_name = "UTC"

	return tz_name


def get_max_future_days(settings=None) -> int:
	"""Horizonte de reservas en días; vacío usa DEFAULT_MAX_FUTURE_DAYS."""
	settings = settings or get_settings()
	value = settings.get("max_future_days")
	if value in (None, ""):
		return DEFAULT_MAX_FUTURE_DAYS
	return cint(value)


def status_to_doc(status: AppointmentStatus) -> str:
	return AppointmentStatus(status).value.capitalize()


def status_from_doc(value: str) -> AppointmentStatus:
	return AppointmentStatus((value or "").lower())


class FrappeFormStore(FormStore):

	def get_booking_form(self, form_id: str) -> BookingFormDefinition:
		if not frappe.db.exists(FORM_DOCTYPE, form_id):
			raise NotFoundError(f"Booking Form {form_id} not found")

		form = frappe.get_doc(FORM_DOCTYPE, form_id)
		if not form.is_active:
			raise NotFoundError(f"Booking Form {form_id} is not active")

		settings = get_settings()

		return BookingFormDefinition(
			form_id=form.name,
			duration=form.duration,
			scheduling=form.get_scheduling_settings(),
			host_timezone=get_host_timezone(settings),
			email_verification=bool(settings.email_verification),
			calendar_sync=bool(settings.calendar_sync_enabled),
			allow_rescheduling=bool(settings.allow_rescheduling),
			title=form.title or form.name,
			max_future_days=get_max_future_days(settings),
		)


class FrappeAppointmentStore(AppointmentStore):
	"""
	Appointment store sobre la base de datos del sitio.

	La sección atómica toma un lock de fila (SELECT ... FOR UPDATE) sobre
	el Booking Form: dos reservas del mismo form se serializan, forms
	distintos no compiten.

	Antes del lock se hace commit: con REPEATABLE READ, las lecturas
	previas del request (form, settings) fijan un snapshot en el que no
	aparecen las citas que otra reserva commiteó mientras se esperaba el
	lock. Tras el commit, la primera lectura consistente ocurre ya con el
	lock tomado.
	"""

	def __init__(self, host_timezone: Optional[str] = None):
		self.tz = pytz.timezone(host_timezone or get_host_timezone())

	@contextmanager
	def transaction(self, form_id: str) -> Iterator["FrappeAppointmentStore"]:
		frappe.db.commit()
		try:
			locked = frappe.db.get_value(FORM_DOCTYPE, form_id, "name", for_update=True)
			if not locked:
				raise NotFoundError(f"Booking Form {form_id} not found")
			yield self
			frappe.db.commit()
		except (frappe.QueryDeadlockError, frappe.QueryTimeoutError) as e:
			frappe.db.rollback()
			frappe.logger("wd_appointments").warning(
				f"Booking transaction for {form_id} aborted: {str(e)}"
			)
			raise TransientBookingError(f"Could not lock Booking Form {form_id}, please retry") from e
		except Exception:
			frappe.db.rollback()
			raise

	def list_appointments(
		self,
		form_id: Optional[str] = None,
		start: Optional[datetime] = None,
		end: Optional[datetime] = None,
		statuses: Optional[Iterable[AppointmentStatus]] = None
	) -> List[Appointment]:
		# Condición de overlap: start < end AND end > start
		filters: Dict[str, Any] = {}
		if form_id is not None:
			filters["booking_form"] = form_id
		if statuses is not None:
			filters["status"] = ["in", [status_to_doc(s) for s in statuses]]
		if end is not None:
			filters["start_datetime"] = ["<", self._to_db(end)]
		if start is not None:
			filters["end_datetime"] = [">", self._to_db(start)]

		rows = frappe.get_all(
			APPOINTMENT_DOCTYPE,
			filters=filters,
			fields=APPOINTMENT_FIELDS,
			order_by="start_datetime asc",
		)
		return [self._from_row(row) for row in rows]

	def get(self, appointment_id: str) -> Appointment:
		row = frappe.db.get_value(APPOINTMENT_DOCTYPE, appointment_id, APPOINTMENT_FIELDS, as_dict=True)
		if not row:
			raise NotFoundError(f"Appointment {appointment_id} not found")
		return self._from_row(row)

	def insert(self, appointment: Appointment) -> Appointment:
		doc = frappe.get_doc({
			"doctype": APPOINTMENT_DOCTYPE,
			**self._to_fields(appointment),
		})
		if appointment.status == AppointmentStatus.PENDING:
			doc.verification_key = frappe.generate_hash(length=32)
		doc.flags.from_booking_engine = True
		doc.insert(ignore_permissions=True)
		return self._from_row(doc.as_dict())

	def update(self, appointment: Appointment) -> Appointment:
		if not frappe.db.exists(APPOINTMENT_DOCTYPE, appointment.id):
			raise NotFoundError(f"Appointment {appointment.id} not found")

		doc = frappe.get_doc(APPOINTMENT_DOCTYPE, appointment.id)
		doc.update(self._to_fields(appointment))
		doc.flags.from_booking_engine = True
		doc.save(ignore_permissions=True)
		return self._from_row(doc.as_dict())

	def _to_db(self, value: datetime) -> datetime:
		if value.tzinfo is None:
			return value
		return value.astimezone(self.tz).replace(tzinfo=None)

	def _from_db(self, value: Any) -> datetime:
		return self.tz.localize(get_datetime(value))

	def _to_fields(self, appointment: Appointment) -> Dict[str, Any]:
		client = appointment.client_info
		return {
			"booking_form": appointment.form_id,
			"start_datetime": self._to_db(appointment.start),
			"end_datetime": self._to_db(appointment.end),
			"status": status_to_doc(appointment.status),
			"client_name": client.name,
			"client_email": client.email,
			"client_details": json.dumps(client.extra) if client.extra else None,
			"calendar_event_id": appointment.calendar_event_id,
		}

	def _from_row(self, row: Dict[str, Any]) -> Appointment:
		return Appointment(
			id=row.get("name"),
			form_id=row.get("booking_form"),
			start=self._from_db(row.get("start_datetime")),
			end=self._from_db(row.get("end_datetime")),
			status=status_from_doc(row.get("status")),
			client_info=ClientInfo(
				name=row.get("client_name") or "",
				email=row.get("client_email") or "",
				extra=frappe.parse_json(row.get("client_details")) or {},
			),
			calendar_event_id=row.get("calendar_event_id"),
		)
