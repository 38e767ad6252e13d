"""
Booking API Endpoints

Whitelisted functions for the public booking page and the desk.
Public endpoints allow guest access with security protections:
- Rate limiting by IP address
- Honeypot validation for bot detection
- Input sanitization

Engine errors are translated here:
- ValidationError -> frappe.ValidationError
- NotFoundError -> frappe.DoesNotExistError
- BookingConflictError -> {"success": False, "reason": "<conflict reason>"}
- TransientBookingError -> {"success": False, "reason": "retry"}
"""

import hmac
from datetime import timedelta
from typing import Any, Dict, List, Optional

import frappe
from frappe import _
from frappe.utils import get_datetime

from wd_appointments.api.security import (
	check_rate_limit,
	guard_guest_submission,
	parse_client_details,
	require_string,
	sanitize_string,
	validate_date_string,
	validate_datetime_string,
	validate_docname,
	validate_email,
	validate_timezone,
)
from wd_appointments.wd_appointments.scheduling.errors import (
	BookingConflictError,
	NotFoundError,
	TransientBookingError,
	ValidationError as SchedulingValidationError,
)
from wd_appointments.wd_appointments.scheduling.models import Appointment, BookingResult, ClientInfo, Slot
from wd_appointments.wd_appointments.scheduling.slots import SLOT_FORMAT, format_slot
from wd_appointments.wd_appointments.services import get_availability_service, get_booking_transaction
from wd_appointments.wd_appointments.storage import FrappeFormStore, status_to_doc

CONFLICT_MESSAGES = {
	"overlap": "This time slot has already been booked",
	"buffer": "This time slot is too close to another appointment",
	"daily_limit": "No more appointments are available on this day",
	"busy_calendar": "The host is busy at this time",
	"stale_notice": "This time slot is no longer available for booking",
	"unavailable": "This time slot is not offered",
}


@frappe.whitelist(allow_guest=True, methods=['GET'])
def get_available_slots(
	booking_form: str,
	from_date: str,
	to_date: str,
	client_timezone: Optional[str] = None
) -> List[Dict[str, Any]]:
	"""
	Obtiene slots disponibles de un Booking Form para un rango de fechas.

	Rate limited: 30 requests per minute per IP.

	Args:
		booking_form: nombre del Booking Form
		from_date: fecha inicial (YYYY-MM-DD)
		to_date: fecha final (YYYY-MM-DD, inclusiva)
		client_timezone: zona del visitante (sólo con política "client")

	Returns:
		list[dict]: [
			{
				"form_id": "BF-00001",
				"start": "2026-01-15 09:00:00",
				"end": "2026-01-15 09:30:00",
				"start_utc": "2026-01-15T14:00:00+00:00",
				"end_utc": "2026-01-15T14:30:00+00:00",
				"timezone": "America/Bogota",
				"timezone_policy": "host"
			},
			...
		]
	"""
	check_rate_limit("get_available_slots")

	booking_form = validate_docname(booking_form, "booking_form")
	from_date = validate_date_string(from_date, "from_date")
	to_date = validate_date_string(to_date, "to_date")
	client_timezone = validate_timezone(client_timezone, "client_timezone")

	_ensure_active_form(booking_form)

	try:
		service = get_availability_service()
		slots = service.get_available_slots(booking_form, from_date, to_date)
		rule_set = FrappeFormStore().get_booking_form(booking_form).rule_set()
		return [format_slot(slot, rule_set, client_timezone) for slot in slots]
	except SchedulingValidationError as e:
		frappe.throw(_(e.message), frappe.ValidationError)
	except NotFoundError as e:
		frappe.throw(_(str(e)), frappe.DoesNotExistError)


@frappe.whitelist(allow_guest=True, methods=['POST'])
def book_slot(
	booking_form: str,
	start_datetime: str,
	client_name: str,
	client_email: str,
	end_datetime: Optional[str] = None,
	client_details: Optional[str] = None,
	honeypot: Optional[str] = None
) -> Dict[str, Any]:
	"""
	Reserva un slot en un Booking Form.

	Rate limited: 5 requests per minute per IP.

	Args:
		booking_form: nombre del Booking Form
		start_datetime: inicio del slot (YYYY-MM-DD HH:MM:SS, hora del host)
		client_name: nombre del cliente
		client_email: email del cliente
		end_datetime: fin del slot; por defecto inicio + duración del form
		client_details: JSON con datos adicionales del formulario
		honeypot: campo oculto; debe venir vacío

	Returns:
		dict: {
			"success": True,
			"appointment": {...},
			"warnings": [...]
		}
		o, si hay conflicto:
		dict: {"success": False, "reason": "overlap", "message": "..."}
	"""
	guard_guest_submission("book_slot", honeypot)

	booking_form = validate_docname(booking_form, "booking_form")
	start_datetime = validate_datetime_string(start_datetime, "start_datetime")
	if end_datetime:
		end_datetime = validate_datetime_string(end_datetime, "end_datetime")

	client_name = require_string(client_name, "client_name")
	client_email = validate_email(client_email, "client_email")

	extra = parse_client_details(client_details)

	_ensure_active_form(booking_form)

	try:
		slot = _parse_slot(booking_form, start_datetime, end_datetime)
		result = get_booking_transaction().attempt_book(
			booking_form,
			slot,
			ClientInfo(name=client_name, email=client_email, extra=extra),
		)
	except BookingConflictError as e:
		return _conflict_response(e)
	except TransientBookingError:
		return {
			"success": False,
			"reason": "retry",
			"message": _("The booking could not be completed. Please try again."),
		}
	except SchedulingValidationError as e:
		frappe.throw(_(e.message), frappe.ValidationError)
	except NotFoundError as e:
		frappe.throw(_(str(e)), frappe.DoesNotExistError)

	return _result_response(result)


@frappe.whitelist(allow_guest=True, methods=['GET'])
def verify_appointment(appointment_name: str, key: str) -> Dict[str, Any]:
	"""
	Confirma una cita Pending desde el enlace enviado por email.

	Rate limited: 10 requests per minute per IP.
	"""
	check_rate_limit("verify_appointment")

	appointment_name = validate_docname(appointment_name, "appointment_name")
	key = sanitize_string(key, 64)

	stored_key = frappe.db.get_value("Appointment", appointment_name, "verification_key")
	if not key or not stored_key or not hmac.compare_digest(stored_key, key):
		frappe.throw(_("Invalid or expired verification link"), frappe.ValidationError)

	return _transition("confirm", appointment_name)


@frappe.whitelist(methods=['POST'])
def cancel_appointment(appointment_name: str) -> Dict[str, Any]:
	"""Cancela una cita Pending o Confirmed. Requiere permiso de escritura."""
	appointment_name = validate_docname(appointment_name, "appointment_name")
	frappe.has_permission("Appointment", "write", doc=appointment_name, throw=True)

	return _transition("cancel", appointment_name)


@frappe.whitelist(methods=['POST'])
def reschedule_appointment(
	appointment_name: str,
	start_datetime: str,
	end_datetime: Optional[str] = None
) -> Dict[str, Any]:
	"""
	Mueve una cita activa a otro slot del mismo Booking Form.

	Sólo si el Booking Form permite reprogramar. Requiere permiso de escritura.
	"""
	appointment_name = validate_docname(appointment_name, "appointment_name")
	start_datetime = validate_datetime_string(start_datetime, "start_datetime")
	if end_datetime:
		end_datetime = validate_datetime_string(end_datetime, "end_datetime")

	frappe.has_permission("Appointment", "write", doc=appointment_name, throw=True)
	booking_form = frappe.db.get_value("Appointment", appointment_name, "booking_form")
	if not booking_form:
		frappe.throw(_("Appointment {0} not found").format(appointment_name), frappe.DoesNotExistError)

	try:
		slot = _parse_slot(booking_form, start_datetime, end_datetime)
		result = get_booking_transaction().reschedule(appointment_name, slot)
	except BookingConflictError as e:
		return _conflict_response(e)
	except TransientBookingError:
		return {"success": False, "reason": "retry", "message": _("Please try again.")}
	except SchedulingValidationError as e:
		frappe.throw(_(e.message), frappe.ValidationError)
	except NotFoundError as e:
		frappe.throw(_(str(e)), frappe.DoesNotExistError)

	return _result_response(result)


# ===== HELPERS =====

def _ensure_active_form(booking_form: str) -> None:
	is_active = frappe.db.get_value("Booking Form", booking_form, "is_active")
	if is_active is None:
		frappe.throw(_("Booking Form {0} not found").format(booking_form), frappe.DoesNotExistError)
	if not is_active:
		frappe.throw(_("Booking Form {0} is not accepting bookings").format(booking_form), frappe.ValidationError)


def _parse_slot(booking_form: str, start_datetime: str, end_datetime: Optional[str]) -> Slot:
	"""Interpreta los datetimes en la zona del host y arma el Slot."""
	form = FrappeFormStore().get_booking_form(booking_form)
	rule_set = form.rule_set()

	start = rule_set.localize(get_datetime(start_datetime))
	if end_datetime:
		end = rule_set.localize(get_datetime(end_datetime))
	else:
		end = rule_set.tz.normalize(start + timedelta(minutes=form.duration))

	return Slot(start=start, end=end, form_id=booking_form)


def _transition(action: str, appointment_name: str) -> Dict[str, Any]:
	try:
		result = getattr(get_booking_transaction(), action)(appointment_name)
	except SchedulingValidationError as e:
		frappe.throw(_(e.message), frappe.ValidationError)
	except NotFoundError as e:
		frappe.throw(_(str(e)), frappe.DoesNotExistError)
	except TransientBookingError:
		return {"success": False, "reason": "retry", "message": _("Please try again.")}

	return _result_response(result)


def _conflict_response(error: BookingConflictError) -> Dict[str, Any]:
	reason = error.reason.value
	return {
		"success": False,
		"reason": reason,
		"message": _(CONFLICT_MESSAGES.get(reason, "This time slot is not available")),
	}


def _result_response(result: BookingResult) -> Dict[str, Any]:
	return {
		"success": True,
		"appointment": _serialize_appointment(result.appointment),
		"warnings": result.warnings,
	}


def _serialize_appointment(appointment: Appointment) -> Dict[str, Any]:
	return {
		"name": appointment.id,
		"booking_form": appointment.form_id,
		"status": status_to_doc(appointment.status),
		"start_datetime": appointment.start.strftime(SLOT_FORMAT),
		"end_datetime": appointment.end.strftime(SLOT_FORMAT),
		"timezone": str(appointment.start.tzinfo),
	}
