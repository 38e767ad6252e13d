# Copyright (c) 2026, WD Appointments contributors
# For license information, please see license.txt

"""
Appointment Notification Service

Turns booking lifecycle events into emails:
  - booking_created: pending bookings get a verification link, confirmed ones a receipt
  - booking_confirmed: confirmation to the client
  - booking_cancelled: cancellation notice to the client
Host copies go to the notification recipients configured in settings.
"""

import frappe
from frappe import _
from frappe.utils import format_datetime, get_url

from wd_appointments.wd_appointments.scheduling.interfaces import NotificationSink
from wd_appointments.wd_appointments.scheduling.models import BookingEvent, BookingEventType
from wd_appointments.wd_appointments.storage import get_settings

SUBJECTS = {
	BookingEventType.CREATED.value: "[Booking Received] {0} – {1}",
	BookingEventType.CONFIRMED.value: "[Booking Confirmed] {0} – {1}",
	BookingEventType.CANCELLED.value: "[Booking Cancelled] {0} – {1}",
}


class FrappeNotificationSink(NotificationSink):
	"""
	Enqueues one background email job per event.

	Args:
		enqueue_after_commit: True when the event is emitted inside an open
			transaction (desk edits); False when the write is already
			committed, since a GET request never commits again and the
			after-commit job would be dropped
	"""

	def __init__(self, enqueue_after_commit: bool = True):
		self.enqueue_after_commit = enqueue_after_commit

	def emit(self, event: BookingEvent) -> None:
		frappe.enqueue(
			"wd_appointments.wd_appointments.notifications.appointment.send_booking_notification",
			event_type=event.type.value,
			appointment_name=event.appointment_id,
			queue="default",
			enqueue_after_commit=self.enqueue_after_commit,
		)


def has_outgoing_email() -> bool:
	"""Return True if at least one outgoing Email Account is configured in Frappe."""
	return bool(frappe.db.count("Email Account", {"enable_outgoing": 1}))


def send_booking_notification(event_type: str, appointment_name: str) -> None:
	"""
	Build and send the email for one booking event.

	Runs as a background job so the appointment row is already committed.

	Args:
		event_type: booking_created | booking_confirmed | booking_cancelled
		appointment_name: Name of the Appointment document
	"""
	try:
		if not has_outgoing_email():
			frappe.logger("wd_appointments").warning(
				f"Booking notification {event_type} skipped for {appointment_name}: "
				"no outgoing Email Account configured in Frappe."
			)
			return

		appointment = frappe.get_doc("Appointment", appointment_name)
		form_title = frappe.db.get_value("Booking Form", appointment.booking_form, "title") or appointment.booking_form
		settings = get_settings()

		recipients = [appointment.client_email] if appointment.client_email else []
		host_recipients = [
			row.user
			for row in (settings.get("notification_users") or [])
			if row.user
		]

		# Deduplicate and remove empty
		recipients = list({r for r in recipients + host_recipients if r})

		if not recipients:
			frappe.logger("wd_appointments").info(
				f"No notification recipients for appointment {appointment_name}, skipping email."
			)
			return

		context = {
			"event_type": event_type,
			"appointment_name": appointment.name,
			"status": appointment.status,
			"client_name": appointment.client_name or appointment.client_email,
			"booking_form": form_title,
			"start_datetime": format_datetime(appointment.start_datetime, "EEEE d MMMM yyyy, HH:mm"),
			"end_datetime": format_datetime(appointment.end_datetime, "HH:mm"),
			"verification_url": None,
		}

		if event_type == BookingEventType.CREATED.value and appointment.status == "Pending":
			context["verification_url"] = (
				f"{get_url()}/api/method/wd_appointments.api.booking_api.verify_appointment"
				f"?appointment_name={appointment.name}&key={appointment.verification_key}"
			)

		subject = _(SUBJECTS.get(event_type, "[Booking] {0} – {1}")).format(
			form_title,
			format_datetime(appointment.start_datetime, "EEE d MMM yyyy, HH:mm"),
		)

		frappe.sendmail(
			recipients=recipients,
			subject=subject,
			template=event_type,
			args=context,
		)

		frappe.logger("wd_appointments").info(
			f"Booking notification {event_type} sent for {appointment_name} to {recipients}"
		)

	except Exception as e:
		frappe.log_error(
			message=f"Failed to send {event_type} notification for {appointment_name}: {str(e)}",
			title="Booking Notification Failed"
		)
