# Copyright (c) 2026, WD Appointments contributors
# For license information, please see license.txt

"""
Service Wiring

Builds the scheduling engine on top of the Frappe collaborators and
exposes the scheduled jobs referenced from hooks.py.
"""

import frappe

from wd_appointments.wd_appointments.calendar_sync.base import CalendarConnector, UnavailableCalendarConnector
from wd_appointments.wd_appointments.calendar_sync.factory import get_connector
from wd_appointments.wd_appointments.notifications.appointment import FrappeNotificationSink
from wd_appointments.wd_appointments.scheduling.availability import AvailabilityService
from wd_appointments.wd_appointments.scheduling.booking import BookingTransaction
from wd_appointments.wd_appointments.scheduling.tasks import complete_past_appointments
from wd_appointments.wd_appointments.storage import (
	FrappeAppointmentStore,
	FrappeFormStore,
	get_host_timezone,
	get_settings,
)


def get_calendar_connector() -> CalendarConnector:
	"""
	Connector configurado en WD Appointments Settings.

	Si no se puede construir (token vencido, proveedor caído) se registra
	el error y se devuelve un connector que falla en cada llamada: las
	reservas siguen, con advertencias de calendario.
	"""
	settings = get_settings()
	calendar_type = settings.calendar_type if settings.calendar_sync_enabled else None
	try:
		return get_connector(calendar_type, account=settings.google_calendar)
	except Exception as e:
		frappe.log_error(
			message=f"Calendar connector {calendar_type} could not be built: {str(e)}",
			title="WD Appointments Calendar Sync"
		)
		return UnavailableCalendarConnector(str(e))


def get_availability_service() -> AvailabilityService:
	return AvailabilityService(
		FrappeFormStore(),
		FrappeAppointmentStore(),
		calendar=get_calendar_connector(),
	)


def get_booking_transaction() -> BookingTransaction:
	return BookingTransaction(
		FrappeFormStore(),
		FrappeAppointmentStore(),
		# El motor emite después de que el store hizo commit
		FrappeNotificationSink(enqueue_after_commit=False),
		calendar=get_calendar_connector(),
	)


def complete_past_appointments_job() -> int:
	"""
	Marca como Completed las citas Confirmed ya terminadas.
	Se ejecuta cada 15 minutos vía cron (configurado en hooks.py).
	"""
	store = FrappeAppointmentStore(get_host_timezone())
	completed = complete_past_appointments(store)

	if completed:
		frappe.logger("wd_appointments").info(
			f"complete_past_appointments_job: {completed} appointments completed"
		)

	return completed
