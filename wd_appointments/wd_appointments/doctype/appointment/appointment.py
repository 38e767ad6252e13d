# Copyright (c) 2026, WD Appointments contributors
# For license information, please see license.txt

"""
Appointment DocType

Registro durable de una reserva. Las altas y cambios de horario pasan por
el BookingTransaction; este controller valida consistencia y el state
machine cuando la cita se edita desde el desk.
"""

import frappe
from frappe import _
from frappe.model.document import Document
from frappe.utils import get_datetime

from wd_appointments.wd_appointments.scheduling.booking import day_bounds
from wd_appointments.wd_appointments.scheduling.conflicts import check_slot
from wd_appointments.wd_appointments.scheduling.errors import ValidationError as SchedulingValidationError
from wd_appointments.wd_appointments.scheduling.models import (
	ACTIVE_STATUSES,
	AppointmentStatus,
	BookingEvent,
	BookingEventType,
	Slot,
	can_transition,
)
from wd_appointments.wd_appointments.storage import FrappeAppointmentStore, status_from_doc

STATUS_EVENTS = {
	AppointmentStatus.CONFIRMED: BookingEventType.CONFIRMED,
	AppointmentStatus.CANCELLED: BookingEventType.CANCELLED,
}

CONFLICT_MESSAGES = {
	"overlap": "Se solapa con otra cita activa del mismo Booking Form",
	"buffer": "Está dentro del tiempo de buffer de otra cita",
	"daily_limit": "Se alcanzó el límite diario de citas del Booking Form",
}


class Appointment(Document):
	"""
	Appointment DocType with lifecycle validation.

	Flujo:
	1. El BookingTransaction crea la cita en Pending (o Confirmed sin verificación por email)
	2. Pending -> Confirmed al verificar el email, o Pending -> Cancelled
	3. Confirmed -> Cancelled, o Confirmed -> Completed cuando termina (tarea programada)
	"""

	def validate(self) -> None:
		"""
		Validación antes de guardar.

		Ejecuta:
		1. Validar booking_form requerido
		2. Validar consistencia de fechas
		3. Validar transición de estado
		4. Validar conflictos con otras citas (altas y ediciones desde el desk)
		"""
		self._validate_booking_form()
		self._validate_datetime_consistency()
		self._validate_status_transition()
		self._validate_conflicts()

	def on_update(self) -> None:
		"""
		Notifica cambios de estado hechos desde el desk.

		Los cambios del BookingTransaction ya emiten su evento
		(flags.from_booking_engine).
		"""
		if self.flags.from_booking_engine:
			return

		doc_before_save = self.get_doc_before_save()
		if not doc_before_save or doc_before_save.status == self.status:
			return

		event_type = STATUS_EVENTS.get(status_from_doc(self.status))
		if not event_type:
			return

		from wd_appointments.wd_appointments.notifications.appointment import FrappeNotificationSink

		FrappeNotificationSink().emit(
			BookingEvent(type=event_type, appointment_id=self.name, form_id=self.booking_form)
		)

	# ===== VALIDATION METHODS =====

	def _validate_booking_form(self) -> None:
		"""Valida que booking_form esté presente."""
		if not self.booking_form:
			frappe.throw(_("Booking Form es requerido"))

	def _validate_datetime_consistency(self) -> None:
		"""Valida que start_datetime < end_datetime."""
		if not self.start_datetime or not self.end_datetime:
			frappe.throw(_("Start DateTime y End DateTime son requeridos"))

		if get_datetime(self.start_datetime) >= get_datetime(self.end_datetime):
			frappe.throw(_("Start DateTime debe ser menor que End DateTime"))

	def _validate_status_transition(self) -> None:
		"""
		Valida el state machine:
		pending -> confirmed | cancelled, confirmed -> cancelled | completed.
		"""
		try:
			new_status = status_from_doc(self.status)
		except ValueError:
			frappe.throw(_("Status inválido: {0}").format(self.status))

		if self.is_new():
			if new_status not in (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED):
				frappe.throw(_("Una cita nueva debe estar Pending o Confirmed"))
			return

		doc_before_save = self.get_doc_before_save()
		if not doc_before_save or doc_before_save.status == self.status:
			return

		old_status = status_from_doc(doc_before_save.status)
		if not can_transition(old_status, new_status):
			frappe.throw(
				_("No se puede cambiar el estado de {0} a {1}").format(doc_before_save.status, self.status)
			)

	def _validate_conflicts(self) -> None:
		"""
		Aplica overlap, buffer y dailyLimit a citas creadas o movidas desde el desk.

		Las escrituras del BookingTransaction ya pasaron el re-check bajo lock.
		"""
		if self.flags.from_booking_engine:
			return
		if status_from_doc(self.status) not in ACTIVE_STATUSES:
			return

		if not self.is_new():
			before = self.get_doc_before_save()
			if before and (
				before.booking_form == self.booking_form
				and get_datetime(before.start_datetime) == get_datetime(self.start_datetime)
				and get_datetime(before.end_datetime) == get_datetime(self.end_datetime)
				and before.status == self.status
			):
				return

		try:
			rule_set = frappe.get_doc("Booking Form", self.booking_form).get_rule_set()
		except SchedulingValidationError as e:
			frappe.throw(_("Booking Form {0} tiene una configuración inválida: {1}").format(self.booking_form, str(e)))

		slot = Slot(
			start=rule_set.localize(get_datetime(self.start_datetime)),
			end=rule_set.localize(get_datetime(self.end_datetime)),
			form_id=self.booking_form,
		)
		lo, hi = day_bounds(rule_set, slot)
		existing = FrappeAppointmentStore(rule_set.host_timezone).list_appointments(
			form_id=self.booking_form,
			start=lo,
			end=hi,
			statuses=ACTIVE_STATUSES,
		)

		reason = check_slot(
			slot, existing, [], rule_set,
			exclude_appointment_id=None if self.is_new() else self.name,
		)
		if reason is not None:
			frappe.throw(_(CONFLICT_MESSAGES.get(reason.value, reason.value)))
