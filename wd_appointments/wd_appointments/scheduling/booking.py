"""
Booking Transaction

The write path of the engine. Every state change of an appointment goes
through here so that the no-overlap invariant holds per form:
- attempt_book: atomic re-check + insert of a new appointment
- reschedule: atomic re-check + move of an active appointment
- confirm / cancel: state machine transitions

Conflict checking and commit happen inside AppointmentStore.transaction(form_id),
which is the only place the engine waits on other callers.
"""

import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, List, Optional

import pytz

from wd_appointments.wd_appointments.calendar_sync.base import CalendarConnector, CalendarSyncError

from .conflicts import check_slot
from .errors import BookingConflictError, ConflictReason, ValidationError
from .interfaces import AppointmentStore, BookingFormDefinition, FormStore, NotificationSink
from .models import (
	ACTIVE_STATUSES,
	Appointment,
	AppointmentStatus,
	BookingEvent,
	BookingEventType,
	BookingResult,
	BusyInterval,
	ClientInfo,
	Slot,
	transition,
)
from .rules import AvailabilityRuleSet
from .slots import is_offered

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
	return datetime.now(pytz.UTC)


class BookingTransaction:
	"""
	Servicio de reservas de un host.

	Args:
		forms: origen de las definiciones de Booking Form
		store: almacenamiento de citas con sección atómica por form
		notifier: receptor de eventos de ciclo de vida
		calendar: conector de calendario externo (opcional)
		clock: devuelve "ahora"; inyectable para tests
	"""

	def __init__(
		self,
		forms: FormStore,
		store: AppointmentStore,
		notifier: NotificationSink,
		calendar: Optional[CalendarConnector] = None,
		clock: Callable[[], datetime] = utc_now
	):
		self.forms = forms
		self.store = store
		self.notifier = notifier
		self.calendar = calendar
		self.clock = clock

	def attempt_book(
		self,
		form_id: str,
		requested_slot: Slot,
		client_info: Optional[ClientInfo] = None
	) -> BookingResult:
		"""
		Reserva `requested_slot` para el form.

		Algoritmo:
			1. Leer bloques ocupados del calendario (fuera del lock, puede estar desfasado)
			2. Abrir la sección atómica del form
			3. Re-derivar el rule set y verificar que el slot se ofrece
			4. Re-ejecutar los checks del ConflictFilter contra el estado actual
			5. Insertar la cita (pending si hay verificación por email, si no confirmed)
			6. Tras el commit: evento booking_created y creación de evento en calendario

		Returns:
			BookingResult con la cita creada y advertencias de integraciones

		Raises:
			BookingConflictError: con la regla violada
			ValidationError: configuración del form inválida o slot de otro form
			TransientBookingError: fallo del store; no se escribió nada
		"""
		slot = self._bind_slot(form_id, requested_slot)
		warnings: List[str] = []

		form = self.forms.get_booking_form(form_id)
		busy = self._busy_around(form, slot, warnings)

		with self.store.transaction(form_id) as tx:
			# Releer dentro del lock: la config pudo cambiar
			form = self.forms.get_booking_form(form_id)
			rule_set = form.rule_set()

			self._recheck(tx, form_id, rule_set, slot, busy)

			status = AppointmentStatus.PENDING if form.email_verification else AppointmentStatus.CONFIRMED
			appointment = tx.insert(Appointment(
				form_id=form_id,
				start=slot.start,
				end=slot.end,
				status=status,
				client_info=client_info or ClientInfo(),
			))

		logger.info(
			"Booked %s for form %s (%s - %s, %s)",
			appointment.id, form_id, appointment.start.isoformat(),
			appointment.end.isoformat(), appointment.status.value
		)

		self._emit(BookingEventType.CREATED, appointment, warnings)
		appointment = self._create_calendar_event(form, appointment, warnings)

		return BookingResult(appointment=appointment, warnings=warnings)

	def reschedule(self, appointment_id: str, new_slot: Slot) -> BookingResult:
		"""
		Move an active appointment to `new_slot` on the same form.

		The appointment's current interval is ignored by the re-check, so a
		move that overlaps its own old time is allowed.
		"""
		current = self.store.get(appointment_id)
		form_id = current.form_id
		slot = self._bind_slot(form_id, new_slot)
		warnings: List[str] = []

		form = self.forms.get_booking_form(form_id)
		if not form.allow_rescheduling:
			raise ValidationError("rescheduling_disabled", f"Booking Form {form_id} does not allow rescheduling")
		busy = self._busy_around(form, slot, warnings)

		with self.store.transaction(form_id) as tx:
			form = self.forms.get_booking_form(form_id)
			rule_set = form.rule_set()

			current = tx.get(appointment_id)
			if current.status not in ACTIVE_STATUSES:
				raise ValidationError(
					"invalid_transition",
					f"appointment {appointment_id} is {current.status.value} and cannot be rescheduled"
				)

			self._recheck(tx, form_id, rule_set, slot, busy, exclude_appointment_id=appointment_id)
			appointment = tx.update(replace(current, start=slot.start, end=slot.end))

		logger.info("Rescheduled %s to %s", appointment_id, slot.start.isoformat())

		if form.calendar_sync and self.calendar is not None and appointment.calendar_event_id:
			try:
				self.calendar.update_event(appointment.calendar_event_id, appointment)
			except Exception as e:
				self._calendar_warning("update", appointment, e, warnings)

		return BookingResult(appointment=appointment, warnings=warnings)

	def confirm(self, appointment_id: str) -> BookingResult:
		"""pending -> confirmed, tras la verificación por email."""
		return self._move(appointment_id, AppointmentStatus.CONFIRMED, BookingEventType.CONFIRMED)

	def cancel(self, appointment_id: str) -> BookingResult:
		"""pending|confirmed -> cancelled; the calendar event is removed best-effort."""
		result = self._move(appointment_id, AppointmentStatus.CANCELLED, BookingEventType.CANCELLED)
		appointment = result.appointment

		if self.calendar is not None and appointment.calendar_event_id:
			try:
				self.calendar.delete_event(appointment.calendar_event_id)
			except Exception as e:
				self._calendar_warning("delete", appointment, e, result.warnings)

		return result

	# ===== INTERNALS =====

	def _move(
		self,
		appointment_id: str,
		new_status: AppointmentStatus,
		event_type: BookingEventType
	) -> BookingResult:
		form_id = self.store.get(appointment_id).form_id
		warnings: List[str] = []

		with self.store.transaction(form_id) as tx:
			appointment = tx.update(transition(tx.get(appointment_id), new_status))

		logger.info("Appointment %s is now %s", appointment_id, new_status.value)
		self._emit(event_type, appointment, warnings)

		return BookingResult(appointment=appointment, warnings=warnings)

	def _bind_slot(self, form_id: str, slot: Slot) -> Slot:
		if slot.form_id and slot.form_id != form_id:
			raise ValidationError("invalid_parameter", f"slot belongs to form {slot.form_id}, not {form_id}")
		return Slot(start=slot.start, end=slot.end, form_id=form_id)

	def _recheck(
		self,
		tx: AppointmentStore,
		form_id: str,
		rule_set: AvailabilityRuleSet,
		slot: Slot,
		busy: List[BusyInterval],
		exclude_appointment_id: Optional[str] = None
	) -> None:
		if not is_offered(rule_set, slot):
			self._reject(form_id, slot, ConflictReason.UNAVAILABLE)

		lo, hi = day_bounds(rule_set, slot)
		existing = tx.list_appointments(form_id=form_id, start=lo, end=hi, statuses=ACTIVE_STATUSES)

		reason = check_slot(
			slot, existing, busy, rule_set,
			now=self.clock(),
			exclude_appointment_id=exclude_appointment_id,
		)
		if reason is not None:
			self._reject(form_id, slot, reason)

	def _reject(self, form_id: str, slot: Slot, reason: ConflictReason) -> None:
		logger.info("Rejected booking on form %s at %s: %s", form_id, slot.start.isoformat(), reason.value)
		raise BookingConflictError(reason)

	def _busy_around(
		self,
		form: BookingFormDefinition,
		slot: Slot,
		warnings: List[str]
	) -> List[BusyInterval]:
		if not form.calendar_sync or self.calendar is None:
			return []
		try:
			return self.calendar.list_busy(slot.window)
		except Exception as e:
			logger.warning("Busy calendar unavailable for form %s: %s", form.form_id, e)
			warnings.append(f"calendar_busy_unavailable: {e}")
			return []

	def _create_calendar_event(
		self,
		form: BookingFormDefinition,
		appointment: Appointment,
		warnings: List[str]
	) -> Appointment:
		if not form.calendar_sync or self.calendar is None:
			return appointment
		try:
			event_id = self.calendar.create_event(appointment)
		except Exception as e:
			# La cita ya está confirmada; nunca se revierte por el calendario
			self._calendar_warning("create", appointment, e, warnings)
			return appointment
		if not event_id:
			return appointment

		# La cita pudo cancelarse o moverse mientras se creaba el evento:
		# sólo se escribe calendar_event_id sobre el estado actual
		try:
			with self.store.transaction(appointment.form_id) as tx:
				current = tx.get(appointment.id)
				stored = tx.update(replace(current, calendar_event_id=event_id))
		except Exception as e:
			logger.warning("Could not store calendar event %s for %s: %s", event_id, appointment.id, e)
			warnings.append(f"calendar_sync_error: event {event_id} not linked ({e})")
			return appointment

		try:
			if stored.status not in ACTIVE_STATUSES:
				self.calendar.delete_event(event_id)
			elif (stored.start, stored.end) != (appointment.start, appointment.end):
				self.calendar.update_event(event_id, stored)
		except Exception as e:
			self._calendar_warning("sync", stored, e, warnings)
		return stored

	def _calendar_warning(self, action: str, appointment: Appointment, error: Exception, warnings: List[str]) -> None:
		kind = "calendar_sync_failed" if isinstance(error, CalendarSyncError) else "calendar_sync_error"
		logger.warning("Calendar %s failed for %s: %s", action, appointment.id, error)
		warnings.append(f"{kind}: {action} event failed ({error})")

	def _emit(self, event_type: BookingEventType, appointment: Appointment, warnings: List[str]) -> None:
		event = BookingEvent(type=event_type, appointment_id=appointment.id, form_id=appointment.form_id)
		try:
			self.notifier.emit(event)
		except Exception as e:
			logger.warning("Notification %s failed for %s: %s", event_type.value, appointment.id, e)
			warnings.append(f"notification_failed: {event_type.value} ({e})")


def day_bounds(rule_set: AvailabilityRuleSet, slot: Slot):
	"""
	Rango de lectura para el re-check: el día local completo del slot,
	ampliado por el buffer.
	"""
	day = rule_set.local_date(slot.start)
	buffer = timedelta(minutes=rule_set.buffer_minutes)
	lo = min(rule_set.at(day, timedelta(0)), slot.start) - buffer
	hi = max(rule_set.at(day + timedelta(days=1), timedelta(0)), slot.end) + buffer
	return lo, hi
