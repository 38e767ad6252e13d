"""
In-Memory Stores

Process-local implementations of FormStore and AppointmentStore. The
appointment store serializes check-and-commit per form with one lock per
form_id, so concurrent bookings on unrelated forms never wait on each other.
Used by tests and by single-process deployments.
"""

import itertools
import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, Iterator, List, Optional

from .errors import NotFoundError
from .interfaces import AppointmentStore, BookingFormDefinition, FormStore
from .models import Appointment, AppointmentStatus


class InMemoryFormStore(FormStore):

	def __init__(self, forms: Optional[Iterable[BookingFormDefinition]] = None):
		self._forms: Dict[str, BookingFormDefinition] = {}
		for form in forms or []:
			self.save(form)

	def save(self, form: BookingFormDefinition) -> None:
		self._forms[form.form_id] = form

	def get_booking_form(self, form_id: str) -> BookingFormDefinition:
		try:
			return self._forms[form_id]
		except KeyError:
			raise NotFoundError(f"Booking Form {form_id} not found")


class InMemoryAppointmentStore(AppointmentStore):

	def __init__(self):
		self._appointments: Dict[str, Appointment] = {}
		self._ids = itertools.count(1)
		self._registry_lock = threading.Lock()
		self._form_locks: Dict[str, threading.Lock] = {}
		self._pending: threading.local = threading.local()

	def _lock_for(self, form_id: str) -> threading.Lock:
		with self._registry_lock:
			lock = self._form_locks.get(form_id)
			if lock is None:
				lock = self._form_locks[form_id] = threading.Lock()
			return lock

	@contextmanager
	def transaction(self, form_id: str) -> Iterator["InMemoryAppointmentStore"]:
		"""
		Hold the form's lock; writes are buffered and applied only if the
		block exits normally.
		"""
		with self._lock_for(form_id):
			self._pending.writes = {}
			try:
				yield self
			except BaseException:
				self._pending.writes = None
				raise
			writes, self._pending.writes = self._pending.writes, None
			with self._registry_lock:
				self._appointments.update(writes)

	def _write(self, appointment: Appointment) -> None:
		writes = getattr(self._pending, "writes", None)
		if writes is not None:
			writes[appointment.id] = appointment
			return
		with self._registry_lock:
			self._appointments[appointment.id] = appointment

	def _visible(self) -> List[Appointment]:
		with self._registry_lock:
			current = dict(self._appointments)
		current.update(getattr(self._pending, "writes", None) or {})
		return list(current.values())

	def list_appointments(
		self,
		form_id: Optional[str] = None,
		start: Optional[datetime] = None,
		end: Optional[datetime] = None,
		statuses: Optional[Iterable[AppointmentStatus]] = None
	) -> List[Appointment]:
		wanted = {AppointmentStatus(s) for s in statuses} if statuses is not None else None
		result = []
		for appt in self._visible():
			if form_id is not None and appt.form_id != form_id:
				continue
			if wanted is not None and appt.status not in wanted:
				continue
			if end is not None and appt.start >= end:
				continue
			if start is not None and appt.end <= start:
				continue
			result.append(replace(appt))
		result.sort(key=lambda a: (a.start, a.id))
		return result

	def get(self, appointment_id: str) -> Appointment:
		for appt in self._visible():
			if appt.id == appointment_id:
				return replace(appt)
		raise NotFoundError(f"Appointment {appointment_id} not found")

	def insert(self, appointment: Appointment) -> Appointment:
		with self._registry_lock:
			new_id = f"APT-{next(self._ids):05d}"
		stored = replace(appointment, id=new_id)
		self._write(stored)
		return replace(stored)

	def update(self, appointment: Appointment) -> Appointment:
		# Raises NotFoundError for unknown ids
		self.get(appointment.id)
		self._write(replace(appointment))
		return replace(appointment)
