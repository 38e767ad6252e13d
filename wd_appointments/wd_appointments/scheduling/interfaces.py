"""
Collaborator Interfaces

Minimal capabilities the engine needs from the outside world:
- FormStore: booking form definitions (scheduling blob + duration + policies)
- AppointmentStore: durable appointments with a per-form atomic section
- NotificationSink: booking lifecycle events

The calendar connector lives in calendar_sync.base.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ContextManager, Iterable, List, Mapping, Optional

from .models import Appointment, AppointmentStatus, BookingEvent
from .rules import AvailabilityRuleSet, build


@dataclass(frozen=True)
class BookingFormDefinition:
	"""
	Lo que el motor necesita de un Booking Form.

	`scheduling` es el blob persistido tal cual; el rule set se deriva
	en cada llamada a rule_set().
	"""

	form_id: str
	duration: int
	scheduling: Mapping[str, Any] = field(default_factory=dict)
	host_timezone: str = "UTC"
	email_verification: bool = True
	calendar_sync: bool = False
	allow_rescheduling: bool = False
	title: str = ""
	max_future_days: Optional[int] = None

	def rule_set(self) -> AvailabilityRuleSet:
		return build(self.scheduling, self.duration, self.host_timezone, self.max_future_days)


class FormStore(ABC):

	@abstractmethod
	def get_booking_form(self, form_id: str) -> BookingFormDefinition:
		"""
		Raises:
			NotFoundError: si el form no existe o no está activo
		"""
		pass


class AppointmentStore(ABC):
	"""
	Interfaz base para el almacenamiento de citas.

	transaction(form_id) delimita la sección atómica de check-and-commit:
	mientras un llamador la tenga abierta, ningún otro puede leer-y-escribir
	citas del mismo form. Forms distintos no se bloquean entre sí.
	"""

	@abstractmethod
	def transaction(self, form_id: str) -> ContextManager["AppointmentStore"]:
		"""Commit on normal exit, discard writes on exception."""
		pass

	@abstractmethod
	def list_appointments(
		self,
		form_id: Optional[str] = None,
		start: Optional[datetime] = None,
		end: Optional[datetime] = None,
		statuses: Optional[Iterable[AppointmentStatus]] = None
	) -> List[Appointment]:
		"""
		Citas que se solapan con [start, end), filtradas por form y estado.
		Los filtros en None no restringen.
		"""
		pass

	@abstractmethod
	def get(self, appointment_id: str) -> Appointment:
		"""
		Raises:
			NotFoundError: si la cita no existe
		"""
		pass

	@abstractmethod
	def insert(self, appointment: Appointment) -> Appointment:
		"""Persist a new appointment and return it with a stable id."""
		pass

	@abstractmethod
	def update(self, appointment: Appointment) -> Appointment:
		pass


class NotificationSink(ABC):

	@abstractmethod
	def emit(self, event: BookingEvent) -> None:
		"""Hand a lifecycle event to the notification sender."""
		pass
