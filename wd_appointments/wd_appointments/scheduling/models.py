"""
Scheduling Data Model

Value types shared by the engine: slots, appointments, busy intervals,
lifecycle events and the appointment status state machine.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from .errors import ValidationError
from .timewindow import TimeWindow

# External calendar busy time is a plain half-open window
BusyInterval = TimeWindow


class AppointmentStatus(str, Enum):
	PENDING = "pending"
	CONFIRMED = "confirmed"
	CANCELLED = "cancelled"
	COMPLETED = "completed"


# Statuses that occupy time and count toward daily limits
ACTIVE_STATUSES: FrozenSet[AppointmentStatus] = frozenset({
	AppointmentStatus.PENDING,
	AppointmentStatus.CONFIRMED,
})

ALLOWED_TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
	AppointmentStatus.PENDING: frozenset({AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}),
	AppointmentStatus.CONFIRMED: frozenset({AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED}),
	AppointmentStatus.CANCELLED: frozenset(),
	AppointmentStatus.COMPLETED: frozenset(),
}


class BookingEventType(str, Enum):
	CREATED = "booking_created"
	CONFIRMED = "booking_confirmed"
	CANCELLED = "booking_cancelled"


@dataclass(frozen=True)
class Slot:
	"""A candidate bookable interval [start, end) for one form."""

	start: datetime
	end: datetime
	form_id: str

	def __post_init__(self):
		if self.start >= self.end:
			raise ValidationError("invalid_interval", "slot start must be before end")

	@property
	def window(self) -> TimeWindow:
		return TimeWindow(self.start, self.end)


@dataclass(frozen=True)
class ClientInfo:
	"""Datos del cliente que reserva; el motor no los interpreta."""

	name: str = ""
	email: str = ""
	extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Appointment:
	"""
	Cita pendiente o confirmada.

	El dueño del registro es el Appointment store; el motor sólo la lee
	para detectar conflictos y la crea en attempt_book.
	"""

	form_id: str
	start: datetime
	end: datetime
	status: AppointmentStatus = AppointmentStatus.PENDING
	id: Optional[str] = None
	client_info: ClientInfo = field(default_factory=ClientInfo)
	calendar_event_id: Optional[str] = None

	def __post_init__(self):
		self.status = AppointmentStatus(self.status)

	@property
	def window(self) -> TimeWindow:
		return TimeWindow(self.start, self.end)

	@property
	def is_active(self) -> bool:
		return self.status in ACTIVE_STATUSES


@dataclass(frozen=True)
class BookingEvent:
	"""Lifecycle event handed to the notification sender."""

	type: BookingEventType
	appointment_id: str
	form_id: str

	def as_dict(self) -> Dict[str, str]:
		return {
			"type": self.type.value,
			"appointmentId": self.appointment_id,
			"formId": self.form_id,
		}


@dataclass
class BookingResult:
	"""Committed appointment plus any degraded-success warnings."""

	appointment: Appointment
	warnings: List[str] = field(default_factory=list)

	@property
	def degraded(self) -> bool:
		return bool(self.warnings)


def can_transition(current: AppointmentStatus, new_status: AppointmentStatus) -> bool:
	return AppointmentStatus(new_status) in ALLOWED_TRANSITIONS[AppointmentStatus(current)]


def transition(appointment: Appointment, new_status: AppointmentStatus) -> Appointment:
	"""
	Return a copy of `appointment` moved to `new_status`.

	Raises:
		ValidationError: if the state machine does not allow the move
	"""
	new_status = AppointmentStatus(new_status)
	if not can_transition(appointment.status, new_status):
		raise ValidationError(
			"invalid_transition",
			f"cannot move appointment {appointment.id} from {appointment.status.value} to {new_status.value}"
		)
	return replace(appointment, status=new_status)
