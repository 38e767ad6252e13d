"""
Base Calendar Connector

Defines the interface that all calendar connectors must implement.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from wd_appointments.wd_appointments.scheduling.models import Appointment, BusyInterval
from wd_appointments.wd_appointments.scheduling.timewindow import TimeWindow


class CalendarConnector(ABC):
	"""
	Interfaz base para conectores de calendario externo.

	list_busy alimenta el ConflictFilter; los métodos de eventos son
	best-effort y nunca deciden si una reserva se confirma.
	"""

	@abstractmethod
	def list_busy(self, window: TimeWindow) -> List[BusyInterval]:
		"""
		Bloques ocupados que se solapan con `window`.

		Raises:
			CalendarSyncError: si el proveedor no responde
		"""
		pass

	@abstractmethod
	def create_event(self, appointment: Appointment) -> Optional[str]:
		"""
		Crea un evento para la cita.

		Returns:
			str: id del evento en el proveedor

		Raises:
			CalendarSyncError: si falla la creación
		"""
		pass

	@abstractmethod
	def update_event(self, event_id: str, appointment: Appointment) -> bool:
		"""Actualiza un evento existente (reprogramación)."""
		pass

	@abstractmethod
	def delete_event(self, event_id: str) -> bool:
		"""Elimina un evento (cancelación)."""
		pass


class NullCalendarConnector(CalendarConnector):
	"""Used when calendar sync is disabled: no busy time, no events."""

	def list_busy(self, window: TimeWindow) -> List[BusyInterval]:
		return []

	def create_event(self, appointment: Appointment) -> Optional[str]:
		return None

	def update_event(self, event_id: str, appointment: Appointment) -> bool:
		return False

	def delete_event(self, event_id: str) -> bool:
		return False


class CalendarSyncError(Exception):
	"""Excepción para errores del proveedor de calendario."""
	pass


class UnavailableCalendarConnector(CalendarConnector):
	"""
	Stands in for a connector that could not be built (expired token,
	provider down). Every call fails with CalendarSyncError, so bookings
	go through as degraded successes instead of failing.
	"""

	def __init__(self, reason: str):
		self.reason = reason

	def list_busy(self, window: TimeWindow) -> List[BusyInterval]:
		raise CalendarSyncError(f"calendar unavailable: {self.reason}")

	def create_event(self, appointment: Appointment) -> Optional[str]:
		raise CalendarSyncError(f"calendar unavailable: {self.reason}")

	def update_event(self, event_id: str, appointment: Appointment) -> bool:
		raise CalendarSyncError(f"calendar unavailable: {self.reason}")

	def delete_event(self, event_id: str) -> bool:
		raise CalendarSyncError(f"calendar unavailable: {self.reason}")
