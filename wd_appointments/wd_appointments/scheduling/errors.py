"""
Scheduling Errors

Exception taxonomy for the availability and booking engine:
- ValidationError: malformed configuration or input, never retried
- BookingConflictError: the requested slot is no longer bookable
- TransientBookingError: storage failure during check-and-commit, retryable
- NotFoundError: unknown form or appointment
"""

from enum import Enum
from typing import Optional


class ConflictReason(str, Enum):
	"""Rule violated by a booking request."""

	OVERLAP = "overlap"
	BUFFER = "buffer"
	DAILY_LIMIT = "daily_limit"
	BUSY_CALENDAR = "busy_calendar"
	STALE_NOTICE = "stale_notice"
	UNAVAILABLE = "unavailable"


class SchedulingError(Exception):
	"""Base exception for the scheduling engine."""

	pass


class ValidationError(SchedulingError):
	"""
	Configuración o entrada inválida.

	Args:
		code: identificador estable del error (ej. "overlapping_hours")
		message: detalle legible para logs y UI
	"""

	def __init__(self, code: str, message: Optional[str] = None):
		self.code = code
		self.message = message or code
		super().__init__(f"{code}: {self.message}" if message else code)


class BookingConflictError(SchedulingError):
	"""Raised when a slot fails the re-check at commit time."""

	def __init__(self, reason: ConflictReason, message: Optional[str] = None):
		self.reason = ConflictReason(reason)
		self.message = message or f"Slot not available ({self.reason.value})"
		super().__init__(self.message)


class TransientBookingError(SchedulingError):
	"""Storage failed during the atomic check-and-commit; nothing was written."""

	pass


class NotFoundError(SchedulingError):
	"""Raised when a form or appointment does not exist."""

	pass
