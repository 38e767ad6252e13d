# Copyright (c) 2026, WD Appointments contributors
# For license information, please see license.txt

"""
Booking Form DocType

Formulario público de reservas. Guarda la duración del slot y el blob
de scheduling (horario semanal, rango de fechas, buffer, aviso mínimo,
límite diario, política de zona horaria).
"""

from typing import Any, Dict

import frappe
from frappe import _
from frappe.model.document import Document

from wd_appointments.wd_appointments.scheduling.errors import ValidationError as SchedulingValidationError
from wd_appointments.wd_appointments.scheduling.rules import AvailabilityRuleSet, build
from wd_appointments.wd_appointments.storage import get_host_timezone, get_max_future_days

VALIDATION_MESSAGES = {
	"overlapping_hours": "Available hours overlap",
	"invalid_hours": "Invalid available hours",
	"invalid_parameter": "Invalid scheduling parameter",
	"invalid_date_range": "Date range start must be on or before its end",
}


class BookingForm(Document):
	"""
	Booking Form with scheduling validation.

	Validations:
	- title required
	- duration > 0
	- scheduling_settings must build a valid rule set
	"""

	def validate(self) -> None:
		"""
		Validación antes de guardar.
		"""
		self._validate_title()
		self._normalize_scheduling_settings()
		self._validate_rule_set()

	def get_scheduling_settings(self) -> Dict[str, Any]:
		"""Blob de scheduling como dict (vacío si no hay)."""
		return frappe.parse_json(self.scheduling_settings) or {}

	def get_rule_set(self) -> AvailabilityRuleSet:
		return build(self.get_scheduling_settings(), self.duration, get_host_timezone(), get_max_future_days())

	def _validate_title(self) -> None:
		"""Valida que title esté presente."""
		if not self.title:
			frappe.throw(_("Title es requerido"))

	def _normalize_scheduling_settings(self) -> None:
		"""Guarda el blob siempre como JSON canónico."""
		if isinstance(self.scheduling_settings, dict):
			self.scheduling_settings = frappe.as_json(self.scheduling_settings)

	def _validate_rule_set(self) -> None:
		try:
			self.get_rule_set()
		except SchedulingValidationError as e:
			label = VALIDATION_MESSAGES.get(e.code, "Invalid scheduling settings")
			frappe.throw(
				_("{0}: {1}").format(_(label), e.message),
				frappe.ValidationError,
				title=_("Scheduling Settings"),
			)
