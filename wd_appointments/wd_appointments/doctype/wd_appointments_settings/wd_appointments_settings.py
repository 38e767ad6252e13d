# Copyright (c) 2026, WD Appointments contributors
# For license information, please see license.txt

import frappe
import pytz
from frappe import _
from frappe.model.document import Document
from frappe.utils import cint

CALENDAR_TYPES = ("None", "Google")


class WDAppointmentsSettings(Document):
	"""
	Configuración global del host (single DocType).

	Campos: timezone, email_verification, calendar_type, google_calendar,
	calendar_sync_enabled, allow_rescheduling, max_future_days,
	notification_users.
	"""

	def validate(self) -> None:
		self._validate_timezone()
		self._validate_max_future_days()
		self._validate_calendar()

	def on_update(self) -> None:
		frappe.clear_document_cache(self.doctype, self.name)

	def _validate_timezone(self) -> None:
		"""Zona IANA válida o "system timezone"."""
		if not self.timezone or self.timezone == "system timezone":
			return
		if self.timezone not in pytz.all_timezones_set:
			frappe.throw(_("Timezone inválida: {0}").format(self.timezone))

	def _validate_max_future_days(self) -> None:
		if cint(self.max_future_days) < 0:
			frappe.throw(_("Max Future Days no puede ser negativo"))

	def _validate_calendar(self) -> None:
		"""La sincronización requiere un calendario soportado y una cuenta."""
		calendar_type = self.calendar_type or "None"
		if calendar_type not in CALENDAR_TYPES:
			frappe.throw(_("Calendar Type no soportado: {0}").format(calendar_type))

		if not self.calendar_sync_enabled:
			return

		if calendar_type == "None":
			frappe.throw(_("Seleccione un Calendar Type para activar la sincronización"))
		if calendar_type == "Google" and not self.google_calendar:
			frappe.throw(_("Google Calendar es requerido para sincronizar con Google"))
