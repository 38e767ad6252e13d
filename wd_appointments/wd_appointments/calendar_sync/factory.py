"""
Calendar Connector Factory

Factory pattern to get the correct connector based on calendar type.
"""

from typing import Optional

from .base import CalendarConnector, NullCalendarConnector


def get_connector(
	calendar_type: Optional[str],
	account: Optional[str] = None,
	summary: str = "Appointment"
) -> CalendarConnector:
	"""
	Factory para obtener el connector correcto según el tipo de calendario.

	Args:
		calendar_type: "google", o vacío/"none" si no hay sincronización
		account: nombre del registro de cuenta del proveedor
		summary: título para los eventos creados

	Returns:
		CalendarConnector: instancia del connector

	Raises:
		ValueError: si calendar_type no es soportado o falta la cuenta
	"""
	calendar_type = (calendar_type or "").strip().lower()

	if not calendar_type or calendar_type == "none":
		return NullCalendarConnector()
	elif calendar_type == "google":
		if not account:
			raise ValueError("A Google Calendar account is required for calendar sync")
		from .google_calendar import GoogleCalendarConnector
		return GoogleCalendarConnector.from_frappe_account(account, summary=summary)
	else:
		raise ValueError(f"Unsupported calendar type: {calendar_type}")
