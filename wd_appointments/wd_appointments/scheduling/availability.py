"""
Availability Service

Read path of the engine: computes the bookable slots of a booking form
for a date range, combining
- Slot generation from the form's rule set
- Active appointments from the Appointment store
- Busy intervals from the calendar connector
"""

import logging
from datetime import date, datetime, timedelta
from typing import Callable, Iterable, List, Optional, Union

import pytz

from wd_appointments.wd_appointments.calendar_sync.base import CalendarConnector

from .conflicts import filter_slots
from .errors import ValidationError
from .interfaces import AppointmentStore, FormStore
from .models import ACTIVE_STATUSES, Appointment, BusyInterval, Slot
from .rules import AvailabilityRuleSet, DateRange
from .slots import generate
from .timewindow import TimeWindow, merge

logger = logging.getLogger(__name__)


def find_available_slots(
	rule_set: AvailabilityRuleSet,
	query_range: DateRange,
	appointments: Iterable[Appointment],
	busy_intervals: Iterable[BusyInterval],
	now: Optional[datetime] = None,
	form_id: str = ""
) -> List[Slot]:
	"""generate() followed by filter_slots() over one snapshot."""
	candidates = generate(rule_set, query_range, now=now, form_id=form_id)
	return list(filter_slots(candidates, appointments, busy_intervals, rule_set))


class AvailabilityService:
	"""
	Obtiene disponibilidad efectiva para un Booking Form.

	Args:
		forms: origen de las definiciones de Booking Form
		store: almacenamiento de citas
		calendar: conector de calendario externo (opcional)
		clock: devuelve "ahora"; inyectable para tests
	"""

	def __init__(
		self,
		forms: FormStore,
		store: AppointmentStore,
		calendar: Optional[CalendarConnector] = None,
		clock: Optional[Callable[[], datetime]] = None
	):
		self.forms = forms
		self.store = store
		self.calendar = calendar
		self.clock = clock

	def get_available_slots(
		self,
		form_id: str,
		start_date: Union[date, str],
		end_date: Union[date, str],
		now: Optional[datetime] = None
	) -> List[Slot]:
		"""
		Slots reservables del form entre start_date y end_date (inclusivo).

		Los resultados sólo valen para el instante de la llamada: el aviso
		mínimo se evalúa contra `now`.
		"""
		start_date = _to_date(start_date, "start_date")
		end_date = _to_date(end_date, "end_date")
		if start_date > end_date:
			raise ValidationError("invalid_date_range", "start_date must be on or before end_date")

		form = self.forms.get_booking_form(form_id)
		rule_set = form.rule_set()

		if now is None:
			now = self.clock() if self.clock is not None else datetime.now(pytz.UTC)

		if rule_set.max_future_days is not None and (end_date - start_date).days > rule_set.max_future_days:
			raise ValidationError(
				"invalid_date_range",
				f"date range spans more than {rule_set.max_future_days} days"
			)

		# Acotado al horizonte de reservas: nunca se recorre más allá de max_future_days
		effective = rule_set.effective_range(start_date, end_date, now)
		if effective is None:
			return []

		window = TimeWindow(
			rule_set.at(effective[0], timedelta(0)) - timedelta(minutes=rule_set.buffer_minutes),
			rule_set.at(effective[1] + timedelta(days=1), timedelta(0)) + timedelta(minutes=rule_set.buffer_minutes),
		)

		appointments = self.store.list_appointments(
			form_id=form_id,
			start=window.start,
			end=window.end,
			statuses=ACTIVE_STATUSES,
		)
		busy = self._busy(form.calendar_sync, form_id, window)

		return find_available_slots(
			rule_set,
			DateRange(start_date, end_date),
			appointments,
			busy,
			now=now,
			form_id=form_id,
		)

	def _busy(self, enabled: bool, form_id: str, window: TimeWindow) -> List[BusyInterval]:
		if not enabled or self.calendar is None:
			return []
		try:
			return merge(self.calendar.list_busy(window))
		except Exception as e:
			# Un calendario caído no debe bloquear la consulta; el re-check al reservar vuelve a intentarlo
			logger.warning("Busy calendar unavailable for form %s: %s", form_id, e)
			return []


def _to_date(value: Union[date, str], field_name: str) -> date:
	if isinstance(value, datetime):
		return value.date()
	if isinstance(value, date):
		return value
	try:
		return date.fromisoformat(str(value).strip())
	except ValueError:
		raise ValidationError("invalid_parameter", f"Invalid {field_name} format. Use YYYY-MM-DD")
