"""
Slot Generation Service

Expands an AvailabilityRuleSet into discrete candidate slots for a
date range, before any conflict filtering:
- Date range intersection
- Weekly hour windows in host time
- Minimum notice cutoff
"""

from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterator, Optional

import pytz

from .errors import ValidationError
from .models import Slot
from .rules import AvailabilityRuleSet, DateRange, TimezonePolicy

SLOT_FORMAT = "%Y-%m-%d %H:%M:%S"


def generate(
	rule_set: AvailabilityRuleSet,
	query_range: DateRange,
	now: Optional[datetime] = None,
	form_id: str = ""
) -> Iterator[Slot]:
	"""
	Genera slots candidatos en orden cronológico.

	Args:
		rule_set: configuración validada del form
		query_range: fechas consultadas (inclusivo, ambos extremos requeridos)
		now: instante de evaluación del aviso mínimo (default: ahora UTC)
		form_id: form dueño de los slots

	Returns:
		Iterador perezoso de Slot. Cada llamada recorre desde cero, así que
		dos llamadas con los mismos argumentos producen la misma secuencia.

	Algoritmo:
		1. Intersectar query_range con rule_set.date_range
		2. Para cada día, tomar las ventanas de su weekday
		3. Avanzar en pasos de slot_duration dentro de cada ventana,
		   emitiendo sólo slots completos
		4. Descartar slots que empiezan antes de now + minimumNotice
		   o después del horizonte max_future_days
	"""
	if query_range.start is None or query_range.end is None:
		raise ValidationError("invalid_parameter", "query range needs both start and end dates")

	if now is None:
		now = datetime.now(pytz.UTC)

	effective = rule_set.effective_range(query_range.start, query_range.end, now)
	if effective is None:
		return

	cutoff = rule_set.notice_cutoff(now)

	day, last_day = effective
	while day <= last_day:
		for slot in _day_slots(rule_set, day, form_id):
			if slot.start >= cutoff:
				yield slot
		day += timedelta(days=1)


def _day_slots(rule_set: AvailabilityRuleSet, day: date, form_id: str) -> Iterator[Slot]:
	"""Slots de un día sin aplicar aviso mínimo."""
	duration = rule_set.duration
	previous_end = None

	for window in rule_set.windows_for(day):
		offset = window.start
		# Slots parciales al final de la ventana nunca se ofrecen
		while offset + duration <= window.end:
			start = rule_set.at(day, offset)
			offset += duration
			# Horas inexistentes (cambio a horario de verano) caen sobre instantes ya emitidos
			if previous_end is not None and start < previous_end:
				continue
			end = rule_set.tz.normalize(start + duration)
			previous_end = end
			yield Slot(start=start, end=end, form_id=form_id)


def is_offered(rule_set: AvailabilityRuleSet, slot: Slot) -> bool:
	"""
	True iff `slot` is exactly one the generator emits for its day,
	ignoring minimum notice.
	"""
	day = rule_set.local_date(slot.start)
	if rule_set.date_range and not rule_set.date_range.includes(day):
		return False

	for candidate in _day_slots(rule_set, day, slot.form_id):
		if candidate.start == slot.start and candidate.end == slot.end:
			return True
		if candidate.start > slot.start:
			break

	return False


def format_slot(
	slot: Slot,
	rule_set: AvailabilityRuleSet,
	client_timezone: Optional[str] = None
) -> Dict[str, Any]:
	"""
	Serialize a slot for the booking UI.

	Host-local labels are always present. With the "client" timezone policy
	and a known client zone, client-local labels are added as well; the
	instants themselves never change.
	"""
	start = rule_set.localize(slot.start)
	end = rule_set.localize(slot.end)

	data = {
		"form_id": slot.form_id,
		"start": start.strftime(SLOT_FORMAT),
		"end": end.strftime(SLOT_FORMAT),
		"start_utc": start.astimezone(pytz.UTC).isoformat(),
		"end_utc": end.astimezone(pytz.UTC).isoformat(),
		"timezone": rule_set.host_timezone,
		"timezone_policy": rule_set.timezone_policy.value,
	}

	if rule_set.timezone_policy == TimezonePolicy.CLIENT and client_timezone:
		try:
			client_tz = pytz.timezone(client_timezone)
		except pytz.UnknownTimeZoneError:
			raise ValidationError("invalid_parameter", f"unknown timezone {client_timezone!r}")
		data["client_timezone"] = client_timezone
		data["client_start"] = start.astimezone(client_tz).strftime(SLOT_FORMAT)
		data["client_end"] = end.astimezone(client_tz).strftime(SLOT_FORMAT)

	return data
