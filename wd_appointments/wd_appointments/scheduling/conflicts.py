"""
Conflict Filter

Removes candidate slots that are no longer bookable:
- Overlap with active appointments (buffer applied to the appointment)
- Overlap with external calendar busy intervals (no buffer)
- Daily limit reached on the slot's host-local day

Slots are evaluated independently against one read-only snapshot, so
the same checks back both the availability listing and the narrow
re-check done at booking time.
"""

from collections import Counter
from datetime import date, datetime
from typing import Iterable, Iterator, List, Optional

from .errors import ConflictReason
from .models import Appointment, BusyInterval, Slot
from .rules import AvailabilityRuleSet
from .timewindow import TimeWindow, overlaps, pad


class ConflictSnapshot:
	"""
	Vista de sólo lectura de citas activas y bloques ocupados de un form.

	Args:
		form_id: form evaluado; las citas de otros forms se ignoran
		appointments: citas del store (cualquier estado)
		busy_intervals: bloques ocupados del calendario externo
		rule_set: reglas del form (buffer, dailyLimit, zona horaria)
		exclude_appointment_id: cita a ignorar (reprogramaciones)
	"""

	def __init__(
		self,
		form_id: str,
		appointments: Iterable[Appointment],
		busy_intervals: Iterable[BusyInterval],
		rule_set: AvailabilityRuleSet,
		exclude_appointment_id: Optional[str] = None
	):
		self.rule_set = rule_set
		self.active: List[TimeWindow] = []
		self.daily_counts: Counter = Counter()

		for appt in appointments:
			if appt.form_id != form_id or not appt.is_active:
				continue
			if exclude_appointment_id is not None and appt.id == exclude_appointment_id:
				continue
			self.active.append(appt.window)
			self.daily_counts[rule_set.local_date(appt.start)] += 1

		self.active.sort()
		self.busy: List[TimeWindow] = sorted(busy_intervals)

	def reason_for(self, slot: Slot) -> Optional[ConflictReason]:
		"""First violated rule for `slot`, or None when it is bookable."""
		window = slot.window
		buffer_minutes = self.rule_set.buffer_minutes

		buffered = False
		for existing in self.active:
			padded = pad(existing, buffer_minutes)
			# Ordenadas por inicio: nada posterior puede tocar el slot
			if padded.start >= window.end:
				break
			if overlaps(existing, window):
				return ConflictReason.OVERLAP
			if overlaps(padded, window):
				buffered = True
		if buffered:
			return ConflictReason.BUFFER

		for busy in self.busy:
			if busy.start >= window.end:
				break
			if overlaps(busy, window):
				return ConflictReason.BUSY_CALENDAR

		if self.rule_set.daily_limit is not None:
			if self.count_on(self.rule_set.local_date(slot.start)) >= self.rule_set.daily_limit:
				return ConflictReason.DAILY_LIMIT

		return None

	def count_on(self, day: date) -> int:
		return self.daily_counts[day]


def filter_slots(
	slots: Iterable[Slot],
	existing_appointments: Iterable[Appointment],
	busy_intervals: Iterable[BusyInterval],
	rule_set: AvailabilityRuleSet
) -> Iterator[Slot]:
	"""
	Yield the bookable subset of `slots`, preserving order.

	Appointments are matched against each slot's own form_id, so callers
	may pass the full appointment list of the store.
	"""
	existing_appointments = list(existing_appointments)
	busy_intervals = list(busy_intervals)
	snapshots = {}

	for slot in slots:
		snapshot = snapshots.get(slot.form_id)
		if snapshot is None:
			snapshot = ConflictSnapshot(slot.form_id, existing_appointments, busy_intervals, rule_set)
			snapshots[slot.form_id] = snapshot
		if snapshot.reason_for(slot) is None:
			yield slot


def check_slot(
	slot: Slot,
	existing_appointments: Iterable[Appointment],
	busy_intervals: Iterable[BusyInterval],
	rule_set: AvailabilityRuleSet,
	now: Optional[datetime] = None,
	exclude_appointment_id: Optional[str] = None
) -> Optional[ConflictReason]:
	"""
	Re-check a single requested slot.

	Order: stale_notice and unavailable past the booking horizon (only
	when `now` is given), overlap, buffer, busy_calendar, daily_limit.
	"""
	if now is not None:
		if slot.start < rule_set.notice_cutoff(now):
			return ConflictReason.STALE_NOTICE
		if rule_set.beyond_horizon(slot.start, now):
			return ConflictReason.UNAVAILABLE

	snapshot = ConflictSnapshot(
		slot.form_id,
		existing_appointments,
		busy_intervals,
		rule_set,
		exclude_appointment_id=exclude_appointment_id,
	)
	return snapshot.reason_for(slot)
