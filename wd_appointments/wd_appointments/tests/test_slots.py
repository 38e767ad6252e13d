"""
Tests for scheduling/slots.py

Tests discrete slot generation, minimum notice and slot formatting.
"""

import unittest
from datetime import date, timedelta

from wd_appointments.wd_appointments.scheduling.errors import ValidationError
from wd_appointments.wd_appointments.scheduling.models import Slot
from wd_appointments.wd_appointments.scheduling.rules import DateRange
from wd_appointments.wd_appointments.scheduling.slots import format_slot, generate, is_offered
from wd_appointments.wd_appointments.tests.utils import MONDAY, make_rule_set, utc, weekday_hours

# Muy en el pasado: el aviso mínimo no filtra nada
EPOCH = utc(2000, 1, 1)


def monday_only():
	return DateRange(MONDAY, MONDAY)


class TestGenerate(unittest.TestCase):
	"""Tests for slots.generate()."""

	def test_monday_morning_hourly(self):
		"""09:00-12:00 with 60 minute slots gives three slots."""
		slots = list(generate(make_rule_set(60), monday_only(), now=EPOCH, form_id="BF-1"))

		self.assertEqual([s.start for s in slots], [utc(2026, 1, 5, h) for h in (9, 10, 11)])
		self.assertEqual([s.end for s in slots], [utc(2026, 1, 5, h) for h in (10, 11, 12)])
		self.assertTrue(all(s.form_id == "BF-1" for s in slots))

	def test_window_exactly_one_slot(self):
		"""[09:00, 09:30) with 30 minute slots yields exactly one slot."""
		rule_set = make_rule_set(30, availableHours={"monday": [{"start": "09:00", "end": "09:30"}]})
		slots = list(generate(rule_set, monday_only(), now=EPOCH))

		self.assertEqual(len(slots), 1)
		self.assertEqual((slots[0].start, slots[0].end), (utc(2026, 1, 5, 9), utc(2026, 1, 5, 9, 30)))

	def test_window_shorter_than_duration(self):
		"""[09:00, 09:29) with 30 minute slots yields nothing."""
		rule_set = make_rule_set(30, availableHours={"monday": [{"start": "09:00", "end": "09:29"}]})
		self.assertEqual(list(generate(rule_set, monday_only(), now=EPOCH)), [])

	def test_partial_slot_at_window_end_dropped(self):
		rule_set = make_rule_set(45, availableHours={"monday": [{"start": "09:00", "end": "10:40"}]})
		slots = list(generate(rule_set, monday_only(), now=EPOCH))
		self.assertEqual([s.start for s in slots], [utc(2026, 1, 5, 9), utc(2026, 1, 5, 9, 45)])

	def test_minimum_notice(self):
		"""
		With 24h notice and now = 2024-01-01 10:00, a slot 23h ahead is
		dropped and one 24h + 1s ahead is kept.
		"""
		rule_set = make_rule_set(60, minimumNotice=24, availableHours={"tuesday": [
			{"start": "09:00", "end": "10:00"},
			{"start": "10:00:01", "end": "11:00:01"},
		]})
		tuesday = date(2024, 1, 2)
		slots = list(generate(rule_set, DateRange(tuesday, tuesday), now=utc(2024, 1, 1, 10)))

		self.assertEqual([s.start for s in slots], [utc(2024, 1, 2, 10, 0, 1)])

	def test_deterministic(self):
		"""Two calls with the same inputs produce the same sequence."""
		rule_set = make_rule_set(20, availableHours=weekday_hours(("08:00", "12:00"), ("13:00", "17:30")))
		query = DateRange(MONDAY, MONDAY + timedelta(days=13))

		first = list(generate(rule_set, query, now=EPOCH, form_id="BF-1"))
		second = list(generate(rule_set, query, now=EPOCH, form_id="BF-1"))

		self.assertEqual(first, second)
		self.assertEqual(len(first), 10 * (12 + 13))
		self.assertEqual(first, sorted(first, key=lambda s: s.start))

	def test_date_range_intersection(self):
		rule_set = make_rule_set(60, dateRange={"start": "2026-01-12", "end": "2026-01-12"})
		slots = list(generate(rule_set, DateRange(MONDAY, MONDAY + timedelta(days=14)), now=EPOCH))
		self.assertEqual({s.start.date() for s in slots}, {date(2026, 1, 12)})

	def test_disjoint_date_range_is_empty(self):
		rule_set = make_rule_set(60, dateRange={"start": "2026-02-01", "end": "2026-02-28"})
		self.assertEqual(list(generate(rule_set, monday_only(), now=EPOCH)), [])

	def test_query_range_needs_both_ends(self):
		with self.assertRaises(ValidationError):
			list(generate(make_rule_set(), DateRange(MONDAY, None), now=EPOCH))

	def test_host_timezone(self):
		"""Weekly hours are wall-clock times in the host timezone."""
		rule_set = make_rule_set(60, host_timezone="America/Bogota")
		slots = list(generate(rule_set, monday_only(), now=EPOCH))
		self.assertEqual(slots[0].start, utc(2026, 1, 5, 14))
		self.assertEqual(slots[-1].end, utc(2026, 1, 5, 17))

	def test_spring_forward_has_no_duplicate_slots(self):
		"""
		On 2026-03-08 New York skips 02:00-03:00: a full-day Sunday window
		gives 23 hourly slots, strictly ascending and never overlapping.
		"""
		rule_set = make_rule_set(
			60,
			host_timezone="America/New_York",
			availableHours={"sunday": [{"start": "00:00", "end": "24:00"}]},
		)
		sunday = date(2026, 3, 8)
		slots = list(generate(rule_set, DateRange(sunday, sunday), now=EPOCH))

		self.assertEqual(len(slots), 23)
		self.assertEqual(len({s.start for s in slots}), 23)
		for current, following in zip(slots, slots[1:]):
			self.assertLessEqual(current.end, following.start)
		# 01:00 EST -> 03:00 EDT son 60 minutos reales
		self.assertEqual(slots[1].start, utc(2026, 3, 8, 6))
		self.assertEqual(slots[2].start, utc(2026, 3, 8, 7))

	def test_spring_forward_half_hour_slots(self):
		rule_set = make_rule_set(
			30,
			host_timezone="America/New_York",
			availableHours={"sunday": [{"start": "01:00", "end": "05:00"}]},
		)
		sunday = date(2026, 3, 8)
		slots = list(generate(rule_set, DateRange(sunday, sunday), now=EPOCH))

		starts = [s.start for s in slots]
		self.assertEqual(starts, sorted(set(starts)))
		for current, following in zip(slots, slots[1:]):
			self.assertLessEqual(current.end, following.start)
		for candidate in slots:
			self.assertTrue(is_offered(rule_set, candidate))

	def test_booking_horizon(self):
		"""max_future_days bounds the walk however far the query reaches."""
		rule_set = make_rule_set(
			60,
			max_future_days=7,
			availableHours=weekday_hours(("09:00", "10:00")),
		)
		now = utc(2026, 1, 1, 8)
		slots = list(generate(rule_set, DateRange(date(2026, 1, 1), date(9999, 12, 31)), now=now))

		# jueves 1 a jueves 8 de enero: 6 días hábiles
		self.assertEqual([s.start.date() for s in slots], [
			date(2026, 1, 1), date(2026, 1, 2), date(2026, 1, 5),
			date(2026, 1, 6), date(2026, 1, 7), date(2026, 1, 8),
		])


class TestIsOffered(unittest.TestCase):

	def test_grid_slot_is_offered(self):
		rule_set = make_rule_set(60)
		self.assertTrue(is_offered(rule_set, Slot(utc(2026, 1, 5, 10), utc(2026, 1, 5, 11), "BF-1")))

	def test_off_grid_slot_is_not_offered(self):
		rule_set = make_rule_set(60)
		self.assertFalse(is_offered(rule_set, Slot(utc(2026, 1, 5, 9, 30), utc(2026, 1, 5, 10, 30), "BF-1")))
		self.assertFalse(is_offered(rule_set, Slot(utc(2026, 1, 5, 10), utc(2026, 1, 5, 10, 30), "BF-1")))

	def test_day_without_hours(self):
		rule_set = make_rule_set(60)
		self.assertFalse(is_offered(rule_set, Slot(utc(2026, 1, 6, 10), utc(2026, 1, 6, 11), "BF-1")))

	def test_outside_date_range(self):
		rule_set = make_rule_set(60, dateRange={"start": "2026-01-12"})
		self.assertFalse(is_offered(rule_set, Slot(utc(2026, 1, 5, 10), utc(2026, 1, 5, 11), "BF-1")))


class TestFormatSlot(unittest.TestCase):

	def test_host_policy(self):
		rule_set = make_rule_set(60, host_timezone="America/Bogota")
		data = format_slot(Slot(utc(2026, 1, 5, 14), utc(2026, 1, 5, 15), "BF-1"), rule_set, "Europe/Madrid")

		self.assertEqual(data["start"], "2026-01-05 09:00:00")
		self.assertEqual(data["end"], "2026-01-05 10:00:00")
		self.assertEqual(data["start_utc"], "2026-01-05T14:00:00+00:00")
		self.assertEqual(data["timezone"], "America/Bogota")
		self.assertEqual(data["timezone_policy"], "host")
		self.assertNotIn("client_start", data)

	def test_client_policy_adds_client_labels(self):
		rule_set = make_rule_set(60, host_timezone="America/Bogota", timezone="client")
		data = format_slot(Slot(utc(2026, 1, 5, 14), utc(2026, 1, 5, 15), "BF-1"), rule_set, "Europe/Madrid")

		self.assertEqual(data["start"], "2026-01-05 09:00:00")
		self.assertEqual(data["client_timezone"], "Europe/Madrid")
		self.assertEqual(data["client_start"], "2026-01-05 15:00:00")
		self.assertEqual(data["client_end"], "2026-01-05 16:00:00")

	def test_unknown_client_timezone(self):
		rule_set = make_rule_set(60, timezone="client")
		with self.assertRaises(ValidationError):
			format_slot(Slot(utc(2026, 1, 5, 9), utc(2026, 1, 5, 10), "BF-1"), rule_set, "Nowhere/Land")


if __name__ == "__main__":
	unittest.main()
