"""
Availability Rule Set

Immutable, validated representation of one booking form's scheduling
configuration. Built from the persisted settings blob on every request
via `build()`; never mutated afterwards.

Persisted shape (Booking Form -> scheduling_settings):

	{
		"dateRange": {"start": "2026-01-01", "end": "2026-03-31"},
		"availableHours": {
			"monday": [{"start": "09:00", "end": "12:00"}, {"start": "13:00", "end": "17:00"}],
			...
		},
		"bufferTime": 15,
		"minimumNotice": 24,
		"dailyLimit": 8,
		"timezone": "host"
	}
"""

import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union

import pytz

from .errors import ValidationError

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

END_OF_DAY = timedelta(hours=24)


class TimezonePolicy(str, Enum):
	"""Presentation only: slot arithmetic always runs in host time."""

	HOST = "host"
	CLIENT = "client"


@dataclass(frozen=True, order=True)
class DailyWindow:
	"""[start, end) expressed as offsets from local midnight."""

	start: timedelta
	end: timedelta

	@property
	def length(self) -> timedelta:
		return self.end - self.start

	def label(self) -> str:
		return f"{_format_offset(self.start)}-{_format_offset(self.end)}"


@dataclass(frozen=True)
class DateRange:
	"""Inclusive calendar-date bounds; either side may be open."""

	start: Optional[date] = None
	end: Optional[date] = None

	def includes(self, day: date) -> bool:
		if self.start and day < self.start:
			return False
		if self.end and day > self.end:
			return False
		return True


@dataclass(frozen=True)
class AvailabilityRuleSet:
	date_range: Optional[DateRange]
	weekly_hours: Tuple[Tuple[DailyWindow, ...], ...]
	slot_duration: int
	buffer_minutes: int = 0
	minimum_notice_hours: float = 0
	daily_limit: Optional[int] = None
	timezone_policy: TimezonePolicy = TimezonePolicy.HOST
	host_timezone: str = "UTC"
	max_future_days: Optional[int] = None

	@property
	def tz(self) -> pytz.BaseTzInfo:
		return pytz.timezone(self.host_timezone)

	@property
	def duration(self) -> timedelta:
		return timedelta(minutes=self.slot_duration)

	@property
	def notice(self) -> timedelta:
		return timedelta(hours=self.minimum_notice_hours)

	def windows_for(self, day: date) -> Tuple[DailyWindow, ...]:
		return self.weekly_hours[day.weekday()]

	def localize(self, value: datetime) -> datetime:
		"""Attach the host timezone to a naive datetime, or convert an aware one."""
		tz = self.tz
		if value.tzinfo is None:
			return tz.normalize(tz.localize(value))
		return value.astimezone(tz)

	def local_date(self, value: datetime) -> date:
		"""Calendar day of `value` in the host timezone."""
		return self.localize(value).date()

	def at(self, day: date, offset: timedelta) -> datetime:
		"""Absolute instant for a wall-clock offset on `day` in host time."""
		return self.localize(datetime.combine(day, time.min) + offset)

	def notice_cutoff(self, now: datetime) -> datetime:
		"""Earliest start a slot may have when evaluated at `now`."""
		return self.localize(now) + self.notice

	def horizon(self, now: datetime) -> Optional[Tuple[date, date]]:
		"""
		Días reservables según max_future_days: hoy (hora del host) hasta
		hoy + max_future_days, inclusivo. None si no hay límite.
		"""
		if self.max_future_days is None:
			return None
		today = self.local_date(now)
		return today, today + timedelta(days=self.max_future_days)

	def beyond_horizon(self, value: datetime, now: datetime) -> bool:
		bounds = self.horizon(now)
		return bounds is not None and self.local_date(value) > bounds[1]

	def effective_range(
		self,
		start: date,
		end: date,
		now: Optional[datetime] = None
	) -> Optional[Tuple[date, date]]:
		"""
		Intersección del rango consultado con dateRange y, si se pasa `now`,
		con el horizonte de reservas.

		Returns:
			(start, end) inclusivo, o None si la intersección es vacía
		"""
		if self.date_range:
			if self.date_range.start and self.date_range.start > start:
				start = self.date_range.start
			if self.date_range.end and self.date_range.end < end:
				end = self.date_range.end
		bounds = self.horizon(now) if now is not None else None
		if bounds:
			start = max(start, bounds[0])
			end = min(end, bounds[1])
		if start > end:
			return None
		return start, end


def build(
	config: Optional[Mapping[str, Any]],
	slot_duration: Any,
	host_timezone: Optional[str] = None,
	max_future_days: Optional[Any] = None
) -> AvailabilityRuleSet:
	"""
	Construye y valida un AvailabilityRuleSet desde la configuración persistida.

	Args:
		config: blob de scheduling del Booking Form (ver docstring del módulo)
		slot_duration: duración del slot en minutos (campo `duration` del form)
		host_timezone: zona horaria del host (pytz), default UTC
		max_future_days: horizonte de reservas en días; None sin límite

	Returns:
		AvailabilityRuleSet inmutable

	Raises:
		ValidationError: overlapping_hours, invalid_hours, invalid_parameter,
			invalid_date_range
	"""
	config = config or {}
	if not isinstance(config, Mapping):
		raise ValidationError("invalid_parameter", "scheduling settings must be an object")

	duration = _to_int(slot_duration, "duration")
	if duration <= 0:
		raise ValidationError("invalid_parameter", "duration must be a positive number of minutes")

	buffer_minutes = _to_int(config.get("bufferTime") or 0, "bufferTime")
	if buffer_minutes < 0:
		raise ValidationError("invalid_parameter", "bufferTime must be non-negative")

	notice = _to_number(config.get("minimumNotice") or 0, "minimumNotice")
	if notice < 0:
		raise ValidationError("invalid_parameter", "minimumNotice must be non-negative")

	daily_limit = None
	if config.get("dailyLimit") not in (None, ""):
		daily_limit = _to_int(config.get("dailyLimit"), "dailyLimit")
		if daily_limit <= 0:
			raise ValidationError("invalid_parameter", "dailyLimit must be a positive integer")

	try:
		policy = TimezonePolicy(config.get("timezone") or TimezonePolicy.HOST.value)
	except ValueError:
		raise ValidationError("invalid_parameter", f"unknown timezone policy {config.get('timezone')!r}")

	tz_name = host_timezone or "UTC"
	try:
		pytz.timezone(tz_name)
	except pytz.UnknownTimeZoneError:
		raise ValidationError("invalid_parameter", f"unknown timezone {tz_name!r}")

	horizon_days = None
	if max_future_days not in (None, ""):
		horizon_days = _to_int(max_future_days, "max_future_days")
		if horizon_days < 0:
			raise ValidationError("invalid_parameter", "max_future_days must be non-negative")

	return AvailabilityRuleSet(
		date_range=_build_date_range(config.get("dateRange")),
		weekly_hours=_build_weekly_hours(config.get("availableHours") or {}),
		slot_duration=duration,
		buffer_minutes=buffer_minutes,
		minimum_notice_hours=notice,
		daily_limit=daily_limit,
		timezone_policy=policy,
		host_timezone=tz_name,
		max_future_days=horizon_days,
	)


def _build_date_range(raw: Optional[Mapping[str, Any]]) -> Optional[DateRange]:
	if not raw:
		return None
	if not isinstance(raw, Mapping):
		raise ValidationError("invalid_parameter", "dateRange must be an object with start and end")

	start = _to_date(raw.get("start"), "dateRange.start")
	end = _to_date(raw.get("end"), "dateRange.end")
	if start is None and end is None:
		return None

	if start and end and start > end:
		raise ValidationError("invalid_date_range", f"dateRange start {start} is after end {end}")

	return DateRange(start=start, end=end)


def _build_weekly_hours(raw: Mapping[str, Any]) -> Tuple[Tuple[DailyWindow, ...], ...]:
	if not isinstance(raw, Mapping):
		raise ValidationError("invalid_parameter", "availableHours must map weekdays to lists of windows")

	days: Dict[str, Iterable[Mapping[str, Any]]] = {}
	for key, windows in raw.items():
		day = str(key).strip().lower()
		if day not in WEEKDAYS:
			raise ValidationError("invalid_parameter", f"unknown weekday {key!r}")
		if windows and not isinstance(windows, (list, tuple)):
			raise ValidationError("invalid_hours", f"{day}: expected a list of windows")
		days[day] = windows or []

	weekly = []
	for day in WEEKDAYS:
		windows = []
		for entry in days.get(day, []):
			if not isinstance(entry, Mapping):
				raise ValidationError("invalid_hours", f"{day}: each window needs start and end, got {entry!r}")
			start = _to_offset(entry.get("start"), f"{day}.start")
			end = _to_offset(entry.get("end"), f"{day}.end")
			if start >= end:
				raise ValidationError(
					"invalid_hours",
					f"{day}: start {_format_offset(start)} must be before end {_format_offset(end)}"
				)
			windows.append(DailyWindow(start, end))

		windows.sort()

		# Comparar cada par consecutivo
		for current, following in zip(windows, windows[1:]):
			if current.end > following.start:
				raise ValidationError(
					"overlapping_hours",
					f"{day}: {current.label()} overlaps {following.label()}"
				)

		weekly.append(tuple(windows))

	return tuple(weekly)


def _to_offset(value: Union[time, timedelta, str, None], field_name: str) -> timedelta:
	"""
	Convierte diferentes formatos de hora a offset desde medianoche.

	Args:
		value: time, timedelta (desde medianoche) o string HH:MM[:SS];
			"24:00" representa el fin del día
	"""
	if isinstance(value, timedelta):
		offset = value
	elif isinstance(value, time):
		offset = timedelta(hours=value.hour, minutes=value.minute, seconds=value.second)
	elif isinstance(value, str) and value.strip():
		parts = value.strip().split(":")
		try:
			if len(parts) not in (2, 3):
				raise ValueError(value)
			hours, minutes = int(parts[0]), int(parts[1])
			seconds = int(parts[2]) if len(parts) == 3 else 0
		except ValueError:
			raise ValidationError("invalid_hours", f"{field_name}: invalid time {value!r}, use HH:MM")
		if not (0 <= minutes < 60 and 0 <= seconds < 60):
			raise ValidationError("invalid_hours", f"{field_name}: invalid time {value!r}")
		offset = timedelta(hours=hours, minutes=minutes, seconds=seconds)
	else:
		raise ValidationError("invalid_hours", f"{field_name} is required")

	if offset < timedelta(0) or offset > END_OF_DAY:
		raise ValidationError("invalid_hours", f"{field_name}: {value!r} is outside the day")

	return offset


def _to_date(value: Any, field_name: str) -> Optional[date]:
	if value in (None, ""):
		return None
	if isinstance(value, datetime):
		return value.date()
	if isinstance(value, date):
		return value
	try:
		# Acepta "YYYY-MM-DD" y timestamps ISO del date picker
		return date.fromisoformat(str(value).strip()[:10])
	except ValueError:
		raise ValidationError("invalid_parameter", f"{field_name}: invalid date {value!r}")


def _to_int(value: Any, field_name: str) -> int:
	number = _to_number(value, field_name)
	if number != int(number):
		raise ValidationError("invalid_parameter", f"{field_name} must be a whole number")
	return int(number)


def _to_number(value: Any, field_name: str) -> float:
	if isinstance(value, bool):
		raise ValidationError("invalid_parameter", f"{field_name} must be a number")
	try:
		number = float(value)
	except (TypeError, ValueError):
		raise ValidationError("invalid_parameter", f"{field_name} must be a number, got {value!r}")
	if not math.isfinite(number):
		raise ValidationError("invalid_parameter", f"{field_name} must be finite")
	return number


def _format_offset(offset: timedelta) -> str:
	total = int(offset.total_seconds())
	hours, rest = divmod(total, 3600)
	minutes, seconds = divmod(rest, 60)
	if seconds:
		return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
	return f"{hours:02d}:{minutes:02d}"
