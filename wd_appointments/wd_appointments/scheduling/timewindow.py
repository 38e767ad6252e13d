"""
Time Window Utilities

Pure interval arithmetic over half-open [start, end) ranges:
- overlaps / contains
- pad (buffer expansion)
- subtract / subtract_all
- merge of adjacent or overlapping windows
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List

from .errors import ValidationError


@dataclass(frozen=True, order=True)
class TimeWindow:
	"""Half-open interval [start, end)."""

	start: datetime
	end: datetime

	def __post_init__(self):
		if self.start >= self.end:
			raise ValidationError(
				"invalid_interval",
				f"start ({self.start.isoformat()}) must be before end ({self.end.isoformat()})"
			)

	@property
	def duration(self) -> timedelta:
		return self.end - self.start


def overlaps(a: TimeWindow, b: TimeWindow) -> bool:
	"""True iff a and b share at least one instant. Touching windows do not overlap."""
	return a.start < b.end and b.start < a.end


def contains(outer: TimeWindow, inner: TimeWindow) -> bool:
	return outer.start <= inner.start and inner.end <= outer.end


def pad(interval: TimeWindow, minutes: int) -> TimeWindow:
	"""
	Expande el intervalo `minutes` minutos hacia ambos lados.

	Se usa para aplicar el buffer de una cita existente antes de
	comprobar solapamiento.
	"""
	if minutes < 0:
		raise ValidationError("invalid_parameter", "padding must be non-negative")
	if not minutes:
		return interval
	delta = timedelta(minutes=minutes)
	return TimeWindow(interval.start - delta, interval.end + delta)


def subtract(interval: TimeWindow, block: TimeWindow) -> List[TimeWindow]:
	"""
	Resta un bloqueo de un intervalo.

	Args:
		interval: intervalo original
		block: bloqueo a restar

	Returns:
		list: 0, 1 o 2 intervalos resultantes
	"""
	# Block no se solapa -> intervalo original
	if not overlaps(interval, block):
		return [interval]

	result = []

	# Parte inicial que queda antes del bloqueo
	if block.start > interval.start:
		result.append(TimeWindow(interval.start, block.start))

	# Parte final que queda después del bloqueo
	if block.end < interval.end:
		result.append(TimeWindow(block.end, interval.end))

	return result


def subtract_all(base: TimeWindow, cuts: Iterable[TimeWindow]) -> List[TimeWindow]:
	"""
	Returns the ordered pieces of `base` left after removing every cut.

	Cuts may be unsorted, overlapping or fall outside `base`.
	"""
	remaining = [base]
	for cut in sorted(cuts):
		pieces = []
		for piece in remaining:
			pieces.extend(subtract(piece, cut))
		remaining = pieces
		if not remaining:
			break
	return remaining


def merge(windows: Iterable[TimeWindow]) -> List[TimeWindow]:
	"""
	Une intervalos adyacentes o solapados.

	Returns:
		list: intervalos ordenados y disjuntos
	"""
	ordered = sorted(windows)
	if not ordered:
		return []

	merged = [ordered[0]]
	for current in ordered[1:]:
		last = merged[-1]
		# Adyacente o solapado -> extender
		if current.start <= last.end:
			if current.end > last.end:
				merged[-1] = TimeWindow(last.start, current.end)
		else:
			merged.append(current)

	return merged
