"""
Scheduled Tasks

Background tasks that run periodically:
- complete_past_appointments: moves Confirmed appointments whose end has passed to Completed
"""

import logging
from datetime import datetime
from typing import Optional

import pytz

from .interfaces import AppointmentStore
from .models import AppointmentStatus, transition

logger = logging.getLogger(__name__)


def complete_past_appointments(store: AppointmentStore, now: Optional[datetime] = None) -> int:
	"""
	Marca como Completed las citas Confirmed cuyo fin ya pasó.

	Algoritmo:
		1. Buscar citas con status = confirmed y end <= now
		2. Para cada una, re-leer dentro de la sección del form y transicionar
		3. Log cantidad de citas completadas

	Pending appointments are left alone: only a confirmed booking can complete.

	Returns:
		int: cantidad de citas completadas
	"""
	if now is None:
		now = datetime.now(pytz.UTC)

	due = [
		appt for appt in store.list_appointments(statuses=[AppointmentStatus.CONFIRMED], end=now)
		if appt.end <= now
	]

	completed_count = 0

	for appt in due:
		with store.transaction(appt.form_id) as tx:
			current = tx.get(appt.id)
			# Pudo cancelarse entre la consulta y el lock
			if current.status != AppointmentStatus.CONFIRMED:
				continue
			tx.update(transition(current, AppointmentStatus.COMPLETED))

		completed_count += 1
		logger.info("Appointment %s completed (ended %s)", appt.id, appt.end.isoformat())

	if completed_count > 0:
		logger.info("complete_past_appointments: %s appointments completed", completed_count)

	return completed_count
