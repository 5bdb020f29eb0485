"""Automatic confirmed -> completed transition for past appointments.

An appointment counts as done once 7 PM has passed on its own calendar day.
Running the sweep again is a no-op for appointments it already completed.
"""

import logging
from datetime import datetime, time

from sqlalchemy.orm import Session

from backend.models.appointment import STATUS_COMPLETED, STATUS_CONFIRMED, Appointment

logger = logging.getLogger(__name__)

COMPLETION_CUTOFF = time(19, 0)


def completion_cutoff(appointment_start: datetime) -> datetime:
    return datetime.combine(appointment_start.date(), COMPLETION_CUTOFF)


def complete_past_appointments(db: Session, now: datetime, user_id: int | None = None) -> int:
    query = db.query(Appointment).filter(
        Appointment.status == STATUS_CONFIRMED,
        Appointment.date <= now,
    )
    if user_id is not None:
        query = query.filter(Appointment.user_id == user_id)

    completed = 0
    for appointment in query.all():
        if now < completion_cutoff(appointment.date):
            continue
        appointment.status = STATUS_COMPLETED
        completed += 1
        logger.info('Appointment %s transitioned: confirmed -> completed', appointment.id)

    if completed:
        db.commit()
    return completed
