"""Appointment ledger: persistence of bookings."""

import logging
from datetime import date, datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.core.errors import NotFound, SlotAlreadyBooked, ValidationError, WeeklyLimitExceeded
from backend.core.timeutils import day_bounds, week_start
from backend.models.appointment import (
    APPOINTMENT_STATUSES,
    STATUS_CANCELLED,
    STATUS_CONFIRMED,
    TERMINAL_STATUSES,
    Appointment,
)
from backend.services.configuration import APPOINTMENT_DURATION_MINUTES

logger = logging.getLogger(__name__)


def get(db: Session, appointment_id: int) -> Appointment:
    appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    if appointment is None:
        raise NotFound('Appointment not found.')
    return appointment


def list_all(db: Session) -> list[Appointment]:
    return db.query(Appointment).order_by(Appointment.date.asc()).all()


def by_user(db: Session, user_id: int) -> list[Appointment]:
    return db.query(Appointment).filter(Appointment.user_id == user_id).order_by(Appointment.date.asc()).all()


def by_date_range(db: Session, start: datetime, end: datetime) -> list[Appointment]:
    return db.query(Appointment).filter(
        Appointment.date >= start,
        Appointment.date <= end,
    ).order_by(Appointment.date.asc()).all()


def by_day(db: Session, day: date) -> list[Appointment]:
    start, end = day_bounds(day)
    return by_date_range(db, start, end)


def by_exact_date(db: Session, instant: datetime) -> list[Appointment]:
    return db.query(Appointment).filter(Appointment.date == instant).all()


def active_at(db: Session, instant: datetime) -> Appointment | None:
    return db.query(Appointment).filter(
        Appointment.date == instant,
        Appointment.status != STATUS_CANCELLED,
    ).first()


def active_in_week(db: Session, user_id: int, week: date) -> Appointment | None:
    return db.query(Appointment).filter(
        Appointment.user_id == user_id,
        Appointment.week_start == week,
        Appointment.status != STATUS_CANCELLED,
    ).first()


def create(db: Session, user_id: int, start: datetime) -> Appointment:
    week = week_start(start)
    appointment = Appointment(
        user_id=user_id,
        date=start,
        end_time=start + timedelta(minutes=APPOINTMENT_DURATION_MINUTES),
        week_start=week,
        status=STATUS_CONFIRMED,
        created_at=datetime.utcnow(),
    )
    db.add(appointment)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if active_at(db, start) is not None:
            raise SlotAlreadyBooked() from exc
        if active_in_week(db, user_id, week) is not None:
            raise WeeklyLimitExceeded() from exc
        raise

    db.refresh(appointment)
    logger.info('Created appointment %s for user %s at %s', appointment.id, user_id, start)
    return appointment


def update(db: Session, appointment: Appointment, changes: dict) -> Appointment:
    new_status = changes.get('status')
    if new_status is not None and new_status != appointment.status:
        if new_status not in APPOINTMENT_STATUSES:
            raise ValidationError('Invalid appointment status.')
        if appointment.status in TERMINAL_STATUSES:
            raise ValidationError(f'Appointment is already {appointment.status}.')

        logger.info('Appointment %s transitioned: %s -> %s', appointment.id, appointment.status, new_status)
        appointment.status = new_status

    db.commit()
    db.refresh(appointment)
    return appointment


def delete(db: Session, appointment: Appointment) -> None:
    appointment_id = appointment.id
    db.delete(appointment)
    db.commit()
    logger.info('Deleted appointment %s', appointment_id)
