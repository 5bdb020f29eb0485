"""Slot registry: admin-curated bookable instants.

A slot's ``status`` is derived at read time from its own ``is_enabled`` flag
and whether a non-cancelled appointment starts at the same instant. It is
never stored.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.core.errors import NotFound
from backend.core.timeutils import day_bounds
from backend.models.appointment import STATUS_CANCELLED, Appointment
from backend.models.availability import AvailableSlot
from backend.services.configuration import BookingSettings

logger = logging.getLogger(__name__)

SLOT_STATUS_AVAILABLE = 'available'
SLOT_STATUS_BOOKED = 'booked'
SLOT_STATUS_DISABLED = 'disabled'


@dataclass(frozen=True)
class SlotView:
    id: int
    date: datetime
    is_enabled: bool
    is_booked: bool

    @property
    def status(self) -> str:
        if not self.is_enabled:
            return SLOT_STATUS_DISABLED
        if self.is_booked:
            return SLOT_STATUS_BOOKED
        return SLOT_STATUS_AVAILABLE


def _booked_instants(db: Session, start: datetime, end: datetime) -> set[datetime]:
    rows = db.query(Appointment.date).filter(
        Appointment.status != STATUS_CANCELLED,
        Appointment.date >= start,
        Appointment.date <= end,
    ).all()
    return {booked_at for (booked_at,) in rows}


def _project(db: Session, slots: list[AvailableSlot]) -> list[SlotView]:
    if not slots:
        return []

    booked = _booked_instants(db, slots[0].date, slots[-1].date)
    return [
        SlotView(id=slot.id, date=slot.date, is_enabled=bool(slot.is_enabled), is_booked=slot.date in booked)
        for slot in slots
    ]


def list_for_range(db: Session, start: datetime, end: datetime) -> list[SlotView]:
    slots = db.query(AvailableSlot).filter(
        AvailableSlot.date >= start,
        AvailableSlot.date <= end,
    ).order_by(AvailableSlot.date.asc()).all()
    return _project(db, slots)


def list_for_date(db: Session, day: date) -> list[SlotView]:
    start, end = day_bounds(day)
    return list_for_range(db, start, end)


def list_all(db: Session) -> list[SlotView]:
    slots = db.query(AvailableSlot).order_by(AvailableSlot.date.asc()).all()
    return _project(db, slots)


def find_enabled_slot(db: Session, instant: datetime) -> AvailableSlot | None:
    return db.query(AvailableSlot).filter(
        AvailableSlot.date == instant,
        AvailableSlot.is_enabled.is_(True),
    ).first()


def create_slot(db: Session, instant: datetime, enabled: bool = True) -> AvailableSlot:
    existing = db.query(AvailableSlot).filter(AvailableSlot.date == instant).first()
    if existing is not None:
        return existing

    slot = AvailableSlot(date=instant, is_enabled=enabled)
    db.add(slot)
    try:
        db.commit()
    except IntegrityError:
        # Lost a race with another insert of the same instant.
        db.rollback()
        return db.query(AvailableSlot).filter(AvailableSlot.date == instant).one()

    db.refresh(slot)
    logger.info('Created slot %s at %s (enabled=%s)', slot.id, slot.date, slot.is_enabled)
    return slot


def update_slot(db: Session, slot_id: int, enabled: bool) -> AvailableSlot:
    slot = db.query(AvailableSlot).filter(AvailableSlot.id == slot_id).first()
    if slot is None:
        raise NotFound('Slot not found.')

    slot.is_enabled = enabled
    db.commit()
    db.refresh(slot)
    logger.info('Slot %s at %s is now enabled=%s', slot.id, slot.date, slot.is_enabled)
    return slot


def delete_slot(db: Session, slot_id: int) -> None:
    slot = db.query(AvailableSlot).filter(AvailableSlot.id == slot_id).first()
    if slot is None:
        raise NotFound('Slot not found.')

    db.delete(slot)
    db.commit()
    logger.info('Deleted slot %s', slot_id)


def generate_slots(
    db: Session,
    settings: BookingSettings,
    start_day: date,
    days: int = 7,
    enabled: bool = True,
) -> int:
    """Create every grid instant for ``days`` days starting at ``start_day``.

    Disabled weekdays are skipped and instants that already have a slot are
    left untouched. Returns the number of slots created.
    """
    candidates: list[datetime] = []
    for offset in range(days):
        day = start_day + timedelta(days=offset)
        if settings.is_disabled_day(day):
            continue
        candidates.extend(settings.slot_times_for(day))

    if not candidates:
        return 0

    existing = {
        instant
        for (instant,) in db.query(AvailableSlot.date).filter(
            AvailableSlot.date >= candidates[0],
            AvailableSlot.date <= candidates[-1],
        ).all()
    }

    new_slots = [AvailableSlot(date=instant, is_enabled=enabled) for instant in candidates if instant not in existing]
    db.add_all(new_slots)
    db.commit()

    logger.info('Generated %d slots for %d days starting %s', len(new_slots), days, start_day)
    return len(new_slots)
