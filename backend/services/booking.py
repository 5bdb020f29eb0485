"""Booking validation and appointment creation.

``validate_booking`` runs the booking rules in a fixed order and raises the
first failure, so the client always gets the most specific reason:

1. account block
2. one active appointment per Sunday-anchored week
3. disabled weekday
4. morning/afternoon slot grid on 15-minute boundaries
5. an enabled slot exists at the exact instant
6. no other active appointment at the exact instant

When ``BookingPolicy.enforce_booking_window`` is set, non-admins are also
refused outside the configured weekly booking window before any of the above.

Settings and the current time are passed in rather than read from globals so
callers (and tests) control exactly which configuration applies.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from fastapi import BackgroundTasks
from sqlalchemy.orm import Session

from backend.core import config
from backend.core.errors import (
    BlockedAccount,
    BookingError,
    BookingWindowClosed,
    DayUnavailable,
    InvalidTimeSlot,
    SlotAlreadyBooked,
    SlotUnavailable,
    WeeklyLimitExceeded,
)
from backend.core.timeutils import week_bounds
from backend.models.appointment import STATUS_CANCELLED, Appointment
from backend.models.user import User
from backend.services import ledger, notifications, slots
from backend.services.configuration import APPOINTMENT_DURATION_MINUTES, BookingSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingPolicy:
    # Admins skip the day, grid and availability rules. Block, weekly limit
    # and double-booking checks always apply.
    admin_bypass_rules: bool = False
    enforce_booking_window: bool = False

    @classmethod
    def from_config(cls) -> 'BookingPolicy':
        return cls(
            admin_bypass_rules=config.ADMIN_BYPASS_BOOKING_RULES,
            enforce_booking_window=config.ENFORCE_BOOKING_WINDOW,
        )


def appointment_end(start: datetime) -> datetime:
    return start + timedelta(minutes=APPOINTMENT_DURATION_MINUTES)


def check_booking_window(user: User, settings: BookingSettings, now: datetime) -> None:
    if user.is_admin or settings.is_booking_window_open(now):
        return
    raise BookingWindowClosed(f'Booking is only available on {settings.describe_booking_window()}.')


def check_not_blocked(user: User, now: datetime) -> None:
    if user.is_blocked(now):
        raise BlockedAccount(user.blocked_until)


def check_weekly_limit(db: Session, user: User, start: datetime) -> None:
    week_start, week_end = week_bounds(start)
    existing = db.query(Appointment.id).filter(
        Appointment.user_id == user.id,
        Appointment.status != STATUS_CANCELLED,
        Appointment.date >= week_start,
        Appointment.date <= week_end,
    ).first()
    if existing is not None:
        raise WeeklyLimitExceeded()


def check_day_enabled(settings: BookingSettings, start: datetime) -> None:
    if settings.is_disabled_day(start):
        raise DayUnavailable(f'Appointments are not available on {settings.describe_disabled_days()}.')


def check_slot_grid(settings: BookingSettings, start: datetime) -> None:
    if not settings.is_on_slot_grid(start):
        raise InvalidTimeSlot(
            f'Appointments are only available from {settings.describe_slot_hours()} in 15-minute intervals.'
        )


def check_slot_available(db: Session, start: datetime) -> None:
    if slots.find_enabled_slot(db, start) is None:
        raise SlotUnavailable()


def check_no_conflict(db: Session, start: datetime) -> None:
    if ledger.active_at(db, start) is not None:
        raise SlotAlreadyBooked()


def validate_booking(
    db: Session,
    user: User,
    start: datetime,
    settings: BookingSettings,
    policy: BookingPolicy,
    now: datetime,
) -> None:
    if policy.enforce_booking_window:
        check_booking_window(user, settings, now)

    check_not_blocked(user, now)
    check_weekly_limit(db, user, start)

    if not (user.is_admin and policy.admin_bypass_rules):
        check_day_enabled(settings, start)
        check_slot_grid(settings, start)
        check_slot_available(db, start)

    check_no_conflict(db, start)


def send_confirmation_safely(user: User, appointment: Appointment) -> None:
    try:
        notifications.send_confirmation(user, appointment)
    except Exception:
        logger.exception('Confirmation for appointment %s failed', appointment.id)


def book_appointment(
    db: Session,
    user: User,
    start: datetime,
    settings: BookingSettings,
    policy: BookingPolicy,
    now: datetime,
    requested_end: datetime | None = None,
    background_tasks: BackgroundTasks | None = None,
) -> Appointment:
    """Validate and store a booking, then dispatch its confirmation.

    With ``background_tasks`` the confirmation is queued to run after the
    response is sent; without it (CLIs, direct callers) it is sent inline.
    Either way a mail failure never undoes the stored appointment.
    """
    end_time = appointment_end(start)
    if requested_end is not None and requested_end != end_time:
        logger.debug('Ignoring client end time %s for booking at %s; using %s', requested_end, start, end_time)

    try:
        validate_booking(db, user, start, settings, policy, now)
    except BookingError as exc:
        logger.info('Rejected booking for user %s at %s: %s', user.id, start, type(exc).__name__)
        raise

    appointment = ledger.create(db, user.id, start)
    logger.info('Booked appointment %s for user %s at %s', appointment.id, user.id, start)

    if background_tasks is None:
        send_confirmation_safely(user, appointment)
    else:
        # The session is closed before background tasks run; load the user now.
        db.refresh(user)
        background_tasks.add_task(send_confirmation_safely, user, appointment)

    return appointment
