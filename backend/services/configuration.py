"""Booking configuration store.

Settings live in the ``booking_configurations`` table as strings. Readers get a
parsed ``BookingSettings`` snapshot that is cached process-wide for
``CONFIG_CACHE_SECONDS``; every write goes straight to the table and clears
the cache.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from threading import Lock
from time import monotonic

from sqlalchemy.orm import Session

from backend.core import config
from backend.core.errors import Conflict, NotFound, ValidationError
from backend.core.timeutils import DAY_NAMES, format_hour, sunday_weekday
from backend.models.booking_configuration import BookingConfiguration

logger = logging.getLogger(__name__)

SLOT_INCREMENT_MINUTES = 15
APPOINTMENT_DURATION_MINUTES = 15

DEFAULT_CONFIGURATIONS = {
    'booking_window_day': ('0', 'Day of the week when the booking window is open (0-6, Sunday-Saturday)'),
    'booking_window_start_hour': ('8', 'Hour when the booking window opens (0-23)'),
    'booking_window_end_hour': ('9', 'Hour when the booking window closes (0-23)'),
    'disabled_days': ('2,6', 'Days of the week with no appointments (0-6, Sunday-Saturday, comma-separated)'),
    'morning_slot_start': ('9', 'Hour when morning appointments start (0-23)'),
    'morning_slot_end': ('13', 'Hour when morning appointments end (0-23)'),
    'afternoon_slot_start': ('15', 'Hour when afternoon appointments start (0-23)'),
    'afternoon_slot_end': ('17', 'Hour when afternoon appointments end (0-23)'),
    'slot_duration': ('15', 'Duration of each appointment slot in minutes'),
}


def _parse_int(key: str, value: str | None) -> int:
    default = int(DEFAULT_CONFIGURATIONS[key][0])
    if value is None:
        return default
    try:
        return int(value.strip())
    except ValueError:
        logger.warning('Configuration %s has non-integer value %r; using default %s', key, value, default)
        return default


def _parse_days(value: str | None) -> frozenset[int]:
    if value is None:
        value = DEFAULT_CONFIGURATIONS['disabled_days'][0]

    days = set()
    for part in value.split(','):
        part = part.strip()
        if not part:
            continue
        try:
            day = int(part)
        except ValueError:
            logger.warning('Ignoring non-integer disabled day %r', part)
            continue
        if 0 <= day <= 6:
            days.add(day)
        else:
            logger.warning('Ignoring out-of-range disabled day %r', part)
    return frozenset(days)


@dataclass(frozen=True)
class BookingSettings:
    booking_window_day: int = 0
    booking_window_start_hour: int = 8
    booking_window_end_hour: int = 9
    disabled_days: frozenset[int] = field(default_factory=lambda: frozenset({2, 6}))
    morning_slot_start: int = 9
    morning_slot_end: int = 13
    afternoon_slot_start: int = 15
    afternoon_slot_end: int = 17

    @classmethod
    def from_mapping(cls, values: dict[str, str]) -> 'BookingSettings':
        return cls(
            booking_window_day=_parse_int('booking_window_day', values.get('booking_window_day')),
            booking_window_start_hour=_parse_int('booking_window_start_hour', values.get('booking_window_start_hour')),
            booking_window_end_hour=_parse_int('booking_window_end_hour', values.get('booking_window_end_hour')),
            disabled_days=_parse_days(values.get('disabled_days')),
            morning_slot_start=_parse_int('morning_slot_start', values.get('morning_slot_start')),
            morning_slot_end=_parse_int('morning_slot_end', values.get('morning_slot_end')),
            afternoon_slot_start=_parse_int('afternoon_slot_start', values.get('afternoon_slot_start')),
            afternoon_slot_end=_parse_int('afternoon_slot_end', values.get('afternoon_slot_end')),
        )

    def is_disabled_day(self, value: date) -> bool:
        return sunday_weekday(value) in self.disabled_days

    def is_on_slot_grid(self, value: datetime) -> bool:
        if value.minute % SLOT_INCREMENT_MINUTES != 0:
            return False
        in_morning = self.morning_slot_start <= value.hour < self.morning_slot_end
        in_afternoon = self.afternoon_slot_start <= value.hour < self.afternoon_slot_end
        return in_morning or in_afternoon

    def slot_times_for(self, day: date) -> list[datetime]:
        slots = []
        for start_hour, end_hour in (
            (self.morning_slot_start, self.morning_slot_end),
            (self.afternoon_slot_start, self.afternoon_slot_end),
        ):
            for hour in range(max(start_hour, 0), min(end_hour, 24)):
                for minute in range(0, 60, SLOT_INCREMENT_MINUTES):
                    slots.append(datetime.combine(day, time(hour, minute)))
        return sorted(set(slots))

    def is_booking_window_open(self, now: datetime) -> bool:
        return (
            sunday_weekday(now) == self.booking_window_day
            and self.booking_window_start_hour <= now.hour < self.booking_window_end_hour
        )

    def next_window_opening(self, now: datetime) -> datetime:
        days_ahead = (self.booking_window_day - sunday_weekday(now)) % 7
        opening = datetime.combine(now.date() + timedelta(days=days_ahead), time(self.booking_window_start_hour % 24))
        if opening <= now:
            opening += timedelta(days=7)
        return opening

    def describe_slot_hours(self) -> str:
        return (
            f'{format_hour(self.morning_slot_start)} - {format_hour(self.morning_slot_end)} and '
            f'{format_hour(self.afternoon_slot_start)} - {format_hour(self.afternoon_slot_end)}'
        )

    def describe_disabled_days(self) -> str:
        return ' and '.join(DAY_NAMES[day] for day in sorted(self.disabled_days))

    def describe_booking_window(self) -> str:
        return (
            f'{DAY_NAMES[self.booking_window_day % 7]} between '
            f'{format_hour(self.booking_window_start_hour)} and {format_hour(self.booking_window_end_hour)}'
        )


_cache_lock = Lock()
_cached_settings: BookingSettings | None = None
_cached_at = 0.0


def invalidate_cache() -> None:
    global _cached_settings

    with _cache_lock:
        _cached_settings = None


def get(db: Session, key: str, default: str | None = None) -> str | None:
    row = db.query(BookingConfiguration).filter(BookingConfiguration.key == key).first()
    if row is None:
        return default
    return row.value


def load_settings(db: Session) -> BookingSettings:
    rows = db.query(BookingConfiguration.key, BookingConfiguration.value).all()
    return BookingSettings.from_mapping({key: value for key, value in rows})


def get_settings(db: Session) -> BookingSettings:
    global _cached_settings, _cached_at

    with _cache_lock:
        if (
            _cached_settings is not None
            and monotonic() - _cached_at < config.CONFIG_CACHE_SECONDS
        ):
            return _cached_settings

    settings = load_settings(db)

    with _cache_lock:
        _cached_settings = settings
        _cached_at = monotonic()

    return settings


def list_configurations(db: Session) -> list[BookingConfiguration]:
    return db.query(BookingConfiguration).order_by(BookingConfiguration.key.asc()).all()


def get_configuration(db: Session, key: str) -> BookingConfiguration:
    row = db.query(BookingConfiguration).filter(BookingConfiguration.key == key).first()
    if row is None:
        raise NotFound('Configuration not found.')
    return row


def _require_value(value: str) -> str:
    normalized = value.strip()
    if not normalized:
        raise ValidationError('Configuration value is required.')
    return normalized


def create_configuration(db: Session, key: str, value: str, description: str | None = None) -> BookingConfiguration:
    normalized_key = key.strip()
    if not normalized_key:
        raise ValidationError('Configuration key is required.')

    existing = db.query(BookingConfiguration).filter(BookingConfiguration.key == normalized_key).first()
    if existing is not None:
        raise Conflict('Configuration with this key already exists.')

    row = BookingConfiguration(
        key=normalized_key,
        value=_require_value(value),
        description=description,
        updated_at=datetime.utcnow(),
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    invalidate_cache()
    logger.info('Created booking configuration %s=%s', row.key, row.value)
    return row


def update_configuration(
    db: Session,
    config_id: int,
    value: str | None = None,
    description: str | None = None,
) -> BookingConfiguration:
    row = db.query(BookingConfiguration).filter(BookingConfiguration.id == config_id).first()
    if row is None:
        raise NotFound('Configuration not found.')

    if value is not None:
        row.value = _require_value(value)
    if description is not None:
        row.description = description
    row.updated_at = datetime.utcnow()

    db.commit()
    db.refresh(row)
    invalidate_cache()
    logger.info('Updated booking configuration %s=%s', row.key, row.value)
    return row


def set_value(db: Session, key: str, value: str) -> BookingConfiguration:
    row = db.query(BookingConfiguration).filter(BookingConfiguration.key == key).first()
    if row is None:
        description = DEFAULT_CONFIGURATIONS.get(key, (None, None))[1]
        return create_configuration(db, key, value, description)
    return update_configuration(db, row.id, value=value)


def delete_configuration(db: Session, config_id: int) -> None:
    row = db.query(BookingConfiguration).filter(BookingConfiguration.id == config_id).first()
    if row is None:
        raise NotFound('Configuration not found.')

    key = row.key
    db.delete(row)
    db.commit()
    invalidate_cache()
    logger.info('Deleted booking configuration %s', key)


def seed_defaults(db: Session) -> int:
    existing_keys = {key for (key,) in db.query(BookingConfiguration.key).all()}
    created = 0
    for key, (value, description) in DEFAULT_CONFIGURATIONS.items():
        if key in existing_keys:
            continue
        db.add(BookingConfiguration(key=key, value=value, description=description, updated_at=datetime.utcnow()))
        created += 1

    if created:
        db.commit()
        invalidate_cache()
        logger.info('Seeded %d default booking configurations', created)
    return created
