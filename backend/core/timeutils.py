from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from backend.core import config

DAY_NAMES = ['Sunday', 'Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday']


def local_now() -> datetime:
    return datetime.now(ZoneInfo(config.BOOKING_TIMEZONE)).replace(tzinfo=None)


def to_local_naive(value: datetime) -> datetime:
    """Convert an aware datetime to naive wall-clock time in the booking zone."""
    if value.tzinfo is None:
        return value
    return value.astimezone(ZoneInfo(config.BOOKING_TIMEZONE)).replace(tzinfo=None)


def sunday_weekday(value: date) -> int:
    # Python counts Monday as 0; booking configuration counts Sunday as 0.
    return (value.weekday() + 1) % 7


def week_start(value: date) -> date:
    if isinstance(value, datetime):
        value = value.date()
    return value - timedelta(days=sunday_weekday(value))


def week_bounds(value: datetime) -> tuple[datetime, datetime]:
    start = datetime.combine(week_start(value), time.min)
    end = start + timedelta(days=7) - timedelta(microseconds=1)
    return start, end


def day_bounds(value: date) -> tuple[datetime, datetime]:
    if isinstance(value, datetime):
        value = value.date()
    return datetime.combine(value, time.min), datetime.combine(value, time.max)


def format_hour(hour: int) -> str:
    if hour == 0 or hour == 24:
        return '12 AM'
    if hour == 12:
        return '12 PM'
    if hour > 12:
        return f'{hour - 12} PM'
    return f'{hour} AM'
