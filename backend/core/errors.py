"""Booking error taxonomy.

Services raise these; routes turn them into ``HTTPException`` with
``to_http_exception`` so the message reaches the client as ``detail``.
"""

from datetime import datetime

from fastapi import HTTPException, status


class BookingError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'Booking request rejected.'

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class BlockedAccount(BookingError):
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, blocked_until: datetime):
        self.blocked_until = blocked_until
        super().__init__(
            f'Your account is blocked until {blocked_until:%B %d, %Y}. '
            'You cannot book appointments before then.'
        )


class BookingWindowClosed(BookingError):
    default_message = 'Booking is currently closed.'


class WeeklyLimitExceeded(BookingError):
    default_message = 'You can only book one appointment per week.'


class DayUnavailable(BookingError):
    default_message = 'Appointments are not available on this day.'


class InvalidTimeSlot(BookingError):
    default_message = 'Appointments must start on a 15-minute slot within booking hours.'


class SlotUnavailable(BookingError):
    default_message = 'This slot is not available.'


class SlotAlreadyBooked(BookingError):
    status_code = status.HTTP_409_CONFLICT
    default_message = 'This slot is already booked.'


class NotFound(BookingError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = 'Not found.'


class Forbidden(BookingError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = 'Forbidden.'


class Conflict(BookingError):
    status_code = status.HTTP_409_CONFLICT
    default_message = 'Conflict.'


class ValidationError(BookingError):
    default_message = 'Invalid request.'


def to_http_exception(exc: BookingError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.message)
