"""Appointment model definitions."""

from datetime import datetime

from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, Integer, String, text

from backend.database import Base

STATUS_CONFIRMED = "confirmed"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
APPOINTMENT_STATUSES = (STATUS_CONFIRMED, STATUS_COMPLETED, STATUS_CANCELLED)
TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_CANCELLED)

_ACTIVE_ONLY = text("status <> 'cancelled'")


class Appointment(Base):
    """Represents a scheduled appointment."""
    __tablename__ = "appointments"
    __table_args__ = (
        Index("idx_appointments_user_date", "user_id", "date"),
        # One active appointment per instant, and per user per Sunday-anchored week.
        Index(
            "uq_appointments_active_date",
            "date",
            unique=True,
            sqlite_where=_ACTIVE_ONLY,
            postgresql_where=_ACTIVE_ONLY,
        ),
        Index(
            "uq_appointments_active_user_week",
            "user_id",
            "week_start",
            unique=True,
            sqlite_where=_ACTIVE_ONLY,
            postgresql_where=_ACTIVE_ONLY,
        ),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    date = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    week_start = Column(Date, nullable=False)
    status = Column(String, nullable=False, default=STATUS_CONFIRMED)
    # Audit timestamp in UTC; date and end_time are wall-clock time in BOOKING_TIMEZONE.
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
