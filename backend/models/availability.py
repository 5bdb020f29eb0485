"""Available slot model definitions."""

from sqlalchemy import Boolean, Column, DateTime, Integer

from backend.database import Base


class AvailableSlot(Base):
    """An admin-curated bookable instant, independent of whether it is booked."""
    __tablename__ = "available_slots"

    id = Column(Integer, primary_key=True)
    date = Column(DateTime, unique=True, index=True, nullable=False)
    is_enabled = Column(Boolean, default=True, nullable=False)
