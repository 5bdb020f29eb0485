"""Booking configuration model definitions."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String

from backend.database import Base


class BookingConfiguration(Base):
    """A named booking policy setting stored as a string."""
    __tablename__ = "booking_configurations"

    id = Column(Integer, primary_key=True)
    key = Column(String, unique=True, index=True, nullable=False)
    value = Column(String, nullable=False)
    description = Column(String, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
