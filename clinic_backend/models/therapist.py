"""Therapist model definitions."""

from sqlalchemy import Boolean, Column, Integer, String
from clinic_backend.database import Base


class Therapist(Base):
    """Represents a therapist who can be booked."""
    __tablename__ = "therapists"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    specialty = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
