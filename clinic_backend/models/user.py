"""User model definitions."""

from sqlalchemy import Column, ForeignKey, Integer, String
from clinic_backend.database import Base


class User(Base):
    """A staff login; therapists are linked to their own schedule."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True)
    role = Column(String)  # admin/therapist/receptionist
    therapist_id = Column(Integer, ForeignKey("therapists.id"), nullable=True)
