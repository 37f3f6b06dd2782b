"""Branch model definitions."""

from sqlalchemy import Boolean, Column, Integer, String
from clinic_backend.database import Base


class Branch(Base):
    """A clinic location where therapists keep weekly schedules."""
    __tablename__ = "branches"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
