"""Service model definitions."""

from sqlalchemy import CheckConstraint, Column, Integer, Numeric, String
from clinic_backend.database import Base


class Service(Base):
    """A bookable service with a fixed duration."""
    __tablename__ = "services"
    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="ck_services_positive_duration"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False, default=0)
