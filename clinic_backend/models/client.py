"""Client model definitions."""

from sqlalchemy import Column, Integer, String
from clinic_backend.database import Base


class Client(Base):
    """A person who books appointments."""
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True, index=True)
    phone = Column(String, nullable=True)
