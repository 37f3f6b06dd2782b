"""Weekly schedule and blocked date model definitions."""

from sqlalchemy import CheckConstraint, Column, Date, ForeignKey, Integer, String, Time, UniqueConstraint
from clinic_backend.database import Base


class WeeklyScheduleEntry(Base):
    """A recurring working window for a therapist at a branch.

    ``day_of_week`` counts from 0 (Sunday) to 6 (Saturday). Entries for the
    same therapist, branch and day may overlap (split shifts).
    """
    __tablename__ = "weekly_schedule_entries"
    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_schedule_day_of_week"),
    )

    id = Column(Integer, primary_key=True, index=True)
    therapist_id = Column(Integer, ForeignKey("therapists.id"), nullable=False, index=True)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)


class BlockedDate(Base):
    """A full day on which the therapist takes no appointments."""
    __tablename__ = "blocked_dates"
    __table_args__ = (
        UniqueConstraint("therapist_id", "date", name="uq_blocked_dates_therapist_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    therapist_id = Column(Integer, ForeignKey("therapists.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    reason = Column(String, nullable=True)
