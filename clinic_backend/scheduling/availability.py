"""Free-slot computation for a single therapist.

Working intervals come from the therapist's weekly schedule at a branch,
busy intervals from non-canceled appointments on the same date at any
branch, and a blocked date wipes out the whole day. Reads only; nothing
here writes to the session, so every function is safe to retry and to run
on worker threads with their own sessions.

Wherever a service id is accepted, a list of ids is accepted too; the
services are booked back to back, so slots use their summed duration.
"""

import calendar
import logging
from dataclasses import dataclass, field
from datetime import date, time, timedelta
from typing import Iterable

from sqlalchemy.orm import Session

from clinic_backend.core import config
from clinic_backend.core.errors import ValidationError
from clinic_backend.core.timeslots import (
    Interval,
    day_of_week,
    enumerate_slots,
    merge_intervals,
    overlaps,
    subtract_intervals,
    to_minutes,
)
from clinic_backend.models.appointment import ACTIVE_STATUSES, Appointment
from clinic_backend.models.branch import Branch
from clinic_backend.models.schedule import BlockedDate, WeeklyScheduleEntry
from clinic_backend.models.service import Service
from clinic_backend.models.therapist import Therapist
from clinic_backend.scheduling.lookups import get_branch, get_services, get_therapist

logger = logging.getLogger(__name__)

ServiceIds = int | Iterable[int]


@dataclass
class AvailabilityResult:
    therapist_id: int
    therapist_name: str
    date: date
    service_ids: list[int]
    duration_minutes: int
    branch_id: int | None
    working_intervals: list[Interval] = field(default_factory=list)
    busy_intervals: list[Interval] = field(default_factory=list)
    free_slots: list[Interval] = field(default_factory=list)
    blocked: bool = False

    @property
    def total_free(self) -> int:
        return len(self.free_slots)


@dataclass
class DayAvailability:
    date: date
    free_slots: list[Interval] = field(default_factory=list)

    @property
    def available(self) -> bool:
        return bool(self.free_slots)


def is_blocked(db: Session, therapist_id: int, day: date) -> bool:
    return db.query(BlockedDate.id).filter(
        BlockedDate.therapist_id == therapist_id,
        BlockedDate.date == day,
    ).first() is not None


def load_working_intervals_by_branch(
    db: Session,
    therapist_id: int,
    day: date,
    branch_id: int | None,
) -> dict[int, list[Interval]]:
    """Merged working windows keyed by branch; ``branch_id=None`` means every active branch."""
    query = db.query(
        WeeklyScheduleEntry.branch_id,
        WeeklyScheduleEntry.start_time,
        WeeklyScheduleEntry.end_time,
    ).filter(
        WeeklyScheduleEntry.therapist_id == therapist_id,
        WeeklyScheduleEntry.day_of_week == day_of_week(day),
    )
    if branch_id is not None:
        query = query.filter(WeeklyScheduleEntry.branch_id == branch_id)
    else:
        query = query.join(Branch, Branch.id == WeeklyScheduleEntry.branch_id).filter(Branch.is_active.is_(True))

    grouped: dict[int, list[Interval]] = {}
    for entry_branch_id, start, end in query.all():
        grouped.setdefault(entry_branch_id, []).append(Interval.from_times(start, end))
    return {key: merge_intervals(intervals) for key, intervals in grouped.items()}


def load_working_intervals(db: Session, therapist_id: int, day: date, branch_id: int | None) -> list[Interval]:
    by_branch = load_working_intervals_by_branch(db, therapist_id, day, branch_id)
    return merge_intervals([interval for intervals in by_branch.values() for interval in intervals])


def load_busy_intervals(
    db: Session,
    therapist_id: int,
    day: date,
    exclude_appointment_id: int | None = None,
) -> list[Interval]:
    """Intervals held by the therapist's non-canceled appointments on ``day``, at every branch."""
    query = db.query(Appointment.start_time, Appointment.end_time).filter(
        Appointment.therapist_id == therapist_id,
        Appointment.date == day,
        Appointment.status.in_(ACTIVE_STATUSES),
    )
    if exclude_appointment_id is not None:
        query = query.filter(Appointment.id != exclude_appointment_id)

    return sorted(Interval.from_times(start, end) for start, end in query.all())


def build_free_slots(working: list[Interval], busy: list[Interval], duration_minutes: int) -> list[Interval]:
    slots: set[Interval] = set()
    for interval in merge_intervals(working):
        for free in subtract_intervals(interval, busy):
            slots.update(enumerate_slots(free, duration_minutes))
    return sorted(slots)


def _availability_for(
    db: Session,
    therapist: Therapist,
    services: list[Service],
    day: date,
    branch: Branch | None,
) -> AvailabilityResult:
    result = AvailabilityResult(
        therapist_id=therapist.id,
        therapist_name=therapist.name,
        date=day,
        service_ids=[service.id for service in services],
        duration_minutes=sum(service.duration_minutes for service in services),
        branch_id=branch.id if branch is not None else None,
    )

    if is_blocked(db, therapist.id, day):
        result.blocked = True
        return result

    if not therapist.is_active or (branch is not None and not branch.is_active):
        return result

    by_branch = load_working_intervals_by_branch(db, therapist.id, day, result.branch_id)
    if not by_branch:
        return result

    result.working_intervals = merge_intervals([interval for intervals in by_branch.values() for interval in intervals])
    result.busy_intervals = load_busy_intervals(db, therapist.id, day)

    # A slot must fit inside one branch's windows; adjacent shifts at two branches never join.
    slots: set[Interval] = set()
    for windows in by_branch.values():
        slots.update(build_free_slots(windows, result.busy_intervals, result.duration_minutes))
    result.free_slots = sorted(slots)
    return result


def compute_availability(
    db: Session,
    therapist_id: int,
    day: date,
    service_id: ServiceIds,
    branch_id: int | None = None,
) -> AvailabilityResult:
    therapist = get_therapist(db, therapist_id)
    services = get_services(db, service_id)
    branch = get_branch(db, branch_id) if branch_id is not None else None

    result = _availability_for(db, therapist, services, day, branch)
    logger.debug(
        'Therapist %s on %s at branch %s: %d free slots of %d minutes',
        therapist_id,
        day.isoformat(),
        branch_id,
        result.total_free,
        result.duration_minutes,
    )
    return result


def is_slot_available(
    db: Session,
    therapist_id: int,
    day: date,
    start_time: time,
    end_time: time,
    exclude_appointment_id: int | None = None,
    branch_id: int | None = None,
) -> bool:
    """Whether the interval could be booked: inside working hours, not blocked, not taken.

    Without ``branch_id`` the interval must fit inside the windows of one of
    the therapist's active branches.
    """
    therapist = get_therapist(db, therapist_id)
    branch = get_branch(db, branch_id) if branch_id is not None else None
    requested = Interval.from_times(start_time, end_time)

    if not therapist.is_active or (branch is not None and not branch.is_active):
        return False

    if is_blocked(db, therapist_id, day):
        return False

    by_branch = load_working_intervals_by_branch(db, therapist_id, day, branch_id)
    if not any(window.contains(requested) for windows in by_branch.values() for window in windows):
        return False

    busy = load_busy_intervals(db, therapist_id, day, exclude_appointment_id)
    return not any(overlaps(requested, interval) for interval in busy)


def find_next_available_dates(
    db: Session,
    therapist_id: int,
    service_id: ServiceIds,
    start_date: date,
    days_to_check: int = 30,
    branch_id: int | None = None,
) -> list[date]:
    if not 1 <= days_to_check <= config.MAX_LOOKAHEAD_DAYS:
        raise ValidationError(f'days_to_check must be between 1 and {config.MAX_LOOKAHEAD_DAYS}.')

    therapist = get_therapist(db, therapist_id)
    services = get_services(db, service_id)
    branch = get_branch(db, branch_id) if branch_id is not None else None

    available_dates: list[date] = []
    for offset in range(days_to_check):
        day = start_date + timedelta(days=offset)
        if _availability_for(db, therapist, services, day, branch).free_slots:
            available_dates.append(day)

    return available_dates


def get_month_availability(
    db: Session,
    therapist_id: int,
    service_id: ServiceIds,
    year: int,
    month: int,
    branch_id: int | None = None,
) -> list[DayAvailability]:
    """One entry per day of the month with that day's free slots."""
    if not 1 <= month <= 12 or not date.min.year <= year <= date.max.year:
        raise ValidationError(f'Invalid month: {year:04d}-{month:02d}.')

    therapist = get_therapist(db, therapist_id)
    services = get_services(db, service_id)
    branch = get_branch(db, branch_id) if branch_id is not None else None

    _, days_in_month = calendar.monthrange(year, month)
    days = [date(year, month, number) for number in range(1, days_in_month + 1)]
    return [DayAvailability(day, _availability_for(db, therapist, services, day, branch).free_slots) for day in days]


def suggest_slots(
    db: Session,
    therapist_id: int,
    day: date,
    service_id: ServiceIds,
    preferred_time: time,
    limit: int = 5,
    branch_id: int | None = None,
) -> list[Interval]:
    """Free slots closest to ``preferred_time``, earliest first on ties."""
    if limit < 1:
        raise ValidationError('limit must be at least 1.')

    preferred = to_minutes(preferred_time)
    result = compute_availability(db, therapist_id, day, service_id, branch_id)
    ranked = sorted(result.free_slots, key=lambda slot: (abs(slot.start - preferred), slot.start))
    return ranked[:limit]


def compute_availability_across_branches(
    db: Session,
    therapist_id: int,
    day: date,
    service_id: ServiceIds,
) -> list[tuple[Branch, AvailabilityResult]]:
    therapist = get_therapist(db, therapist_id)
    services = get_services(db, service_id)

    branches = db.query(Branch).join(
        WeeklyScheduleEntry,
        WeeklyScheduleEntry.branch_id == Branch.id,
    ).filter(
        WeeklyScheduleEntry.therapist_id == therapist_id,
        WeeklyScheduleEntry.day_of_week == day_of_week(day),
        Branch.is_active.is_(True),
    ).distinct().order_by(Branch.name.asc(), Branch.id.asc()).all()

    return [(branch, _availability_for(db, therapist, services, day, branch)) for branch in branches]
