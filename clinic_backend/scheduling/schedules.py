"""Weekly schedule entries and blocked dates.

Entry writes hold the therapist's write lock so the cross-branch overlap
check and the write cannot interleave with another writer. The availability
engine reads these tables on every query, so a committed change is visible
to the next read.
"""

import logging
from datetime import date, time

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clinic_backend.core.errors import ConflictError, NotFoundError, ValidationError
from clinic_backend.core.timeslots import Interval, overlaps
from clinic_backend.models.appointment import ACTIVE_STATUSES, Appointment
from clinic_backend.models.schedule import BlockedDate, WeeklyScheduleEntry
from clinic_backend.scheduling.locks import serialized_for_therapists
from clinic_backend.scheduling.lookups import get_branch, get_therapist

logger = logging.getLogger(__name__)


def _validate_window(day_of_week: int, start_time: time, end_time: time) -> Interval:
    if not 0 <= day_of_week <= 6:
        raise ValidationError('day_of_week must be between 0 (Sunday) and 6 (Saturday).')
    return Interval.from_times(start_time, end_time)


def list_schedule_entries(db: Session, therapist_id: int, branch_id: int | None = None) -> list[WeeklyScheduleEntry]:
    get_therapist(db, therapist_id)
    query = db.query(WeeklyScheduleEntry).filter(WeeklyScheduleEntry.therapist_id == therapist_id)
    if branch_id is not None:
        query = query.filter(WeeklyScheduleEntry.branch_id == branch_id)
    return query.order_by(
        WeeklyScheduleEntry.day_of_week.asc(),
        WeeklyScheduleEntry.start_time.asc(),
        WeeklyScheduleEntry.id.asc(),
    ).all()


def get_schedule_entry(db: Session, therapist_id: int, entry_id: int) -> WeeklyScheduleEntry:
    entry = db.query(WeeklyScheduleEntry).filter(
        WeeklyScheduleEntry.id == entry_id,
        WeeklyScheduleEntry.therapist_id == therapist_id,
    ).first()
    if entry is None:
        raise NotFoundError(f'Schedule entry {entry_id} not found for therapist {therapist_id}.')
    return entry


def find_schedule_conflicts(
    db: Session,
    therapist_id: int,
    branch_id: int,
    day_of_week: int,
    start_time: time,
    end_time: time,
    exclude_entry_id: int | None = None,
) -> list[WeeklyScheduleEntry]:
    """Entries at other branches that overlap the given window.

    Overlap within the same branch is allowed (split or overlapping shifts);
    a therapist cannot be scheduled at two branches at once.
    """
    window = _validate_window(day_of_week, start_time, end_time)

    query = db.query(WeeklyScheduleEntry).filter(
        WeeklyScheduleEntry.therapist_id == therapist_id,
        WeeklyScheduleEntry.day_of_week == day_of_week,
        WeeklyScheduleEntry.branch_id != branch_id,
    )
    if exclude_entry_id is not None:
        query = query.filter(WeeklyScheduleEntry.id != exclude_entry_id)

    return [
        entry
        for entry in query.order_by(WeeklyScheduleEntry.start_time.asc()).all()
        if overlaps(window, Interval.from_times(entry.start_time, entry.end_time))
    ]


def _raise_on_conflicts(conflicts: list[WeeklyScheduleEntry]) -> None:
    if conflicts:
        branches = ', '.join(sorted({str(entry.branch_id) for entry in conflicts}))
        raise ConflictError(f'Therapist is already scheduled at branch {branches} during this time.')


def create_schedule_entry(
    db: Session,
    therapist_id: int,
    branch_id: int,
    day_of_week: int,
    start_time: time,
    end_time: time,
) -> WeeklyScheduleEntry:
    get_therapist(db, therapist_id)
    get_branch(db, branch_id)

    with serialized_for_therapists(db, [therapist_id]):
        _raise_on_conflicts(find_schedule_conflicts(db, therapist_id, branch_id, day_of_week, start_time, end_time))

        entry = WeeklyScheduleEntry(
            therapist_id=therapist_id,
            branch_id=branch_id,
            day_of_week=day_of_week,
            start_time=start_time,
            end_time=end_time,
        )
        db.add(entry)
        db.commit()
    db.refresh(entry)
    logger.info('Added schedule entry %s for therapist %s at branch %s', entry.id, therapist_id, branch_id)
    return entry


def update_schedule_entry(
    db: Session,
    therapist_id: int,
    entry_id: int,
    branch_id: int | None = None,
    day_of_week: int | None = None,
    start_time: time | None = None,
    end_time: time | None = None,
) -> WeeklyScheduleEntry:
    entry = get_schedule_entry(db, therapist_id, entry_id)

    new_branch_id = entry.branch_id if branch_id is None else branch_id
    new_day = entry.day_of_week if day_of_week is None else day_of_week
    new_start = start_time or entry.start_time
    new_end = end_time or entry.end_time

    if new_branch_id != entry.branch_id:
        get_branch(db, new_branch_id)

    with serialized_for_therapists(db, [therapist_id]):
        _raise_on_conflicts(
            find_schedule_conflicts(db, therapist_id, new_branch_id, new_day, new_start, new_end, exclude_entry_id=entry.id)
        )

        entry.branch_id = new_branch_id
        entry.day_of_week = new_day
        entry.start_time = new_start
        entry.end_time = new_end
        db.commit()
    db.refresh(entry)
    return entry


def delete_schedule_entry(db: Session, therapist_id: int, entry_id: int) -> None:
    entry = get_schedule_entry(db, therapist_id, entry_id)
    db.delete(entry)
    db.commit()
    logger.info('Removed schedule entry %s for therapist %s', entry_id, therapist_id)


def list_blocked_dates(
    db: Session,
    therapist_id: int,
    start: date | None = None,
    end: date | None = None,
) -> list[BlockedDate]:
    get_therapist(db, therapist_id)
    query = db.query(BlockedDate).filter(BlockedDate.therapist_id == therapist_id)
    if start is not None:
        query = query.filter(BlockedDate.date >= start)
    if end is not None:
        query = query.filter(BlockedDate.date <= end)
    return query.order_by(BlockedDate.date.asc()).all()


def create_blocked_date(db: Session, therapist_id: int, day: date, reason: str | None = None) -> BlockedDate:
    get_therapist(db, therapist_id)

    existing = db.query(BlockedDate.id).filter(
        BlockedDate.therapist_id == therapist_id,
        BlockedDate.date == day,
    ).first()
    if existing is not None:
        raise ConflictError(f'{day.isoformat()} is already blocked for therapist {therapist_id}.')

    blocked = BlockedDate(therapist_id=therapist_id, date=day, reason=(reason or '').strip() or None)
    db.add(blocked)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError(f'{day.isoformat()} is already blocked for therapist {therapist_id}.') from exc
    db.refresh(blocked)

    booked = db.query(Appointment.id).filter(
        Appointment.therapist_id == therapist_id,
        Appointment.date == day,
        Appointment.status.in_(ACTIVE_STATUSES),
    ).count()
    if booked:
        logger.warning(
            'Blocked %s for therapist %s with %d appointment(s) still booked',
            day.isoformat(),
            therapist_id,
            booked,
        )
    return blocked


def delete_blocked_date(db: Session, therapist_id: int, blocked_id: int) -> None:
    blocked = db.query(BlockedDate).filter(
        BlockedDate.id == blocked_id,
        BlockedDate.therapist_id == therapist_id,
    ).first()
    if blocked is None:
        raise NotFoundError(f'Blocked date {blocked_id} not found for therapist {therapist_id}.')
    db.delete(blocked)
    db.commit()
