from datetime import date, time

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_backend.auth.dependencies import ensure_can_manage_schedule, get_current_user
from clinic_backend.core.errors import SchedulingError
from clinic_backend.core.timeslots import Interval
from clinic_backend.models.schedule import WeeklyScheduleEntry
from clinic_backend.models.user import User
from clinic_backend.routes.dependencies import (
    database_unavailable,
    ensure_database_ready,
    get_db,
    to_http_exception,
)
from clinic_backend.scheduling import schedules

router = APIRouter(tags=['schedules'])

MAX_BLOCKED_REASON_LENGTH = 200


def validate_day_of_week(value: int | None) -> int | None:
    if value is not None and not 0 <= value <= 6:
        raise ValueError('day_of_week must be between 0 (Sunday) and 6 (Saturday).')
    return value


class ScheduleEntryRequest(BaseModel):
    branch_id: int
    day_of_week: int
    start_time: time
    end_time: time

    @field_validator('day_of_week')
    @classmethod
    def check_day_of_week(cls, value: int | None) -> int | None:
        return validate_day_of_week(value)


class UpdateScheduleEntryRequest(BaseModel):
    branch_id: int | None = None
    day_of_week: int | None = None
    start_time: time | None = None
    end_time: time | None = None

    @field_validator('day_of_week')
    @classmethod
    def check_day_of_week(cls, value: int | None) -> int | None:
        return validate_day_of_week(value)


class ScheduleEntryResponse(BaseModel):
    id: int
    therapist_id: int
    branch_id: int
    day_of_week: int
    start_time: str
    end_time: str


class ScheduleConflictResponse(BaseModel):
    has_conflict: bool
    conflicts: list[ScheduleEntryResponse]


class BlockedDateRequest(BaseModel):
    date: date
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        if value is not None and len(value.strip()) > MAX_BLOCKED_REASON_LENGTH:
            raise ValueError(f'Reason must be {MAX_BLOCKED_REASON_LENGTH} characters or fewer.')
        return value


class BlockedDateResponse(BaseModel):
    id: int
    therapist_id: int
    date: date
    reason: str | None = None

    class Config:
        from_attributes = True


def to_entry_response(entry: WeeklyScheduleEntry) -> ScheduleEntryResponse:
    window = Interval.from_times(entry.start_time, entry.end_time).as_dict()
    return ScheduleEntryResponse(
        id=entry.id,
        therapist_id=entry.therapist_id,
        branch_id=entry.branch_id,
        day_of_week=entry.day_of_week,
        start_time=window['start'],
        end_time=window['end'],
    )


@router.get('/{therapist_id}/schedule', response_model=list[ScheduleEntryResponse])
def list_schedule(
    therapist_id: int,
    branch_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return [to_entry_response(entry) for entry in schedules.list_schedule_entries(db, therapist_id, branch_id)]
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/{therapist_id}/schedule', response_model=ScheduleEntryResponse, status_code=status.HTTP_201_CREATED)
def create_schedule_entry(
    therapist_id: int,
    data: ScheduleEntryRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_can_manage_schedule(current_user, therapist_id)
    ensure_database_ready()

    try:
        entry = schedules.create_schedule_entry(
            db,
            therapist_id,
            data.branch_id,
            data.day_of_week,
            data.start_time,
            data.end_time,
        )
        return to_entry_response(entry)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/{therapist_id}/schedule/check-conflicts', response_model=ScheduleConflictResponse)
def check_schedule_conflicts(
    therapist_id: int,
    data: ScheduleEntryRequest,
    exclude_entry_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        conflicts = schedules.find_schedule_conflicts(
            db,
            therapist_id,
            data.branch_id,
            data.day_of_week,
            data.start_time,
            data.end_time,
            exclude_entry_id=exclude_entry_id,
        )
        return ScheduleConflictResponse(
            has_conflict=bool(conflicts),
            conflicts=[to_entry_response(entry) for entry in conflicts],
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.put('/{therapist_id}/schedule/{entry_id}', response_model=ScheduleEntryResponse)
def update_schedule_entry(
    therapist_id: int,
    entry_id: int,
    data: UpdateScheduleEntryRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_can_manage_schedule(current_user, therapist_id)
    ensure_database_ready()

    try:
        entry = schedules.update_schedule_entry(
            db,
            therapist_id,
            entry_id,
            branch_id=data.branch_id,
            day_of_week=data.day_of_week,
            start_time=data.start_time,
            end_time=data.end_time,
        )
        return to_entry_response(entry)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/{therapist_id}/schedule/{entry_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_schedule_entry(
    therapist_id: int,
    entry_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_can_manage_schedule(current_user, therapist_id)
    ensure_database_ready()

    try:
        schedules.delete_schedule_entry(db, therapist_id, entry_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/{therapist_id}/blocked-dates', response_model=list[BlockedDateResponse])
def list_blocked_dates(
    therapist_id: int,
    start: date | None = Query(default=None),
    end: date | None = Query(default=None),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return schedules.list_blocked_dates(db, therapist_id, start, end)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/{therapist_id}/blocked-dates', response_model=BlockedDateResponse, status_code=status.HTTP_201_CREATED)
def create_blocked_date(
    therapist_id: int,
    data: BlockedDateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_can_manage_schedule(current_user, therapist_id)
    ensure_database_ready()

    try:
        return schedules.create_blocked_date(db, therapist_id, data.date, data.reason)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/{therapist_id}/blocked-dates/{blocked_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_blocked_date(
    therapist_id: int,
    blocked_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_can_manage_schedule(current_user, therapist_id)
    ensure_database_ready()

    try:
        schedules.delete_blocked_date(db, therapist_id, blocked_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
