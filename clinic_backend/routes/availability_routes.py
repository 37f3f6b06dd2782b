from datetime import date, time

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_backend.core import config
from clinic_backend.core.errors import SchedulingError
from clinic_backend.core.timeslots import Interval
from clinic_backend.routes.dependencies import (
    database_unavailable,
    ensure_database_ready,
    get_db,
    get_session_factory,
    to_http_exception,
)
from clinic_backend.scheduling.aggregation import compute_availability_for_many
from clinic_backend.scheduling.availability import (
    AvailabilityResult,
    compute_availability,
    compute_availability_across_branches,
    find_next_available_dates,
    get_month_availability,
    is_slot_available,
    suggest_slots,
)

router = APIRouter(tags=['availability'])

MAX_MULTI_THERAPISTS = 50


class TimeRangeResponse(BaseModel):
    start: str
    end: str


class TherapistAvailabilityResponse(BaseModel):
    therapist_id: int
    therapist_name: str
    date: date
    service_ids: list[int]
    duration_minutes: int
    branch_id: int | None = None
    blocked: bool
    working_intervals: list[TimeRangeResponse]
    busy_intervals: list[TimeRangeResponse]
    free_slots: list[TimeRangeResponse]
    total_free: int


class BranchAvailabilityResponse(BaseModel):
    branch_id: int
    branch_name: str
    available: bool
    working_intervals: list[TimeRangeResponse]
    free_slots: list[TimeRangeResponse]


class SlotCheckResponse(BaseModel):
    available: bool


class CalendarDayResponse(BaseModel):
    date: date
    available: bool
    slots: list[str]


class MultiAvailabilityRequest(BaseModel):
    therapist_ids: list[int]
    date: date
    service_id: int | list[int]
    branch_id: int | None = None

    @field_validator('therapist_ids')
    @classmethod
    def validate_therapist_ids(cls, value: list[int]) -> list[int]:
        if len(value) > MAX_MULTI_THERAPISTS:
            raise ValueError(f'At most {MAX_MULTI_THERAPISTS} therapists can be compared at once.')
        return value


class MultiAvailabilityEntry(BaseModel):
    therapist_id: int
    therapist_name: str
    free_slots: list[TimeRangeResponse]
    total_free: int


class MultiAvailabilityResponse(BaseModel):
    results: list[MultiAvailabilityEntry]
    failed_count: int
    unavailable_therapist_ids: list[int]


def to_time_ranges(intervals: list[Interval]) -> list[TimeRangeResponse]:
    return [TimeRangeResponse(**interval.as_dict()) for interval in intervals]


def to_availability_response(result: AvailabilityResult) -> TherapistAvailabilityResponse:
    return TherapistAvailabilityResponse(
        therapist_id=result.therapist_id,
        therapist_name=result.therapist_name,
        date=result.date,
        service_ids=result.service_ids,
        duration_minutes=result.duration_minutes,
        branch_id=result.branch_id,
        blocked=result.blocked,
        working_intervals=to_time_ranges(result.working_intervals),
        busy_intervals=to_time_ranges(result.busy_intervals),
        free_slots=to_time_ranges(result.free_slots),
        total_free=result.total_free,
    )


@router.get('/therapists/{therapist_id}', response_model=TherapistAvailabilityResponse)
def get_therapist_availability(
    therapist_id: int,
    date: date = Query(...),
    service_id: list[int] = Query(...),
    branch_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        result = compute_availability(db, therapist_id, date, service_id, branch_id)
        return to_availability_response(result)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/therapists/{therapist_id}/branches', response_model=list[BranchAvailabilityResponse])
def get_therapist_availability_across_branches(
    therapist_id: int,
    date: date = Query(...),
    service_id: list[int] = Query(...),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return [
            BranchAvailabilityResponse(
                branch_id=branch.id,
                branch_name=branch.name,
                available=bool(result.free_slots),
                working_intervals=to_time_ranges(result.working_intervals),
                free_slots=to_time_ranges(result.free_slots),
            )
            for branch, result in compute_availability_across_branches(db, therapist_id, date, service_id)
        ]
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/therapists/{therapist_id}/next-dates', response_model=list[date])
def get_next_available_dates(
    therapist_id: int,
    service_id: list[int] = Query(...),
    start_date: date = Query(...),
    days: int = Query(default=30, ge=1, le=config.MAX_LOOKAHEAD_DAYS),
    branch_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return find_next_available_dates(db, therapist_id, service_id, start_date, days, branch_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/therapists/{therapist_id}/calendar', response_model=list[CalendarDayResponse])
def get_month_calendar(
    therapist_id: int,
    month: str = Query(..., pattern=r'^\d{4}-\d{2}$'),
    service_id: list[int] = Query(...),
    branch_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    year, month_number = (int(part) for part in month.split('-'))
    try:
        days = get_month_availability(db, therapist_id, service_id, year, month_number, branch_id)
        return [
            CalendarDayResponse(
                date=day.date,
                available=day.available,
                slots=[slot.as_dict()['start'] for slot in day.free_slots],
            )
            for day in days
        ]
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/therapists/{therapist_id}/suggestions', response_model=list[TimeRangeResponse])
def get_suggested_slots(
    therapist_id: int,
    date: date = Query(...),
    service_id: list[int] = Query(...),
    preferred_time: time = Query(...),
    limit: int = Query(default=5, ge=1, le=20),
    branch_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return to_time_ranges(suggest_slots(db, therapist_id, date, service_id, preferred_time, limit, branch_id))
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/check', response_model=SlotCheckResponse)
def check_slot(
    therapist_id: int = Query(...),
    date: date = Query(...),
    start_time: time = Query(...),
    end_time: time = Query(...),
    exclude_appointment_id: int | None = Query(default=None),
    branch_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        available = is_slot_available(db, therapist_id, date, start_time, end_time, exclude_appointment_id, branch_id)
        return SlotCheckResponse(available=available)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/multi', response_model=MultiAvailabilityResponse)
def get_multi_therapist_availability(
    data: MultiAvailabilityRequest,
    session_factory=Depends(get_session_factory),
):
    ensure_database_ready()

    try:
        aggregate = compute_availability_for_many(
            session_factory,
            data.therapist_ids,
            data.date,
            data.service_id,
            data.branch_id,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return MultiAvailabilityResponse(
        results=[
            MultiAvailabilityEntry(
                therapist_id=result.therapist_id,
                therapist_name=result.therapist_name,
                free_slots=to_time_ranges(result.free_slots),
                total_free=result.total_free,
            )
            for result in aggregate.results
        ],
        failed_count=aggregate.failed_count,
        unavailable_therapist_ids=aggregate.unavailable_therapist_ids,
    )
