from datetime import date, datetime, time
from decimal import Decimal

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_backend.core.errors import SchedulingError, ValidationError
from clinic_backend.core.timeslots import MINUTES_PER_DAY, format_minutes, to_minutes
from clinic_backend.models.appointment import Appointment, AppointmentStatus
from clinic_backend.routes.dependencies import (
    database_unavailable,
    ensure_database_ready,
    get_db,
    to_http_exception,
)
from clinic_backend.scheduling import booking

router = APIRouter(tags=['appointments'])

MAX_LISTING_RANGE_DAYS = 366


class CreateAppointmentRequest(BaseModel):
    client_id: int
    therapist_id: int
    branch_id: int
    service_id: int
    date: date
    start_time: time
    status: str | None = None
    notes: str | None = None

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip().upper()
        if normalized not in {AppointmentStatus.SCHEDULED.value, AppointmentStatus.PENDING.value, AppointmentStatus.CONFIRMED.value}:
            raise ValueError('New appointments must be SCHEDULED, PENDING or CONFIRMED.')
        return normalized


class RescheduleAppointmentRequest(BaseModel):
    day: date | None = Field(default=None, alias='date')
    start_time: time | None = None
    therapist_id: int | None = None
    branch_id: int | None = None

    class Config:
        populate_by_name = True


class UpdateStatusRequest(BaseModel):
    status: str

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in AppointmentStatus.__members__:
            raise ValueError('Invalid appointment status.')
        return normalized


class AppointmentResponse(BaseModel):
    id: int
    client_id: int
    therapist_id: int
    branch_id: int
    service_id: int
    date: date
    start_time: str
    end_time: str
    duration_minutes: int | None = None
    price: Decimal | None = None
    status: str
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


def to_appointment_response(appointment: Appointment) -> AppointmentResponse:
    end_minutes = to_minutes(appointment.end_time) or MINUTES_PER_DAY
    return AppointmentResponse(
        id=appointment.id,
        client_id=appointment.client_id,
        therapist_id=appointment.therapist_id,
        branch_id=appointment.branch_id,
        service_id=appointment.service_id,
        date=appointment.date,
        start_time=format_minutes(to_minutes(appointment.start_time)),
        end_time=format_minutes(end_minutes),
        duration_minutes=appointment.duration_minutes,
        price=appointment.price,
        status=appointment.status,
        notes=appointment.notes,
        created_at=appointment.created_at,
        updated_at=appointment.updated_at,
    )


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(data: CreateAppointmentRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        appointment = booking.book(
            db,
            client_id=data.client_id,
            therapist_id=data.therapist_id,
            branch_id=data.branch_id,
            service_id=data.service_id,
            day=data.date,
            start_time=data.start_time,
            status=data.status,
            notes=data.notes,
        )
        return to_appointment_response(appointment)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('', response_model=list[AppointmentResponse])
def list_appointments(
    start: date = Query(...),
    end: date = Query(...),
    therapist_id: int | None = Query(default=None),
    client_id: int | None = Query(default=None),
    branch_id: int | None = Query(default=None),
    include_canceled: bool = Query(default=True),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        if (end - start).days > MAX_LISTING_RANGE_DAYS:
            raise ValidationError(f'Date range cannot exceed {MAX_LISTING_RANGE_DAYS} days.')

        appointments = booking.list_appointments(
            db,
            start,
            end,
            therapist_id=therapist_id,
            client_id=client_id,
            branch_id=branch_id,
            include_canceled=include_canceled,
        )
        return [to_appointment_response(appointment) for appointment in appointments]
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(appointment_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return to_appointment_response(booking.get_appointment(db, appointment_id))
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.put('/{appointment_id}', response_model=AppointmentResponse)
def reschedule_appointment(
    appointment_id: int,
    data: RescheduleAppointmentRequest,
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = booking.reschedule(
            db,
            appointment_id,
            day=data.day,
            start_time=data.start_time,
            therapist_id=data.therapist_id,
            branch_id=data.branch_id,
        )
        return to_appointment_response(appointment)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(appointment_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return to_appointment_response(booking.cancel(db, appointment_id))
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.patch('/{appointment_id}/status', response_model=AppointmentResponse)
def update_appointment_status(
    appointment_id: int,
    data: UpdateStatusRequest,
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return to_appointment_response(booking.update_status(db, appointment_id, data.status))
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/{appointment_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_appointment(appointment_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        booking.delete_appointment(db, appointment_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
