"""Conflict-safe booking.

Every write that can make a therapist busy runs inside
``serialized_for_therapists`` (see ``locks``). The placement recheck and the
commit both happen while the lock is held.
"""

import logging
from datetime import date, time

from sqlalchemy.orm import Session

from clinic_backend.core import config
from clinic_backend.core.errors import ConflictError, NotFoundError, ValidationError
from clinic_backend.core.timeslots import MINUTES_PER_DAY, Interval, minutes_to_time, overlaps, to_minutes
from clinic_backend.models.appointment import ACTIVE_STATUSES, Appointment, AppointmentStatus
from clinic_backend.models.branch import Branch
from clinic_backend.models.therapist import Therapist
from clinic_backend.scheduling.availability import is_blocked, load_busy_intervals, load_working_intervals
from clinic_backend.scheduling.locks import serialized_for_therapists
from clinic_backend.scheduling.lookups import get_branch, get_client, get_service, get_therapist

logger = logging.getLogger(__name__)

MAX_APPOINTMENT_NOTES_LENGTH = 600


def normalize_status(value: str, *, allow_canceled: bool = True) -> str:
    try:
        status = AppointmentStatus(value.strip().upper())
    except ValueError as exc:
        raise ValidationError(f'Invalid appointment status: {value!r}.') from exc

    if status is AppointmentStatus.CANCELED and not allow_canceled:
        raise ValidationError('New appointments cannot be created as CANCELED.')
    return status.value


def normalize_notes(value: str | None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > MAX_APPOINTMENT_NOTES_LENGTH:
        raise ValidationError(f'Notes must be {MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

    return normalized


def requested_interval(start_time: time, duration_minutes: int) -> Interval:
    if duration_minutes <= 0:
        raise ValidationError('Service duration must be a positive number of minutes.')

    start = to_minutes(start_time)
    end = start + duration_minutes
    if end > MINUTES_PER_DAY:
        raise ValidationError('Appointment must end on the same day it starts.')
    return Interval(start, end)


def _require_bookable(therapist: Therapist, branch: Branch) -> None:
    if not therapist.is_active:
        raise ValidationError(f'Therapist {therapist.id} is not active.')
    if not branch.is_active:
        raise ValidationError(f'Branch {branch.id} is not active.')


def _check_placement(
    db: Session,
    therapist_id: int,
    branch_id: int,
    day: date,
    interval: Interval,
    exclude_appointment_id: int | None = None,
) -> None:
    """Authoritative recheck; callers must hold the therapist's booking lock."""
    if is_blocked(db, therapist_id, day):
        raise ConflictError(f'Therapist {therapist_id} is unavailable on {day.isoformat()}.')

    working = load_working_intervals(db, therapist_id, day, branch_id)
    if not any(window.contains(interval) for window in working):
        raise ValidationError('Requested time is outside the therapist\'s working hours at this branch.')

    busy = load_busy_intervals(db, therapist_id, day, exclude_appointment_id)
    if any(overlaps(interval, taken) for taken in busy):
        logger.info(
            'Booking conflict for therapist %s on %s at %s',
            therapist_id,
            day.isoformat(),
            interval.as_dict()['start'],
        )
        raise ConflictError('This time is already booked.')


def book(
    db: Session,
    client_id: int,
    therapist_id: int,
    branch_id: int,
    service_id: int,
    day: date,
    start_time: time,
    status: str | None = None,
    notes: str | None = None,
) -> Appointment:
    service = get_service(db, service_id)
    interval = requested_interval(start_time, service.duration_minutes)
    therapist = get_therapist(db, therapist_id)
    branch = get_branch(db, branch_id)
    get_client(db, client_id)
    _require_bookable(therapist, branch)
    status = normalize_status(status or config.DEFAULT_APPOINTMENT_STATUS, allow_canceled=False)
    notes = normalize_notes(notes)

    with serialized_for_therapists(db, [therapist_id]):
        _check_placement(db, therapist_id, branch_id, day, interval)

        appointment = Appointment(
            client_id=client_id,
            therapist_id=therapist_id,
            branch_id=branch_id,
            service_id=service_id,
            date=day,
            start_time=minutes_to_time(interval.start),
            end_time=minutes_to_time(interval.end),
            status=status,
            notes=notes,
            duration_minutes=service.duration_minutes,
            price=service.price,
        )
        db.add(appointment)
        db.commit()

    db.refresh(appointment)
    logger.info(
        'Booked appointment %s: therapist %s, branch %s, %s %s',
        appointment.id,
        therapist_id,
        branch_id,
        day.isoformat(),
        interval.as_dict()['start'],
    )
    return appointment


def get_appointment(db: Session, appointment_id: int) -> Appointment:
    appointment = db.get(Appointment, appointment_id)
    if appointment is None:
        raise NotFoundError(f'Appointment {appointment_id} not found.')
    return appointment


def _appointment_duration(db: Session, appointment: Appointment) -> int:
    if appointment.duration_minutes:
        return appointment.duration_minutes
    return get_service(db, appointment.service_id).duration_minutes


def reschedule(
    db: Session,
    appointment_id: int,
    day: date | None = None,
    start_time: time | None = None,
    therapist_id: int | None = None,
    branch_id: int | None = None,
) -> Appointment:
    appointment = get_appointment(db, appointment_id)
    if appointment.status == AppointmentStatus.CANCELED.value:
        raise ValidationError('Canceled appointments cannot be rescheduled.')

    target_day = day or appointment.date
    target_therapist_id = therapist_id or appointment.therapist_id
    target_branch_id = branch_id or appointment.branch_id
    interval = requested_interval(start_time or appointment.start_time, _appointment_duration(db, appointment))

    _require_bookable(get_therapist(db, target_therapist_id), get_branch(db, target_branch_id))

    with serialized_for_therapists(db, [appointment.therapist_id, target_therapist_id]):
        _check_placement(db, target_therapist_id, target_branch_id, target_day, interval, appointment.id)

        appointment.date = target_day
        appointment.therapist_id = target_therapist_id
        appointment.branch_id = target_branch_id
        appointment.start_time = minutes_to_time(interval.start)
        appointment.end_time = minutes_to_time(interval.end)
        db.commit()

    db.refresh(appointment)
    logger.info('Rescheduled appointment %s to %s %s', appointment.id, target_day.isoformat(), interval.as_dict()['start'])
    return appointment


def update_status(db: Session, appointment_id: int, status: str) -> Appointment:
    appointment = get_appointment(db, appointment_id)
    new_status = normalize_status(status)

    reactivating = appointment.status not in ACTIVE_STATUSES and new_status in ACTIVE_STATUSES
    if reactivating:
        interval = Interval.from_times(appointment.start_time, appointment.end_time)
        _require_bookable(get_therapist(db, appointment.therapist_id), get_branch(db, appointment.branch_id))
        with serialized_for_therapists(db, [appointment.therapist_id]):
            _check_placement(
                db,
                appointment.therapist_id,
                appointment.branch_id,
                appointment.date,
                interval,
                appointment.id,
            )
            appointment.status = new_status
            db.commit()
    else:
        appointment.status = new_status
        db.commit()

    db.refresh(appointment)
    logger.info('Appointment %s status set to %s', appointment.id, new_status)
    return appointment


def cancel(db: Session, appointment_id: int) -> Appointment:
    return update_status(db, appointment_id, AppointmentStatus.CANCELED.value)


def delete_appointment(db: Session, appointment_id: int) -> None:
    appointment = get_appointment(db, appointment_id)
    db.delete(appointment)
    db.commit()
    logger.info('Deleted appointment %s', appointment_id)


def list_appointments(
    db: Session,
    start: date,
    end: date,
    therapist_id: int | None = None,
    client_id: int | None = None,
    branch_id: int | None = None,
    include_canceled: bool = True,
) -> list[Appointment]:
    if end < start:
        raise ValidationError('Range end must not be before range start.')

    query = db.query(Appointment).filter(
        Appointment.date >= start,
        Appointment.date <= end,
    )
    if therapist_id is not None:
        query = query.filter(Appointment.therapist_id == therapist_id)
    if client_id is not None:
        query = query.filter(Appointment.client_id == client_id)
    if branch_id is not None:
        query = query.filter(Appointment.branch_id == branch_id)
    if not include_canceled:
        query = query.filter(Appointment.status.in_(ACTIVE_STATUSES))

    return query.order_by(Appointment.date.asc(), Appointment.start_time.asc(), Appointment.id.asc()).all()
