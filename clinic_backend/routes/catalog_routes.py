"""Create/list/get endpoints for the records the scheduler reads."""

from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_backend.models.branch import Branch
from clinic_backend.models.client import Client
from clinic_backend.models.service import Service
from clinic_backend.models.therapist import Therapist
from clinic_backend.routes.dependencies import database_unavailable, ensure_database_ready, get_db

router = APIRouter(tags=['catalog'])


def _require_name(value: str) -> str:
    normalized = value.strip()
    if not normalized:
        raise ValueError('Name is required.')
    return normalized


class BranchRequest(BaseModel):
    name: str
    is_active: bool = True

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        return _require_name(value)


class BranchResponse(BaseModel):
    id: int
    name: str
    is_active: bool

    class Config:
        from_attributes = True


class ServiceRequest(BaseModel):
    name: str
    duration_minutes: int
    price: Decimal = Decimal('0')

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        return _require_name(value)

    @field_validator('duration_minutes')
    @classmethod
    def validate_duration(cls, value: int) -> int:
        if value <= 0:
            raise ValueError('Duration must be a positive number of minutes.')
        return value

    @field_validator('price')
    @classmethod
    def validate_price(cls, value: Decimal) -> Decimal:
        if value < 0:
            raise ValueError('Price cannot be negative.')
        return value


class ServiceResponse(BaseModel):
    id: int
    name: str
    duration_minutes: int
    price: Decimal

    class Config:
        from_attributes = True


class TherapistRequest(BaseModel):
    name: str
    specialty: str | None = None
    is_active: bool = True

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        return _require_name(value)


class TherapistResponse(BaseModel):
    id: int
    name: str
    specialty: str | None = None
    is_active: bool

    class Config:
        from_attributes = True


class ClientRequest(BaseModel):
    name: str
    email: str | None = None
    phone: str | None = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        return _require_name(value)

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip().lower()
        return normalized or None


class ClientResponse(BaseModel):
    id: int
    name: str
    email: str | None = None
    phone: str | None = None

    class Config:
        from_attributes = True


def _create(db: Session, record):
    ensure_database_ready()
    try:
        db.add(record)
        db.commit()
        db.refresh(record)
        return record
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


def _get_or_404(db: Session, model, record_id: int, label: str):
    ensure_database_ready()
    try:
        record = db.get(model, record_id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f'{label} not found.')
    return record


@router.post('/branches', response_model=BranchResponse, status_code=status.HTTP_201_CREATED)
def create_branch(data: BranchRequest, db: Session = Depends(get_db)):
    return _create(db, Branch(name=data.name, is_active=data.is_active))


@router.get('/branches', response_model=list[BranchResponse])
def list_branches(active_only: bool = Query(default=False), db: Session = Depends(get_db)):
    ensure_database_ready()
    try:
        query = db.query(Branch)
        if active_only:
            query = query.filter(Branch.is_active.is_(True))
        return query.order_by(Branch.name.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/branches/{branch_id}', response_model=BranchResponse)
def get_branch(branch_id: int, db: Session = Depends(get_db)):
    return _get_or_404(db, Branch, branch_id, 'Branch')


@router.post('/services', response_model=ServiceResponse, status_code=status.HTTP_201_CREATED)
def create_service(data: ServiceRequest, db: Session = Depends(get_db)):
    return _create(db, Service(name=data.name, duration_minutes=data.duration_minutes, price=data.price))


@router.get('/services', response_model=list[ServiceResponse])
def list_services(db: Session = Depends(get_db)):
    ensure_database_ready()
    try:
        return db.query(Service).order_by(Service.name.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/services/{service_id}', response_model=ServiceResponse)
def get_service(service_id: int, db: Session = Depends(get_db)):
    return _get_or_404(db, Service, service_id, 'Service')


@router.post('/therapists', response_model=TherapistResponse, status_code=status.HTTP_201_CREATED)
def create_therapist(data: TherapistRequest, db: Session = Depends(get_db)):
    return _create(db, Therapist(name=data.name, specialty=data.specialty, is_active=data.is_active))


@router.get('/therapists', response_model=list[TherapistResponse])
def list_therapists(active_only: bool = Query(default=False), db: Session = Depends(get_db)):
    ensure_database_ready()
    try:
        query = db.query(Therapist)
        if active_only:
            query = query.filter(Therapist.is_active.is_(True))
        return query.order_by(Therapist.name.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/therapists/{therapist_id}', response_model=TherapistResponse)
def get_therapist(therapist_id: int, db: Session = Depends(get_db)):
    return _get_or_404(db, Therapist, therapist_id, 'Therapist')


@router.post('/clients', response_model=ClientResponse, status_code=status.HTTP_201_CREATED)
def create_client(data: ClientRequest, db: Session = Depends(get_db)):
    return _create(db, Client(name=data.name, email=data.email, phone=data.phone))


@router.get('/clients', response_model=list[ClientResponse])
def list_clients(db: Session = Depends(get_db)):
    ensure_database_ready()
    try:
        return db.query(Client).order_by(Client.name.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/clients/{client_id}', response_model=ClientResponse)
def get_client(client_id: int, db: Session = Depends(get_db)):
    return _get_or_404(db, Client, client_id, 'Client')
