from typing import Iterable

from sqlalchemy.orm import Session

from clinic_backend.core.errors import NotFoundError, ValidationError
from clinic_backend.models.branch import Branch
from clinic_backend.models.client import Client
from clinic_backend.models.service import Service
from clinic_backend.models.therapist import Therapist


def get_therapist(db: Session, therapist_id: int) -> Therapist:
    therapist = db.get(Therapist, therapist_id)
    if therapist is None:
        raise NotFoundError(f'Therapist {therapist_id} not found.')
    return therapist


def get_service(db: Session, service_id: int) -> Service:
    service = db.get(Service, service_id)
    if service is None:
        raise NotFoundError(f'Service {service_id} not found.')
    return service


def get_branch(db: Session, branch_id: int) -> Branch:
    branch = db.get(Branch, branch_id)
    if branch is None:
        raise NotFoundError(f'Branch {branch_id} not found.')
    return branch


def get_client(db: Session, client_id: int) -> Client:
    client = db.get(Client, client_id)
    if client is None:
        raise NotFoundError(f'Client {client_id} not found.')
    return client


def get_services(db: Session, service_ids: int | Iterable[int]) -> list[Service]:
    """Resolve one service id or several; duplicates are looked up once."""
    ids = [service_ids] if isinstance(service_ids, int) else list(dict.fromkeys(service_ids))
    if not ids:
        raise ValidationError('At least one service is required.')
    return [get_service(db, service_id) for service_id in ids]
