from decimal import Decimal

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from clinic_backend.routes.catalog_routes import (
    BranchRequest,
    ClientRequest,
    ServiceRequest,
    TherapistRequest,
    create_branch,
    create_client,
    create_service,
    create_therapist,
    get_service,
    list_therapists,
)


@pytest.fixture(autouse=True)
def database_ready(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('clinic_backend.routes.catalog_routes.ensure_database_ready', lambda: None)


def test_branch_request_rejects_blank_name() -> None:
    with pytest.raises(ValidationError):
        BranchRequest(name='   ')


@pytest.mark.parametrize(('duration', 'price'), [(0, Decimal('10')), (30, Decimal('-1'))])
def test_service_request_rejects_invalid_values(duration: int, price: Decimal) -> None:
    with pytest.raises(ValidationError):
        ServiceRequest(name='Massage', duration_minutes=duration, price=price)


def test_client_request_normalizes_email() -> None:
    request = ClientRequest(name=' Maria ', email=' MARIA@Example.COM ')

    assert request.name == 'Maria'
    assert request.email == 'maria@example.com'


def test_create_records_and_list_active_therapists(db) -> None:
    branch = create_branch(data=BranchRequest(name='Downtown'), db=db)
    service = create_service(data=ServiceRequest(name='Massage 45', duration_minutes=45, price=Decimal('80')), db=db)
    create_client(data=ClientRequest(name='Maria'), db=db)
    create_therapist(data=TherapistRequest(name='Bruno'), db=db)
    create_therapist(data=TherapistRequest(name='Ana', is_active=False), db=db)

    assert branch.id is not None
    assert get_service(service_id=service.id, db=db).duration_minutes == 45
    assert [therapist.name for therapist in list_therapists(active_only=False, db=db)] == ['Ana', 'Bruno']
    assert [therapist.name for therapist in list_therapists(active_only=True, db=db)] == ['Bruno']


def test_get_missing_service_is_404(db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_service(service_id=9999, db=db)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Service not found.'
