import os
from datetime import time
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite://')

from clinic_backend.database import Base, build_engine  # noqa: E402
from clinic_backend.models import user  # noqa: E402,F401
from clinic_backend.models.appointment import Appointment  # noqa: E402
from clinic_backend.models.branch import Branch  # noqa: E402
from clinic_backend.models.client import Client  # noqa: E402
from clinic_backend.models.schedule import WeeklyScheduleEntry  # noqa: E402
from clinic_backend.models.service import Service  # noqa: E402
from clinic_backend.models.therapist import Therapist  # noqa: E402

MONDAY_DOW = 1


@pytest.fixture
def engine(tmp_path):
    # A file database so worker threads can open their own connections.
    engine = build_engine(f"sqlite:///{tmp_path / 'clinic.db'}")
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def _add_schedule(db, therapist, branch, day_of_week, start, end):
    entry = WeeklyScheduleEntry(
        therapist_id=therapist.id,
        branch_id=branch.id,
        day_of_week=day_of_week,
        start_time=start,
        end_time=end,
    )
    db.add(entry)
    db.commit()
    return entry


@pytest.fixture
def add_schedule(db):
    def add(therapist, branch, day_of_week, start, end):
        return _add_schedule(db, therapist, branch, day_of_week, start, end)

    return add


@pytest.fixture
def clinic(db):
    """Ana works Monday 08:00-12:00 and 13:00-17:00 at Branch A."""
    branch_a = Branch(name='Branch A', is_active=True)
    branch_b = Branch(name='Branch B', is_active=True)
    ana = Therapist(name='Ana', specialty='Physiotherapy', is_active=True)
    hour_session = Service(name='Massage 60', duration_minutes=60, price=Decimal('120.00'))
    long_session = Service(name='Massage 90', duration_minutes=90, price=Decimal('170.00'))
    patient = Client(name='Carlos Souza', email='carlos@example.com')
    db.add_all([branch_a, branch_b, ana, hour_session, long_session, patient])
    db.commit()

    _add_schedule(db, ana, branch_a, MONDAY_DOW, time(8, 0), time(12, 0))
    _add_schedule(db, ana, branch_a, MONDAY_DOW, time(13, 0), time(17, 0))

    return SimpleNamespace(
        branch_a=branch_a,
        branch_b=branch_b,
        ana=ana,
        hour_session=hour_session,
        long_session=long_session,
        patient=patient,
    )


@pytest.fixture
def add_appointment(db, clinic):
    def add(day, start, end, status='SCHEDULED', therapist=None, branch=None):
        therapist = therapist or clinic.ana
        appointment = Appointment(
            client_id=clinic.patient.id,
            therapist_id=therapist.id,
            branch_id=(branch or clinic.branch_a).id,
            service_id=clinic.hour_session.id,
            date=day,
            start_time=start,
            end_time=end,
            status=status,
            duration_minutes=60,
        )
        db.add(appointment)
        db.commit()
        return appointment

    return add
