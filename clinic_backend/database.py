from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from clinic_backend.core import config


def build_engine(database_url: str):
    connect_args = {}
    if database_url.startswith('sqlite'):
        # Availability fan-out and concurrent bookings share the engine across threads.
        connect_args = {'check_same_thread': False, 'timeout': 30}
    return create_engine(database_url, connect_args=connect_args, echo=config.SQL_ECHO)


engine = build_engine(config.DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_appointment_schema_checked = False


def ensure_appointment_schema() -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(engine)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('appointments')}
        migration_steps = [
            ('notes', 'ALTER TABLE appointments ADD COLUMN notes VARCHAR'),
            ('duration_minutes', 'ALTER TABLE appointments ADD COLUMN duration_minutes INTEGER'),
            ('price', 'ALTER TABLE appointments ADD COLUMN price NUMERIC(10, 2)'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_therapist_date ON appointments(therapist_id, date)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_branch_date ON appointments(branch_id, date)')
            )

        _appointment_schema_checked = True
