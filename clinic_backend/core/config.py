import os

from dotenv import load_dotenv

load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
SQL_ECHO = _get_bool(os.getenv("SQL_ECHO"), default=False)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clinic.db")

CORS_ALLOWED_ORIGINS = _get_list(os.getenv("CORS_ALLOWED_ORIGINS"), ["http://localhost:5173"])

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

# Availability fan-out for multi-therapist pickers.
AVAILABILITY_MAX_WORKERS = int(os.getenv("AVAILABILITY_MAX_WORKERS", "8"))
AGGREGATION_TIMEOUT_SECONDS = float(os.getenv("AGGREGATION_TIMEOUT_SECONDS", "5"))
MAX_LOOKAHEAD_DAYS = int(os.getenv("MAX_LOOKAHEAD_DAYS", "90"))

DEFAULT_APPOINTMENT_STATUS = os.getenv("DEFAULT_APPOINTMENT_STATUS", "SCHEDULED").strip().upper()

def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if DEFAULT_APPOINTMENT_STATUS not in {"SCHEDULED", "PENDING", "CONFIRMED"}:
        raise RuntimeError("DEFAULT_APPOINTMENT_STATUS must be SCHEDULED, PENDING or CONFIRMED.")
    if AVAILABILITY_MAX_WORKERS < 1:
        raise RuntimeError("AVAILABILITY_MAX_WORKERS must be at least 1.")
