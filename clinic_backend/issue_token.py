"""Print a bearer token for an existing user.

Usage:
    python -m clinic_backend.issue_token admin@clinic.example
"""
import argparse
import sys

from clinic_backend.auth.jwt_handler import create_access_token
from clinic_backend.database import SessionLocal
from clinic_backend.models import therapist  # noqa: F401
from clinic_backend.models.user import User


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("email")
    parser.add_argument("--expires-minutes", type=int, default=None)
    args = parser.parse_args(argv)

    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == args.email.strip().lower()).first()
    finally:
        db.close()

    if user is None:
        print(f"No user with email {args.email}", file=sys.stderr)
        return 1

    print(create_access_token(subject=user.email, role=user.role, expires_minutes=args.expires_minutes))
    return 0


if __name__ == "__main__":
    sys.exit(main())
