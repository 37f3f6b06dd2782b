import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from clinic_backend.auth import jwt_handler
from clinic_backend.models.user import User
from clinic_backend.routes.dependencies import get_db

security = HTTPBearer()

ADMIN_ROLE = "admin"
THERAPIST_ROLE = "therapist"


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    email = payload.get("sub")
    if not email:
        raise HTTPException(status_code=401, detail="Invalid token subject")

    user = db.query(User).filter(User.email == email).first()
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")

    # Tokens minted before a role change stop working.
    role = payload.get("role")
    if role is not None and role != user.role:
        raise HTTPException(status_code=401, detail="Token role is out of date")
    return user


def ensure_can_manage_schedule(user: User, therapist_id: int) -> None:
    """Admins manage every schedule; therapists only their own."""
    if user.role == ADMIN_ROLE:
        return
    if user.role == THERAPIST_ROLE and user.therapist_id == therapist_id:
        return
    raise HTTPException(status_code=403, detail="Not allowed to manage this therapist's schedule.")
