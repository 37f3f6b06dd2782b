import jwt
import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from clinic_backend import issue_token
from clinic_backend.auth import jwt_handler
from clinic_backend.auth.dependencies import ensure_can_manage_schedule, get_current_user
from clinic_backend.models.user import User
from clinic_backend.routes.auth_routes import me


def bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme='Bearer', credentials=token)


@pytest.fixture
def therapist_user(db, clinic) -> User:
    user = User(email='ana@clinic.example', role='therapist', therapist_id=clinic.ana.id)
    db.add(user)
    db.commit()
    return user


def test_access_token_carries_subject_and_role() -> None:
    token = jwt_handler.create_access_token('admin@clinic.example', role='admin')

    payload = jwt_handler.decode_access_token(token)

    assert payload['sub'] == 'admin@clinic.example'
    assert payload['role'] == 'admin'
    assert payload['exp'] > payload['iat']


def test_expired_token_is_rejected() -> None:
    token = jwt_handler.create_access_token('admin@clinic.example', expires_minutes=-1)

    with pytest.raises(jwt.ExpiredSignatureError):
        jwt_handler.decode_access_token(token)


def test_get_current_user_resolves_token_owner(db, therapist_user) -> None:
    token = jwt_handler.create_access_token(therapist_user.email)

    user = get_current_user(credentials=bearer(token), db=db)

    assert user.id == therapist_user.id


def test_get_current_user_rejects_garbage_token(db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_current_user(credentials=bearer('not-a-token'), db=db)

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == 'Invalid token'


def test_get_current_user_rejects_unknown_user(db) -> None:
    token = jwt_handler.create_access_token('ghost@clinic.example')

    with pytest.raises(HTTPException) as exception_info:
        get_current_user(credentials=bearer(token), db=db)

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == 'User not found'


def test_ensure_can_manage_schedule_roles(therapist_user, clinic) -> None:
    ensure_can_manage_schedule(User(email='admin@clinic.example', role='admin'), clinic.ana.id)
    ensure_can_manage_schedule(therapist_user, clinic.ana.id)

    for user, therapist_id in [
        (therapist_user, clinic.ana.id + 1),
        (User(email='desk@clinic.example', role='receptionist'), clinic.ana.id),
    ]:
        with pytest.raises(HTTPException) as exception_info:
            ensure_can_manage_schedule(user, therapist_id)
        assert exception_info.value.status_code == 403


def test_issue_token_prints_token_for_known_user(session_factory, therapist_user, monkeypatch, capsys) -> None:
    monkeypatch.setattr(issue_token, 'SessionLocal', session_factory)

    exit_code = issue_token.main([' ANA@clinic.example '])

    token = capsys.readouterr().out.strip()
    assert exit_code == 0
    assert jwt_handler.decode_access_token(token)['role'] == 'therapist'


def test_issue_token_fails_for_unknown_user(session_factory, clinic, monkeypatch, capsys) -> None:
    monkeypatch.setattr(issue_token, 'SessionLocal', session_factory)

    assert issue_token.main(['ghost@clinic.example']) == 1
    assert 'No user with email' in capsys.readouterr().err


def test_me_returns_user_profile(therapist_user) -> None:
    assert me(current_user=therapist_user) == {
        'email': 'ana@clinic.example',
        'role': 'therapist',
        'therapist_id': therapist_user.therapist_id,
    }


def test_get_current_user_rejects_token_with_stale_role(db, therapist_user) -> None:
    token = jwt_handler.create_access_token(therapist_user.email, role='admin')

    with pytest.raises(HTTPException) as exception_info:
        get_current_user(credentials=bearer(token), db=db)

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == 'Token role is out of date'
