from datetime import timedelta

import pytest
from fastapi import BackgroundTasks, HTTPException
from pydantic import ValidationError

from backend.auth import jwt_handler
from backend.auth.passwords import verify_password
from backend.core import email
from backend.core.clock import utcnow
from backend.models.user import User
from backend.routes.auth_routes import (
    ChangePasswordRequest,
    LoginRequest,
    NewPasswordRequest,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    change_password,
    hash_reset_token,
    login,
    logout,
    refresh_tokens,
    register,
    request_password_reset,
    reset_password,
)

PASSWORD = 'correct-horse-42'


def test_register_request_normalizes_email() -> None:
    request = RegisterRequest(email=' Donor@Example.ORG ', password=PASSWORD)

    assert request.email == 'donor@example.org'


def test_register_request_rejects_short_password() -> None:
    with pytest.raises(ValidationError):
        RegisterRequest(email='donor@example.org', password='short')


def test_register_creates_unverified_user_with_tokens(db) -> None:
    response = register(RegisterRequest(email='donor@example.org', password=PASSWORD), db=db)

    payload = response['data']
    user = db.query(User).filter(User.email == 'donor@example.org').one()
    assert user.is_verified is False
    assert user.profile_completed is False
    assert user.role is None
    assert payload.user.id == user.id
    assert user.refresh_token == payload.refresh_token
    assert jwt_handler.decode_access_token(payload.access_token)['sub'] == str(user.id)


def test_register_rejects_duplicate_email(db, make_user) -> None:
    make_user('donor@example.org')

    with pytest.raises(HTTPException) as exception_info:
        register(RegisterRequest(email='donor@example.org', password=PASSWORD), db=db)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'Email already registered'


def test_login_returns_tokens_for_unverified_user(db, make_user) -> None:
    user = make_user('donor@example.org', password=PASSWORD)

    response = login(LoginRequest(email='DONOR@example.org', password=PASSWORD), db=db)

    assert response['data'].user.id == user.id
    assert response['data'].user.is_verified is False
    db.refresh(user)
    assert user.last_login_at is not None


def test_login_rejects_wrong_password(db, make_user) -> None:
    make_user('donor@example.org', password=PASSWORD)

    with pytest.raises(HTTPException) as exception_info:
        login(LoginRequest(email='donor@example.org', password='wrong-password'), db=db)

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == 'Invalid email or password'


def test_refresh_tokens_rotates_and_invalidates_previous_token(db, make_user) -> None:
    make_user('donor@example.org', password=PASSWORD)
    first = login(LoginRequest(email='donor@example.org', password=PASSWORD), db=db)['data']

    rotated = refresh_tokens(RefreshRequest(refresh_token=first.refresh_token), db=db)['data']

    assert rotated.refresh_token != first.refresh_token
    with pytest.raises(HTTPException) as exception_info:
        refresh_tokens(RefreshRequest(refresh_token=first.refresh_token), db=db)
    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == 'Refresh token is expired or used'


def test_refresh_tokens_rejects_access_token(db, make_user) -> None:
    user = make_user()

    with pytest.raises(HTTPException) as exception_info:
        refresh_tokens(RefreshRequest(refresh_token=jwt_handler.create_access_token(user.id)), db=db)

    assert exception_info.value.detail == 'Invalid refresh token'


def test_logout_revokes_refresh_token(db, make_user) -> None:
    make_user('donor@example.org', password=PASSWORD)
    tokens = login(LoginRequest(email='donor@example.org', password=PASSWORD), db=db)['data']
    user = db.query(User).filter(User.email == 'donor@example.org').one()

    logout(current_user=user, db=db)

    with pytest.raises(HTTPException):
        refresh_tokens(RefreshRequest(refresh_token=tokens.refresh_token), db=db)


def test_request_password_reset_is_silent_for_unknown_email(db) -> None:
    background_tasks = BackgroundTasks()

    response = request_password_reset(
        ResetPasswordRequest(email='nobody@example.org'),
        background_tasks=background_tasks,
        db=db,
    )

    assert response['message'] == 'If an account exists for this email, a reset link has been sent.'
    assert background_tasks.tasks == []


def test_password_reset_flow_sets_new_password(db, make_user) -> None:
    user = make_user('donor@example.org', password=PASSWORD, refresh_token='stale')
    background_tasks = BackgroundTasks()

    request_password_reset(
        ResetPasswordRequest(email='donor@example.org'),
        background_tasks=background_tasks,
        db=db,
    )

    assert len(background_tasks.tasks) == 1
    task = background_tasks.tasks[0]
    assert task.func is email.send_password_reset_email
    link = task.args[1]
    token = link.rsplit('/', 1)[1]

    reset_password(token, NewPasswordRequest(new_password='brand-new-secret'), db=db)

    db.refresh(user)
    assert verify_password('brand-new-secret', user.hashed_password)
    assert user.password_reset_token_hash is None
    assert user.refresh_token is None


def test_reset_password_rejects_expired_token(db, make_user) -> None:
    make_user(
        'donor@example.org',
        password_reset_token_hash=hash_reset_token('expired-token'),
        password_reset_expires_at=utcnow() - timedelta(minutes=1),
    )

    with pytest.raises(HTTPException) as exception_info:
        reset_password('expired-token', NewPasswordRequest(new_password='brand-new-secret'), db=db)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Reset link is invalid or has expired'


def test_change_password_requires_current_password(db, make_user) -> None:
    user = make_user(password=PASSWORD)

    with pytest.raises(HTTPException) as exception_info:
        change_password(
            ChangePasswordRequest(current_password='not-it', new_password='brand-new-secret'),
            current_user=user,
            db=db,
        )

    assert exception_info.value.detail == 'Current password is incorrect'


def test_change_password_updates_hash_and_revokes_refresh_token(db, make_user) -> None:
    user = make_user(password=PASSWORD, refresh_token='other-session')

    change_password(
        ChangePasswordRequest(current_password=PASSWORD, new_password='brand-new-secret'),
        current_user=user,
        db=db,
    )

    db.refresh(user)
    assert verify_password('brand-new-secret', user.hashed_password)
    assert user.refresh_token is None
