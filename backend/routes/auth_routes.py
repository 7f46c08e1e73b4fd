import hashlib
import logging
import secrets
from datetime import datetime, timedelta

import jwt
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from pydantic import EmailStr, field_validator
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth import jwt_handler
from backend.auth.dependencies import get_current_user
from backend.auth.passwords import hash_password, verify_password
from backend.core import config, email
from backend.core.clock import utcnow
from backend.core.errors import database_unavailable
from backend.core.rate_limit import FixedWindowRateLimiter, rate_limit_by_ip
from backend.core.schemas import ApiResponse, CamelModel, ok
from backend.database import ensure_database_ready, get_db
from backend.models.user import User

router = APIRouter(tags=['auth'])
logger = logging.getLogger(__name__)

register_limiter = FixedWindowRateLimiter(config.AUTH_RATE_LIMIT, config.AUTH_RATE_WINDOW_SECONDS)
reset_limiter = FixedWindowRateLimiter(config.RESET_RATE_LIMIT, config.RESET_RATE_WINDOW_SECONDS)

RESET_REQUESTED_MESSAGE = 'If an account exists for this email, a reset link has been sent.'


def _validate_password(value: str) -> str:
    if len(value) < config.MIN_PASSWORD_LENGTH:
        raise ValueError(f'Password must be at least {config.MIN_PASSWORD_LENGTH} characters.')
    return value


class RegisterRequest(CamelModel):
    email: EmailStr
    password: str

    @field_validator('email', mode='before')
    @classmethod
    def normalize_email(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator('password')
    @classmethod
    def validate_password(cls, value: str) -> str:
        return _validate_password(value)


class LoginRequest(CamelModel):
    email: EmailStr
    password: str

    @field_validator('email', mode='before')
    @classmethod
    def normalize_email(cls, value):
        return value.strip().lower() if isinstance(value, str) else value


class RefreshRequest(CamelModel):
    refresh_token: str


class ResetPasswordRequest(CamelModel):
    email: EmailStr

    @field_validator('email', mode='before')
    @classmethod
    def normalize_email(cls, value):
        return value.strip().lower() if isinstance(value, str) else value


class NewPasswordRequest(CamelModel):
    new_password: str

    @field_validator('new_password')
    @classmethod
    def validate_password(cls, value: str) -> str:
        return _validate_password(value)


class ChangePasswordRequest(CamelModel):
    current_password: str
    new_password: str

    @field_validator('new_password')
    @classmethod
    def validate_password(cls, value: str) -> str:
        return _validate_password(value)


class UserResponse(CamelModel):
    id: int
    email: str
    full_name: str | None = None
    role: str | None = None
    is_verified: bool
    profile_completed: bool
    ngo_approved: bool = False
    profile_picture_url: str | None = None
    last_login_at: datetime | None = None
    created_at: datetime | None = None


class TokenPair(CamelModel):
    access_token: str
    refresh_token: str
    token_type: str = 'bearer'


class AuthResponse(TokenPair):
    user: UserResponse


def hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def issue_tokens(user: User) -> TokenPair:
    """Create a fresh token pair and store the refresh token on ``user``; the caller commits."""
    access_token = jwt_handler.create_access_token(user.id)
    refresh_token = jwt_handler.create_refresh_token(user.id)
    user.refresh_token = refresh_token
    return TokenPair(access_token=access_token, refresh_token=refresh_token)


def build_auth_response(user: User, tokens: TokenPair) -> AuthResponse:
    return AuthResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        user=UserResponse.model_validate(user),
    )


@router.post(
    '/register',
    response_model=ApiResponse[AuthResponse],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit_by_ip(register_limiter, 'Too many registration attempts. Please try again later.'))],
)
def register(data: RegisterRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        if db.query(User).filter(User.email == data.email).first():
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail='Email already registered',
            )

        user = User(
            email=data.email,
            hashed_password=hash_password(data.password),
            is_verified=False,
            profile_completed=False,
        )
        db.add(user)
        db.flush()

        tokens = issue_tokens(user)
        db.commit()
        db.refresh(user)
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail='Email already registered') from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    logger.info('Registered user %s', user.id)
    return ok(build_auth_response(user, tokens), 'User registered successfully. Please verify your email.')


@router.post('/login', response_model=ApiResponse[AuthResponse])
def login(data: LoginRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        user = db.query(User).filter(User.email == data.email).first()
        if user is None or not verify_password(data.password, user.hashed_password):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail='Invalid email or password',
            )

        user.last_login_at = utcnow()
        tokens = issue_tokens(user)
        db.commit()
        db.refresh(user)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    return ok(build_auth_response(user, tokens), 'Login successful')


@router.post('/refresh-tokens', response_model=ApiResponse[TokenPair])
def refresh_tokens(data: RefreshRequest, db: Session = Depends(get_db)):
    try:
        payload = jwt_handler.decode_token(data.refresh_token, jwt_handler.REFRESH_TOKEN_TYPE)
    except jwt.InvalidTokenError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail='Invalid refresh token',
        ) from exc

    subject = str(payload.get('sub', ''))
    if not subject.isdigit():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Invalid refresh token')

    ensure_database_ready()

    try:
        user = db.get(User, int(subject))
        if user is None or not user.refresh_token or not secrets.compare_digest(user.refresh_token, data.refresh_token):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail='Refresh token is expired or used',
            )

        tokens = issue_tokens(user)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    return ok(tokens, 'Access token refreshed')


@router.post('/logout', response_model=ApiResponse[None])
def logout(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    try:
        current_user.refresh_token = None
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    return ok(message='Logged out')


@router.post(
    '/req-reset-password',
    response_model=ApiResponse[None],
    dependencies=[Depends(rate_limit_by_ip(reset_limiter, 'Too many password reset requests. Please try again later.'))],
)
def request_password_reset(
    data: ResetPasswordRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        user = db.query(User).filter(User.email == data.email).first()
        if user is None:
            logger.info('Password reset requested for unknown email')
            return ok(message=RESET_REQUESTED_MESSAGE)

        token = secrets.token_urlsafe(32)
        user.password_reset_token_hash = hash_reset_token(token)
        user.password_reset_expires_at = utcnow() + timedelta(minutes=config.PASSWORD_RESET_EXPIRES_MINUTES)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    link = f"{config.FRONTEND_URL.rstrip('/')}/reset-password/{token}"
    background_tasks.add_task(email.send_password_reset_email, user.email, link)
    return ok(message=RESET_REQUESTED_MESSAGE)


@router.post('/reset-password/{token}', response_model=ApiResponse[None])
def reset_password(token: str, data: NewPasswordRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        user = db.query(User).filter(User.password_reset_token_hash == hash_reset_token(token)).first()
        if (
            user is None
            or user.password_reset_expires_at is None
            or user.password_reset_expires_at <= utcnow()
        ):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Reset link is invalid or has expired',
            )

        user.hashed_password = hash_password(data.new_password)
        user.password_reset_token_hash = None
        user.password_reset_expires_at = None
        user.refresh_token = None
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    return ok(message='Password reset successful')


@router.post('/change-password', response_model=ApiResponse[None])
def change_password(
    data: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not verify_password(data.current_password, current_user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Current password is incorrect',
        )

    try:
        current_user.hashed_password = hash_password(data.new_password)
        current_user.refresh_token = None
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    return ok(message='Password changed')
