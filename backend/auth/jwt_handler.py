import uuid
from datetime import datetime, timedelta, timezone

import jwt

from backend.core import config

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


def _create_token(subject: str, token_type: str, expires_delta: timedelta) -> str:
    issued_at = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "type": token_type,
        "iat": issued_at,
        "exp": issued_at + expires_delta,
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def create_access_token(user_id: int, expires_minutes: int | None = None) -> str:
    expire_minutes = expires_minutes or config.ACCESS_TOKEN_EXPIRES_MINUTES
    return _create_token(str(user_id), ACCESS_TOKEN_TYPE, timedelta(minutes=expire_minutes))


def create_refresh_token(user_id: int, expires_days: int | None = None) -> str:
    expire_days = expires_days or config.REFRESH_TOKEN_EXPIRES_DAYS
    return _create_token(str(user_id), REFRESH_TOKEN_TYPE, timedelta(days=expire_days))


def decode_token(token: str, expected_type: str = ACCESS_TOKEN_TYPE) -> dict:
    payload = jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
    if payload.get("type") != expected_type:
        raise jwt.InvalidTokenError(f"Expected a {expected_type} token")
    return payload


def decode_access_token(token: str) -> dict:
    return decode_token(token, ACCESS_TOKEN_TYPE)
