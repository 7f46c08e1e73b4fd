"""Issuing and checking emailed one-time codes."""

import secrets
from datetime import timedelta

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from backend.core import config
from backend.core.clock import utcnow
from backend.models.otp import OTP
from backend.models.user import User


def generate_code(length: int | None = None) -> str:
    digits = length or config.OTP_LENGTH
    return ''.join(secrets.choice('0123456789') for _ in range(digits))


def is_well_formed(code: str) -> bool:
    return len(code) == config.OTP_LENGTH and code.isdigit()


def issue_otp(db: Session, user: User) -> OTP:
    """Replace any outstanding code for ``user`` with a fresh one."""
    db.query(OTP).filter(
        OTP.user_id == user.id,
        OTP.consumed_at.is_(None),
    ).delete(synchronize_session=False)

    otp = OTP(
        user_id=user.id,
        email=user.email,
        code=generate_code(),
        expires_at=utcnow() + timedelta(minutes=config.OTP_EXPIRES_MINUTES),
        attempts=0,
    )
    db.add(otp)
    db.commit()
    db.refresh(otp)
    return otp


def verify_otp(db: Session, user: User, code: str) -> None:
    """Consume ``code`` for ``user`` and mark the account verified."""
    code = (code or '').strip()
    if not is_well_formed(code):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'OTP must be a {config.OTP_LENGTH}-digit number',
        )

    otp = db.query(OTP).filter(
        OTP.user_id == user.id,
        OTP.consumed_at.is_(None),
    ).order_by(OTP.created_at.desc(), OTP.id.desc()).first()

    if otp is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='No active OTP. Please request a new code.',
        )

    now = utcnow()
    if otp.expires_at <= now:
        db.delete(otp)
        db.commit()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='OTP expired')

    if not secrets.compare_digest(otp.code, code):
        otp.attempts = (otp.attempts or 0) + 1
        if otp.attempts >= config.OTP_MAX_ATTEMPTS:
            db.delete(otp)
            db.commit()
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Too many invalid attempts. Please request a new code.',
            )
        db.commit()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Invalid OTP')

    otp.consumed_at = now
    user.is_verified = True
    db.commit()
