import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Form, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth import otp as otp_service
from backend.auth.dependencies import get_current_user
from backend.core import config, email
from backend.core.errors import database_unavailable
from backend.core.rate_limit import FixedWindowRateLimiter, enforce
from backend.core.schemas import ApiResponse, ok
from backend.database import ensure_database_ready, get_db
from backend.models.user import User
from backend.routes.auth_routes import AuthResponse, build_auth_response, issue_tokens

router = APIRouter(tags=['verification'])
logger = logging.getLogger(__name__)

otp_limiter = FixedWindowRateLimiter(config.OTP_RATE_LIMIT, config.OTP_RATE_WINDOW_SECONDS)

SUPPORTED_METHODS = {'email'}


@router.get('/otp', response_model=ApiResponse[None])
def request_otp(
    background_tasks: BackgroundTasks,
    method: str = Query(default='email'),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if method.strip().lower() not in SUPPORTED_METHODS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Unsupported verification method.',
        )

    if current_user.is_verified:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Email is already verified.',
        )

    enforce(
        otp_limiter,
        f'user:{current_user.id}',
        f'Rate limit exceeded. Please wait {config.OTP_RATE_WINDOW_SECONDS} seconds before requesting another OTP.',
    )

    ensure_database_ready()

    try:
        issued = otp_service.issue_otp(db, current_user)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    background_tasks.add_task(email.send_otp_email, issued.email, issued.code)
    logger.info('Issued OTP for user %s', current_user.id)
    return ok(message='OTP sent successfully')


@router.post('/otp', response_model=ApiResponse[AuthResponse])
def submit_otp(
    otp: str = Form(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if current_user.is_verified:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Email is already verified.',
        )

    ensure_database_ready()

    try:
        otp_service.verify_otp(db, current_user, otp)
        tokens = issue_tokens(current_user)
        db.commit()
        db.refresh(current_user)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    logger.info('Verified email for user %s', current_user.id)
    return ok(build_auth_response(current_user, tokens), 'OTP verified successfully')
