import logging
from datetime import datetime

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from pydantic import field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from backend import notifications
from backend.auth.dependencies import require_role
from backend.core.clock import utcnow
from backend.core.errors import database_unavailable
from backend.core.schemas import ApiResponse, CamelModel, ok
from backend.database import ensure_database_ready, get_db
from backend.models.food_item import FoodItem
from backend.models.user import ROLE_ADMIN, ROLE_NGO, User
from backend.models.verification_request import (
    VERIFICATION_APPROVED,
    VERIFICATION_PENDING,
    VERIFICATION_REJECTED,
    VerificationRequest,
)
from backend.routes.auth_routes import UserResponse

router = APIRouter(tags=['admin'])
logger = logging.getLogger(__name__)

REVIEW_STATUSES = (VERIFICATION_APPROVED, VERIFICATION_REJECTED)
VERIFICATION_STATUSES = (VERIFICATION_PENDING, *REVIEW_STATUSES)


class VerificationDocuments(CamelModel):
    registration_certificate: str | None = None


class VerificationRequestResponse(CamelModel):
    id: int
    user: UserResponse
    status: str
    submitted_at: datetime | None = None
    reviewed_at: datetime | None = None
    documents: VerificationDocuments
    review_notes: str | None = None


class ReviewRequest(CamelModel):
    status: str
    review_notes: str | None = None

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in REVIEW_STATUSES:
            raise ValueError('Status must be approved or rejected.')
        return normalized

    @field_validator('review_notes')
    @classmethod
    def normalize_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None


class DashboardStatsResponse(CamelModel):
    total_users: int
    active_ngos: int
    pending_verifications: int
    monthly_donations: int


def build_verification_response(request: VerificationRequest) -> VerificationRequestResponse:
    return VerificationRequestResponse(
        id=request.id,
        user=UserResponse.model_validate(request.user),
        status=request.status,
        submitted_at=request.submitted_at,
        reviewed_at=request.reviewed_at,
        documents=VerificationDocuments(registration_certificate=request.registration_certificate_url),
        review_notes=request.review_notes,
    )


@router.get('/verification-requests', response_model=ApiResponse[list[VerificationRequestResponse]])
def list_verification_requests(
    status_filter: str | None = Query(default=None, alias='status'),
    current_user: User = Depends(require_role(ROLE_ADMIN)),
    db: Session = Depends(get_db),
):
    query = db.query(VerificationRequest).options(joinedload(VerificationRequest.user))
    if status_filter:
        normalized = status_filter.strip().lower()
        if normalized not in VERIFICATION_STATUSES:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Invalid verification status.')
        query = query.filter(VerificationRequest.status == normalized)

    ensure_database_ready()

    try:
        requests = query.order_by(VerificationRequest.submitted_at.desc(), VerificationRequest.id.desc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return ok([build_verification_response(request) for request in requests])


@router.patch('/verification-requests/{request_id}', response_model=ApiResponse[VerificationRequestResponse])
def review_verification_request(
    request_id: int,
    data: ReviewRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(require_role(ROLE_ADMIN)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        request = db.get(VerificationRequest, request_id)
        if request is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Verification request not found.')
        if request.status != VERIFICATION_PENDING:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f'Verification request is already {request.status}.',
            )

        request.status = data.status
        request.review_notes = data.review_notes
        request.reviewed_by_id = current_user.id
        request.reviewed_at = utcnow()

        ngo = request.user
        if data.status == VERIFICATION_APPROVED:
            ngo.ngo_approved = True
            notifications.notify(
                db,
                ngo,
                notifications.VERIFICATION_APPROVED,
                'Verification approved',
                'Your organisation documents have been approved.',
                background_tasks=background_tasks,
            )
        else:
            notifications.notify(
                db,
                ngo,
                notifications.VERIFICATION_REJECTED,
                'Verification rejected',
                data.review_notes or 'Your organisation documents could not be verified.',
                priority='high',
                background_tasks=background_tasks,
            )

        db.commit()
        db.refresh(request)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    logger.info('Admin %s marked verification request %s as %s', current_user.id, request.id, request.status)
    return ok(build_verification_response(request), 'Verification status updated')


@router.get('/dashboard-stats', response_model=ApiResponse[DashboardStatsResponse])
def dashboard_stats(
    current_user: User = Depends(require_role(ROLE_ADMIN)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    month_start = utcnow().replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    try:
        stats = DashboardStatsResponse(
            total_users=db.query(User).count(),
            active_ngos=db.query(User).filter(User.role == ROLE_NGO, User.ngo_approved.is_(True)).count(),
            pending_verifications=db.query(VerificationRequest).filter(
                VerificationRequest.status == VERIFICATION_PENDING,
            ).count(),
            monthly_donations=db.query(FoodItem).filter(FoodItem.created_at >= month_start).count(),
        )
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return ok(stats)
