import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from pydantic import field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend import donations, notifications
from backend.auth.dependencies import require_role
from backend.core.errors import database_unavailable
from backend.core.schemas import ApiResponse, CamelModel, ok
from backend.database import ensure_database_ready, get_db
from backend.models.food_item import STATUS_ACCEPTED, STATUS_AVAILABLE, STATUS_COMPLETED, FoodItem
from backend.models.user import ROLE_NGO, User
from backend.routes.contributor_routes import FoodItemResponse

router = APIRouter(tags=['ngo'])
logger = logging.getLogger(__name__)

NGO_STATUS_UPDATES = (STATUS_COMPLETED, STATUS_AVAILABLE)


class ReservationRequest(CamelModel):
    food_item_id: int


class ReservationStatusRequest(CamelModel):
    reservation_id: int
    status: str

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in NGO_STATUS_UPDATES:
            raise ValueError(f"Status must be one of: {', '.join(NGO_STATUS_UPDATES)}")
        return normalized


@router.post('/reservation_req', response_model=ApiResponse[FoodItemResponse])
def make_request(
    data: ReservationRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(require_role(ROLE_NGO)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        item = donations.accept_food_item(db, data.food_item_id, current_user)

        contributor = db.get(User, item.contributor_id)
        if contributor is not None:
            notifications.notify(
                db,
                contributor,
                notifications.CONTRIBUTION_ACCEPTED,
                'Donation accepted',
                f'{current_user.full_name or current_user.email} accepted "{item.name}".',
                related_food_item_id=item.id,
                priority='high',
                background_tasks=background_tasks,
            )
            db.commit()
            db.refresh(item)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    logger.info('NGO %s accepted food item %s', current_user.id, item.id)
    return ok(FoodItemResponse.model_validate(item), 'Food item reserved successfully')


@router.patch('/update_status', response_model=ApiResponse[FoodItemResponse])
def update_status_ngo(
    data: ReservationStatusRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(require_role(ROLE_NGO)),
    db: Session = Depends(get_db),
):
    try:
        item = donations.get_food_item_or_404(db, data.reservation_id)
        if item.accepted_by_id != current_user.id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail='Only the NGO that accepted this item can update it.',
            )

        donations.apply_transition(db, item, data.status, current_user)

        contributor = db.get(User, item.contributor_id)
        if contributor is not None:
            if data.status == STATUS_COMPLETED:
                notifications.notify(
                    db,
                    contributor,
                    notifications.CONTRIBUTION_COMPLETED,
                    'Pickup completed',
                    f'{current_user.full_name or current_user.email} completed the pickup of "{item.name}".',
                    related_food_item_id=item.id,
                    background_tasks=background_tasks,
                )
            else:
                notifications.notify(
                    db,
                    contributor,
                    notifications.CONTRIBUTION_RELEASED,
                    'Reservation released',
                    f'{current_user.full_name or current_user.email} released "{item.name}". '
                    'It is available again.',
                    related_food_item_id=item.id,
                    priority='high',
                    background_tasks=background_tasks,
                )

        db.commit()
        db.refresh(item)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    return ok(FoodItemResponse.model_validate(item), 'Status updated successfully')


@router.get('/reservations', response_model=ApiResponse[list[FoodItemResponse]])
def list_reservations(
    current_user: User = Depends(require_role(ROLE_NGO)),
    db: Session = Depends(get_db),
):
    try:
        items = db.query(FoodItem).filter(
            FoodItem.accepted_by_id == current_user.id,
            FoodItem.status.in_((STATUS_ACCEPTED, STATUS_COMPLETED)),
        ).order_by(FoodItem.accepted_at.desc(), FoodItem.id.desc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return ok([FoodItemResponse.model_validate(item) for item in items])
