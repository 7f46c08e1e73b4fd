import logging
import math
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from pydantic import Field, field_validator, model_validator
from sqlalchemy import case, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend import donations, notifications
from backend.auth.dependencies import require_profile_completed, require_role
from backend.core.clock import utcnow
from backend.core.errors import database_unavailable
from backend.core.schemas import ApiResponse, CamelModel, ok
from backend.database import ensure_database_ready, get_db
from backend.models.food_item import (
    FOOD_ITEM_STATUSES,
    STATUS_ACCEPTED,
    STATUS_AVAILABLE,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    FoodItem,
)
from backend.models.user import ROLE_CONTRIBUTOR, User

router = APIRouter(tags=['contributor'])
logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 50
RECENT_CONTRIBUTIONS = 5
TOP_CONTRIBUTORS = 5
ANALYTICS_DAYS = {'week': 7, 'month': 30, 'year': 365}
WEIGHT_UNITS = ('kg', 'kgs', 'kilogram', 'kilograms')
UNCATEGORIZED = 'other'


def _normalize_status(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip().lower()
    if normalized not in FOOD_ITEM_STATUSES:
        raise ValueError(f"Status must be one of: {', '.join(FOOD_ITEM_STATUSES)}")
    return normalized


class CreateFoodItemRequest(CamelModel):
    name: str
    category: str | None = None
    description: str | None = None
    quantity: float = Field(gt=0)
    unit: str
    estimated_meals: int = Field(default=0, ge=0)
    is_vegetarian: bool = False
    pickup_address: str | None = None
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    expires_at: datetime

    @field_validator('name', 'unit')
    @classmethod
    def validate_required_text(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('This field is required.')
        return normalized

    @field_validator('expires_at')
    @classmethod
    def normalize_expiry(cls, value: datetime) -> datetime:
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        if value <= utcnow():
            raise ValueError('Expiry must be in the future.')
        return value

    @model_validator(mode='after')
    def validate_coordinates(self):
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError('Latitude and longitude must be provided together.')
        return self


class FoodItemResponse(CamelModel):
    id: int
    contributor_id: int
    name: str
    category: str | None = None
    description: str | None = None
    quantity: float
    unit: str
    estimated_meals: int
    is_vegetarian: bool
    pickup_address: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    expires_at: datetime
    status: str
    accepted_by_id: int | None = None
    accepted_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class GetFoodItemRequest(CamelModel):
    id: int


class FoodItemQuery(CamelModel):
    status: str | None = None
    search: str | None = None
    my_contributions: bool = False
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=DEFAULT_PAGE_SIZE, ge=1)

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str | None) -> str | None:
        return _normalize_status(value)

    @field_validator('limit')
    @classmethod
    def cap_limit(cls, value: int) -> int:
        return min(value, MAX_PAGE_SIZE)


class PaginatedFoodItems(CamelModel):
    data: list[FoodItemResponse]
    total_pages: int
    current_page: int
    total_count: int
    has_next_page: bool
    has_prev_page: bool


class UpdateStatusRequest(CamelModel):
    food_item_id: int
    status: str

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str) -> str:
        return _normalize_status(value)


class OverviewResponse(CamelModel):
    total_contributions: int
    active_contributions: int
    accepted_contributions: int
    completed_contributions: int
    cancelled_contributions: int
    total_meals_provided: int
    recent_contributions: list[FoodItemResponse]


class AnalyticsPeriod(CamelModel):
    period: str
    contributions: int
    meals: int
    food_saved: float


class TopContributor(CamelModel):
    name: str
    contributions: int
    meals: int


class FoodTypeShare(CamelModel):
    type: str
    count: int
    percentage: float


class AnalyticsResponse(CamelModel):
    time_range: str
    chart_data: list[AnalyticsPeriod]
    top_contributors: list[TopContributor]
    food_type_distribution: list[FoodTypeShare]


def analytics_window(time_range: str, now: datetime) -> tuple[datetime, list[str]]:
    """Start of the reporting window and its period keys, oldest first.

    ``week`` and ``month`` report per day (``YYYY-MM-DD``); ``year`` reports
    per calendar month (``YYYY-MM``) over the last twelve months.
    """
    if time_range == 'year':
        year, month = now.year, now.month
        keys = []
        for _ in range(12):
            keys.append(f'{year:04d}-{month:02d}')
            year, month = (year - 1, 12) if month == 1 else (year, month - 1)
        keys.reverse()
        first_year, first_month = (int(part) for part in keys[0].split('-'))
        return datetime(first_year, first_month, 1), keys

    days = ANALYTICS_DAYS[time_range]
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    since = today - timedelta(days=days - 1)
    return since, [(since + timedelta(days=offset)).strftime('%Y-%m-%d') for offset in range(days)]


@router.get('/overview', response_model=ApiResponse[OverviewResponse])
def overview(
    current_user: User = Depends(require_role(ROLE_CONTRIBUTOR)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        counts = dict(
            db.query(FoodItem.status, func.count(FoodItem.id))
            .filter(FoodItem.contributor_id == current_user.id)
            .group_by(FoodItem.status)
            .all()
        )
        meals = db.query(func.coalesce(func.sum(FoodItem.estimated_meals), 0)).filter(
            FoodItem.contributor_id == current_user.id,
            FoodItem.status == STATUS_COMPLETED,
        ).scalar()
        recent = (
            db.query(FoodItem)
            .filter(FoodItem.contributor_id == current_user.id)
            .order_by(FoodItem.created_at.desc(), FoodItem.id.desc())
            .limit(RECENT_CONTRIBUTIONS)
            .all()
        )
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return ok(
        OverviewResponse(
            total_contributions=sum(counts.values()),
            active_contributions=counts.get(STATUS_AVAILABLE, 0),
            accepted_contributions=counts.get(STATUS_ACCEPTED, 0),
            completed_contributions=counts.get(STATUS_COMPLETED, 0),
            cancelled_contributions=counts.get(STATUS_CANCELLED, 0),
            total_meals_provided=int(meals or 0),
            recent_contributions=[FoodItemResponse.model_validate(item) for item in recent],
        )
    )


@router.get('/analytics', response_model=ApiResponse[AnalyticsResponse])
def analytics(
    time_range: str = Query(default='month', alias='timeRange'),
    current_user: User = Depends(require_profile_completed),
    db: Session = Depends(get_db),
):
    time_range = time_range.strip().lower()
    if time_range not in ANALYTICS_DAYS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"timeRange must be one of: {', '.join(ANALYTICS_DAYS)}",
        )

    ensure_database_ready()

    since, periods = analytics_window(time_range, utcnow())
    in_window = (FoodItem.created_at >= since, FoodItem.status != STATUS_CANCELLED)
    contributions = func.count(FoodItem.id)
    meals = func.coalesce(func.sum(FoodItem.estimated_meals), 0)
    day = func.date(FoodItem.created_at)
    category = func.coalesce(FoodItem.category, UNCATEGORIZED)

    try:
        daily = (
            db.query(
                day,
                contributions,
                meals,
                func.coalesce(
                    func.sum(case((func.lower(FoodItem.unit).in_(WEIGHT_UNITS), FoodItem.quantity), else_=0)),
                    0,
                ),
            )
            .filter(*in_window)
            .group_by(day)
            .all()
        )
        top = (
            db.query(User.full_name, User.email, contributions, meals)
            .join(User, User.id == FoodItem.contributor_id)
            .filter(*in_window)
            .group_by(User.id, User.full_name, User.email)
            .order_by(contributions.desc(), User.id)
            .limit(TOP_CONTRIBUTORS)
            .all()
        )
        food_types = (
            db.query(category, contributions)
            .filter(*in_window)
            .group_by(category)
            .order_by(contributions.desc(), category)
            .all()
        )
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    chart = {key: AnalyticsPeriod(period=key, contributions=0, meals=0, food_saved=0) for key in periods}
    for value, count, meal_total, weight in daily:
        key = str(value)[:10]
        if time_range == 'year':
            key = key[:7]
        if key in chart:
            chart[key].contributions += count
            chart[key].meals += int(meal_total or 0)
            chart[key].food_saved += float(weight or 0)

    total_items = sum(count for _, count in food_types)
    return ok(
        AnalyticsResponse(
            time_range=time_range,
            chart_data=list(chart.values()),
            top_contributors=[
                TopContributor(name=full_name or email, contributions=count, meals=int(meal_total or 0))
                for full_name, email, count, meal_total in top
            ],
            food_type_distribution=[
                FoodTypeShare(type=name, count=count, percentage=round(count * 100 / total_items, 1))
                for name, count in food_types
            ],
        )
    )


@router.post('/addfood', response_model=ApiResponse[FoodItemResponse], status_code=status.HTTP_201_CREATED)
def add_food(
    data: CreateFoodItemRequest,
    current_user: User = Depends(require_role(ROLE_CONTRIBUTOR)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        item = FoodItem(
            contributor_id=current_user.id,
            name=data.name,
            category=data.category,
            description=data.description,
            quantity=data.quantity,
            unit=data.unit,
            estimated_meals=data.estimated_meals,
            is_vegetarian=data.is_vegetarian,
            pickup_address=data.pickup_address or current_user.full_address,
            latitude=data.latitude if data.latitude is not None else current_user.latitude,
            longitude=data.longitude if data.longitude is not None else current_user.longitude,
            expires_at=data.expires_at,
            status=STATUS_AVAILABLE,
        )
        db.add(item)
        db.commit()
        db.refresh(item)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    logger.info('Contributor %s posted food item %s', current_user.id, item.id)
    return ok(FoodItemResponse.model_validate(item), 'Food item added successfully')


@router.post('/getfooditem', response_model=ApiResponse[FoodItemResponse])
def get_food_item(
    data: GetFoodItemRequest,
    current_user: User = Depends(require_profile_completed),
    db: Session = Depends(get_db),
):
    try:
        item = donations.get_food_item_or_404(db, data.id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return ok(FoodItemResponse.model_validate(item))


@router.post('/getfooditems', response_model=ApiResponse[PaginatedFoodItems])
def get_food_items(
    data: FoodItemQuery,
    current_user: User = Depends(require_profile_completed),
    db: Session = Depends(get_db),
):
    try:
        query = db.query(FoodItem)
        if data.my_contributions:
            query = query.filter(FoodItem.contributor_id == current_user.id)
        if data.status:
            query = query.filter(FoodItem.status == data.status)
            if data.status == STATUS_AVAILABLE:
                query = query.filter(FoodItem.expires_at > utcnow())
        if data.search and data.search.strip():
            pattern = f'%{data.search.strip()}%'
            query = query.filter(
                or_(
                    FoodItem.name.ilike(pattern),
                    FoodItem.category.ilike(pattern),
                    FoodItem.description.ilike(pattern),
                )
            )

        total_count = query.count()
        items = (
            query.order_by(FoodItem.created_at.desc(), FoodItem.id.desc())
            .offset((data.page - 1) * data.limit)
            .limit(data.limit)
            .all()
        )
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    total_pages = math.ceil(total_count / data.limit) if total_count else 0
    return ok(
        PaginatedFoodItems(
            data=[FoodItemResponse.model_validate(item) for item in items],
            total_pages=total_pages,
            current_page=data.page,
            total_count=total_count,
            has_next_page=data.page < total_pages,
            has_prev_page=data.page > 1,
        )
    )


@router.patch('/update_status', response_model=ApiResponse[FoodItemResponse])
def update_status(
    data: UpdateStatusRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(require_role(ROLE_CONTRIBUTOR)),
    db: Session = Depends(get_db),
):
    try:
        item = donations.get_food_item_or_404(db, data.food_item_id)
        ngo = db.get(User, item.accepted_by_id) if item.accepted_by_id else None
        previous = donations.apply_transition(db, item, data.status, current_user)

        if ngo is not None and previous == STATUS_ACCEPTED:
            if data.status == STATUS_COMPLETED:
                notifications.notify(
                    db,
                    ngo,
                    notifications.CONTRIBUTION_COMPLETED,
                    'Pickup completed',
                    f'The contributor marked "{item.name}" as completed.',
                    related_food_item_id=item.id,
                    background_tasks=background_tasks,
                )
            else:
                notifications.notify(
                    db,
                    ngo,
                    notifications.CONTRIBUTION_RELEASED,
                    'Reservation declined',
                    f'The contributor released your reservation of "{item.name}".',
                    related_food_item_id=item.id,
                    priority='high',
                    background_tasks=background_tasks,
                )

        db.commit()
        db.refresh(item)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    logger.info('Food item %s moved from %s to %s by contributor %s', item.id, previous, item.status, current_user.id)
    return ok(FoodItemResponse.model_validate(item), 'Status updated successfully')
