"""Food item status transitions shared by the contributor and NGO routes."""

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from backend.core.clock import utcnow
from backend.models.food_item import (
    STATUS_ACCEPTED,
    STATUS_AVAILABLE,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    FoodItem,
)
from backend.models.user import ROLE_CONTRIBUTOR, ROLE_NGO, User

# (current status, requested status) -> roles allowed to make the change
TRANSITIONS = {
    (STATUS_AVAILABLE, STATUS_ACCEPTED): {ROLE_NGO},
    (STATUS_AVAILABLE, STATUS_CANCELLED): {ROLE_CONTRIBUTOR},
    (STATUS_ACCEPTED, STATUS_COMPLETED): {ROLE_CONTRIBUTOR, ROLE_NGO},
    (STATUS_ACCEPTED, STATUS_AVAILABLE): {ROLE_CONTRIBUTOR, ROLE_NGO},
}


def is_expired(item: FoodItem, now=None) -> bool:
    return item.expires_at <= (now or utcnow())


def get_food_item_or_404(db: Session, item_id: int) -> FoodItem:
    item = db.get(FoodItem, item_id)
    if item is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Food item not found.')
    return item


def ensure_participant(item: FoodItem, actor: User) -> None:
    if actor.role == ROLE_CONTRIBUTOR and item.contributor_id != actor.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only the contributor who posted this item can update it.',
        )
    if actor.role == ROLE_NGO and item.accepted_by_id != actor.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only the NGO that accepted this item can update it.',
        )


def apply_transition(db: Session, item: FoodItem, new_status: str, actor: User) -> str:
    """Move ``item`` to ``new_status`` on behalf of ``actor``; returns the previous status.

    The update only matches while the row still has the status and holder that
    were checked, so a concurrent change turns this call into a 409. The caller
    commits. Acceptance is not handled here, see ``accept_food_item``.
    """
    ensure_participant(item, actor)

    previous = item.status
    holder = item.accepted_by_id
    allowed_roles = TRANSITIONS.get((previous, new_status))
    if new_status == STATUS_ACCEPTED or not allowed_roles or actor.role not in allowed_roles:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f'Cannot change status from {previous} to {new_status}.',
        )

    now = utcnow()
    values = {FoodItem.status: new_status, FoodItem.updated_at: now}
    if new_status == STATUS_COMPLETED:
        values[FoodItem.completed_at] = now
    elif new_status == STATUS_CANCELLED:
        values[FoodItem.cancelled_at] = now
    elif new_status == STATUS_AVAILABLE:
        values[FoodItem.accepted_by_id] = None
        values[FoodItem.accepted_at] = None

    held_by = FoodItem.accepted_by_id.is_(None) if holder is None else FoodItem.accepted_by_id == holder
    updated = db.query(FoodItem).filter(
        FoodItem.id == item.id,
        FoodItem.status == previous,
        held_by,
    ).update(values, synchronize_session=False)

    if updated == 0:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail='This food item was changed by someone else. Please refresh and try again.',
        )
    return previous


def accept_food_item(db: Session, item_id: int, ngo: User) -> FoodItem:
    """Reserve an available, unexpired item for ``ngo``.

    The conditional update makes a second concurrent acceptance match no rows.
    """
    now = utcnow()
    updated = db.query(FoodItem).filter(
        FoodItem.id == item_id,
        FoodItem.status == STATUS_AVAILABLE,
        FoodItem.expires_at > now,
    ).update(
        {
            FoodItem.status: STATUS_ACCEPTED,
            FoodItem.accepted_by_id: ngo.id,
            FoodItem.accepted_at: now,
            FoodItem.updated_at: now,
        },
        synchronize_session=False,
    )

    if updated == 0:
        db.rollback()
        item = get_food_item_or_404(db, item_id)
        if item.status == STATUS_AVAILABLE and is_expired(item, now):
            detail = 'This food item has expired.'
        else:
            detail = 'This food item is no longer available.'
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)

    db.commit()
    item = db.get(FoodItem, item_id)
    db.refresh(item)
    return item
