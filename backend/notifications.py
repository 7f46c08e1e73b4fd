from fastapi import BackgroundTasks
from sqlalchemy.orm import Session

from backend.core import email
from backend.models.notification import Notification
from backend.models.user import User

CONTRIBUTION_ACCEPTED = 'contribution_accepted'
CONTRIBUTION_COMPLETED = 'contribution_completed'
CONTRIBUTION_RELEASED = 'contribution_released'
CONTRIBUTION_CANCELLED = 'contribution_cancelled'
VERIFICATION_APPROVED = 'verification_approved'
VERIFICATION_REJECTED = 'verification_rejected'


def notify(
    db: Session,
    recipient: User,
    notification_type: str,
    title: str,
    message: str,
    related_food_item_id: int | None = None,
    priority: str = 'medium',
    background_tasks: BackgroundTasks | None = None,
) -> Notification:
    """Queue an in-app notification; the caller commits the session.

    When ``background_tasks`` is given the same message is also mailed to the
    recipient after the response is sent.
    """
    notification = Notification(
        recipient_id=recipient.id,
        type=notification_type,
        title=title,
        message=message,
        related_food_item_id=related_food_item_id,
        priority=priority,
        is_read=False,
    )
    db.add(notification)

    if background_tasks is not None:
        background_tasks.add_task(email.send_notification_email, recipient.email, title, message)

    return notification
