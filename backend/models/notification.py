"""Notification model definitions."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text

from backend.core.clock import utcnow
from backend.database import Base


class Notification(Base):
    """Represents an in-app message for a user."""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True)
    recipient_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    type = Column(String, nullable=False)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)
    related_food_item_id = Column(Integer, ForeignKey("food_items.id"))
    priority = Column(String, default="medium", nullable=False)
    created_at = Column(DateTime, default=utcnow)
    read_at = Column(DateTime)
