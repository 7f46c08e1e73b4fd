"""Food item (contribution) model definitions."""

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text

from backend.core.clock import utcnow
from backend.database import Base

STATUS_AVAILABLE = "available"
STATUS_ACCEPTED = "accepted"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
FOOD_ITEM_STATUSES = (STATUS_AVAILABLE, STATUS_ACCEPTED, STATUS_COMPLETED, STATUS_CANCELLED)


class FoodItem(Base):
    """Represents a food contribution posted by a contributor."""
    __tablename__ = "food_items"

    id = Column(Integer, primary_key=True, index=True)
    contributor_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    name = Column(String, nullable=False)
    category = Column(String)
    description = Column(Text)
    quantity = Column(Float, nullable=False)
    unit = Column(String, nullable=False)
    estimated_meals = Column(Integer, default=0, nullable=False)
    is_vegetarian = Column(Boolean, default=False, nullable=False)
    pickup_address = Column(String)
    latitude = Column(Float)
    longitude = Column(Float)
    expires_at = Column(DateTime, nullable=False)
    status = Column(String, default=STATUS_AVAILABLE, nullable=False)

    accepted_by_id = Column(Integer, ForeignKey("users.id"), index=True)
    accepted_at = Column(DateTime)
    completed_at = Column(DateTime)
    cancelled_at = Column(DateTime)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
