"""NGO verification request model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from backend.core.clock import utcnow
from backend.database import Base

VERIFICATION_PENDING = "pending"
VERIFICATION_APPROVED = "approved"
VERIFICATION_REJECTED = "rejected"


class VerificationRequest(Base):
    """Represents an NGO's onboarding documents awaiting admin review."""
    __tablename__ = "verification_requests"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    status = Column(String, default=VERIFICATION_PENDING, nullable=False)
    registration_certificate_url = Column(String)
    review_notes = Column(Text)
    reviewed_by_id = Column(Integer, ForeignKey("users.id"))
    submitted_at = Column(DateTime, default=utcnow)
    reviewed_at = Column(DateTime)

    user = relationship("User", foreign_keys=[user_id])
