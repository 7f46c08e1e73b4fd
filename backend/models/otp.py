"""One-time password model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String

from backend.core.clock import utcnow
from backend.database import Base


class OTP(Base):
    """Represents an emailed verification code. Consumed at most once."""
    __tablename__ = "otps"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    email = Column(String, nullable=False)
    code = Column(String, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    consumed_at = Column(DateTime)
    attempts = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=utcnow)
