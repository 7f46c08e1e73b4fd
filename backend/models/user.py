"""User model definitions."""

from sqlalchemy import Boolean, Column, DateTime, Float, Integer, String, Text

from backend.core.clock import utcnow
from backend.database import Base

ROLE_CONTRIBUTOR = "contributor"
ROLE_NGO = "ngo"
ROLE_ADMIN = "admin"
ROLES = (ROLE_CONTRIBUTOR, ROLE_NGO, ROLE_ADMIN)


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    full_name = Column(String)
    role = Column(String)  # contributor/ngo/admin, unset until profile completion

    is_verified = Column(Boolean, default=False, nullable=False)
    profile_completed = Column(Boolean, default=False, nullable=False)

    phone = Column(String)
    alternate_contact = Column(String)
    country = Column(String)
    state = Column(String)
    city = Column(String)
    zip_code = Column(String)
    full_address = Column(String)
    latitude = Column(Float)
    longitude = Column(Float)
    description = Column(Text)
    profile_picture_url = Column(String)

    registration_number = Column(String)
    ntn_number = Column(String)
    certificate_url = Column(String)
    ngo_approved = Column(Boolean, default=False, nullable=False)

    refresh_token = Column(String)
    password_reset_token_hash = Column(String, index=True)
    password_reset_expires_at = Column(DateTime)

    last_login_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
