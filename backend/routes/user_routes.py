import logging
import os
import re
import uuid
from datetime import datetime

from fastapi import APIRouter, BackgroundTasks, Depends, File, HTTPException, Query, UploadFile, status
from pydantic import Field, field_validator, model_validator
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend import notifications
from backend.auth.dependencies import get_current_user, require_verified
from backend.auth.onboarding import redirect_path, resolve_onboarding_step
from backend.core import config
from backend.core.clock import utcnow
from backend.core.errors import database_unavailable
from backend.core.schemas import ApiResponse, CamelModel, ok
from backend.database import ensure_database_ready, get_db
from backend.models.food_item import STATUS_ACCEPTED, STATUS_AVAILABLE, FoodItem
from backend.models.notification import Notification
from backend.models.otp import OTP
from backend.models.user import ROLE_CONTRIBUTOR, ROLE_NGO, User
from backend.models.verification_request import VERIFICATION_PENDING, VerificationRequest

router = APIRouter(tags=['user'])
logger = logging.getLogger(__name__)

PHONE_PATTERN = re.compile(r'^\+?[0-9][0-9\s\-()]{6,19}$')
MIN_DESCRIPTION_LENGTH = 50
PROFILE_ROLES = (ROLE_CONTRIBUTOR, ROLE_NGO)
IMAGE_TYPES = {'image/jpeg': '.jpg', 'image/png': '.png', 'image/gif': '.gif', 'image/webp': '.webp'}
CERTIFICATE_TYPES = {**IMAGE_TYPES, 'application/pdf': '.pdf'}


def _required(value: str | None, message: str) -> str:
    normalized = (value or '').strip()
    if not normalized:
        raise ValueError(message)
    return normalized


def _optional(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


class Coordinates(CamelModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class BasicInfo(CamelModel):
    name: str
    profile_picture: str | None = None
    contact: str
    alternate_contact: str | None = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        return _required(value, 'Name is required')

    @field_validator('contact')
    @classmethod
    def validate_contact(cls, value: str) -> str:
        normalized = _required(value, 'Contact number is required')
        if not PHONE_PATTERN.match(normalized):
            raise ValueError('Please enter a valid phone number')
        return normalized

    @field_validator('alternate_contact')
    @classmethod
    def validate_alternate_contact(cls, value: str | None) -> str | None:
        normalized = _optional(value)
        if normalized and not PHONE_PATTERN.match(normalized):
            raise ValueError('Please enter a valid alternate phone number')
        return normalized


class Address(CamelModel):
    country: str | None = None
    state: str
    city: str
    zip_code: str | None = None
    full_address: str
    coordinates: Coordinates | None = None

    @field_validator('state')
    @classmethod
    def validate_state(cls, value: str) -> str:
        return _required(value, 'State is required')

    @field_validator('city')
    @classmethod
    def validate_city(cls, value: str) -> str:
        return _required(value, 'City is required')

    @field_validator('full_address')
    @classmethod
    def validate_full_address(cls, value: str) -> str:
        return _required(value, 'Full address is required')


class AdditionalDetails(CamelModel):
    description: str

    @field_validator('description')
    @classmethod
    def validate_description(cls, value: str) -> str:
        normalized = _required(value, 'Description is required')
        if len(normalized) < MIN_DESCRIPTION_LENGTH:
            raise ValueError(f'Description must be at least {MIN_DESCRIPTION_LENGTH} characters long')
        return normalized


class NGODetails(CamelModel):
    registration_number: str
    ntn_number: str | None = None
    certificate_url: str | None = Field(default=None, alias='certificateURL')

    @field_validator('registration_number')
    @classmethod
    def validate_registration_number(cls, value: str) -> str:
        return _required(value, 'Registration number is required')


class NGOSpecific(CamelModel):
    ngo_details: NGODetails


class ProfileData(CamelModel):
    role: str
    basic_info: BasicInfo
    address: Address
    additional_details: AdditionalDetails
    ngo_specific: NGOSpecific | None = None

    @field_validator('role')
    @classmethod
    def validate_role(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in PROFILE_ROLES:
            raise ValueError('Role must be contributor or ngo')
        return normalized

    @model_validator(mode='after')
    def require_ngo_details(self):
        if self.role == ROLE_NGO and self.ngo_specific is None:
            raise ValueError('NGO details are required for NGO profiles')
        return self


class ProfileResponse(CamelModel):
    id: int
    email: str
    is_verified: bool
    profile_completed: bool
    ngo_approved: bool = False
    profile: ProfileData | None = None


class OnboardingResponse(CamelModel):
    step: str
    redirect_to: str


class NotificationResponse(CamelModel):
    id: int
    type: str
    title: str
    message: str
    is_read: bool
    related_food_item_id: int | None = None
    priority: str
    created_at: datetime | None = None
    read_at: datetime | None = None


class UploadResponse(CamelModel):
    url: str
    filename: str
    size: int
    mimetype: str


def build_profile(user: User) -> ProfileData | None:
    if not user.profile_completed or user.role not in PROFILE_ROLES:
        return None

    coordinates = None
    if user.latitude is not None and user.longitude is not None:
        coordinates = Coordinates(latitude=user.latitude, longitude=user.longitude)

    ngo_specific = None
    if user.role == ROLE_NGO:
        ngo_specific = NGOSpecific.model_construct(
            ngo_details=NGODetails.model_construct(
                registration_number=user.registration_number,
                ntn_number=user.ntn_number,
                certificate_url=user.certificate_url,
            )
        )

    return ProfileData.model_construct(
        role=user.role,
        basic_info=BasicInfo.model_construct(
            name=user.full_name,
            profile_picture=user.profile_picture_url,
            contact=user.phone,
            alternate_contact=user.alternate_contact,
        ),
        address=Address.model_construct(
            country=user.country,
            state=user.state,
            city=user.city,
            zip_code=user.zip_code,
            full_address=user.full_address,
            coordinates=coordinates,
        ),
        additional_details=AdditionalDetails.model_construct(description=user.description),
        ngo_specific=ngo_specific,
    )


def build_profile_response(user: User) -> ProfileResponse:
    return ProfileResponse(
        id=user.id,
        email=user.email,
        is_verified=user.is_verified,
        profile_completed=user.profile_completed,
        ngo_approved=bool(user.ngo_approved),
        profile=build_profile(user),
    )


def store_upload(upload: UploadFile, subdir: str, allowed_types: dict[str, str]) -> UploadResponse:
    content_type = (upload.content_type or '').lower()
    if content_type not in allowed_types:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Unsupported file type.',
        )

    content = upload.file.read(config.MAX_UPLOAD_BYTES + 1)
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Uploaded file is empty.')
    if len(content) > config.MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f'File must be less than {config.MAX_UPLOAD_BYTES // (1024 * 1024)}MB.',
        )

    target_dir = os.path.join(config.UPLOAD_DIR, subdir)
    os.makedirs(target_dir, exist_ok=True)
    filename = f'{uuid.uuid4().hex}{allowed_types[content_type]}'
    with open(os.path.join(target_dir, filename), 'wb') as handle:
        handle.write(content)

    return UploadResponse(
        url=f'/uploads/{subdir}/{filename}',
        filename=filename,
        size=len(content),
        mimetype=content_type,
    )


@router.put('/profile', response_model=ApiResponse[ProfileResponse])
def complete_profile(
    data: ProfileData,
    current_user: User = Depends(require_verified),
    db: Session = Depends(get_db),
):
    if current_user.profile_completed and current_user.role != data.role:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Role cannot be changed after profile completion.',
        )

    try:
        current_user.role = data.role
        current_user.full_name = data.basic_info.name
        current_user.phone = data.basic_info.contact
        current_user.alternate_contact = data.basic_info.alternate_contact
        if data.basic_info.profile_picture:
            current_user.profile_picture_url = data.basic_info.profile_picture

        current_user.country = _optional(data.address.country)
        current_user.state = data.address.state
        current_user.city = data.address.city
        current_user.zip_code = _optional(data.address.zip_code)
        current_user.full_address = data.address.full_address
        if data.address.coordinates is not None:
            current_user.latitude = data.address.coordinates.latitude
            current_user.longitude = data.address.coordinates.longitude

        current_user.description = data.additional_details.description

        if data.ngo_specific is not None and data.role == ROLE_NGO:
            details = data.ngo_specific.ngo_details
            current_user.registration_number = details.registration_number
            current_user.ntn_number = _optional(details.ntn_number)
            if details.certificate_url:
                current_user.certificate_url = details.certificate_url

        current_user.profile_completed = True
        db.commit()
        db.refresh(current_user)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    logger.info('User %s completed profile as %s', current_user.id, current_user.role)
    return ok(build_profile_response(current_user), 'Profile updated successfully')


@router.get('/profile', response_model=ApiResponse[ProfileResponse])
def get_profile(current_user: User = Depends(get_current_user)):
    return ok(build_profile_response(current_user), 'Profile fetched successfully')


@router.get('/onboarding', response_model=ApiResponse[OnboardingResponse])
def get_onboarding(current_user: User = Depends(get_current_user)):
    return ok(
        OnboardingResponse(
            step=resolve_onboarding_step(current_user).value,
            redirect_to=redirect_path(current_user),
        )
    )


@router.delete('/del-account', response_model=ApiResponse[None])
def delete_account(
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    user_id = current_user.id
    try:
        own_item_ids = [
            item_id for (item_id,) in db.query(FoodItem.id).filter(FoodItem.contributor_id == user_id).all()
        ]

        notification_filter = Notification.recipient_id == user_id
        if own_item_ids:
            notification_filter = or_(notification_filter, Notification.related_food_item_id.in_(own_item_ids))
        db.query(Notification).filter(notification_filter).delete(synchronize_session=False)

        reserved = db.query(FoodItem).filter(
            FoodItem.contributor_id == user_id,
            FoodItem.status == STATUS_ACCEPTED,
            FoodItem.accepted_by_id.isnot(None),
        ).all()
        for item in reserved:
            ngo = db.get(User, item.accepted_by_id)
            if ngo is not None:
                notifications.notify(
                    db,
                    ngo,
                    notifications.CONTRIBUTION_CANCELLED,
                    'Donation withdrawn',
                    f'"{item.name}" was withdrawn because the contributor closed their account.',
                    priority='high',
                    background_tasks=background_tasks,
                )

        db.query(FoodItem).filter(
            FoodItem.accepted_by_id == user_id,
            FoodItem.status == STATUS_ACCEPTED,
        ).update(
            {FoodItem.status: STATUS_AVAILABLE, FoodItem.accepted_by_id: None, FoodItem.accepted_at: None},
            synchronize_session=False,
        )
        db.query(FoodItem).filter(FoodItem.accepted_by_id == user_id).update(
            {FoodItem.accepted_by_id: None},
            synchronize_session=False,
        )
        db.query(FoodItem).filter(FoodItem.contributor_id == user_id).delete(synchronize_session=False)
        db.query(OTP).filter(OTP.user_id == user_id).delete(synchronize_session=False)
        db.query(VerificationRequest).filter(VerificationRequest.user_id == user_id).delete(
            synchronize_session=False
        )
        db.query(VerificationRequest).filter(VerificationRequest.reviewed_by_id == user_id).update(
            {VerificationRequest.reviewed_by_id: None},
            synchronize_session=False,
        )

        db.delete(current_user)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    logger.info('Deleted account %s', user_id)
    return ok(message='Account deleted successfully')


@router.get('/notifications', response_model=ApiResponse[list[NotificationResponse]])
def get_notifications(
    unread_only: bool = Query(default=False, alias='unreadOnly'),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        query = db.query(Notification).filter(Notification.recipient_id == current_user.id)
        if unread_only:
            query = query.filter(Notification.is_read.is_(False))
        notifications = query.order_by(Notification.created_at.desc(), Notification.id.desc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return ok([NotificationResponse.model_validate(notification) for notification in notifications])


@router.patch('/notifications/{notification_id}/read', response_model=ApiResponse[NotificationResponse])
def mark_notification_read(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        notification = db.query(Notification).filter(
            Notification.id == notification_id,
            Notification.recipient_id == current_user.id,
        ).first()
        if notification is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Notification not found.')

        if not notification.is_read:
            notification.is_read = True
            notification.read_at = utcnow()
            db.commit()
            db.refresh(notification)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    return ok(NotificationResponse.model_validate(notification))


@router.post('/upload/profile-picture', response_model=ApiResponse[UploadResponse])
def upload_profile_picture(
    profile_picture: UploadFile = File(..., alias='profilePicture'),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    stored = store_upload(profile_picture, 'profile-pictures', IMAGE_TYPES)

    try:
        current_user.profile_picture_url = stored.url
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    return ok(stored, 'Profile picture uploaded successfully')


@router.post('/upload/certificate', response_model=ApiResponse[UploadResponse])
def upload_certificate(
    certificate: UploadFile = File(...),
    current_user: User = Depends(require_verified),
    db: Session = Depends(get_db),
):
    if current_user.role != ROLE_NGO:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only NGOs can upload certificates.',
        )

    stored = store_upload(certificate, 'certificates', CERTIFICATE_TYPES)
    ensure_database_ready()

    try:
        current_user.certificate_url = stored.url

        pending = db.query(VerificationRequest).filter(
            VerificationRequest.user_id == current_user.id,
            VerificationRequest.status == VERIFICATION_PENDING,
        ).first()
        if pending is None:
            db.add(
                VerificationRequest(
                    user_id=current_user.id,
                    status=VERIFICATION_PENDING,
                    registration_certificate_url=stored.url,
                )
            )
        else:
            pending.registration_certificate_url = stored.url
            pending.submitted_at = utcnow()

        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    logger.info('NGO %s submitted a certificate for review', current_user.id)
    return ok(stored, 'Certificate uploaded successfully')
