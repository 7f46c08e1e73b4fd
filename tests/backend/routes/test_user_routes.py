import io
from datetime import timedelta

import pytest
from fastapi import BackgroundTasks, HTTPException, UploadFile
from pydantic import ValidationError
from starlette.datastructures import Headers

from backend.core.clock import utcnow
from backend.models.food_item import FoodItem
from backend.models.notification import Notification
from backend.models.user import User
from backend.models.verification_request import VerificationRequest
from backend.routes.user_routes import (
    ProfileData,
    complete_profile,
    delete_account,
    get_notifications,
    get_onboarding,
    get_profile,
    mark_notification_read,
    store_upload,
    upload_certificate,
)

DESCRIPTION = 'We run a community kitchen serving two hundred meals every single day.'


def _profile_payload(role: str = 'contributor', **overrides) -> dict:
    payload = {
        'role': role,
        'basicInfo': {'name': 'Corner Bakery', 'contact': '+92 300 1234567'},
        'address': {
            'country': 'Pakistan',
            'state': 'Sindh',
            'city': 'Karachi',
            'zipCode': '74000',
            'fullAddress': '12 Market Street',
            'coordinates': {'latitude': 24.86, 'longitude': 67.0},
        },
        'additionalDetails': {'description': DESCRIPTION},
    }
    if role == 'ngo':
        payload['ngoSpecific'] = {
            'ngoDetails': {'registrationNumber': 'NGO-001', 'ntnNumber': '123', 'certificateURL': None},
        }
    payload.update(overrides)
    return payload


def _upload(content: bytes, content_type: str, filename: str = 'file.bin') -> UploadFile:
    return UploadFile(
        file=io.BytesIO(content),
        filename=filename,
        headers=Headers({'content-type': content_type}),
    )


def test_profile_data_parses_camel_case_payload() -> None:
    profile = ProfileData.model_validate(_profile_payload('ngo'))

    assert profile.basic_info.contact == '+92 300 1234567'
    assert profile.address.full_address == '12 Market Street'
    assert profile.ngo_specific.ngo_details.registration_number == 'NGO-001'


@pytest.mark.parametrize(
    ('overrides', 'message'),
    [
        ({'basicInfo': {'name': ' ', 'contact': '+92 300 1234567'}}, 'Name is required'),
        ({'basicInfo': {'name': 'Bakery', 'contact': 'call me'}}, 'Please enter a valid phone number'),
        ({'additionalDetails': {'description': 'Too short.'}}, 'Description must be at least 50 characters long'),
        ({'role': 'admin'}, 'Role must be contributor or ngo'),
    ],
)
def test_profile_data_rejects_invalid_fields(overrides: dict, message: str) -> None:
    with pytest.raises(ValidationError) as exception_info:
        ProfileData.model_validate(_profile_payload(**overrides))

    assert message in str(exception_info.value)


def test_profile_data_requires_ngo_details_for_ngo() -> None:
    payload = _profile_payload('contributor', role='ngo')

    with pytest.raises(ValidationError):
        ProfileData.model_validate(payload)


def test_complete_profile_unlocks_dashboard(db, make_user) -> None:
    user = make_user(is_verified=True)

    response = complete_profile(ProfileData.model_validate(_profile_payload()), current_user=user, db=db)

    assert response['data'].profile_completed is True
    assert user.role == 'contributor'
    assert user.city == 'Karachi'
    assert user.latitude == pytest.approx(24.86)
    onboarding = get_onboarding(current_user=user)['data']
    assert onboarding.step == 'dashboard'
    assert onboarding.redirect_to == '/contributor'


def test_complete_profile_rejects_role_change(db, make_user) -> None:
    user = make_user(is_verified=True, profile_completed=True, role='contributor')

    with pytest.raises(HTTPException) as exception_info:
        complete_profile(ProfileData.model_validate(_profile_payload('ngo')), current_user=user, db=db)

    assert exception_info.value.detail == 'Role cannot be changed after profile completion.'


def test_get_profile_returns_nested_profile(db, make_user) -> None:
    user = make_user(is_verified=True)
    complete_profile(ProfileData.model_validate(_profile_payload('ngo')), current_user=user, db=db)

    profile = get_profile(current_user=user)['data']

    assert profile.profile.role == 'ngo'
    assert profile.profile.ngo_specific.ngo_details.registration_number == 'NGO-001'
    assert profile.profile.address.coordinates.longitude == pytest.approx(67.0)


def test_get_profile_omits_profile_until_completed(db, make_user) -> None:
    user = make_user()

    assert get_profile(current_user=user)['data'].profile is None


def test_onboarding_points_unverified_user_to_otp(db, make_user) -> None:
    user = make_user()

    onboarding = get_onboarding(current_user=user)['data']

    assert onboarding.step == 'verify_otp'
    assert onboarding.redirect_to == '/verify-otp'


def test_notifications_are_listed_newest_first_and_marked_read(db, contributor) -> None:
    older = Notification(
        recipient_id=contributor.id, type='system', title='Older', message='first',
        created_at=utcnow() - timedelta(hours=1),
    )
    newer = Notification(recipient_id=contributor.id, type='system', title='Newer', message='second')
    db.add_all([older, newer])
    db.commit()

    listed = get_notifications(unread_only=False, current_user=contributor, db=db)['data']
    assert [item.title for item in listed] == ['Newer', 'Older']

    mark_notification_read(notification_id=newer.id, current_user=contributor, db=db)

    unread = get_notifications(unread_only=True, current_user=contributor, db=db)['data']
    assert [item.title for item in unread] == ['Older']


def test_mark_notification_read_hides_other_users_notifications(db, contributor, ngo) -> None:
    notification = Notification(recipient_id=ngo.id, type='system', title='Private', message='hidden')
    db.add(notification)
    db.commit()

    with pytest.raises(HTTPException) as exception_info:
        mark_notification_read(notification_id=notification.id, current_user=contributor, db=db)

    assert exception_info.value.status_code == 404


def test_store_upload_rejects_unsupported_type() -> None:
    with pytest.raises(HTTPException) as exception_info:
        store_upload(_upload(b'MZ', 'application/x-msdownload'), 'profile-pictures', {'image/png': '.png'})

    assert exception_info.value.detail == 'Unsupported file type.'


def test_store_upload_rejects_oversized_file(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('backend.core.config.MAX_UPLOAD_BYTES', 4)

    with pytest.raises(HTTPException) as exception_info:
        store_upload(_upload(b'12345', 'image/png'), 'profile-pictures', {'image/png': '.png'})

    assert exception_info.value.status_code == 413


def test_upload_certificate_opens_single_pending_request(db, ngo, tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('backend.core.config.UPLOAD_DIR', str(tmp_path))

    first = upload_certificate(certificate=_upload(b'%PDF-1.4', 'application/pdf'), current_user=ngo, db=db)
    second = upload_certificate(certificate=_upload(b'%PDF-1.5', 'application/pdf'), current_user=ngo, db=db)

    requests = db.query(VerificationRequest).filter(VerificationRequest.user_id == ngo.id).all()
    assert len(requests) == 1
    assert requests[0].status == 'pending'
    assert requests[0].registration_certificate_url == second['data'].url
    assert first['data'].url != second['data'].url
    assert (tmp_path / 'certificates' / second['data'].filename).read_bytes() == b'%PDF-1.5'
    assert ngo.certificate_url == second['data'].url


def test_upload_certificate_is_limited_to_ngos(db, contributor) -> None:
    with pytest.raises(HTTPException) as exception_info:
        upload_certificate(certificate=_upload(b'%PDF', 'application/pdf'), current_user=contributor, db=db)

    assert exception_info.value.status_code == 403


def test_delete_account_removes_user_and_releases_reservations(db, contributor, ngo) -> None:
    own_item = FoodItem(
        contributor_id=ngo.id, name='Rice', quantity=5, unit='kg',
        expires_at=utcnow() + timedelta(days=1), status='available',
    )
    reserved = FoodItem(
        contributor_id=contributor.id, name='Bread', quantity=20, unit='loaves',
        expires_at=utcnow() + timedelta(days=1), status='accepted',
        accepted_by_id=ngo.id, accepted_at=utcnow(),
    )
    db.add_all([own_item, reserved])
    db.add(Notification(recipient_id=ngo.id, type='system', title='Hi', message='hello'))
    db.commit()
    reserved_id = reserved.id
    ngo_id = ngo.id

    delete_account(BackgroundTasks(), current_user=ngo, db=db)

    assert db.get(User, ngo_id) is None
    assert db.query(FoodItem).filter(FoodItem.contributor_id == ngo_id).count() == 0
    assert db.query(Notification).filter(Notification.recipient_id == ngo_id).count() == 0
    released = db.get(FoodItem, reserved_id)
    db.refresh(released)
    assert released.status == 'available'
    assert released.accepted_by_id is None


def test_contributor_deletion_tells_ngo_its_reservation_was_withdrawn(db, contributor, ngo) -> None:
    reserved = FoodItem(
        contributor_id=contributor.id, name='Bread', quantity=20, unit='loaves',
        expires_at=utcnow() + timedelta(days=1), status='accepted',
        accepted_by_id=ngo.id, accepted_at=utcnow(),
    )
    db.add(reserved)
    db.commit()
    reserved_id = reserved.id
    background_tasks = BackgroundTasks()

    delete_account(background_tasks, current_user=contributor, db=db)

    assert db.query(FoodItem).filter(FoodItem.id == reserved_id).count() == 0
    notification = db.query(Notification).filter(Notification.recipient_id == ngo.id).one()
    assert notification.type == 'contribution_cancelled'
    assert notification.related_food_item_id is None
    assert '"Bread"' in notification.message
    assert background_tasks.tasks[0].args[0] == 'ngo@example.org'
