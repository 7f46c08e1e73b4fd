import pytest
from fastapi.testclient import TestClient

from backend.auth import jwt_handler
from backend.database import get_db
from backend.main import app
from backend.routes import auth_routes, otp_routes

API = '/api/v1'
PASSWORD = 'correct-horse-42'
PROFILE = {
    'role': 'contributor',
    'basicInfo': {'name': 'Corner Bakery', 'contact': '+92 300 1234567'},
    'address': {'state': 'Sindh', 'city': 'Karachi', 'fullAddress': '12 Market Street'},
    'additionalDetails': {
        'description': 'Fresh bread and pastries left over at the end of every business day.',
    },
}


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    for limiter in (auth_routes.register_limiter, auth_routes.reset_limiter, otp_routes.otp_limiter):
        limiter.reset()

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _auth(token: str) -> dict:
    return {'Authorization': f'Bearer {token}'}


def test_root_reports_status(client) -> None:
    response = client.get('/')

    assert response.status_code == 200
    assert response.json() == {'status': 'Byte2Bite API Running'}


def test_missing_token_uses_error_envelope(client) -> None:
    response = client.get(f'{API}/user/profile')

    assert response.status_code == 401
    assert response.json() == {
        'success': False,
        'statusCode': 401,
        'message': 'Not authenticated',
        'errors': [],
    }


def test_validation_errors_list_fields(client) -> None:
    response = client.post(f'{API}/auth/register', json={'email': 'not-an-email', 'password': PASSWORD})

    body = response.json()
    assert response.status_code == 422
    assert body['success'] is False
    assert body['message'] == 'Validation failed.'
    assert [error['field'] for error in body['errors']] == ['email']


def test_register_rate_limit_returns_retry_after(client, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(auth_routes.register_limiter, 'limit', 1)
    client.post(f'{API}/auth/register', json={'email': 'first@example.org', 'password': PASSWORD})

    response = client.post(f'{API}/auth/register', json={'email': 'second@example.org', 'password': PASSWORD})

    assert response.status_code == 429
    assert 'Retry-After' in response.headers
    assert response.json()['statusCode'] == 429


def test_register_rate_limit_ignores_spoofed_forwarded_for(client, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(auth_routes.register_limiter, 'limit', 1)

    statuses = [
        client.post(
            f'{API}/auth/register',
            json={'email': f'user{index}@example.org', 'password': PASSWORD},
            headers={'X-Forwarded-For': f'10.0.0.{index}'},
        ).status_code
        for index in range(5)
    ]

    assert statuses == [201, 429, 429, 429, 429]


def test_unverified_user_cannot_reach_dashboard(client) -> None:
    tokens = client.post(
        f'{API}/auth/register', json={'email': 'donor@example.org', 'password': PASSWORD},
    ).json()['data']

    response = client.get(f'{API}/contributor/dashboard/overview', headers=_auth(tokens['accessToken']))

    assert response.status_code == 403
    assert response.json()['message'] == 'Email not verified'


def test_onboarding_flow_from_registration_to_dashboard(client, monkeypatch: pytest.MonkeyPatch) -> None:
    sent = []
    monkeypatch.setattr('backend.core.email.send_otp_email', lambda recipient, code: sent.append((recipient, code)))

    registered = client.post(f'{API}/auth/register', json={'email': 'donor@example.org', 'password': PASSWORD})
    assert registered.status_code == 201
    token = registered.json()['data']['accessToken']

    onboarding = client.get(f'{API}/user/onboarding', headers=_auth(token)).json()['data']
    assert onboarding == {'step': 'verify_otp', 'redirectTo': '/verify-otp'}

    assert client.get(f'{API}/verify/otp', headers=_auth(token)).status_code == 200
    assert sent[0][0] == 'donor@example.org'

    verified = client.post(f'{API}/verify/otp', data={'otp': sent[0][1]}, headers=_auth(token))
    assert verified.status_code == 200
    assert verified.json()['data']['user']['isVerified'] is True
    token = verified.json()['data']['accessToken']

    profile = client.put(f'{API}/user/profile', json=PROFILE, headers=_auth(token))
    assert profile.status_code == 200
    assert profile.json()['data']['profileCompleted'] is True

    onboarding = client.get(f'{API}/user/onboarding', headers=_auth(token)).json()['data']
    assert onboarding == {'step': 'dashboard', 'redirectTo': '/contributor'}

    dashboard = client.get(f'{API}/contributor/dashboard/overview', headers=_auth(token))
    assert dashboard.status_code == 200
    assert dashboard.json()['success'] is True
    assert dashboard.json()['data']['totalContributions'] == 0


def test_certificate_upload_accepts_multipart_pdf(client, ngo, tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('backend.core.config.UPLOAD_DIR', str(tmp_path))
    token = jwt_handler.create_access_token(ngo.id)

    response = client.post(
        f'{API}/user/upload/certificate',
        files={'certificate': ('registration.pdf', b'%PDF-1.4 certificate', 'application/pdf')},
        headers=_auth(token),
    )

    body = response.json()
    assert response.status_code == 200
    assert body['data']['mimetype'] == 'application/pdf'
    assert body['data']['url'].startswith('/uploads/certificates/')
    assert (tmp_path / 'certificates' / body['data']['filename']).read_bytes() == b'%PDF-1.4 certificate'


def test_profile_picture_upload_uses_camel_case_field(client, contributor, tmp_path, monkeypatch) -> None:
    monkeypatch.setattr('backend.core.config.UPLOAD_DIR', str(tmp_path))
    token = jwt_handler.create_access_token(contributor.id)

    response = client.post(
        f'{API}/user/upload/profile-picture',
        files={'profilePicture': ('avatar.png', b'\x89PNG\r\n', 'image/png')},
        headers=_auth(token),
    )

    assert response.status_code == 200
    assert response.json()['data']['url'].endswith('.png')


def test_upload_rejects_unsupported_type_with_envelope(client, contributor) -> None:
    token = jwt_handler.create_access_token(contributor.id)

    response = client.post(
        f'{API}/user/upload/profile-picture',
        files={'profilePicture': ('notes.txt', b'hello', 'text/plain')},
        headers=_auth(token),
    )

    assert response.status_code == 400
    assert response.json()['message'] == 'Unsupported file type.'
