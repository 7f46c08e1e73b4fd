import os
import tempfile

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')
os.environ.setdefault('MAIL_SUPPRESS_SEND', '1')
os.environ.setdefault('UPLOAD_DIR', tempfile.mkdtemp(prefix='byte2bite-uploads-'))

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from backend.auth.passwords import hash_password  # noqa: E402
from backend.database import Base  # noqa: E402
from backend.models import food_item, notification, otp, user, verification_request  # noqa: E402,F401
from backend.models.user import User  # noqa: E402

DEFAULT_PASSWORD = 'correct-horse-42'


@pytest.fixture
def db(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr('backend.database._schema_checked', True)

    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def make_user(db):
    def factory(
        email: str = 'donor@example.org',
        *,
        role: str | None = None,
        is_verified: bool = False,
        profile_completed: bool = False,
        password: str = DEFAULT_PASSWORD,
        **fields,
    ) -> User:
        created = User(
            email=email,
            hashed_password=hash_password(password),
            role=role,
            is_verified=is_verified,
            profile_completed=profile_completed,
            **fields,
        )
        db.add(created)
        db.commit()
        db.refresh(created)
        return created

    return factory


@pytest.fixture
def contributor(make_user):
    return make_user(
        'donor@example.org',
        role='contributor',
        is_verified=True,
        profile_completed=True,
        full_name='Corner Bakery',
        full_address='12 Market Street',
        latitude=24.86,
        longitude=67.0,
    )


@pytest.fixture
def ngo(make_user):
    return make_user(
        'ngo@example.org',
        role='ngo',
        is_verified=True,
        profile_completed=True,
        full_name='Food For All',
        registration_number='NGO-001',
    )
