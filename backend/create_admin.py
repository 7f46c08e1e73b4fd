"""Create or promote an administrator account.

Usage:
    python -m backend.create_admin admin@example.org

The password is read from ADMIN_PASSWORD, or prompted for on stdin.
"""
import getpass
import logging
import os
import sys

from sqlalchemy.exc import SQLAlchemyError

from backend.auth.passwords import hash_password
from backend.core import config
from backend.core.logging_config import configure_logging
from backend.database import SessionLocal, ensure_schema
from backend.models.user import ROLE_ADMIN, User

logger = logging.getLogger(__name__)


def create_admin(db, email: str, password: str) -> User:
    normalized = email.strip().lower()
    if not normalized or '@' not in normalized:
        raise ValueError('A valid email address is required.')
    if len(password) < config.MIN_PASSWORD_LENGTH:
        raise ValueError(f'Password must be at least {config.MIN_PASSWORD_LENGTH} characters.')

    user = db.query(User).filter(User.email == normalized).first()
    if user is None:
        user = User(email=normalized)
        db.add(user)

    user.hashed_password = hash_password(password)
    user.role = ROLE_ADMIN
    user.full_name = user.full_name or 'Administrator'
    user.is_verified = True
    user.profile_completed = True
    db.commit()
    db.refresh(user)
    return user


def main(argv: list[str] | None = None) -> None:
    args = sys.argv[1:] if argv is None else argv
    if len(args) != 1:
        print('Usage: python -m backend.create_admin <email>', file=sys.stderr)
        sys.exit(2)

    configure_logging()
    password = os.getenv('ADMIN_PASSWORD') or getpass.getpass('Admin password: ')

    ensure_schema()
    db = SessionLocal()
    try:
        user = create_admin(db, args[0], password)
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(1)
    except SQLAlchemyError:
        db.rollback()
        logger.exception('Could not create admin account. Check DATABASE_URL.')
        sys.exit(1)
    finally:
        db.close()

    print(f'Admin account ready: {user.email} (id {user.id})')


if __name__ == '__main__':
    main()
