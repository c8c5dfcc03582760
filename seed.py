"""Create the initial administrator account.

The account is read from ``ADMIN_EMAIL``, ``ADMIN_PASSWORD`` and
``ADMIN_NAME``. Running the script again is harmless: an existing account with
the same email is reported and left untouched.

Usage:
    python seed.py

"""

import os
import sys

from app import create_app
from app_logging import get_logger
from models import Role, User, db
from security import hash_password

_logger = get_logger("app.seed")


def seed_admin(email: str, password: str, name: str) -> User:
    """Return the admin account for ``email``, creating it if needed."""
    email = email.strip().lower()
    existing = User.query.filter_by(email=email).first()
    if existing:
        _logger.info("user already exists", extra={"user_id": existing.id, "role": existing.role.value})
        return existing

    user = User(name=name, email=email, password_hash=hash_password(password), role=Role.ADMIN)
    db.session.add(user)
    db.session.commit()
    _logger.info("admin created", extra={"user_id": user.id})
    return user


def main() -> int:
    email = os.environ.get('ADMIN_EMAIL')
    password = os.environ.get('ADMIN_PASSWORD')
    if not email or not password:
        _logger.error("ADMIN_EMAIL and ADMIN_PASSWORD must be set")
        return 1

    app = create_app()
    with app.app_context():
        seed_admin(email, password, os.environ.get('ADMIN_NAME', 'Lab Admin'))
    return 0


if __name__ == '__main__':
    sys.exit(main())
