"""Registration and login.

* ``POST /auth/register`` – create an account and return it with a token.
* ``POST /auth/login`` – exchange email and password for a token.
"""

from __future__ import annotations

from flask import Blueprint, jsonify

from app_logging import get_logger
from db_utils import commit_or_conflict
from errors import BadRequestError, ConflictError, Unauthenticated
from models import Role, User, db
from security import Identity, hash_password, issue_token, verify_password
from validation import json_body, require_fields

bp = Blueprint('auth', __name__, url_prefix='/auth')

_logger = get_logger("app.auth")


def _token_response(user: User):
    return jsonify({'user': user.to_dict(), 'token': issue_token(Identity.from_user(user))})


@bp.route('/register', methods=['POST'])
def register():
    data = json_body()
    require_fields(data, 'name', 'email', 'password', 'role')
    try:
        role = Role(data['role'])
    except ValueError:
        allowed = ', '.join(r.value for r in Role)
        raise BadRequestError(f'role must be one of {allowed}')

    email = str(data['email']).strip().lower()
    if User.query.filter_by(email=email).first():
        raise ConflictError('User already exists')

    user = User(
        name=str(data['name']).strip(),
        email=email,
        password_hash=hash_password(str(data['password'])),
        role=role,
    )
    db.session.add(user)
    commit_or_conflict('User already exists')
    _logger.info("user registered", extra={"user_id": user.id, "role": role.value})
    return _token_response(user)


@bp.route('/login', methods=['POST'])
def login():
    data = json_body()
    require_fields(data, 'email', 'password')
    user = User.query.filter_by(email=str(data['email']).strip().lower()).first()
    if user is None or not verify_password(user.password_hash, str(data['password'])):
        raise Unauthenticated('Invalid credentials')
    _logger.info("user logged in", extra={"user_id": user.id})
    return _token_response(user)
