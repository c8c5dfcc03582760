"""Bearer tokens, password hashing and role gating.

Tokens are ``itsdangerous`` signed, timestamped claims carrying the user's id,
email, role and name. A view is protected by composing :func:`require_roles`
(or :func:`login_required`) in front of it; the decision itself is the pure
function :func:`role_allowed`.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import wraps
from typing import Any, Dict, Iterable, Optional

from flask import current_app, g, request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from werkzeug.security import check_password_hash, generate_password_hash

from app_logging import bind_identity, get_logger
from errors import Forbidden, Unauthenticated
from models import Role, User

_TOKEN_SALT = 'praktikum-auth-token'

_logger = get_logger("app.auth")


@dataclass(frozen=True)
class Identity:
    """The authenticated caller, as read from a verified token."""

    user_id: str
    email: str
    role: Role
    name: str

    def claims(self) -> Dict[str, Any]:
        return {'id': self.user_id, 'email': self.email, 'role': self.role.value, 'name': self.name}

    @classmethod
    def from_user(cls, user: User) -> 'Identity':
        return cls(user_id=user.id, email=user.email, role=user.role, name=user.name)


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    return check_password_hash(password_hash, password)


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config['SECRET_KEY'], salt=_TOKEN_SALT)


def issue_token(identity: Identity) -> str:
    return _serializer().dumps(identity.claims())


def verify_token(token: str) -> Identity:
    """Return the identity signed into ``token``.

    Raises :class:`Unauthenticated` for a bad signature, an expired token or a
    claim set that does not name a known role.
    """
    max_age = current_app.config['TOKEN_MAX_AGE_SECONDS']
    try:
        claims = _serializer().loads(token, max_age=max_age)
    except SignatureExpired:
        raise Unauthenticated('Token expired')
    except BadSignature:
        raise Unauthenticated('Invalid token')
    try:
        return Identity(
            user_id=claims['id'],
            email=claims['email'],
            role=Role(claims['role']),
            name=claims.get('name', ''),
        )
    except (KeyError, TypeError, ValueError):
        raise Unauthenticated('Invalid token')


def _bearer_token() -> str:
    header = request.headers.get('Authorization')
    if not header:
        raise Unauthenticated('No authorization header')
    scheme, _, token = header.partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        raise Unauthenticated('No token provided')
    return token.strip()


def role_allowed(role: Role, allowed: Optional[Iterable[Role]]) -> bool:
    """``allowed=None`` admits any authenticated role."""
    if allowed is None:
        return True
    return role in set(allowed)


def current_identity() -> Identity:
    identity = getattr(g, 'identity', None)
    if identity is None:
        raise Unauthenticated()
    return identity


def require_roles(*roles: Role):
    """Decorator: authenticate the bearer token, then check the caller's role.

    With no roles given any valid token is accepted.
    """
    allowed = frozenset(roles) or None

    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            identity = verify_token(_bearer_token())
            g.identity = identity
            bind_identity(identity.user_id, identity.role.value)
            if not role_allowed(identity.role, allowed):
                _logger.warning(
                    "role rejected",
                    extra={"endpoint": request.endpoint, "required": sorted(r.value for r in allowed)},
                )
                raise Forbidden()
            return view(*args, **kwargs)

        return wrapper

    return decorator


login_required = require_roles()
admin_only = require_roles(Role.ADMIN)
assistant_or_admin = require_roles(Role.ADMIN, Role.LAB_ASSISTANT)


__all__ = [
    "Identity",
    "admin_only",
    "assistant_or_admin",
    "current_identity",
    "hash_password",
    "issue_token",
    "login_required",
    "require_roles",
    "role_allowed",
    "verify_password",
    "verify_token",
]
