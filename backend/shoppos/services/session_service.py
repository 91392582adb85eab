# Overview: Service-layer operations for session; signed session tokens.

"""
Session Token Service

WHY: The API is stateless on the server side. A session is a signed
{user_id, role} payload with a fixed lifetime, carried in an HTTP-only cookie
(or a Bearer header for scripted clients).

SECURITY FEATURES:
- Tokens are signed with SECRET_KEY via itsdangerous; tampering invalidates them
- Absolute timeout of SESSION_MAX_AGE_SECONDS (7 days by default)
- The user row is reloaded on every request, so a deleted account or a
  changed role takes effect immediately; the role in the token is advisory
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from ..extensions import db
from ..models import User


TOKEN_SALT = "shoppos-session"


@dataclass
class SessionContext:
    user: User
    role: str


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=TOKEN_SALT)


def create_token(user: User) -> str:
    return _serializer().dumps({"user_id": user.id, "role": user.role})


def validate_token(token: str | None) -> SessionContext | None:
    """
    Returns SessionContext if the token is valid and the user still exists,
    None otherwise.
    """
    if not token:
        return None

    max_age = current_app.config["SESSION_MAX_AGE_SECONDS"]
    try:
        payload = _serializer().loads(token, max_age=max_age)
    except (SignatureExpired, BadSignature):
        return None

    if not isinstance(payload, dict) or "user_id" not in payload:
        return None

    user = db.session.get(User, payload["user_id"])
    if not user:
        return None

    return SessionContext(user=user, role=user.role)
