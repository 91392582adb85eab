# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import current_app, request, jsonify, g

from .permissions import role_has_permission
from .services import session_service


def _is_authenticated() -> bool:
    return hasattr(g, "current_user")


def _extract_token() -> str | None:
    cookie_name = current_app.config["SESSION_COOKIE_NAME_TOKEN"]
    token = request.cookies.get(cookie_name)
    if token:
        return token
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1].strip()
    return None


def require_auth(f):
    """
    Require a valid session.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.role: The user's current role (from the database, not the token)

    SECURITY: Returns 401 if the token is missing, tampered with, expired,
    or points at a user that no longer exists.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _extract_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        context = session_service.validate_token(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.role = context.role

        return f(*args, **kwargs)

    return decorated_function


def require_permission(permission_code: str):
    """Require a specific permission from the static role table."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_auth was called first
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            if not role_has_permission(g.role, permission_code):
                current_app.logger.info(
                    "Permission denied: user=%s role=%s permission=%s path=%s",
                    g.current_user.id, g.role, permission_code, request.path,
                )
                return jsonify({
                    "error": "Permission denied",
                    "required_permission": permission_code,
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
