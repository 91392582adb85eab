# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

SECURITY FEATURES:
- Login throttling per identifier to prevent brute-force attacks
- Every attempt recorded in login_attempts
- Session is a signed token in an HTTP-only cookie
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth
from ..errors import ShopError, error_response
from ..services import auth_service, login_throttle_service, session_service


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _set_session_cookie(response, token: str):
    response.set_cookie(
        current_app.config["SESSION_COOKIE_NAME_TOKEN"],
        token,
        max_age=current_app.config["SESSION_MAX_AGE_SECONDS"],
        httponly=True,
        secure=current_app.config["SESSION_COOKIE_SECURE"],
        samesite="Lax",
    )
    return response


@auth_bp.post("/login")
def login_route():
    """
    Authenticate and start a session.

    Body: {login, password}; login is a username or an email.
    Returns {user, token} and sets the token cookie.

    SECURITY:
    - Checks the throttle before verifying the password
    - Records failed attempts for throttling
    """
    try:
        data = request.get_json(silent=True) or {}
        login = data.get("login") or data.get("username") or data.get("email")
        password = data.get("password")

        if not isinstance(login, str) or not isinstance(password, str) or not login or not password:
            return jsonify({"error": "login and password required"}), 422

        identifier = auth_service.normalize_login(login)
        ip_address = request.remote_addr
        user_agent = request.headers.get("User-Agent")

        login_throttle_service.check_not_locked(identifier)

        user = auth_service.authenticate(identifier, password)
        if not user:
            login_throttle_service.record_attempt(
                identifier, success=False, ip_address=ip_address, user_agent=user_agent
            )
            return jsonify({"error": "Invalid credentials"}), 401

        login_throttle_service.record_attempt(
            identifier, success=True, user_id=user.id, ip_address=ip_address, user_agent=user_agent
        )

        token = session_service.create_token(user)
        response = jsonify({"user": user.to_dict(), "token": token})
        return _set_session_cookie(response, token)

    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to log in")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
def logout_route():
    response = jsonify({"ok": True})
    response.delete_cookie(current_app.config["SESSION_COOKIE_NAME_TOKEN"])
    return response


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()})
