# Overview: Flask API routes for user administration (ADMIN only).

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_permission
from ..errors import ShopError, error_response
from ..permissions import MANAGE_USERS
from ..services import auth_service
from ..validation import require_dict


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_permission(MANAGE_USERS)
def list_users_route():
    return jsonify({"items": [u.to_dict() for u in auth_service.list_users()]})


@users_bp.post("")
@require_auth
@require_permission(MANAGE_USERS)
def create_user_route():
    """
    Create a user.

    Body: {username, password, role?, email?}
    email defaults to <username>@local.
    """
    try:
        data = require_dict(request.get_json(silent=True) or {})
        user = auth_service.create_user(
            data.get("username"),
            data.get("password"),
            role=data.get("role") or "STAFF",
            email=data.get("email"),
        )
        return jsonify({"user": user.to_dict()}), 201
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.put("/<int:user_id>")
@require_auth
@require_permission(MANAGE_USERS)
def update_user_route(user_id: int):
    try:
        data = require_dict(request.get_json(silent=True) or {})
        user = auth_service.update_user(user_id, data)
        return jsonify({"user": user.to_dict()})
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.delete("/<int:user_id>")
@require_auth
@require_permission(MANAGE_USERS)
def delete_user_route(user_id: int):
    try:
        auth_service.delete_user(user_id, acting_user_id=g.current_user.id)
        return "", 204
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete user")
        return jsonify({"error": "Internal server error"}), 500
