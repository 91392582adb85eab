# Overview: Flask API routes for categories operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_auth, require_permission
from ..errors import ShopError, error_response
from ..permissions import MANAGE_CATALOG, VIEW_CATALOG
from ..services import catalog_service


categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@categories_bp.get("")
@require_auth
@require_permission(VIEW_CATALOG)
def list_categories_route():
    return jsonify({"items": [c.to_dict() for c in catalog_service.list_categories()]})


@categories_bp.get("/<int:category_id>")
@require_auth
@require_permission(VIEW_CATALOG)
def get_category_route(category_id: int):
    try:
        return jsonify({"category": catalog_service.get_category(category_id).to_dict()})
    except ShopError as e:
        return error_response(e)


@categories_bp.post("")
@require_auth
@require_permission(MANAGE_CATALOG)
def create_category_route():
    try:
        category = catalog_service.create_category(request.get_json(silent=True))
        return jsonify({"category": category.to_dict()}), 201
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create category")
        return jsonify({"error": "Internal server error"}), 500


@categories_bp.put("/<int:category_id>")
@require_auth
@require_permission(MANAGE_CATALOG)
def update_category_route(category_id: int):
    try:
        category = catalog_service.update_category(category_id, request.get_json(silent=True))
        return jsonify({"category": category.to_dict()})
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update category")
        return jsonify({"error": "Internal server error"}), 500


@categories_bp.delete("/<int:category_id>")
@require_auth
@require_permission(MANAGE_CATALOG)
def delete_category_route(category_id: int):
    """Fails with 409 while any product references the category."""
    try:
        catalog_service.delete_category(category_id)
        return "", 204
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete category")
        return jsonify({"error": "Internal server error"}), 500
