# Overview: Flask API routes for products operations; parses input and returns JSON responses.

"""
Product management routes.

SECURITY: All routes require authentication.
- Read operations require VIEW_CATALOG
- Write operations require MANAGE_CATALOG (ADMIN)
"""
from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_auth, require_permission
from ..errors import ShopError, error_response
from ..permissions import MANAGE_CATALOG, VIEW_CATALOG
from ..services import catalog_service
from ..validation import coerce_int, parse_query_bool, parse_query_int


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
@require_permission(VIEW_CATALOG)
def list_products_route():
    """
    List products.

    Query params:
    - search: matches name or SKU, case-insensitive
    - category: category id
    - active: true/false
    - page, limit (max 500)
    """
    try:
        args = request.args
        category = args.get("category") or args.get("category_id")
        result = catalog_service.list_products(
            search=args.get("search"),
            category_id=coerce_int("category", category) if category else None,
            active=parse_query_bool(args.get("active"), "active"),
            page=parse_query_int(args.get("page"), "page", 1),
            limit=parse_query_int(args.get("limit"), "limit", 50, maximum=500),
        )
        return jsonify(result)
    except ShopError as e:
        return error_response(e)


@products_bp.get("/<int:product_id>")
@require_auth
@require_permission(VIEW_CATALOG)
def get_product_route(product_id: int):
    try:
        return jsonify({"product": catalog_service.get_product(product_id).to_dict()})
    except ShopError as e:
        return error_response(e)


@products_bp.post("")
@require_auth
@require_permission(MANAGE_CATALOG)
def create_product_route():
    """
    Create a product. sku is generated from the name when omitted.

    Composite products need bun_component_id, sausage_component_id and
    optionally sausages_per_unit (default 1); they are created with stock 0.
    """
    try:
        product = catalog_service.create_product(request.get_json(silent=True))
        return jsonify({"product": product.to_dict()}), 201
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.put("/<int:product_id>")
@require_auth
@require_permission(MANAGE_CATALOG)
def update_product_route(product_id: int):
    try:
        product = catalog_service.update_product(product_id, request.get_json(silent=True))
        return jsonify({"product": product.to_dict()})
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<int:product_id>")
@require_auth
@require_permission(MANAGE_CATALOG)
def delete_product_route(product_id: int):
    try:
        catalog_service.delete_product(product_id)
        return "", 204
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500
