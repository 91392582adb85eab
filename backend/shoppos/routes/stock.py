# Overview: Flask API routes for stock operations; parses input and returns JSON responses.

"""
Stock ledger routes.

- POST /in      receive packs (pack-size normalized)
- POST /out     write off, 422 when stock would go negative
- POST /adjust  set counted stock (ADMIN)
- GET  /movements
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_permission
from ..errors import ShopError, error_response
from ..permissions import ADJUST_STOCK, ISSUE_STOCK, RECEIVE_STOCK, VIEW_STOCK
from ..services import inventory_service
from ..validation import (
    coerce_int,
    optional_int,
    optional_str,
    parse_query_int,
    parse_query_range,
    require_dict,
    required_int,
)


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.post("/in")
@require_auth
@require_permission(RECEIVE_STOCK)
def stock_in_route():
    """
    Body: {product_id, quantity, unit_cost_cents?, sale_price_cents?, pack_size?, note?}

    quantity counts packs and unit_cost_cents is the price of one pack.
    """
    try:
        data = require_dict(request.get_json(silent=True))
        product = inventory_service.receive_stock(
            required_int(data, "product_id"),
            required_int(data, "quantity"),
            user_id=g.current_user.id,
            unit_cost_cents=optional_int(data, "unit_cost_cents"),
            sale_price_cents=optional_int(data, "sale_price_cents"),
            pack_size=optional_int(data, "pack_size"),
            note=optional_str(data, "note"),
        )
        return jsonify({"product": product.to_dict()})
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to receive stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/out")
@require_auth
@require_permission(ISSUE_STOCK)
def stock_out_route():
    try:
        data = require_dict(request.get_json(silent=True))
        product = inventory_service.issue_stock(
            required_int(data, "product_id"),
            required_int(data, "quantity"),
            user_id=g.current_user.id,
            note=optional_str(data, "note"),
        )
        return jsonify({"product": product.to_dict()})
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to issue stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/adjust")
@require_auth
@require_permission(ADJUST_STOCK)
def stock_adjust_route():
    """Body: {product_id, new_stock, note?}"""
    try:
        data = require_dict(request.get_json(silent=True))
        product = inventory_service.adjust_stock(
            required_int(data, "product_id"),
            required_int(data, "new_stock"),
            user_id=g.current_user.id,
            note=optional_str(data, "note"),
        )
        return jsonify({"product": product.to_dict()})
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/movements")
@require_auth
@require_permission(VIEW_STOCK)
def list_movements_route():
    """Query params: from, to, type, product_id, page, limit (max 500)."""
    try:
        start, end = parse_query_range(request.args)
        product_id = request.args.get("product_id") or request.args.get("productId")
        result = inventory_service.list_movements(
            start=start,
            end=end,
            movement_type=request.args.get("type"),
            product_id=coerce_int("product_id", product_id) if product_id else None,
            page=parse_query_int(request.args.get("page"), "page", 1),
            limit=parse_query_int(request.args.get("limit"), "limit", 50, maximum=500),
        )
        return jsonify(result)
    except ShopError as e:
        return error_response(e)
