# Overview: Flask API routes for phones operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_permission
from ..errors import ShopError, error_response
from ..permissions import MANAGE_PHONES, SELL_PHONE, VIEW_PHONES
from ..services import phone_service
from ..validation import optional_int, optional_str, parse_query_int, parse_query_range, require_dict


phones_bp = Blueprint("phones", __name__, url_prefix="/api/phones")


@phones_bp.post("")
@require_auth
@require_permission(MANAGE_PHONES)
def create_phone_route():
    """
    Phone intake.

    Body: {imei, model, purchase_price_cents, condition (new|used), sale_price_cents?}
    409 when the IMEI is already registered.
    """
    try:
        phone = phone_service.intake_phone(
            require_dict(request.get_json(silent=True)), user_id=g.current_user.id
        )
        return jsonify({"phone": phone.to_dict()}), 201
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add phone")
        return jsonify({"error": "Internal server error"}), 500


@phones_bp.get("")
@require_auth
@require_permission(VIEW_PHONES)
def list_phones_route():
    try:
        result = phone_service.list_phones(
            status=request.args.get("status"),
            page=parse_query_int(request.args.get("page"), "page", 1),
            limit=parse_query_int(request.args.get("limit"), "limit", 100, maximum=1000),
        )
        return jsonify(result)
    except ShopError as e:
        return error_response(e)


@phones_bp.get("/movements")
@require_auth
@require_permission(VIEW_PHONES)
def list_phone_movements_route():
    try:
        start, end = parse_query_range(request.args)
        result = phone_service.list_phone_movements(
            start=start,
            end=end,
            movement_type=request.args.get("type"),
            page=parse_query_int(request.args.get("page"), "page", 1),
            limit=parse_query_int(request.args.get("limit"), "limit", 20, maximum=100),
        )
        return jsonify(result)
    except ShopError as e:
        return error_response(e)


@phones_bp.get("/<int:phone_id>")
@require_auth
@require_permission(VIEW_PHONES)
def get_phone_route(phone_id: int):
    try:
        phone = phone_service.get_phone(phone_id)
        data = phone.to_dict()
        data["movements"] = [m.to_dict() for m in phone.movements]
        return jsonify({"phone": data})
    except ShopError as e:
        return error_response(e)


@phones_bp.post("/<int:phone_id>/sell")
@require_auth
@require_permission(SELL_PHONE)
def sell_phone_route(phone_id: int):
    """
    Sell a phone.

    Body: {payment_method (cash|card|credit), sale_price_cents?,
           customer_first_name?, customer_last_name?,
           initial_payment_cents?, credit_months?}
    Credit sales need a customer name, initial payment below the price and
    credit_months >= 1.
    """
    try:
        data = require_dict(request.get_json(silent=True))
        sale = phone_service.sell_phone(
            phone_id,
            user_id=g.current_user.id,
            payment_method=data.get("payment_method"),
            sale_price_cents=optional_int(data, "sale_price_cents"),
            customer_first_name=optional_str(data, "customer_first_name", 120),
            customer_last_name=optional_str(data, "customer_last_name", 120),
            initial_payment_cents=optional_int(data, "initial_payment_cents"),
            credit_months=optional_int(data, "credit_months"),
        )
        return jsonify({"id": sale.id, "sale": sale.to_dict(include_items=True)}), 201
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to sell phone")
        return jsonify({"error": "Internal server error"}), 500
