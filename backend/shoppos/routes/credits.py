# Overview: Flask API routes for credits operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_permission
from ..errors import ShopError, error_response
from ..permissions import RECORD_CREDIT_PAYMENT, VIEW_CREDITS
from ..services import credit_service
from ..validation import optional_str, parse_query_bool, require_dict, required_int


credits_bp = Blueprint("credits", __name__, url_prefix="/api/credits")


@credits_bp.get("")
@require_auth
@require_permission(VIEW_CREDITS)
def list_credits_route():
    """All credit sales with total_paid_cents and remaining_cents. ?open=true hides paid-off ones."""
    try:
        only_open = parse_query_bool(request.args.get("open"), "open") or False
        return jsonify({"items": credit_service.list_credits(only_open=only_open)})
    except ShopError as e:
        return error_response(e)


@credits_bp.get("/<int:sale_id>")
@require_auth
@require_permission(VIEW_CREDITS)
def get_credit_route(sale_id: int):
    try:
        return jsonify({"credit": credit_service.get_credit(sale_id)})
    except ShopError as e:
        return error_response(e)


@credits_bp.post("/payment")
@require_auth
@require_permission(RECORD_CREDIT_PAYMENT)
def record_payment_route():
    """
    Body: {sale_id, amount_cents, note?}
    422 when the sale is not a credit sale or the payment exceeds the balance.
    """
    try:
        data = require_dict(request.get_json(silent=True))
        payment = credit_service.record_payment(
            required_int(data, "sale_id"),
            required_int(data, "amount_cents"),
            user_id=g.current_user.id,
            note=optional_str(data, "note"),
        )
        return jsonify({"payment": payment.to_dict()}), 201
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record credit payment")
        return jsonify({"error": "Internal server error"}), 500
