# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""Sales API routes with permission enforcement"""

from flask import Blueprint, Response, request, jsonify, current_app, g

from ..decorators import require_auth, require_permission
from ..errors import ShopError, error_response
from ..permissions import CREATE_SALE, VIEW_REPORTS, VIEW_SALES
from ..services import export_service, sales_service
from ..validation import (
    optional_int,
    parse_query_int,
    parse_query_range,
    parse_sale_items,
    require_dict,
)

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def csv_response(body: str, filename: str) -> Response:
    return Response(
        body,
        mimetype="text/csv",
        headers={
            "Content-Type": "text/csv; charset=utf-8",
            "Content-Disposition": f'attachment; filename="{filename}"',
        },
    )


def xlsx_response(body: bytes, filename: str) -> Response:
    return Response(
        body,
        mimetype=XLSX_MIMETYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@sales_bp.post("")
@require_auth
@require_permission(CREATE_SALE)
def create_sale_route():
    """
    Commit a cart.

    Body: {items: [{product_id, quantity, unit_price_cents?}], discount_cents?, payment_method}
    payment_method is cash or card.

    Requires: CREATE_SALE permission
    """
    try:
        data = require_dict(request.get_json(silent=True))
        sale = sales_service.create_sale(
            parse_sale_items(data.get("items")),
            payment_method=data.get("payment_method"),
            discount_cents=optional_int(data, "discount_cents"),
            user_id=g.current_user.id,
        )
        return jsonify({"id": sale.id, "sale": sale.to_dict(include_items=True)}), 201
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_auth
@require_permission(VIEW_SALES)
def list_sales_route():
    try:
        start, end = parse_query_range(request.args)
        result = sales_service.list_sales(
            start=start,
            end=end,
            payment_method=request.args.get("payment_method"),
            page=parse_query_int(request.args.get("page"), "page", 1),
            limit=parse_query_int(request.args.get("limit"), "limit", 50, maximum=500),
        )
        return jsonify(result)
    except ShopError as e:
        return error_response(e)


@sales_bp.get("/<int:sale_id>")
@require_auth
@require_permission(VIEW_SALES)
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        return jsonify({"sale": sale.to_dict(include_items=True)})
    except ShopError as e:
        return error_response(e)


@sales_bp.get("/<int:sale_id>/receipt.csv")
@require_auth
@require_permission(VIEW_SALES)
def sale_receipt_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        return csv_response(export_service.receipt_csv(sale), f"receipt-{sale.id}.csv")
    except ShopError as e:
        return error_response(e)


@sales_bp.get("/export.csv")
@require_auth
@require_permission(VIEW_REPORTS)
def export_sales_csv_route():
    try:
        start, end = parse_query_range(request.args)
        return csv_response(export_service.sales_csv(start, end), "sales.csv")
    except ShopError as e:
        return error_response(e)


@sales_bp.get("/export.xlsx")
@require_auth
@require_permission(VIEW_REPORTS)
def export_sales_xlsx_route():
    try:
        start, end = parse_query_range(request.args)
        return xlsx_response(export_service.sales_xlsx(start, end), "sales.xlsx")
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build sales workbook")
        return jsonify({"error": "Internal server error"}), 500
