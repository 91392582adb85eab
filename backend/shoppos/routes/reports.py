# Overview: Flask API routes for reports operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_auth, require_permission
from ..errors import ShopError, error_response
from ..permissions import VIEW_REPORTS
from ..services import export_service, reporting_service
from ..validation import coerce_int, parse_query_int, parse_query_range
from .sales import csv_response, xlsx_response


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _category_arg():
    raw = request.args.get("category_id") or request.args.get("categoryId")
    return coerce_int("category_id", raw) if raw else None


@reports_bp.get("/summary")
@require_auth
@require_permission(VIEW_REPORTS)
def summary_route():
    """
    Period-bucketed sales summary.

    Query params: from, to, bucket (day|week|month|year), category_id
    """
    try:
        start, end = parse_query_range(request.args)
        rows = reporting_service.summary(
            start=start,
            end=end,
            bucket=request.args.get("bucket", "day"),
            category_id=_category_arg(),
        )
        return jsonify({"items": rows})
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build summary report")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/top-products")
@require_auth
@require_permission(VIEW_REPORTS)
def top_products_route():
    try:
        start, end = parse_query_range(request.args)
        rows = reporting_service.top_products(
            start=start,
            end=end,
            limit=parse_query_int(request.args.get("limit"), "limit", 10, maximum=100),
            category_id=_category_arg(),
        )
        return jsonify({"items": rows})
    except ShopError as e:
        return error_response(e)


@reports_bp.get("/stock-export.csv")
@require_auth
@require_permission(VIEW_REPORTS)
def stock_export_route():
    return csv_response(export_service.stock_csv(), "stock.csv")


@reports_bp.get("/export.xlsx")
@require_auth
@require_permission(VIEW_REPORTS)
def export_xlsx_route():
    try:
        start, end = parse_query_range(request.args)
        return xlsx_response(export_service.sales_xlsx(start, end), "report.xlsx")
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build report workbook")
        return jsonify({"error": "Internal server error"}), 500
