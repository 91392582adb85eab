# Overview: Service-layer operations for reporting; period buckets, profit and the monthly report.

"""
Reporting

Aggregation is a scan-and-group over the sales in range; there are no stored
rollups. Bucket keys are taken in BUSINESS_TIMEZONE so a sale at 23:30 local
lands on the local day.

PROFIT:
- cart items contribute (unit_price - unit_cost) x quantity with the unit
  cost fixed at sale time (composite lines carry 0)
- a cash/card phone sale contributes sale_price - purchase_price
- a credit phone sale contributes total_paid - purchase_price, i.e. profit is
  recognized as the money is collected
"""

from __future__ import annotations

import math
from datetime import date, datetime, timedelta

from flask import current_app
from sqlalchemy import func

from ..errors import ValidationError
from ..extensions import db
from ..models import Product, Sale, SaleItem
from ..money import format_cents
from .credit_service import remaining_cents, total_paid_cents
from shoppos.time_utils import get_timezone, local_to_utc, to_local

BUCKETS = ("day", "week", "month", "year")
TELEGRAM_CHUNK_LIMIT = 4000


class ReportError(ValidationError):
    """Raised when report parameters are invalid."""


def _business_tz():
    return get_timezone(current_app.config.get("BUSINESS_TIMEZONE"))


def bucket_key(moment: datetime, bucket: str) -> str:
    """
    Period key for a local datetime.

    week is an approximation, not ISO-8601 week numbering:
    ceil((day_of_year_index + weekday_of_jan_1 + 1) / 7) with Sunday = 0.
    Keys are zero padded ("2024-W01") and use whole-day indices, so a week
    rolls over on Sunday. Computing the same formula over fractional days
    with unpadded keys ("2024-W1") would roll over on Saturday instead.
    """
    if bucket == "day":
        return moment.date().isoformat()
    if bucket == "week":
        jan_1 = date(moment.year, 1, 1)
        offset = (jan_1.weekday() + 1) % 7
        day_index = moment.timetuple().tm_yday - 1
        week = math.ceil((day_index + offset + 1) / 7)
        return f"{moment.year}-W{week:02d}"
    if bucket == "month":
        return f"{moment.year}-{moment.month:02d}"
    if bucket == "year":
        return f"{moment.year}"
    raise ReportError(f"bucket must be one of: {', '.join(BUCKETS)}")


def phone_profit_cents(sale: Sale) -> int:
    phone_sale = sale.phone_sale
    if phone_sale is None:
        return 0
    if sale.is_credit:
        return total_paid_cents(sale) - phone_sale.purchase_price_cents
    return phone_sale.sale_price_cents - phone_sale.purchase_price_cents


def sale_profit_cents(sale: Sale) -> int:
    return sum(item.profit_cents for item in sale.items) + phone_profit_cents(sale)


def sale_cost_cents(sale: Sale) -> int:
    cost = sum(item.unit_cost_cents * item.quantity for item in sale.items)
    if sale.phone_sale is not None:
        cost += sale.phone_sale.purchase_price_cents
    return cost


def _sales_query(start: datetime | None, end: datetime | None, *, end_inclusive: bool = True):
    query = db.session.query(Sale)
    if start is not None:
        query = query.filter(Sale.created_at >= start)
    if end is not None:
        query = query.filter(Sale.created_at <= end if end_inclusive else Sale.created_at < end)
    return query.order_by(Sale.created_at.asc(), Sale.id.asc())


def summary(
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    bucket: str = "day",
    category_id: int | None = None,
) -> list[dict]:
    """
    One row per period, oldest first.

    Without a category: {period, revenue, count, avg, cash, card, credit,
    profit, credit_unpaid}. With a category only {period, revenue, count, avg}
    computed from that category's sale items.
    """
    if bucket not in BUCKETS:
        raise ReportError(f"bucket must be one of: {', '.join(BUCKETS)}")
    tz = _business_tz()

    if category_id is not None:
        return _category_summary(start, end, bucket, category_id, tz)

    rows: dict[str, dict] = {}
    for sale in _sales_query(start, end).all():
        key = bucket_key(to_local(sale.created_at, tz), bucket)
        row = rows.setdefault(key, {
            "period": key,
            "revenue": 0,
            "count": 0,
            "cash": 0,
            "card": 0,
            "credit": 0,
            "profit": 0,
            "credit_unpaid": 0,
        })
        row["revenue"] += sale.total_cents
        row["count"] += 1
        row[sale.payment_method] += sale.total_cents
        row["profit"] += sale_profit_cents(sale)
        if sale.is_credit:
            row["credit_unpaid"] += remaining_cents(sale)

    result = []
    for key in sorted(rows):
        row = rows[key]
        row["avg"] = row["revenue"] / row["count"] if row["count"] else 0.0
        result.append(row)
    return result


def _category_summary(start, end, bucket, category_id, tz) -> list[dict]:
    query = (
        db.session.query(Sale.id, Sale.created_at, SaleItem.unit_price_cents, SaleItem.quantity)
        .join(SaleItem, SaleItem.sale_id == Sale.id)
        .join(Product, Product.id == SaleItem.product_id)
        .filter(Product.category_id == category_id)
    )
    if start is not None:
        query = query.filter(Sale.created_at >= start)
    if end is not None:
        query = query.filter(Sale.created_at <= end)

    revenue: dict[str, int] = {}
    sale_ids: dict[str, set] = {}
    for sale_id, created_at, unit_price, quantity in query.all():
        key = bucket_key(to_local(created_at, tz), bucket)
        revenue[key] = revenue.get(key, 0) + unit_price * quantity
        sale_ids.setdefault(key, set()).add(sale_id)

    return [
        {
            "period": key,
            "revenue": revenue[key],
            "count": len(sale_ids[key]),
            "avg": revenue[key] / len(sale_ids[key]),
        }
        for key in sorted(revenue)
    ]


def top_products(
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 10,
    category_id: int | None = None,
) -> list[dict]:
    """Sale items grouped by product, highest revenue first."""
    revenue_expr = func.sum(SaleItem.unit_price_cents * SaleItem.quantity)
    cost_expr = func.sum(SaleItem.unit_cost_cents * SaleItem.quantity)
    query = (
        db.session.query(
            Product.id,
            Product.name,
            Product.sku,
            func.sum(SaleItem.quantity).label("quantity"),
            revenue_expr.label("revenue"),
            cost_expr.label("cost"),
        )
        .join(SaleItem, SaleItem.product_id == Product.id)
        .join(Sale, Sale.id == SaleItem.sale_id)
    )
    if start is not None:
        query = query.filter(Sale.created_at >= start)
    if end is not None:
        query = query.filter(Sale.created_at <= end)
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)

    rows = (
        query.group_by(Product.id, Product.name, Product.sku)
        .order_by(revenue_expr.desc(), Product.id.asc())
        .limit(limit)
        .all()
    )
    return [
        {
            "product_id": row.id,
            "name": row.name,
            "sku": row.sku,
            "quantity": int(row.quantity or 0),
            "revenue": int(row.revenue or 0),
            "profit": int((row.revenue or 0) - (row.cost or 0)),
        }
        for row in rows
    ]


# =============================================================================
# MONTHLY REPORT
# =============================================================================

def month_bounds(year: int, month: int) -> tuple[datetime, datetime]:
    """[first instant of month, first instant of next month) in UTC, per BUSINESS_TIMEZONE."""
    if not 1 <= month <= 12:
        raise ReportError("month must be between 1 and 12")
    tz = _business_tz()
    start_local = datetime(year, month, 1)
    end_local = datetime(year + 1, 1, 1) if month == 12 else datetime(year, month + 1, 1)
    return local_to_utc(start_local, tz), local_to_utc(end_local, tz)


def previous_month(today: date) -> tuple[int, int]:
    last_of_previous = today.replace(day=1) - timedelta(days=1)
    return last_of_previous.year, last_of_previous.month


def build_monthly_report(year: int, month: int) -> dict:
    start, end = month_bounds(year, month)
    report = {
        "period": f"{year}-{month:02d}",
        "revenue": 0,
        "cost": 0,
        "profit": 0,
        "cash": 0,
        "card": 0,
        "credit": 0,
        "count": 0,
        "phones_sold": 0,
        "products": [],
    }

    products: dict[int, dict] = {}
    for sale in _sales_query(start, end, end_inclusive=False).all():
        report["count"] += 1
        report["revenue"] += sale.total_cents
        report[sale.payment_method] += sale.total_cents
        report["cost"] += sale_cost_cents(sale)
        report["profit"] += sale_profit_cents(sale)
        if sale.phone_sale is not None:
            report["phones_sold"] += 1

        for item in sale.items:
            entry = products.setdefault(item.product_id, {
                "product_id": item.product_id,
                "name": item.product.name if item.product else f"#{item.product_id}",
                "quantity": 0,
                "revenue": 0,
                "cost": 0,
                "profit": 0,
            })
            entry["quantity"] += item.quantity
            entry["revenue"] += item.line_total_cents
            entry["cost"] += item.unit_cost_cents * item.quantity
            entry["profit"] += item.profit_cents

    report["products"] = sorted(products.values(), key=lambda p: (-p["revenue"], p["name"]))
    return report


def format_monthly_report(report: dict, *, limit: int = TELEGRAM_CHUNK_LIMIT) -> list[str]:
    """Render the report as text split on line boundaries into chunks of at most limit characters."""
    lines = [f"Monthly report {report['period']}", ""]
    if not report["count"]:
        lines.append("No sales in this period.")
        return ["\n".join(lines)]

    if report["products"]:
        lines.append("By product:")
        for product in report["products"]:
            lines.append(f"{product['name']}")
            lines.append(f"  Sold: {product['quantity']}")
            lines.append(f"  Revenue: {format_cents(product['revenue'])}")
            lines.append(f"  Cost: {format_cents(product['cost'])}")
            lines.append(f"  Profit: {format_cents(product['profit'])}")
        lines.append("")

    lines.extend([
        "Summary:",
        f"Revenue: {format_cents(report['revenue'])}",
        f"Cost: {format_cents(report['cost'])}",
        f"Profit: {format_cents(report['profit'])}",
        f"Sales: {report['count']}",
        f"Phones sold: {report['phones_sold']}",
        "",
        "By payment method:",
        f"Cash: {format_cents(report['cash'])}",
        f"Card: {format_cents(report['card'])}",
        f"Credit: {format_cents(report['credit'])}",
    ])
    return chunk_lines(lines, limit)


def chunk_lines(lines: list[str], limit: int) -> list[str]:
    chunks = []
    current = ""
    for line in lines:
        line = line[:limit]
        candidate = f"{current}\n{line}" if current else line
        if len(candidate) > limit:
            chunks.append(current)
            current = line
        else:
            current = candidate
    if current:
        chunks.append(current)
    return chunks
