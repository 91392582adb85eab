# Overview: CSV and XLSX renderings of sales and stock.

from __future__ import annotations

import csv
import io
from datetime import datetime

from openpyxl import Workbook
from openpyxl.styles import Font

from ..extensions import db
from ..models import Product, Sale
from .reporting_service import sale_profit_cents
from .sales_service import sales_in_range
from shoppos.time_utils import to_utc_z


def _csv(header: list[str], rows) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(header)
    for row in rows:
        writer.writerow(["" if value is None else value for value in row])
    return buffer.getvalue()


def _cents_to_units(cents: int | None) -> float | None:
    return None if cents is None else cents / 100


def _before_discount_cents(sale: Sale) -> int:
    total = sum(item.line_total_cents for item in sale.items)
    if sale.phone_sale is not None:
        total += sale.phone_sale.sale_price_cents
    return total


def sales_csv(start: datetime | None = None, end: datetime | None = None) -> str:
    header = [
        "sale_id", "created_at", "cashier", "payment_method",
        "total_before_discount_cents", "discount_cents", "total_cents", "profit_cents",
    ]
    rows = (
        [
            sale.id,
            to_utc_z(sale.created_at),
            sale.user.username if sale.user else "",
            sale.payment_method,
            _before_discount_cents(sale),
            sale.discount_cents or 0,
            sale.total_cents,
            sale_profit_cents(sale),
        ]
        for sale in sales_in_range(start, end)
    )
    return _csv(header, rows)


def receipt_csv(sale: Sale) -> str:
    header = ["product", "quantity", "unit_price_cents", "line_total_cents"]
    rows = [
        [
            item.product.name if item.product else item.product_id,
            item.quantity,
            item.unit_price_cents,
            item.line_total_cents,
        ]
        for item in sale.items
    ]
    if sale.phone_sale is not None:
        phone = sale.phone_sale.phone
        rows.append([f"{phone.model} (IMEI {phone.imei})", 1, sale.phone_sale.sale_price_cents,
                     sale.phone_sale.sale_price_cents])
    rows.append(["discount", "", "", -(sale.discount_cents or 0)])
    rows.append(["total", "", "", sale.total_cents])
    return _csv(header, rows)


def stock_csv() -> str:
    header = [
        "product_id", "sku", "name", "category", "stock", "pack_size",
        "price_cents", "cost_price_cents", "is_active", "is_composite",
    ]
    products = db.session.query(Product).order_by(Product.name.asc(), Product.id.asc()).all()
    rows = (
        [
            p.id, p.sku, p.name, p.category.name if p.category else "",
            p.stock, p.pack_size, p.price_cents, p.cost_price_cents,
            int(p.is_active), int(p.is_composite),
        ]
        for p in products
    )
    return _csv(header, rows)


def sales_xlsx(start: datetime | None = None, end: datetime | None = None) -> bytes:
    """Workbook with a per-sale summary sheet and a line-item sheet. Amounts in major units."""
    wb = Workbook()

    def money(cell):
        cell.number_format = "#,##0.00"

    def bold_row(ws, r):
        for c in ws[r]:
            c.font = Font(bold=True)

    def set_widths(ws, widths: dict[str, int]):
        for col, w in widths.items():
            ws.column_dimensions[col].width = w

    sales = sales_in_range(start, end)

    ws = wb.active
    ws.title = "Sales"
    ws.append([
        "Sale ID", "Date", "Cashier", "Payment",
        "Before discount", "Discount", "Total", "Profit",
    ])
    bold_row(ws, 1)
    for sale in sales:
        ws.append([
            sale.id,
            to_utc_z(sale.created_at),
            sale.user.username if sale.user else "",
            sale.payment_method,
            _cents_to_units(_before_discount_cents(sale)),
            _cents_to_units(sale.discount_cents or 0),
            _cents_to_units(sale.total_cents),
            _cents_to_units(sale_profit_cents(sale)),
        ])
        for col in "EFGH":
            money(ws[f"{col}{ws.max_row}"])
    ws.freeze_panes = "A2"
    set_widths(ws, {"A": 10, "B": 22, "C": 16, "D": 10, "E": 16, "F": 12, "G": 14, "H": 14})

    ws2 = wb.create_sheet("Items")
    ws2.append(["Sale ID", "Date", "SKU", "Product", "Qty", "Unit price", "Unit cost", "Line total"])
    bold_row(ws2, 1)
    for sale in sales:
        for item in sale.items:
            ws2.append([
                sale.id,
                to_utc_z(sale.created_at),
                item.product.sku if item.product else "",
                item.product.name if item.product else "",
                item.quantity,
                _cents_to_units(item.unit_price_cents),
                _cents_to_units(item.unit_cost_cents),
                _cents_to_units(item.line_total_cents),
            ])
            for col in "FGH":
                money(ws2[f"{col}{ws2.max_row}"])
    ws2.freeze_panes = "A2"
    set_widths(ws2, {"A": 10, "B": 22, "C": 14, "D": 34, "E": 6, "F": 14, "G": 14, "H": 14})

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()
