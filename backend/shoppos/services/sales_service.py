"""
Sale transaction engine

WHY: A cart either commits completely (sale row, items, stock decrements,
SALE movements) or leaves no trace. Everything between the first stock read
and the commit happens inside one UnitOfWork, so a concurrent sale cannot
pass the same stock check.

Per-line unit cost is fixed at the moment of sale: later changes to
Product.cost_price_cents never rewrite historical profit. Composite lines
carry unit cost 0.
"""

from __future__ import annotations

from collections import OrderedDict
from datetime import datetime

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product, Sale, SaleItem, StockMovement
from ..validation import check_amount
from .catalog_service import required_component_quantities, resolve_composite
from .concurrency import run_with_retry
from .notification_service import notify_after_commit
from .unit_of_work import UnitOfWork
from shoppos.money import format_cents
from shoppos.time_utils import utcnow


CART_PAYMENT_METHODS = ("cash", "card")


def _load_line_products(uow: UnitOfWork, lines: list[dict], *, fresh: bool = False) -> dict[int, Product]:
    """Load every line product plus the components of composite lines."""
    products = uow.products.get_many(
        (line["product_id"] for line in lines), for_update=True, fresh=fresh
    )
    for line in lines:
        if line["product_id"] not in products:
            raise NotFoundError("Product not found", {"product_id": line["product_id"]})

    component_ids = set()
    for product in products.values():
        if product.is_composite:
            component_ids.update(
                cid for cid in (product.bun_component_id, product.sausage_component_id) if cid
            )
    missing = component_ids - set(products)
    if missing or fresh:
        products.update(uow.products.get_many(component_ids, for_update=True, fresh=fresh))
    return products


def _required_stock(lines: list[dict], products: dict[int, Product]) -> "OrderedDict[int, int]":
    """
    Aggregate base-unit demand per stock-holding product across the cart.

    A product listed twice, or a component shared by two composite lines,
    must have stock for the sum.
    """
    required: OrderedDict[int, int] = OrderedDict()
    for line in lines:
        product = products[line["product_id"]]
        qty = line["quantity"]
        if product.is_composite:
            parts = resolve_composite(product, products)
            bun_qty, sausage_qty = required_component_quantities(parts, qty)
            required[parts.bun.id] = required.get(parts.bun.id, 0) + bun_qty
            required[parts.sausage.id] = required.get(parts.sausage.id, 0) + sausage_qty
        else:
            required[product.id] = required.get(product.id, 0) + qty
    return required


def _check_stock(required: dict[int, int], products: dict[int, Product]) -> None:
    for product_id, qty in required.items():
        product = products[product_id]
        if product.stock - qty < 0:
            raise InsufficientStockError(
                f"Insufficient stock for '{product.name}'",
                {
                    "product_id": product.id,
                    "name": product.name,
                    "required": qty,
                    "available": product.stock,
                },
            )


def _sale_notification(sale: Sale, lines: list[dict], products: dict[int, Product], username: str) -> str:
    parts = [f"Sale #{sale.id} ({sale.payment_method}) by {username}"]
    for line in lines:
        product = products[line["product_id"]]
        parts.append(
            f"{product.name}: {line['quantity']} x {format_cents(line['unit_price_cents'])}"
            f" = {format_cents(line['quantity'] * line['unit_price_cents'])}"
        )
        if product.is_composite:
            composite = resolve_composite(product, products)
            parts.append(f"  {composite.bun.name} left: {composite.bun.stock}")
            parts.append(f"  {composite.sausage.name} left: {composite.sausage.stock}")
        else:
            parts.append(f"  Left: {product.stock}")
    if sale.discount_cents:
        parts.append(f"Discount: {format_cents(sale.discount_cents)}")
    parts.append(f"Total: {format_cents(sale.total_cents)}")
    return "\n".join(parts)


def create_sale(
    lines: list[dict],
    *,
    payment_method: str,
    user_id: int,
    discount_cents: int | None = None,
) -> Sale:
    """
    Commit a cart atomically.

    lines: [{product_id, quantity, unit_price_cents|None}] as produced by
    validation.parse_sale_items. A missing unit price means the product's
    current price.

    Raises NotFoundError, ValidationError, ConfigurationError or
    InsufficientStockError; in every case nothing is written.
    """
    if payment_method not in CART_PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(CART_PAYMENT_METHODS)}")
    if not lines:
        raise ValidationError("items must be a non-empty list")
    check_amount("discount_cents", discount_cents)

    def _op():
        with UnitOfWork() as uow:
            products = _load_line_products(uow, lines)
            required = _required_stock(lines, products)
            _check_stock(required, products)

            priced = [
                {
                    **line,
                    "unit_price_cents": (
                        line["unit_price_cents"]
                        if line["unit_price_cents"] is not None
                        else products[line["product_id"]].price_cents
                    ),
                }
                for line in lines
            ]
            total_before = sum(line["unit_price_cents"] * line["quantity"] for line in priced)
            discount = discount_cents or 0
            total = max(0, total_before - discount)

            now = utcnow()
            sale = uow.sales.add(Sale(
                user_id=user_id,
                total_cents=total,
                discount_cents=discount or None,
                payment_method=payment_method,
                created_at=now,
            ))

            # Costs may have moved since the first read; fix them from a fresh one.
            products = _load_line_products(uow, lines, fresh=True)
            required = _required_stock(lines, products)
            _check_stock(required, products)

            items = []
            movements = []
            for line in priced:
                product = products[line["product_id"]]
                unit_cost = 0 if product.is_composite else product.cost_price_cents
                items.append(SaleItem(
                    sale_id=sale.id,
                    product_id=product.id,
                    quantity=line["quantity"],
                    unit_price_cents=line["unit_price_cents"],
                    unit_cost_cents=unit_cost,
                ))
                movements.append(StockMovement(
                    product_id=product.id,
                    type="SALE",
                    quantity=line["quantity"],
                    unit_price_cents=line["unit_price_cents"],
                    unit_cost_cents=unit_cost,
                    note=f"Sale #{sale.id}",
                    user_id=user_id,
                    sale_id=sale.id,
                    created_at=now,
                ))
            uow.sales.add_items(items)

            for product_id, qty in required.items():
                product = products[product_id]
                product.stock -= qty
                product.updated_at = now

            uow.movements.add_all(movements)
            uow.flush()

            notify_after_commit(
                _sale_notification(sale, priced, products, sale.user.username if sale.user else str(user_id))
            )
        return sale

    return run_with_retry(_op)


def list_sales(
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    payment_method: str | None = None,
    page: int = 1,
    limit: int = 50,
) -> dict:
    query = db.session.query(Sale)
    if start is not None:
        query = query.filter(Sale.created_at >= start)
    if end is not None:
        query = query.filter(Sale.created_at <= end)
    if payment_method:
        query = query.filter(Sale.payment_method == payment_method)

    total = query.count()
    sales = (
        query.order_by(Sale.created_at.desc(), Sale.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "items": [s.to_dict() for s in sales],
        "total": total,
        "page": page,
        "limit": limit,
    }


def sales_in_range(start: datetime | None = None, end: datetime | None = None) -> list[Sale]:
    """All sales in [start, end], oldest first. Used by exports."""
    query = db.session.query(Sale)
    if start is not None:
        query = query.filter(Sale.created_at >= start)
    if end is not None:
        query = query.filter(Sale.created_at <= end)
    return query.order_by(Sale.created_at.asc(), Sale.id.asc()).all()


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise NotFoundError("Sale not found", {"sale_id": sale_id})
    return sale
