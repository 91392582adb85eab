# Overview: Service-layer operations for inventory; stock mutations and the movement ledger.

"""
Inventory ledger

Every change to Product.stock goes through this module (or the sale engine)
and writes exactly one StockMovement in the same transaction:

- receive_stock: IN, quantity in base units after pack normalization
- issue_stock:   OUT, rejected if stock would go negative
- adjust_stock:  ADJUST, carries the signed delta to the counted stock

Composite products hold no stock, so all three reject them.
"""

from __future__ import annotations

from datetime import datetime

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import MOVEMENT_TYPES, Product, StockMovement, User
from ..money import divide_half_up, format_cents
from ..validation import check_amount, check_quantity
from .catalog_service import resolve_pack_size
from .concurrency import run_with_retry
from .notification_service import notify_after_commit
from .unit_of_work import UnitOfWork
from shoppos.time_utils import utcnow


def _load_stock_product(uow: UnitOfWork, product_id: int) -> Product:
    product = uow.products.get(product_id, for_update=True)
    if not product:
        raise NotFoundError("Product not found", {"product_id": product_id})
    if product.is_composite:
        raise ValidationError(
            "Composite products hold no stock; stock their components instead",
            {"product_id": product.id},
        )
    return product


def _username(user_id: int) -> str:
    user = db.session.get(User, user_id)
    return user.username if user else str(user_id)


def receive_stock(
    product_id: int,
    quantity: int,
    *,
    user_id: int,
    unit_cost_cents: int | None = None,
    sale_price_cents: int | None = None,
    pack_size: int | None = None,
    note: str | None = None,
) -> Product:
    """
    Receive quantity packs of a product.

    The pack size (product's own, else category default, else 1) turns packs
    into base units. unit_cost_cents is the price of one pack; the stored
    cost_price_cents is the per-unit cost rounded half-up.
    """
    check_quantity("quantity", quantity)
    check_amount("unit_cost_cents", unit_cost_cents)
    check_amount("sale_price_cents", sale_price_cents)
    if pack_size is not None and pack_size < 1:
        raise ValidationError("pack_size must be >= 1")

    def _op():
        with UnitOfWork() as uow:
            product = _load_stock_product(uow, product_id)

            if pack_size is not None:
                product.pack_size = pack_size
            multiplier = resolve_pack_size(product)
            units = quantity * multiplier

            if unit_cost_cents is not None:
                product.cost_price_cents = divide_half_up(unit_cost_cents, multiplier)
            if sale_price_cents is not None:
                product.price_cents = sale_price_cents

            product.stock += units
            product.updated_at = utcnow()

            uow.movements.add(StockMovement(
                product_id=product.id,
                type="IN",
                quantity=units,
                unit_price_cents=sale_price_cents,
                unit_cost_cents=product.cost_price_cents if unit_cost_cents is not None else None,
                note=note,
                user_id=user_id,
                created_at=utcnow(),
            ))

            lines = [
                "Stock received",
                f"Product: {product.name}",
                f"Quantity: {units}" + (f" ({quantity} x {multiplier})" if multiplier > 1 else ""),
            ]
            if unit_cost_cents is not None:
                lines.append(f"Pack cost: {format_cents(unit_cost_cents)}")
                lines.append(f"Total cost: {format_cents(unit_cost_cents * quantity)}")
            lines.append(f"New stock: {product.stock}")
            lines.append(f"By: {_username(user_id)}")
            if product.category:
                lines.append(f"Category: {product.category.name}")
            notify_after_commit("\n".join(lines))
        return product

    return run_with_retry(_op)


def issue_stock(product_id: int, quantity: int, *, user_id: int, note: str | None = None) -> Product:
    """Write stock off. Fails with InsufficientStockError rather than go negative."""
    check_quantity("quantity", quantity)

    def _op():
        with UnitOfWork() as uow:
            product = _load_stock_product(uow, product_id)
            if product.stock - quantity < 0:
                raise InsufficientStockError(
                    f"Insufficient stock for '{product.name}'",
                    {
                        "product_id": product.id,
                        "name": product.name,
                        "required": quantity,
                        "available": product.stock,
                    },
                )

            product.stock -= quantity
            product.updated_at = utcnow()

            uow.movements.add(StockMovement(
                product_id=product.id,
                type="OUT",
                quantity=quantity,
                unit_cost_cents=product.cost_price_cents,
                note=note,
                user_id=user_id,
                created_at=utcnow(),
            ))

            lines = [
                "Stock written off",
                f"Product: {product.name}",
                f"Quantity: {quantity}",
                f"New stock: {product.stock}",
                f"By: {_username(user_id)}",
            ]
            if note:
                lines.append(f"Reason: {note}")
            notify_after_commit("\n".join(lines))
        return product

    return run_with_retry(_op)


def adjust_stock(product_id: int, new_stock: int, *, user_id: int, note: str | None = None) -> Product:
    """
    Set stock to a counted value. The ADJUST movement carries the signed delta.
    A count equal to the current stock changes nothing and writes nothing.
    """
    if new_stock is None or new_stock < 0:
        raise ValidationError("new_stock must be >= 0")

    def _op():
        with UnitOfWork() as uow:
            product = _load_stock_product(uow, product_id)
            delta = new_stock - product.stock
            if delta == 0:
                return product

            product.stock = new_stock
            product.updated_at = utcnow()
            uow.movements.add(StockMovement(
                product_id=product.id,
                type="ADJUST",
                quantity=delta,
                unit_cost_cents=product.cost_price_cents,
                note=note,
                user_id=user_id,
                created_at=utcnow(),
            ))
        return product

    return run_with_retry(_op)


def list_movements(
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    movement_type: str | None = None,
    product_id: int | None = None,
    page: int = 1,
    limit: int = 50,
) -> dict:
    """Newest first, paginated."""
    query = db.session.query(StockMovement)

    if start is not None:
        query = query.filter(StockMovement.created_at >= start)
    if end is not None:
        query = query.filter(StockMovement.created_at <= end)
    if movement_type:
        movement_type = movement_type.upper()
        if movement_type not in MOVEMENT_TYPES:
            raise ValidationError(f"type must be one of: {', '.join(MOVEMENT_TYPES)}")
        query = query.filter(StockMovement.type == movement_type)
    if product_id is not None:
        query = query.filter(StockMovement.product_id == product_id)

    total = query.count()
    rows = (
        query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "items": [m.to_dict() for m in rows],
        "total": total,
        "page": page,
        "limit": limit,
    }


def ledger_balance(product_id: int) -> int:
    """Sum of signed movements for a product; matches Product.stock when the ledger is complete."""
    rows = db.session.query(StockMovement).filter(StockMovement.product_id == product_id).all()
    return sum(m.signed_quantity() for m in rows)
