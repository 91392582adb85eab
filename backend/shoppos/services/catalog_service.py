# Overview: Service-layer operations for the catalog; categories, products and composite resolution.

"""
Catalog Service

Categories and products, plus the two pieces of catalog logic the stock and
sale paths depend on:

COMPOSITE RESOLUTION:
- A composite product (a hot dog) holds no stock. Selling one unit consumes
  BUN_UNITS_PER_SALE of its bun component and sausages_per_unit of its
  sausage component.
- resolve_composite() fails with ConfigurationError when the wiring is broken,
  which is how a half-configured product is kept from ever being sold.

PACK SIZE:
- Stock is counted in base units. A product's own pack_size > 1 wins;
  otherwise PACK_SIZE_DEFAULTS (category name -> units per pack) applies.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import ConfigurationError, ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Category, Product, SaleItem, StockMovement
from ..validation import ModelValidationPolicy, enforce_rules_product, validate_payload
from shoppos.time_utils import utcnow

# One bun per composite unit sold
BUN_UNITS_PER_SALE = 1
DEFAULT_SAUSAGES_PER_UNIT = 1

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "name", "category_id", "price_cents", "cost_price_cents", "is_active",
        "pack_size", "is_composite", "bun_component_id", "sausage_component_id",
        "sausages_per_unit",
    },
    required_on_create={"name", "price_cents"},
)

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name"},
    required_on_create={"name"},
)


@dataclass(frozen=True)
class CompositeParts:
    bun: Product
    sausage: Product
    sausages_per_unit: int


# =============================================================================
# CATEGORIES
# =============================================================================

def list_categories() -> list[Category]:
    return db.session.query(Category).order_by(Category.name.asc()).all()


def get_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if not category:
        raise NotFoundError("Category not found")
    return category


def _category_name_taken(name: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(Category.id).filter(db.func.lower(Category.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    return query.first() is not None


def create_category(payload: dict) -> Category:
    patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
    if _category_name_taken(patch["name"]):
        raise ConflictError("Category already exists")

    category = Category(name=patch["name"], created_at=utcnow())
    db.session.add(category)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Category already exists")
    return category


def update_category(category_id: int, payload: dict) -> Category:
    category = get_category(category_id)
    patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=True)
    if "name" in patch:
        if _category_name_taken(patch["name"], exclude_id=category.id):
            raise ConflictError("Category already exists")
        category.name = patch["name"]
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Category already exists")
    return category


def delete_category(category_id: int) -> None:
    category = get_category(category_id)
    if db.session.query(Product.id).filter(Product.category_id == category.id).first():
        raise ConflictError("Category is used by products and cannot be deleted")

    db.session.delete(category)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Category is used by products and cannot be deleted")


# =============================================================================
# PRODUCTS
# =============================================================================

def list_products(
    *,
    search: str | None = None,
    category_id: int | None = None,
    active: bool | None = None,
    page: int = 1,
    limit: int = 50,
) -> dict:
    query = db.session.query(Product)

    if search:
        term = f"%{search.strip().lower()}%"
        query = query.filter(db.or_(
            db.func.lower(Product.name).like(term),
            db.func.lower(Product.sku).like(term),
        ))
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if active is not None:
        query = query.filter(Product.is_active.is_(active))

    total = query.count()
    products = (
        query.order_by(Product.name.asc(), Product.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "items": [p.to_dict() for p in products],
        "total": total,
        "page": page,
        "limit": limit,
    }


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found", {"product_id": product_id})
    return product


def generate_sku(name: str) -> str:
    """
    Uppercase alphanumerics of the name, first 8 characters (or ITEM).
    A taken SKU gets a two-digit suffix starting at 02.
    """
    base = re.sub(r"[^A-Z0-9]", "", (name or "").upper())[:8] or "ITEM"
    candidate = base
    suffix = 2
    while db.session.query(Product.id).filter(Product.sku == candidate).first():
        candidate = f"{base}{suffix:02d}"
        suffix += 1
    return candidate


def _validate_composite(product: Product) -> None:
    """
    Composite wiring rules, checked against the database:
    both components exist, are not composite themselves and differ from the
    product; sausages_per_unit >= 1.
    """
    if not product.is_composite:
        product.bun_component_id = None
        product.sausage_component_id = None
        product.sausages_per_unit = None
        return

    if product.bun_component_id is None or product.sausage_component_id is None:
        raise ValidationError("Composite products need bun_component_id and sausage_component_id")

    for field in ("bun_component_id", "sausage_component_id"):
        component_id = getattr(product, field)
        if product.id is not None and component_id == product.id:
            raise ValidationError(f"{field} cannot reference the product itself")
        component = db.session.get(Product, component_id)
        if not component:
            raise ValidationError(f"{field} references an unknown product")
        if component.is_composite:
            raise ValidationError(f"{field} cannot reference a composite product")

    if product.sausages_per_unit is None:
        product.sausages_per_unit = DEFAULT_SAUSAGES_PER_UNIT
    if product.sausages_per_unit < 1:
        raise ValidationError("sausages_per_unit must be >= 1")

    if product.stock:
        raise ValidationError("Composite products hold no stock; issue or adjust the existing stock first")


def create_product(payload: dict) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)

    if patch.get("category_id") is not None:
        get_category(patch["category_id"])

    sku = patch.pop("sku", None)
    if sku:
        if db.session.query(Product.id).filter(Product.sku == sku).first():
            raise ConflictError("SKU already exists")
    else:
        sku = generate_sku(patch["name"])

    now = utcnow()
    product = Product(
        sku=sku,
        price_cents=0,
        cost_price_cents=0,
        stock=0,
        is_active=True,
        pack_size=1,
        is_composite=False,
        created_at=now,
        updated_at=now,
    )
    for key, value in patch.items():
        setattr(product, key, value)

    _validate_composite(product)

    db.session.add(product)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("SKU already exists")
    return product


def update_product(product_id: int, payload: dict) -> Product:
    product = get_product(product_id)
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)

    if patch.get("category_id") is not None:
        get_category(patch["category_id"])
    if patch.get("sku"):
        taken = db.session.query(Product.id).filter(
            Product.sku == patch["sku"], Product.id != product.id
        ).first()
        if taken:
            raise ConflictError("SKU already exists")
    elif "sku" in patch:
        patch.pop("sku")

    for key, value in patch.items():
        setattr(product, key, value)

    try:
        _validate_composite(product)
    except ValidationError:
        db.session.rollback()
        raise

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("SKU already exists")
    return product


def _product_is_referenced(product_id: int) -> bool:
    if db.session.query(SaleItem.id).filter(SaleItem.product_id == product_id).first():
        return True
    if db.session.query(StockMovement.id).filter(StockMovement.product_id == product_id).first():
        return True
    used_as_component = db.session.query(Product.id).filter(db.or_(
        Product.bun_component_id == product_id,
        Product.sausage_component_id == product_id,
    )).first()
    return used_as_component is not None


def delete_product(product_id: int) -> None:
    product = get_product(product_id)
    if _product_is_referenced(product.id):
        raise ConflictError("Product has sales, movements or composite links and cannot be deleted")

    db.session.delete(product)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Product has sales, movements or composite links and cannot be deleted")


# =============================================================================
# COMPOSITE RESOLUTION
# =============================================================================

def resolve_composite(product: Product, products: dict[int, Product] | None = None) -> CompositeParts:
    """
    Resolve a composite product's components.

    products is an optional id -> Product map already loaded in the current
    transaction; missing entries fall back to the relationships.
    """
    products = products or {}
    bun = products.get(product.bun_component_id) if product.bun_component_id else None
    sausage = products.get(product.sausage_component_id) if product.sausage_component_id else None
    if bun is None and product.bun_component_id:
        bun = product.bun_component
    if sausage is None and product.sausage_component_id:
        sausage = product.sausage_component

    if bun is None or sausage is None:
        raise ConfigurationError(
            f"Composite product '{product.name}' is missing a component mapping",
            {"product_id": product.id, "name": product.name},
        )

    return CompositeParts(
        bun=bun,
        sausage=sausage,
        sausages_per_unit=product.sausages_per_unit or DEFAULT_SAUSAGES_PER_UNIT,
    )


def required_component_quantities(parts: CompositeParts, quantity: int) -> tuple[int, int]:
    """(bun_qty, sausage_qty) consumed by selling quantity composite units."""
    return quantity * BUN_UNITS_PER_SALE, quantity * parts.sausages_per_unit


# =============================================================================
# PACK SIZE
# =============================================================================

def resolve_pack_size(product: Product) -> int:
    """
    Units per purchased pack for product.

    The product's own pack_size wins when it is > 1; otherwise the category
    table applies; otherwise 1.
    """
    if product.pack_size and product.pack_size > 1:
        return product.pack_size
    if product.category is not None:
        table = {
            name.lower(): size
            for name, size in current_app.config.get("PACK_SIZE_DEFAULTS", {}).items()
        }
        size = table.get(product.category.name.strip().lower())
        if size and size > 1:
            return size
    return 1
