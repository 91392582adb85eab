from __future__ import annotations

from ..extensions import db
from shoppos.time_utils import to_utc_z


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Category id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Product master data with its on-hand stock.

    STOCK:
    - stock is counted in base units (a pack of 12 sausages received is +12).
    - stock >= 0 is enforced by a CHECK constraint as a last line of defense;
      services reject oversells before the flush ever reaches it.

    COMPOSITE PRODUCTS:
    - is_composite products hold no stock of their own. Selling one unit
      consumes 1 unit of the bun component and sausages_per_unit units of the
      sausage component.

    CONCURRENCY:
    - version_id is an optimistic lock. Two transactions that both decrement
      the same product cannot both commit; the loser gets StaleDataError and
      is retried from a fresh read.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_products_stock_nonnegative"),
        db.CheckConstraint("pack_size >= 1", name="ck_products_pack_size_positive"),
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_active", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)

    # Authoritative storage in minor units
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)

    stock = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    pack_size = db.Column(db.Integer, nullable=False, default=1)

    is_composite = db.Column(db.Boolean, nullable=False, default=False)
    bun_component_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)
    sausage_component_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)
    sausages_per_unit = db.Column(db.Integer, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True, passive_deletes="all"))
    bun_component = db.relationship("Product", foreign_keys=[bun_component_id], remote_side=[id])
    sausage_component = db.relationship("Product", foreign_keys=[sausage_component_id], remote_side=[id])
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "category_id": self.category_id,
            "category": self.category.to_dict() if self.category else None,
            "price_cents": self.price_cents,
            "cost_price_cents": self.cost_price_cents,
            "stock": self.stock,
            "is_active": self.is_active,
            "pack_size": self.pack_size,
            "is_composite": self.is_composite,
            "bun_component_id": self.bun_component_id,
            "sausage_component_id": self.sausage_component_id,
            "sausages_per_unit": self.sausages_per_unit,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
