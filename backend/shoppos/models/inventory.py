from __future__ import annotations

from ..extensions import db
from shoppos.time_utils import to_utc_z

MOVEMENT_TYPES = ("IN", "OUT", "SALE", "ADJUST")


class StockMovement(db.Model):
    """
    Append-only audit record of one inventory-affecting event.

    quantity is always positive for IN/OUT/SALE (direction comes from type);
    ADJUST carries the signed delta applied to stock.
    Rows are never updated or deleted.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        db.Index("ix_stock_movements_type_created", "type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    type = db.Column(db.String(16), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    unit_price_cents = db.Column(db.Integer, nullable=True)
    unit_cost_cents = db.Column(db.Integer, nullable=True)

    note = db.Column(db.String(255), nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )

    product = db.relationship("Product")
    user = db.relationship("User")

    def signed_quantity(self) -> int:
        if self.type in ("OUT", "SALE"):
            return -self.quantity
        return self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "type": self.type,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "note": self.note,
            "user_id": self.user_id,
            "username": self.user.username if self.user else None,
            "sale_id": self.sale_id,
            "created_at": to_utc_z(self.created_at),
        }
