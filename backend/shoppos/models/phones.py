from __future__ import annotations

from ..extensions import db
from shoppos.time_utils import to_utc_z

PHONE_CONDITIONS = ("new", "used")
PHONE_STATUSES = ("in_stock", "sold")


class Phone(db.Model):
    """
    A single, uniquely identified handset.

    Lifecycle: created in_stock on intake, moves to sold exactly once.
    version_id guards the in_stock -> sold transition against two concurrent
    sellers.
    """
    __tablename__ = "phones"
    __table_args__ = (
        db.Index("ix_phones_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    imei = db.Column(db.String(32), nullable=False, unique=True)
    model = db.Column(db.String(255), nullable=False)
    purchase_price_cents = db.Column(db.Integer, nullable=False)
    condition = db.Column(db.String(8), nullable=False)
    sale_price_cents = db.Column(db.Integer, nullable=True)
    status = db.Column(db.String(16), nullable=False, default="in_stock")
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    movements = db.relationship(
        "PhoneMovement", backref="phone", lazy=True, order_by="PhoneMovement.created_at.desc()"
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "imei": self.imei,
            "model": self.model,
            "purchase_price_cents": self.purchase_price_cents,
            "condition": self.condition,
            "sale_price_cents": self.sale_price_cents,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PhoneMovement(db.Model):
    """Append-only phone log (IN on intake, SALE on sale) with a price snapshot."""
    __tablename__ = "phone_movements"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    phone_id = db.Column(db.Integer, db.ForeignKey("phones.id"), nullable=False, index=True)
    type = db.Column(db.String(16), nullable=False, index=True)
    purchase_price_cents = db.Column(db.Integer, nullable=False)
    sale_price_cents = db.Column(db.Integer, nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "phone_id": self.phone_id,
            "imei": self.phone.imei if self.phone else None,
            "model": self.phone.model if self.phone else None,
            "type": self.type,
            "purchase_price_cents": self.purchase_price_cents,
            "sale_price_cents": self.sale_price_cents,
            "user_id": self.user_id,
            "username": self.user.username if self.user else None,
            "sale_id": self.sale_id,
            "created_at": to_utc_z(self.created_at),
        }


class PhoneSale(db.Model):
    """Links a Sale to the phone it sold, with the prices at that moment."""
    __tablename__ = "phone_sales"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, unique=True)
    phone_id = db.Column(db.Integer, db.ForeignKey("phones.id"), nullable=False, unique=True)
    sale_price_cents = db.Column(db.Integer, nullable=False)
    purchase_price_cents = db.Column(db.Integer, nullable=False)

    phone = db.relationship("Phone")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "phone": self.phone.to_dict() if self.phone else None,
            "sale_price_cents": self.sale_price_cents,
            "purchase_price_cents": self.purchase_price_cents,
        }
