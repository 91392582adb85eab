from __future__ import annotations

from ..extensions import db
from shoppos.time_utils import to_utc_z

PAYMENT_METHODS = ("cash", "card", "credit")


class Sale(db.Model):
    """
    A committed sale. Immutable once written; credit sales only grow through
    their CreditPayment children.

    All amounts are in minor units. total_cents is post-discount.
    Credit-only fields (customer, initial/monthly payment, months) are null
    for cash and card sales.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_created", "created_at"),
        db.Index("ix_sales_payment_created", "payment_method", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    total_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=True)
    payment_method = db.Column(db.String(16), nullable=False)

    customer_first_name = db.Column(db.String(120), nullable=True)
    customer_last_name = db.Column(db.String(120), nullable=True)
    initial_payment_cents = db.Column(db.Integer, nullable=True)
    monthly_payment_cents = db.Column(db.Integer, nullable=True)
    credit_months = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User")
    items = db.relationship("SaleItem", backref="sale", lazy=True, order_by="SaleItem.id")
    credit_payments = db.relationship(
        "CreditPayment", backref="sale", lazy=True, order_by="CreditPayment.created_at.desc()"
    )
    phone_sale = db.relationship("PhoneSale", backref="sale", uselist=False, lazy=True)

    @property
    def is_credit(self) -> bool:
        return self.payment_method == "credit"

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "username": self.user.username if self.user else None,
            "total_cents": self.total_cents,
            "discount_cents": self.discount_cents,
            "payment_method": self.payment_method,
            "customer_first_name": self.customer_first_name,
            "customer_last_name": self.customer_last_name,
            "initial_payment_cents": self.initial_payment_cents,
            "monthly_payment_cents": self.monthly_payment_cents,
            "credit_months": self.credit_months,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
            data["phone_sale"] = self.phone_sale.to_dict() if self.phone_sale else None
        return data


class SaleItem(db.Model):
    """
    One cart line. unit_cost_cents is fixed at the moment of sale so later
    cost changes never rewrite historical profit. Composite lines carry 0.
    """
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    product = db.relationship("Product")

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    @property
    def profit_cents(self) -> int:
        return (self.unit_price_cents - self.unit_cost_cents) * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "line_total_cents": self.line_total_cents,
        }


class CreditPayment(db.Model):
    """Installment received against a credit sale."""
    __tablename__ = "credit_payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_credit_payments_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    note = db.Column(db.String(255), nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "amount_cents": self.amount_cents,
            "note": self.note,
            "user_id": self.user_id,
            "username": self.user.username if self.user else None,
            "created_at": to_utc_z(self.created_at),
        }
