# Overview: Service-layer operations for credits; installment ledger over credit sales.

"""
Credit sub-ledger

A credit sale has a fixed total. What the customer has paid is derived, never
stored:

    total_paid = initial_payment + sum(credit payments)
    remaining  = total - total_paid

Invariant: total_paid <= total. record_payment re-reads the payment sum
inside its own transaction right before inserting, so two concurrent
payments cannot both pass a stale remaining-balance check.
"""

from __future__ import annotations

from ..errors import CreditError, NotFoundError
from ..extensions import db
from ..models import CreditPayment, Sale
from ..money import format_cents
from ..validation import check_amount
from .concurrency import run_with_retry
from .notification_service import notify_after_commit
from .unit_of_work import UnitOfWork
from shoppos.time_utils import to_utc_z, utcnow


def total_paid_cents(sale: Sale) -> int:
    return (sale.initial_payment_cents or 0) + sum(p.amount_cents for p in sale.credit_payments)


def remaining_cents(sale: Sale) -> int:
    return sale.total_cents - total_paid_cents(sale)


def credit_to_dict(sale: Sale) -> dict:
    phone_sale = sale.phone_sale
    paid = total_paid_cents(sale)
    return {
        "id": sale.id,
        "sale_id": sale.id,
        "phone": phone_sale.phone.to_dict() if phone_sale and phone_sale.phone else None,
        "customer_first_name": sale.customer_first_name,
        "customer_last_name": sale.customer_last_name,
        "sale_price_cents": phone_sale.sale_price_cents if phone_sale else sale.total_cents,
        "purchase_price_cents": phone_sale.purchase_price_cents if phone_sale else 0,
        "total_cents": sale.total_cents,
        "initial_payment_cents": sale.initial_payment_cents or 0,
        "monthly_payment_cents": sale.monthly_payment_cents or 0,
        "credit_months": sale.credit_months or 0,
        "total_paid_cents": paid,
        "remaining_cents": sale.total_cents - paid,
        "is_paid_off": paid >= sale.total_cents,
        "created_at": to_utc_z(sale.created_at),
        "payments": [p.to_dict() for p in sale.credit_payments],
        "sold_by": sale.user.username if sale.user else None,
    }


def list_credits(*, only_open: bool = False) -> list[dict]:
    sales = (
        db.session.query(Sale)
        .filter(Sale.payment_method == "credit")
        .order_by(Sale.created_at.desc(), Sale.id.desc())
        .all()
    )
    credits = [credit_to_dict(s) for s in sales]
    if only_open:
        credits = [c for c in credits if c["remaining_cents"] > 0]
    return credits


def get_credit(sale_id: int) -> dict:
    sale = db.session.get(Sale, sale_id)
    if not sale or not sale.is_credit:
        raise NotFoundError("Credit not found", {"sale_id": sale_id})
    return credit_to_dict(sale)


def record_payment(sale_id: int, amount_cents: int, *, user_id: int, note: str | None = None) -> CreditPayment:
    """
    Admit an installment against a credit sale.

    Raises NotFoundError if the sale does not exist, CreditError if it is not
    a credit sale or the payment would exceed the remaining balance.
    """
    check_amount("amount_cents", amount_cents, allow_zero=False)

    def _op():
        with UnitOfWork() as uow:
            sale = uow.sales.get(sale_id, for_update=True)
            if not sale:
                raise NotFoundError("Sale not found", {"sale_id": sale_id})
            if not sale.is_credit:
                raise CreditError("Sale is not a credit sale", {"sale_id": sale_id})

            paid = (sale.initial_payment_cents or 0) + uow.credit_payments.total_paid_after_initial(sale.id)
            remaining = sale.total_cents - paid
            if amount_cents > remaining:
                raise CreditError(
                    f"Payment exceeds the remaining balance of {format_cents(remaining)}",
                    {"sale_id": sale.id, "remaining_cents": remaining, "amount_cents": amount_cents},
                )

            payment = uow.credit_payments.add(CreditPayment(
                sale_id=sale.id,
                amount_cents=amount_cents,
                note=note,
                user_id=user_id,
                created_at=utcnow(),
            ))

            customer = " ".join(n for n in (sale.customer_first_name, sale.customer_last_name) if n)
            notify_after_commit(
                f"Credit payment on sale #{sale.id}\n"
                f"Customer: {customer or '-'}\n"
                f"Amount: {format_cents(amount_cents)}\n"
                f"Remaining: {format_cents(remaining - amount_cents)}"
            )
        return payment

    return run_with_retry(_op)
