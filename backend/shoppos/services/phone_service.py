# Overview: Service-layer operations for phones; IMEI-keyed intake and the phone sale path.

"""
Phones

Each phone is a single unit keyed by IMEI. Intake creates it in_stock with an
IN movement; sell_phone moves it to sold exactly once and writes the Sale,
PhoneSale and SALE movement in one transaction.

PAYMENT:
- cash / card: the full price is collected at once (initial_payment = total)
- credit: customer name, initial payment < price and months >= 1 are required;
  the monthly installment is (price - initial) / months rounded half-up
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, CreditError, NotFoundError, ValidationError
from ..extensions import db
from ..models import PAYMENT_METHODS, PHONE_STATUSES, Phone, PhoneMovement, PhoneSale, Sale
from ..money import divide_half_up, format_cents
from ..validation import ModelValidationPolicy, check_amount, enforce_rules_phone, validate_payload
from .concurrency import run_with_retry
from .notification_service import notify_after_commit
from .unit_of_work import UnitOfWork
from shoppos.time_utils import utcnow

PHONE_POLICY = ModelValidationPolicy(
    writable_fields={"imei", "model", "purchase_price_cents", "condition", "sale_price_cents"},
    required_on_create={"imei", "model", "purchase_price_cents", "condition"},
)

PHONE_MOVEMENT_TYPES = ("IN", "SALE")


def intake_phone(payload: dict, *, user_id: int) -> Phone:
    patch = validate_payload(model=Phone, payload=payload, policy=PHONE_POLICY, partial=False)
    enforce_rules_phone(patch)

    if db.session.query(Phone.id).filter(Phone.imei == patch["imei"]).first():
        raise ConflictError("A phone with this IMEI already exists", {"imei": patch["imei"]})

    def _op():
        with UnitOfWork() as uow:
            now = utcnow()
            phone = uow.phones.add(Phone(status="in_stock", created_at=now, updated_at=now, **patch))
            uow.phones.add(PhoneMovement(
                phone_id=phone.id,
                type="IN",
                purchase_price_cents=phone.purchase_price_cents,
                sale_price_cents=phone.sale_price_cents,
                user_id=user_id,
                created_at=now,
            ))
        return phone

    try:
        return run_with_retry(_op)
    except IntegrityError:
        raise ConflictError("A phone with this IMEI already exists", {"imei": patch["imei"]})


def list_phones(*, status: str | None = None, page: int = 1, limit: int = 100) -> dict:
    query = db.session.query(Phone)
    if status:
        if status not in PHONE_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(PHONE_STATUSES)}")
        query = query.filter(Phone.status == status)

    total = query.count()
    phones = (
        query.order_by(Phone.created_at.desc(), Phone.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {"items": [p.to_dict() for p in phones], "total": total, "page": page, "limit": limit}


def get_phone(phone_id: int) -> Phone:
    phone = db.session.get(Phone, phone_id)
    if not phone:
        raise NotFoundError("Phone not found", {"phone_id": phone_id})
    return phone


def list_phone_movements(
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    movement_type: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    query = db.session.query(PhoneMovement)
    if start is not None:
        query = query.filter(PhoneMovement.created_at >= start)
    if end is not None:
        query = query.filter(PhoneMovement.created_at <= end)
    if movement_type:
        movement_type = movement_type.upper()
        if movement_type not in PHONE_MOVEMENT_TYPES:
            raise ValidationError(f"type must be one of: {', '.join(PHONE_MOVEMENT_TYPES)}")
        query = query.filter(PhoneMovement.type == movement_type)

    total = query.count()
    rows = (
        query.order_by(PhoneMovement.created_at.desc(), PhoneMovement.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {"items": [m.to_dict() for m in rows], "total": total, "page": page, "limit": limit}


def _credit_terms(price: int, initial_payment_cents, credit_months, first_name, last_name) -> dict:
    if not first_name and not last_name:
        raise CreditError("Customer name is required for a credit sale")
    initial = initial_payment_cents or 0
    check_amount("initial_payment_cents", initial)
    if initial >= price:
        raise CreditError("initial_payment_cents must be less than the sale price")
    if credit_months is None or credit_months < 1:
        raise CreditError("credit_months must be >= 1")
    return {
        "initial_payment_cents": initial,
        "credit_months": credit_months,
        "monthly_payment_cents": divide_half_up(price - initial, credit_months),
    }


def sell_phone(
    phone_id: int,
    *,
    user_id: int,
    payment_method: str,
    sale_price_cents: int | None = None,
    customer_first_name: str | None = None,
    customer_last_name: str | None = None,
    initial_payment_cents: int | None = None,
    credit_months: int | None = None,
) -> Sale:
    """
    Sell one in-stock phone.

    Raises NotFoundError, ConflictError (already sold), ValidationError or
    CreditError; nothing is written on failure.
    """
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")
    check_amount("sale_price_cents", sale_price_cents)

    def _op():
        with UnitOfWork() as uow:
            phone = uow.phones.get(phone_id, for_update=True)
            if not phone:
                raise NotFoundError("Phone not found", {"phone_id": phone_id})
            if phone.status != "in_stock":
                raise ConflictError("Phone is already sold", {"phone_id": phone.id})

            price = sale_price_cents if sale_price_cents is not None else phone.sale_price_cents
            if price is None:
                raise ValidationError("sale_price_cents is required: the phone has no suggested price")

            if payment_method == "credit":
                terms = _credit_terms(
                    price, initial_payment_cents, credit_months,
                    customer_first_name, customer_last_name,
                )
            else:
                terms = {
                    "initial_payment_cents": price,
                    "credit_months": None,
                    "monthly_payment_cents": None,
                }

            now = utcnow()
            sale = uow.sales.add(Sale(
                user_id=user_id,
                total_cents=price,
                payment_method=payment_method,
                customer_first_name=customer_first_name,
                customer_last_name=customer_last_name,
                created_at=now,
                **terms,
            ))
            uow.phones.add(PhoneSale(
                sale_id=sale.id,
                phone_id=phone.id,
                sale_price_cents=price,
                purchase_price_cents=phone.purchase_price_cents,
            ))
            uow.phones.add(PhoneMovement(
                phone_id=phone.id,
                type="SALE",
                purchase_price_cents=phone.purchase_price_cents,
                sale_price_cents=price,
                user_id=user_id,
                sale_id=sale.id,
                created_at=now,
            ))

            phone.status = "sold"
            phone.sale_price_cents = price
            phone.updated_at = now
            uow.flush()

            lines = [
                f"Phone sold: {phone.model} (IMEI {phone.imei})",
                f"Price: {format_cents(price)} ({payment_method})",
            ]
            if payment_method == "credit":
                lines.append(f"Initial payment: {format_cents(terms['initial_payment_cents'])}")
                lines.append(
                    f"{terms['credit_months']} x {format_cents(terms['monthly_payment_cents'])} per month"
                )
            notify_after_commit("\n".join(lines))
        return sale

    return run_with_retry(_op)
