# Overview: Transaction context and the narrow repositories services work through.

"""
Unit of work over the Flask-SQLAlchemy session.

WHY: The sale, stock and credit paths each read a balance and then write based
on it. Those reads and writes have to share one transaction, and on SQLite the
transaction has to hold the write lock from its first read, otherwise two
requests can both see enough stock. UnitOfWork opens the transaction with
BEGIN IMMEDIATE on SQLite and row locks (FOR UPDATE) elsewhere, commits on a
clean exit and rolls back on any exception.

Services receive a UnitOfWork and only touch the repositories it exposes.
"""

from __future__ import annotations

from typing import Iterable

from sqlalchemy import func, select, text

from ..extensions import db
from ..models import CreditPayment, Phone, Product, Sale, SaleItem, StockMovement
from .concurrency import lock_for_update


class ProductRepository:
    def __init__(self, session):
        self.session = session

    def get(self, product_id: int, *, for_update: bool = False) -> Product | None:
        query = self.session.query(Product).filter(Product.id == product_id)
        if for_update:
            query = lock_for_update(query)
        return query.one_or_none()

    def get_many(
        self, product_ids: Iterable[int], *, for_update: bool = False, fresh: bool = False
    ) -> dict[int, Product]:
        """
        id -> Product for every id that exists. fresh=True re-reads rows that are
        already in the identity map instead of returning the cached state.
        """
        ids = sorted(set(product_ids))
        if not ids:
            return {}
        query = self.session.query(Product).filter(Product.id.in_(ids)).order_by(Product.id)
        if for_update:
            query = lock_for_update(query)
        if fresh:
            query = query.populate_existing()
        return {p.id: p for p in query.all()}


class MovementRepository:
    def __init__(self, session):
        self.session = session

    def add(self, movement: StockMovement) -> StockMovement:
        self.session.add(movement)
        return movement

    def add_all(self, movements: list[StockMovement]) -> None:
        self.session.add_all(movements)


class SaleRepository:
    def __init__(self, session):
        self.session = session

    def get(self, sale_id: int, *, for_update: bool = False) -> Sale | None:
        query = self.session.query(Sale).filter(Sale.id == sale_id)
        if for_update:
            query = lock_for_update(query)
        return query.one_or_none()

    def add(self, sale: Sale) -> Sale:
        self.session.add(sale)
        self.session.flush()
        return sale

    def add_items(self, items: list[SaleItem]) -> None:
        self.session.add_all(items)


class CreditPaymentRepository:
    def __init__(self, session):
        self.session = session

    def total_paid_after_initial(self, sale_id: int) -> int:
        """Sum of installments, read fresh inside the current transaction."""
        stmt = select(func.coalesce(func.sum(CreditPayment.amount_cents), 0)).where(
            CreditPayment.sale_id == sale_id
        )
        return int(self.session.execute(stmt).scalar_one())

    def add(self, payment: CreditPayment) -> CreditPayment:
        self.session.add(payment)
        self.session.flush()
        return payment


class PhoneRepository:
    def __init__(self, session):
        self.session = session

    def get(self, phone_id: int, *, for_update: bool = False) -> Phone | None:
        query = self.session.query(Phone).filter(Phone.id == phone_id)
        if for_update:
            query = lock_for_update(query)
        return query.one_or_none()

    def add(self, obj):
        self.session.add(obj)
        self.session.flush()
        return obj


class UnitOfWork:
    """
    with UnitOfWork() as uow:
        product = uow.products.get(1, for_update=True)
        ...
    # committed here; rolled back if the block raised
    """

    def __init__(self, session=None):
        self.session = session or db.session
        self.products = ProductRepository(self.session)
        self.movements = MovementRepository(self.session)
        self.sales = SaleRepository(self.session)
        self.credit_payments = CreditPaymentRepository(self.session)
        self.phones = PhoneRepository(self.session)

    def __enter__(self) -> "UnitOfWork":
        self._begin()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            self.session.commit()
        else:
            self.session.rollback()
        return False

    def flush(self) -> None:
        self.session.flush()

    def _begin(self) -> None:
        bind = self.session.get_bind()
        if bind.dialect.name != "sqlite":
            return
        # pysqlite opens transactions lazily; only take the write lock when the
        # driver has not already started one on this connection.
        raw = self.session.connection().connection.dbapi_connection
        if not raw.in_transaction:
            self.session.execute(text("BEGIN IMMEDIATE"))
