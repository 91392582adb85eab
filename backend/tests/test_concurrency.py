"""
Concurrency tests.

Runs competing sales and credit payments on real threads against a
file-backed SQLite database, where each thread holds its own connection and
the write lock taken by UnitOfWork is what keeps the balances consistent.

Verifies:
- Concurrent sales never sell more units than are in stock
- Concurrent installments never pay a credit sale past its total
"""

import threading

import pytest

from shoppos import create_app
from shoppos.errors import ShopError
from shoppos.extensions import db
from shoppos.models import CreditPayment, Product, Sale, StockMovement, User
from shoppos.services import credit_service, phone_service, sales_service
from shoppos.services.auth_service import hash_password


@pytest.fixture(scope='function')
def file_app(tmp_path):
    """Separate application over an on-disk database so threads share real locks."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'concurrency.db'}",
        'SQLALCHEMY_ENGINE_OPTIONS': {'connect_args': {'timeout': 30}},
        'NOTIFY_ASYNC': False,
        'SCHEDULER_ENABLED': False,
        'TELEGRAM_BOT_TOKEN': None,
        'TELEGRAM_CHAT_ID': None,
        'BUSINESS_TIMEZONE': 'UTC',
    })
    with app.app_context():
        db.create_all()
        user = User(
            username='cashier',
            email='cashier@local',
            password_hash=hash_password('Password123'),
            role='STAFF',
        )
        db.session.add(user)
        db.session.commit()

    yield app

    with app.app_context():
        db.session.remove()
        db.engine.dispose()


def run_concurrently(app, count, func):
    """Start count threads that call func(i) together; return each outcome."""
    barrier = threading.Barrier(count)
    outcomes = []
    lock = threading.Lock()

    def worker(i):
        with app.app_context():
            barrier.wait()
            try:
                func(i)
                outcome = 'ok'
            except ShopError as e:
                outcome = type(e).__name__
            except Exception as e:
                outcome = repr(e)
            finally:
                db.session.remove()
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return outcomes


def cashier_id(app):
    with app.app_context():
        return db.session.query(User).filter_by(username='cashier').one().id


class TestConcurrentSales:

    def test_last_units_are_sold_once(self, file_app):
        with file_app.app_context():
            product = Product(sku='COLA-330', name='Cola 0.33', price_cents=150, cost_price_cents=100, stock=5)
            db.session.add(product)
            db.session.commit()
            product_id = product.id
        user_id = cashier_id(file_app)

        def buy_one(_):
            sales_service.create_sale(
                [{'product_id': product_id, 'quantity': 1, 'unit_price_cents': None}],
                payment_method='cash',
                user_id=user_id,
            )

        outcomes = run_concurrently(file_app, 8, buy_one)

        assert len(outcomes) == 8
        assert outcomes.count('ok') == 5
        assert outcomes.count('InsufficientStockError') == 3

        with file_app.app_context():
            product = db.session.get(Product, product_id)
            assert product.stock == 0
            assert db.session.query(Sale).count() == 5
            sold = db.session.query(StockMovement).filter_by(product_id=product_id, type='SALE').all()
            assert sum(m.quantity for m in sold) == 5


class TestConcurrentCreditPayments:

    def test_installments_never_overpay(self, file_app):
        user_id = cashier_id(file_app)
        with file_app.app_context():
            phone = phone_service.intake_phone(
                {'imei': '353918058381692', 'model': 'Galaxy S21', 'purchase_price_cents': 600,
                 'condition': 'used', 'sale_price_cents': 1000},
                user_id=user_id,
            )
            sale = phone_service.sell_phone(
                phone.id,
                user_id=user_id,
                payment_method='credit',
                customer_first_name='Dana',
                initial_payment_cents=200,
                credit_months=8,
            )
            sale_id = sale.id

        def pay(_):
            credit_service.record_payment(sale_id, 300, user_id=user_id)

        outcomes = run_concurrently(file_app, 6, pay)

        assert len(outcomes) == 6
        assert outcomes.count('ok') == 2
        assert outcomes.count('CreditError') == 4

        with file_app.app_context():
            sale = db.session.get(Sale, sale_id)
            payments = db.session.query(CreditPayment).filter_by(sale_id=sale_id).all()
            assert sum(p.amount_cents for p in payments) == 600
            assert sale.initial_payment_cents + sum(p.amount_cents for p in payments) <= sale.total_cents
