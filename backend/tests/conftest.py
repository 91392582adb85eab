"""
Pytest fixtures for shoppos backend tests.

Provides an in-memory database, a test client, users per role and a
notifier that records messages instead of calling Telegram.
"""

import pytest

from shoppos import create_app
from shoppos.extensions import db
from shoppos.models import Category, Product, User
from shoppos.services.auth_service import hash_password
from shoppos.services.session_service import create_token


class RecordingNotifier:
    """Stands in for TelegramNotifier; keeps every message it is asked to send."""

    enabled = True

    def __init__(self):
        self.messages = []

    def send(self, text):
        self.messages.append(text)

    def shutdown(self):
        pass


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'NOTIFY_ASYNC': False,
        'SCHEDULER_ENABLED': False,
        'TELEGRAM_BOT_TOKEN': None,
        'TELEGRAM_CHAT_ID': None,
        'BUSINESS_TIMEZONE': 'UTC',
        'LOGIN_MAX_FAILED_ATTEMPTS': 3,
        'LOGIN_WINDOW_SECONDS': 60,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def notifier(app):
    """Swap the Telegram notifier for a recorder for the duration of a test."""
    original = app.extensions['notifier']
    recorder = RecordingNotifier()
    app.extensions['notifier'] = recorder
    yield recorder
    app.extensions['notifier'] = original


def make_user(db_session, username, role, password='Password123'):
    user = User(
        username=username,
        email=f"{username}@local",
        password_hash=hash_password(password),
        role=role,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session):
    return make_user(db_session, 'admin', 'ADMIN')


@pytest.fixture(scope='function')
def staff_user(db_session):
    return make_user(db_session, 'staff', 'STAFF')


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    return auth_headers(create_token(admin_user))


@pytest.fixture(scope='function')
def staff_headers(staff_user):
    return auth_headers(create_token(staff_user))


@pytest.fixture(scope='function')
def product(db_session):
    """Plain stock-holding product: price 1.50, cost 1.00, no stock."""
    p = Product(sku="COLA-330", name="Cola 0.33", price_cents=150, cost_price_cents=100, stock=0)
    db_session.add(p)
    db_session.commit()
    return p


@pytest.fixture(scope='function')
def hot_dog(db_session):
    """Composite product wired to a bun and a sausage, 2 sausages per unit."""
    category = Category(name="Hot dogs")
    bun = Product(sku="BUN", name="Bun", price_cents=50, cost_price_cents=20, stock=10)
    sausage = Product(sku="SAUSAGE", name="Sausage", price_cents=80, cost_price_cents=40, stock=10)
    db_session.add_all([category, bun, sausage])
    db_session.flush()
    composite = Product(
        sku="HOTDOG",
        name="Hot dog",
        category_id=category.id,
        price_cents=300,
        cost_price_cents=0,
        stock=0,
        is_composite=True,
        bun_component_id=bun.id,
        sausage_component_id=sausage.id,
        sausages_per_unit=2,
    )
    db_session.add(composite)
    db_session.commit()
    return composite


def get_auth_token(client, login: str, password: str) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'login': login,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
