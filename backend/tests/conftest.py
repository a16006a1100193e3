"""
Pytest fixtures for EazzyMart backend tests.

Provides an in-memory database, a recording email sender, accounts for each
role, a small catalog and the test client.
"""

import time

import pytest

from eazzymart import create_app
from eazzymart.extensions import db
from eazzymart.models import Product
from eazzymart.models.auth import ROLE_ADMIN, ROLE_CASHIER, ROLE_CUSTOMER
from eazzymart.services import auth_service, session_service
from eazzymart.services.notification_service import set_sender


class RecordingSender:
    """Email sender that keeps messages in memory."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, recipient, subject, html):
        if self.fail:
            raise RuntimeError("mail provider unavailable")
        self.sent.append({"to": recipient, "subject": subject, "html": html})
        return True


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'DELIVERY_SWEEPER_ENABLED': False,
        'UPLOAD_FOLDER': str(tmp_path_factory.mktemp("uploads")),
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
        db.session.remove()
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        app.extensions.pop("otp_store", None)

        yield db.session

        db.session.rollback()
        db.session.remove()


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch):
    """Minimum bcrypt cost keeps the suite fast; hashing is otherwise identical."""
    monkeypatch.setattr(auth_service, "BCRYPT_ROUNDS", 4)


@pytest.fixture(autouse=True)
def outbox(app):
    """Every test gets a fresh recording sender instead of the log/Resend sender."""
    sender = RecordingSender()
    set_sender(app, sender)
    yield sender
    app.extensions.pop("email_sender", None)


def make_user(username, role=ROLE_CUSTOMER, email=None, password="Password123"):
    return auth_service.create_user(username, password, email=email, role=role)


@pytest.fixture
def customer(db_session):
    return make_user("customer1", email="customer1@example.com")


@pytest.fixture
def other_customer(db_session):
    return make_user("customer2", email="customer2@example.com")


@pytest.fixture
def admin(db_session):
    return make_user("storeadmin", role=ROLE_ADMIN, email="admin@example.com")


@pytest.fixture
def cashier(db_session):
    return make_user("storecashier", role=ROLE_CASHIER, email="cashier@example.com")


@pytest.fixture
def products(db_session):
    """Two products: rice (stock 10, 50.00) and milk (stock 5, 98.75)."""
    rice = Product(name="Jasmine Rice 5kg", category="Grains", price_cents=5000, stock=10)
    milk = Product(name="Whole Milk 1L", category="Dairy", price_cents=9875, stock=5)
    db_session.add_all([rice, milk])
    db_session.commit()
    return {"rice": rice.id, "milk": milk.id}


def token_for(user) -> str:
    _, token = session_service.create_session(user.id)
    return token


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def customer_headers(customer):
    return auth_headers(token_for(customer))


@pytest.fixture
def admin_headers(admin):
    return auth_headers(token_for(admin))


@pytest.fixture
def cashier_headers(cashier):
    return auth_headers(token_for(cashier))


def stock_of(product_id: int) -> int:
    return db.session.get(Product, product_id, populate_existing=True).stock


def wait_for(predicate, timeout: float = 5.0) -> bool:
    """Poll predicate until truthy; mail is delivered on a worker thread."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return bool(predicate())
