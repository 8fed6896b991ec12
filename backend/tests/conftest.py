"""
Pytest fixtures for RetailPOS backend tests.

Provides the test app (in-memory SQLite), a clean database per test,
one user and bearer token per role, and catalog helpers.
"""

import pytest

from retailpos import create_app
from retailpos.extensions import db
from retailpos.models import Category, Inventory, User
from retailpos.services import session_service
from retailpos.services.auth_service import hash_password
from retailpos.services.products_service import create_product

PASSWORD = "Password123!"

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'BCRYPT_ROUNDS': 4,
    'SHOP_NAME': 'Test Mart',
    'SHOP_GST_NUMBER': '29ABCDE1234F1Z5',
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

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


def _make_user(db_session, username: str, role: str) -> User:
    user = User(
        username=username,
        email=f"{username}@retailpos.test",
        full_name=f"Test {role.title()}",
        role=role,
        password_hash=hash_password(PASSWORD),
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session):
    return _make_user(db_session, "admin", "admin")


@pytest.fixture(scope='function')
def manager_user(db_session):
    return _make_user(db_session, "manager", "manager")


@pytest.fixture(scope='function')
def cashier_user(db_session):
    return _make_user(db_session, "cashier", "cashier")


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def _headers_for(user: User) -> dict:
    _, token = session_service.create_session(user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    return _headers_for(admin_user)


@pytest.fixture(scope='function')
def manager_headers(manager_user):
    return _headers_for(manager_user)


@pytest.fixture(scope='function')
def cashier_headers(cashier_user):
    return _headers_for(cashier_user)


@pytest.fixture(scope='function')
def category(db_session):
    category = Category(name="Groceries", description="Daily essentials")
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def make_product(db_session, category, admin_user):
    """
    Factory: make_product(sku=..., price_cents=..., gst_rate=..., stock=...)
    creates an active product with opening stock recorded in the ledger.
    """
    counter = {"n": 0}

    def _make(*, sku=None, name=None, price_cents=10000, gst_rate=18, stock=10, minimum_threshold=2):
        counter["n"] += 1
        n = counter["n"]
        created = create_product(
            {
                "sku": sku or f"SKU-{n:03d}",
                "name": name or f"Product {n}",
                "category_id": category.id,
                "purchase_price_cents": price_cents // 2,
                "selling_price_cents": price_cents,
                "gst_rate": gst_rate,
            },
            {"initial_stock": stock, "minimum_threshold": minimum_threshold},
            user_id=admin_user.id,
        )
        return created["id"]

    return _make


@pytest.fixture(scope='function')
def product(make_product):
    """Stock 10, price 100.00, GST 18%."""
    return make_product(sku="RICE-5KG", name="Basmati Rice 5kg")


def stock_of(product_id: int) -> int:
    row = db.session.query(Inventory).filter_by(product_id=product_id).one()
    db.session.refresh(row)
    return row.current_quantity
