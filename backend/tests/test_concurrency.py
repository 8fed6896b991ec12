"""
Concurrent checkout against a file-backed SQLite database.

Two cashiers race for the same stock; exactly one sale may win and the
ledger must still reconcile afterwards.
"""

import threading

import pytest

from conftest import PASSWORD
from retailpos import create_app
from retailpos.errors import StockError
from retailpos.extensions import db
from retailpos.models import Category, Inventory, Sale, User
from retailpos.services import inventory_service, sales_service
from retailpos.services.auth_service import hash_password
from retailpos.services.products_service import create_product
from retailpos.validation import SaleItemRequest, SaleRequest


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'race.sqlite3'}",
        "BCRYPT_ROUNDS": 4,
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


def _seed(stock):
    cashier = User(
        username="racer",
        email="racer@retailpos.test",
        full_name="Race Cashier",
        role="cashier",
        password_hash=hash_password(PASSWORD),
    )
    category = Category(name="Race")
    db.session.add_all([cashier, category])
    db.session.commit()

    product = create_product(
        {
            "sku": "RACE-1",
            "name": "Last Units",
            "category_id": category.id,
            "purchase_price_cents": 500,
            "selling_price_cents": 1000,
            "gst_rate": 0,
        },
        {"initial_stock": stock},
        user_id=cashier.id,
    )
    return cashier.id, product["id"]


def test_only_one_oversubscribed_sale_wins(file_app):
    cashier_id, product_id = _seed(stock=10)
    barrier = threading.Barrier(2)
    outcomes = []

    def checkout():
        with file_app.app_context():
            barrier.wait()
            try:
                sales_service.create_sale(
                    SaleRequest(
                        items=[SaleItemRequest(product_id=product_id, quantity=6)],
                        payment_method="card",
                    ),
                    cashier_id=cashier_id,
                )
                outcomes.append("ok")
            except StockError:
                outcomes.append("stock")
            finally:
                db.session.remove()

    threads = [threading.Thread(target=checkout) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert sorted(outcomes) == ["ok", "stock"]

    db.session.expire_all()
    assert db.session.query(Inventory).filter_by(product_id=product_id).one().current_quantity == 4
    assert db.session.query(Sale).count() == 1
    assert inventory_service.reconcile_inventory()["ok"]


def test_sale_numbers_stay_unique_under_contention(file_app):
    cashier_id, product_id = _seed(stock=100)
    workers = 4
    barrier = threading.Barrier(workers)
    errors = []

    def checkout():
        with file_app.app_context():
            barrier.wait()
            try:
                for _ in range(3):
                    sales_service.create_sale(
                        SaleRequest(
                            items=[SaleItemRequest(product_id=product_id, quantity=1)],
                            payment_method="cash",
                        ),
                        cashier_id=cashier_id,
                    )
            except Exception as exc:
                errors.append(exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=checkout) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert errors == []
    db.session.expire_all()
    numbers = [number for (number,) in db.session.query(Sale.sale_number).all()]
    assert len(numbers) == len(set(numbers)) == 12
    assert db.session.query(Inventory).filter_by(product_id=product_id).one().current_quantity == 88
    assert inventory_service.reconcile_inventory()["ok"]
