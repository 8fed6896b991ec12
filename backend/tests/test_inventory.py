"""Inventory adjustments, receipts, thresholds, reads and ledger reconciliation."""

import pytest

from conftest import stock_of
from retailpos.errors import InventoryError, NotFoundError, ValidationError
from retailpos.extensions import db
from retailpos.models import Inventory, InventoryTransaction
from retailpos.services import inventory_service
from retailpos.validation import AdjustmentRequest


def _adjust(product_id, quantity, type_, user_id, reason="Stock count"):
    return inventory_service.adjust_inventory(
        product_id,
        AdjustmentRequest(quantity=quantity, reason=reason, type=type_),
        user_id=user_id,
    )


class TestAdjustInventory:
    def test_add_remove_set(self, db_session, product, manager_user):
        added = _adjust(product, 5, "add", manager_user.id)["adjustment"]
        assert (added["previous_quantity"], added["new_quantity"], added["quantity_change"]) == (10, 15, 5)

        removed = _adjust(product, 3, "remove", manager_user.id)["adjustment"]
        assert removed["new_quantity"] == 12

        result = _adjust(product, 4, "set", manager_user.id)
        assert result["adjustment"]["quantity_change"] == -8
        assert result["inventory"]["current_quantity"] == 4

        ledger = (
            db.session.query(InventoryTransaction)
            .filter_by(product_id=product, transaction_type="adjustment")
            .order_by(InventoryTransaction.id.asc())
            .all()
        )
        assert [tx.quantity_change for tx in ledger] == [5, -3, -8]
        assert all(tx.created_by_user_id == manager_user.id for tx in ledger)
        assert inventory_service.reconcile_inventory()["ok"]

    def test_remove_clamps_at_zero(self, db_session, product, manager_user):
        result = _adjust(product, 25, "remove", manager_user.id)
        assert result["adjustment"]["new_quantity"] == 0
        assert result["adjustment"]["quantity_change"] == -10
        assert result["inventory"]["stock_status"] == "out_of_stock"

    def test_unknown_type(self, db_session, product, manager_user):
        with pytest.raises(InventoryError) as excinfo:
            _adjust(product, 1, "double", manager_user.id)
        assert excinfo.value.code == "INVALID_TYPE"
        assert stock_of(product) == 10

    def test_negative_result_rejected(self, db_session, product, manager_user):
        with pytest.raises(InventoryError) as excinfo:
            _adjust(product, -1, "set", manager_user.id)
        assert excinfo.value.code == "NEGATIVE_QUANTITY"
        assert stock_of(product) == 10
        assert inventory_service.reconcile_inventory()["ok"]

    def test_missing_product(self, db_session, manager_user):
        with pytest.raises(NotFoundError):
            _adjust(404, 1, "add", manager_user.id)


class TestBulkAdjust:
    def test_partial_success_commits_good_items(self, db_session, make_product, manager_user):
        first = make_product(stock=5)
        second = make_product(stock=5)

        result = inventory_service.bulk_adjust_inventory(
            [
                AdjustmentRequest(product_id=second, quantity=2, reason="Recount", type="add"),
                AdjustmentRequest(product_id=9999, quantity=1, reason="Recount", type="add"),
                AdjustmentRequest(product_id=first, quantity=-1, reason="Recount", type="set"),
                AdjustmentRequest(product_id=first, quantity=1, reason="Recount", type="remove"),
            ],
            user_id=manager_user.id,
        )

        assert result["summary"] == {"total_adjustments": 4, "successful": 2, "failed": 2}
        assert {e["code"] for e in result["errors"]} == {"PRODUCT_NOT_FOUND", "NEGATIVE_QUANTITY"}
        assert stock_of(first) == 4
        assert stock_of(second) == 7
        assert inventory_service.reconcile_inventory()["ok"]

    def test_all_success_has_no_errors_key(self, db_session, product, manager_user):
        result = inventory_service.bulk_adjust_inventory(
            [AdjustmentRequest(product_id=product, quantity=1, reason="Found", type="add")],
            user_id=manager_user.id,
        )
        assert "errors" not in result
        assert result["results"][0]["success"] is True


class TestThresholds:
    def test_capacity_below_minimum_rejected(self, db_session, make_product):
        product_id = make_product(stock=10, minimum_threshold=5)

        with pytest.raises(ValidationError) as excinfo:
            inventory_service.update_thresholds(product_id, {"maximum_capacity": 4})
        assert excinfo.value.code == "INVALID_THRESHOLDS"

        with pytest.raises(ValidationError):
            inventory_service.update_thresholds(product_id, {"minimum_threshold": 30, "maximum_capacity": 20})

        db.session.expire_all()
        inventory = db.session.query(Inventory).filter_by(product_id=product_id).one()
        assert (inventory.minimum_threshold, inventory.maximum_capacity) == (5, None)

    def test_raising_minimum_above_existing_capacity_rejected(self, db_session, product):
        inventory_service.update_thresholds(product, {"maximum_capacity": 40})

        with pytest.raises(ValidationError):
            inventory_service.update_thresholds(product, {"minimum_threshold": 41})

        updated = inventory_service.update_thresholds(product, {"minimum_threshold": 40})
        assert updated["minimum_threshold"] == 40
        assert updated["maximum_capacity"] == 40

        cleared = inventory_service.update_thresholds(product, {"maximum_capacity": None, "minimum_threshold": 60})
        assert cleared["maximum_capacity"] is None

    def test_inactive_product(self, db_session, product):
        db.session.query(Inventory).filter_by(product_id=product).one().product.is_active = False
        db.session.commit()
        with pytest.raises(NotFoundError):
            inventory_service.update_thresholds(product, {"minimum_threshold": 1})


class TestReconcile:
    def test_detects_out_of_band_write(self, db_session, product):
        row = db.session.query(Inventory).filter_by(product_id=product).one()
        row.current_quantity = 99
        db.session.commit()

        report = inventory_service.reconcile_inventory()
        assert not report["ok"]
        assert report["mismatches"][0]["difference"] == 89


class TestInventoryApi:
    def test_adjust_endpoint(self, client, db_session, product, manager_headers):
        resp = client.put(
            f"/api/inventory/{product}/adjust",
            json={"quantity": 3, "reason": "Damaged stock", "type": "remove"},
            headers=manager_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["adjustment"]["new_quantity"] == 7

    def test_adjust_validation(self, client, db_session, product, manager_headers):
        url = f"/api/inventory/{product}/adjust"
        assert client.put(url, json={"quantity": 3, "type": "add"}, headers=manager_headers).status_code == 400
        assert client.put(url, json={"quantity": -3, "reason": "x", "type": "add"}, headers=manager_headers).status_code == 400

        resp = client.put(url, json={"quantity": 3, "reason": "x", "type": "double"}, headers=manager_headers)
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "INVALID_TYPE"

    def test_bulk_endpoint(self, client, db_session, product, manager_headers):
        resp = client.put(
            "/api/inventory/bulk-adjust",
            json={"adjustments": [
                {"product_id": product, "quantity": 20, "reason": "Delivery", "type": "set"},
                {"product_id": 31337, "quantity": 1, "reason": "Delivery", "type": "add"},
            ]},
            headers=manager_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["summary"]["failed"] == 1
        assert stock_of(product) == 20

        assert client.put("/api/inventory/bulk-adjust", json={"adjustments": []},
                          headers=manager_headers).status_code == 400

    def test_receive_and_thresholds(self, client, db_session, product, manager_headers):
        resp = client.post(
            f"/api/inventory/{product}/receive",
            json={"quantity": 12, "reference_id": 7, "reason": "PO-7"},
            headers=manager_headers,
        )
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["transaction"]["transaction_type"] == "purchase"
        assert body["transaction"]["reference_id"] == 7
        assert body["inventory"]["current_quantity"] == 22

        resp = client.put(
            f"/api/inventory/{product}/thresholds",
            json={"minimum_threshold": 25, "maximum_capacity": 100},
            headers=manager_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["inventory"]["stock_status"] == "low_stock"

        resp = client.put(f"/api/inventory/{product}/thresholds", json={}, headers=manager_headers)
        assert resp.status_code == 400

        resp = client.put(
            f"/api/inventory/{product}/thresholds",
            json={"maximum_capacity": 10},
            headers=manager_headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "INVALID_THRESHOLDS"

    def test_reads(self, client, db_session, make_product, cashier_headers, manager_headers):
        make_product(stock=0)
        make_product(stock=1, minimum_threshold=5)
        make_product(stock=50)

        overview = client.get("/api/inventory", headers=cashier_headers).get_json()
        assert overview["pagination"]["total"] == 3
        assert overview["inventory"][0]["stock_status"] == "out_of_stock"

        low = client.get("/api/inventory?status=low_stock", headers=cashier_headers).get_json()
        assert low["pagination"]["total"] == 1

        alerts = client.get("/api/inventory/alerts", headers=cashier_headers).get_json()["alerts"]
        assert alerts["total_alerts"] == 2

        stats = client.get("/api/inventory/stats", headers=cashier_headers).get_json()
        assert stats["overview"]["total_products"] == 3
        assert stats["overview"]["in_stock_count"] == 1

        txs = client.get("/api/inventory/transactions?type=purchase", headers=cashier_headers).get_json()
        assert txs["pagination"]["total"] == 2

        assert client.get("/api/inventory?status=bogus", headers=cashier_headers).status_code == 400

        report = client.get("/api/inventory/reconcile", headers=manager_headers).get_json()
        assert report == {"checked": 3, "mismatches": [], "ok": True}
