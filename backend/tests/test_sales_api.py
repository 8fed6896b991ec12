"""HTTP contract of /api/sales: status codes, error codes, response shapes."""

from conftest import stock_of


def _checkout(client, headers, product_id, **overrides):
    body = {
        "items": [{"product_id": product_id, "quantity": 2}],
        "payment_method": "cash",
        "payment_details": [{"method": "cash", "amount": 236.00}],
    }
    body.update(overrides)
    return client.post("/api/sales", json=body, headers=headers)


class TestCreateSaleApi:
    def test_created(self, client, db_session, product, cashier_headers):
        resp = _checkout(client, cashier_headers, product)

        assert resp.status_code == 201
        data = resp.get_json()
        assert data["sale"]["total_amount"] == 236.0
        assert data["sale"]["cashier_name"] == "Test Cashier"
        assert data["items"][0]["product_sku"] == "RICE-5KG"
        assert data["payments"][0]["payment_method"] == "cash"
        assert stock_of(product) == 8

    def test_underpayment_is_payment_error(self, client, db_session, product, cashier_headers):
        resp = _checkout(client, cashier_headers, product, payment_details=[{"method": "cash", "amount": 200.00}])

        assert resp.status_code == 400
        assert resp.get_json()["code"] == "PAYMENT_ERROR"
        assert stock_of(product) == 10

    def test_oversell_is_stock_error(self, client, db_session, product, cashier_headers):
        resp = _checkout(
            client, cashier_headers, product,
            items=[{"product_id": product, "quantity": 50}],
            payment_details=[],
        )

        assert resp.status_code == 400
        body = resp.get_json()
        assert body["code"] == "STOCK_ERROR"
        assert body["details"]["available"] == 10
        assert body["details"]["required"] == 50

    def test_mixed_with_one_entry_is_validation_error(self, client, db_session, product, cashier_headers):
        resp = _checkout(client, cashier_headers, product, payment_method="mixed")

        assert resp.status_code == 400
        assert resp.get_json()["code"] == "VALIDATION_ERROR"
        assert stock_of(product) == 10

    def test_validation_errors(self, client, db_session, product, cashier_headers):
        cases = [
            {"items": []},
            {"items": [{"product_id": product, "quantity": 0}]},
            {"payment_method": "cheque"},
            {"customer_phone": "call me"},
            {"customer_email": "not-an-email"},
            {"items": [{"product_id": product, "quantity": 1, "discount_percentage": 150}]},
            {"status": "refunded"},
        ]
        for overrides in cases:
            resp = _checkout(client, cashier_headers, product, **overrides)
            assert resp.status_code == 400, overrides
            assert resp.get_json()["code"] == "VALIDATION_ERROR", overrides

    def test_non_json_body(self, client, db_session, cashier_headers):
        resp = client.post("/api/sales", data="nope", headers=cashier_headers)
        assert resp.status_code == 400


class TestSaleReadsApi:
    def test_list_detail_and_receipt(self, client, db_session, product, cashier_headers):
        sale_id = _checkout(client, cashier_headers, product).get_json()["sale"]["id"]

        listing = client.get("/api/sales", headers=cashier_headers).get_json()
        assert listing["pagination"]["total"] == 1
        assert listing["sales"][0]["item_count"] == 1

        detail = client.get(f"/api/sales/{sale_id}", headers=cashier_headers).get_json()
        assert detail["sale"]["id"] == sale_id
        assert detail["refunds"] == []

        receipt = client.get(f"/api/sales/{sale_id}/receipt", headers=cashier_headers).get_json()["receipt"]
        assert receipt["shop"]["name"] == "Test Mart"

    def test_list_filters(self, client, db_session, product, cashier_headers):
        _checkout(client, cashier_headers, product)

        resp = client.get("/api/sales?status=pending", headers=cashier_headers)
        assert resp.get_json()["pagination"]["total"] == 0

        resp = client.get("/api/sales?start_date=2001-01-01&end_date=2001-01-31", headers=cashier_headers)
        assert resp.get_json()["pagination"]["total"] == 0

        assert client.get("/api/sales?start_date=yesterday", headers=cashier_headers).status_code == 400
        assert client.get("/api/sales?status=lost", headers=cashier_headers).status_code == 400

    def test_missing_sale(self, client, db_session, cashier_headers):
        resp = client.get("/api/sales/4242", headers=cashier_headers)
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "SALE_NOT_FOUND"

    def test_stats_and_daily_summary(self, client, db_session, product, cashier_headers, manager_headers):
        _checkout(client, cashier_headers, product)

        stats = client.get("/api/sales/stats?period=today", headers=manager_headers).get_json()
        assert stats["stats"]["overview"]["total_sales"] == 1
        assert stats["stats"]["top_products"][0]["total_quantity"] == 2

        summary = client.get("/api/sales/daily-summary", headers=manager_headers).get_json()
        assert summary["summary"]["total_sales"] == 1

        assert client.get("/api/sales/stats?period=decade", headers=manager_headers).status_code == 400


class TestRefundCancelApi:
    def test_refund_flow(self, client, db_session, product, cashier_headers, manager_headers):
        created = _checkout(client, cashier_headers, product).get_json()
        item_id = created["items"][0]["id"]
        url = f"/api/sales/{created['sale']['id']}/refund"

        resp = client.post(url, json={"items": [{"sale_item_id": item_id, "quantity": 2}], "refund_method": "store_credit"},
                           headers=manager_headers)
        assert resp.status_code == 200
        assert resp.get_json()["refund_total"] == 236.0
        assert stock_of(product) == 10

        resp = client.post(url, json={"items": [{"sale_item_id": item_id, "quantity": 1}], "refund_method": "cash"},
                           headers=manager_headers)
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "REFUND_ERROR"

    def test_refund_missing_sale_is_404(self, client, db_session, manager_headers):
        resp = client.post("/api/sales/999/refund", json={"items": [{"sale_item_id": 1, "quantity": 1}], "refund_method": "cash"},
                           headers=manager_headers)
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "SALE_NOT_REFUNDABLE"

    def test_cancel_and_complete(self, client, db_session, product, cashier_headers, manager_headers):
        held = _checkout(client, cashier_headers, product, status="pending", payment_details=[]).get_json()["sale"]
        other = _checkout(client, cashier_headers, product, status="pending", payment_details=[]).get_json()["sale"]
        assert stock_of(product) == 6

        resp = client.post(f"/api/sales/{held['id']}/cancel", json={"reason": "Wrong items"}, headers=manager_headers)
        assert resp.status_code == 200
        assert resp.get_json()["sale"]["status"] == "cancelled"
        assert stock_of(product) == 8

        resp = client.post(f"/api/sales/{held['id']}/cancel", json={}, headers=manager_headers)
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "ALREADY_CANCELLED"

        resp = client.post(f"/api/sales/{other['id']}/complete", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.get_json()["sale"]["status"] == "completed"

        resp = client.post(f"/api/sales/{other['id']}/cancel", json={}, headers=manager_headers)
        assert resp.get_json()["code"] == "CANNOT_CANCEL_COMPLETED"
