"""Categories, products, and CSV import/export through the API."""

import io

from conftest import stock_of
from retailpos.extensions import db
from retailpos.models import InventoryTransaction


def _product_body(category, **overrides):
    body = {
        "sku": "TEA-250",
        "barcode": "8901234567890",
        "name": "Assam Tea 250g",
        "category_id": category,
        "purchase_price": "80.00",
        "selling_price": "120.50",
        "gst_rate": 5,
    }
    body.update(overrides)
    return body


class TestCategories:
    def test_crud_and_hierarchy(self, client, db_session, manager_headers, admin_headers):
        resp = client.post("/api/categories", json={"name": "Beverages"}, headers=manager_headers)
        assert resp.status_code == 201
        parent_id = resp.get_json()["category"]["id"]

        resp = client.post("/api/categories", json={"name": "Tea", "parent_id": parent_id}, headers=manager_headers)
        assert resp.status_code == 201
        child_id = resp.get_json()["category"]["id"]
        assert resp.get_json()["category"]["parent_name"] == "Beverages"

        tree = client.get("/api/categories/hierarchy", headers=manager_headers).get_json()["hierarchy"]
        assert tree[0]["name"] == "Beverages"
        assert tree[0]["children"][0]["name"] == "Tea"

        resp = client.put(f"/api/categories/{child_id}", json={"description": "Leaf and dust"}, headers=manager_headers)
        assert resp.status_code == 200
        assert resp.get_json()["category"]["description"] == "Leaf and dust"

        resp = client.delete(f"/api/categories/{parent_id}", headers=admin_headers)
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "CATEGORY_HAS_SUBCATEGORIES"

        assert client.delete(f"/api/categories/{child_id}", headers=admin_headers).status_code == 200
        listing = client.get("/api/categories", headers=manager_headers).get_json()["categories"]
        assert [c["name"] for c in listing] == ["Beverages"]

        listing = client.get("/api/categories?include_inactive=true", headers=manager_headers).get_json()["categories"]
        assert len(listing) == 2

    def test_duplicate_name_among_siblings(self, client, db_session, manager_headers):
        client.post("/api/categories", json={"name": "Snacks"}, headers=manager_headers)
        resp = client.post("/api/categories", json={"name": "snacks"}, headers=manager_headers)
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "DUPLICATE_CATEGORY"

    def test_missing_parent(self, client, db_session, manager_headers):
        resp = client.post("/api/categories", json={"name": "Orphan", "parent_id": 999}, headers=manager_headers)
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "PARENT_NOT_FOUND"

    def test_circular_hierarchy(self, client, db_session, manager_headers):
        a = client.post("/api/categories", json={"name": "A"}, headers=manager_headers).get_json()["category"]["id"]
        b = client.post("/api/categories", json={"name": "B", "parent_id": a}, headers=manager_headers).get_json()["category"]["id"]

        resp = client.put(f"/api/categories/{a}", json={"parent_id": a}, headers=manager_headers)
        assert resp.get_json()["code"] == "CIRCULAR_REFERENCE"

        resp = client.put(f"/api/categories/{a}", json={"parent_id": b}, headers=manager_headers)
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "CIRCULAR_HIERARCHY"

    def test_category_with_products_cannot_be_deleted(self, client, db_session, product, category, admin_headers):
        resp = client.delete(f"/api/categories/{category.id}", headers=admin_headers)
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "CATEGORY_HAS_PRODUCTS"

        stats = client.get("/api/categories?with_stats=true", headers=admin_headers).get_json()["categories"]
        assert stats[0]["stats"]["product_count"] == 1


class TestProducts:
    def test_create_with_opening_stock(self, client, db_session, category, manager_headers):
        resp = client.post(
            "/api/products",
            json=_product_body(category.id, initial_stock=24, minimum_threshold=6),
            headers=manager_headers,
        )
        assert resp.status_code == 201
        product = resp.get_json()["product"]
        assert product["selling_price"] == 120.5
        assert product["purchase_price"] == 80.0
        assert product["unit"] == "piece"
        assert product["current_quantity"] == 24
        assert product["minimum_threshold"] == 6

        opening = db.session.query(InventoryTransaction).filter_by(product_id=product["id"]).one()
        assert opening.transaction_type == "purchase"
        assert opening.quantity_change == 24

    def test_create_without_stock_starts_at_zero(self, client, db_session, category, manager_headers):
        resp = client.post("/api/products", json=_product_body(category.id), headers=manager_headers)
        product_id = resp.get_json()["product"]["id"]
        assert stock_of(product_id) == 0
        assert db.session.query(InventoryTransaction).filter_by(product_id=product_id).count() == 0

    def test_validation(self, client, db_session, category, manager_headers):
        cases = [
            _product_body(category.id, gst_rate=7),
            _product_body(category.id, selling_price="-1"),
            _product_body(category.id, category_id=555),
            _product_body(category.id, initial_stock=-4),
            _product_body(category.id, is_active=False),
            {"name": "No SKU", "category_id": category.id},
        ]
        for body in cases:
            resp = client.post("/api/products", json=body, headers=manager_headers)
            assert resp.status_code == 400, body

    def test_duplicate_sku_or_barcode(self, client, db_session, category, manager_headers):
        client.post("/api/products", json=_product_body(category.id), headers=manager_headers)

        resp = client.post("/api/products", json=_product_body(category.id, barcode=None), headers=manager_headers)
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "DUPLICATE_PRODUCT"

        resp = client.post("/api/products", json=_product_body(category.id, sku="OTHER"), headers=manager_headers)
        assert resp.status_code == 409

    def test_update_and_soft_delete(self, client, db_session, product, admin_headers):
        resp = client.put(f"/api/products/{product}", json={"selling_price": 105, "unit": "bag"}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["product"]["selling_price"] == 105.0
        assert resp.get_json()["product"]["unit"] == "bag"

        resp = client.put(f"/api/products/{product}", json={"initial_stock": 3}, headers=admin_headers)
        assert resp.status_code == 400

        assert client.delete(f"/api/products/{product}", headers=admin_headers).status_code == 200
        assert client.get(f"/api/products/{product}", headers=admin_headers).status_code == 404

    def test_sold_product_cannot_be_deleted(self, client, db_session, product, cashier_headers, admin_headers):
        client.post("/api/sales", json={"items": [{"product_id": product, "quantity": 1}], "payment_method": "card"},
                    headers=cashier_headers)
        resp = client.delete(f"/api/products/{product}", headers=admin_headers)
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "PRODUCT_HAS_SALES"

    def test_lookups(self, client, db_session, category, make_product, manager_headers, cashier_headers):
        client.post("/api/products", json=_product_body(category.id), headers=manager_headers)
        make_product(name="Tea Strainer", sku="TS-1")

        found = client.get("/api/products/search?q=8901234567890", headers=cashier_headers).get_json()["products"]
        assert found[0]["sku"] == "TEA-250"

        found = client.get("/api/products/search?q=tea", headers=cashier_headers).get_json()["products"]
        assert len(found) == 2

        assert client.get("/api/products/search?q=", headers=cashier_headers).status_code == 400

        resp = client.get("/api/products/barcode/8901234567890", headers=cashier_headers)
        assert resp.get_json()["product"]["name"] == "Assam Tea 250g"
        assert client.get("/api/products/barcode/000", headers=cashier_headers).status_code == 404

        by_category = client.get(f"/api/products/category/{category.id}", headers=cashier_headers).get_json()
        assert by_category["category"]["name"] == "Groceries"
        assert by_category["pagination"]["total"] == 2

    def test_list_filters_and_pagination(self, client, db_session, make_product, cashier_headers):
        for _ in range(3):
            make_product(stock=50)
        make_product(stock=0)

        page = client.get("/api/products?per_page=2&page=2", headers=cashier_headers).get_json()
        assert page["pagination"]["total"] == 4
        assert page["pagination"]["has_prev"] is True
        assert len(page["products"]) == 2

        out = client.get("/api/products?stock_status=out_of_stock", headers=cashier_headers).get_json()
        assert out["pagination"]["total"] == 1


class TestCatalogFiles:
    def test_export_csv(self, client, db_session, product, manager_headers):
        resp = client.get("/api/products/export", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.mimetype == "text/csv"
        lines = resp.get_data(as_text=True).splitlines()
        assert lines[0].startswith("Name,Description,SKU")
        assert "RICE-5KG" in lines[1]

    def test_bulk_import_csv(self, client, db_session, category, manager_headers):
        csv_body = (
            "name,sku,category_id,purchase_price,selling_price,gst_rate,initial_stock\n"
            f"Sugar 1kg,SUG-1,{category.id},40,48.50,5,30\n"
            f"Salt 1kg,SALT-1,{category.id},15,20,0,\n"
            f"Bad Row,BAD-1,{category.id},10,12,9,\n"
            f"Sugar again,SUG-1,{category.id},40,48.50,5,\n"
        )
        resp = client.post(
            "/api/products/bulk-import",
            data={"file": (io.BytesIO(csv_body.encode("utf-8")), "products.csv")},
            content_type="multipart/form-data",
            headers=manager_headers,
        )
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["summary"] == {"total_rows": 4, "success_count": 2, "error_count": 2}
        assert [e["row"] for e in body["errors"]] == [4, 5]
        assert body["errors"][1]["code"] == "DUPLICATE_PRODUCT"

        listing = client.get("/api/products?search=SUG-1", headers=manager_headers).get_json()
        assert listing["products"][0]["current_quantity"] == 30

    def test_bulk_import_requires_supported_file(self, client, db_session, manager_headers):
        resp = client.post("/api/products/bulk-import", data={}, content_type="multipart/form-data",
                           headers=manager_headers)
        assert resp.status_code == 400

        resp = client.post(
            "/api/products/bulk-import",
            data={"file": (io.BytesIO(b"junk"), "products.pdf")},
            content_type="multipart/form-data",
            headers=manager_headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "INVALID_CSV"
