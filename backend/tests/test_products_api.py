"""
Product catalog API tests.

Covers validation, name uniqueness, list filters, opening stock in the
ledger, and the deactivate-instead-of-delete rule for referenced products.
"""

from station.extensions import db
from station.models import Product, InventoryTransaction


def _create(client, headers, **overrides):
    payload = {"name": "Air Filter", "price": 12.5, "category": "filter"}
    payload.update(overrides)
    return client.post("/api/products", json=payload, headers=headers)


class TestCreateProduct:

    def test_create_with_defaults(self, client, admin_headers):
        resp = _create(client, admin_headers)
        assert resp.status_code == 201
        body = resp.json
        assert body["quantity_in_stock"] == 0
        assert body["low_stock_threshold"] == 5
        assert body["unit"] == "piece"
        assert body["is_active"] is True
        assert body["created_by"]["name"] == "Admin User"

    def test_validation_collects_every_error(self, client, admin_headers):
        resp = client.post(
            "/api/products",
            json={"price": -1, "category": "tyres", "unit": "gallon"},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert resp.json["error"] == "Validation failed"
        fields = {e["field"] for e in resp.json["errors"]}
        assert {"name", "price", "category", "unit"} <= fields

    def test_unknown_field_rejected(self, client, admin_headers):
        resp = _create(client, admin_headers, sku="X-1")
        assert resp.status_code == 400
        assert resp.json["errors"][0]["field"] == "sku"

    def test_duplicate_name_conflict(self, client, admin_headers):
        assert _create(client, admin_headers).status_code == 201
        resp = _create(client, admin_headers, name="air filter")
        assert resp.status_code == 409

    def test_opening_stock_recorded_in_ledger(self, client, inventory_headers, db_session):
        resp = _create(client, inventory_headers, quantity_in_stock=12)
        assert resp.status_code == 201

        txs = db_session.query(InventoryTransaction).filter_by(product_id=resp.json["id"]).all()
        assert len(txs) == 1
        assert txs[0].type == "purchase"
        assert txs[0].previous_stock == 0
        assert txs[0].new_stock == 12
        assert txs[0].reference == "Initial stock"

    def test_no_ledger_row_without_opening_stock(self, client, admin_headers, db_session):
        resp = _create(client, admin_headers)
        assert db_session.query(InventoryTransaction).filter_by(product_id=resp.json["id"]).count() == 0


class TestUpdateProduct:

    def test_partial_update(self, client, admin_headers, make_product):
        product = make_product()
        resp = client.put(f"/api/products/{product.id}", json={"price": 27.5}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["price"] == 27.5
        assert resp.json["name"] == product.name

    def test_rename_onto_existing_name_conflicts(self, client, admin_headers, make_product):
        make_product(name="Brake Fluid", category="fluid")
        product = make_product(name="Coolant", category="fluid")
        resp = client.put(f"/api/products/{product.id}", json={"name": "Brake Fluid"}, headers=admin_headers)
        assert resp.status_code == 409

    def test_stock_not_writable_through_update(self, client, admin_headers, make_product):
        product = make_product(quantity=5)
        resp = client.put(f"/api/products/{product.id}", json={"quantity_in_stock": 99}, headers=admin_headers)
        assert resp.status_code == 400
        assert db.session.get(Product, product.id).quantity_in_stock == 5

    def test_unknown_product(self, client, admin_headers, db_session):
        resp = client.put("/api/products/999", json={"price": 1}, headers=admin_headers)
        assert resp.status_code == 404


class TestListProducts:

    def test_low_stock_filter_only_returns_low_items(self, client, staff_headers, make_product):
        make_product(name="A", quantity=2, threshold=5)
        make_product(name="B", quantity=5, threshold=5)
        make_product(name="C", quantity=6, threshold=5)
        make_product(name="D", quantity=0, threshold=1)
        make_product(name="E", quantity=40, threshold=10)

        resp = client.get("/api/products?lowStock=true", headers=staff_headers)
        assert resp.status_code == 200
        assert isinstance(resp.json, list)
        assert [p["name"] for p in resp.json] == ["A", "B", "D"]
        assert all(p["quantity_in_stock"] <= p["low_stock_threshold"] for p in resp.json)

    def test_in_stock_filter(self, client, staff_headers, make_product):
        make_product(name="Empty", quantity=0)
        make_product(name="Full", quantity=3)
        names = [p["name"] for p in client.get("/api/products?inStock=true", headers=staff_headers).json]
        assert names == ["Full"]
        names = [p["name"] for p in client.get("/api/products?inStock=false", headers=staff_headers).json]
        assert names == ["Empty"]

    def test_category_search_and_sort(self, client, staff_headers, make_product):
        make_product(name="Synthetic Oil", price=40, category="oil")
        make_product(name="Mineral Oil", price=20, category="oil")
        make_product(name="Oil Filter", price=8, category="filter")

        resp = client.get("/api/products?category=oil&sort=price:desc", headers=staff_headers)
        assert [p["name"] for p in resp.json] == ["Synthetic Oil", "Mineral Oil"]

        resp = client.get("/api/products?search=FILTER", headers=staff_headers)
        assert [p["name"] for p in resp.json] == ["Oil Filter"]

    def test_search_treats_wildcards_literally(self, client, staff_headers, make_product):
        make_product(name="Coolant 50% Mix", category="fluid")
        make_product(name="Coolant Concentrate", category="fluid")

        resp = client.get("/api/products?search=50%25", headers=staff_headers)
        assert [p["name"] for p in resp.json] == ["Coolant 50% Mix"]

        resp = client.get("/api/products?search=oo_ant", headers=staff_headers)
        assert resp.json == []

    def test_bad_sort_field(self, client, staff_headers, db_session):
        resp = client.get("/api/products?sort=password:asc", headers=staff_headers)
        assert resp.status_code == 400


class TestDeleteProduct:

    def test_unreferenced_product_is_removed(self, client, admin_headers, make_product, db_session):
        product = make_product()
        resp = client.delete(f"/api/products/{product.id}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json == {"ok": True, "deactivated": False}
        assert db_session.query(Product).count() == 0

    def test_product_with_ledger_history_is_deactivated(self, client, admin_headers, make_product, db_session):
        product = make_product(quantity=10)
        client.patch(
            f"/api/products/{product.id}/stock",
            json={"quantity": 3, "type": "damaged"},
            headers=admin_headers,
        )

        resp = client.delete(f"/api/products/{product.id}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["deactivated"] is True
        assert db.session.get(Product, product.id).is_active is False

    def test_missing_product(self, client, admin_headers, db_session):
        assert client.delete("/api/products/424242", headers=admin_headers).status_code == 404
