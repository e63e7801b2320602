"""
Bill workflow tests.

Verifies:
- Totals: subtotal = sum(price x quantity), tax at the default rate, discount
- Stock decremented once per product line with exactly one `sale` ledger row
- Ad-hoc lines, inactive services, missing ids, incomplete items
- Nothing is written when any line fails (single transaction)
- Caller-supplied totals are kept and flagged
- Line snapshots survive catalog edits
- Payment updates, vehicle history and the bill PDF
"""

import pytest

from station.extensions import db
from station.models import Bill, BillLine, Product, InventoryTransaction


def _bill(client, headers=None, **body):
    return client.post("/api/bills", json=body, headers=headers or {})


@pytest.fixture
def catalog(make_product, make_service):
    oil = make_product(name="Engine Oil 5W-30", price=25.99, quantity=10)
    service = make_service(name="Full Service", price=49.99)
    return oil, service


# =============================================================================
# TOTALS AND STOCK
# =============================================================================


class TestCreateBill:

    def test_reference_scenario(self, client, staff_headers, catalog, db_session):
        oil, service = catalog
        resp = _bill(
            client,
            staff_headers,
            services=[{"service": service.id}],
            products=[{"product": oil.id, "quantity": 2}],
        )
        assert resp.status_code == 201
        bill = resp.json["bill"]

        assert bill["subtotal"] == pytest.approx(101.97)
        assert bill["tax_rate"] == 0.18
        assert bill["tax_amount"] == pytest.approx(18.3546)
        assert round(bill["total"], 2) == 120.32
        assert bill["discount"] == 0
        assert bill["totals_overridden"] is False
        assert bill["payment_method"] == "cash"
        assert bill["payment_status"] == "completed"
        assert bill["created_by"]["name"] == "Staff User"

        assert db.session.get(Product, oil.id).quantity_in_stock == 8

        sales = db_session.query(InventoryTransaction).filter_by(product_id=oil.id, type="sale").all()
        assert len(sales) == 1
        tx = sales[0]
        assert (tx.quantity, tx.previous_stock, tx.new_stock) == (2, 10, 8)
        assert tx.reference == f"Bill #{bill['bill_number']}"
        assert tx.reference_id == bill["id"]
        assert tx.reference_model == "Bill"
        assert tx.total_price == pytest.approx(51.98)

    def test_subtotal_is_sum_of_line_totals(self, client, staff_headers, make_product, make_service):
        p1 = make_product(name="Filter", price=7.25, quantity=10, category="filter")
        p2 = make_product(name="Wiper", price=4.5, quantity=10, category="accessory")
        s1 = make_service(name="Wash", price=12.0, category="wash")

        resp = _bill(
            client,
            staff_headers,
            services=[{"service": s1.id, "quantity": 2}, {"name": "Tyre rotation", "price": 15}],
            products=[{"product": p1.id, "quantity": 3}, {"product": p2.id}],
            discount=5,
        )
        bill = resp.json["bill"]
        lines = bill["services"] + bill["products"]
        assert bill["subtotal"] == pytest.approx(sum(l["price"] * l["quantity"] for l in lines))
        assert bill["total"] == pytest.approx(bill["subtotal"] * 1.18 - 5)

    def test_lines_serialize_catalog_reference_or_custom(self, client, staff_headers, catalog):
        oil, service = catalog
        bill = _bill(
            client,
            staff_headers,
            services=[{"service": service.id}, {"name": "Polish", "price": 20}],
            products=[{"product": oil.id}],
        ).json["bill"]

        assert [s["service"] for s in bill["services"]] == [service.id, "custom"]
        assert bill["products"][0]["product"] == oil.id
        assert bill["products"][0]["quantity"] == 1

    def test_caller_price_wins_over_catalog_price(self, client, staff_headers, catalog):
        _, service = catalog
        bill = _bill(client, staff_headers, services=[{"service": service.id, "price": 40}]).json["bill"]
        assert bill["services"][0]["price"] == 40
        assert bill["services"][0]["name"] == "Full Service"

    def test_same_product_on_two_lines_is_checked_in_aggregate(self, client, staff_headers, make_product, db_session):
        oil = make_product(quantity=3)
        resp = _bill(
            client,
            staff_headers,
            products=[{"product": oil.id, "quantity": 2}, {"product": oil.id, "quantity": 2}],
        )
        assert resp.status_code == 400
        assert resp.json["available"] == 3
        assert resp.json["requested"] == 4
        assert db.session.get(Product, oil.id).quantity_in_stock == 3

    def test_unauthenticated_bill_allowed(self, client, catalog):
        _, service = catalog
        resp = _bill(client, services=[{"service": service.id}])
        assert resp.status_code == 201
        assert resp.json["bill"]["created_by"] is None

    def test_customer_snapshot(self, client, staff_headers, catalog):
        _, service = catalog
        bill = _bill(
            client,
            staff_headers,
            customer={
                "name": "Asha Rao",
                "phone": "555-0101",
                "vehicle_info": {"license_plate": "KA01AB1234", "make": "Honda", "model": "City", "year": "2019"},
            },
            services=[{"service": service.id}],
        ).json["bill"]
        assert bill["customer"]["name"] == "Asha Rao"
        assert bill["customer"]["vehicle_info"]["license_plate"] == "KA01AB1234"
        assert bill["customer"]["vehicle_info"]["year"] == 2019


# =============================================================================
# FAILURES
# =============================================================================


class TestCreateBillFailures:

    def test_insufficient_stock_names_product(self, client, staff_headers, make_product):
        oil = make_product(name="Gear Oil", quantity=1)
        resp = _bill(client, staff_headers, products=[{"product": oil.id, "quantity": 2}])
        assert resp.status_code == 400
        assert resp.json["error"] == "Not enough stock for Gear Oil. Available: 1"

    def test_inactive_service(self, client, staff_headers, make_service):
        service = make_service(is_active=False)
        resp = _bill(client, staff_headers, services=[{"service": service.id}])
        assert resp.status_code == 400
        assert "not active" in resp.json["error"]

    def test_unknown_id_without_fallback_is_not_found(self, client, staff_headers, db_session):
        resp = _bill(client, staff_headers, services=[{"service": 9999}])
        assert resp.status_code == 404

    def test_unknown_id_with_name_and_price_becomes_adhoc(self, client, staff_headers, db_session):
        resp = _bill(client, staff_headers, products=[{"product": 9999, "name": "Bulb", "price": 3, "quantity": 2}])
        assert resp.status_code == 201
        line = resp.json["bill"]["products"][0]
        assert line["product"] == "custom"
        assert line["total"] == 6
        assert db_session.query(InventoryTransaction).count() == 0

    def test_incomplete_item(self, client, staff_headers, db_session):
        resp = _bill(client, staff_headers, services=[{"name": "Mystery"}])
        assert resp.status_code == 400
        assert "incomplete" in resp.json["error"]

    def test_empty_bill_rejected(self, client, staff_headers, db_session):
        resp = _bill(client, staff_headers, services=[], products=[])
        assert resp.status_code == 400

    def test_bad_quantity(self, client, staff_headers, catalog):
        oil, _ = catalog
        resp = _bill(client, staff_headers, products=[{"product": oil.id, "quantity": 0}])
        assert resp.status_code == 400

    def test_bad_payment_method(self, client, staff_headers, catalog):
        _, service = catalog
        resp = _bill(client, staff_headers, services=[{"service": service.id}], payment_method="cheque")
        assert resp.status_code == 400

    def test_failure_on_later_line_writes_nothing(self, client, staff_headers, make_product, db_session):
        plenty = make_product(name="Plenty", quantity=10)
        scarce = make_product(name="Scarce", quantity=1)
        resp = _bill(
            client,
            staff_headers,
            products=[{"product": plenty.id, "quantity": 4}, {"product": scarce.id, "quantity": 5}],
        )
        assert resp.status_code == 400

        assert db.session.get(Product, plenty.id).quantity_in_stock == 10
        assert db_session.query(Bill).count() == 0
        assert db_session.query(BillLine).count() == 0
        assert db_session.query(InventoryTransaction).count() == 0


# =============================================================================
# CALLER-SUPPLIED TOTALS
# =============================================================================


class TestTotalsOverride:

    def test_caller_totals_are_persisted_and_flagged(self, client, staff_headers, catalog):
        _, service = catalog
        bill = _bill(
            client,
            staff_headers,
            services=[{"service": service.id}],
            subtotal=50,
            total=55,
        ).json["bill"]
        assert bill["subtotal"] == 50
        assert bill["total"] == 55
        assert bill["totals_overridden"] is True

    def test_supplied_tax_back_derives_rate(self, client, staff_headers, make_service):
        service = make_service(price=100)
        bill = _bill(client, staff_headers, services=[{"service": service.id}], tax=5).json["bill"]
        assert bill["tax_amount"] == 5
        assert bill["tax_rate"] == pytest.approx(0.05)
        assert bill["total"] == pytest.approx(105)

    def test_overrides_that_disagree_with_lines_are_kept(self, client, staff_headers, make_service):
        service = make_service(price=10)
        resp = _bill(
            client,
            staff_headers,
            services=[{"service": service.id}],
            subtotal=1000,
            tax=180,
            total=1180,
        )
        assert resp.status_code == 201
        bill = resp.json["bill"]
        assert bill["subtotal"] == 1000
        assert bill["tax_amount"] == 180
        assert bill["tax_rate"] == pytest.approx(0.18)
        assert bill["total"] == 1180
        assert bill["totals_overridden"] is True
        assert bill["services"][0]["total"] == 10

    def test_tax_larger_than_line_total_is_accepted(self, client, staff_headers, make_service):
        service = make_service(price=10)
        resp = _bill(client, staff_headers, services=[{"service": service.id}], tax=50)
        assert resp.status_code == 201
        assert resp.json["bill"]["tax_rate"] == pytest.approx(5.0)
        assert resp.json["bill"]["total"] == pytest.approx(60)

    def test_supplied_tax_with_zero_subtotal_uses_default_rate(self, client, staff_headers, db_session):
        bill = _bill(client, staff_headers, services=[{"name": "Free check", "price": 0}], tax=0).json["bill"]
        assert bill["tax_rate"] == 0.18
        assert bill["total"] == 0


# =============================================================================
# SNAPSHOTS, READS, PAYMENT
# =============================================================================


class TestBillReads:

    def test_snapshot_survives_catalog_price_change(self, client, staff_headers, admin_headers, catalog):
        oil, service = catalog
        bill_id = _bill(
            client,
            staff_headers,
            services=[{"service": service.id}],
            products=[{"product": oil.id}],
        ).json["bill"]["id"]

        first = client.get(f"/api/bills/{bill_id}", headers=staff_headers).json
        client.put(f"/api/services/{service.id}", json={"price": 99.0, "name": "Premium Service"}, headers=admin_headers)
        client.put(f"/api/products/{oil.id}", json={"price": 30.0}, headers=admin_headers)
        second = client.get(f"/api/bills/{bill_id}", headers=staff_headers).json

        assert second["services"] == first["services"]
        assert second["products"] == first["products"]
        assert second["services"][0]["price"] == 49.99

    def test_get_missing_bill(self, client, staff_headers, db_session):
        assert client.get("/api/bills/999", headers=staff_headers).status_code == 404

    def test_list_filters(self, client, staff_headers, catalog):
        _, service = catalog
        _bill(client, staff_headers, services=[{"service": service.id}], payment_method="card",
              customer={"name": "Ravi", "vehicle_info": {"license_plate": "MH12XY0001"}})
        _bill(client, staff_headers, services=[{"service": service.id}], payment_status="pending",
              customer={"name": "Meera", "vehicle_info": {"license_plate": "KA05ZZ9999"}})

        resp = client.get("/api/bills?paymentMethod=card", headers=staff_headers)
        assert [b["customer"]["name"] for b in resp.json] == ["Ravi"]

        resp = client.get("/api/bills?paymentStatus=pending", headers=staff_headers)
        assert [b["customer"]["name"] for b in resp.json] == ["Meera"]

        resp = client.get("/api/bills?customerName=mee", headers=staff_headers)
        assert len(resp.json) == 1

        resp = client.get("/api/bills", headers=staff_headers)
        assert [b["customer"]["name"] for b in resp.json] == ["Meera", "Ravi"]

    def test_name_filter_treats_wildcards_literally(self, client, staff_headers, catalog):
        _, service = catalog
        for name in ("A_B Motors", "AXB Motors"):
            _bill(client, staff_headers, services=[{"service": service.id}], customer={"name": name})

        resp = client.get("/api/bills?customerName=a_b", headers=staff_headers)
        assert [b["customer"]["name"] for b in resp.json] == ["A_B Motors"]

        resp = client.get("/api/bills?customerName=%25", headers=staff_headers)
        assert resp.json == []

    def test_vehicle_history_is_case_insensitive(self, client, staff_headers, catalog):
        _, service = catalog
        for _ in range(2):
            _bill(client, staff_headers, services=[{"service": service.id}],
                  customer={"vehicle_info": {"license_plate": "KA01AB1234"}})
        _bill(client, staff_headers, services=[{"service": service.id}],
              customer={"vehicle_info": {"license_plate": "TN09QQ0000"}})

        resp = client.get("/api/bills/vehicle/ka01ab", headers=staff_headers)
        assert resp.status_code == 200
        assert len(resp.json) == 2
        assert resp.json[0]["id"] > resp.json[1]["id"]

    def test_pdf(self, client, staff_headers, catalog):
        oil, service = catalog
        bill_id = _bill(
            client,
            staff_headers,
            customer={"name": "Asha", "vehicle_info": {"license_plate": "KA01", "make": "Honda"}},
            services=[{"service": service.id}],
            products=[{"product": oil.id}],
            notes="Check brakes next visit",
        ).json["bill"]["id"]

        resp = client.get(f"/api/bills/{bill_id}/pdf", headers=staff_headers)
        assert resp.status_code == 200
        assert resp.mimetype == "application/pdf"
        assert resp.data.startswith(b"%PDF")


class TestPaymentUpdate:

    def test_only_supplied_fields_change(self, client, staff_headers, cashier_headers, catalog):
        _, service = catalog
        bill = _bill(client, staff_headers, services=[{"service": service.id}], payment_method="card").json["bill"]

        resp = client.patch(f"/api/bills/{bill['id']}/payment", json={"payment_status": "refunded"}, headers=cashier_headers)
        assert resp.status_code == 200
        assert resp.json["payment_status"] == "refunded"
        assert resp.json["payment_method"] == "card"

    def test_no_state_machine(self, client, staff_headers, admin_headers, catalog):
        _, service = catalog
        bill_id = _bill(client, staff_headers, services=[{"service": service.id}]).json["bill"]["id"]
        client.patch(f"/api/bills/{bill_id}/payment", json={"payment_status": "refunded"}, headers=admin_headers)
        resp = client.patch(f"/api/bills/{bill_id}/payment", json={"payment_status": "pending"}, headers=admin_headers)
        assert resp.json["payment_status"] == "pending"

    def test_paid_is_an_alias_of_completed(self, client, staff_headers, admin_headers, catalog):
        _, service = catalog
        bill = _bill(client, staff_headers, services=[{"service": service.id}], payment_status="paid").json["bill"]
        assert bill["payment_status"] == "completed"

    def test_invalid_values(self, client, staff_headers, admin_headers, catalog):
        _, service = catalog
        bill_id = _bill(client, staff_headers, services=[{"service": service.id}]).json["bill"]["id"]
        resp = client.patch(f"/api/bills/{bill_id}/payment", json={"payment_status": "lost"}, headers=admin_headers)
        assert resp.status_code == 400
        resp = client.patch(f"/api/bills/{bill_id}/payment", json={"payment_method": "barter"}, headers=admin_headers)
        assert resp.status_code == 400

    def test_missing_bill(self, client, admin_headers, db_session):
        resp = client.patch("/api/bills/999/payment", json={"payment_status": "completed"}, headers=admin_headers)
        assert resp.status_code == 404
