"""
HTTP layer: routing, the operation context headers and error mapping.

Requests run through the real application with ``get_db`` pointed at the
per-test database. Stock is checked through the API so the test session
never holds the write lock between requests.
"""
from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from stockledger.config.database import get_db
from stockledger.main import app

HEADERS = {"X-Tenant-ID": "1", "X-User-ID": "7"}


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _quantity(client, product_id, outlet_id):
    response = client.get(f"/api/v1/stock/{product_id}/{outlet_id}", headers=HEADERS)
    assert response.status_code == 200
    return Decimal(str(response.json()["quantity"]))


class TestHealth:

    def test_health(self, client):
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestOperationContext:

    def test_missing_headers_are_rejected(self, client, catalog):
        response = client.get(f"/api/v1/stock/{catalog.water}/{catalog.main}")

        assert response.status_code == 422


class TestStockEndpoints:

    def test_adjust_and_history(self, client, catalog):
        response = client.post("/api/v1/stock/adjust", headers=HEADERS, json={
            "product_id": catalog.water,
            "outlet_id": catalog.main,
            "new_quantity": "12",
            "notes": "Initial count",
        })

        assert response.status_code == 200
        assert Decimal(str(response.json()["difference"])) == Decimal("12")
        assert _quantity(client, catalog.water, catalog.main) == Decimal("12")

        history = client.get(f"/api/v1/stock/{catalog.water}/{catalog.main}/movements", headers=HEADERS)
        assert history.status_code == 200
        assert [m["kind"] for m in history.json()] == ["adjustment"]

    def test_stale_adjustment_is_a_conflict(self, client, catalog, seed):
        seed(catalog.water, catalog.main, 5)

        response = client.post("/api/v1/stock/adjust", headers=HEADERS, json={
            "product_id": catalog.water,
            "outlet_id": catalog.main,
            "new_quantity": "3",
            "expected_quantity": "4",
        })

        assert response.status_code == 409
        assert response.json()["code"] == "stale_stock_count"

    def test_opname_rejects_duplicate_products(self, client, catalog):
        response = client.post("/api/v1/stock/opname", headers=HEADERS, json={
            "outlet_id": catalog.main,
            "items": [
                {"product_id": catalog.water, "system_stock": "0", "physical_stock": "1"},
                {"product_id": catalog.water, "system_stock": "0", "physical_stock": "2"},
            ],
        })

        assert response.status_code == 422

    def test_incoming_and_stock_list(self, client, catalog):
        response = client.post("/api/v1/stock/incoming", headers=HEADERS, json={
            "outlet_id": catalog.main,
            "reference_number": "DN-17",
            "items": [
                {"product_id": catalog.water, "quantity": "24"},
                {"product_id": catalog.noodles, "quantity": "3"},
            ],
        })

        assert response.status_code == 200
        assert response.json()["total_items"] == 2
        assert _quantity(client, catalog.water, catalog.main) == Decimal("24")

        levels = client.get("/api/v1/stock", headers=HEADERS, params={"outlet_id": catalog.main})
        assert levels.status_code == 200
        assert [(l["sku"], l["is_low_stock"]) for l in levels.json()] == [("SKU-001", False), ("SKU-002", True)]

        low = client.get("/api/v1/stock", headers=HEADERS, params={"low_stock_only": "true"})
        assert [l["product_id"] for l in low.json()] == [catalog.noodles]

    def test_incoming_rejects_non_positive_quantity(self, client, catalog):
        response = client.post("/api/v1/stock/incoming", headers=HEADERS, json={
            "outlet_id": catalog.main,
            "items": [{"product_id": catalog.water, "quantity": "0"}],
        })

        assert response.status_code == 422

    def test_low_stock_and_reconcile(self, client, catalog, seed):
        seed(catalog.water, catalog.main, 4)

        alerts = client.get("/api/v1/stock/low-stock", headers=HEADERS)
        reconcile = client.get(f"/api/v1/stock/{catalog.water}/{catalog.main}/reconcile", headers=HEADERS)

        assert [a["product_id"] for a in alerts.json()] == [catalog.water]
        assert reconcile.json()["balanced"] is True


class TestSaleEndpoints:

    def test_sale_settles_and_deducts(self, client, catalog, seed):
        seed(catalog.water, catalog.main, 100)

        response = client.post("/api/v1/sales", headers=HEADERS, json={
            "outlet_id": catalog.main,
            "lines": [{"product_id": catalog.water, "quantity": "2", "unit_price": "5000"}],
            "paid_amount": "10000",
        })

        assert response.status_code == 201
        body = response.json()
        assert Decimal(str(body["total_amount"])) == Decimal("10000")
        assert Decimal(str(body["change_amount"])) == Decimal("0")
        assert body["number"].startswith("TRX")
        assert _quantity(client, catalog.water, catalog.main) == Decimal("98")

        fetched = client.get(f"/api/v1/sales/{body['id']}", headers=HEADERS)
        assert fetched.status_code == 200
        assert len(fetched.json()["lines"]) == 1

    def test_insufficient_stock_is_a_conflict(self, client, catalog, seed):
        seed(catalog.water, catalog.main, 1)

        response = client.post("/api/v1/sales", headers=HEADERS, json={
            "outlet_id": catalog.main,
            "lines": [{"product_id": catalog.water, "quantity": "2"}],
            "paid_amount": "10000",
        })

        assert response.status_code == 409
        body = response.json()
        assert body["success"] is False
        assert body["code"] == "insufficient_stock"
        assert body["detail"]["product_id"] == catalog.water
        assert _quantity(client, catalog.water, catalog.main) == Decimal("1")

    def test_underpayment(self, client, catalog, seed):
        seed(catalog.water, catalog.main, 10)

        response = client.post("/api/v1/sales", headers=HEADERS, json={
            "outlet_id": catalog.main,
            "lines": [{"product_id": catalog.water, "quantity": "1"}],
            "paid_amount": "100",
        })

        assert response.status_code == 422
        assert response.json()["code"] == "insufficient_payment"

    def test_double_refund_is_a_conflict(self, client, catalog, seed):
        seed(catalog.water, catalog.main, 10)
        sale_id = client.post("/api/v1/sales", headers=HEADERS, json={
            "outlet_id": catalog.main,
            "lines": [{"product_id": catalog.water, "quantity": "1"}],
            "paid_amount": "5000",
        }).json()["id"]

        first = client.post(f"/api/v1/sales/{sale_id}/refund", headers=HEADERS)
        second = client.post(f"/api/v1/sales/{sale_id}/refund", headers=HEADERS)

        assert first.status_code == 200
        assert first.json()["status"] == "refunded"
        assert second.status_code == 409
        assert _quantity(client, catalog.water, catalog.main) == Decimal("10")

    def test_sales_list_filters(self, client, catalog, seed):
        seed(catalog.water, catalog.main, 10)
        seed(catalog.water, catalog.branch, 10)
        for outlet_id, method in [(catalog.main, "cash"), (catalog.branch, "qris")]:
            client.post("/api/v1/sales", headers=HEADERS, json={
                "outlet_id": outlet_id,
                "lines": [{"product_id": catalog.water, "quantity": "1"}],
                "paid_amount": "5000",
                "payment_method": method,
            })

        everything = client.get("/api/v1/sales", headers=HEADERS)
        qris = client.get("/api/v1/sales", headers=HEADERS, params={"payment_method": "qris"})
        today = client.get("/api/v1/sales", headers=HEADERS, params={
            "date_from": date.today().isoformat(), "date_to": date.today().isoformat()
        })
        refunded = client.get("/api/v1/sales", headers=HEADERS, params={"status": "refunded"})

        assert everything.status_code == 200
        assert [s["outlet_id"] for s in everything.json()] == [catalog.branch, catalog.main]
        assert [s["outlet_id"] for s in qris.json()] == [catalog.branch]
        assert len(today.json()) == 2
        assert refunded.json() == []

    def test_discount_above_sale_amount(self, client, catalog, seed):
        seed(catalog.water, catalog.main, 10)

        response = client.post("/api/v1/sales", headers=HEADERS, json={
            "outlet_id": catalog.main,
            "lines": [{"product_id": catalog.water, "quantity": "1", "discount_amount": "5001"}],
            "paid_amount": "0",
        })

        assert response.status_code == 422
        assert response.json()["code"] == "invalid_discount"
        assert _quantity(client, catalog.water, catalog.main) == Decimal("10")

    def test_unknown_sale(self, client, catalog):
        response = client.get("/api/v1/sales/999", headers=HEADERS)

        assert response.status_code == 404
        assert response.json()["code"] == "not_found"


class TestPurchaseEndpoints:

    def test_purchase_lifecycle(self, client, catalog):
        created = client.post("/api/v1/purchases", headers=HEADERS, json={
            "outlet_id": catalog.main,
            "lines": [{"product_id": catalog.water, "quantity": "10"}],
        })
        assert created.status_code == 201
        purchase_id = created.json()["id"]
        assert created.json()["status"] == "pending"

        paid = client.patch(f"/api/v1/purchases/{purchase_id}/status", headers=HEADERS, json={"status": "paid"})
        again = client.patch(f"/api/v1/purchases/{purchase_id}/status", headers=HEADERS, json={"status": "paid"})

        assert paid.json()["stock_applied"] is True
        assert again.json()["noop"] is True
        assert _quantity(client, catalog.water, catalog.main) == Decimal("10")

        back = client.patch(f"/api/v1/purchases/{purchase_id}/status", headers=HEADERS, json={"status": "pending"})
        assert back.status_code == 409
        assert back.json()["code"] == "invalid_status_transition"

        deleted = client.delete(f"/api/v1/purchases/{purchase_id}", headers=HEADERS)
        assert deleted.json()["stock_reversed"] is True
        assert _quantity(client, catalog.water, catalog.main) == Decimal("0")

    def test_payment_update_and_list(self, client, catalog):
        purchase_id = client.post("/api/v1/purchases", headers=HEADERS, json={
            "supplier_id": 3,
            "outlet_id": catalog.main,
            "lines": [{"product_id": catalog.water, "quantity": "10"}],
        }).json()["id"]

        payment_url = f"/api/v1/purchases/{purchase_id}/payment"
        partial = client.patch(payment_url, headers=HEADERS, json={"paid_amount": "10000"})
        assert partial.status_code == 200
        assert partial.json()["status"] == "partial"
        assert _quantity(client, catalog.water, catalog.main) == Decimal("0")

        paid = client.patch(payment_url, headers=HEADERS, json={"paid_amount": "30000"})
        assert paid.json()["status"] == "paid"
        assert Decimal(str(paid.json()["remaining_amount"])) == Decimal("0")
        assert _quantity(client, catalog.water, catalog.main) == Decimal("10")

        lowered = client.patch(payment_url, headers=HEADERS, json={"paid_amount": "0"})
        assert lowered.status_code == 409
        assert lowered.json()["code"] == "invalid_status_transition"

        listed = client.get("/api/v1/purchases", headers=HEADERS, params={"supplier_id": 3, "status": "paid"})
        assert [p["id"] for p in listed.json()] == [purchase_id]
        assert client.get("/api/v1/purchases", headers=HEADERS, params={"status": "pending"}).json() == []


class TestTransferEndpoints:

    def test_transfer_approval(self, client, catalog, seed):
        seed(catalog.water, catalog.main, 10)

        created = client.post("/api/v1/transfers", headers=HEADERS, json={
            "from_outlet_id": catalog.main,
            "to_outlet_id": catalog.branch,
            "lines": [{"product_id": catalog.water, "quantity": "4"}],
        })
        assert created.status_code == 201
        transfer_id = created.json()["id"]

        approved = client.post(f"/api/v1/transfers/{transfer_id}/approve", headers=HEADERS)

        assert approved.status_code == 200
        assert approved.json()["status"] == "approved"
        assert _quantity(client, catalog.water, catalog.main) == Decimal("6")
        assert _quantity(client, catalog.water, catalog.branch) == Decimal("4")

    def test_transfer_list_matches_either_outlet(self, client, catalog, seed):
        seed(catalog.water, catalog.main, 10)
        transfer_id = client.post("/api/v1/transfers/direct", headers=HEADERS, json={
            "from_outlet_id": catalog.main,
            "to_outlet_id": catalog.branch,
            "lines": [{"product_id": catalog.water, "quantity": "2"}],
        }).json()["id"]

        from_main = client.get("/api/v1/transfers", headers=HEADERS, params={"outlet_id": catalog.main})
        to_branch = client.get("/api/v1/transfers", headers=HEADERS, params={"outlet_id": catalog.branch})
        pending = client.get("/api/v1/transfers", headers=HEADERS, params={"status": "pending"})

        assert from_main.status_code == 200
        assert [t["id"] for t in from_main.json()] == [transfer_id]
        assert [t["status"] for t in to_branch.json()] == ["approved"]
        assert pending.json() == []

    def test_same_outlet_transfer(self, client, catalog):
        response = client.post("/api/v1/transfers/direct", headers=HEADERS, json={
            "from_outlet_id": catalog.main,
            "to_outlet_id": catalog.main,
            "lines": [{"product_id": catalog.water, "quantity": "1"}],
        })

        assert response.status_code == 422
        assert response.json()["code"] == "invalid_transfer"


class TestUnitEndpoints:

    def test_box_conversion(self, client, catalog):
        response = client.get(
            f"/api/v1/units/products/{catalog.water}/conversions",
            headers=HEADERS,
            params={"unit_id": catalog.box, "quantity": "2"},
        )

        assert response.status_code == 200
        body = response.json()
        assert Decimal(str(body["base_quantity"])) == Decimal("48")
        assert Decimal(str(body["selling_price"])) == Decimal("110000")
