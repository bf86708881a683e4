"""API tests: role checks, error mapping and the checkout / boost flows over HTTP."""

from datetime import timedelta

import pytest

from kudimall.api.deps import get_order_service, get_promotion_service
from kudimall.core.errors import ConcurrencyError
from kudimall.main import app
from kudimall.services.inventory import InventoryLedger
from kudimall.services.orders import OrderService
from kudimall.services.promotion import PromotionService


@pytest.fixture
def frozen_promotions(clock):
    app.dependency_overrides[get_promotion_service] = lambda: PromotionService(clock=clock)
    yield clock
    app.dependency_overrides.pop(get_promotion_service, None)


def _order_body(seed, address, quantity=3, status="Processing"):
    return {
        "items": [{"product_id": seed.product_a, "quantity": quantity, "price_snapshot": "20.00"}],
        "shipping_address": address,
        "payment_method": "MTN MoMo",
        "transaction_id": "MOMO-123",
        "status": status,
    }


def test_health(client):
    assert client.get("/").json()["status"] == "ok"
    assert client.get("/health").json()["status"] == "healthy"


def test_place_order_requires_token(client, seed, address):
    response = client.post("/api/orders", json=_order_body(seed, address))
    assert response.status_code == 401


def test_place_and_read_order(client, seed, address, headers_for):
    response = client.post("/api/orders", json=_order_body(seed, address), headers=headers_for(seed.customer_id))

    assert response.status_code == 201
    body = response.json()
    assert float(body["total_amount"]) == 60.0
    assert body["status"] == "Processing"
    assert body["inventory_status"] == "adjusted"

    order = client.get(f"/api/orders/{body['id']}", headers=headers_for(seed.customer_id)).json()
    assert order["items"][0]["quantity"] == 3
    assert float(order["items"][0]["price_at_purchase"]) == 20.0
    assert order["shipping_address"]["city"] == "Accra"
    assert order["inventory_status"] == "adjusted"
    assert order["inventory_failures"] == []

    other = client.get(f"/api/orders/{body['id']}", headers=headers_for(seed.silent_customer_id))
    assert other.status_code == 403
    assert client.get(f"/api/orders/{body['id']}", headers=headers_for(seed.admin_id)).status_code == 200


def test_validation_errors_map_to_400(client, seed, address, headers_for):
    body = _order_body(seed, address, quantity=0)

    response = client.post("/api/orders", json=body, headers=headers_for(seed.customer_id))

    assert response.status_code == 400
    assert response.json()["status"] == "error"


def test_missing_order_is_404(client, seed, headers_for):
    assert client.get("/api/orders/777", headers=headers_for(seed.customer_id)).status_code == 404


def test_status_update_roles(client, seed, address, headers_for):
    order_id = client.post(
        "/api/orders", json=_order_body(seed, address), headers=headers_for(seed.customer_id)
    ).json()["id"]

    customer = client.patch(f"/api/orders/{order_id}/status", json={"status": "Shipped"},
                            headers=headers_for(seed.customer_id))
    foreign_vendor = client.patch(f"/api/orders/{order_id}/status", json={"status": "Shipped"},
                                  headers=headers_for(seed.other_vendor_user_id))
    owner = client.patch(f"/api/orders/{order_id}/status", json={"status": "Shipped"},
                         headers=headers_for(seed.vendor_user_id))
    backwards = client.patch(f"/api/orders/{order_id}/status", json={"status": "Processing"},
                             headers=headers_for(seed.admin_id))

    assert customer.status_code == 403
    assert foreign_vendor.status_code == 403
    assert owner.json() == {"id": order_id, "status": "Shipped"}
    assert backwards.status_code == 400


def test_vendor_stock_endpoints(client, seed, headers_for):
    response = client.put(f"/api/vendor/products/{seed.product_a}/stock", json={"stock": 2},
                          headers=headers_for(seed.vendor_user_id))
    assert response.json() == {"id": seed.product_a, "stock": 2}

    foreign = client.put(f"/api/vendor/products/{seed.product_a}/stock", json={"stock": 50},
                         headers=headers_for(seed.other_vendor_user_id))
    assert foreign.status_code == 403

    low = client.get("/api/vendor/products/low-stock", headers=headers_for(seed.vendor_user_id)).json()
    assert [p["id"] for p in low["products"]] == [seed.product_a, seed.product_b]

    assert client.get("/api/vendor/products/low-stock", headers=headers_for(seed.admin_id)).status_code == 403


def test_boost_flow_over_http(client, seed, headers_for, frozen_promotions):
    vendor = headers_for(seed.vendor_user_id)
    admin = headers_for(seed.admin_id)

    plans = client.get("/api/boosts/plans").json()["plans"]
    created = client.post("/api/boosts/requests", json={"product_id": seed.product_a, "plan_id": plans[0]["id"]},
                          headers=vendor)
    assert created.status_code == 201
    request_id = created.json()["id"]

    duplicate = client.post("/api/boosts/requests", json={"product_id": seed.product_a, "plan_id": plans[0]["id"]},
                            headers=vendor)
    assert duplicate.status_code == 409

    assert client.post(f"/api/admin/boosts/requests/{request_id}/approve", headers=vendor).status_code == 403

    listing = client.get("/api/admin/boosts/requests", params={"request_status": "pending"}, headers=admin).json()
    assert listing["total"] == 1

    approved = client.post(f"/api/admin/boosts/requests/{request_id}/approve", headers=admin)
    assert approved.status_code == 200

    featured = client.get("/api/products/featured").json()["products"]
    assert [p["id"] for p in featured] == [seed.product_a]
    assert client.get(f"/api/products/{seed.product_a}/promotion").json()["boost_status"] == "active"

    frozen_promotions.advance(days=8)

    assert client.get("/api/products/featured").json()["products"] == []
    state = client.get(f"/api/products/{seed.product_a}/promotion").json()
    assert state["is_boosted"] is False
    assert state["boost_status"] == "expired"


def test_reject_and_limit_endpoints(client, seed, headers_for, frozen_promotions):
    vendor = headers_for(seed.vendor_user_id)
    admin = headers_for(seed.admin_id)

    assert client.put("/api/admin/boosts/limit", json={"limit": 0}, headers=admin).json() == {"limit": 0}
    assert client.get("/api/admin/boosts/limit", headers=admin).json() == {"limit": 0}

    request_id = client.post("/api/boosts/requests", json={"product_id": seed.product_b, "plan_id": seed.week_plan},
                             headers=vendor).json()["id"]
    assert client.post(f"/api/admin/boosts/requests/{request_id}/approve", headers=admin).status_code == 409

    rejected = client.post(f"/api/admin/boosts/requests/{request_id}/reject", headers=admin)
    assert rejected.json()["request_status"] == "rejected"
    assert client.get(f"/api/products/{seed.product_b}/promotion").json()["boost_status"] == "none"


def test_foreign_product_boost_is_forbidden(client, seed, headers_for):
    response = client.post("/api/boosts/requests", json={"product_id": seed.product_c, "plan_id": seed.week_plan},
                           headers=headers_for(seed.vendor_user_id))
    assert response.status_code == 403


def test_reconciliation_endpoints(client, seed, headers_for):
    admin = headers_for(seed.admin_id)

    assert client.get("/api/admin/orders/reconciliation", headers=admin).json() == {"orders": []}
    assert client.get("/api/admin/orders/reconciliation",
                      headers=headers_for(seed.customer_id)).status_code == 403
    assert client.post("/api/admin/orders/1/reconcile", headers=admin).status_code == 404


def test_read_order_lists_failed_stock_adjustments(client, seed, address, headers_for):
    class FailingLedger(InventoryLedger):
        def decrement_stock(self, product_id, quantity):
            raise ConcurrencyError("gave up")

    app.dependency_overrides[get_order_service] = lambda: OrderService(ledger=FailingLedger())
    try:
        placed = client.post("/api/orders", json=_order_body(seed, address), headers=headers_for(seed.customer_id))
    finally:
        app.dependency_overrides.pop(get_order_service, None)

    assert placed.status_code == 201
    assert placed.json()["inventory_failures"] == [seed.product_a]

    order = client.get(f"/api/orders/{placed.json()['id']}", headers=headers_for(seed.customer_id)).json()
    assert order["inventory_status"] == "adjustment_failed"
    assert order["inventory_failures"] == [seed.product_a]
