"""Tests for the HTTP API and the HTTP cart backend."""

from decimal import Decimal

import httpx
import pytest

from storefront.database import get_session_factory
from storefront.main import app
from storefront.application.batch_cart import GuestCartItem
from storefront.presentation.api import get_payment_gateway
from storefront.client.cart_session import CartSession
from storefront.client.events import CartEventBus
from storefront.client.http_backend import HTTPCartBackend
from storefront.infrastructure.http_clients import sign_payment
from storefront.config import settings

from conftest import PAYMENT_SECRET, insert_cart

USER = {"X-User-Id": "user-1"}
ADMIN = {"X-Admin-Token": "admin-secret"}
OTHER_USER = {"X-User-Id": "user-2"}


@pytest.fixture
def api_app(session_factory, gateway):
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def client(api_app):
    transport = httpx.ASGITransport(app=api_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


class TestCartApi:
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    async def test_requires_user(self, client):
        response = await client.get("/api/cart")

        assert response.status_code == 401
        assert response.json()["detail"] == "Sign in to manage your cart"

    async def test_add_and_read(self, client):
        first = await client.post("/api/cart/items", json={"product_id": "prod-x"}, headers=USER)
        second = await client.post("/api/cart/items", json={"product_id": "prod-x"}, headers=USER)

        assert first.status_code == 200
        assert first.json()["action"] == "added"
        assert second.json()["action"] == "incremented"
        assert second.json()["product_in_cart"] is True

        cart = (await client.get("/api/cart", headers=USER)).json()
        assert cart["total_items"] == 2
        assert Decimal(cart["total_price"]) == Decimal("20.00")
        assert cart["items"][0]["quantity"] == 2

    async def test_unknown_product(self, client):
        response = await client.post("/api/cart/items", json={"product_id": "nope"}, headers=USER)

        assert response.status_code == 404
        assert response.json()["detail"] == "Product nope not found"

    async def test_set_quantity_and_remove(self, client):
        await client.post("/api/cart/items", json={"product_id": "prod-b"}, headers=USER)

        updated = await client.put("/api/cart/items/prod-b", json={"quantity": 3}, headers=USER)
        assert updated.json()["total_items"] == 3

        removed = await client.delete("/api/cart/items/prod-b", headers=USER)
        assert removed.json()["total_items"] == 0
        assert removed.json()["product_in_cart"] is False

        missing = await client.delete("/api/cart/items/prod-b", headers=USER)
        assert missing.status_code == 404

    async def test_batch(self, client):
        response = await client.post("/api/cart/batch", json={"operations": [
            {"action": "add", "product_id": "prod-a", "quantity": 2},
            {"action": "add", "product_id": "gone"},
            {"action": "add", "product_id": "prod-c"},
        ]}, headers=USER)

        body = response.json()
        assert response.status_code == 200
        assert body["success"] is False
        assert [r["status"] for r in body["results"]] == ["success", "error", "success"]
        assert body["total_items"] == 3
        assert len(body["items"]) == 2

    async def test_batch_remove(self, client):
        await client.post("/api/cart/batch", json={"operations": [
            {"action": "add", "product_id": "prod-a"},
            {"action": "add", "product_id": "prod-b"},
        ]}, headers=USER)

        response = await client.delete(
            "/api/cart/batch", params={"product_ids": ["prod-a", "prod-b"]}, headers=USER
        )

        assert response.json()["success"] is True
        assert response.json()["total_items"] == 0

    async def test_negative_batch_quantity_rejected(self, client):
        await client.post("/api/cart/items", json={"product_id": "prod-x"}, headers=USER)

        response = await client.post("/api/cart/batch", json={"operations": [
            {"action": "add", "product_id": "prod-x", "quantity": -5},
        ]}, headers=USER)

        assert response.status_code == 422
        cart = (await client.get("/api/cart", headers=USER)).json()
        assert cart["total_items"] == 1

    async def test_set_without_quantity_rejected(self, client):
        response = await client.post("/api/cart/batch", json={"operations": [
            {"action": "set", "product_id": "prod-x"},
        ]}, headers=USER)

        assert response.status_code == 422

    async def test_empty_batch_rejected(self, client):
        response = await client.post("/api/cart/batch", json={"operations": []}, headers=USER)

        assert response.status_code == 422

    async def test_merge(self, client):
        response = await client.post(
            "/api/cart/merge", json={"items": [{"product_id": "prod-x", "quantity": 2}]}, headers=USER
        )

        assert response.json()["total_items"] == 2

    async def test_status_for_guest(self, client):
        response = await client.get("/api/cart/status", params={"product_id": "prod-x"})

        assert response.status_code == 200
        assert response.json()["is_authenticated"] is False

    async def test_consolidate(self, client, legacy_engine):
        await insert_cart(legacy_engine, "user-1", {"prod-a": 2}, age_minutes=10)
        await insert_cart(legacy_engine, "user-1", {"prod-a": 3, "prod-b": 1}, age_minutes=5)

        response = await client.post("/api/cart/consolidate", headers=USER)

        assert response.json() == {"message": "Consolidated 1 duplicate carts", "consolidated": 1}
        cart = (await client.get("/api/cart", headers=USER)).json()
        assert {i["product_id"]: i["quantity"] for i in cart["items"]} == {"prod-a": 5, "prod-b": 1}


class TestOrderApi:
    async def test_checkout_empty_cart(self, client):
        response = await client.post("/api/checkout", json={}, headers=USER)

        assert response.status_code == 400
        assert response.json()["detail"] == "No items in cart"

    async def test_checkout_and_pay(self, client):
        await client.post("/api/cart/items", json={"product_id": "prod-b"}, headers=USER)

        created = await client.post("/api/checkout", json={}, headers=USER)
        assert created.status_code == 201
        order = created.json()
        assert order["order_number"] == "100000"
        assert order["status"] == "AWAITING_PAYMENT"

        intent = (await client.post(f"/api/orders/{order['id']}/payment-intent", headers=USER)).json()
        assert intent["amount"] == 3099

        verified = await client.post("/api/payment/verify", json={
            "gateway_order_id": intent["intent_id"],
            "payment_id": "pay_9",
            "signature": sign_payment(PAYMENT_SECRET, intent["intent_id"], "pay_9"),
        }, headers=USER)
        assert verified.status_code == 200
        assert verified.json()["status"] == "CONFIRMED"
        assert verified.json()["payment_status"] == "COMPLETED"

        orders = (await client.get("/api/orders", headers=USER)).json()
        assert [o["order_number"] for o in orders] == ["100000"]

    async def test_bad_signature(self, client):
        await client.post("/api/cart/items", json={"product_id": "prod-b"}, headers=USER)

        response = await client.post("/api/checkout", json={
            "payment": {"gateway_order_id": "gw_1", "payment_id": "pay_1", "signature": "bad"}
        }, headers=USER)

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid payment signature"

    async def test_buy_now(self, client):
        response = await client.post("/api/orders/buy-now", json={
            "items": [{"product_id": "prod-a", "quantity": 2}, {"product_id": "prod-b"}]
        }, headers=USER)

        assert response.status_code == 201
        assert Decimal(response.json()["total"]) == Decimal("42.71")

    async def test_order_of_other_user(self, client):
        await client.post("/api/cart/items", json={"product_id": "prod-a"}, headers=USER)
        order = (await client.post("/api/checkout", json={}, headers=USER)).json()

        response = await client.get(f"/api/orders/{order['id']}", headers=OTHER_USER)

        assert response.status_code == 404

    async def test_status_update(self, client, monkeypatch):
        monkeypatch.setattr(settings, "ADMIN_API_TOKEN", "admin-secret")
        order = (await client.post(
            "/api/orders/buy-now", json={"items": [{"product_id": "prod-a"}]}, headers=USER
        )).json()

        url = f"/api/admin/orders/{order['id']}/status"
        confirmed = await client.put(url, json={"status": "CONFIRMED"}, headers=ADMIN)
        backwards = await client.put(url, json={"status": "PENDING"}, headers=ADMIN)

        assert confirmed.json()["status"] == "CONFIRMED"
        assert backwards.status_code == 409

    async def test_status_update_needs_admin_token(self, client, monkeypatch):
        monkeypatch.setattr(settings, "ADMIN_API_TOKEN", "admin-secret")
        order = (await client.post(
            "/api/orders/buy-now", json={"items": [{"product_id": "prod-a"}]}, headers=USER
        )).json()
        url = f"/api/admin/orders/{order['id']}/status"

        anonymous = await client.put(url, json={"status": "CONFIRMED"})
        customer = await client.put(url, json={"status": "CONFIRMED"}, headers={**USER, "X-Admin-Token": "guess"})

        assert anonymous.status_code == 403
        assert customer.status_code == 403
        assert (await client.get(f"/api/orders/{order['id']}", headers=USER)).json()["status"] == "AWAITING_PAYMENT"

    async def test_admin_routes_closed_without_configured_token(self, client, monkeypatch):
        monkeypatch.setattr(settings, "ADMIN_API_TOKEN", "")

        response = await client.put("/api/admin/orders/any/status", json={"status": "SHIPPED"}, headers=ADMIN)

        assert response.status_code == 403

    async def test_payment_cannot_be_replayed(self, client):
        payment = {
            "gateway_order_id": "gw_1",
            "payment_id": "pay_1",
            "signature": sign_payment(PAYMENT_SECRET, "gw_1", "pay_1"),
        }
        await client.post("/api/cart/items", json={"product_id": "prod-a"}, headers=USER)
        first = await client.post("/api/checkout", json={"payment": payment}, headers=USER)
        await client.post("/api/cart/items", json={"product_id": "prod-b"}, headers=USER)

        replay = await client.post("/api/checkout", json={"payment": payment}, headers=USER)

        assert first.status_code == 201
        assert replay.status_code == 409
        assert replay.json()["detail"] == "Payment pay_1 has already been used"
        cart = (await client.get("/api/cart", headers=USER)).json()
        assert cart["total_items"] == 1


class TestHTTPCartBackend:
    async def test_session_against_api(self, api_app):
        backend = HTTPCartBackend("http://test", transport=httpx.ASGITransport(app=api_app))
        session = CartSession(backend, CartEventBus(), user_id="user-1", flush_delay=0.01)
        await session.load()

        session.add("prod-x")
        session.add("prod-x")
        session.add("prod-a")
        await session.flush()

        assert {l.product_id: l.quantity for l in session.items} == {"prod-x": 2, "prod-a": 1}
        assert session.total_price == Decimal("24.50")
        cart = await backend.get_cart("user-1")
        assert cart.total_items == 3

    async def test_rejected_edit_reloads_from_api(self, api_app):
        backend = HTTPCartBackend("http://test", transport=httpx.ASGITransport(app=api_app))
        session = CartSession(backend, CartEventBus(), user_id="user-1")
        await session.load()

        session.add("prod-a")
        session.remove("prod-missing")
        await session.flush()

        assert {l.product_id: l.quantity for l in session.items} == {"prod-a": 1}

    async def test_merge_guest_cart(self, api_app):
        backend = HTTPCartBackend("http://test", transport=httpx.ASGITransport(app=api_app))

        cart = await backend.merge_guest_cart("user-1", [GuestCartItem(product_id="prod-b", quantity=2)])

        assert cart.total_items == 2
        assert cart.total_price == Decimal("50.00")
