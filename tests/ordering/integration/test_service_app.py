"""End-to-end tests through the assembled service application.

Nothing is seeded: customers come into existence only through the requests
the service receives.
"""

import hashlib
import hmac
import importlib
import json
import time

import pytest
from fastapi.testclient import TestClient
from ordering.api.dependencies import build_services
from ordering.checkout.builder import CheckoutSessionBuilder
from ordering.checkout.metadata import (
    OWNER_KEY,
    CompactItem,
    CompactOrderPayload,
    DeferredOrderIntent,
    encode_intent,
)
from ordering.customer.customer import Customer
from ordering.order.order import Order
from payments.webhook.verification import EventVerifier
from protean import current_domain

SECRET = "whsec_app"


@pytest.fixture()
def service_app(monkeypatch, gateway, carrier):
    import ordering.utils.logging as logging_setup
    from ordering.domain import ordering

    # The test bed has already initialized the domain and logging
    monkeypatch.setattr(ordering, "init", lambda: None)
    monkeypatch.setattr(logging_setup, "configure_logging", lambda *args, **kwargs: None)
    monkeypatch.delenv("PAYMENT_GATEWAY", raising=False)
    monkeypatch.delenv("CARRIER_ADAPTER", raising=False)

    app = importlib.import_module("app").app
    monkeypatch.setattr(
        app.state,
        "services",
        build_services(gateway=gateway, carrier=carrier, verifier=EventVerifier(SECRET)),
    )
    return app


def _as_user(app, user_id, email=None):
    """Populate ``request.state`` the way the upstream auth layer does."""

    async def authenticated(scope, receive, send):
        if scope["type"] == "http":
            scope.setdefault("state", {}).update(user_id=user_id, user_email=email)
        await app(scope, receive, send)

    return authenticated


def _checkout_body():
    return {
        "items": [{"name": "Dark Chocolate Box", "price": 24.5, "quantity": 1}],
        "order": {
            "total": 24.5,
            "items": [{"product_id": "prod-001", "quantity": 1, "price": 24.5, "total": 24.5}],
        },
        "success_url": "https://shop.example.com/success",
        "cancel_url": "https://shop.example.com/cart",
    }


def _signed(payload: str) -> dict:
    timestamp = int(time.time())
    signature = hmac.new(SECRET.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return {"Content-Type": "application/json", "Stripe-Signature": f"t={timestamp},v1={signature}"}


def _completed_deferred_session(owner):
    metadata = encode_intent(
        DeferredOrderIntent(
            payload=CompactOrderPayload(
                total=24.5,
                items=[CompactItem(product_id="prod-001", quantity=1, price=24.5, total=24.5)],
            ),
            owner_user_id=owner,
        )
    )
    return {
        "id": "evt_app_001",
        "object": "event",
        "type": "checkout.session.completed",
        "created": int(time.time()),
        "data": {
            "object": {
                "id": "cs_app_001",
                "object": "checkout.session",
                "payment_status": "paid",
                "payment_intent": "pi_app_001",
                "amount_total": 2450,
                "currency": "usd",
                "metadata": metadata,
                "customer_details": {
                    "email": "late@example.com",
                    "name": "Late Buyer",
                    "address": {
                        "line1": "1 Main St",
                        "city": "Springfield",
                        "state": "IL",
                        "postal_code": "62701",
                        "country": "US",
                    },
                },
            }
        },
    }


class TestServiceApp:
    def test_health(self, service_app):
        response = TestClient(service_app).get("/health")

        assert response.status_code == 200
        assert response.json()["gateway"] == "FakeGateway"

    def test_first_checkout_by_new_user(self, service_app, gateway):
        client = TestClient(_as_user(service_app, "user-new", email="new@example.com"))

        response = client.post("/checkout/sessions", json=_checkout_body())

        assert response.status_code == 200
        session = gateway.sessions[response.json()["session_id"]]
        assert session.metadata[OWNER_KEY] == "user-new"
        assert gateway.calls[0]["request"].customer_email == "new@example.com"
        assert current_domain.repository_for(Customer).get("user-new").email == "new@example.com"

    def test_deferred_payment_for_unseen_owner(self, service_app, carrier):
        payload = json.dumps(_completed_deferred_session("user-never-seen"))

        response = TestClient(service_app).post("/payments/webhook", content=payload, headers=_signed(payload))

        assert response.status_code == 200
        order = current_domain.repository_for(Order).find_by_checkout_session("cs_app_001")
        assert order is not None
        assert order.is_paid
        assert order.customer_id == "user-never-seen"
        assert current_domain.repository_for(Customer).get("user-never-seen") is not None

    def test_order_routes_mounted(self, service_app):
        client = TestClient(_as_user(service_app, "user-orders"))

        created = client.post(
            "/orders",
            json={"items": [{"product_id": "prod-001", "quantity": 1, "unit_price": 24.5}], "total": 24.5},
        )
        listed = client.get("/orders")

        assert created.status_code == 201
        assert [order["order_id"] for order in listed.json()["orders"]] == [created.json()["order_id"]]

    def test_orders_require_authentication(self, service_app):
        assert TestClient(service_app).get("/orders").status_code == 401
