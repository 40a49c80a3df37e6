"""Integration tests for the carrier tracking webhook endpoint."""

import inspect
import json

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from ordering.api.dependencies import build_services
from ordering.api.handlers import register_error_handlers
from ordering.api.routes import carrier_webhook, shipping_router
from ordering.order.creation import PlaceOrder
from ordering.order.order import Order
from ordering.order.shipment import RecordShipment
from protean import current_domain

TOKEN = "tok_carrier"


@pytest.fixture()
def client(gateway, carrier):
    app = FastAPI()
    register_error_handlers(app)
    app.include_router(shipping_router)
    app.state.services = build_services(gateway=gateway, carrier=carrier, carrier_webhook_token=TOKEN)
    return TestClient(app)


def _shipped_order(shipment_id="txn_001", tracking_number=None):
    order_id = current_domain.process(
        PlaceOrder(
            items=json.dumps([{"product_id": "prod-001", "quantity": 1, "unit_price": 24.5}]),
            total=24.5,
            shipping_address=json.dumps(
                {
                    "street1": "1 Main St",
                    "city": "Springfield",
                    "state": "IL",
                    "postal_code": "62701",
                    "country": "US",
                    "source": "processor_shipping",
                }
            ),
            checkout_session_id=f"cs_{shipment_id}",
        ),
        asynchronous=False,
    )
    current_domain.process(
        RecordShipment(order_id=order_id, shipment_id=shipment_id, tracking_number=tracking_number),
        asynchronous=False,
    )
    return order_id


def _get(order_id):
    return current_domain.repository_for(Order).get(order_id)


def _post(client, body, token=TOKEN):
    params = {"token": token} if token else {}
    return client.post("/shipping/webhook", json=body, params=params)


class TestTrackingWebhook:
    def test_transaction_update_fills_tracking_number(self, client):
        order_id = _shipped_order()

        response = _post(
            client,
            {
                "event": "transaction_updated",
                "data": {"object_id": "txn_001", "tracking_number": "TRK1", "tracking_status": "PRE_TRANSIT"},
            },
        )

        assert response.status_code == 200
        assert response.json() == {"received": True}
        order = _get(order_id)
        assert order.tracking_number == "TRK1"
        assert order.tracking_status == "PRE_TRANSIT"

    def test_track_update_by_tracking_number(self, client):
        order_id = _shipped_order(tracking_number="TRK1")

        response = _post(
            client,
            {"event": "track_updated", "data": {"tracking_number": "TRK1", "tracking_status": {"status": "DELIVERED"}}},
        )

        assert response.status_code == 200
        order = _get(order_id)
        assert order.tracking_status == "DELIVERED"
        assert order.payment_status == "paid"

    def test_unknown_shipment_acknowledged(self, client):
        response = _post(client, {"event": "track_updated", "data": {"tracking_number": "TRK-ELSEWHERE"}})
        assert response.status_code == 200

    def test_other_events_acknowledged(self, client):
        order_id = _shipped_order()

        response = _post(client, {"event": "batch_purchased", "data": {"object_id": "txn_001"}})

        assert response.status_code == 200
        assert _get(order_id).tracking_status is None


class TestTrackingWebhookRejections:
    def test_missing_token(self, client):
        response = _post(client, {"event": "track_updated", "data": {"tracking_number": "TRK1"}}, token=None)

        assert response.status_code == 400
        assert response.json()["code"] == "SIGNATURE_VERIFICATION_FAILED"

    def test_wrong_token(self, client):
        order_id = _shipped_order(tracking_number="TRK1")

        response = _post(
            client,
            {"event": "track_updated", "data": {"tracking_number": "TRK1", "tracking_status": "DELIVERED"}},
            token="tok_guess",
        )

        assert response.status_code == 400
        assert _get(order_id).tracking_status is None

    def test_malformed_notification(self, client):
        response = _post(client, {"event": "transaction_updated", "data": {}})

        assert response.status_code == 400
        assert response.json()["code"] == "MALFORMED_EVENT"

    def test_handler_runs_in_threadpool(self):
        assert not inspect.iscoroutinefunction(carrier_webhook)
