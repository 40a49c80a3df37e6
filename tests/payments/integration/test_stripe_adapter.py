"""Tests for the Stripe adapter with the Stripe client replaced by a stub."""

from datetime import UTC, datetime
from types import SimpleNamespace

import pytest
import stripe
from ordering.checkout.builder import CartLine, CheckoutSessionBuilder
from ordering.checkout.metadata import ExistingOrderIntent
from payments.gateway.stripe_adapter import CLOCK_SKEW_SECONDS, StripeGateway
from shared.errors import PaymentGatewayError

ORDER_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


class _Page:
    def __init__(self, data):
        self.data = data

    def to_dict(self):
        return {"object": "list", "data": self.data}

    def auto_paging_iter(self):
        return iter(self.data)


class _Sessions:
    def __init__(self, sessions=(), error=None):
        self.sessions = list(sessions)
        self.error = error
        self.created = []
        self.listed = []

    def create(self, params):
        if self.error:
            raise self.error
        self.created.append(params)
        return SimpleNamespace(id="cs_test_001", url="https://checkout.stripe.com/c/pay/cs_test_001")

    def list(self, params):
        if self.error:
            raise self.error
        self.listed.append(params)
        if "payment_intent" in params:
            return _Page([s for s in self.sessions if s.get("payment_intent") == params["payment_intent"]])
        return _Page(self.sessions)


def _gateway(sessions):
    gateway = StripeGateway(api_key="sk_test_123", timeout=5)
    gateway._client = SimpleNamespace(v1=SimpleNamespace(checkout=SimpleNamespace(sessions=sessions)))
    return gateway


def _session(session_id, order_id, payment_status="unpaid", created=1, payment_intent=None):
    return {
        "id": session_id,
        "object": "checkout.session",
        "payment_status": payment_status,
        "payment_intent": payment_intent,
        "metadata": {"schema": "1", "orderId": order_id},
        "created": created,
    }


class TestCreateCheckoutSession:
    def test_sends_checkout_parameters(self):
        sessions = _Sessions()
        request = CheckoutSessionBuilder().build(
            ExistingOrderIntent(order_id="ord-1", owner_user_id="user-1"),
            [CartLine(name="Box", unit_price=24.5, quantity=2)],
            success_url="https://shop.example.com/success",
            cancel_url="https://shop.example.com/cart",
            customer_email="jane@example.com",
        )

        created = _gateway(sessions).create_checkout_session(request)

        assert created.session_id == "cs_test_001"
        params = sessions.created[0]
        assert params["mode"] == "payment"
        assert params["line_items"][0]["price_data"]["unit_amount"] == 2450
        assert params["line_items"][0]["quantity"] == 2
        assert params["metadata"]["orderId"] == "ord-1"
        assert params["payment_intent_data"]["metadata"] == params["metadata"]
        assert params["shipping_address_collection"]["allowed_countries"] == ["US", "CA"]
        assert params["billing_address_collection"] == "required"
        assert params["shipping_options"][0]["shipping_rate_data"]["fixed_amount"]["amount"] == 0
        assert params["customer_email"] == "jane@example.com"

    def test_stripe_error_wrapped(self):
        sessions = _Sessions(error=stripe.APIConnectionError("network down"))
        request = CheckoutSessionBuilder().build(
            ExistingOrderIntent(order_id="ord-1"),
            [CartLine(name="Box", unit_price=1.0)],
            success_url="https://shop.example.com/success",
            cancel_url="https://shop.example.com/cart",
        )
        with pytest.raises(PaymentGatewayError):
            _gateway(sessions).create_checkout_session(request)


class TestSessionLookups:
    def test_find_by_payment_intent_uses_filter(self):
        sessions = _Sessions([_session("cs_1", "ord-1", "paid", payment_intent="pi_001")])

        record = _gateway(sessions).find_session_by_payment_intent("pi_001")

        assert record.session_id == "cs_1"
        assert record.is_paid
        assert sessions.listed[0] == {"payment_intent": "pi_001", "limit": 1}

    def test_find_by_payment_intent_missing(self):
        assert _gateway(_Sessions()).find_session_by_payment_intent("pi_001") is None

    def test_sessions_for_orders_prefers_paid(self):
        sessions = _Sessions(
            [
                _session("cs_paid", "ord-1", "paid", created=1),
                _session("cs_newer", "ord-1", "unpaid", created=2),
                _session("cs_other", "ord-2", "paid", created=3),
            ]
        )
        found = _gateway(sessions).find_sessions_for_orders(["ord-1"], created_after=ORDER_TIME)
        assert found["ord-1"].session_id == "cs_paid"
        assert "ord-2" not in found

    def test_one_listing_covers_the_batch(self):
        sessions = _Sessions(
            [
                _session("cs_1", "ord-1", created=1),
                _session("cs_2", "ord-1", created=2),
                _session("cs_3", "ord-2", "paid", created=3),
            ]
        )
        found = _gateway(sessions).find_sessions_for_orders(["ord-1", "ord-2", "ord-3"], created_after=ORDER_TIME)

        assert found["ord-1"].session_id == "cs_2"
        assert found["ord-2"].session_id == "cs_3"
        assert "ord-3" not in found
        assert sessions.listed == [
            {"created": {"gte": int(ORDER_TIME.timestamp()) - CLOCK_SKEW_SECONDS}, "limit": 100}
        ]

    def test_lookup_error_wrapped(self):
        sessions = _Sessions(error=stripe.APIConnectionError("network down"))
        with pytest.raises(PaymentGatewayError):
            _gateway(sessions).find_sessions_for_orders(["ord-1"], created_after=ORDER_TIME)
