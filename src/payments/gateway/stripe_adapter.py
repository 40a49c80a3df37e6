"""Stripe Checkout adapter.

Talks to Stripe through a dedicated ``StripeClient`` so the API key and the
HTTP timeout belong to this adapter instance rather than to module globals.
"""

from collections.abc import Iterable
from datetime import datetime

import stripe
import structlog

from payments.gateway.port import (
    CheckoutSessionRecord,
    CreatedSession,
    PaymentGateway,
    SessionRequest,
    pick_sessions,
)
from shared.errors import PaymentGatewayError

logger = structlog.get_logger(__name__)

# Ledger and processor clocks may disagree slightly
CLOCK_SKEW_SECONDS = 300


def _plain(value):
    """Recursively turn Stripe objects into plain dicts and lists."""
    if hasattr(value, "to_dict"):
        value = value.to_dict()
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_plain(item) for item in value]
    return value


class StripeGateway(PaymentGateway):
    """Production Stripe gateway adapter."""

    def __init__(self, api_key: str, timeout: float = 10.0) -> None:
        self._client = stripe.StripeClient(
            api_key,
            http_client=stripe.RequestsClient(timeout=timeout),
        )

    def create_checkout_session(self, request: SessionRequest) -> CreatedSession:
        params = {
            "mode": "payment",
            "line_items": [
                {
                    "price_data": {
                        "currency": request.currency,
                        "product_data": {"name": item.name},
                        "unit_amount": item.unit_amount,
                    },
                    "quantity": item.quantity,
                }
                for item in request.line_items
            ],
            "success_url": request.success_url,
            "cancel_url": request.cancel_url,
            "metadata": request.metadata,
            # Mirrored so payment_intent.payment_failed carries the order reference
            "payment_intent_data": {"metadata": request.metadata},
            "shipping_address_collection": {"allowed_countries": list(request.allowed_countries)},
            "billing_address_collection": "required" if request.billing_address_required else "auto",
            "shipping_options": [
                {
                    "shipping_rate_data": {
                        "display_name": option.display_name,
                        "type": "fixed_amount",
                        "fixed_amount": {"amount": option.amount, "currency": request.currency},
                    }
                }
                for option in request.shipping_options
            ],
        }
        if request.customer_email:
            params["customer_email"] = request.customer_email

        try:
            session = self._client.v1.checkout.sessions.create(params=params)
        except stripe.StripeError as exc:
            logger.error("Stripe checkout session creation failed", error=str(exc))
            raise PaymentGatewayError(f"Failed to create checkout session: {exc.user_message or exc}") from exc

        logger.info("Stripe checkout session created", session_id=session.id)
        return CreatedSession(session_id=session.id, url=session.url)

    def find_session_by_payment_intent(self, payment_intent_id: str) -> CheckoutSessionRecord | None:
        try:
            page = self._client.v1.checkout.sessions.list(
                params={"payment_intent": payment_intent_id, "limit": 1},
            )
        except stripe.StripeError as exc:
            logger.error(
                "Stripe session lookup by payment intent failed",
                payment_intent_id=payment_intent_id,
                error=str(exc),
            )
            raise PaymentGatewayError(f"Failed to look up checkout session: {exc}") from exc

        data = _plain(page).get("data") or []
        if not data:
            return None
        return CheckoutSessionRecord.from_payload(data[0])

    def find_sessions_for_orders(
        self, order_ids: Iterable[str], created_after: datetime
    ) -> dict[str, CheckoutSessionRecord]:
        # Checkout sessions cannot be queried by metadata; one listing covers the batch
        order_ids = [str(order_id) for order_id in order_ids]
        since = int(created_after.timestamp()) - CLOCK_SKEW_SECONDS
        try:
            page = self._client.v1.checkout.sessions.list(params={"created": {"gte": since}, "limit": 100})
            records = [CheckoutSessionRecord.from_payload(_plain(session)) for session in page.auto_paging_iter()]
        except stripe.StripeError as exc:
            logger.error("Stripe session scan for orders failed", orders=len(order_ids), error=str(exc))
            raise PaymentGatewayError(f"Failed to list checkout sessions: {exc}") from exc
        return pick_sessions(records, order_ids)
