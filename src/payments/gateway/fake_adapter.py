"""Configurable fake payment gateway for development and testing.

Keeps checkout sessions in memory instead of calling a processor. Tests seed
sessions with ``add_session`` (or ``mark_paid``) to play the processor's part,
and flip ``configure(should_succeed=False)`` to simulate an outage.
"""

import time
from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime
from uuid import uuid4

from payments.gateway.port import (
    CheckoutSessionRecord,
    CreatedSession,
    PaymentGateway,
    SessionRequest,
    pick_sessions,
)
from shared.errors import PaymentGatewayError


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Processor unavailable"
        self.calls: list[dict] = []
        self.sessions: dict[str, CheckoutSessionRecord] = {}

    def configure(self, should_succeed: bool, failure_reason: str = "Processor unavailable") -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def _check(self) -> None:
        if not self.should_succeed:
            raise PaymentGatewayError(self.failure_reason)

    # -------------------------------------------------------------------
    # Seeding helpers
    # -------------------------------------------------------------------
    def add_session(self, record: CheckoutSessionRecord) -> CheckoutSessionRecord:
        self.sessions[record.session_id] = record
        return record

    def mark_paid(self, session_id: str, payment_intent_id: str | None = None) -> CheckoutSessionRecord:
        record = replace(
            self.sessions[session_id],
            payment_status="paid",
            payment_intent_id=payment_intent_id or f"pi_fake_{uuid4().hex[:12]}",
        )
        self.sessions[session_id] = record
        return record

    # -------------------------------------------------------------------
    # Port
    # -------------------------------------------------------------------
    def create_checkout_session(self, request: SessionRequest) -> CreatedSession:
        self.calls.append({"method": "create_checkout_session", "request": request})
        self._check()

        session_id = f"cs_fake_{uuid4().hex[:16]}"
        self.sessions[session_id] = CheckoutSessionRecord(
            session_id=session_id,
            payment_status="unpaid",
            amount_total=sum(item.unit_amount * item.quantity for item in request.line_items),
            currency=request.currency,
            metadata=dict(request.metadata),
            customer_email=request.customer_email,
            created=int(time.time()),
        )
        return CreatedSession(
            session_id=session_id,
            url=f"https://checkout.fake-processor.example.com/pay/{session_id}",
        )

    def find_session_by_payment_intent(self, payment_intent_id: str) -> CheckoutSessionRecord | None:
        self.calls.append({"method": "find_session_by_payment_intent", "payment_intent_id": payment_intent_id})
        self._check()
        return next(
            (s for s in self.sessions.values() if s.payment_intent_id == payment_intent_id),
            None,
        )

    def find_sessions_for_orders(
        self, order_ids: Iterable[str], created_after: datetime
    ) -> dict[str, CheckoutSessionRecord]:
        order_ids = [str(order_id) for order_id in order_ids]
        self.calls.append({"method": "find_sessions_for_orders", "order_ids": order_ids})
        self._check()
        since = int(created_after.timestamp())
        recent = [s for s in self.sessions.values() if s.created is None or s.created >= since]
        return pick_sessions(recent, order_ids)
