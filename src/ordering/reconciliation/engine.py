"""Reconciliation engine — applies verified payment events to the order ledger.

Processor events arrive out of order and more than once. The engine decides,
from the ledger as it stands under the per-key lock, whether an event changes
anything:

- session completed, existing order  → confirm the order (unless already paid)
- session completed, deferred intent → materialize a paid order (once per session)
- charge updated                     → find the originating session, then as above
- payment failed                     → mark the payment failed (paid orders untouched)
- anything else                      → acknowledged, no effect

Shipment creation is kicked off only after the ledger write has committed and
outside the lock, and its failure never reaches the caller.
"""

import json
from dataclasses import dataclass, replace
from enum import Enum
from typing import assert_never

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from fulfillment.carrier.port import ShipmentResult
from fulfillment.shipment.trigger import ShipmentTrigger
from ordering.checkout.metadata import DeferredOrderIntent, ExistingOrderIntent, decode_intent
from ordering.customer.customer import RegisterCustomer
from ordering.order.address import AddressCandidate, AddressSource, CanonicalAddress, resolve
from ordering.order.confirmation import ConfirmOrderPayment
from ordering.order.creation import PlaceOrder
from ordering.order.locks import OrderLocks
from ordering.order.order import Order
from ordering.order.payment import RecordPaymentFailure
from ordering.reconciliation.receipt import find_receipt, record_receipt
from payments.gateway.port import CheckoutSessionRecord, PaymentGateway
from payments.webhook.events import (
    ChargeUpdated,
    PaymentEvent,
    PaymentFailed,
    SessionCompleted,
    UnhandledEvent,
)
from shared.errors import IncompleteAddressError, OrderNotFoundError

logger = structlog.get_logger(__name__)

RECEIPTS_KEY = "receipts"


class Outcome(Enum):
    ORDER_PAID = "order_paid"
    ORDER_PLACED = "order_placed"
    PAYMENT_FAILED = "payment_failed"
    ALREADY_PROCESSED = "already_processed"
    IGNORED = "ignored"


@dataclass(frozen=True)
class ReconciliationResult:
    outcome: Outcome
    order_id: str | None = None
    shipment: ShipmentResult | None = None


@dataclass(frozen=True)
class _Transition:
    result: ReconciliationResult
    ship_to: CanonicalAddress | None = None


# ---------------------------------------------------------------------------
# Address candidates from a checkout session
# ---------------------------------------------------------------------------
def _candidate(source: AddressSource, details: dict | None, email: str | None = None) -> AddressCandidate | None:
    if not details or not details.get("address"):
        return None
    address = details["address"]
    return AddressCandidate(
        source=source,
        name=details.get("name") or "",
        email=details.get("email") or email or "",
        phone=details.get("phone") or "",
        street1=address.get("line1") or "",
        street2=address.get("line2") or "",
        city=address.get("city") or "",
        state=address.get("state") or "",
        postal_code=address.get("postal_code") or "",
        country=address.get("country") or "",
    )


def session_candidates(session: CheckoutSessionRecord) -> list[AddressCandidate | None]:
    """Processor-collected shipping details, then billing/customer details."""
    return [
        _candidate(AddressSource.PROCESSOR_SHIPPING, session.shipping_details, session.customer_email),
        _candidate(AddressSource.PROCESSOR_BILLING, session.customer_details),
    ]


def address_of(order: Order) -> CanonicalAddress | None:
    if order.shipping_address is None:
        return None
    return CanonicalAddress.from_dict(order.shipping_address.to_dict())


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------
class ReconciliationEngine:
    def __init__(self, gateway: PaymentGateway, shipment_trigger: ShipmentTrigger, locks: OrderLocks | None = None):
        self.gateway = gateway
        self.shipment_trigger = shipment_trigger
        self.locks = locks or OrderLocks()

    def handle(self, event: PaymentEvent) -> ReconciliationResult:
        log = logger.bind(event_id=event.event_id, event_type=event.event_type)

        with self.locks.hold(OrderLocks.event_key(event.event_id)):
            with self.locks.hold(RECEIPTS_KEY):
                seen = find_receipt(event.event_id) is not None
            if seen:
                log.info("Payment event already reconciled; skipping replay")
                return ReconciliationResult(outcome=Outcome.ALREADY_PROCESSED)

            match event:
                case SessionCompleted():
                    transition = self._on_session_completed(event.session)
                case ChargeUpdated():
                    transition = self._on_charge_updated(event)
                case PaymentFailed():
                    transition = self._on_payment_failed(event)
                case UnhandledEvent():
                    log.info("Unhandled payment event type acknowledged")
                    transition = _Transition(ReconciliationResult(outcome=Outcome.IGNORED))
                case _:
                    assert_never(event)

            result = transition.result
            with self.locks.hold(RECEIPTS_KEY):
                record_receipt(event.event_id, event.event_type, result.outcome.value, result.order_id)

        log.info("Payment event reconciled", outcome=result.outcome.value, order_id=result.order_id)

        if transition.ship_to is not None and result.order_id:
            shipment = self.shipment_trigger.trigger(result.order_id, transition.ship_to)
            result = replace(result, shipment=shipment)
        return result

    # -------------------------------------------------------------------
    # Session completed
    # -------------------------------------------------------------------
    def _on_session_completed(self, session: CheckoutSessionRecord) -> _Transition:
        if not session.is_paid:
            logger.info(
                "Checkout session completed without payment; waiting for async result",
                session_id=session.session_id,
                payment_status=session.payment_status,
            )
            return _Transition(ReconciliationResult(outcome=Outcome.IGNORED))

        intent = decode_intent(session.metadata)
        match intent:
            case ExistingOrderIntent():
                return self._confirm_existing(intent.order_id, session)
            case DeferredOrderIntent():
                return self._materialize(intent, session)
            case None:
                logger.warning("Paid checkout session carries no order reference", session_id=session.session_id)
                return _Transition(ReconciliationResult(outcome=Outcome.IGNORED))
            case _:
                assert_never(intent)

    def _confirm_existing(self, order_id: str, session: CheckoutSessionRecord) -> _Transition:
        repo = current_domain.repository_for(Order)
        with self.locks.hold(OrderLocks.order_key(order_id)):
            try:
                order = repo.get(order_id)
            except ObjectNotFoundError as exc:
                raise OrderNotFoundError(order_id) from exc

            if order.is_paid:
                logger.info("Order already paid; duplicate confirmation ignored", order_id=order_id)
                return _Transition(ReconciliationResult(outcome=Outcome.ALREADY_PROCESSED, order_id=order_id))

            resolved = None
            if order.shipping_address is None:
                try:
                    resolved = resolve(session_candidates(session))
                except IncompleteAddressError as exc:
                    # Only the address update is blocked; the payment still counts
                    logger.warning(
                        "No complete address on paid session",
                        order_id=order_id,
                        missing=exc.missing_fields,
                    )

            current_domain.process(
                ConfirmOrderPayment(
                    order_id=order_id,
                    checkout_session_id=session.session_id,
                    payment_intent_id=session.payment_intent_id,
                    shipping_address=json.dumps(resolved.to_dict()) if resolved else None,
                ),
                asynchronous=False,
            )
            order = repo.get(order_id)

        logger.info("Order confirmed as paid", order_id=order_id, session_id=session.session_id)
        return _Transition(
            ReconciliationResult(outcome=Outcome.ORDER_PAID, order_id=order_id),
            ship_to=address_of(order) if order.awaiting_shipment else None,
        )

    def _materialize(self, intent: DeferredOrderIntent, session: CheckoutSessionRecord) -> _Transition:
        repo = current_domain.repository_for(Order)
        with self.locks.hold(OrderLocks.session_key(session.session_id)):
            existing = repo.find_by_checkout_session(session.session_id)
            if existing is not None:
                logger.info(
                    "Order already materialized for session",
                    order_id=str(existing.id),
                    session_id=session.session_id,
                )
                return _Transition(
                    ReconciliationResult(outcome=Outcome.ALREADY_PROCESSED, order_id=str(existing.id))
                )

            # Ownership comes only from the authenticated user id, never from email
            owner = intent.owner_user_id
            if owner:
                current_domain.process(RegisterCustomer(customer_id=owner), asynchronous=False)

            address = resolve([*session_candidates(session), intent.payload.address.to_candidate()])
            payload = intent.payload
            try:
                order_id = current_domain.process(
                    PlaceOrder(
                        customer_id=owner,
                        items=json.dumps(payload.items_data()),
                        total=payload.total,
                        currency=(session.currency or "usd").upper(),
                        notes=payload.notes,
                        shipping_address=json.dumps(address.to_dict()),
                        checkout_session_id=session.session_id,
                        payment_intent_id=session.payment_intent_id,
                    ),
                    asynchronous=False,
                )
            except ValidationError as exc:
                # Another worker materialized this session first
                if "checkout_session_id" not in exc.messages:
                    raise
                existing = repo.find_by_checkout_session(session.session_id)
                logger.info(
                    "Order materialized concurrently for session",
                    order_id=str(existing.id),
                    session_id=session.session_id,
                )
                return _Transition(
                    ReconciliationResult(outcome=Outcome.ALREADY_PROCESSED, order_id=str(existing.id))
                )

        logger.info(
            "Deferred order materialized from payment",
            order_id=order_id,
            session_id=session.session_id,
            address_source=address.source.value,
        )
        return _Transition(
            ReconciliationResult(outcome=Outcome.ORDER_PLACED, order_id=order_id),
            ship_to=address,
        )

    # -------------------------------------------------------------------
    # Charge updated
    # -------------------------------------------------------------------
    def _on_charge_updated(self, event: ChargeUpdated) -> _Transition:
        if not event.succeeded:
            logger.info("Charge not succeeded; nothing to reconcile", charge_id=event.charge_id, status=event.status)
            return _Transition(ReconciliationResult(outcome=Outcome.IGNORED))
        if not event.payment_intent_id:
            logger.warning("Charge carries no payment intent", charge_id=event.charge_id)
            return _Transition(ReconciliationResult(outcome=Outcome.IGNORED))

        session = self.gateway.find_session_by_payment_intent(event.payment_intent_id)
        if session is None:
            logger.warning("No checkout session found for payment intent", payment_intent_id=event.payment_intent_id)
            return _Transition(ReconciliationResult(outcome=Outcome.IGNORED))

        # The charge is the stronger signal; the session listing can lag behind it
        if not session.is_paid:
            session = replace(session, payment_status="paid")
        return self._on_session_completed(session)

    # -------------------------------------------------------------------
    # Payment failed
    # -------------------------------------------------------------------
    def _on_payment_failed(self, event: PaymentFailed) -> _Transition:
        intent = decode_intent(event.metadata)
        if not isinstance(intent, ExistingOrderIntent):
            # Deferred checkouts have no order yet, so there is nothing to mark
            logger.info("Payment failure without an order reference", payment_intent_id=event.payment_intent_id)
            return _Transition(ReconciliationResult(outcome=Outcome.IGNORED))

        order_id = intent.order_id
        with self.locks.hold(OrderLocks.order_key(order_id)):
            try:
                current_domain.repository_for(Order).get(order_id)
            except ObjectNotFoundError as exc:
                raise OrderNotFoundError(order_id) from exc

            changed = current_domain.process(
                RecordPaymentFailure(order_id=order_id, reason=event.reason),
                asynchronous=False,
            )

        if not changed:
            logger.info("Payment failure ignored; order already settled", order_id=order_id)
            return _Transition(ReconciliationResult(outcome=Outcome.ALREADY_PROCESSED, order_id=order_id))

        logger.info("Order payment marked failed", order_id=order_id, reason=event.reason)
        return _Transition(ReconciliationResult(outcome=Outcome.PAYMENT_FAILED, order_id=order_id))
