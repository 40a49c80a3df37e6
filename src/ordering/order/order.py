"""Order aggregate (CQRS) — the authoritative record of an order's lifecycle.

An order carries two statuses: the lifecycle ``status`` and the
``payment_status`` reported by the payment processor. Only the reconciliation
engine and the drift sweep move them, and always through the methods below.

State Machine:
    PENDING_PAYMENT/PENDING → CONFIRMED/PAID       (payment succeeded, terminal)
    PENDING_PAYMENT/PENDING → PENDING_PAYMENT/FAILED (payment failed)
    PENDING_PAYMENT/FAILED  → CONFIRMED/PAID       (a retried payment succeeded)

Deferred orders skip the pending states entirely: they are materialized as
CONFIRMED/PAID from the first successful payment event.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import (
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from ordering.domain import ordering
from ordering.order.events import (
    OrderCreated,
    OrderPaid,
    OrderPaymentFailed,
    OrderPlaced,
    OrderShipmentRecorded,
    OrderTrackingUpdated,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING_PAYMENT = "pending_payment"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class PaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@ordering.value_object(part_of="Order")
class ShippingAddress:
    """The canonical address an order ships to.

    Recorded once from the address resolver's output and never replaced with
    data from a less trusted source afterwards.
    """

    name = String(max_length=255)
    email = String(max_length=254)
    phone = String(max_length=50)
    street1 = String(required=True, max_length=255)
    street2 = String(max_length=255)
    city = String(required=True, max_length=100)
    state = String(required=True, max_length=100)
    postal_code = String(required=True, max_length=20)
    country = String(required=True, max_length=100)
    source = String(max_length=50)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@ordering.entity(part_of="Order")
class OrderItem:
    """A line item, immutable once the order exists."""

    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    line_total = Float(required=True, min_value=0.0)
    flavor_ids = Text()  # JSON list of flavor ids
    custom_pack_name = String(max_length=255)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@ordering.aggregate
class Order:
    customer_id = Identifier()  # empty for guest checkout
    total = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="USD")
    items = HasMany(OrderItem)
    shipping_address = ValueObject(ShippingAddress)
    notes = Text()
    status = String(
        choices=OrderStatus,
        default=OrderStatus.PENDING_PAYMENT.value,
    )
    payment_status = String(
        choices=PaymentStatus,
        default=PaymentStatus.PENDING.value,
    )
    checkout_session_id = String(max_length=255, unique=True)
    payment_intent_id = String(max_length=255)
    shipment_id = String(max_length=255)
    label_url = String(max_length=500)
    carrier = String(max_length=100)
    service_level = String(max_length=100)
    tracking_number = String(max_length=255)
    tracking_status = String(max_length=50)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def paid_orders_are_confirmed(self):
        if self.payment_status == PaymentStatus.PAID.value and self.status != OrderStatus.CONFIRMED.value:
            raise ValidationError({"status": ["A paid order must be confirmed"]})

    # -------------------------------------------------------------------
    # Factory methods
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        customer_id: str | None,
        items_data: list[dict],
        total: float,
        currency: str = "USD",
        notes: str | None = None,
        shipping_address: dict | None = None,
    ):
        """Create an order eagerly, ahead of payment.

        Used by authenticated checkouts that persist the order first and pay
        for it afterwards (including payment retries).
        """
        now = datetime.now(UTC)
        order = cls(
            customer_id=customer_id,
            total=total,
            currency=currency,
            notes=notes,
            shipping_address=ShippingAddress(**shipping_address) if shipping_address else None,
            created_at=now,
            updated_at=now,
        )
        order._add_items(items_data)
        order.raise_(
            OrderCreated(
                order_id=str(order.id),
                customer_id=customer_id or "",
                items=json.dumps(items_data),
                total=total,
                currency=currency,
                created_at=now,
            )
        )
        return order

    @classmethod
    def place_paid(
        cls,
        customer_id: str | None,
        items_data: list[dict],
        total: float,
        shipping_address: dict,
        checkout_session_id: str,
        payment_intent_id: str | None = None,
        currency: str = "USD",
        notes: str | None = None,
    ):
        """Materialize a deferred order from a successful payment.

        The order is born CONFIRMED/PAID; abandoned checkouts never reach this
        point and so leave no record behind.
        """
        now = datetime.now(UTC)
        order = cls(
            customer_id=customer_id,
            total=total,
            currency=currency,
            notes=notes,
            shipping_address=ShippingAddress(**shipping_address),
            status=OrderStatus.CONFIRMED.value,
            payment_status=PaymentStatus.PAID.value,
            checkout_session_id=checkout_session_id,
            payment_intent_id=payment_intent_id,
            created_at=now,
            updated_at=now,
        )
        order._add_items(items_data)
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                customer_id=customer_id or "",
                checkout_session_id=checkout_session_id,
                items=json.dumps(items_data),
                total=total,
                currency=currency,
                placed_at=now,
            )
        )
        return order

    def _add_items(self, items_data: list[dict]) -> None:
        for item in items_data:
            flavor_ids = item.get("flavor_ids") or []
            self.add_items(
                OrderItem(
                    product_id=item["product_id"],
                    quantity=item["quantity"],
                    unit_price=item["unit_price"],
                    line_total=item.get("line_total", item["unit_price"] * item["quantity"]),
                    flavor_ids=json.dumps(flavor_ids),
                    custom_pack_name=item.get("custom_pack_name"),
                )
            )

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.PAID.value

    @property
    def awaiting_shipment(self) -> bool:
        """Paid, addressed, and no shipment recorded yet."""
        return self.is_paid and not self.shipment_id and self.shipping_address is not None

    def age(self, now: datetime | None = None):
        now = now or datetime.now(UTC)
        created_at = self.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=UTC)
        return now - created_at

    # -------------------------------------------------------------------
    # Payment transitions
    # -------------------------------------------------------------------
    def confirm_payment(
        self,
        checkout_session_id: str | None = None,
        payment_intent_id: str | None = None,
        shipping_address: dict | None = None,
    ) -> bool:
        """Mark the order CONFIRMED/PAID.

        Returns False without touching anything when the order is already
        paid, which makes duplicate deliveries harmless. An address is only
        recorded when the order does not carry one yet.
        """
        if self.is_paid:
            return False

        now = datetime.now(UTC)
        with atomic_change(self):
            self.status = OrderStatus.CONFIRMED.value
            self.payment_status = PaymentStatus.PAID.value
            if checkout_session_id and not self.checkout_session_id:
                self.checkout_session_id = checkout_session_id
            if payment_intent_id and not self.payment_intent_id:
                self.payment_intent_id = payment_intent_id
            if shipping_address and self.shipping_address is None:
                self.shipping_address = ShippingAddress(**shipping_address)
            self.updated_at = now

        self.raise_(
            OrderPaid(
                order_id=str(self.id),
                customer_id=str(self.customer_id or ""),
                total=self.total,
                currency=self.currency,
                checkout_session_id=self.checkout_session_id or "",
                paid_at=now,
            )
        )
        return True

    def record_payment_failure(self, reason: str = "") -> bool:
        """Mark the payment FAILED, leaving the lifecycle status alone.

        A failed retry never cancels an order, and a paid order cannot fail.
        """
        if self.is_paid or self.payment_status == PaymentStatus.FAILED.value:
            return False

        now = datetime.now(UTC)
        self.payment_status = PaymentStatus.FAILED.value
        self.updated_at = now
        self.raise_(
            OrderPaymentFailed(
                order_id=str(self.id),
                reason=reason or "Payment failed",
                failed_at=now,
            )
        )
        return True

    # -------------------------------------------------------------------
    # Shipment
    # -------------------------------------------------------------------
    def record_shipment(
        self,
        shipment_id: str,
        label_url: str | None = None,
        carrier: str | None = None,
        service_level: str | None = None,
        tracking_number: str | None = None,
    ) -> bool:
        """Attach the external shipment reference. Set at most once, never cleared."""
        if not self.is_paid:
            raise ValidationError({"shipment_id": ["Shipments can only be recorded for paid orders"]})
        if not shipment_id:
            raise ValidationError({"shipment_id": ["Shipment reference is required"]})
        if self.shipment_id:
            if self.shipment_id == shipment_id:
                return False
            raise ValidationError({"shipment_id": [f"Order already has shipment {self.shipment_id}"]})

        now = datetime.now(UTC)
        self.shipment_id = shipment_id
        self.label_url = label_url
        self.carrier = carrier
        self.service_level = service_level
        self.tracking_number = tracking_number
        self.updated_at = now
        self.raise_(
            OrderShipmentRecorded(
                order_id=str(self.id),
                shipment_id=shipment_id,
                carrier=carrier or "",
                label_url=label_url or "",
                recorded_at=now,
            )
        )
        return True

    def record_tracking(self, tracking_number: str | None = None, tracking_status: str | None = None) -> bool:
        """Fill in carrier tracking for the recorded shipment.

        A tracking number, once known, is never replaced. The status follows
        the carrier's latest report. Payment and lifecycle status are untouched.
        """
        if not self.shipment_id:
            raise ValidationError({"shipment_id": ["No shipment recorded for this order"]})

        changed = False
        if tracking_number and not self.tracking_number:
            self.tracking_number = tracking_number
            changed = True
        if tracking_status and tracking_status != self.tracking_status:
            self.tracking_status = tracking_status
            changed = True
        if not changed:
            return False

        now = datetime.now(UTC)
        self.updated_at = now
        self.raise_(
            OrderTrackingUpdated(
                order_id=str(self.id),
                shipment_id=self.shipment_id,
                tracking_number=self.tracking_number or "",
                tracking_status=self.tracking_status or "",
                updated_at=now,
            )
        )
        return True
