"""Domain events for the Order aggregate.

Raised alongside state changes so downstream consumers can follow an order's
payment and shipment lifecycle without polling the order table.
"""

from protean.fields import DateTime, Float, Identifier, String, Text

from ordering.domain import ordering


@ordering.event(part_of="Order")
class OrderCreated:
    """An order was created ahead of payment (eager checkout)."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = String()  # empty for guest checkout
    items = Text(required=True)  # JSON: list of item dicts
    total = Float(required=True)
    currency = String(default="USD")
    created_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderPlaced:
    """A deferred order was materialized from a successful payment."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = String()
    checkout_session_id = String(required=True)
    items = Text(required=True)  # JSON: list of item dicts
    total = Float(required=True)
    currency = String(default="USD")
    placed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderPaid:
    """Payment for an existing order was confirmed by the processor."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = String()
    total = Float(required=True)
    currency = String(default="USD")
    checkout_session_id = String()
    paid_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderPaymentFailed:
    """A payment attempt for the order failed; the order stays open for retry."""

    __version__ = 1

    order_id = Identifier(required=True)
    reason = String(required=True)
    failed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderShipmentRecorded:
    """A shipping label was purchased and its reference attached to the order."""

    __version__ = 1

    order_id = Identifier(required=True)
    shipment_id = String(required=True)
    carrier = String()
    label_url = String()
    recorded_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderTrackingUpdated:
    """The carrier reported tracking progress for the order's shipment."""

    __version__ = 1

    order_id = Identifier(required=True)
    shipment_id = String(required=True)
    tracking_number = String()
    tracking_status = String()
    updated_at = DateTime(required=True)
