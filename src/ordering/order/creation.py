"""Order creation — eager (before payment) and deferred (after payment)."""

import json

from protean import handle
from protean.fields import Float, Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.order import Order


@ordering.command(part_of="Order")
class CreateOrder:
    customer_id = Identifier()
    items = Text(required=True)  # JSON: list of item dicts
    total = Float(required=True)
    currency = String(max_length=3, default="USD")
    notes = Text()
    shipping_address = Text()  # JSON: address dict


@ordering.command(part_of="Order")
class PlaceOrder:
    """Materialize a paid order from a deferred checkout payload."""

    customer_id = Identifier()
    items = Text(required=True)  # JSON: list of item dicts
    total = Float(required=True)
    currency = String(max_length=3, default="USD")
    notes = Text()
    shipping_address = Text(required=True)  # JSON: canonical address dict
    checkout_session_id = String(required=True, max_length=255)
    payment_intent_id = String(max_length=255)


def _load(value):
    return json.loads(value) if isinstance(value, str) else value


@ordering.command_handler(part_of=Order)
class OrderCreationHandler:
    @handle(CreateOrder)
    def create_order(self, command):
        order = Order.create(
            customer_id=command.customer_id,
            items_data=_load(command.items),
            total=command.total,
            currency=command.currency or "USD",
            notes=command.notes,
            shipping_address=_load(command.shipping_address) if command.shipping_address else None,
        )
        current_domain.repository_for(Order).add(order)
        return str(order.id)

    @handle(PlaceOrder)
    def place_order(self, command):
        """One order per checkout session; a second one fails the unique check."""
        repo = current_domain.repository_for(Order)
        order = Order.place_paid(
            customer_id=command.customer_id,
            items_data=_load(command.items),
            total=command.total,
            shipping_address=_load(command.shipping_address),
            checkout_session_id=command.checkout_session_id,
            payment_intent_id=command.payment_intent_id,
            currency=command.currency or "USD",
            notes=command.notes,
        )
        repo.add(order)
        return str(order.id)
