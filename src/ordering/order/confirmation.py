"""Payment confirmation — command and handler."""

import json

from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.order import Order


@ordering.command(part_of="Order")
class ConfirmOrderPayment:
    order_id = Identifier(required=True)
    checkout_session_id = String(max_length=255)
    payment_intent_id = String(max_length=255)
    shipping_address = Text()  # JSON: canonical address dict
    expected_payment_status = String(max_length=20)


@ordering.command_handler(part_of=Order)
class ConfirmOrderPaymentHandler:
    @handle(ConfirmOrderPayment)
    def confirm_order_payment(self, command):
        """Returns True when the order moved to paid, False for a no-op."""
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)

        if command.expected_payment_status and order.payment_status != command.expected_payment_status:
            return False

        address = json.loads(command.shipping_address) if command.shipping_address else None
        changed = order.confirm_payment(
            checkout_session_id=command.checkout_session_id,
            payment_intent_id=command.payment_intent_id,
            shipping_address=address,
        )
        if changed:
            repo.add(order)
        return changed
