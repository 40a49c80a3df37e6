"""Order payment failure — command and handler.

A failed payment only touches ``payment_status``; the order stays open so the
customer can retry, and a paid order is never downgraded.
"""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.order import Order


@ordering.command(part_of="Order")
class RecordPaymentFailure:
    order_id = Identifier(required=True)
    reason = String(max_length=500)
    expected_payment_status = String(max_length=20)


@ordering.command_handler(part_of=Order)
class RecordPaymentFailureHandler:
    @handle(RecordPaymentFailure)
    def record_payment_failure(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)

        if command.expected_payment_status and order.payment_status != command.expected_payment_status:
            return False

        changed = order.record_payment_failure(command.reason or "")
        if changed:
            repo.add(order)
        return changed
