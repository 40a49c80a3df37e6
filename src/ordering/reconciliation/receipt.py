"""Receipts for processor events that have already been reconciled.

A receipt only short-circuits replays of the exact same event id. Correctness
of duplicate handling still rests on the ledger checks made under the order
lock; receipts just save the work.
"""

from datetime import UTC, datetime

from protean.fields import DateTime, Identifier, String
from protean.utils.globals import current_domain

from ordering.domain import ordering


@ordering.aggregate
class PaymentEventReceipt:
    event_id = Identifier(identifier=True)
    event_type = String(required=True, max_length=100)
    outcome = String(required=True, max_length=50)
    order_id = String(max_length=255)
    received_at = DateTime()


def find_receipt(event_id: str) -> PaymentEventReceipt | None:
    repo = current_domain.repository_for(PaymentEventReceipt)
    return repo._dao.query.filter(event_id=event_id).all().first


def record_receipt(event_id: str, event_type: str, outcome: str, order_id: str | None = None) -> None:
    if find_receipt(event_id) is not None:
        return
    current_domain.repository_for(PaymentEventReceipt).add(
        PaymentEventReceipt(
            event_id=event_id,
            event_type=event_type,
            outcome=outcome,
            order_id=order_id,
            received_at=datetime.now(UTC),
        )
    )
