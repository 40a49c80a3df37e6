"""Ledger queries for the Order aggregate."""

from collections.abc import Iterator

from ordering.domain import ordering
from ordering.order.order import Order, PaymentStatus


@ordering.repository(part_of=Order)
class OrderRepository:
    """Standard get/add plus the lookups reconciliation needs."""

    def find_by_checkout_session(self, checkout_session_id: str) -> Order | None:
        """The order materialized for a checkout session, if any."""
        if not checkout_session_id:
            return None
        return self._dao.query.filter(checkout_session_id=checkout_session_id).all().first

    def find_by_shipment_reference(self, shipment_id: str | None = None, tracking_number: str | None = None):
        """The order a carrier notification refers to, by shipment id or tracking number."""
        if shipment_id:
            found = self._dao.query.filter(shipment_id=shipment_id).all().first
            if found is not None:
                return found
        if tracking_number:
            return self._dao.query.filter(tracking_number=tracking_number).all().first
        return None

    def find_for_customer(self, customer_id: str, limit: int = 50, offset: int = 0) -> list[Order]:
        """A customer's orders, newest first."""
        return (
            self._dao.query.filter(customer_id=customer_id)
            .order_by("-created_at")
            .offset(offset)
            .limit(limit)
            .all()
            .items
        )

    def pending_payment_batches(self, batch_size: int = 500) -> Iterator[list[Order]]:
        """Every order still waiting for the processor, oldest first, in batches.

        Pages by ``created_at`` rather than by offset, so orders that leave
        ``pending`` while a batch is processed do not shift later pages. Orders
        sharing the boundary timestamp are excluded by id.
        """
        boundary = None
        at_boundary: list[str] = []
        while True:
            query = self._dao.query.filter(payment_status=PaymentStatus.PENDING.value)
            if boundary is not None:
                query = query.filter(created_at__gte=boundary)
            if at_boundary:
                query = query.exclude(id__in=at_boundary)
            batch = query.order_by("created_at").limit(batch_size).all().items
            if not batch:
                return

            yield batch

            newest = batch[-1].created_at
            if newest != boundary:
                at_boundary = []
            at_boundary.extend(str(order.id) for order in batch if order.created_at == newest)
            boundary = newest
            if len(batch) < batch_size:
                return
