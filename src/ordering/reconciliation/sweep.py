"""Drift reconciliation sweep.

Webhooks get lost. The sweep walks every order still waiting for payment,
asks the processor what actually happened, and repairs the ledger:

    session  session status  order age  action
    -------  --------------  ---------  ------------------------
    none     -               > stale    mark payment failed
    none     -               <= stale   leave (unresolved)
    found    paid            any        confirm as paid (fixed)
    found    unpaid          any        mark payment failed
    found    anything else   any        leave (unresolved)

Every write is conditional on the order still being ``pending`` when the
order lock is held, so a webhook that lands mid-sweep always wins.
"""

import json
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import UTC, datetime, timedelta

import structlog
from protean.utils.globals import current_domain

from fulfillment.shipment.trigger import ShipmentTrigger
from ordering.order.address import resolve
from ordering.order.confirmation import ConfirmOrderPayment
from ordering.order.locks import OrderLocks
from ordering.order.order import Order, PaymentStatus
from ordering.order.payment import RecordPaymentFailure
from ordering.reconciliation.engine import address_of, session_candidates
from payments.gateway.port import CheckoutSessionRecord, PaymentGateway
from shared.errors import IncompleteAddressError, PaymentGatewayError

logger = structlog.get_logger(__name__)

DEFAULT_STALE_AFTER = timedelta(hours=24)


@dataclass
class SweepReport:
    fixed_count: int = 0
    failed_count: int = 0
    unresolved_count: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=UTC)


class DriftSweep:
    def __init__(
        self,
        gateway: PaymentGateway,
        shipment_trigger: ShipmentTrigger,
        locks: OrderLocks | None = None,
        stale_after: timedelta = DEFAULT_STALE_AFTER,
        clock: Callable[[], datetime] = _utcnow,
        batch_size: int = 500,
    ):
        self.gateway = gateway
        self.shipment_trigger = shipment_trigger
        self.locks = locks or OrderLocks()
        self.stale_after = stale_after
        self.clock = clock
        self.batch_size = batch_size

    def sweep(self) -> SweepReport:
        report = SweepReport()
        now = self.clock()
        repo = current_domain.repository_for(Order)
        logger.info("Drift sweep started")

        for batch in repo.pending_payment_batches(batch_size=self.batch_size):
            order_ids = [str(order.id) for order in batch]
            try:
                sessions = self.gateway.find_sessions_for_orders(
                    order_ids, created_after=_as_utc(batch[0].created_at)
                )
            except PaymentGatewayError as exc:
                logger.warning(
                    "Processor lookup failed; batch left for next sweep",
                    orders=len(order_ids),
                    error=str(exc),
                )
                report.unresolved_count += len(order_ids)
                continue

            for order in batch:
                self._reconcile(order, sessions.get(str(order.id)), now, report)

        logger.info("Drift sweep finished", **report.to_dict())
        return report

    def _reconcile(
        self, order: Order, session: CheckoutSessionRecord | None, now: datetime, report: SweepReport
    ) -> None:
        order_id = str(order.id)
        if session is None:
            if order.age(now) > self.stale_after:
                self._mark_failed(order_id, "No checkout session found for stale order", report)
            else:
                report.unresolved_count += 1
        elif session.is_paid:
            self._mark_paid(order_id, session, report)
        elif session.payment_status == "unpaid":
            self._mark_failed(order_id, "Checkout session unpaid", report)
        else:
            report.unresolved_count += 1

    def _mark_failed(self, order_id: str, reason: str, report: SweepReport) -> None:
        with self.locks.hold(OrderLocks.order_key(order_id)):
            changed = current_domain.process(
                RecordPaymentFailure(
                    order_id=order_id,
                    reason=reason,
                    expected_payment_status=PaymentStatus.PENDING.value,
                ),
                asynchronous=False,
            )
        if changed:
            logger.info("Drift sweep marked payment failed", order_id=order_id, reason=reason)
            report.failed_count += 1
        else:
            report.unresolved_count += 1

    def _mark_paid(self, order_id: str, session: CheckoutSessionRecord, report: SweepReport) -> None:
        repo = current_domain.repository_for(Order)
        with self.locks.hold(OrderLocks.order_key(order_id)):
            order = repo.get(order_id)
            resolved = None
            if order.shipping_address is None:
                try:
                    resolved = resolve(session_candidates(session))
                except IncompleteAddressError as exc:
                    logger.warning("Paid session has no complete address", order_id=order_id, missing=exc.missing_fields)

            changed = current_domain.process(
                ConfirmOrderPayment(
                    order_id=order_id,
                    checkout_session_id=session.session_id,
                    payment_intent_id=session.payment_intent_id,
                    shipping_address=json.dumps(resolved.to_dict()) if resolved else None,
                    expected_payment_status=PaymentStatus.PENDING.value,
                ),
                asynchronous=False,
            )
            order = repo.get(order_id)

        if not changed:
            report.unresolved_count += 1
            return

        logger.info("Drift sweep confirmed missed payment", order_id=order_id, session_id=session.session_id)
        report.fixed_count += 1
        if order.awaiting_shipment:
            self.shipment_trigger.trigger(order_id, address_of(order))
