"""Application tests for the order ledger commands and repository queries."""

import json
from datetime import UTC, datetime, timedelta

import pytest
from ordering.order.confirmation import ConfirmOrderPayment
from ordering.order.creation import CreateOrder, PlaceOrder
from ordering.order.order import Order, OrderStatus, PaymentStatus
from ordering.order.payment import RecordPaymentFailure
from ordering.order.shipment import RecordShipment
from protean import current_domain
from protean.exceptions import ValidationError

ITEMS = json.dumps([{"product_id": "prod-001", "quantity": 2, "unit_price": 24.5}])
ADDRESS = json.dumps(
    {
        "name": "Jane Doe",
        "street1": "1 Main St",
        "city": "Springfield",
        "state": "IL",
        "postal_code": "62701",
        "country": "US",
        "source": "processor_shipping",
    }
)


def _create_order(**overrides):
    fields = {"customer_id": "cust-001", "items": ITEMS, "total": 49.0}
    fields.update(overrides)
    return current_domain.process(CreateOrder(**fields), asynchronous=False)


def _place_order(session_id="cs_001"):
    return current_domain.process(
        PlaceOrder(
            customer_id="cust-001",
            items=ITEMS,
            total=49.0,
            shipping_address=ADDRESS,
            checkout_session_id=session_id,
            payment_intent_id="pi_001",
        ),
        asynchronous=False,
    )


def _get(order_id):
    return current_domain.repository_for(Order).get(order_id)


class TestCreateOrder:
    def test_persists_pending_order(self):
        order = _get(_create_order(notes="Leave at door"))
        assert order.status == OrderStatus.PENDING_PAYMENT.value
        assert order.payment_status == PaymentStatus.PENDING.value
        assert order.notes == "Leave at door"
        assert len(order.items) == 1

    def test_guest_order(self):
        order = _get(_create_order(customer_id=None))
        assert order.customer_id is None


class TestPlaceOrder:
    def test_persists_paid_order(self):
        order = _get(_place_order())
        assert order.is_paid
        assert order.checkout_session_id == "cs_001"
        assert order.shipping_address.source == "processor_shipping"

    def test_one_order_per_session(self):
        first = _place_order("cs_dup")
        with pytest.raises(ValidationError) as exc:
            _place_order("cs_dup")
        assert "checkout_session_id" in exc.value.messages
        assert str(current_domain.repository_for(Order).find_by_checkout_session("cs_dup").id) == first
        assert current_domain.repository_for(Order)._dao.query.all().total == 1


class TestConfirmOrderPayment:
    def test_confirms_and_records_address(self):
        order_id = _create_order()
        changed = current_domain.process(
            ConfirmOrderPayment(order_id=order_id, checkout_session_id="cs_001", shipping_address=ADDRESS),
            asynchronous=False,
        )
        assert changed is True
        order = _get(order_id)
        assert order.is_paid
        assert order.shipping_address.street1 == "1 Main St"

    def test_conditional_write_skipped_when_status_moved(self):
        order_id = _create_order()
        current_domain.process(RecordPaymentFailure(order_id=order_id, reason="Declined"), asynchronous=False)
        changed = current_domain.process(
            ConfirmOrderPayment(order_id=order_id, expected_payment_status=PaymentStatus.PENDING.value),
            asynchronous=False,
        )
        assert changed is False
        assert _get(order_id).payment_status == PaymentStatus.FAILED.value


class TestRecordPaymentFailure:
    def test_marks_failed(self):
        order_id = _create_order()
        changed = current_domain.process(RecordPaymentFailure(order_id=order_id, reason="Declined"), asynchronous=False)
        assert changed is True
        assert _get(order_id).payment_status == PaymentStatus.FAILED.value

    def test_paid_order_untouched(self):
        order_id = _place_order()
        changed = current_domain.process(RecordPaymentFailure(order_id=order_id, reason="Late"), asynchronous=False)
        assert changed is False
        assert _get(order_id).is_paid


class TestRecordShipment:
    def test_records_reference_once(self):
        order_id = _place_order()
        current_domain.process(
            RecordShipment(order_id=order_id, shipment_id="ship-001", carrier="USPS"),
            asynchronous=False,
        )
        assert _get(order_id).shipment_id == "ship-001"
        with pytest.raises(ValidationError):
            current_domain.process(RecordShipment(order_id=order_id, shipment_id="ship-002"), asynchronous=False)
        assert _get(order_id).shipment_id == "ship-001"


class TestOrderRepository:
    def test_find_by_unknown_session(self):
        repo = current_domain.repository_for(Order)
        assert repo.find_by_checkout_session("cs_missing") is None
        assert repo.find_by_checkout_session("") is None

    def test_pending_batches_oldest_first(self):
        repo = current_domain.repository_for(Order)
        newer = _create_order()
        older = _create_order()
        order = repo.get(older)
        order.created_at = datetime.now(UTC) - timedelta(days=2)
        repo.add(order)
        _place_order()

        batches = list(repo.pending_payment_batches())
        assert [[str(o.id) for o in batch] for batch in batches] == [[older, newer]]

    def test_pending_batches_cover_every_order(self):
        created = {_create_order() for _ in range(5)}
        batches = list(current_domain.repository_for(Order).pending_payment_batches(batch_size=2))
        assert [len(batch) for batch in batches] == [2, 2, 1]
        assert {str(o.id) for batch in batches for o in batch} == created

    def test_pending_batches_split_on_shared_timestamp(self):
        repo = current_domain.repository_for(Order)
        moment = datetime.now(UTC) - timedelta(hours=1)
        created = set()
        for _ in range(3):
            order = repo.get(_create_order())
            order.created_at = moment
            repo.add(order)
            created.add(str(order.id))

        batches = list(repo.pending_payment_batches(batch_size=2))
        assert {str(o.id) for batch in batches for o in batch} == created
        assert sum(len(batch) for batch in batches) == 3

    def test_find_for_customer_newest_first(self):
        repo = current_domain.repository_for(Order)
        older = _create_order(customer_id="cust-002")
        order = repo.get(older)
        order.created_at = datetime.now(UTC) - timedelta(days=1)
        repo.add(order)
        newer = _create_order(customer_id="cust-002")
        _create_order(customer_id="cust-003")

        assert [str(o.id) for o in repo.find_for_customer("cust-002")] == [newer, older]
