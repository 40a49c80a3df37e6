"""Payment gateway port (abstract interface).

Defines the contract the reconciliation engine, the drift sweep and the
checkout builder program against. FakeGateway (dev/test) and StripeGateway
(production) both implement it, so no domain or application code knows which
processor is behind it.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class CheckoutLineItem:
    """One cart line, priced in minor currency units."""

    name: str
    unit_amount: int
    quantity: int


@dataclass(frozen=True)
class ShippingOption:
    display_name: str = "Standard Shipping"
    amount: int = 0


@dataclass(frozen=True)
class SessionRequest:
    """Everything needed to open a hosted checkout session."""

    line_items: tuple[CheckoutLineItem, ...]
    metadata: dict[str, str]
    success_url: str
    cancel_url: str
    currency: str = "usd"
    customer_email: str | None = None
    allowed_countries: tuple[str, ...] = ("US", "CA")
    billing_address_required: bool = True
    shipping_options: tuple[ShippingOption, ...] = (ShippingOption(),)


@dataclass(frozen=True)
class CreatedSession:
    session_id: str
    url: str


@dataclass(frozen=True)
class CheckoutSessionRecord:
    """The processor's view of a checkout session.

    Address data is kept as the processor reported it; turning it into
    address candidates is the ledger's business.
    """

    session_id: str
    payment_status: str
    payment_intent_id: str | None = None
    amount_total: int | None = None
    currency: str | None = None
    metadata: dict = field(default_factory=dict)
    customer_email: str | None = None
    customer_name: str | None = None
    shipping_details: dict | None = None
    customer_details: dict | None = None
    created: int | None = None

    @property
    def is_paid(self) -> bool:
        return self.payment_status in ("paid", "no_payment_required")

    @classmethod
    def from_payload(cls, data: dict) -> "CheckoutSessionRecord":
        """Build a record from a Checkout Session JSON object."""
        customer_details = data.get("customer_details") or None
        # Newer API versions nest shipping under collected_information
        collected = data.get("collected_information") or {}
        shipping = data.get("shipping_details") or collected.get("shipping_details") or data.get("shipping") or None
        payment_intent = data.get("payment_intent")
        if isinstance(payment_intent, dict):
            payment_intent = payment_intent.get("id")
        return cls(
            session_id=data["id"],
            payment_status=data.get("payment_status") or "unpaid",
            payment_intent_id=payment_intent,
            amount_total=data.get("amount_total"),
            currency=data.get("currency"),
            metadata=dict(data.get("metadata") or {}),
            customer_email=(customer_details or {}).get("email") or data.get("customer_email"),
            customer_name=(customer_details or {}).get("name"),
            shipping_details=shipping,
            customer_details=customer_details,
            created=data.get("created"),
        )


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def create_checkout_session(self, request: SessionRequest) -> CreatedSession:
        """Open a hosted checkout session and return where to send the buyer."""
        ...

    @abstractmethod
    def find_session_by_payment_intent(self, payment_intent_id: str) -> CheckoutSessionRecord | None:
        """Return the checkout session that created the given payment intent."""
        ...

    @abstractmethod
    def find_sessions_for_orders(
        self, order_ids: Iterable[str], created_after: datetime
    ) -> dict[str, CheckoutSessionRecord]:
        """Map each order id to its most relevant checkout session.

        Only sessions created at or after ``created_after`` are considered; an
        order placed then cannot have been paid through an earlier session.
        Orders without a session are absent from the result.
        """
        ...


def pick_sessions(
    records: Iterable[CheckoutSessionRecord], order_ids: Iterable[str]
) -> dict[str, CheckoutSessionRecord]:
    """Per order, a paid session wins; otherwise the most recent one."""
    wanted = {str(order_id) for order_id in order_ids}
    picked: dict[str, CheckoutSessionRecord] = {}
    for record in records:
        order_id = record.metadata.get("orderId")
        if order_id not in wanted:
            continue
        current = picked.get(order_id)
        if current is None or (record.is_paid, record.created or 0) > (current.is_paid, current.created or 0):
            picked[order_id] = record
    return picked
