"""Payment events the reconciliation engine understands.

Verified processor events are narrowed into a closed set of kinds so the
engine can dispatch over them exhaustively. Anything else becomes an
``UnhandledEvent`` and is acknowledged without effect.
"""

from dataclasses import dataclass, field

from payments.gateway.port import CheckoutSessionRecord
from payments.webhook.verification import VerifiedEvent
from shared.errors import MalformedEventError

SESSION_COMPLETED_TYPES = frozenset(
    {
        "checkout.session.completed",
        "checkout.session.async_payment_succeeded",
    }
)
SESSION_FAILED_TYPES = frozenset({"checkout.session.async_payment_failed"})
INTENT_FAILED_TYPES = frozenset({"payment_intent.payment_failed"})
CHARGE_UPDATED_TYPES = frozenset({"charge.updated"})


@dataclass(frozen=True)
class SessionCompleted:
    event_id: str
    event_type: str
    session: CheckoutSessionRecord
    created: int | None = None


@dataclass(frozen=True)
class ChargeUpdated:
    event_id: str
    event_type: str
    charge_id: str
    status: str
    paid: bool
    payment_intent_id: str | None = None
    created: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded" and self.paid


@dataclass(frozen=True)
class PaymentFailed:
    event_id: str
    event_type: str
    metadata: dict = field(default_factory=dict)
    reason: str = "Payment failed"
    payment_intent_id: str | None = None
    session_id: str | None = None
    created: int | None = None


@dataclass(frozen=True)
class UnhandledEvent:
    event_id: str
    event_type: str
    created: int | None = None


PaymentEvent = SessionCompleted | ChargeUpdated | PaymentFailed | UnhandledEvent


def _intent_id(value) -> str | None:
    if isinstance(value, dict):
        return value.get("id")
    return value or None


def parse_event(verified: VerifiedEvent) -> PaymentEvent:
    obj = verified.data_object
    common = {
        "event_id": verified.event_id,
        "event_type": verified.event_type,
        "created": verified.created,
    }

    try:
        if verified.event_type in SESSION_COMPLETED_TYPES:
            return SessionCompleted(session=CheckoutSessionRecord.from_payload(obj), **common)

        if verified.event_type in SESSION_FAILED_TYPES:
            return PaymentFailed(
                metadata=dict(obj.get("metadata") or {}),
                reason="Asynchronous payment failed",
                payment_intent_id=_intent_id(obj.get("payment_intent")),
                session_id=obj["id"],
                **common,
            )

        if verified.event_type in INTENT_FAILED_TYPES:
            error = obj.get("last_payment_error") or {}
            return PaymentFailed(
                metadata=dict(obj.get("metadata") or {}),
                reason=error.get("message") or "Payment failed",
                payment_intent_id=obj["id"],
                **common,
            )

        if verified.event_type in CHARGE_UPDATED_TYPES:
            return ChargeUpdated(
                charge_id=obj["id"],
                status=obj.get("status") or "",
                paid=bool(obj.get("paid")),
                payment_intent_id=_intent_id(obj.get("payment_intent")),
                **common,
            )
    except (KeyError, TypeError, AttributeError) as exc:
        raise MalformedEventError(f"Malformed {verified.event_type} payload") from exc

    return UnhandledEvent(**common)
