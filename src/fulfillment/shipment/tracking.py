"""Carrier tracking notifications.

Shippo posts ``{"event": ..., "data": {...}}`` to the tracking webhook:

- ``transaction_created`` / ``transaction_updated``: ``data`` is the label
  transaction; its ``object_id`` is the shipment reference stored on the order.
- ``track_updated``: ``data`` is a tracking object keyed by ``tracking_number``.

Other events are acknowledged and ignored. Shippo does not sign webhook
bodies, so the endpoint is registered with a shared token in its URL.
"""

import hmac
from dataclasses import dataclass

from shared.errors import MalformedEventError, SignatureVerificationError

TRANSACTION_EVENTS = frozenset({"transaction_created", "transaction_updated"})
TRACK_EVENTS = frozenset({"track_updated"})


@dataclass(frozen=True)
class TrackingUpdate:
    event: str
    shipment_id: str | None = None
    tracking_number: str | None = None
    tracking_status: str | None = None


def verify_token(provided: str | None, expected: str | None) -> None:
    if not expected:
        raise SignatureVerificationError("Carrier webhook token is not configured")
    if not provided or not hmac.compare_digest(provided, expected):
        raise SignatureVerificationError("Carrier webhook token mismatch")


def parse_tracking_notification(body) -> TrackingUpdate | None:
    """The update a notification carries, or None for events we do not track."""
    if not isinstance(body, dict) or not body.get("event") or not isinstance(body.get("data"), dict):
        raise MalformedEventError("Carrier notification must carry event and data")

    event, data = body["event"], body["data"]
    status = data.get("tracking_status")
    if isinstance(status, dict):
        status = status.get("status")

    if event in TRANSACTION_EVENTS:
        if not data.get("object_id"):
            raise MalformedEventError("Transaction notification without object_id")
        return TrackingUpdate(
            event=event,
            shipment_id=data["object_id"],
            tracking_number=data.get("tracking_number") or None,
            tracking_status=status or None,
        )
    if event in TRACK_EVENTS:
        if not data.get("tracking_number"):
            raise MalformedEventError("Tracking notification without tracking_number")
        return TrackingUpdate(
            event=event,
            shipment_id=data.get("transaction") or None,
            tracking_number=data["tracking_number"],
            tracking_status=status or None,
        )
    return None
