"""Webhook authenticity check.

A payment event is only acted on once its signature has been verified over the
exact raw request body with the shared webhook secret. Every failure (missing
header, missing secret, mismatch, stale timestamp) surfaces as the same
SignatureVerificationError; only the log line says which one it was.
"""

import json
from dataclasses import dataclass, field

import stripe
import structlog

from shared.errors import MalformedEventError, SignatureVerificationError

logger = structlog.get_logger(__name__)

DEFAULT_TOLERANCE_SECONDS = 300


@dataclass(frozen=True)
class VerifiedEvent:
    """A processor event whose origin has been proven."""

    event_id: str
    event_type: str
    data_object: dict
    created: int | None = None
    raw: dict = field(default_factory=dict, repr=False)


def verify(
    raw_payload: bytes,
    signature_header: str | None,
    shared_secret: str | None,
    tolerance: int = DEFAULT_TOLERANCE_SECONDS,
) -> VerifiedEvent:
    if not signature_header or not shared_secret:
        logger.warning(
            "Webhook signature or secret missing",
            has_signature=bool(signature_header),
            has_secret=bool(shared_secret),
        )
        raise SignatureVerificationError()

    try:
        payload = raw_payload.decode("utf-8")
    except UnicodeDecodeError as exc:
        logger.warning("Webhook body is not UTF-8")
        raise SignatureVerificationError() from exc

    try:
        stripe.WebhookSignature.verify_header(payload, signature_header, shared_secret, tolerance)
    except stripe.SignatureVerificationError as exc:
        logger.warning("Webhook signature verification failed", reason=str(exc))
        raise SignatureVerificationError() from exc

    return parse_verified(payload)


def parse_verified(payload: str) -> VerifiedEvent:
    """Shape check for an already verified body."""
    try:
        body = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise MalformedEventError("Webhook body is not valid JSON") from exc

    if not isinstance(body, dict):
        raise MalformedEventError("Webhook body must be a JSON object")
    data = body.get("data")
    data_object = data.get("object") if isinstance(data, dict) else None
    if not body.get("id") or not body.get("type") or not isinstance(data_object, dict):
        raise MalformedEventError("Webhook event requires id, type and data.object")

    return VerifiedEvent(
        event_id=str(body["id"]),
        event_type=str(body["type"]),
        data_object=data_object,
        created=body.get("created"),
        raw=body,
    )


class EventVerifier:
    """Holds the webhook secret so request handlers never read configuration."""

    def __init__(self, shared_secret: str | None, tolerance: int = DEFAULT_TOLERANCE_SECONDS):
        self.shared_secret = shared_secret
        self.tolerance = tolerance

    def verify(self, raw_payload: bytes, signature_header: str | None) -> VerifiedEvent:
        return verify(raw_payload, signature_header, self.shared_secret, self.tolerance)
