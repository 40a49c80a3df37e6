"""Error contracts shared by the ordering, payments and fulfillment packages.

Every error carries a machine-readable ``code`` and the HTTP status the API
layer answers with, plus an optional list of offending ``fields``.
"""


class ReconciliationError(Exception):
    """Base class for all reconciliation errors."""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        status_code: int = 500,
        fields: list[str] | None = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.fields = list(fields or [])
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"detail": self.message, "code": self.code}
        if self.fields:
            body["fields"] = self.fields
        return body


class SignatureVerificationError(ReconciliationError):
    """The webhook body could not be proven to come from the payment processor.

    Raised for a missing signature header, a missing secret, a stale timestamp
    and a signature mismatch alike; the reason is only logged.
    """

    def __init__(self, message: str = "Webhook signature verification failed"):
        super().__init__(message, code="SIGNATURE_VERIFICATION_FAILED", status_code=400)


class MalformedEventError(ReconciliationError):
    """A verified webhook body is not a well-formed processor event."""

    def __init__(self, message: str):
        super().__init__(message, code="MALFORMED_EVENT", status_code=400)


class OrderNotFoundError(ReconciliationError):
    """An event or request references an order the ledger does not know."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found", code="ORDER_NOT_FOUND", status_code=404)


class IncompleteAddressError(ReconciliationError):
    """No address candidate satisfies the completeness bar."""

    def __init__(self, missing_fields: list[str]):
        self.missing_fields = list(missing_fields)
        super().__init__(
            f"Complete shipping address required; missing: {', '.join(self.missing_fields)}",
            code="INCOMPLETE_ADDRESS",
            status_code=400,
            fields=self.missing_fields,
        )


class PayloadTooLargeError(ReconciliationError):
    """The compact order payload does not fit the processor's metadata limit."""

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(
            f"Order data too large for payment metadata ({size} > {limit} bytes)",
            code="PAYLOAD_TOO_LARGE",
            status_code=400,
            fields=["order"],
        )


class EmptyCartError(ReconciliationError):
    """A checkout session was requested without any cart lines."""

    def __init__(self):
        super().__init__("No items provided", code="EMPTY_CART", status_code=400, fields=["items"])


class ShipmentSideEffectError(ReconciliationError):
    """The shipping provider failed; always recovered inside the shipment trigger."""

    def __init__(self, message: str):
        super().__init__(message, code="SHIPMENT_FAILED", status_code=502)


class PaymentGatewayError(ReconciliationError):
    """The payment processor could not be reached or rejected the call."""

    def __init__(self, message: str):
        super().__init__(message, code="PAYMENT_GATEWAY_ERROR", status_code=502)
