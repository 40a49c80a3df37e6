"""Checkout metadata codec.

A checkout intent travels through the payment processor as string metadata on
the checkout session and is read back when the processor reports the payment.
Two intents exist:

- ``ExistingOrderIntent``: pay for an order already in the ledger
  (``orderId`` key).
- ``DeferredOrderIntent``: create the order only once payment succeeds; the
  cart travels as a compact JSON payload under ``orderData``.

The processor caps metadata values, so the encoded payload is bounded by
``metadata_limit`` bytes. The ``schema`` key versions the layout.
"""

import os
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ordering.order.address import AddressCandidate, AddressSource
from shared.errors import MalformedEventError, PayloadTooLargeError

SCHEMA_VERSION = "1"
DEFAULT_METADATA_LIMIT = 500

SCHEMA_KEY = "schema"
ORDER_ID_KEY = "orderId"
ORDER_DATA_KEY = "orderData"
OWNER_KEY = "authenticatedUserId"


def metadata_limit() -> int:
    return int(os.environ.get("CHECKOUT_METADATA_LIMIT", DEFAULT_METADATA_LIMIT))


# ---------------------------------------------------------------------------
# Compact payload
# ---------------------------------------------------------------------------
class CompactItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(alias="pid")
    quantity: int = Field(alias="qty", ge=1)
    price: float = Field(ge=0)
    total: float = Field(ge=0)
    flavor_ids: list[str] = Field(default_factory=list, alias="flavors")
    custom_pack_name: str | None = Field(default=None, alias="custom")


class AddressStub(BaseModel):
    """Whatever address the client knew at checkout time; often empty."""

    name: str = ""
    email: str = ""
    phone: str = ""
    street: str = ""
    street2: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    country: str = ""

    def to_candidate(self) -> AddressCandidate:
        return AddressCandidate(
            source=AddressSource.CLIENT_METADATA,
            name=self.name,
            email=self.email,
            phone=self.phone,
            street1=self.street,
            street2=self.street2,
            city=self.city,
            state=self.state,
            postal_code=self.zip,
            country=self.country,
        )


class CompactOrderPayload(BaseModel):
    total: float = Field(ge=0)
    notes: str | None = None
    items: list[CompactItem] = Field(min_length=1)
    address: AddressStub = Field(default_factory=AddressStub)

    def items_data(self) -> list[dict]:
        """Line items in the shape the ledger commands expect."""
        return [
            {
                "product_id": item.product_id,
                "quantity": item.quantity,
                "unit_price": item.price,
                "line_total": item.total,
                "flavor_ids": item.flavor_ids,
                "custom_pack_name": item.custom_pack_name,
            }
            for item in self.items
        ]


def encode_payload(payload: CompactOrderPayload) -> str:
    return payload.model_dump_json(by_alias=True)


def payload_size(payload: CompactOrderPayload) -> int:
    return len(encode_payload(payload).encode("utf-8"))


# ---------------------------------------------------------------------------
# Intents
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class ExistingOrderIntent:
    order_id: str
    owner_user_id: str | None = None


@dataclass(frozen=True)
class DeferredOrderIntent:
    payload: CompactOrderPayload
    owner_user_id: str | None = None


CheckoutIntent = ExistingOrderIntent | DeferredOrderIntent


def encode_intent(intent: CheckoutIntent, limit: int | None = None) -> dict[str, str]:
    """Encode an intent as processor metadata.

    Raises PayloadTooLargeError, before anything leaves the process, when a
    deferred payload does not fit in ``limit`` bytes.
    """
    limit = metadata_limit() if limit is None else limit
    metadata = {SCHEMA_KEY: SCHEMA_VERSION}
    if intent.owner_user_id:
        metadata[OWNER_KEY] = str(intent.owner_user_id)

    match intent:
        case ExistingOrderIntent(order_id=order_id):
            metadata[ORDER_ID_KEY] = str(order_id)
        case DeferredOrderIntent(payload=payload):
            encoded = encode_payload(payload)
            size = len(encoded.encode("utf-8"))
            if size > limit:
                raise PayloadTooLargeError(size, limit)
            metadata[ORDER_DATA_KEY] = encoded
    return metadata


def decode_intent(metadata: dict | None) -> CheckoutIntent | None:
    """Read an intent back from processor metadata.

    Returns None when the metadata carries neither an order id nor a deferred
    payload. Metadata without a ``schema`` key is read as version 1.
    """
    metadata = metadata or {}
    version = metadata.get(SCHEMA_KEY, SCHEMA_VERSION)
    if version != SCHEMA_VERSION:
        raise MalformedEventError(f"Unsupported checkout metadata schema: {version}")

    owner = metadata.get(OWNER_KEY) or None
    if metadata.get(ORDER_ID_KEY):
        return ExistingOrderIntent(order_id=metadata[ORDER_ID_KEY], owner_user_id=owner)
    if metadata.get(ORDER_DATA_KEY):
        try:
            payload = CompactOrderPayload.model_validate_json(metadata[ORDER_DATA_KEY])
        except ValidationError as exc:
            raise MalformedEventError(f"Unreadable checkout payload: {exc.error_count()} error(s)") from exc
        return DeferredOrderIntent(payload=payload, owner_user_id=owner)
    return None
