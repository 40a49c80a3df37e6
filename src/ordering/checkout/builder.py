"""Checkout session builder.

Turns a checkout intent plus the cart lines into a processor-neutral
``SessionRequest``. Size and shape problems are caught here, before anything
is sent to the processor.
"""

import os
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from ordering.checkout.metadata import CheckoutIntent, encode_intent, metadata_limit
from payments.gateway.port import CheckoutLineItem, SessionRequest, ShippingOption
from shared.errors import EmptyCartError

DEFAULT_ALLOWED_COUNTRIES = ("US", "CA")


@dataclass(frozen=True)
class CartLine:
    name: str
    unit_price: float
    quantity: int = 1


def to_minor_units(amount: float) -> int:
    """Dollars to cents, rounding halves up and never going below zero."""
    cents = (Decimal(str(amount or 0)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return max(0, int(cents))


class CheckoutSessionBuilder:
    def __init__(
        self,
        metadata_limit: int | None = None,
        allowed_countries: tuple[str, ...] = DEFAULT_ALLOWED_COUNTRIES,
        currency: str = "usd",
    ):
        self.metadata_limit = metadata_limit
        self.allowed_countries = allowed_countries
        self.currency = currency

    @classmethod
    def from_env(cls) -> "CheckoutSessionBuilder":
        countries = os.environ.get("CHECKOUT_ALLOWED_COUNTRIES")
        return cls(
            metadata_limit=metadata_limit(),
            allowed_countries=(
                tuple(c.strip().upper() for c in countries.split(",") if c.strip())
                if countries
                else DEFAULT_ALLOWED_COUNTRIES
            ),
        )

    def build(
        self,
        intent: CheckoutIntent,
        line_items: list[CartLine],
        success_url: str,
        cancel_url: str,
        customer_email: str | None = None,
    ) -> SessionRequest:
        if not line_items:
            raise EmptyCartError()

        metadata = encode_intent(intent, self.metadata_limit)
        return SessionRequest(
            line_items=tuple(
                CheckoutLineItem(
                    name=str(line.name or "Item"),
                    unit_amount=to_minor_units(line.unit_price),
                    quantity=max(1, int(line.quantity or 1)),
                )
                for line in line_items
            ),
            metadata=metadata,
            success_url=success_url,
            cancel_url=cancel_url,
            currency=self.currency,
            customer_email=customer_email,
            allowed_countries=self.allowed_countries,
            billing_address_required=True,
            shipping_options=(ShippingOption(display_name="Standard Shipping", amount=0),),
        )
