"""Carrier adapter abstraction — pluggable shipping rate/label provider."""

import os

from ordering.order.address import AddressSource, CanonicalAddress


def _origin_from_env() -> CanonicalAddress:
    return CanonicalAddress(
        name=os.environ.get("SHIP_FROM_NAME", ""),
        email=os.environ.get("SHIP_FROM_EMAIL", ""),
        phone=os.environ.get("SHIP_FROM_PHONE", ""),
        street1=os.environ.get("SHIP_FROM_STREET1", ""),
        street2=os.environ.get("SHIP_FROM_STREET2", ""),
        city=os.environ.get("SHIP_FROM_CITY", ""),
        state=os.environ.get("SHIP_FROM_STATE", ""),
        postal_code=os.environ.get("SHIP_FROM_POSTAL_CODE", ""),
        country=os.environ.get("SHIP_FROM_COUNTRY", "US"),
        source=AddressSource.CLIENT_METADATA,
    )


def build_carrier():
    """Return the carrier adapter named by CARRIER_ADAPTER (fake by default)."""
    adapter = os.environ.get("CARRIER_ADAPTER", "fake")
    if adapter == "fake":
        from fulfillment.carrier.fake_adapter import FakeCarrier

        return FakeCarrier()
    if adapter == "shippo":
        from fulfillment.carrier.shippo_adapter import ShippoCarrier

        token = os.environ.get("SHIPPO_API_TOKEN")
        if not token:
            raise ValueError("SHIPPO_API_TOKEN must be set when CARRIER_ADAPTER=shippo")
        return ShippoCarrier(
            api_token=token,
            from_address=_origin_from_env(),
            timeout=float(os.environ.get("CARRIER_TIMEOUT_SECONDS", "10")),
        )
    raise ValueError(f"Unknown carrier adapter: {adapter}")
