"""Shippo carrier adapter.

Uses Shippo's REST API synchronously (``async: false``) so rates and labels
come back in the same response. Every call has a bounded timeout.
"""

import httpx
import structlog

from fulfillment.carrier.port import CarrierPort, Parcel, Rate, ShipmentRequest, ShipmentResult
from ordering.order.address import CanonicalAddress
from shared.errors import ShipmentSideEffectError

logger = structlog.get_logger(__name__)

SHIPPO_API_URL = "https://api.goshippo.com"


def _address_payload(address: CanonicalAddress) -> dict:
    return {
        "name": address.name,
        "email": address.email,
        "phone": address.phone,
        "street1": address.street1,
        "street2": address.street2,
        "city": address.city,
        "state": address.state,
        "zip": address.postal_code,
        "country": address.country,
    }


def _parcel_payload(parcel: Parcel) -> dict:
    return {
        "length": str(parcel.length),
        "width": str(parcel.width),
        "height": str(parcel.height),
        "weight": str(parcel.weight),
        "distance_unit": parcel.distance_unit,
        "mass_unit": parcel.mass_unit,
    }


class ShippoCarrier(CarrierPort):
    def __init__(
        self,
        api_token: str,
        from_address: CanonicalAddress,
        timeout: float = 10.0,
        base_url: str = SHIPPO_API_URL,
        transport: httpx.BaseTransport | None = None,
    ):
        self.from_address = from_address
        self._client = httpx.Client(
            base_url=base_url,
            headers={"Authorization": f"ShippoToken {api_token}"},
            timeout=timeout,
            transport=transport,
        )
    def _post(self, path: str, payload: dict) -> dict:
        try:
            response = self._client.post(path, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Shippo request failed", path=path, error=str(exc))
            raise ShipmentSideEffectError(f"Shippo request to {path} failed: {exc}") from exc
        return response.json()

    def get_rates(self, address: CanonicalAddress, parcels: tuple[Parcel, ...]) -> list[Rate]:
        body = self._post(
            "/shipments/",
            {
                "address_from": _address_payload(self.from_address),
                "address_to": _address_payload(address),
                "parcels": [_parcel_payload(parcel) for parcel in parcels],
                "async": False,
            },
        )
        rates = [
            Rate(
                rate_id=rate["object_id"],
                carrier=rate.get("provider", ""),
                service_name=(rate.get("servicelevel") or {}).get("name", ""),
                amount=float(rate.get("amount") or 0),
                currency=rate.get("currency") or "USD",
                estimated_days=rate.get("estimated_days"),
            )
            for rate in body.get("rates") or []
        ]
        return rates

    def create_shipment(self, request: ShipmentRequest, rate: Rate) -> ShipmentResult:
        body = self._post(
            "/transactions/",
            {
                "rate": rate.rate_id,
                "label_file_type": "PDF",
                "metadata": f"Order {request.order_id}",
                "async": False,
            },
        )
        if body.get("status") != "SUCCESS":
            messages = "; ".join(m.get("text", "") for m in body.get("messages") or [])
            raise ShipmentSideEffectError(f"Label purchase failed: {messages or body.get('status')}")

        return ShipmentResult(
            shipment_id=body["object_id"],
            label_url=body.get("label_url"),
            tracking_number=body.get("tracking_number"),
            carrier=rate.carrier,
            service_level=rate.service_name,
        )
