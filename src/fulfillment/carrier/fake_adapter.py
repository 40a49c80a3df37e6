"""Fake carrier adapter — deterministic carrier for testing and development.

Quotes a fixed rate card and issues mock labels and tracking numbers.
Configurable success/failure behavior for integration testing.
"""

from uuid import uuid4

from fulfillment.carrier.port import CarrierPort, Parcel, Rate, ShipmentRequest, ShipmentResult
from ordering.order.address import CanonicalAddress
from shared.errors import ShipmentSideEffectError

_RATE_CARD = (
    ("USPS", "Ground Advantage", 5.40, 5),
    ("UPS", "Ground", 8.95, 4),
    ("FedEx", "2Day", 18.20, 2),
)


class FakeCarrier(CarrierPort):
    """Fake carrier that always succeeds by default."""

    def __init__(self):
        self.should_succeed = True
        self.failure_reason = "Carrier unavailable"
        self.return_rates = True
        self.calls: list[dict] = []

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Carrier unavailable",
        return_rates: bool = True,
    ):
        """Configure the fake carrier behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.return_rates = return_rates

    def get_rates(self, address: CanonicalAddress, parcels: tuple[Parcel, ...]) -> list[Rate]:
        self.calls.append({"method": "get_rates", "address": address, "parcels": parcels})
        if not self.should_succeed:
            raise ShipmentSideEffectError(self.failure_reason)
        if not self.return_rates:
            return []
        return [
            Rate(
                rate_id=f"rate_{carrier.lower()}_{uuid4().hex[:8]}",
                carrier=carrier,
                service_name=service,
                amount=amount,
                estimated_days=days,
            )
            for carrier, service, amount, days in _RATE_CARD
        ]

    def create_shipment(self, request: ShipmentRequest, rate: Rate) -> ShipmentResult:
        self.calls.append({"method": "create_shipment", "request": request, "rate": rate})
        if not self.should_succeed:
            raise ShipmentSideEffectError(self.failure_reason)

        shipment_id = f"ship-{uuid4().hex[:8]}"
        return ShipmentResult(
            shipment_id=shipment_id,
            label_url=f"https://fake-carrier.example.com/labels/{shipment_id}.pdf",
            tracking_number=f"FAKE-{uuid4().hex[:12].upper()}",
            carrier=rate.carrier,
            service_level=rate.service_name,
        )
