"""Carrier port — abstract interface for shipping rate/label providers.

All carrier adapters implement this interface. The shipment trigger programs
against the port; adapters are chosen by configuration at startup.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from ordering.order.address import CanonicalAddress


@dataclass(frozen=True)
class Parcel:
    length: float
    width: float
    height: float
    weight: float
    distance_unit: str = "in"
    mass_unit: str = "lb"


DEFAULT_PARCEL = Parcel(length=6, width=4, height=2, weight=0.5)


@dataclass(frozen=True)
class Rate:
    rate_id: str
    carrier: str
    service_name: str
    amount: float
    currency: str = "USD"
    estimated_days: int | None = None


@dataclass(frozen=True)
class ShipmentRequest:
    order_id: str
    address: CanonicalAddress
    parcels: tuple[Parcel, ...] = (DEFAULT_PARCEL,)


@dataclass(frozen=True)
class ShipmentResult:
    shipment_id: str
    label_url: str | None = None
    tracking_number: str | None = None
    carrier: str | None = None
    service_level: str | None = None


class CarrierPort(ABC):
    """Abstract interface for carrier adapters.

    Adapters raise ShipmentSideEffectError when the provider fails.
    """

    @abstractmethod
    def get_rates(self, address: CanonicalAddress, parcels: tuple[Parcel, ...]) -> list[Rate]:
        """Quote rates for shipping the parcels to the address, in provider order."""
        ...

    @abstractmethod
    def create_shipment(self, request: ShipmentRequest, rate: Rate) -> ShipmentResult:
        """Purchase a label for a rate returned by ``get_rates``."""
        ...
