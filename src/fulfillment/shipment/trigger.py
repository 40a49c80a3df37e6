"""Shipment trigger — buys a label once an order is paid.

Runs after the payment transition has committed and never reports failure to
its caller: a carrier outage must not turn a processed payment into a failed
webhook delivery. A failed purchase is logged and the order keeps an empty
``shipment_id``; neither redelivered events nor the drift sweep buy a label for
an order that is already paid.
"""

import structlog
from protean.utils.globals import current_domain

from fulfillment.carrier.port import DEFAULT_PARCEL, CarrierPort, Parcel, ShipmentRequest, ShipmentResult
from ordering.order.address import CanonicalAddress
from ordering.order.locks import OrderLocks
from ordering.order.shipment import RecordShipment

logger = structlog.get_logger(__name__)


class ShipmentTrigger:
    def __init__(
        self,
        carrier: CarrierPort,
        locks: OrderLocks | None = None,
        parcels: tuple[Parcel, ...] = (DEFAULT_PARCEL,),
    ):
        self.carrier = carrier
        self.locks = locks or OrderLocks()
        self.parcels = parcels

    def trigger(self, order_id: str, address: CanonicalAddress) -> ShipmentResult | None:
        order_id = str(order_id)
        try:
            rates = self.carrier.get_rates(address, self.parcels)
            if not rates:
                logger.warning("No shipping rates available for order", order_id=order_id)
                return None

            # Provider order is the preference order
            rate = rates[0]
            result = self.carrier.create_shipment(
                ShipmentRequest(order_id=order_id, address=address, parcels=self.parcels),
                rate,
            )
            with self.locks.hold(OrderLocks.order_key(order_id)):
                current_domain.process(
                    RecordShipment(
                        order_id=order_id,
                        shipment_id=result.shipment_id,
                        label_url=result.label_url,
                        carrier=result.carrier,
                        service_level=result.service_level,
                        tracking_number=result.tracking_number,
                    ),
                    asynchronous=False,
                )
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "Shipment creation failed; payment outcome unaffected",
                order_id=order_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return None

        logger.info(
            "Shipment recorded for order",
            order_id=order_id,
            shipment_id=result.shipment_id,
            carrier=result.carrier,
        )
        return result
