"""Shipment reference and carrier tracking — commands and handlers."""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.order import Order


@ordering.command(part_of="Order")
class RecordShipment:
    """Attach the carrier's shipment reference to a paid order."""

    order_id = Identifier(required=True)
    shipment_id = String(required=True, max_length=255)
    label_url = String(max_length=500)
    carrier = String(max_length=100)
    service_level = String(max_length=100)
    tracking_number = String(max_length=255)


@ordering.command_handler(part_of=Order)
class RecordShipmentHandler:
    @handle(RecordShipment)
    def record_shipment(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        changed = order.record_shipment(
            shipment_id=command.shipment_id,
            label_url=command.label_url,
            carrier=command.carrier,
            service_level=command.service_level,
            tracking_number=command.tracking_number,
        )
        if changed:
            repo.add(order)
        return changed


@ordering.command(part_of="Order")
class RecordTrackingUpdate:
    """Carrier tracking progress for an existing shipment."""

    shipment_id = String(max_length=255)
    tracking_number = String(max_length=255)
    tracking_status = String(max_length=50)


@ordering.command_handler(part_of=Order)
class RecordTrackingUpdateHandler:
    @handle(RecordTrackingUpdate)
    def record_tracking_update(self, command):
        """Returns the order id, or None when no order holds the shipment."""
        repo = current_domain.repository_for(Order)
        order = repo.find_by_shipment_reference(command.shipment_id, command.tracking_number)
        if order is None:
            return None
        if order.record_tracking(command.tracking_number, command.tracking_status):
            repo.add(order)
        return str(order.id)
