"""Shipping labels for orders.

An order is either not yet booked with the carrier or booked, which is
recorded by its ``shipment_number``. Requesting a label:

==========  ==============  ==========================================
create      order state     result
==========  ==============  ==========================================
True        not booked      book (needs a pickup point), then fetch
True        booked          fetch only; booking is never repeated
False       not booked      NoShipmentYet
False       booked          fetch
==========  ==============  ==========================================

Carrier failures propagate unchanged; retrying is up to the caller.
"""

from dataclasses import dataclass

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier
from protean.utils.globals import current_domain

from storefront.carrier import get_carrier
from storefront.carrier.port import ShipmentRequest, ShippingParty
from storefront.domain import storefront
from storefront.exceptions import MissingPickupPoint, NoShipmentYet
from storefront.order.order import Order
from storefront.shipment.store import load_store_address

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ShippingLabel:
    order_number: str
    shipment_number: str
    content: bytes
    content_type: str = "application/pdf"
    extension: str = "pdf"

    @property
    def filename(self) -> str:
        return f"label-{self.order_number}.{self.extension}"


@storefront.command(part_of="Order")
class BookShipment:
    order_id = Identifier(required=True)


@storefront.command(part_of="Order")
class FetchShippingLabel:
    order_id = Identifier(required=True)


def shipment_request_for(order: Order, sender: ShippingParty) -> ShipmentRequest:
    recipient = ShippingParty(
        name=order.shipping_name or "",
        address1=order.shipping_street or "",
        city=order.shipping_city or "",
        postal_code=order.shipping_postal or "",
        country=order.shipping_country or sender.country,
        phone=order.shipping_phone,
        email=order.email,
    )
    return ShipmentRequest(
        reference=order.order_number,
        sender=sender,
        recipient=recipient,
        pickup_point_id=order.pickup_point_id,
        weight_grams=order.total_weight_grams(),
        declared_value=order.total or 0,
    )


@storefront.command_handler(part_of=Order)
class ShipmentLabelHandler:
    @handle(BookShipment)
    def book_shipment(self, command: BookShipment) -> str:
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)

        if order.has_shipment:
            logger.info(
                "Shipment already booked",
                order_number=order.order_number,
                shipment_number=order.shipment_number,
            )
            return order.shipment_number
        if not order.pickup_point_id:
            raise MissingPickupPoint()

        shipment_number = get_carrier().create_shipment(shipment_request_for(order, load_store_address()))
        order.record_shipment(shipment_number)
        repo.add(order)

        logger.info("Shipment booked", order_number=order.order_number, shipment_number=shipment_number)
        return shipment_number

    @handle(FetchShippingLabel)
    def fetch_label(self, command: FetchShippingLabel) -> ShippingLabel:
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        if not order.has_shipment:
            raise NoShipmentYet()

        document = get_carrier().fetch_label(order.shipment_number)
        order.record_label_fetched()
        repo.add(order)

        return ShippingLabel(
            order_number=order.order_number,
            shipment_number=order.shipment_number,
            content=document.content,
            content_type=document.content_type,
            extension=document.extension,
        )


class ShipmentLabelManager:
    def __init__(self, orders=None, process=None):
        self.orders = orders if orders is not None else current_domain.repository_for(Order)
        self._process = process

    def process(self, command):
        if self._process is not None:
            return self._process(command)
        return current_domain.process(command, asynchronous=False)

    def request_label(self, order_number: str, create: bool = False) -> ShippingLabel:
        """Return the label for ``order_number``, booking the shipment first if asked.

        Raises ObjectNotFoundError for an unknown order, MissingPickupPoint or
        NoShipmentYet when a precondition fails (no carrier call is made), and
        CarrierError subclasses when the carrier fails.
        """
        order = self.orders.find_by_order_number(order_number)
        if order is None:
            raise ObjectNotFoundError(f"Order {order_number} does not exist")

        if not order.has_shipment:
            if not create:
                raise NoShipmentYet()
            if not order.pickup_point_id:
                raise MissingPickupPoint()
            self.process(BookShipment(order_id=str(order.id)))

        return self.process(FetchShippingLabel(order_id=str(order.id)))
