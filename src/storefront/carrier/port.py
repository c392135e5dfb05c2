"""Carrier port: the interface label management programs against.

Adapters book a shipment to a pickup point and download the label for a
booked shipment. Failures surface as CarrierUnavailable (transport, timeout)
or CarrierRejected (the carrier answered with an error).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class ShippingParty:
    """A sender or recipient as the carrier sees it."""

    name: str
    address1: str
    city: str
    postal_code: str
    country: str
    address2: str | None = None
    phone: str | None = None
    email: str | None = None

    @property
    def street(self) -> str:
        return f"{self.address1}, {self.address2}" if self.address2 else self.address1


@dataclass(frozen=True)
class ShipmentRequest:
    reference: str
    sender: ShippingParty
    recipient: ShippingParty
    pickup_point_id: str
    weight_grams: int
    declared_value: int = 0  # cents


@dataclass(frozen=True)
class LabelDocument:
    content: bytes
    content_type: str = "application/pdf"
    extension: str = "pdf"


class CarrierPort(ABC):
    """Abstract interface for carrier adapters."""

    @abstractmethod
    def create_shipment(self, request: ShipmentRequest) -> str:
        """Book the shipment and return the carrier's shipment number."""
        ...

    @abstractmethod
    def fetch_label(self, shipment_number: str) -> LabelDocument:
        """Download the printable label for a booked shipment."""
        ...
