"""Mondial Relay adapter (Shipment API, XML over HTTP).

Shipments are booked to a Point Relais: the delivery mode carries the pickup
point as ``<country>-<id>``. The API answers with a ``StatusList``; any
status at level ``Error`` means the shipment was refused, ``Warning``
statuses are only logged. Labels are downloaded as PDF by shipment number.

Configuration comes from the environment, see ``MondialRelayCarrier.from_env``.
"""

import os
import re
import xml.etree.ElementTree as ET

import httpx
import structlog

from storefront.carrier.port import CarrierPort, LabelDocument, ShipmentRequest
from storefront.exceptions import CarrierRejected, CarrierUnavailable

logger = structlog.get_logger(__name__)

DEFAULT_API_URL = "https://connect-api.mondialrelay.com/api"
REQUEST_NAMESPACE = "http://www.example.org/Request"

MIN_WEIGHT_GRAMS = 100
MAX_WEIGHT_GRAMS = 30000
PICKUP_POINT_MODES = ("24R", "24L")

PHONE_PREFIXES = {
    "FR": "33",
    "BE": "32",
    "ES": "34",
    "IT": "39",
    "DE": "49",
    "GB": "44",
}

_HOUSE_NUMBER = re.compile(r"^(\d+[A-Z]?)\s+(.+)$", re.IGNORECASE)


def clamp_weight(weight_grams: int) -> int:
    return max(min(round(weight_grams), MAX_WEIGHT_GRAMS), MIN_WEIGHT_GRAMS)


def format_phone_number(phone: str | None, country: str) -> str:
    """Normalise a phone number to ``+<international digits>``.

    ``0123456789`` in France becomes ``+33123456789``. Unknown countries use
    the French prefix.
    """
    if not phone:
        return ""
    prefix = PHONE_PREFIXES.get(country, "33")
    cleaned = re.sub(r"[^\d+]", "", phone)

    if cleaned.startswith("+") and 3 <= len(cleaned) - 1 <= 20:
        return cleaned
    cleaned = cleaned.lstrip("+")
    if cleaned.startswith(prefix):
        return f"+{cleaned}"
    if cleaned.startswith("0"):
        return f"+{prefix}{cleaned[1:]}"
    return f"+{prefix}{cleaned}"


def split_street(address: str) -> tuple[str | None, str]:
    """Split ``"8 rue de Paris"`` into ``("8", "rue de Paris")``.

    The street name is cut to 40 characters and the house number to 10.
    """
    match = _HOUSE_NUMBER.match(address or "")
    if match:
        return match.group(1)[:10], match.group(2)[:40]
    return None, (address or "")[:40]


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _find(element, name):
    return next((child for child in element.iter() if _local(child.tag) == name), None)


def _findall(element, name):
    return [child for child in element.iter() if _local(child.tag) == name]


class MondialRelayCarrier(CarrierPort):
    def __init__(
        self,
        login: str,
        password: str,
        customer_id: str,
        base_url: str = DEFAULT_API_URL,
        delivery_mode: str = "24R",
        collection_mode: str = "REL",
        timeout: float = 15.0,
        client: httpx.Client | None = None,
    ):
        if not (login and password and customer_id):
            raise ValueError("Mondial Relay login, password and customer id must be set")
        self.login = login
        self.password = password
        self.customer_id = customer_id
        self.base_url = base_url.rstrip("/")
        self.delivery_mode = delivery_mode
        self.collection_mode = collection_mode
        self.client = client or httpx.Client(timeout=timeout)

    @classmethod
    def from_env(cls):
        return cls(
            login=os.environ.get("MONDIAL_RELAY_API2_LOGIN", ""),
            password=os.environ.get("MONDIAL_RELAY_API2_PASSWORD", ""),
            customer_id=os.environ.get("MONDIAL_RELAY_API2_CUSTOMER_ID", ""),
            base_url=os.environ.get("MONDIAL_RELAY_API2_URL", DEFAULT_API_URL),
            delivery_mode=os.environ.get("MONDIAL_RELAY_DELIVERY_MODE", "24R"),
            collection_mode=os.environ.get("MONDIAL_RELAY_COLLECTION_MODE", "REL"),
            timeout=float(os.environ.get("CARRIER_TIMEOUT_SECONDS", "15")),
        )

    # -------------------------------------------------------------------
    # Request building
    # -------------------------------------------------------------------
    def _address(self, parent, party, split_house_number=False):
        address = ET.SubElement(parent, "Address")
        if split_house_number:
            ET.SubElement(address, "Firstname")
        ET.SubElement(address, "Lastname").text = party.name

        if split_house_number:
            house_no, street = split_street(party.street)
            if house_no:
                ET.SubElement(address, "HouseNo").text = house_no
            ET.SubElement(address, "Streetname").text = street
        else:
            ET.SubElement(address, "Streetname").text = party.street

        ET.SubElement(address, "CountryCode").text = party.country
        ET.SubElement(address, "PostCode").text = party.postal_code
        ET.SubElement(address, "City").text = party.city
        if party.phone:
            ET.SubElement(address, "PhoneNo").text = format_phone_number(party.phone, party.country)
        if party.email:
            ET.SubElement(address, "Email").text = party.email

    def build_shipment_xml(self, request: ShipmentRequest) -> bytes:
        root = ET.Element("ShipmentCreationRequest", xmlns=REQUEST_NAMESPACE)

        context = ET.SubElement(root, "Context")
        ET.SubElement(context, "Login").text = self.login
        ET.SubElement(context, "Password").text = self.password
        ET.SubElement(context, "CustomerId").text = self.customer_id
        ET.SubElement(context, "Culture").text = "en-US"
        ET.SubElement(context, "VersionAPI").text = "1.0"

        options = ET.SubElement(root, "OutputOptions")
        ET.SubElement(options, "OutputFormat").text = "10x15"
        ET.SubElement(options, "OutputType").text = "PdfUrl"

        shipment = ET.SubElement(ET.SubElement(root, "ShipmentsList"), "Shipment")
        if request.reference:
            ET.SubElement(shipment, "OrderNo").text = request.reference
        ET.SubElement(shipment, "ParcelCount").text = "1"

        amount = f"{request.declared_value / 100:.2f}" if request.declared_value > 0 else "0.01"
        ET.SubElement(shipment, "ShipmentValue", Currency="EUR", Amount=amount)

        delivery = ET.SubElement(shipment, "DeliveryMode", Mode=self.delivery_mode)
        if self.delivery_mode in PICKUP_POINT_MODES:
            delivery.set("Location", f"{request.recipient.country}-{request.pickup_point_id}")
        ET.SubElement(shipment, "CollectionMode", Mode=self.collection_mode, Location="")

        parcel = ET.SubElement(ET.SubElement(shipment, "Parcels"), "Parcel")
        ET.SubElement(parcel, "Weight", Value=str(clamp_weight(request.weight_grams)), Unit="gr")

        ET.SubElement(shipment, "DeliveryInstruction").text = f"Point Relais: {request.pickup_point_id}"
        self._address(ET.SubElement(shipment, "Sender"), request.sender)
        self._address(ET.SubElement(shipment, "Recipient"), request.recipient, split_house_number=True)

        return ET.tostring(root, encoding="utf-8", xml_declaration=True)

    # -------------------------------------------------------------------
    # Response parsing
    # -------------------------------------------------------------------
    def parse_shipment_response(self, body: bytes | str) -> str:
        try:
            root = ET.fromstring(body)
        except ET.ParseError as exc:
            raise CarrierRejected(f"Unreadable carrier response: {exc}") from exc
        if _local(root.tag) != "ShipmentCreationResponse":
            raise CarrierRejected("Unexpected carrier response: missing ShipmentCreationResponse")

        statuses = _findall(root, "Status")
        errors = [s for s in statuses if s.get("Level") == "Error"]
        warnings = [s for s in statuses if s.get("Level") == "Warning"]
        if warnings:
            logger.warning(
                "Mondial Relay returned warnings",
                warnings="; ".join(f"{s.get('Code')}: {s.get('Message')}" for s in warnings),
            )
        if errors:
            message = "; ".join(f"{s.get('Code')}: {s.get('Message')}" for s in errors)
            raise CarrierRejected(message, code=errors[0].get("Code"))

        shipments = [s for s in _findall(root, "Shipment") if s.get("ShipmentNumber")]
        if not shipments:
            raise CarrierRejected("Carrier response carries no shipment number")
        return shipments[0].get("ShipmentNumber")

    # -------------------------------------------------------------------
    # CarrierPort
    # -------------------------------------------------------------------
    def _send(self, method, path, **kwargs) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            response = self.client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise CarrierUnavailable(f"Mondial Relay timed out: {exc}") from exc
        except httpx.TransportError as exc:
            raise CarrierUnavailable(f"Mondial Relay unreachable: {exc}") from exc

        if response.status_code >= 500:
            raise CarrierUnavailable(f"Mondial Relay error {response.status_code}")
        if response.status_code >= 400:
            raise CarrierRejected(
                f"Mondial Relay error {response.status_code}: {response.text[:500]}",
                code=str(response.status_code),
            )
        return response

    def create_shipment(self, request: ShipmentRequest) -> str:
        response = self._send(
            "POST",
            "/shipment",
            content=self.build_shipment_xml(request),
            headers={"Content-Type": "text/xml; charset=utf-8", "Accept": "application/xml"},
        )
        shipment_number = self.parse_shipment_response(response.content)
        logger.info("Mondial Relay shipment created", reference=request.reference, shipment_number=shipment_number)
        return shipment_number

    def fetch_label(self, shipment_number: str) -> LabelDocument:
        response = self._send("GET", f"/Label/{shipment_number}")
        content_type = response.headers.get("Content-Type", "application/pdf").split(";")[0].strip()
        return LabelDocument(content=response.content, content_type=content_type or "application/pdf")
