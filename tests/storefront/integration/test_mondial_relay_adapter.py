"""Integration tests for the Mondial Relay adapter against a mocked HTTP transport."""

import xml.etree.ElementTree as ET

import httpx
import pytest
from storefront.carrier import get_carrier, reset_carrier
from storefront.carrier.fake_adapter import FakeCarrier
from storefront.carrier.mondial_relay import (
    REQUEST_NAMESPACE,
    MondialRelayCarrier,
    clamp_weight,
    format_phone_number,
    split_street,
)
from storefront.carrier.port import ShipmentRequest, ShippingParty
from storefront.exceptions import CarrierRejected, CarrierUnavailable

NS = {"r": REQUEST_NAMESPACE}

SUCCESS = b"""<?xml version="1.0" encoding="utf-8"?>
<ShipmentCreationResponse xmlns="http://www.example.org/Response">
  <StatusList>
    <Status Code="20001" Level="Warning" Message="Pickup point closes early on Saturday" />
  </StatusList>
  <ShipmentsList>
    <Shipment ShipmentNumber="31236189">
      <LabelList><Label><Output>https://connect.mondialrelay.com/label/31236189</Output></Label></LabelList>
    </Shipment>
  </ShipmentsList>
</ShipmentCreationResponse>"""

REJECTED = b"""<?xml version="1.0" encoding="utf-8"?>
<ShipmentCreationResponse xmlns="http://www.example.org/Response">
  <StatusList>
    <Status Code="10024" Level="Error" Message="Invalid delivery location" />
  </StatusList>
</ShipmentCreationResponse>"""


def _request(**overrides):
    defaults = {
        "reference": "ORD-000042",
        "sender": ShippingParty(
            name="Atelier",
            address1="12 avenue Foch",
            address2="Bat. B",
            city="Paris",
            postal_code="75016",
            country="FR",
            phone="01 23 45 67 89",
            email="shop@example.com",
        ),
        "recipient": ShippingParty(
            name="Ada Lovelace",
            address1="8 rue de Paris",
            city="Lyon",
            postal_code="69001",
            country="FR",
            phone="06 12 34 56 78",
        ),
        "pickup_point_id": "012345",
        "weight_grams": 50,
        "declared_value": 2890,
    }
    defaults.update(overrides)
    return ShipmentRequest(**defaults)


def _carrier(handler, **kwargs):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return MondialRelayCarrier(
        login="LOGIN", password="SECRET", customer_id="CUST01", base_url="https://mr.test/api", client=client, **kwargs
    )


class TestHelpers:
    @pytest.mark.parametrize(
        ("phone", "country", "expected"),
        [
            ("06 12 34 56 78", "FR", "+33612345678"),
            ("+32 470 12 34 56", "BE", "+32470123456"),
            ("33612345678", "FR", "+33612345678"),
            ("612345678", "DE", "+49612345678"),
            ("0612345678", "US", "+33612345678"),
            ("", "FR", ""),
        ],
    )
    def test_phone_numbers(self, phone, country, expected):
        assert format_phone_number(phone, country) == expected

    def test_house_number_is_split_off(self):
        assert split_street("8 rue de Paris") == ("8", "rue de Paris")
        assert split_street("12b Avenue Foch") == ("12b", "Avenue Foch")

    def test_street_without_number_is_truncated(self):
        house_no, street = split_street("Chemin " + "x" * 60)
        assert house_no is None
        assert len(street) == 40

    def test_weight_bounds(self):
        assert clamp_weight(50) == 100
        assert clamp_weight(1200) == 1200
        assert clamp_weight(45000) == 30000


class TestCreateShipment:
    def test_request_document(self):
        captured = {}

        def handler(request):
            captured["request"] = request
            return httpx.Response(200, content=SUCCESS)

        shipment_number = _carrier(handler).create_shipment(_request())

        assert shipment_number == "31236189"
        request = captured["request"]
        assert request.method == "POST"
        assert str(request.url) == "https://mr.test/api/shipment"

        root = ET.fromstring(request.content)
        assert root.find("r:Context/r:Login", NS).text == "LOGIN"
        assert root.find(".//r:OrderNo", NS).text == "ORD-000042"
        assert root.find(".//r:DeliveryMode", NS).get("Location") == "FR-012345"
        assert root.find(".//r:DeliveryMode", NS).get("Mode") == "24R"
        assert root.find(".//r:ShipmentValue", NS).get("Amount") == "28.90"
        assert root.find(".//r:Weight", NS).get("Value") == "100"

        sender = root.find(".//r:Sender/r:Address", NS)
        assert sender.find("r:Streetname", NS).text == "12 avenue Foch, Bat. B"
        assert sender.find("r:PhoneNo", NS).text == "+33123456789"

        recipient = root.find(".//r:Recipient/r:Address", NS)
        assert recipient.find("r:HouseNo", NS).text == "8"
        assert recipient.find("r:Streetname", NS).text == "rue de Paris"
        assert recipient.find("r:PhoneNo", NS).text == "+33612345678"

    def test_home_delivery_mode_has_no_location(self):
        captured = {}

        def handler(request):
            captured["body"] = request.content
            return httpx.Response(200, content=SUCCESS)

        _carrier(handler, delivery_mode="HOM").create_shipment(_request())

        root = ET.fromstring(captured["body"])
        assert root.find(".//r:DeliveryMode", NS).get("Location") is None

    def test_zero_value_is_declared_as_one_cent(self):
        captured = {}

        def handler(request):
            captured["body"] = request.content
            return httpx.Response(200, content=SUCCESS)

        _carrier(handler).create_shipment(_request(declared_value=0))

        root = ET.fromstring(captured["body"])
        assert root.find(".//r:ShipmentValue", NS).get("Amount") == "0.01"

    def test_error_status_is_a_rejection(self):
        carrier = _carrier(lambda request: httpx.Response(200, content=REJECTED))

        with pytest.raises(CarrierRejected) as exc:
            carrier.create_shipment(_request())

        assert exc.value.code == "10024"
        assert "Invalid delivery location" in exc.value.message

    def test_unreadable_response(self):
        carrier = _carrier(lambda request: httpx.Response(200, content=b"<html>oops"))
        with pytest.raises(CarrierRejected):
            carrier.create_shipment(_request())

    def test_client_error(self):
        carrier = _carrier(lambda request: httpx.Response(401, text="Unauthorized"))
        with pytest.raises(CarrierRejected) as exc:
            carrier.create_shipment(_request())
        assert exc.value.code == "401"

    def test_server_error_is_unavailable(self):
        carrier = _carrier(lambda request: httpx.Response(503))
        with pytest.raises(CarrierUnavailable):
            carrier.create_shipment(_request())

    def test_timeout_is_unavailable(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(CarrierUnavailable):
            _carrier(handler).create_shipment(_request())

    def test_connection_error_is_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(CarrierUnavailable):
            _carrier(handler).create_shipment(_request())


class TestFetchLabel:
    def test_downloads_pdf(self):
        def handler(request):
            assert request.url.path == "/api/Label/31236189"
            return httpx.Response(200, content=b"%PDF-1.4 label", headers={"Content-Type": "application/pdf"})

        document = _carrier(handler).fetch_label("31236189")

        assert document.content == b"%PDF-1.4 label"
        assert document.content_type == "application/pdf"

    def test_unknown_shipment(self):
        carrier = _carrier(lambda request: httpx.Response(404, text="Not found"))
        with pytest.raises(CarrierRejected):
            carrier.fetch_label("00000000")


class TestConfiguration:
    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("MONDIAL_RELAY_API2_LOGIN", "LOGIN")
        monkeypatch.setenv("MONDIAL_RELAY_API2_PASSWORD", "SECRET")
        monkeypatch.setenv("MONDIAL_RELAY_API2_CUSTOMER_ID", "CUST01")
        monkeypatch.setenv("MONDIAL_RELAY_DELIVERY_MODE", "24L")

        carrier = MondialRelayCarrier.from_env()

        assert carrier.delivery_mode == "24L"
        assert carrier.collection_mode == "REL"
        assert carrier.base_url == "https://connect-api.mondialrelay.com/api"

    def test_credentials_are_required(self, monkeypatch):
        monkeypatch.delenv("MONDIAL_RELAY_API2_LOGIN", raising=False)
        with pytest.raises(ValueError):
            MondialRelayCarrier.from_env()

    def test_adapter_selection(self, monkeypatch):
        reset_carrier()
        monkeypatch.delenv("CARRIER_ADAPTER", raising=False)
        assert isinstance(get_carrier(), FakeCarrier)

        reset_carrier()
        monkeypatch.setenv("CARRIER_ADAPTER", "mondial_relay")
        monkeypatch.setenv("MONDIAL_RELAY_API2_LOGIN", "LOGIN")
        monkeypatch.setenv("MONDIAL_RELAY_API2_PASSWORD", "SECRET")
        monkeypatch.setenv("MONDIAL_RELAY_API2_CUSTOMER_ID", "CUST01")
        assert isinstance(get_carrier(), MondialRelayCarrier)

        reset_carrier()
        monkeypatch.setenv("CARRIER_ADAPTER", "pigeon")
        with pytest.raises(ValueError):
            get_carrier()
