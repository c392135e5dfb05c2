"""Fake carrier adapter: deterministic carrier for testing and development.

Counts calls so tests can assert how often booking happened, and can be
switched into a failure mode to exercise error handling.
"""

from uuid import uuid4

from storefront.carrier.port import CarrierPort, LabelDocument, ShipmentRequest
from storefront.exceptions import CarrierRejected, CarrierUnavailable

MINIMAL_PDF = (
    b"%PDF-1.4\n1 0 obj<</Type/Catalog/Pages 2 0 R>>endobj\n"
    b"2 0 obj<</Type/Pages/Kids[3 0 R]/Count 1>>endobj\n"
    b"3 0 obj<</Type/Page/Parent 2 0 R/MediaBox[0 0 283 425]>>endobj\n"
    b"trailer<</Root 1 0 R>>\n%%EOF\n"
)


class FakeCarrier(CarrierPort):
    """Fake carrier that always succeeds by default."""

    def __init__(self):
        self.failure_mode = None
        self.failure_reason = "Carrier unavailable"
        self.shipments = {}
        self.create_calls = 0
        self.label_calls = 0

    def configure(self, failure_mode: str | None = None, failure_reason: str = "Carrier unavailable"):
        """Configure the fake carrier behavior for testing.

        ``failure_mode`` is None, ``"rejected"`` or ``"unavailable"``.
        """
        self.failure_mode = failure_mode
        self.failure_reason = failure_reason

    def _maybe_fail(self):
        if self.failure_mode == "rejected":
            raise CarrierRejected(self.failure_reason, code="FAKE")
        if self.failure_mode == "unavailable":
            raise CarrierUnavailable(self.failure_reason)

    def create_shipment(self, request: ShipmentRequest) -> str:
        self.create_calls += 1
        self._maybe_fail()

        shipment_number = f"FAKE{uuid4().hex[:8].upper()}"
        self.shipments[shipment_number] = request
        return shipment_number

    def fetch_label(self, shipment_number: str) -> LabelDocument:
        self.label_calls += 1
        self._maybe_fail()
        return LabelDocument(content=MINIMAL_PDF)
