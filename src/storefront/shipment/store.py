"""The shop's own address, used as shipment sender."""

import os

from storefront.carrier.port import ShippingParty


def load_store_address() -> ShippingParty:
    return ShippingParty(
        name=os.environ.get("STORE_NAME", "Store"),
        address1=os.environ.get("STORE_ADDRESS1", ""),
        address2=os.environ.get("STORE_ADDRESS2") or None,
        city=os.environ.get("STORE_CITY", ""),
        postal_code=os.environ.get("STORE_POSTAL_CODE", ""),
        country=os.environ.get("STORE_COUNTRY", "FR"),
        phone=os.environ.get("STORE_PHONE", ""),
        email=os.environ.get("STORE_EMAIL") or None,
    )
