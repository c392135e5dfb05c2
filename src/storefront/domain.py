"""Storefront bounded context: checkout resolution pipeline.

Resolves the cart a request should use, merges guest carts on login, prices
and weighs carts, matches shipping zones and rates, issues order numbers,
and books carrier shipments and labels for placed orders.
"""

import structlog
from protean.domain import Domain

storefront = Domain(name="storefront")

logger = structlog.get_logger(__name__)
