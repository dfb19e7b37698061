"""Storefront bounded context — Shopping Cart, Checkout, Orders and Stock.

Handles the shopper's cart (local or server-persisted), the checkout flow
that authorizes a payment, and the commit pipeline that records the order
and decrements inventory once the payment is confirmed.
"""

import structlog
from protean.domain import Domain

storefront = Domain(name="storefront")

logger = structlog.get_logger(__name__)
