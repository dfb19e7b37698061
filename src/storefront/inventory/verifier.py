"""Stock Verifier — advisory pre-payment check of live stock.

Nothing is reserved; the commit pipeline's conditional decrement is the
final word. The verifier only keeps shoppers from paying for what is
visibly gone.
"""

from collections import OrderedDict

import structlog
from protean.utils.globals import current_domain

from storefront.cart.lines import CartLine
from storefront.errors import InsufficientStock
from storefront.inventory.stock import InventoryRecord

logger = structlog.get_logger(__name__)


class StockVerifier:
    def verify(self, items: list[CartLine]) -> None:
        """Raise ``InsufficientStock`` for the first stock key that falls short.

        Lines sharing a stock key (same variant in different sizes, say) are
        checked against their combined quantity.
        """
        requested: OrderedDict[str, int] = OrderedDict()
        first_line: dict[str, CartLine] = {}
        for line in items:
            requested[line.stock_key] = requested.get(line.stock_key, 0) + line.quantity
            first_line.setdefault(line.stock_key, line)

        repo = current_domain.repository_for(InventoryRecord)
        for stock_key, quantity in requested.items():
            available = repo.available(stock_key)
            if available < quantity:
                line = first_line[stock_key]
                logger.info(
                    "insufficient_stock",
                    stock_key=stock_key,
                    product_name=line.product.name,
                    available=available,
                    requested=quantity,
                )
                raise InsufficientStock(
                    item_ref=line.id,
                    product_name=line.product.name,
                    available=available,
                    requested=quantity,
                )
