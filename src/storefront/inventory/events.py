"""Domain events for the InventoryRecord aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from storefront.domain import storefront


@storefront.event(part_of="InventoryRecord")
class StockInitialized:
    """A product (or one of its variants) was stocked for the first time."""

    __version__ = 1

    record_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    stock_key = String(required=True)
    stock = Integer(required=True)
    initialized_at = DateTime(required=True)


@storefront.event(part_of="InventoryRecord")
class StockLevelSet:
    """An administrator overwrote the stock count."""

    __version__ = 1

    record_id = Identifier(required=True)
    stock_key = String(required=True)
    previous_stock = Integer(required=True)
    new_stock = Integer(required=True)
    set_at = DateTime(required=True)


@storefront.event(part_of="InventoryRecord")
class StockDecremented:
    """Units left stock because an order was committed."""

    __version__ = 1

    record_id = Identifier(required=True)
    stock_key = String(required=True)
    order_id = Identifier()
    quantity = Integer(required=True)
    previous_stock = Integer(required=True)
    new_stock = Integer(required=True)
    decremented_at = DateTime(required=True)
