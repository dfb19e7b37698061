"""Domain events for the Order aggregate."""

from protean.fields import DateTime, Float, Identifier, Integer, String

from storefront.domain import storefront


@storefront.event(part_of="Order")
class OrderPlaced:
    """An order header was recorded for a confirmed payment."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier()
    payment_id = String(required=True)
    total = Float(required=True)
    currency = String(default="USD")
    placed_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderItemsRecorded:
    """The line items of an order were recorded from the shopper's cart."""

    __version__ = 1

    order_id = Identifier(required=True)
    item_count = Integer(required=True)
    recorded_at = DateTime(required=True)
