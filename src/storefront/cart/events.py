"""Domain events for the ShoppingCart aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from storefront.domain import storefront


@storefront.event(part_of="ShoppingCart")
class CartItemAdded:
    """A product was added to the shopping cart (or an existing line grew)."""

    __version__ = 1

    cart_id = Identifier(required=True)
    item_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    size = String()
    color = String()
    quantity = Integer(required=True)


@storefront.event(part_of="ShoppingCart")
class CartQuantityUpdated:
    """The quantity of a cart item was changed."""

    __version__ = 1

    cart_id = Identifier(required=True)
    item_id = Identifier(required=True)
    previous_quantity = Integer(required=True)
    new_quantity = Integer(required=True)


@storefront.event(part_of="ShoppingCart")
class CartItemRemoved:
    """An item was removed from the shopping cart."""

    __version__ = 1

    cart_id = Identifier(required=True)
    item_id = Identifier(required=True)


@storefront.event(part_of="ShoppingCart")
class CartCleared:
    """Every item was removed, either by the shopper or after an order was placed."""

    __version__ = 1

    cart_id = Identifier(required=True)
    items_removed = Integer(required=True)
    cleared_at = DateTime(required=True)
