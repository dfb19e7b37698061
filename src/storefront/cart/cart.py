"""Shopping Cart aggregate (CQRS) — the server-persisted cart of a signed-in shopper.

Anonymous shoppers keep their cart in local storage instead; see
``storefront.cart.store``. Lines are deduplicated by the identity key
(product, variant, size, color), and each line carries a snapshot of the
product data it was added with.
"""

import json
from datetime import UTC, datetime

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String, Text

from storefront.cart.events import CartCleared, CartItemAdded, CartItemRemoved, CartQuantityUpdated
from storefront.cart.lines import CartLine, ProductSnapshot, line_key
from storefront.domain import storefront


@storefront.entity(part_of="ShoppingCart")
class CartItem:
    product_id = Identifier(required=True)
    variant_id = Identifier()
    product_name = String(required=True, max_length=255)
    sku = String(max_length=50)
    price = Float(required=True, min_value=0.0)
    discount_price = Float(min_value=0.0)
    images = Text()  # JSON array of image URLs
    quantity = Integer(required=True, min_value=1)
    size = String(max_length=50)
    color = String(max_length=50)
    added_at = DateTime()
    updated_at = DateTime()

    @property
    def identity_key(self):
        return line_key(self.product_id, self.variant_id, self.size, self.color)

    def to_line(self) -> CartLine:
        return CartLine(
            id=str(self.id),
            product_id=str(self.product_id),
            variant_id=str(self.variant_id) if self.variant_id else None,
            product=ProductSnapshot(
                product_id=str(self.product_id),
                name=self.product_name,
                price=self.price,
                discount_price=self.discount_price,
                images=json.loads(self.images) if self.images else [],
                sku=self.sku,
            ),
            quantity=self.quantity,
            size=self.size,
            color=self.color,
            added_at=self.added_at,
            updated_at=self.updated_at or self.added_at,
        )


@storefront.aggregate
class ShoppingCart:
    customer_id = Identifier(required=True)
    items = HasMany(CartItem)
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, customer_id):
        now = datetime.now(UTC)
        return cls(
            customer_id=customer_id,
            created_at=now,
            updated_at=now,
        )

    # -------------------------------------------------------------------
    # Item management
    # -------------------------------------------------------------------
    def _find_item(self, item_id):
        item = next((i for i in self.items if str(i.id) == str(item_id)), None)
        if item is None:
            raise ValidationError({"item_id": ["Item not found in cart"]})
        return item

    def add_item(
        self,
        product_id,
        product_name,
        price,
        quantity,
        variant_id=None,
        size=None,
        color=None,
        discount_price=None,
        images=None,
        sku=None,
    ):
        """Add a product to the cart, or increase the quantity of the matching line."""
        if quantity is None or quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})

        key = line_key(product_id, variant_id, size, color)
        existing = next((i for i in self.items if i.identity_key == key), None)

        now = datetime.now(UTC)

        if existing:
            existing.quantity += quantity
            existing.updated_at = now
            item_id = str(existing.id)
        else:
            item = CartItem(
                product_id=product_id,
                variant_id=variant_id or None,
                product_name=product_name,
                sku=sku,
                price=price,
                discount_price=discount_price,
                images=json.dumps(list(images or [])),
                quantity=quantity,
                size=size or None,
                color=color or None,
                added_at=now,
                updated_at=now,
            )
            self.add_items(item)
            item_id = str(item.id)

        self.updated_at = now

        self.raise_(
            CartItemAdded(
                cart_id=str(self.id),
                item_id=item_id,
                product_id=str(product_id),
                variant_id=str(variant_id) if variant_id else None,
                size=size,
                color=color,
                quantity=quantity,
            )
        )
        return item_id

    def update_item_quantity(self, item_id, new_quantity):
        """Set the quantity of an existing cart item."""
        if new_quantity is None or new_quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})

        item = self._find_item(item_id)
        previous_quantity = item.quantity
        now = datetime.now(UTC)
        item.quantity = new_quantity
        item.updated_at = now
        self.updated_at = now

        self.raise_(
            CartQuantityUpdated(
                cart_id=str(self.id),
                item_id=str(item_id),
                previous_quantity=previous_quantity,
                new_quantity=new_quantity,
            )
        )

    def remove_item(self, item_id):
        """Remove an item from the cart."""
        item = self._find_item(item_id)
        self.remove_items(item)
        self.updated_at = datetime.now(UTC)

        self.raise_(
            CartItemRemoved(
                cart_id=str(self.id),
                item_id=str(item_id),
            )
        )

    def clear(self):
        """Remove every item from the cart."""
        removed = list(self.items)
        for item in removed:
            self.remove_items(item)

        now = datetime.now(UTC)
        self.updated_at = now

        self.raise_(
            CartCleared(
                cart_id=str(self.id),
                items_removed=len(removed),
                cleared_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Read model
    # -------------------------------------------------------------------
    def lines(self) -> list[CartLine]:
        """Cart items as shopper-facing lines, oldest first."""
        items = sorted(self.items, key=lambda i: i.added_at or self.created_at)
        return [item.to_line() for item in items]


@storefront.repository(part_of=ShoppingCart)
class ShoppingCartRepository:
    def for_customer(self, customer_id):
        """Return the customer's cart, or None when they have never had one."""
        results = self._dao.query.filter(customer_id=str(customer_id)).all().items
        if not results:
            return None
        return self.get(results[0].id)
