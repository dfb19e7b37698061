"""Cart item management — commands and handler."""

import json

from protean import handle
from protean.fields import Float, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from storefront.cart.cart import ShoppingCart
from storefront.domain import storefront


@storefront.command(part_of="ShoppingCart")
class AddToCart:
    cart_id = Identifier(required=True)
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


@storefront.command(part_of="ShoppingCart")
class UpdateCartQuantity:
    cart_id = Identifier(required=True)
    item_id = Identifier(required=True)
    new_quantity = Integer(required=True, min_value=1)


@storefront.command(part_of="ShoppingCart")
class RemoveFromCart:
    cart_id = Identifier(required=True)
    item_id = Identifier(required=True)


@storefront.command_handler(part_of=ShoppingCart)
class ManageCartItemsHandler:
    @handle(AddToCart)
    def add_to_cart(self, command):
        repo = current_domain.repository_for(ShoppingCart)
        cart = repo.get(command.cart_id)
        item_id = cart.add_item(
            product_id=command.product_id,
            product_name=command.product_name,
            price=command.price,
            quantity=command.quantity,
            variant_id=command.variant_id,
            size=command.size,
            color=command.color,
            discount_price=command.discount_price,
            images=json.loads(command.images) if command.images else [],
            sku=command.sku,
        )
        repo.add(cart)
        return item_id

    @handle(UpdateCartQuantity)
    def update_cart_quantity(self, command):
        repo = current_domain.repository_for(ShoppingCart)
        cart = repo.get(command.cart_id)
        cart.update_item_quantity(
            item_id=command.item_id,
            new_quantity=command.new_quantity,
        )
        repo.add(cart)

    @handle(RemoveFromCart)
    def remove_from_cart(self, command):
        repo = current_domain.repository_for(ShoppingCart)
        cart = repo.get(command.cart_id)
        cart.remove_item(item_id=command.item_id)
        repo.add(cart)
