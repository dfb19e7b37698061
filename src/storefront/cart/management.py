"""Cart management — commands and handler.

Handles cart creation for signed-in shoppers and clearing a cart, either on
the shopper's request or after an order has been committed.
"""

from protean import handle
from protean.fields import Identifier
from protean.utils.globals import current_domain

from storefront.cart.cart import ShoppingCart
from storefront.domain import storefront


@storefront.command(part_of="ShoppingCart")
class CreateCart:
    """Open the server cart of a signed-in customer (one cart per customer)."""

    customer_id = Identifier(required=True)


@storefront.command(part_of="ShoppingCart")
class ClearCart:
    cart_id = Identifier(required=True)


@storefront.command_handler(part_of=ShoppingCart)
class ManageCartHandler:
    @handle(CreateCart)
    def create_cart(self, command):
        repo = current_domain.repository_for(ShoppingCart)
        existing = repo.for_customer(command.customer_id)
        if existing is not None:
            return str(existing.id)

        cart = ShoppingCart.create(customer_id=command.customer_id)
        repo.add(cart)
        return str(cart.id)

    @handle(ClearCart)
    def clear_cart(self, command):
        repo = current_domain.repository_for(ShoppingCart)
        cart = repo.get(command.cart_id)
        cart.clear()
        repo.add(cart)
