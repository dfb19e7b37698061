"""Order placement — commands and handler.

``PlaceOrder`` is idempotent per payment: replaying it for a payment that
already has an order returns that order's id. ``RecordOrderItems`` is the
second, separately committed step of the checkout pipeline.
"""

import json

from protean import handle
from protean.fields import Float, Identifier, String, Text
from protean.utils.globals import current_domain

from storefront.domain import logger, storefront
from storefront.order.order import Order


@storefront.command(part_of="Order")
class PlaceOrder:
    customer_id = Identifier()
    payment_id = String(required=True, max_length=255)
    payment_method = Text(required=True)  # JSON: PaymentMethodRef dict
    shipping_address = Text(required=True)  # JSON: ShippingInfo dict
    billing_address = Text()  # JSON: ShippingInfo dict
    subtotal = Float(required=True)
    tax = Float(default=0.0)
    shipping = Float(default=0.0)
    discount = Float(default=0.0)
    total = Float(required=True)
    currency = String(max_length=3, default="USD")


@storefront.command(part_of="Order")
class RecordOrderItems:
    order_id = Identifier(required=True)
    items = Text(required=True)  # JSON: list of item dicts


@storefront.command_handler(part_of=Order)
class OrderPlacementHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        repo = current_domain.repository_for(Order)
        existing = repo.for_payment(command.payment_id)
        if existing is not None:
            logger.info("order_already_placed", order_id=str(existing.id), payment_id=command.payment_id)
            return str(existing.id)

        order = Order.place(
            payment_id=command.payment_id,
            customer_id=command.customer_id,
            shipping_address=json.loads(command.shipping_address),
            billing_address=json.loads(command.billing_address) if command.billing_address else None,
            payment_method=json.loads(command.payment_method),
            pricing={
                "subtotal": command.subtotal,
                "tax": command.tax or 0.0,
                "shipping": command.shipping or 0.0,
                "discount": command.discount or 0.0,
                "total": command.total,
                "currency": command.currency or "USD",
            },
        )
        repo.add(order)
        return str(order.id)

    @handle(RecordOrderItems)
    def record_order_items(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.record_items(json.loads(command.items))
        repo.add(order)
        return len(order.items)
