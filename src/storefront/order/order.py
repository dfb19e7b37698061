"""Order aggregate (CQRS) — the record of a paid checkout.

An order is created exactly once per confirmed payment, already confirmed
and paid. Its pricing is copied from the totals frozen when checkout began
and is never recalculated. Line items are recorded in a second step, once,
each carrying a snapshot of the product as it was in the cart.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from storefront.domain import storefront
from storefront.order.events import OrderItemsRecorded, OrderPlaced


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@storefront.value_object(part_of="Order")
class ShippingInfo:
    """Who receives the order and where, as entered (or selected) at checkout."""

    first_name = String(required=True, max_length=100)
    last_name = String(required=True, max_length=100)
    email = String(required=True, max_length=255)
    address = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    zip_code = String(required=True, max_length=20)
    country = String(required=True, max_length=100)
    phone = String(required=True, max_length=30)


@storefront.value_object(part_of="Order")
class OrderPricing:
    subtotal = Float(default=0.0)
    tax = Float(default=0.0)
    shipping = Float(default=0.0)
    discount = Float(default=0.0)
    total = Float(default=0.0)
    currency = String(max_length=3, default="USD")


@storefront.value_object(part_of="Order")
class PaymentMethodRef:
    """How the order was paid: a card (brand + last four) or a wallet."""

    kind = String(required=True, max_length=20)
    brand = String(max_length=50)
    last4 = String(max_length=4)
    wallet_type = String(max_length=50)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@storefront.entity(part_of="Order")
class OrderItem:
    product_id = Identifier(required=True)
    variant_id = Identifier()
    product_name = String(required=True, max_length=255)
    sku = String(max_length=50)
    images = Text()  # JSON array of image URLs
    quantity = Integer(required=True, min_value=1)
    size = String(max_length=50)
    color = String(max_length=50)
    unit_price = Float(required=True, min_value=0.0)
    total_price = Float(required=True, min_value=0.0)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@storefront.aggregate
class Order:
    customer_id = Identifier()  # None for guest checkouts
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    items = HasMany(OrderItem)
    items_recorded = Boolean(default=False)
    shipping_address = ValueObject(ShippingInfo)
    billing_address = ValueObject(ShippingInfo)
    pricing = ValueObject(OrderPricing)
    payment_method = ValueObject(PaymentMethodRef)
    payment_id = String(required=True, max_length=255)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def place(
        cls,
        payment_id,
        shipping_address,
        pricing,
        payment_method,
        customer_id=None,
        billing_address=None,
    ):
        """Create a confirmed, paid order for a successful payment.

        Args:
            payment_id: Gateway reference of the confirmed payment.
            shipping_address: Dict with the ``ShippingInfo`` fields.
            pricing: Dict with subtotal, tax, shipping, discount, total, currency.
            payment_method: Dict with kind and brand/last4 or wallet_type.
            customer_id: Signed-in shopper, or None for a guest.
            billing_address: Defaults to the shipping address.
        """
        now = datetime.now(UTC)
        order = cls(
            customer_id=customer_id or None,
            status=OrderStatus.CONFIRMED.value,
            payment_status=PaymentStatus.PAID.value,
            shipping_address=ShippingInfo(**shipping_address),
            billing_address=ShippingInfo(**(billing_address or shipping_address)),
            pricing=OrderPricing(**pricing),
            payment_method=PaymentMethodRef(**payment_method),
            payment_id=payment_id,
            created_at=now,
            updated_at=now,
        )
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                customer_id=str(customer_id) if customer_id else None,
                payment_id=payment_id,
                total=order.pricing.total,
                currency=order.pricing.currency,
                placed_at=now,
            )
        )
        return order

    def record_items(self, items_data):
        """Attach the order's line items. Allowed once per order."""
        if self.items_recorded:
            raise ValidationError({"items": ["Items have already been recorded for this order"]})
        if not items_data:
            raise ValidationError({"items": ["An order needs at least one item"]})

        for data in items_data:
            quantity = data["quantity"]
            unit_price = data["unit_price"]
            self.add_items(
                OrderItem(
                    product_id=data["product_id"],
                    variant_id=data.get("variant_id"),
                    product_name=data["product_name"],
                    sku=data.get("sku"),
                    images=json.dumps(data.get("images") or []),
                    quantity=quantity,
                    size=data.get("size"),
                    color=data.get("color"),
                    unit_price=unit_price,
                    total_price=round(unit_price * quantity, 2),
                )
            )

        now = datetime.now(UTC)
        self.items_recorded = True
        self.updated_at = now

        self.raise_(
            OrderItemsRecorded(
                order_id=str(self.id),
                item_count=len(items_data),
                recorded_at=now,
            )
        )


@storefront.repository(part_of=Order)
class OrderRepository:
    def for_payment(self, payment_id):
        """Return the order created for ``payment_id``, if any."""
        results = self._dao.query.filter(payment_id=str(payment_id)).all().items
        if not results:
            return None
        return self.get(results[0].id)
