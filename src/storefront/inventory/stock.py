"""InventoryRecord aggregate (CQRS) — sellable stock for a product or variant.

Stock is tracked per *stock key*: the variant id when the product has
variants, otherwise the product id. Writes go through the aggregate's
``_version``: saving a record loaded before another writer saved it raises
``ExpectedVersionError``, so concurrent checkouts cannot drive stock below
zero.
"""

from datetime import UTC, datetime

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, Integer, String

from storefront.domain import storefront
from storefront.inventory.events import StockDecremented, StockInitialized, StockLevelSet


def stock_key_for(product_id, variant_id=None) -> str:
    return str(variant_id) if variant_id else str(product_id)


@storefront.aggregate
class InventoryRecord:
    product_id = Identifier(required=True)
    variant_id = Identifier()
    stock_key = String(required=True, max_length=255)
    sku = String(max_length=50)
    stock = Integer(required=True, min_value=0, default=0)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def stock_cannot_be_negative(self):
        if self.stock is not None and self.stock < 0:
            raise ValidationError({"stock": ["Stock cannot be negative"]})

    @classmethod
    def create(cls, product_id, variant_id=None, sku=None, stock=0):
        now = datetime.now(UTC)
        record = cls(
            product_id=product_id,
            variant_id=variant_id or None,
            stock_key=stock_key_for(product_id, variant_id),
            sku=sku,
            stock=stock,
            created_at=now,
            updated_at=now,
        )
        record.raise_(
            StockInitialized(
                record_id=str(record.id),
                product_id=str(product_id),
                variant_id=str(variant_id) if variant_id else None,
                stock_key=record.stock_key,
                stock=stock,
                initialized_at=now,
            )
        )
        return record

    def set_stock(self, quantity):
        """Overwrite the stock count (administrative correction)."""
        if quantity is None or quantity < 0:
            raise ValidationError({"stock": ["Stock cannot be negative"]})

        previous = self.stock
        now = datetime.now(UTC)
        self.stock = quantity
        self.updated_at = now

        self.raise_(
            StockLevelSet(
                record_id=str(self.id),
                stock_key=self.stock_key,
                previous_stock=previous,
                new_stock=quantity,
                set_at=now,
            )
        )

    def decrement(self, quantity, order_id=None):
        """Take ``quantity`` units out of stock. Rejected, never clamped."""
        if quantity is None or quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})
        if quantity > self.stock:
            raise ValidationError({"stock": [f"Only {self.stock} units available for {self.stock_key}"]})

        previous = self.stock
        now = datetime.now(UTC)
        self.stock = previous - quantity
        self.updated_at = now

        self.raise_(
            StockDecremented(
                record_id=str(self.id),
                stock_key=self.stock_key,
                order_id=str(order_id) if order_id else None,
                quantity=quantity,
                previous_stock=previous,
                new_stock=self.stock,
                decremented_at=now,
            )
        )


@storefront.repository(part_of=InventoryRecord)
class InventoryRecordRepository:
    def for_key(self, stock_key):
        """Return the record for ``stock_key``, or None when it was never stocked."""
        results = self._dao.query.filter(stock_key=str(stock_key)).all().items
        if not results:
            return None
        return self.get(results[0].id)

    def available(self, stock_key) -> int:
        record = self.for_key(stock_key)
        return record.stock if record is not None else 0

