"""Stock initialization — command and handler.

Stocking a key that already has a record overwrites its count instead of
creating a second record.
"""

from protean import handle
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.inventory.stock import InventoryRecord, stock_key_for


@storefront.command(part_of="InventoryRecord")
class InitializeStock:
    product_id = Identifier(required=True)
    variant_id = Identifier()
    sku = String(max_length=50)
    quantity = Integer(required=True, min_value=0)


@storefront.command_handler(part_of=InventoryRecord)
class InitializeStockHandler:
    @handle(InitializeStock)
    def initialize_stock(self, command):
        repo = current_domain.repository_for(InventoryRecord)
        existing = repo.for_key(stock_key_for(command.product_id, command.variant_id))
        if existing is not None:
            existing.set_stock(command.quantity)
            repo.add(existing)
            return str(existing.id)

        record = InventoryRecord.create(
            product_id=command.product_id,
            variant_id=command.variant_id,
            sku=command.sku,
            stock=command.quantity,
        )
        repo.add(record)
        return str(record.id)
