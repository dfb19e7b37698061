"""Stock decrement — command and handler used by the order commit pipeline.

The handler loads the record, decrements it and saves it. Protean checks the
aggregate's ``_version`` on save; an ``ExpectedVersionError`` means another
writer got there first, so the read is retried a bounded number of times.
Running out of stock is reported as ``InventoryRaceFailure``.
"""

import structlog
from protean import handle
from protean.exceptions import ExpectedVersionError
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.errors import InventoryRaceFailure
from storefront.inventory.stock import InventoryRecord

logger = structlog.get_logger(__name__)

MAX_VERSION_RETRIES = 3


@storefront.command(part_of="InventoryRecord")
class DecrementStock:
    stock_key = String(required=True, max_length=255)
    quantity = Integer(required=True, min_value=1)
    order_id = Identifier()


@storefront.command_handler(part_of=InventoryRecord)
class DecrementStockHandler:
    @handle(DecrementStock)
    def decrement_stock(self, command):
        repo = current_domain.repository_for(InventoryRecord)

        for attempt in range(1, MAX_VERSION_RETRIES + 1):
            record = repo.for_key(command.stock_key)
            if record is None or record.stock < command.quantity:
                available = record.stock if record is not None else 0
                raise InventoryRaceFailure(command.stock_key, available, command.quantity)

            record.decrement(command.quantity, order_id=command.order_id)
            try:
                repo.add(record)
            except ExpectedVersionError:
                logger.info("stock_version_conflict", stock_key=command.stock_key, attempt=attempt)
                continue
            return record.stock

        record = repo.for_key(command.stock_key)
        raise InventoryRaceFailure(
            command.stock_key,
            record.stock if record is not None else 0,
            command.quantity,
        )
