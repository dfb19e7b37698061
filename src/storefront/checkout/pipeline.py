"""Order Commit Pipeline — records a confirmed payment as an order.

Runs once per successful confirmation, in strict order:

1. Place the order header (idempotent per payment reference).
2. Record the order items.
3. Decrement stock for each line.
4. Clear the cart.

The payment is already captured when this runs and nothing here can undo
it. A failure in step 1 or 2 raises ``PersistenceFailure`` and is logged at
error level with the payment reference for manual reconciliation. Stock
shortfalls and any other decrement error in step 3 are collected on the
result and never fail the commit, so step 4 always runs once the order is
recorded.
"""

import json
from dataclasses import dataclass, field

import structlog
from protean.utils.globals import current_domain

from storefront.cart.lines import CartLine
from storefront.cart.store import CartStore
from storefront.errors import InventoryRaceFailure, PersistenceFailure
from storefront.inventory.decrement import DecrementStock
from storefront.order.order import Order
from storefront.order.placement import PlaceOrder, RecordOrderItems
from storefront.payments.gateway.port import CardMethod, Succeeded
from storefront.pricing.totals import CartTotals

logger = structlog.get_logger(__name__)


@dataclass
class CommitResult:
    order_id: str
    item_count: int = 0
    race_failures: list[InventoryRaceFailure] = field(default_factory=list)
    stock_errors: dict[str, str] = field(default_factory=dict)
    already_committed: bool = False


def payment_method_ref(outcome: Succeeded) -> dict:
    method = outcome.method
    if isinstance(method, CardMethod):
        return {"kind": method.kind, "brand": method.brand, "last4": method.last4}
    return {"kind": method.kind, "wallet_type": method.type}


def order_item_data(line: CartLine) -> dict:
    return {
        "product_id": line.product_id,
        "variant_id": line.variant_id,
        "product_name": line.product.name,
        "sku": line.product.sku,
        "images": line.product.images,
        "quantity": line.quantity,
        "size": line.size,
        "color": line.color,
        "unit_price": line.unit_price,
    }


class OrderCommitPipeline:
    def __init__(self, cart: CartStore) -> None:
        self.cart = cart

    def commit(
        self,
        outcome: Succeeded,
        lines: list[CartLine],
        totals: CartTotals,
        currency: str,
        shipping_address: dict,
        customer_id: str | None = None,
        billing_address: dict | None = None,
    ) -> CommitResult:
        log = logger.bind(payment_ref=outcome.ref, customer_id=customer_id)

        # Step 1: order header
        try:
            order_id = current_domain.process(
                PlaceOrder(
                    customer_id=customer_id,
                    payment_id=outcome.ref,
                    payment_method=json.dumps(payment_method_ref(outcome)),
                    shipping_address=json.dumps(shipping_address),
                    billing_address=json.dumps(billing_address) if billing_address else None,
                    subtotal=totals.subtotal,
                    tax=totals.tax,
                    shipping=totals.shipping,
                    discount=totals.discount,
                    total=totals.total,
                    currency=currency,
                ),
                asynchronous=False,
            )
        except Exception as exc:
            log.error("order_header_not_persisted", step="order", error=str(exc))
            raise PersistenceFailure(step="order", payment_ref=outcome.ref) from exc

        log = log.bind(order_id=order_id)

        # Step 2: order items
        try:
            order = current_domain.repository_for(Order).get(order_id)
            already_committed = order.items_recorded
            if already_committed:
                item_count = len(order.items)
            else:
                item_count = current_domain.process(
                    RecordOrderItems(
                        order_id=order_id,
                        items=json.dumps([order_item_data(line) for line in lines]),
                    ),
                    asynchronous=False,
                )
        except Exception as exc:
            log.error("order_items_not_persisted", step="items", error=str(exc))
            raise PersistenceFailure(step="items", payment_ref=outcome.ref, order_id=order_id) from exc

        if already_committed:
            log.info("order_already_committed")
            self._clear_cart(log)
            return CommitResult(order_id=order_id, item_count=item_count, already_committed=True)

        # Step 3: stock, one decrement per line
        race_failures = []
        stock_errors = {}
        for line in lines:
            try:
                current_domain.process(
                    DecrementStock(stock_key=line.stock_key, quantity=line.quantity, order_id=order_id),
                    asynchronous=False,
                )
            except InventoryRaceFailure as failure:
                log.warning(
                    "inventory_race_failure",
                    stock_key=failure.stock_key,
                    available=failure.available,
                    requested=failure.requested,
                )
                race_failures.append(failure)
            except Exception as exc:
                log.error("stock_not_decremented", stock_key=line.stock_key, quantity=line.quantity, error=str(exc))
                stock_errors[line.stock_key] = str(exc)

        # Step 4: cart
        self._clear_cart(log)

        log.info(
            "order_committed",
            item_count=item_count,
            race_failures=len(race_failures),
            stock_errors=len(stock_errors),
        )
        return CommitResult(
            order_id=order_id,
            item_count=item_count,
            race_failures=race_failures,
            stock_errors=stock_errors,
        )

    def _clear_cart(self, log) -> None:
        try:
            self.cart.clear()
        except Exception:
            # The order stands; a stale cart is recoverable by the shopper.
            log.exception("cart_not_cleared_after_order")
