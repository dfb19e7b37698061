"""Checkout error taxonomy.

Incomplete input is reported with protean's ``ValidationError`` like every
other domain rule. The classes here cover failures that come from stock,
payment gateways and post-payment persistence.
"""


class CheckoutError(Exception):
    """Base class for checkout failures surfaced to the shopper."""

    user_message = "We could not complete your checkout."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.user_message)


class InsufficientStock(CheckoutError):
    """A cart line asks for more units than are currently in stock."""

    def __init__(self, item_ref: str, product_name: str, available: int, requested: int) -> None:
        self.item_ref = item_ref
        self.product_name = product_name
        self.available = available
        self.requested = requested
        super().__init__(f"Only {available} of {product_name} available ({requested} requested)")


class PaymentDeclined(CheckoutError):
    """The gateway refused the payment."""

    user_message = "Your payment was declined. Please try again or use another method."

    def __init__(self, reason: str | None = None) -> None:
        self.reason = reason
        super().__init__(f"Payment declined: {reason}" if reason else None)


class PaymentCanceled(CheckoutError):
    """The shopper abandoned the wallet approval."""

    user_message = "The payment was canceled. You can try again."


class PaymentGatewayError(CheckoutError):
    """The gateway could not be reached or answered with an unexpected error."""

    user_message = "The payment provider is unavailable. Please try again shortly."


class PersistenceFailure(CheckoutError):
    """The order could not be recorded after the payment was captured."""

    user_message = "There was an error processing your order. Our team has been notified."

    def __init__(self, step: str, payment_ref: str, order_id: str | None = None) -> None:
        self.step = step
        self.payment_ref = payment_ref
        self.order_id = order_id
        super().__init__(self.user_message)


class InventoryRaceFailure(CheckoutError):
    """A line's stock was exhausted between verification and decrement.

    Never raised to the shopper; collected on the commit result and logged.
    """

    def __init__(self, stock_key: str, available: int, requested: int) -> None:
        self.stock_key = stock_key
        self.available = available
        self.requested = requested
        super().__init__(f"Stock for {stock_key} exhausted: {available} available, {requested} requested")
