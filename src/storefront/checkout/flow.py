"""Checkout State Machine.

    SHIPPING → PAYMENT → REVIEW → PROCESSING → DONE
    (any state before PROCESSING) → ABANDONED

Shipping must be complete to enter PAYMENT. Authorizing a payment verifies
stock and freezes the lines and totals the order will be charged and recorded
at. A cart that changes after authorizing is verified and authorized again
before anything is confirmed. Only a ``Succeeded`` confirmation enters
PROCESSING and runs the commit pipeline; every other outcome returns the
shopper to PAYMENT.
"""

from enum import Enum
from uuid import uuid4

import structlog
from protean.exceptions import ValidationError

from storefront.cart.lines import CartLine
from storefront.cart.store import CartStore
from storefront.checkout.pipeline import CommitResult, OrderCommitPipeline
from storefront.checkout.shipping import SavedAddress, ShippingForm, resolve_shipping
from storefront.config import StorefrontSettings, get_settings
from storefront.errors import CheckoutError, PaymentCanceled, PaymentDeclined
from storefront.inventory.verifier import StockVerifier
from storefront.payments.coordinator import PaymentCoordinator
from storefront.payments.gateway.port import (
    Canceled,
    Failed,
    MethodKind,
    PaymentAuthorization,
    RequiresAction,
    Succeeded,
)
from storefront.pricing.totals import CartTotals

logger = structlog.get_logger(__name__)


class CheckoutState(Enum):
    SHIPPING = "shipping"
    PAYMENT = "payment"
    REVIEW = "review"
    PROCESSING = "processing"
    DONE = "done"
    ABANDONED = "abandoned"


_BACK = {
    CheckoutState.PAYMENT: CheckoutState.SHIPPING,
    CheckoutState.REVIEW: CheckoutState.PAYMENT,
}


def cart_fingerprint(lines: list[CartLine]) -> tuple:
    """What an authorization was computed from: every line, its quantity and price."""
    return tuple((line.identity_key, line.quantity, line.unit_price) for line in lines)


class CheckoutFlow:
    def __init__(
        self,
        cart: CartStore,
        coordinator: PaymentCoordinator,
        shopper=None,
        saved_addresses: list[SavedAddress] | None = None,
        discount: float = 0.0,
        verifier: StockVerifier | None = None,
        pipeline: OrderCommitPipeline | None = None,
        settings: StorefrontSettings | None = None,
        correlation_id: str | None = None,
    ) -> None:
        self.cart = cart
        self.coordinator = coordinator
        self.shopper = shopper
        self.saved_addresses = list(saved_addresses or [])
        self.discount = discount
        self.verifier = verifier or StockVerifier()
        self.pipeline = pipeline or OrderCommitPipeline(cart)
        self.settings = settings or get_settings()

        self.state = CheckoutState.SHIPPING
        self.correlation_id = correlation_id or str(uuid4())
        self.shipping_form = ShippingForm()
        self.selected_address_id: str | None = None
        self.shipping: dict | None = None
        self.authorization: PaymentAuthorization | None = None
        self.frozen_totals: CartTotals | None = None
        self.frozen_lines: list[CartLine] = []
        self.confirm_attempts = 0
        self._authorized_fingerprint: tuple | None = None
        self._revisions: dict[tuple, int] = {}
        self.requires_action = False
        self.next_action_url: str | None = None
        self.error: CheckoutError | None = None
        self.result: CommitResult | None = None
        self._placing = False

        default = next((a for a in self.saved_addresses if a.is_default), None)
        if default is not None and shopper is not None:
            self.selected_address_id = default.id

    # -------------------------------------------------------------------
    # Guards
    # -------------------------------------------------------------------
    def _assert_state(self, *allowed: CheckoutState) -> None:
        if self.state not in allowed:
            expected = ", ".join(s.value for s in allowed)
            raise ValidationError({"state": [f"Checkout is {self.state.value}; expected {expected}"]})

    def _abandon_if_cart_empty(self) -> None:
        if not self.cart.lines:
            self.abandon()
            raise ValidationError({"cart": ["Your cart is empty"]})

    # -------------------------------------------------------------------
    # Shipping
    # -------------------------------------------------------------------
    def update_shipping(self, **fields) -> None:
        self._assert_state(CheckoutState.SHIPPING)
        self.shipping_form = self.shipping_form.model_copy(update=fields)

    def select_address(self, address_id: str | None) -> None:
        self._assert_state(CheckoutState.SHIPPING)
        if address_id is not None and not any(a.id == address_id for a in self.saved_addresses):
            raise ValidationError({"address_id": ["Unknown address"]})
        self.selected_address_id = address_id

    def continue_to_payment(self) -> None:
        self._assert_state(CheckoutState.SHIPPING)
        self._abandon_if_cart_empty()

        saved = next((a for a in self.saved_addresses if a.id == self.selected_address_id), None)
        self.shipping = resolve_shipping(self.shipping_form, saved_address=saved, shopper=self.shopper)
        self.state = CheckoutState.PAYMENT

    # -------------------------------------------------------------------
    # Payment
    # -------------------------------------------------------------------
    def authorize_payment(self, method: MethodKind | str) -> PaymentAuthorization:
        """Verify stock, freeze lines and totals, and authorize with the checkout's correlation token.

        The current authorization is reused only while the method and the
        cart are unchanged. Any other cart is a new payment: its stock is
        verified again and it is authorized under its own idempotency key.
        """
        self._assert_state(CheckoutState.PAYMENT)
        self._abandon_if_cart_empty()

        method = MethodKind(method)
        lines = self.cart.lines
        fingerprint = cart_fingerprint(lines)
        if self.authorization is not None and fingerprint != self._authorized_fingerprint:
            logger.info("cart_changed_after_authorization", correlation_id=self.correlation_id)
            self._drop_authorization()
        if self.authorization is not None and self.authorization.method_kind == method:
            return self.authorization

        self.error = None
        try:
            self.verifier.verify(lines)
        except CheckoutError as exc:
            self.error = exc
            raise

        totals = self.cart.totals(discount=self.discount)
        try:
            authorization = self.coordinator.authorize(
                method,
                totals.total,
                self.settings.currency,
                metadata=self._authorization_metadata(fingerprint),
            )
        except CheckoutError as exc:
            self.error = exc
            raise

        self.frozen_lines = [line.model_copy(deep=True) for line in lines]
        self.frozen_totals = totals
        self._authorized_fingerprint = fingerprint
        self.authorization = authorization
        return authorization

    def _authorization_metadata(self, fingerprint: tuple) -> dict:
        # The first cart authorizes under the bare correlation token
        revision = self._revisions.setdefault(fingerprint, len(self._revisions))
        metadata = {"order_id": self.correlation_id}
        if revision:
            metadata["idempotency_key"] = f"{self.correlation_id}-r{revision}"
        return metadata

    def _drop_authorization(self) -> None:
        self.authorization = None
        self.frozen_lines = []
        self.frozen_totals = None
        self._authorized_fingerprint = None

    def _assert_cart_unchanged(self) -> None:
        if cart_fingerprint(self.cart.lines) != self._authorized_fingerprint:
            self.state = CheckoutState.PAYMENT
            self._drop_authorization()
            raise ValidationError({"cart": ["Your cart changed after the payment was authorized; authorize it again"]})

    def review(self) -> None:
        self._assert_state(CheckoutState.PAYMENT)
        if self.authorization is None:
            raise ValidationError({"payment": ["Authorize a payment method first"]})
        self._assert_cart_unchanged()
        self.state = CheckoutState.REVIEW

    def place_order(self, payment_details: dict | None = None) -> CommitResult | None:
        """Confirm the payment and, on success, commit the order.

        Returns None when a placement is already in flight or the gateway
        needs further shopper action.
        """
        if self._placing:
            logger.info("place_order_ignored", correlation_id=self.correlation_id)
            return None

        self._assert_state(CheckoutState.REVIEW)
        self._assert_cart_unchanged()
        self._placing = True
        try:
            self.confirm_attempts += 1
            outcome = self.coordinator.confirm(
                self.authorization,
                payment_details or {},
                attempt=self.confirm_attempts,
            )

            if isinstance(outcome, Succeeded):
                self.state = CheckoutState.PROCESSING
                self.requires_action = False
                self.result = self.pipeline.commit(
                    outcome,
                    lines=self.frozen_lines,
                    totals=self.frozen_totals,
                    currency=self.settings.currency,
                    shipping_address=self.shipping,
                    customer_id=self.shopper.id if self.shopper else None,
                )
                self.state = CheckoutState.DONE
                return self.result

            self.state = CheckoutState.PAYMENT
            if isinstance(outcome, RequiresAction):
                self.requires_action = True
                self.next_action_url = outcome.next_action_url
                return None

            if isinstance(outcome, Failed):
                self.error = PaymentDeclined(outcome.reason)
            elif isinstance(outcome, Canceled):
                self.error = PaymentCanceled(outcome.reason)
            raise self.error
        except CheckoutError as exc:
            self.error = exc
            raise
        finally:
            self._placing = False

    # -------------------------------------------------------------------
    # Navigation
    # -------------------------------------------------------------------
    def back(self) -> None:
        """Step back one screen, keeping everything entered so far."""
        if self.state not in _BACK:
            raise ValidationError({"state": [f"Cannot go back from {self.state.value}"]})
        self.state = _BACK[self.state]

    def abandon(self) -> None:
        if self.state in (CheckoutState.PROCESSING, CheckoutState.DONE):
            raise ValidationError({"state": [f"Cannot abandon a checkout that is {self.state.value}"]})
        self.state = CheckoutState.ABANDONED
        logger.info("checkout_abandoned", correlation_id=self.correlation_id)
