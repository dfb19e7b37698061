"""Application tests for the checkout state machine."""

from unittest.mock import patch

import pytest
from protean import current_domain
from protean.exceptions import ValidationError
from storefront.checkout.flow import CheckoutFlow, CheckoutState
from storefront.checkout.shipping import SavedAddress
from storefront.errors import InsufficientStock, PaymentCanceled, PaymentDeclined, PersistenceFailure
from storefront.inventory.stock import InventoryRecord
from storefront.order.order import Order
from storefront.payments.gateway.fake_adapter import FakeCardBackend
from storefront.payments.gateway.port import MethodKind
from storefront.session import Shopper


def _orders():
    return current_domain.repository_for(Order)._dao.query.all().items


def _available(stock_key):
    return current_domain.repository_for(InventoryRecord).available(stock_key)


@pytest.fixture()
def flow(filled_cart, coordinator):
    return CheckoutFlow(cart=filled_cart, coordinator=coordinator)


def _to_review(flow, shipping_fields, method="card"):
    flow.update_shipping(**shipping_fields)
    flow.continue_to_payment()
    flow.authorize_payment(method)
    flow.review()


class TestShippingStep:
    def test_starts_in_shipping(self, flow):
        assert flow.state == CheckoutState.SHIPPING
        assert flow.correlation_id

    def test_incomplete_shipping_blocks_payment(self, flow, shipping_fields):
        del shipping_fields["email"]
        flow.update_shipping(**shipping_fields)
        with pytest.raises(ValidationError) as exc:
            flow.continue_to_payment()
        assert "email" in exc.value.messages
        assert flow.state == CheckoutState.SHIPPING

    def test_complete_shipping_enters_payment(self, flow, shipping_fields):
        flow.update_shipping(**shipping_fields)
        flow.continue_to_payment()
        assert flow.state == CheckoutState.PAYMENT
        assert flow.shipping["city"] == "London"

    def test_empty_cart_abandons(self, cart, coordinator, shipping_fields):
        flow = CheckoutFlow(cart=cart, coordinator=coordinator)
        flow.update_shipping(**shipping_fields)
        with pytest.raises(ValidationError):
            flow.continue_to_payment()
        assert flow.state == CheckoutState.ABANDONED

    def test_unknown_saved_address(self, flow):
        with pytest.raises(ValidationError):
            flow.select_address("addr-404")


class TestSavedAddresses:
    @pytest.fixture()
    def shopper(self):
        return Shopper(
            id="cust-001",
            email="grace@example.com",
            first_name="Grace",
            last_name="Hopper",
            phone="+1 555 0100",
        )

    @pytest.fixture()
    def addresses(self):
        return [
            SavedAddress(id="addr-1", street="1 Main St", city="Springfield", zip_code="11111", country="US"),
            SavedAddress(
                id="addr-2",
                street="2 Elm St",
                city="Shelbyville",
                zip_code="22222",
                country="US",
                is_default=True,
            ),
        ]

    def test_default_address_is_preselected(self, filled_cart, coordinator, shopper, addresses):
        flow = CheckoutFlow(cart=filled_cart, coordinator=coordinator, shopper=shopper, saved_addresses=addresses)
        assert flow.selected_address_id == "addr-2"

    def test_saved_address_ships_with_profile(self, filled_cart, coordinator, shopper, addresses):
        flow = CheckoutFlow(cart=filled_cart, coordinator=coordinator, shopper=shopper, saved_addresses=addresses)
        flow.select_address("addr-1")
        flow.continue_to_payment()
        assert flow.shipping["city"] == "Springfield"
        assert flow.shipping["email"] == "grace@example.com"

    def test_deselecting_requires_full_form(self, filled_cart, coordinator, shopper, addresses):
        flow = CheckoutFlow(cart=filled_cart, coordinator=coordinator, shopper=shopper, saved_addresses=addresses)
        flow.select_address(None)
        with pytest.raises(ValidationError):
            flow.continue_to_payment()

    def test_signed_in_order_belongs_to_shopper(self, cart, product, stocked, coordinator, shopper, addresses):
        cart.sign_in(shopper.id)
        cart.add(product, size="M")
        flow = CheckoutFlow(cart=cart, coordinator=coordinator, shopper=shopper, saved_addresses=addresses)
        flow.continue_to_payment()
        flow.authorize_payment("card")
        flow.review()
        result = flow.place_order()
        order = current_domain.repository_for(Order).get(result.order_id)
        assert order.customer_id == "cust-001"
        assert order.shipping_address.city == "Shelbyville"
        assert cart.lines == []


class TestAuthorizePayment:
    def test_insufficient_stock_aborts_before_gateway(self, filled_cart, coordinator, card, shipping_fields):
        filled_cart.update_quantity(filled_cart.lines[0].id, 6)
        flow = CheckoutFlow(cart=filled_cart, coordinator=coordinator)
        flow.update_shipping(**shipping_fields)
        flow.continue_to_payment()
        with pytest.raises(InsufficientStock) as exc:
            flow.authorize_payment("card")
        assert exc.value.product_name == "Linen Shirt"
        assert exc.value.available == 5
        assert exc.value.requested == 6
        assert card.calls == []
        assert flow.authorization is None
        assert flow.error is exc.value
        assert flow.state == CheckoutState.PAYMENT

    def test_totals_are_frozen_at_authorization(self, flow, shipping_fields):
        flow.update_shipping(**shipping_fields)
        flow.continue_to_payment()
        authorization = flow.authorize_payment("card")
        assert flow.frozen_totals.subtotal == 260.0
        assert authorization.amount == flow.frozen_totals.total

    def test_same_method_reuses_authorization(self, flow, card, shipping_fields):
        flow.update_shipping(**shipping_fields)
        flow.continue_to_payment()
        first = flow.authorize_payment("card")
        second = flow.authorize_payment(MethodKind.CARD)
        assert first is second
        assert len(card.calls) == 1

    def test_correlation_token_is_stable_across_methods(self, flow, card, wallet, shipping_fields):
        flow.update_shipping(**shipping_fields)
        flow.continue_to_payment()
        flow.authorize_payment("card")
        flow.authorize_payment("wallet")
        assert card.calls[0]["correlation_id"] == flow.correlation_id
        assert card.calls[0]["idempotency_key"] == flow.correlation_id
        assert wallet.calls[0]["idempotency_key"] == flow.correlation_id
        assert flow.authorization.method_kind == MethodKind.WALLET

    def test_review_requires_authorization(self, flow, shipping_fields):
        flow.update_shipping(**shipping_fields)
        flow.continue_to_payment()
        with pytest.raises(ValidationError):
            flow.review()


class TestCartChangesAfterAuthorization:
    def _to_payment(self, flow, shipping_fields):
        flow.update_shipping(**shipping_fields)
        flow.continue_to_payment()

    def test_added_units_are_verified_again(self, flow, card, shipping_fields):
        self._to_payment(flow, shipping_fields)
        flow.authorize_payment("card")
        flow.cart.update_quantity(flow.cart.lines[0].id, 6)

        with pytest.raises(InsufficientStock):
            flow.authorize_payment("card")
        assert flow.authorization is None
        assert flow.frozen_totals is None
        assert len(card.calls) == 1

    def test_new_cart_is_authorized_for_its_own_amount(self, flow, card, shipping_fields):
        self._to_payment(flow, shipping_fields)
        first = flow.authorize_payment("card")
        flow.cart.update_quantity(flow.cart.lines[0].id, 3)

        second = flow.authorize_payment("card")

        assert second is not first
        assert flow.frozen_totals.subtotal == 360.0
        assert second.amount == flow.frozen_totals.total
        keys = [call["idempotency_key"] for call in card.calls]
        assert keys == [flow.correlation_id, f"{flow.correlation_id}-r1"]

    def test_order_records_exactly_what_was_charged(self, flow, shipping_fields):
        self._to_payment(flow, shipping_fields)
        flow.authorize_payment("card")
        flow.cart.update_quantity(flow.cart.lines[0].id, 3)
        flow.authorize_payment("card")
        flow.review()

        result = flow.place_order()

        order = current_domain.repository_for(Order).get(result.order_id)
        assert order.pricing.subtotal == 360.0
        assert sum(item.quantity * item.unit_price for item in order.items) == order.pricing.subtotal
        assert order.pricing.total == flow.authorization.amount
        assert _available("prod-001") == 2

    def test_change_after_review_blocks_confirmation(self, flow, card, shipping_fields):
        _to_review(flow, shipping_fields)
        flow.cart.update_quantity(flow.cart.lines[0].id, 3)

        with pytest.raises(ValidationError) as exc:
            flow.place_order()

        assert "cart" in exc.value.messages
        assert flow.state == CheckoutState.PAYMENT
        assert flow.authorization is None
        assert [call for call in card.calls if call["method"] == "confirm"] == []
        assert _orders() == []

    def test_returning_to_the_first_cart_reuses_its_key(self, flow, card, shipping_fields):
        self._to_payment(flow, shipping_fields)
        flow.authorize_payment("card")
        flow.cart.update_quantity(flow.cart.lines[0].id, 3)
        flow.authorize_payment("card")
        flow.cart.update_quantity(flow.cart.lines[0].id, 2)

        authorization = flow.authorize_payment("card")

        assert card.calls[-1]["idempotency_key"] == flow.correlation_id
        assert authorization.amount == flow.frozen_totals.total


class TestPlaceOrder:
    def test_successful_card_checkout(self, flow, shipping_fields):
        _to_review(flow, shipping_fields)
        result = flow.place_order({"brand": "visa", "last4": "4242"})

        assert flow.state == CheckoutState.DONE
        assert flow.result is result
        order = current_domain.repository_for(Order).get(result.order_id)
        assert order.pricing.total == flow.frozen_totals.total
        assert order.payment_method.brand == "visa"
        assert order.payment_id == flow.authorization.gateway_ref
        assert _available("prod-001") == 3
        assert flow.cart.lines == []

    def test_successful_wallet_checkout(self, flow, shipping_fields):
        _to_review(flow, shipping_fields, method="wallet")
        result = flow.place_order()
        order = current_domain.repository_for(Order).get(result.order_id)
        assert order.payment_method.kind == "wallet"
        assert order.payment_method.wallet_type == "paypal"

    def test_declined_payment_leaves_no_order(self, flow, card, shipping_fields):
        card.configure(outcome="failed", failure_reason="Insufficient funds")
        _to_review(flow, shipping_fields)
        with pytest.raises(PaymentDeclined) as exc:
            flow.place_order()
        assert exc.value.reason == "Insufficient funds"
        assert flow.state == CheckoutState.PAYMENT
        assert _orders() == []
        assert _available("prod-001") == 5
        assert len(flow.cart.lines) == 2

    def test_canceled_wallet_leaves_no_order(self, flow, shipping_fields):
        _to_review(flow, shipping_fields, method="wallet")
        with pytest.raises(PaymentCanceled):
            flow.place_order({"canceled": True})
        assert flow.state == CheckoutState.PAYMENT
        assert _orders() == []
        assert _available("prod-002") == 1

    def test_retry_after_decline(self, flow, card, shipping_fields):
        card.configure(outcome="failed")
        _to_review(flow, shipping_fields)
        with pytest.raises(PaymentDeclined):
            flow.place_order()
        card.configure(outcome="succeeded")
        flow.review()
        assert flow.place_order() is not None
        assert len(_orders()) == 1

        confirm_keys = [call["idempotency_key"] for call in card.calls if call["method"] == "confirm"]
        assert confirm_keys == [f"{flow.correlation_id}-confirm-1", f"{flow.correlation_id}-confirm-2"]

    def test_requires_action_returns_to_payment(self, flow, card, shipping_fields):
        card.configure(outcome="requires_action")
        _to_review(flow, shipping_fields)
        assert flow.place_order() is None
        assert flow.state == CheckoutState.PAYMENT
        assert flow.requires_action is True
        assert flow.next_action_url.startswith("https://fake.gateway/next/")
        assert _orders() == []

        card.configure(outcome="succeeded")
        flow.review()
        flow.place_order()
        assert flow.state == CheckoutState.DONE
        assert flow.requires_action is False

    def test_place_order_requires_review(self, flow):
        with pytest.raises(ValidationError):
            flow.place_order()

    def test_persistence_failure_stays_processing(self, flow, shipping_fields):
        _to_review(flow, shipping_fields)
        with patch("storefront.checkout.pipeline.PlaceOrder", side_effect=RuntimeError("database down")):
            with pytest.raises(PersistenceFailure):
                flow.place_order()
        assert flow.state == CheckoutState.PROCESSING
        assert isinstance(flow.error, PersistenceFailure)

    def test_stock_errors_still_clear_the_cart(self, flow, shipping_fields):
        _to_review(flow, shipping_fields)
        with patch("storefront.checkout.pipeline.DecrementStock", side_effect=RuntimeError("db timeout")):
            result = flow.place_order()

        assert flow.state == CheckoutState.DONE
        assert result.stock_errors == {"prod-001": "db timeout", "prod-002": "db timeout"}
        assert len(_orders()) == 1
        assert flow.cart.lines == []
        assert _available("prod-001") == 5


class ReentrantCardBackend(FakeCardBackend):
    """Presses "place order" again while the first confirmation is in flight."""

    def __init__(self):
        super().__init__()
        self.flow = None
        self.nested_results = []

    def confirm(self, authorization, payment_details, attempt=1):
        self.nested_results.append(self.flow.place_order(payment_details))
        return super().confirm(authorization, payment_details, attempt)


class TestReentrancy:
    def test_second_press_is_ignored(self, filled_cart, shipping_fields):
        from storefront.payments.coordinator import PaymentCoordinator

        backend = ReentrantCardBackend()
        flow = CheckoutFlow(cart=filled_cart, coordinator=PaymentCoordinator(backends={MethodKind.CARD: backend}))
        backend.flow = flow
        _to_review(flow, shipping_fields)

        result = flow.place_order()

        assert result is not None
        assert backend.nested_results == [None]
        assert len([call for call in backend.calls if call["method"] == "confirm"]) == 1
        assert len(_orders()) == 1


class TestNavigation:
    def test_back_keeps_shipping_details(self, flow, shipping_fields):
        flow.update_shipping(**shipping_fields)
        flow.continue_to_payment()
        flow.back()
        assert flow.state == CheckoutState.SHIPPING
        assert flow.shipping_form.city == "London"

    def test_back_from_review(self, flow, shipping_fields):
        _to_review(flow, shipping_fields)
        flow.back()
        assert flow.state == CheckoutState.PAYMENT
        assert flow.authorization is not None

    def test_cannot_go_back_from_shipping(self, flow):
        with pytest.raises(ValidationError):
            flow.back()

    def test_abandon_before_processing(self, flow):
        flow.abandon()
        assert flow.state == CheckoutState.ABANDONED

    def test_cannot_abandon_after_done(self, flow, shipping_fields):
        _to_review(flow, shipping_fields)
        flow.place_order()
        with pytest.raises(ValidationError):
            flow.abandon()
        assert flow.state == CheckoutState.DONE
