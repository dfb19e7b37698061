"""BDD tests for checkout."""

import pytest
from protean import current_domain
from pytest_bdd import given, parsers, scenarios, then, when
from storefront.cart.lines import ProductSnapshot
from storefront.checkout.flow import CheckoutFlow, CheckoutState
from storefront.errors import CheckoutError, InsufficientStock, PaymentDeclined
from storefront.inventory.stock import InventoryRecord
from storefront.order.order import Order

scenarios("features/checkout.feature")


@pytest.fixture()
def context():
    return {}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('"{product_id}" has {quantity:d} units in stock'))
@given(parsers.cfparse('"{product_id}" has {quantity:d} unit in stock'))
def product_in_stock(restock, product_id, quantity):
    restock(product_id, quantity)


@given(parsers.cfparse('an anonymous shopper with {qty:d} of "{product_id}" in the cart'))
def shopper_with_cart(cart, qty, product_id):
    cart.add(ProductSnapshot(product_id=product_id, name="Linen Shirt", price=100.0), quantity=qty)


@given("the shopper entered complete shipping details", target_fixture="flow")
def shipping_entered(cart, coordinator, shipping_fields):
    flow = CheckoutFlow(cart=cart, coordinator=coordinator)
    flow.update_shipping(**shipping_fields)
    flow.continue_to_payment()
    return flow


@given(parsers.cfparse('the card gateway declines with "{reason}"'))
def gateway_declines(card, reason):
    card.configure(outcome="failed", failure_reason=reason)


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when("the shopper pays by card")
def pay_by_card(flow, context):
    flow.authorize_payment("card")
    flow.review()
    try:
        context["result"] = flow.place_order({"brand": "visa", "last4": "4242"})
    except CheckoutError as exc:
        context["error"] = exc


@when("the shopper tries to authorize a card payment")
def try_authorize(flow, context):
    try:
        flow.authorize_payment("card")
    except CheckoutError as exc:
        context["error"] = exc


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then("the checkout is done")
def checkout_done(flow):
    assert flow.state == CheckoutState.DONE


@then("the checkout is back at payment")
def checkout_at_payment(flow):
    assert flow.state == CheckoutState.PAYMENT


@then(parsers.cfparse("{count:d} order exists"))
@then(parsers.cfparse("{count:d} orders exist"))
def orders_exist(count):
    assert len(current_domain.repository_for(Order)._dao.query.all().items) == count


@then(parsers.cfparse('"{product_id}" has {quantity:d} units in stock'))
def stock_level(product_id, quantity):
    assert current_domain.repository_for(InventoryRecord).available(product_id) == quantity


@then("the cart is empty")
def cart_empty(cart):
    assert cart.lines == []


@then("the shopper is told the payment was declined")
def told_declined(context):
    assert isinstance(context["error"], PaymentDeclined)


@then(parsers.cfparse("the shopper is told only {available:d} is available"))
def told_insufficient(context, available):
    assert isinstance(context["error"], InsufficientStock)
    assert context["error"].available == available


@then("the card gateway was never called")
def gateway_not_called(card):
    assert card.calls == []
