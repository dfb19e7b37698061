"""Shared fixtures for checkout tests."""

import pytest
from protean import current_domain
from storefront.cart.local_storage import InMemoryLocalStorage
from storefront.cart.store import CartStore
from storefront.inventory.initialization import InitializeStock
from storefront.payments.coordinator import PaymentCoordinator
from storefront.payments.gateway.fake_adapter import FakeCardBackend, FakeWalletBackend
from storefront.payments.gateway.port import MethodKind


def _stock(product_id, quantity, variant_id=None):
    current_domain.process(
        InitializeStock(product_id=product_id, variant_id=variant_id, quantity=quantity),
        asynchronous=False,
    )


@pytest.fixture()
def storage():
    return InMemoryLocalStorage()


@pytest.fixture()
def cart(storage):
    store = CartStore(storage)
    store.load()
    return store


@pytest.fixture()
def card():
    return FakeCardBackend()


@pytest.fixture()
def wallet():
    return FakeWalletBackend()


@pytest.fixture()
def coordinator(card, wallet):
    return PaymentCoordinator(backends={MethodKind.CARD: card, MethodKind.WALLET: wallet})


@pytest.fixture()
def restock():
    """Set the stock level of a product (or variant)."""
    return _stock


@pytest.fixture()
def stocked(restock):
    restock("prod-001", 5)
    restock("prod-002", 1)


@pytest.fixture()
def filled_cart(cart, product, discounted_product, stocked):
    """Two shirts and one sneaker: subtotal 260.00."""
    cart.add(product, size="M", quantity=2)
    cart.add(discounted_product, size="42")
    return cart


@pytest.fixture()
def shipping_fields():
    return {
        "first_name": "Ada",
        "last_name": "Lovelace",
        "email": "ada@example.com",
        "address": "12 Analytical Way",
        "city": "London",
        "state": "Greater London",
        "zip_code": "N1 9GU",
        "country": "GB",
        "phone": "+44 20 7946 0000",
    }
