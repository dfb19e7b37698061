"""Shared BDD fixtures for the cart."""

import pytest
from storefront.cart.local_storage import InMemoryLocalStorage
from storefront.cart.store import CartStore


@pytest.fixture()
def storage():
    return InMemoryLocalStorage()


@pytest.fixture()
def cart_store(storage):
    return CartStore(storage)
