import os
from pathlib import Path

import pytest
from protean.integrations.pytest import DomainFixture


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Select the protean config overlay before the domain is imported."""
    os.environ["PROTEAN_ENV"] = session.config.option.env


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        test_path = Path(item.fspath)

        if "/domain/" in str(test_path):
            item.add_marker(pytest.mark.domain)
        elif "/application/" in str(test_path):
            item.add_marker(pytest.mark.application)
        elif "/integration/" in str(test_path):
            item.add_marker(pytest.mark.integration)
            # Integration tests are often slower
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)


@pytest.fixture(scope="session")
def storefront_bed():
    from storefront.domain import storefront

    bed = DomainFixture(storefront)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(storefront_bed):
    with storefront_bed.domain_context():
        yield


@pytest.fixture(autouse=True)
def run_around_tests(_ctx):
    """Pin default settings and fake gateways; clean up storage after every test."""
    from storefront.config import StorefrontSettings, reset_settings, set_settings
    from storefront.payments.gateway import reset_backends

    set_settings(StorefrontSettings())
    reset_backends()

    yield

    from protean import current_domain

    # Clear all databases
    for _, provider in current_domain.providers.items():
        provider._data_reset()

    # Drain event stores
    current_domain.event_store.store._data_reset()

    reset_backends()
    reset_settings()


@pytest.fixture()
def product():
    from storefront.cart.lines import ProductSnapshot

    return ProductSnapshot(
        product_id="prod-001",
        name="Linen Shirt",
        price=100.0,
        images=["https://cdn.example.com/shirt.jpg"],
        sku="SKU-001",
    )


@pytest.fixture()
def discounted_product():
    from storefront.cart.lines import ProductSnapshot

    return ProductSnapshot(
        product_id="prod-002",
        name="Canvas Sneaker",
        price=80.0,
        discount_price=60.0,
        sku="SKU-002",
    )
