"""Shopper session — the explicit context a shopper's cart and checkout run in.

A session is built with its collaborators (settings, local storage, payment
coordinator) instead of reaching for globals. ``open()`` materializes the
cart, ``sign_in``/``sign_out`` switch between the local and the server cart,
and ``close()`` releases the session.
"""

import structlog
from pydantic import BaseModel

from storefront.cart.local_storage import InMemoryLocalStorage, LocalStorage
from storefront.cart.store import CartStore
from storefront.checkout.flow import CheckoutFlow
from storefront.checkout.shipping import SavedAddress
from storefront.config import StorefrontSettings, get_settings
from storefront.payments.coordinator import PaymentCoordinator

logger = structlog.get_logger(__name__)


class Shopper(BaseModel):
    """A signed-in shopper as the identity provider describes them."""

    id: str
    email: str
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None


class ShopperSession:
    def __init__(
        self,
        storage: LocalStorage | None = None,
        coordinator: PaymentCoordinator | None = None,
        settings: StorefrontSettings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.storage = storage or InMemoryLocalStorage()
        self.coordinator = coordinator or PaymentCoordinator(settings=self.settings)
        self.cart = CartStore(self.storage, settings=self.settings)
        self.shopper: Shopper | None = None
        self.checkout: CheckoutFlow | None = None
        self.is_open = False

    def open(self) -> "ShopperSession":
        self.cart.load()
        self.is_open = True
        return self

    def sign_in(self, shopper: Shopper) -> None:
        self.shopper = shopper
        self.cart.sign_in(shopper.id)
        self.checkout = None

    def sign_out(self) -> None:
        self.cart.sign_out()
        self.shopper = None
        self.checkout = None

    def close(self) -> None:
        self.checkout = None
        self.is_open = False

    def start_checkout(
        self,
        saved_addresses: list[SavedAddress] | None = None,
        discount: float = 0.0,
        correlation_id: str | None = None,
    ) -> CheckoutFlow:
        """Begin a checkout over the current cart.

        Pass ``correlation_id`` to resume a checkout whose payment was already
        authorized under that token (for example a wallet order the shopper
        approved elsewhere).
        """
        self.checkout = CheckoutFlow(
            cart=self.cart,
            coordinator=self.coordinator,
            shopper=self.shopper,
            saved_addresses=saved_addresses,
            discount=discount,
            settings=self.settings,
            correlation_id=correlation_id,
        )
        logger.info(
            "checkout_started",
            customer_id=self.shopper.id if self.shopper else None,
            correlation_id=self.checkout.correlation_id,
        )
        return self.checkout

    def __enter__(self) -> "ShopperSession":
        return self.open()

    def __exit__(self, *exc_info) -> None:
        self.close()
