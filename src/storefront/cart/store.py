"""Cart Store — the current shopper's cart, wherever it lives.

An anonymous shopper's cart is kept in memory and mirrored to local storage
after every change. Once the shopper signs in, the server-persisted
``ShoppingCart`` becomes authoritative: mutations are sent as commands first,
and the in-memory view is refreshed from the repository only after they
succeed, so a failed command leaves the view untouched.
"""

import json
from datetime import UTC, datetime

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain
from pydantic import ValidationError as PayloadError

from storefront.cart.cart import ShoppingCart
from storefront.cart.items import AddToCart, RemoveFromCart, UpdateCartQuantity
from storefront.cart.lines import CartLine, ProductSnapshot, line_key
from storefront.cart.local_storage import LocalStorage
from storefront.cart.management import ClearCart, CreateCart
from storefront.config import StorefrontSettings, get_settings
from storefront.pricing.totals import CartTotals, compute_totals

logger = structlog.get_logger(__name__)


class CartStore:
    def __init__(self, storage: LocalStorage, settings: StorefrontSettings | None = None) -> None:
        self.storage = storage
        self.settings = settings or get_settings()
        self.customer_id: str | None = None
        self.cart_id: str | None = None
        self._lines: list[CartLine] = []

    # -------------------------------------------------------------------
    # Read side
    # -------------------------------------------------------------------
    @property
    def is_authenticated(self) -> bool:
        return self.customer_id is not None

    @property
    def lines(self) -> list[CartLine]:
        return list(self._lines)

    def item_count(self) -> int:
        """Total number of units across all lines."""
        return sum(line.quantity for line in self._lines)

    def is_in_cart(self, product_id, size=None, color=None, variant_id=None) -> bool:
        key = line_key(product_id, variant_id, size, color)
        return any(line.identity_key == key for line in self._lines)

    def totals(self, discount: float = 0.0) -> CartTotals:
        return compute_totals(self._lines, discount=discount, settings=self.settings)

    def snapshot(self) -> dict:
        """Items plus derived totals, in the shape mirrored to local storage."""
        return {
            "items": [line.model_dump(mode="json") for line in self._lines],
            "totals": self.totals().to_dict(),
        }

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    def load(self) -> None:
        """Materialize the cart from the server (signed in) or local storage."""
        if self.is_authenticated:
            self._refresh()
            return

        raw = self.storage.get_item(self.settings.cart_storage_key)
        if raw is None:
            self._lines = []
            return

        try:
            payload = json.loads(raw)
            self._lines = [CartLine.model_validate(item) for item in payload.get("items", [])]
        except (json.JSONDecodeError, PayloadError, AttributeError) as exc:
            logger.warning(
                "local_cart_unreadable",
                storage_key=self.settings.cart_storage_key,
                error=str(exc),
            )
            self._lines = []
            self.storage.remove_item(self.settings.cart_storage_key)

    def sign_in(self, customer_id: str) -> None:
        """Switch to the customer's server cart; the local cart is discarded."""
        cart_id = current_domain.process(CreateCart(customer_id=str(customer_id)), asynchronous=False)
        self.customer_id = str(customer_id)
        self.cart_id = cart_id
        self.storage.remove_item(self.settings.cart_storage_key)
        self._refresh()
        logger.info("cart_signed_in", customer_id=self.customer_id, cart_id=self.cart_id)

    def sign_out(self) -> None:
        logger.info("cart_signed_out", customer_id=self.customer_id)
        self.customer_id = None
        self.cart_id = None
        self._lines = []
        self.storage.remove_item(self.settings.cart_storage_key)

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------
    def add(
        self,
        product: ProductSnapshot,
        size: str | None = None,
        color: str | None = None,
        quantity: int = 1,
        variant_id: str | None = None,
    ) -> str:
        """Add ``quantity`` units of a product, merging with a matching line.

        Returns the id of the line that now holds the product.
        """
        if quantity is None or quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})

        if self.is_authenticated:
            item_id = current_domain.process(
                AddToCart(
                    cart_id=self.cart_id,
                    product_id=product.product_id,
                    variant_id=variant_id,
                    product_name=product.name,
                    sku=product.sku,
                    price=product.price,
                    discount_price=product.discount_price,
                    images=json.dumps(product.images),
                    quantity=quantity,
                    size=size,
                    color=color,
                ),
                asynchronous=False,
            )
            self._refresh()
            return item_id

        now = datetime.now(UTC)
        key = line_key(product.product_id, variant_id, size, color)
        existing = next((line for line in self._lines if line.identity_key == key), None)
        if existing is not None:
            existing.quantity += quantity
            existing.updated_at = now
            item_id = existing.id
        else:
            line = CartLine(
                product_id=product.product_id,
                variant_id=variant_id or None,
                product=product,
                quantity=quantity,
                size=size or None,
                color=color or None,
                added_at=now,
                updated_at=now,
            )
            self._lines.append(line)
            item_id = line.id

        self._persist_local()
        return item_id

    def update_quantity(self, item_id: str, quantity: int) -> None:
        """Set a line's quantity. Zero or less removes the line."""
        if quantity is None or quantity <= 0:
            self.remove(item_id)
            return

        if self.is_authenticated:
            current_domain.process(
                UpdateCartQuantity(cart_id=self.cart_id, item_id=item_id, new_quantity=quantity),
                asynchronous=False,
            )
            self._refresh()
            return

        line = self._find(item_id)
        line.quantity = quantity
        line.updated_at = datetime.now(UTC)
        self._persist_local()

    def remove(self, item_id: str) -> None:
        if self.is_authenticated:
            current_domain.process(
                RemoveFromCart(cart_id=self.cart_id, item_id=item_id),
                asynchronous=False,
            )
            self._refresh()
            return

        line = self._find(item_id)
        self._lines.remove(line)
        self._persist_local()

    def clear(self) -> None:
        if self.is_authenticated:
            current_domain.process(ClearCart(cart_id=self.cart_id), asynchronous=False)
            self._refresh()
            return

        self._lines = []
        self._persist_local()

    # -------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------
    def _find(self, item_id: str) -> CartLine:
        line = next((line for line in self._lines if line.id == str(item_id)), None)
        if line is None:
            raise ValidationError({"item_id": ["Item not found in cart"]})
        return line

    def _refresh(self) -> None:
        cart = current_domain.repository_for(ShoppingCart).get(self.cart_id)
        self._lines = cart.lines()

    def _persist_local(self) -> None:
        self.storage.set_item(self.settings.cart_storage_key, json.dumps(self.snapshot()))
