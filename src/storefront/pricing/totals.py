"""Totals calculator — derives cart totals from line items alone.

Totals are never stored next to the items; every caller recomputes them, so
the numbers cannot drift from the lines they describe.
"""

from collections.abc import Iterable
from dataclasses import asdict, dataclass

from protean.exceptions import ValidationError

from storefront.config import StorefrontSettings, get_settings


@dataclass(frozen=True)
class CartTotals:
    subtotal: float = 0.0
    tax: float = 0.0
    shipping: float = 0.0
    discount: float = 0.0
    total: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)

    def as_pricing(self, currency: str) -> dict:
        """Pricing payload in the shape the Order aggregate stores."""
        return {**self.to_dict(), "currency": currency}


def _money(amount: float) -> float:
    return round(amount + 0.0, 2)


def compute_totals(
    items: Iterable,
    discount: float = 0.0,
    settings: StorefrontSettings | None = None,
) -> CartTotals:
    """Compute subtotal, tax, shipping, discount and total for ``items``.

    Each item must expose ``unit_price`` (discount price when present, else
    list price) and ``quantity``.
    """
    settings = settings or get_settings()
    discount = discount or 0.0
    if discount < 0:
        raise ValidationError({"discount": ["Discount cannot be negative"]})

    items = list(items)
    subtotal = sum(item.unit_price * item.quantity for item in items)
    tax = subtotal * settings.tax_rate

    if not items or subtotal > settings.free_shipping_threshold:
        shipping = 0.0
    else:
        shipping = settings.flat_shipping_fee

    total = subtotal + tax + shipping - discount

    return CartTotals(
        subtotal=_money(subtotal),
        tax=_money(tax),
        shipping=_money(shipping),
        discount=_money(discount),
        total=_money(total),
    )
