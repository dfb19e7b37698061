"""Cart line items as the shopper-facing cart sees them.

A ``CartLine`` is the same shape whether it came from local storage or from
the server cart, so totals, stock checks and the commit pipeline never need
to know where the cart lives.
"""

from datetime import UTC, datetime
from uuid import uuid4

from pydantic import BaseModel, Field


class ProductSnapshot(BaseModel):
    """Catalogue data frozen at the moment a product was put in the cart."""

    product_id: str
    name: str
    price: float = Field(ge=0)
    discount_price: float | None = Field(default=None, ge=0)
    images: list[str] = Field(default_factory=list)
    sku: str | None = None

    @property
    def unit_price(self) -> float:
        return self.discount_price if self.discount_price is not None else self.price


class CartLine(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    product_id: str
    variant_id: str | None = None
    product: ProductSnapshot
    quantity: int = Field(ge=1)
    size: str | None = None
    color: str | None = None
    added_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def identity_key(self) -> tuple:
        return line_key(self.product_id, self.variant_id, self.size, self.color)

    @property
    def unit_price(self) -> float:
        return self.product.unit_price

    @property
    def line_total(self) -> float:
        return self.unit_price * self.quantity

    @property
    def stock_key(self) -> str:
        """Inventory is tracked per variant when one is set, else per product."""
        return self.variant_id or self.product_id


def line_key(product_id, variant_id=None, size=None, color=None) -> tuple:
    """Merge/dedup key for a cart line. Empty strings count as unset."""
    return (str(product_id), variant_id or None, size or None, color or None)
