"""Pydantic request/response schemas for the Storefront API.

These are external contracts (anti-corruption layer), kept separate from
internal Protean commands.
"""

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Cart Schemas
# ---------------------------------------------------------------------------
class CreateCartRequest(BaseModel):
    customer_id: str

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"customer_id": "cust-001"},
            ]
        }
    }


class AddToCartRequest(BaseModel):
    product_id: str
    variant_id: str | None = None
    product_name: str
    sku: str | None = None
    price: float = Field(ge=0)
    discount_price: float | None = Field(default=None, ge=0)
    images: list[str] = Field(default_factory=list)
    quantity: int = Field(ge=1, default=1)
    size: str | None = None
    color: str | None = None


class UpdateCartQuantityRequest(BaseModel):
    quantity: int


class CartLineSchema(BaseModel):
    id: str
    product_id: str
    variant_id: str | None = None
    product_name: str
    unit_price: float
    quantity: int
    size: str | None = None
    color: str | None = None
    line_total: float


class TotalsSchema(BaseModel):
    subtotal: float
    tax: float
    shipping: float
    discount: float
    total: float


class CartResponse(BaseModel):
    cart_id: str
    customer_id: str
    items: list[CartLineSchema]
    item_count: int
    totals: TotalsSchema


class CartIdResponse(BaseModel):
    cart_id: str


class CartItemIdResponse(BaseModel):
    item_id: str


# ---------------------------------------------------------------------------
# Inventory Schemas
# ---------------------------------------------------------------------------
class InitializeStockRequest(BaseModel):
    product_id: str
    variant_id: str | None = None
    sku: str | None = None
    quantity: int = Field(ge=0)


class InventoryRecordIdResponse(BaseModel):
    record_id: str


class StockResponse(BaseModel):
    stock_key: str
    product_id: str
    variant_id: str | None = None
    stock: int
    version: int


# ---------------------------------------------------------------------------
# Order Schemas
# ---------------------------------------------------------------------------
class OrderItemResponse(BaseModel):
    product_id: str
    variant_id: str | None = None
    product_name: str
    quantity: int
    size: str | None = None
    color: str | None = None
    unit_price: float
    total_price: float


class OrderResponse(BaseModel):
    order_id: str
    customer_id: str | None = None
    status: str
    payment_status: str
    payment_id: str
    subtotal: float
    tax: float
    shipping: float
    discount: float
    total: float
    currency: str
    items: list[OrderItemResponse]


# ---------------------------------------------------------------------------
# Payment Schemas
# ---------------------------------------------------------------------------
class AuthorizePaymentRequest(BaseModel):
    amount: float
    currency: str = Field(default="USD", min_length=3, max_length=3)
    order_id: str  # checkout correlation token


class AuthorizationResponse(BaseModel):
    id: str
    status: str
    amount: float
    currency: str
    gateway_ref: str
    correlation_id: str
    client_secret: str | None = None
    approval_url: str | None = None


class ShippingDetailsSchema(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    email: str
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    country: str | None = None
    phone: str | None = None


class CaptureWalletOrderRequest(BaseModel):
    """Completes a checkout whose wallet order the shopper approved."""

    order_id: str  # checkout correlation token the wallet order was created with
    customer_id: str
    shipping: ShippingDetailsSchema
    discount: float = Field(default=0.0, ge=0.0)
    canceled: bool = False


class ConfirmationResponse(BaseModel):
    status: str
    order_id: str | None = None
    ref: str | None = None
    method: str | None = None
    next_action_url: str | None = None


class WebhookResponse(BaseModel):
    received: bool = True
    event_type: str
    outcome: str | None = None
    order_id: str | None = None


class StatusResponse(BaseModel):
    status: str = "ok"
