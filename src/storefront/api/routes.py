"""FastAPI routes for the Storefront — carts, inventory, orders and payments."""

import json

from fastapi import APIRouter, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from storefront.api.schemas import (
    AddToCartRequest,
    AuthorizationResponse,
    AuthorizePaymentRequest,
    CaptureWalletOrderRequest,
    CartIdResponse,
    CartItemIdResponse,
    CartLineSchema,
    CartResponse,
    ConfirmationResponse,
    CreateCartRequest,
    InitializeStockRequest,
    InventoryRecordIdResponse,
    OrderItemResponse,
    OrderResponse,
    StatusResponse,
    StockResponse,
    TotalsSchema,
    UpdateCartQuantityRequest,
    WebhookResponse,
)
from storefront.cart.cart import ShoppingCart
from storefront.cart.items import AddToCart, RemoveFromCart, UpdateCartQuantity
from storefront.cart.management import ClearCart, CreateCart
from storefront.inventory.initialization import InitializeStock
from storefront.inventory.stock import InventoryRecord
from storefront.order.order import Order
from storefront.payments.coordinator import PaymentCoordinator
from storefront.payments.gateway import get_backend
from storefront.payments.gateway.port import MethodKind, PaymentAuthorization
from storefront.payments.webhooks import method_kind_for, parse_event, record_event
from storefront.pricing.totals import compute_totals
from storefront.session import Shopper, ShopperSession

# ---------------------------------------------------------------------------
# Cart Router
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/carts", tags=["carts"])


@cart_router.post("", status_code=201, response_model=CartIdResponse)
async def create_cart(body: CreateCartRequest) -> CartIdResponse:
    result = current_domain.process(CreateCart(customer_id=body.customer_id), asynchronous=False)
    return CartIdResponse(cart_id=result)


@cart_router.get("/{cart_id}", response_model=CartResponse)
async def get_cart(cart_id: str, discount: float = 0.0) -> CartResponse:
    cart = current_domain.repository_for(ShoppingCart).get(cart_id)
    lines = cart.lines()
    totals = compute_totals(lines, discount=discount)
    return CartResponse(
        cart_id=str(cart.id),
        customer_id=str(cart.customer_id),
        items=[
            CartLineSchema(
                id=line.id,
                product_id=line.product_id,
                variant_id=line.variant_id,
                product_name=line.product.name,
                unit_price=line.unit_price,
                quantity=line.quantity,
                size=line.size,
                color=line.color,
                line_total=round(line.line_total, 2),
            )
            for line in lines
        ],
        item_count=sum(line.quantity for line in lines),
        totals=TotalsSchema(**totals.to_dict()),
    )


@cart_router.post("/{cart_id}/items", response_model=CartItemIdResponse)
async def add_cart_item(cart_id: str, body: AddToCartRequest) -> CartItemIdResponse:
    command = AddToCart(
        cart_id=cart_id,
        product_id=body.product_id,
        variant_id=body.variant_id,
        product_name=body.product_name,
        sku=body.sku,
        price=body.price,
        discount_price=body.discount_price,
        images=json.dumps(body.images),
        quantity=body.quantity,
        size=body.size,
        color=body.color,
    )
    item_id = current_domain.process(command, asynchronous=False)
    return CartItemIdResponse(item_id=item_id)


@cart_router.put("/{cart_id}/items/{item_id}", response_model=StatusResponse)
async def update_cart_item_quantity(cart_id: str, item_id: str, body: UpdateCartQuantityRequest) -> StatusResponse:
    """Set a line's quantity; zero or less removes the line."""
    if body.quantity <= 0:
        command = RemoveFromCart(cart_id=cart_id, item_id=item_id)
    else:
        command = UpdateCartQuantity(cart_id=cart_id, item_id=item_id, new_quantity=body.quantity)
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@cart_router.delete("/{cart_id}/items/{item_id}", response_model=StatusResponse)
async def remove_cart_item(cart_id: str, item_id: str) -> StatusResponse:
    current_domain.process(RemoveFromCart(cart_id=cart_id, item_id=item_id), asynchronous=False)
    return StatusResponse()


@cart_router.delete("/{cart_id}/items", response_model=StatusResponse)
async def clear_cart(cart_id: str) -> StatusResponse:
    current_domain.process(ClearCart(cart_id=cart_id), asynchronous=False)
    return StatusResponse()


# ---------------------------------------------------------------------------
# Inventory Router
# ---------------------------------------------------------------------------
inventory_router = APIRouter(prefix="/inventory", tags=["inventory"])


@inventory_router.post("", status_code=201, response_model=InventoryRecordIdResponse)
async def initialize_stock(body: InitializeStockRequest) -> InventoryRecordIdResponse:
    command = InitializeStock(
        product_id=body.product_id,
        variant_id=body.variant_id,
        sku=body.sku,
        quantity=body.quantity,
    )
    result = current_domain.process(command, asynchronous=False)
    return InventoryRecordIdResponse(record_id=result)


@inventory_router.get("/{stock_key}", response_model=StockResponse)
async def get_stock(stock_key: str) -> StockResponse:
    record = current_domain.repository_for(InventoryRecord).for_key(stock_key)
    if record is None:
        raise ObjectNotFoundError({"stock_key": [f"No inventory record for {stock_key}"]})
    return StockResponse(
        stock_key=record.stock_key,
        product_id=str(record.product_id),
        variant_id=str(record.variant_id) if record.variant_id else None,
        stock=record.stock,
        version=record._version,
    )


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str) -> OrderResponse:
    order = current_domain.repository_for(Order).get(order_id)
    return OrderResponse(
        order_id=str(order.id),
        customer_id=str(order.customer_id) if order.customer_id else None,
        status=order.status,
        payment_status=order.payment_status,
        payment_id=order.payment_id,
        subtotal=order.pricing.subtotal,
        tax=order.pricing.tax,
        shipping=order.pricing.shipping,
        discount=order.pricing.discount,
        total=order.pricing.total,
        currency=order.pricing.currency,
        items=[
            OrderItemResponse(
                product_id=str(item.product_id),
                variant_id=str(item.variant_id) if item.variant_id else None,
                product_name=item.product_name,
                quantity=item.quantity,
                size=item.size,
                color=item.color,
                unit_price=item.unit_price,
                total_price=item.total_price,
            )
            for item in order.items
        ],
    )


# ---------------------------------------------------------------------------
# Payment Router
#
# Payment routes that reach a gateway are plain ``def`` so FastAPI runs them
# in its threadpool while the adapters block on HTTP.
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payments", tags=["payments"])


def _authorization_response(authorization: PaymentAuthorization) -> AuthorizationResponse:
    return AuthorizationResponse(
        id=authorization.id,
        status=authorization.status.value,
        amount=authorization.amount,
        currency=authorization.currency,
        gateway_ref=authorization.gateway_ref,
        correlation_id=authorization.correlation_id,
        client_secret=authorization.client_secret,
        approval_url=authorization.approval_url,
    )


def _authorize(kind: MethodKind, body: AuthorizePaymentRequest) -> AuthorizationResponse:
    authorization = PaymentCoordinator().authorize(
        kind,
        body.amount,
        body.currency,
        metadata={"order_id": body.order_id},
    )
    return _authorization_response(authorization)


@payment_router.post("/card-intents", status_code=201, response_model=AuthorizationResponse)
def create_card_intent(body: AuthorizePaymentRequest) -> AuthorizationResponse:
    return _authorize(MethodKind.CARD, body)


@payment_router.post("/wallet-orders", status_code=201, response_model=AuthorizationResponse)
def create_wallet_order(body: AuthorizePaymentRequest) -> AuthorizationResponse:
    return _authorize(MethodKind.WALLET, body)


@payment_router.post("/wallet-orders/{wallet_order_id}/capture", response_model=ConfirmationResponse)
def capture_wallet_order(wallet_order_id: str, body: CaptureWalletOrderRequest) -> ConfirmationResponse:
    """Capture an approved wallet order and record the customer's cart as an order.

    The checkout resumes under the correlation token the wallet order was
    created with, so authorizing returns that same wallet order. The capture
    only runs when it covers exactly the customer's current cart.
    """
    session = ShopperSession().open()
    session.sign_in(Shopper(id=body.customer_id, email=body.shipping.email))
    flow = session.start_checkout(discount=body.discount, correlation_id=body.order_id)

    flow.update_shipping(**body.shipping.model_dump(exclude_none=True))
    flow.continue_to_payment()
    authorization = flow.authorize_payment(MethodKind.WALLET)
    if authorization.gateway_ref != wallet_order_id:
        raise ValidationError({"wallet_order_id": ["This wallet order was not created for this checkout"]})
    if round(authorization.amount, 2) != round(flow.frozen_totals.total, 2):
        raise ValidationError({"amount": ["The cart changed after the wallet order was created"]})
    flow.review()

    result = flow.place_order({"canceled": body.canceled})
    if result is None:
        return ConfirmationResponse(status="requires_action", next_action_url=flow.next_action_url)

    order = current_domain.repository_for(Order).get(result.order_id)
    return ConfirmationResponse(
        status="succeeded",
        order_id=result.order_id,
        ref=order.payment_id,
        method=order.payment_method.wallet_type,
    )


@payment_router.post("/webhooks/{provider}", response_model=WebhookResponse)
async def receive_webhook(provider: str, request: Request) -> WebhookResponse:
    """Receive a gateway webhook; the signature is checked against the raw body."""
    backend = get_backend(method_kind_for(provider))
    payload = await request.body()
    verified = await run_in_threadpool(backend.verify_webhook_signature, payload, dict(request.headers))
    if not verified:
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    event = parse_event(provider, payload)
    order_id = record_event(event)
    return WebhookResponse(event_type=event.event_type, outcome=event.outcome, order_id=order_id)
