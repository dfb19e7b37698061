"""Gateway webhooks — what a provider reports about a payment after the fact.

Outcome events are matched against recorded orders by payment reference. A
succeeded payment with no order is logged at error level with the
reference, the same reconciliation signal the commit pipeline emits when it
cannot persist an order. Other events are acknowledged and logged.
"""

import json
from dataclasses import dataclass

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from storefront.order.order import Order
from storefront.payments.gateway.port import MethodKind

logger = structlog.get_logger(__name__)

# Provider name in the webhook URL -> backend that verifies its deliveries
PROVIDERS = {
    "stripe": MethodKind.CARD,
    "paypal": MethodKind.WALLET,
}

_OUTCOMES = {
    "stripe": {
        "payment_intent.succeeded": "succeeded",
        "payment_intent.payment_failed": "failed",
    },
    "paypal": {
        "PAYMENT.CAPTURE.COMPLETED": "succeeded",
        "PAYMENT.CAPTURE.DENIED": "failed",
    },
}


@dataclass(frozen=True)
class WebhookEvent:
    provider: str
    event_type: str
    outcome: str | None = None
    gateway_ref: str | None = None
    reason: str | None = None


def method_kind_for(provider: str) -> MethodKind:
    if provider not in PROVIDERS:
        raise ObjectNotFoundError({"provider": [f"No webhooks are accepted from {provider}"]})
    return PROVIDERS[provider]


def parse_event(provider: str, payload: bytes) -> WebhookEvent:
    """Read the event type, payment reference and failure reason of a delivery."""
    try:
        body = json.loads(payload)
    except ValueError as exc:
        raise ValidationError({"payload": ["Webhook payload is not valid JSON"]}) from exc
    if not isinstance(body, dict):
        raise ValidationError({"payload": ["Webhook payload must be an object"]})

    if provider == "stripe":
        event_type = body.get("type", "")
        resource = (body.get("data") or {}).get("object") or {}
        reason = (resource.get("last_payment_error") or {}).get("message")
    else:
        event_type = body.get("event_type", "")
        resource = body.get("resource") or {}
        reason = (resource.get("status_details") or {}).get("reason")

    return WebhookEvent(
        provider=provider,
        event_type=event_type,
        outcome=_OUTCOMES[provider].get(event_type),
        gateway_ref=resource.get("id"),
        reason=reason,
    )


def record_event(event: WebhookEvent) -> str | None:
    """Log the event against its order; returns the order id when one exists."""
    log = logger.bind(provider=event.provider, event_type=event.event_type, gateway_ref=event.gateway_ref)
    if event.outcome is None:
        log.info("payment_webhook_ignored")
        return None

    order = None
    if event.gateway_ref:
        order = current_domain.repository_for(Order).for_payment(event.gateway_ref)
    order_id = str(order.id) if order is not None else None

    if event.outcome == "failed":
        log.warning("payment_webhook_failed", reason=event.reason, order_id=order_id)
    elif order is None:
        log.error("payment_webhook_without_order")
    else:
        log.info("payment_webhook_succeeded", order_id=order_id)
    return order_id
