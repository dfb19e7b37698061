"""Stripe card backend over the Stripe REST API.

Authorization creates a PaymentIntent; confirmation confirms it with the
payment method token collected by the card form. The checkout correlation
token is the ``Idempotency-Key`` of the intent request, so a retried request
returns the intent Stripe already created. Each confirmation attempt carries
its own key.
"""

import hashlib
import hmac
import time

import requests
import structlog

from storefront.errors import PaymentGatewayError
from storefront.payments.gateway.port import (
    AuthorizationStatus,
    Canceled,
    CardMethod,
    ConfirmationOutcome,
    Failed,
    MethodKind,
    PaymentAuthorization,
    PaymentBackend,
    RequiresAction,
    Succeeded,
    authorization_key,
    confirmation_key,
)

logger = structlog.get_logger(__name__)

STRIPE_API_BASE = "https://api.stripe.com/v1"
SIGNATURE_HEADER = "stripe-signature"
SIGNATURE_TOLERANCE_SECONDS = 300

# Intent statuses that still need the shopper (or a card) before confirming
_PENDING_STATUSES = {"requires_payment_method", "requires_confirmation", "requires_action", "processing"}


def to_minor_units(amount: float) -> int:
    return int(round(amount * 100))


def sign_payload(payload: bytes, secret: str, timestamp: int) -> str:
    """Compute the ``v1`` signature Stripe sends for ``payload`` at ``timestamp``."""
    signed = f"{timestamp}.".encode() + payload
    return hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()


class StripeCardBackend(PaymentBackend):
    method_kind = MethodKind.CARD

    def __init__(
        self,
        secret_key: str,
        base_url: str = STRIPE_API_BASE,
        timeout: float = 10.0,
        session: requests.Session | None = None,
        webhook_secret: str | None = None,
    ) -> None:
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.webhook_secret = webhook_secret

    def _post(self, path: str, data: dict, idempotency_key: str) -> requests.Response:
        try:
            return self.session.post(
                f"{self.base_url}{path}",
                data=data,
                headers={
                    "Authorization": f"Bearer {self.secret_key}",
                    "Idempotency-Key": idempotency_key,
                },
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error("stripe_request_failed", path=path, error=str(exc))
            raise PaymentGatewayError(f"Stripe request to {path} failed: {exc}") from exc

    @staticmethod
    def _decode(response: requests.Response, path: str) -> dict:
        try:
            return response.json()
        except ValueError as exc:
            logger.error("stripe_response_unreadable", path=path, status_code=response.status_code)
            raise PaymentGatewayError(f"Stripe returned an unreadable response ({response.status_code})") from exc

    def authorize(self, amount: float, currency: str, metadata: dict) -> PaymentAuthorization:
        data = {
            "amount": to_minor_units(amount),
            "currency": currency.lower(),
            "automatic_payment_methods[enabled]": "true",
        }
        for key, value in metadata.items():
            data[f"metadata[{key}]"] = str(value)

        response = self._post("/payment_intents", data, idempotency_key=authorization_key(metadata))
        if response.status_code >= 400:
            raise PaymentGatewayError(f"Stripe rejected intent creation ({response.status_code})")

        intent = self._decode(response, "/payment_intents")
        return PaymentAuthorization(
            id=intent["id"],
            status=AuthorizationStatus.REQUIRES_ACTION,
            amount=amount,
            currency=currency,
            gateway_ref=intent["id"],
            correlation_id=metadata["order_id"],
            method_kind=self.method_kind,
            client_secret=intent.get("client_secret"),
        )

    def confirm(
        self,
        authorization: PaymentAuthorization,
        payment_details: dict,
        attempt: int = 1,
    ) -> ConfirmationOutcome:
        data = {"expand[]": "payment_method"}
        if payment_details.get("payment_method"):
            data["payment_method"] = payment_details["payment_method"]
        if payment_details.get("return_url"):
            data["return_url"] = payment_details["return_url"]

        path = f"/payment_intents/{authorization.gateway_ref}/confirm"
        response = self._post(path, data, idempotency_key=confirmation_key(authorization, "confirm", attempt))
        if response.status_code >= 500:
            raise PaymentGatewayError(f"Stripe failed to confirm ({response.status_code})")

        body = self._decode(response, path)
        if response.status_code == 402 or body.get("error", {}).get("type") == "card_error":
            error = body.get("error", {})
            return Failed(reason=error.get("message") or "Card declined")
        if response.status_code >= 400:
            raise PaymentGatewayError(f"Stripe rejected confirmation ({response.status_code})")

        return self.outcome_from_intent(body)

    def verify_webhook_signature(self, payload: bytes, headers: dict) -> bool:
        if not self.webhook_secret:
            logger.warning("stripe_webhook_secret_missing")
            return False

        header = {name.lower(): value for name, value in headers.items()}.get(SIGNATURE_HEADER, "")
        timestamp = None
        signatures = []
        for part in header.split(","):
            name, _, value = part.strip().partition("=")
            if name == "t":
                timestamp = value
            elif name == "v1":
                signatures.append(value)
        if not timestamp or not timestamp.isdigit() or not signatures:
            return False
        if abs(time.time() - int(timestamp)) > SIGNATURE_TOLERANCE_SECONDS:
            logger.warning("stripe_webhook_signature_expired", timestamp=timestamp)
            return False

        expected = sign_payload(payload, self.webhook_secret, int(timestamp))
        return any(hmac.compare_digest(expected, signature) for signature in signatures)

    @staticmethod
    def outcome_from_intent(intent: dict) -> ConfirmationOutcome:
        status = intent.get("status")
        if status == "succeeded":
            return Succeeded(ref=intent["id"], method=StripeCardBackend.describe(intent.get("payment_method")))
        if status == "canceled":
            return Canceled(reason=intent.get("cancellation_reason"))
        if status == "requires_action":
            next_action = intent.get("next_action") or {}
            redirect = next_action.get("redirect_to_url") or {}
            return RequiresAction(next_action_url=redirect.get("url"))
        if status == "requires_payment_method" and intent.get("last_payment_error"):
            return Failed(reason=intent["last_payment_error"].get("message") or "Card declined")
        if status in _PENDING_STATUSES:
            return RequiresAction()
        return Failed(reason=f"Unexpected payment status: {status}")

    @staticmethod
    def describe(payment_method) -> CardMethod:
        """Resolve an (expanded) Stripe payment method into a ``CardMethod``."""
        card = payment_method.get("card", {}) if isinstance(payment_method, dict) else {}
        return CardMethod(brand=card.get("brand", "card"), last4=card.get("last4", "????"))
