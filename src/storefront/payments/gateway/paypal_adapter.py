"""PayPal wallet backend over the PayPal Orders v2 REST API.

Authorization creates a PayPal order the shopper approves out of band;
confirmation captures it. The checkout correlation token is sent as
``PayPal-Request-Id``, so a repeated create returns the existing order.
Each capture attempt carries its own request id.
"""

import json

import requests
import structlog

from storefront.errors import PaymentGatewayError
from storefront.payments.gateway.port import (
    AuthorizationStatus,
    Canceled,
    ConfirmationOutcome,
    Failed,
    MethodKind,
    PaymentAuthorization,
    PaymentBackend,
    RequiresAction,
    Succeeded,
    WalletMethod,
    authorization_key,
    confirmation_key,
)

logger = structlog.get_logger(__name__)

PAYPAL_SANDBOX_BASE = "https://api-m.sandbox.paypal.com"

# Webhook header -> field of the verify-webhook-signature request
_TRANSMISSION_HEADERS = {
    "paypal-auth-algo": "auth_algo",
    "paypal-cert-url": "cert_url",
    "paypal-transmission-id": "transmission_id",
    "paypal-transmission-sig": "transmission_sig",
    "paypal-transmission-time": "transmission_time",
}


class PayPalWalletBackend(PaymentBackend):
    method_kind = MethodKind.WALLET

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        base_url: str = PAYPAL_SANDBOX_BASE,
        timeout: float = 10.0,
        session: requests.Session | None = None,
        webhook_id: str | None = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.webhook_id = webhook_id
        self._access_token: str | None = None

    # -------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------
    def _token(self) -> str:
        if self._access_token is None:
            try:
                response = self.session.post(
                    f"{self.base_url}/v1/oauth2/token",
                    data={"grant_type": "client_credentials"},
                    auth=(self.client_id, self.client_secret),
                    timeout=self.timeout,
                )
            except requests.RequestException as exc:
                raise PaymentGatewayError(f"PayPal authentication failed: {exc}") from exc
            if response.status_code >= 400:
                raise PaymentGatewayError(f"PayPal authentication rejected ({response.status_code})")
            self._access_token = self._decode(response, "/v1/oauth2/token")["access_token"]
        return self._access_token

    def _post(self, path: str, payload: dict | None, request_id: str) -> requests.Response:
        try:
            return self.session.post(
                f"{self.base_url}{path}",
                json=payload,
                headers={
                    "Authorization": f"Bearer {self._token()}",
                    "PayPal-Request-Id": request_id,
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error("paypal_request_failed", path=path, error=str(exc))
            raise PaymentGatewayError(f"PayPal request to {path} failed: {exc}") from exc

    @staticmethod
    def _decode(response: requests.Response, path: str) -> dict:
        try:
            return response.json()
        except ValueError as exc:
            logger.error("paypal_response_unreadable", path=path, status_code=response.status_code)
            raise PaymentGatewayError(f"PayPal returned an unreadable response ({response.status_code})") from exc

    # -------------------------------------------------------------------
    # PaymentBackend
    # -------------------------------------------------------------------
    def authorize(self, amount: float, currency: str, metadata: dict) -> PaymentAuthorization:
        token = metadata["order_id"]
        payload = {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "reference_id": token,
                    "amount": {"currency_code": currency.upper(), "value": f"{amount:.2f}"},
                }
            ],
        }
        response = self._post("/v2/checkout/orders", payload, request_id=authorization_key(metadata))
        if response.status_code >= 400:
            raise PaymentGatewayError(f"PayPal rejected order creation ({response.status_code})")

        order = self._decode(response, "/v2/checkout/orders")
        return PaymentAuthorization(
            id=order["id"],
            status=AuthorizationStatus.REQUIRES_ACTION,
            amount=amount,
            currency=currency,
            gateway_ref=order["id"],
            correlation_id=token,
            method_kind=self.method_kind,
            approval_url=self.link(order, "approve") or self.link(order, "payer-action"),
        )

    def confirm(
        self,
        authorization: PaymentAuthorization,
        payment_details: dict,
        attempt: int = 1,
    ) -> ConfirmationOutcome:
        if payment_details.get("canceled"):
            return Canceled(reason="Shopper canceled the PayPal approval")

        path = f"/v2/checkout/orders/{authorization.gateway_ref}/capture"
        response = self._post(path, None, request_id=confirmation_key(authorization, "capture", attempt))
        if response.status_code >= 500:
            raise PaymentGatewayError(f"PayPal failed to capture ({response.status_code})")

        body = self._decode(response, path)
        if response.status_code == 422:
            issues = {detail.get("issue") for detail in body.get("details", [])}
            if "ORDER_NOT_APPROVED" in issues or "PAYER_ACTION_REQUIRED" in issues:
                return RequiresAction(next_action_url=authorization.approval_url)
            if "INSTRUMENT_DECLINED" in issues:
                return Failed(reason="The wallet declined the payment")
            return Failed(reason=body.get("message") or "PayPal could not capture the order")
        if response.status_code >= 400:
            raise PaymentGatewayError(f"PayPal rejected capture ({response.status_code})")

        if body.get("status") == "COMPLETED":
            return Succeeded(ref=self.capture_id(body) or body["id"], method=WalletMethod(type="paypal"))
        if body.get("status") == "VOIDED":
            return Canceled(reason="PayPal order was voided")
        return Failed(reason=f"Unexpected PayPal order status: {body.get('status')}")

    def verify_webhook_signature(self, payload: bytes, headers: dict) -> bool:
        """Ask PayPal to verify the transmission signature of a webhook delivery."""
        if not self.webhook_id:
            logger.warning("paypal_webhook_id_missing")
            return False

        lowered = {name.lower(): value for name, value in headers.items()}
        if any(header not in lowered for header in _TRANSMISSION_HEADERS):
            return False
        try:
            event = json.loads(payload)
        except ValueError:
            return False

        request = {field: lowered[header] for header, field in _TRANSMISSION_HEADERS.items()}
        request["webhook_id"] = self.webhook_id
        request["webhook_event"] = event

        path = "/v1/notifications/verify-webhook-signature"
        response = self._post(path, request, request_id=lowered["paypal-transmission-id"])
        if response.status_code >= 400:
            raise PaymentGatewayError(f"PayPal rejected webhook verification ({response.status_code})")
        return self._decode(response, path).get("verification_status") == "SUCCESS"

    @staticmethod
    def link(order: dict, rel: str) -> str | None:
        return next((link["href"] for link in order.get("links", []) if link.get("rel") == rel), None)

    @staticmethod
    def capture_id(order: dict) -> str | None:
        for unit in order.get("purchase_units", []):
            captures = unit.get("payments", {}).get("captures", [])
            if captures:
                return captures[0].get("id")
        return None
