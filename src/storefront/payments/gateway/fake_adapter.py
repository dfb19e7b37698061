"""Configurable fake payment backends for development and testing.

Neither backend makes network calls. Outcomes are set at runtime with
``configure()`` and every call is recorded in ``calls`` so tests can assert
what reached the "gateway".
"""

from abc import abstractmethod
from uuid import uuid4

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
    PaymentMethodDescriptor,
    RequiresAction,
    Succeeded,
    WalletMethod,
    authorization_key,
    confirmation_key,
)

OUTCOMES = ("succeeded", "failed", "requires_action", "canceled")

WEBHOOK_SIGNATURE_HEADER = "x-fake-signature"
WEBHOOK_TEST_SIGNATURE = "test-signature"


class _FakeBackend(PaymentBackend):
    ref_prefix = "fake"

    def __init__(self) -> None:
        self.outcome: str = "succeeded"
        self.failure_reason: str = "Card declined"
        self.unavailable: bool = False
        self.calls: list[dict] = []
        self._authorizations: dict[str, PaymentAuthorization] = {}

    def configure(
        self,
        outcome: str = "succeeded",
        failure_reason: str = "Card declined",
        unavailable: bool = False,
    ) -> None:
        """Configure backend behavior at runtime."""
        if outcome not in OUTCOMES:
            raise ValueError(f"Unknown outcome {outcome!r}; expected one of {OUTCOMES}")
        self.outcome = outcome
        self.failure_reason = failure_reason
        self.unavailable = unavailable

    def authorize(self, amount: float, currency: str, metadata: dict) -> PaymentAuthorization:
        key = authorization_key(metadata)
        self.calls.append(
            {
                "method": "authorize",
                "amount": amount,
                "currency": currency,
                "correlation_id": metadata["order_id"],
                "idempotency_key": key,
            }
        )
        if self.unavailable:
            raise PaymentGatewayError("Fake gateway configured as unavailable")

        if key in self._authorizations:
            return self._authorizations[key]

        ref = f"{self.ref_prefix}_{uuid4().hex[:12]}"
        authorization = self._build_authorization(ref, amount, currency, metadata["order_id"])
        self._authorizations[key] = authorization
        return authorization

    def confirm(
        self,
        authorization: PaymentAuthorization,
        payment_details: dict,
        attempt: int = 1,
    ) -> ConfirmationOutcome:
        self._record_confirm(authorization, payment_details, attempt)
        if self.outcome == "succeeded":
            return Succeeded(ref=authorization.gateway_ref, method=self._describe(payment_details or {}))
        if self.outcome == "failed":
            return Failed(reason=self.failure_reason)
        if self.outcome == "requires_action":
            return RequiresAction(next_action_url=f"https://fake.gateway/next/{authorization.gateway_ref}")
        return Canceled(reason="Shopper canceled")

    def verify_webhook_signature(self, payload: bytes, headers: dict) -> bool:  # noqa: ARG002
        signature = {name.lower(): value for name, value in headers.items()}.get(WEBHOOK_SIGNATURE_HEADER)
        return signature == WEBHOOK_TEST_SIGNATURE

    def _record_confirm(self, authorization: PaymentAuthorization, payment_details: dict, attempt: int) -> None:
        self.calls.append(
            {
                "method": "confirm",
                "gateway_ref": authorization.gateway_ref,
                "payment_details": dict(payment_details or {}),
                "idempotency_key": confirmation_key(authorization, "confirm", attempt),
            }
        )

    @abstractmethod
    def _build_authorization(self, ref: str, amount: float, currency: str, correlation_id: str) -> PaymentAuthorization:
        """Build the authorization a real gateway of this kind would return."""
        ...

    @abstractmethod
    def _describe(self, payment_details: dict) -> PaymentMethodDescriptor:
        """Describe the payment method that settled the payment."""
        ...


class FakeCardBackend(_FakeBackend):
    """Card backend: the intent exists before the card is entered."""

    method_kind = MethodKind.CARD
    ref_prefix = "fake_pi"

    def _build_authorization(self, ref, amount, currency, correlation_id) -> PaymentAuthorization:
        return PaymentAuthorization(
            id=ref,
            status=AuthorizationStatus.REQUIRES_ACTION,
            amount=amount,
            currency=currency,
            gateway_ref=ref,
            correlation_id=correlation_id,
            method_kind=self.method_kind,
            client_secret=f"{ref}_secret_{uuid4().hex[:8]}",
        )

    def _describe(self, payment_details: dict) -> CardMethod:
        return CardMethod(
            brand=payment_details.get("brand", "visa"),
            last4=payment_details.get("last4", "4242"),
        )


class FakeWalletBackend(_FakeBackend):
    """Wallet backend: confirm captures after the shopper approved remotely."""

    method_kind = MethodKind.WALLET
    ref_prefix = "fake_wo"

    def _build_authorization(self, ref, amount, currency, correlation_id) -> PaymentAuthorization:
        return PaymentAuthorization(
            id=ref,
            status=AuthorizationStatus.REQUIRES_ACTION,
            amount=amount,
            currency=currency,
            gateway_ref=ref,
            correlation_id=correlation_id,
            method_kind=self.method_kind,
            approval_url=f"https://fake.wallet/approve/{ref}",
        )

    def confirm(
        self,
        authorization: PaymentAuthorization,
        payment_details: dict,
        attempt: int = 1,
    ) -> ConfirmationOutcome:
        if (payment_details or {}).get("canceled"):
            self._record_confirm(authorization, payment_details, attempt)
            return Canceled(reason="Shopper canceled the wallet approval")
        return super().confirm(authorization, payment_details, attempt)

    def _describe(self, payment_details: dict) -> WalletMethod:
        return WalletMethod(type=payment_details.get("wallet", "paypal"))
