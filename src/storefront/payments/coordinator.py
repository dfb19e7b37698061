"""Payment Coordinator — one authorize/confirm contract over all backends.

The coordinator holds no payment state; callers keep the returned
``PaymentAuthorization`` and pass it back to ``confirm``. Amount limits are
enforced here so an invalid amount never reaches a gateway.
"""

import structlog
from protean.exceptions import ValidationError

from storefront.config import StorefrontSettings, get_settings
from storefront.payments.gateway import get_backend
from storefront.payments.gateway.port import (
    Canceled,
    ConfirmationOutcome,
    Failed,
    MethodKind,
    PaymentAuthorization,
    PaymentBackend,
    RequiresAction,
    Succeeded,
)

logger = structlog.get_logger(__name__)


class PaymentCoordinator:
    def __init__(
        self,
        backends: dict[MethodKind, PaymentBackend] | None = None,
        settings: StorefrontSettings | None = None,
    ) -> None:
        self._backends = dict(backends or {})
        self.settings = settings or get_settings()

    def backend_for(self, kind: MethodKind | str) -> PaymentBackend:
        kind = MethodKind(kind)
        return self._backends.get(kind) or get_backend(kind)

    def authorize(
        self,
        kind: MethodKind | str,
        amount: float,
        currency: str,
        metadata: dict,
    ) -> PaymentAuthorization:
        kind = MethodKind(kind)
        if not metadata.get("order_id"):
            raise ValidationError({"order_id": ["A correlation token is required to authorize a payment"]})
        if kind == MethodKind.CARD and amount < self.settings.min_card_amount:
            raise ValidationError(
                {"amount": [f"Card payments must be at least {self.settings.min_card_amount:.2f} {currency}"]}
            )
        if kind == MethodKind.WALLET and amount <= 0:
            raise ValidationError({"amount": ["Wallet payments must be greater than zero"]})

        authorization = self.backend_for(kind).authorize(round(amount, 2), currency, metadata)
        logger.info(
            "payment_authorized",
            method_kind=kind.value,
            amount=authorization.amount,
            currency=authorization.currency,
            gateway_ref=authorization.gateway_ref,
            correlation_id=authorization.correlation_id,
        )
        return authorization

    def confirm(
        self,
        authorization: PaymentAuthorization,
        payment_details: dict | None = None,
        attempt: int = 1,
    ) -> ConfirmationOutcome:
        backend = self.backend_for(authorization.method_kind)
        outcome = backend.confirm(authorization, payment_details or {}, attempt)

        log = logger.bind(
            gateway_ref=authorization.gateway_ref,
            correlation_id=authorization.correlation_id,
            attempt=attempt,
        )
        if isinstance(outcome, Succeeded):
            log.info("payment_succeeded", payment_ref=outcome.ref, method=outcome.method.label())
        elif isinstance(outcome, Failed):
            log.warning("payment_failed", reason=outcome.reason)
        elif isinstance(outcome, RequiresAction):
            log.info("payment_requires_action")
        elif isinstance(outcome, Canceled):
            log.info("payment_canceled", reason=outcome.reason)
        return outcome
