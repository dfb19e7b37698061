"""Payment backend port (abstract interface).

Every backend (card network or wallet redirect) authorizes first and
confirms later. Gateway payloads are translated into the frozen dataclasses
below inside each adapter, so nothing outside ``gateway`` ever sees a raw
gateway response.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum


class AuthorizationStatus(Enum):
    REQUIRES_ACTION = "requires_action"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"


class MethodKind(Enum):
    CARD = "card"
    WALLET = "wallet"


# ---------------------------------------------------------------------------
# Payment method descriptors
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class CardMethod:
    brand: str
    last4: str
    kind: str = field(default=MethodKind.CARD.value, init=False)

    def label(self) -> str:
        return f"{self.brand} ending in {self.last4}"


@dataclass(frozen=True)
class WalletMethod:
    type: str
    kind: str = field(default=MethodKind.WALLET.value, init=False)

    def label(self) -> str:
        return self.type


PaymentMethodDescriptor = CardMethod | WalletMethod


# ---------------------------------------------------------------------------
# Authorization and confirmation outcomes
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class PaymentAuthorization:
    """A provisional payment (card intent or wallet order) awaiting confirmation."""

    id: str
    status: AuthorizationStatus
    amount: float
    currency: str
    gateway_ref: str
    correlation_id: str
    method_kind: MethodKind
    client_secret: str | None = None
    approval_url: str | None = None


@dataclass(frozen=True)
class Succeeded:
    ref: str
    method: PaymentMethodDescriptor


@dataclass(frozen=True)
class Failed:
    reason: str


@dataclass(frozen=True)
class RequiresAction:
    next_action_url: str | None = None


@dataclass(frozen=True)
class Canceled:
    reason: str | None = None


ConfirmationOutcome = Succeeded | Failed | RequiresAction | Canceled


def authorization_key(metadata: dict) -> str:
    """Idempotency key of an authorization request.

    Defaults to the correlation token in ``metadata["order_id"]``. A checkout
    whose cart changed after authorizing passes a fresh
    ``metadata["idempotency_key"]`` so the gateway creates a new payment for
    the new amount instead of replaying the first one.
    """
    return metadata.get("idempotency_key") or metadata["order_id"]


def confirmation_key(authorization: PaymentAuthorization, action: str, attempt: int) -> str:
    """Idempotency key of one confirmation attempt.

    Network retries of the same attempt replay the gateway's stored response;
    a new attempt (for example with another card after a decline) gets a new key.
    """
    return f"{authorization.correlation_id}-{action}-{attempt}"


class PaymentBackend(ABC):
    """Abstract payment backend interface."""

    method_kind: MethodKind

    @abstractmethod
    def authorize(self, amount: float, currency: str, metadata: dict) -> PaymentAuthorization:
        """Create a provisional payment.

        ``metadata["order_id"]`` is the checkout's correlation token. The
        request is idempotent on ``authorization_key(metadata)``: authorizing
        twice with the same key returns the first authorization.
        """
        ...

    @abstractmethod
    def confirm(
        self,
        authorization: PaymentAuthorization,
        payment_details: dict,
        attempt: int = 1,
    ) -> ConfirmationOutcome:
        """Confirm (card) or capture (wallet) a previously authorized payment.

        ``attempt`` numbers the confirmations of one authorization and is part
        of the confirmation idempotency key.
        """
        ...

    @abstractmethod
    def verify_webhook_signature(self, payload: bytes, headers: dict) -> bool:
        """Verify that a webhook payload is authentically from the gateway."""
        ...
