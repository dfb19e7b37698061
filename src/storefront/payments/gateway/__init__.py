"""Payment backend factory.

Provides get_backend() / set_backend() to swap implementations per method
kind. ``PAYMENT_CARD_ADAPTER`` selects ``fake`` (default) or ``stripe``;
``PAYMENT_WALLET_ADAPTER`` selects ``fake`` (default) or ``paypal``.
"""

import os

from storefront.payments.gateway.fake_adapter import FakeCardBackend, FakeWalletBackend
from storefront.payments.gateway.port import MethodKind, PaymentBackend

_current_backends: dict[MethodKind, PaymentBackend] = {}


def _build_backend(kind: MethodKind) -> PaymentBackend:
    if kind == MethodKind.CARD:
        adapter = os.environ.get("PAYMENT_CARD_ADAPTER", "fake").lower()
        if adapter == "stripe":
            from storefront.payments.gateway.stripe_adapter import StripeCardBackend

            return StripeCardBackend(
                secret_key=os.environ["STRIPE_SECRET_KEY"],
                webhook_secret=os.environ.get("STRIPE_WEBHOOK_SECRET"),
            )
        if adapter != "fake":
            raise ValueError(f"Unknown card adapter: {adapter}")
        return FakeCardBackend()

    adapter = os.environ.get("PAYMENT_WALLET_ADAPTER", "fake").lower()
    if adapter == "paypal":
        from storefront.payments.gateway.paypal_adapter import PAYPAL_SANDBOX_BASE, PayPalWalletBackend

        return PayPalWalletBackend(
            client_id=os.environ["PAYPAL_CLIENT_ID"],
            client_secret=os.environ["PAYPAL_CLIENT_SECRET"],
            base_url=os.environ.get("PAYPAL_BASE_URL", PAYPAL_SANDBOX_BASE),
            webhook_id=os.environ.get("PAYPAL_WEBHOOK_ID"),
        )
    if adapter != "fake":
        raise ValueError(f"Unknown wallet adapter: {adapter}")
    return FakeWalletBackend()


def get_backend(kind: MethodKind | str) -> PaymentBackend:
    """Return the active backend for ``kind``, building it from the environment on first use."""
    kind = MethodKind(kind)
    if kind not in _current_backends:
        _current_backends[kind] = _build_backend(kind)
    return _current_backends[kind]


def set_backend(kind: MethodKind | str, backend: PaymentBackend) -> None:
    """Override the active backend (useful for tests)."""
    _current_backends[MethodKind(kind)] = backend


def reset_backends() -> None:
    """Reset to default backends."""
    _current_backends.clear()
