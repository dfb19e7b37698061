"""Integration tests for the gateway webhook endpoint."""

import json
import time

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from protean import current_domain
from storefront.api import payment_router, register_storefront_exception_handlers
from storefront.order.placement import PlaceOrder
from storefront.payments.gateway import set_backend
from storefront.payments.gateway.stripe_adapter import StripeCardBackend, sign_payload

SIGNED = {"X-Fake-Signature": "test-signature"}

SHIPPING = {
    "first_name": "Ada",
    "last_name": "Lovelace",
    "email": "ada@example.com",
    "address": "12 Analytical Way",
    "city": "London",
    "zip_code": "N1 9GU",
    "country": "GB",
    "phone": "+44 20 7946 0000",
}


@pytest.fixture()
def client():
    app = FastAPI()
    app.include_router(payment_router)
    register_storefront_exception_handlers(app)
    return TestClient(app)


def _stripe_event(event_type, intent_id="pi_wh_001", **intent):
    return json.dumps({"type": event_type, "data": {"object": {"id": intent_id, **intent}}})


def _place_order(payment_id):
    return current_domain.process(
        PlaceOrder(
            payment_id=payment_id,
            payment_method=json.dumps({"kind": "card", "brand": "visa", "last4": "4242"}),
            shipping_address=json.dumps(SHIPPING),
            subtotal=100.0,
            total=100.0,
            currency="USD",
        ),
        asynchronous=False,
    )


class TestSignature:
    def test_missing_signature_is_rejected(self, client):
        response = client.post("/payments/webhooks/stripe", content=_stripe_event("payment_intent.succeeded"))
        assert response.status_code == 401

    def test_wrong_signature_is_rejected(self, client):
        response = client.post(
            "/payments/webhooks/stripe",
            content=_stripe_event("payment_intent.succeeded"),
            headers={"X-Fake-Signature": "forged"},
        )
        assert response.status_code == 401

    def test_unknown_provider(self, client):
        response = client.post("/payments/webhooks/venmo", content="{}", headers=SIGNED)
        assert response.status_code == 404

    def test_invalid_json_is_bad_request(self, client):
        response = client.post("/payments/webhooks/stripe", content="not json", headers=SIGNED)
        assert response.status_code == 400


class TestStripeEvents:
    def test_succeeded_payment_is_matched_to_its_order(self, client):
        order_id = _place_order("pi_wh_001")
        response = client.post(
            "/payments/webhooks/stripe",
            content=_stripe_event("payment_intent.succeeded"),
            headers=SIGNED,
        )
        assert response.status_code == 200
        assert response.json() == {
            "received": True,
            "event_type": "payment_intent.succeeded",
            "outcome": "succeeded",
            "order_id": order_id,
        }

    def test_succeeded_payment_without_order_is_acknowledged(self, client):
        response = client.post(
            "/payments/webhooks/stripe",
            content=_stripe_event("payment_intent.succeeded", intent_id="pi_orphan"),
            headers=SIGNED,
        )
        assert response.status_code == 200
        assert response.json()["order_id"] is None

    def test_failed_payment(self, client):
        response = client.post(
            "/payments/webhooks/stripe",
            content=_stripe_event("payment_intent.payment_failed", last_payment_error={"message": "Card declined"}),
            headers=SIGNED,
        )
        assert response.json()["outcome"] == "failed"

    def test_other_events_are_ignored(self, client):
        response = client.post("/payments/webhooks/stripe", content=_stripe_event("charge.refunded"), headers=SIGNED)
        assert response.status_code == 200
        assert response.json()["outcome"] is None


class TestPayPalEvents:
    def test_completed_capture(self, client):
        order_id = _place_order("CAPTURE-1")
        payload = json.dumps({"event_type": "PAYMENT.CAPTURE.COMPLETED", "resource": {"id": "CAPTURE-1"}})
        response = client.post("/payments/webhooks/paypal", content=payload, headers=SIGNED)
        assert response.json()["order_id"] == order_id
        assert response.json()["outcome"] == "succeeded"

    def test_order_approval_is_acknowledged(self, client):
        payload = json.dumps({"event_type": "CHECKOUT.ORDER.APPROVED", "resource": {"id": "5O190127TN364715T"}})
        response = client.post("/payments/webhooks/paypal", content=payload, headers=SIGNED)
        assert response.status_code == 200
        assert response.json()["outcome"] is None


class TestStripeSignedDelivery:
    @pytest.fixture(autouse=True)
    def stripe_backend(self):
        set_backend("card", StripeCardBackend(secret_key="sk_test", webhook_secret="whsec_test"))

    def test_valid_stripe_signature(self, client):
        payload = _stripe_event("payment_intent.succeeded", intent_id="pi_signed").encode()
        timestamp = int(time.time())
        signature = sign_payload(payload, "whsec_test", timestamp)
        response = client.post(
            "/payments/webhooks/stripe",
            content=payload,
            headers={"Stripe-Signature": f"t={timestamp},v1={signature}"},
        )
        assert response.status_code == 200
        assert response.json()["event_type"] == "payment_intent.succeeded"

    def test_tampered_payload_is_rejected(self, client):
        payload = _stripe_event("payment_intent.succeeded").encode()
        timestamp = int(time.time())
        signature = sign_payload(payload, "whsec_test", timestamp)
        response = client.post(
            "/payments/webhooks/stripe",
            content=payload.replace(b"pi_wh_001", b"pi_forged"),
            headers={"Stripe-Signature": f"t={timestamp},v1={signature}"},
        )
        assert response.status_code == 401
