import hashlib
import hmac
import json
import time
from types import SimpleNamespace

import pytest
import stripe

from backend.jobhound.services.payments import credits_for_session, verify_webhook

WEBHOOK_SECRET = "whsec_test"


def _signed(payload: bytes, *, secret: str = WEBHOOK_SECRET, at: int | None = None) -> str:
    """Build a Stripe-Signature header the way Stripe signs webhook deliveries."""
    ts = int(time.time()) if at is None else at
    digest = hmac.new(secret.encode(), f"{ts}.".encode() + payload, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


def _completed_event(user_id, *, session_id="cs_test_1", amount_total=3000, payment_status="paid"):
    return {
        "id": "evt_1",
        "object": "event",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": session_id,
                "object": "checkout.session",
                "client_reference_id": str(user_id),
                "amount_total": amount_total,
                "payment_status": payment_status,
                "metadata": {"user_id": str(user_id)},
            }
        },
    }


@pytest.fixture()
def stripe_configured(monkeypatch):
    import backend.jobhound.services.payments as payments

    monkeypatch.setattr(payments, "STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    monkeypatch.setattr(payments, "STRIPE_SECRET_KEY", "sk_test_123")
    monkeypatch.setattr(payments, "STRIPE_PRICE_ID", "price_123")
    return payments


def test_webhook_signature_verification(stripe_configured):
    payload = b'{"id": "evt_ping", "object": "event", "type": "ping", "data": {"object": {}}}'
    header = _signed(payload)

    verify_webhook(payload, header)
    # Several v1 entries are allowed during secret rotation.
    verify_webhook(payload, f"{header},v1=deadbeef")

    with pytest.raises(stripe.SignatureVerificationError):
        verify_webhook(payload + b" ", header)
    with pytest.raises(stripe.SignatureVerificationError):
        verify_webhook(payload, _signed(payload, secret="whsec_other"))
    with pytest.raises(stripe.SignatureVerificationError):
        verify_webhook(payload, _signed(payload, at=int(time.time()) - 600))
    with pytest.raises(stripe.SignatureVerificationError, match="Missing"):
        verify_webhook(payload, None)
    with pytest.raises(stripe.SignatureVerificationError):
        verify_webhook(payload, "v1=abc")


@pytest.mark.parametrize(
    "session, expected",
    [
        ({"metadata": {"credits": "50"}, "amount_total": 3000}, 50),
        ({"amount_total": 3000}, 30),
        ({"amount_total": 50}, 30),
        ({}, 30),
    ],
)
def test_credits_for_session(session, expected, monkeypatch):
    import backend.jobhound.services.payments as payments

    monkeypatch.setattr(payments, "CREDITS_PER_PURCHASE", 30)
    assert credits_for_session(session) == expected


def test_webhook_grants_credits_once(client, signup, db_session, stripe_configured):
    from backend.jobhound.services.credits import get_available_credits

    headers, user_id = signup()
    payload = json.dumps(_completed_event(user_id)).encode()

    r = client.post("/api/stripe-webhook", content=payload, headers={"Stripe-Signature": _signed(payload)})
    assert r.status_code == 200, r.text
    assert r.json() == {"received": True, "handled": True, "created": True, "credits": 30}

    replay = client.post("/api/stripe-webhook", content=payload, headers={"Stripe-Signature": _signed(payload)})
    assert replay.status_code == 200
    assert replay.json()["created"] is False

    assert get_available_credits(db_session, user_id) == 30
    lots = client.get("/api/credits", headers=headers).json()["lots"]
    assert len(lots) == 1
    assert lots[0]["stripe_session_id"] == "cs_test_1"


def test_webhook_ignores_unpaid_and_unknown(client, signup, db_session, stripe_configured):
    from backend.jobhound.models.credit import CreditPurchase

    _, user_id = signup()
    events = [
        {"id": "evt_2", "object": "event", "type": "payment_intent.created", "data": {"object": {}}},
        _completed_event(user_id, session_id="cs_unpaid", payment_status="unpaid"),
        _completed_event(99999, session_id="cs_ghost"),
    ]
    for event in events:
        payload = json.dumps(event).encode()
        r = client.post("/api/stripe-webhook", content=payload, headers={"Stripe-Signature": _signed(payload)})
        assert r.status_code == 200, r.text
        assert r.json()["handled"] is False

    assert db_session.query(CreditPurchase).count() == 0


def test_webhook_rejects_bad_signature(client, signup, db_session, stripe_configured):
    from backend.jobhound.models.credit import CreditPurchase

    _, user_id = signup()
    payload = json.dumps(_completed_event(user_id)).encode()

    r = client.post(
        "/api/stripe-webhook",
        content=payload,
        headers={"Stripe-Signature": _signed(payload, secret="whsec_wrong")},
    )
    assert r.status_code == 400
    assert r.json()["error"].startswith("Webhook signature verification failed")

    r = client.post("/api/stripe-webhook", content=payload)
    assert r.status_code == 400
    assert db_session.query(CreditPurchase).count() == 0


def test_webhook_without_secret_is_configuration_error(client):
    payload = b"{}"
    r = client.post("/api/stripe-webhook", content=payload, headers={"Stripe-Signature": _signed(payload)})
    assert r.status_code == 500
    assert r.json()["error"] == "Server configuration error: STRIPE_WEBHOOK_SECRET is not configured"


def test_webhook_rejects_non_json_body(client, stripe_configured):
    payload = b"not json"
    r = client.post("/api/stripe-webhook", content=payload, headers={"Stripe-Signature": _signed(payload)})
    assert r.status_code == 400
    assert r.json()["error"] == "Invalid webhook payload"


def test_create_checkout_builds_stripe_session(client, signup, stripe_configured, monkeypatch):
    sent = {}

    def _create(**params):
        sent.update(params)
        return SimpleNamespace(id="cs_test_9", url="https://checkout.stripe.test/cs_test_9")

    monkeypatch.setattr(stripe.checkout.Session, "create", _create)
    headers, user_id = signup()

    r = client.post("/api/create-checkout", json={"returnUrl": "http://app.test/credits"}, headers=headers)
    assert r.status_code == 200, r.text
    assert r.json() == {"success": True, "sessionId": "cs_test_9", "url": "https://checkout.stripe.test/cs_test_9"}

    assert sent["api_key"] == "sk_test_123"
    assert sent["mode"] == "payment"
    assert sent["line_items"] == [{"price": "price_123", "quantity": 1}]
    assert sent["client_reference_id"] == str(user_id)
    assert sent["metadata"] == {"user_id": str(user_id)}
    assert sent["success_url"] == "http://app.test/credits?session_id={CHECKOUT_SESSION_ID}"
    assert sent["cancel_url"] == "http://app.test/credits?canceled=true"
    assert sent["customer_email"] == "seeker@example.com"


def test_create_checkout_stripe_rejection(client, signup, stripe_configured, monkeypatch):
    def _create(**params):
        raise stripe.InvalidRequestError("No such price: 'price_123'", "line_items[0][price]", http_status=400)

    monkeypatch.setattr(stripe.checkout.Session, "create", _create)
    headers, _ = signup()
    r = client.post("/api/create-checkout", headers=headers)
    assert r.status_code == 502
    assert r.json()["error"] == "Failed to create checkout session"
    assert r.json()["details"] == "No such price: 'price_123'"


def test_create_checkout_requires_configuration(client, signup):
    headers, _ = signup()
    r = client.post("/api/create-checkout", headers=headers)
    assert r.status_code == 500
    assert r.json()["error"].startswith("Server configuration error")
