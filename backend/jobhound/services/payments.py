"""
Stripe Checkout for credit purchases.

Checkout sessions carry the buyer's user id in ``client_reference_id`` (and in
metadata); the ``checkout.session.completed`` webhook turns a paid session into a
credit lot exactly once, keyed by the session id.
"""
import logging
from typing import Any

import stripe
from sqlalchemy.orm import Session

from ..config import (
    CREDITS_PER_PURCHASE,
    SITE_URL,
    STRIPE_PRICE_ID,
    STRIPE_SECRET_KEY,
    STRIPE_WEBHOOK_SECRET,
)
from ..models.user import User
from ..utils.error_handlers import AppError, ConfigurationError
from .credits import grant_credits

logger = logging.getLogger(__name__)

SIGNATURE_TOLERANCE_S = 300


def _require(value: str | None, name: str) -> str:
    if not value:
        raise ConfigurationError(f"{name} is not configured")
    return value


def create_checkout_session(*, user: User, return_url: str | None = None) -> dict[str, str]:
    secret = _require(STRIPE_SECRET_KEY, "STRIPE_SECRET_KEY")
    price_id = _require(STRIPE_PRICE_ID, "STRIPE_PRICE_ID")

    base_return = (return_url or f"{SITE_URL}/dashboard").rstrip("/")
    params: dict[str, Any] = {
        "mode": "payment",
        "payment_method_types": ["card"],
        "line_items": [{"price": price_id, "quantity": 1}],
        "success_url": f"{base_return}?session_id={{CHECKOUT_SESSION_ID}}",
        "cancel_url": f"{base_return}?canceled=true",
        "client_reference_id": str(user.id),
        "metadata": {"user_id": str(user.id)},
    }
    if user.email:
        params["customer_email"] = user.email

    try:
        session = stripe.checkout.Session.create(api_key=secret, **params)
    except stripe.StripeError as e:
        logger.warning("stripe checkout rejected status=%s detail=%s", e.http_status, e.user_message)
        raise AppError("Failed to create checkout session", status_code=502, details=e.user_message or str(e)) from e

    logger.info("checkout session created id=%s user_id=%s", session.id, user.id)
    return {"sessionId": session.id, "url": session.url}


def webhook_secret() -> str:
    return _require(STRIPE_WEBHOOK_SECRET, "STRIPE_WEBHOOK_SECRET")


def verify_webhook(payload: bytes, sig_header: str | None) -> None:
    """
    Check the ``Stripe-Signature`` header against the raw body.

    Raises stripe.SignatureVerificationError on a missing, forged or stale
    signature and ValueError when the signed body is not JSON.
    """
    secret = webhook_secret()
    if not sig_header:
        raise stripe.SignatureVerificationError("Missing Stripe-Signature header", sig_header, payload)
    stripe.Webhook.construct_event(payload, sig_header, secret, tolerance=SIGNATURE_TOLERANCE_S)


def credits_for_session(session: dict[str, Any]) -> int:
    """One credit per whole currency unit paid; fixed pack size when no amount is present."""
    metadata = session.get("metadata") or {}
    if str(metadata.get("credits") or "").isdigit() and int(metadata["credits"]) > 0:
        return int(metadata["credits"])
    amount_total = session.get("amount_total")
    if isinstance(amount_total, int) and amount_total >= 100:
        return amount_total // 100
    return CREDITS_PER_PURCHASE


def _session_user_id(session: dict[str, Any]) -> int | None:
    metadata = session.get("metadata") or {}
    for raw in (session.get("client_reference_id"), metadata.get("user_id"), metadata.get("userId")):
        try:
            if raw is not None and str(raw).strip():
                return int(raw)
        except (TypeError, ValueError):
            continue
    return None


def handle_stripe_event(db: Session, event: dict[str, Any]) -> dict[str, Any]:
    event_type = event.get("type")
    if event_type != "checkout.session.completed":
        logger.info("stripe event ignored type=%s id=%s", event_type, event.get("id"))
        return {"received": True, "handled": False}

    session = (event.get("data") or {}).get("object") or {}
    session_id = session.get("id")
    if session.get("payment_status") not in (None, "paid", "no_payment_required"):
        logger.info("checkout session=%s not paid (%s); skipping", session_id, session.get("payment_status"))
        return {"received": True, "handled": False}

    user_id = _session_user_id(session)
    if not session_id or user_id is None or db.get(User, user_id) is None:
        logger.warning("checkout session=%s has no known user (user_id=%s)", session_id, user_id)
        return {"received": True, "handled": False}

    lot, created = grant_credits(
        db,
        user_id=user_id,
        amount=credits_for_session(session),
        stripe_session_id=session_id,
    )
    return {"received": True, "handled": True, "created": created, "credits": lot.credit_amount}
