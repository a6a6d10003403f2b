from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlparse

import stripe
from fastapi import status

from app.core.config import settings
from app.core.errors import ApiError, forbidden, invalid_input, server_error
from app.core.resume_store import DuplicateRecordError, ResumeStore, get_resume_store
from app.core.security import AuthUser
from app.schemas.billing import (
    CheckoutRequest,
    CheckoutResponse,
    PortalSessionRequest,
    PortalSessionResponse,
    VerifyPaymentResponse,
)
from app.services.access import get_tier_config, grant_expiry

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
PAYMENT_METHOD_TYPES = ["card"]


def _configure_stripe() -> None:
    if not settings.stripe_secret_key:
        raise server_error("Payment system is not configured")
    stripe.api_key = settings.stripe_secret_key


def _origin(url: str) -> tuple[str, str] | None:
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return None
    return parsed.scheme.lower(), parsed.netloc.lower()


def safe_cancel_url(return_url: str | None, default_path: str = "/") -> str:
    """Only redirect back to pages on our own site."""
    default = f"{settings.site_url}{default_path}"
    if not return_url:
        return default
    target = _origin(return_url)
    if target is None or target != _origin(settings.site_url):
        logger.info("checkout_return_url_rejected url=%s", return_url[:200])
        return default
    return return_url


def create_checkout(payload: CheckoutRequest) -> CheckoutResponse:
    """Start a Stripe Checkout session for a time-based access tier.

    The caller must already be authenticated as ``payload.user_id``.
    """
    if not payload.tier:
        raise invalid_input("tier is required (2D, 7D, or 30D)")
    tier = get_tier_config(payload.tier)
    if tier is None or not tier.price_id:
        raise invalid_input("Invalid tier or price not configured")

    _configure_stripe()
    params: dict[str, Any] = {
        "mode": "payment",
        "payment_method_types": PAYMENT_METHOD_TYPES,
        "line_items": [{"price": tier.price_id, "quantity": 1}],
        "metadata": {
            "tier": tier.tier,
            "resumeId": payload.resume_id or "",
            "userId": payload.user_id or "",
        },
        "success_url": f"{settings.site_url}/success?session_id={{CHECKOUT_SESSION_ID}}",
        "cancel_url": safe_cancel_url(payload.return_url),
    }
    if payload.email:
        params["customer_email"] = payload.email

    try:
        session = stripe.checkout.Session.create(**params)
    except stripe.StripeError as exc:
        logger.error("checkout_create_failed tier=%s user=%s: %s", tier.tier, payload.user_id, exc)
        raise server_error("Failed to create checkout session") from exc

    logger.info("checkout_created tier=%s user=%s session=%s", tier.tier, payload.user_id, session.id)
    return CheckoutResponse(url=session.url, session_id=session.id)


def _resolve_customer_id(email: str) -> str:
    existing = stripe.Customer.list(email=email, limit=1)
    if existing.data:
        return existing.data[0].id
    return stripe.Customer.create(email=email).id


def create_portal_session(payload: PortalSessionRequest, user: AuthUser) -> PortalSessionResponse:
    """Open the Stripe billing portal for the signed-in user's customer record."""
    email = (payload.email or user.email or "").strip()
    if not payload.customer_id and not email:
        raise invalid_input("customerId or email is required")
    if payload.email and user.email and payload.email.strip().lower() != user.email.lower():
        raise forbidden("Email does not match authenticated user")

    _configure_stripe()
    try:
        customer_id = payload.customer_id or _resolve_customer_id(email)
        session = stripe.billing_portal.Session.create(
            customer=customer_id,
            return_url=safe_cancel_url(payload.return_url, "/profile"),
        )
    except stripe.StripeError as exc:
        logger.error("portal_session_failed user=%s: %s", user.id, exc)
        raise server_error("Failed to create portal session") from exc

    logger.info("portal_session_created user=%s customer=%s", user.id, customer_id)
    return PortalSessionResponse(url=session.url)


def construct_webhook_event(body: bytes, signature: str | None) -> Any:
    secret = settings.stripe_webhook_secret
    if not secret or not secret.startswith("whsec_"):
        logger.error("stripe_webhook_secret_missing")
        raise server_error("Webhook secret not configured")
    if not signature:
        raise invalid_input("Missing signature")
    try:
        return stripe.Webhook.construct_event(payload=body, sig_header=signature, secret=secret)
    except (ValueError, stripe.SignatureVerificationError) as exc:
        logger.warning("stripe_webhook_verification_failed: %s", exc)
        raise ApiError(
            status.HTTP_400_BAD_REQUEST,
            f"Webhook signature verification failed: {exc}",
        ) from exc


def _as_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return {}


def handle_checkout_completed(
    session: dict[str, Any],
    *,
    event_id: str | None = None,
    store: ResumeStore | None = None,
    now: datetime | None = None,
) -> bool:
    """Grant access for a paid checkout session. Returns ``True`` when a grant was written."""
    if session.get("payment_status") != "paid":
        logger.info("stripe_checkout_unpaid session=%s status=%s", session.get("id"), session.get("payment_status"))
        return False

    metadata = _as_dict(session.get("metadata"))
    tier = get_tier_config(metadata.get("tier"))
    if tier is None:
        logger.error("stripe_checkout_invalid_tier session=%s tier=%s", session.get("id"), metadata.get("tier"))
        return False
    user_id = (metadata.get("userId") or "").strip()
    if not user_id:
        logger.error("stripe_checkout_missing_user session=%s", session.get("id"))
        return False

    store = store or get_resume_store()
    now = now or datetime.now(timezone.utc)
    try:
        store.insert_access_grant(
            {
                "user_id": user_id,
                "stripe_session_id": session["id"],
                "payment_timestamp": now.isoformat(timespec="microseconds"),
                "expires_at": grant_expiry(tier, now).isoformat(timespec="microseconds"),
                "tier_purchased": tier.tier,
                "is_active": True,
            }
        )
    except DuplicateRecordError:
        logger.warning("stripe_checkout_duplicate_session session=%s", session.get("id"))
        return False

    try:
        store.insert_payment(
            {
                "user_id": user_id,
                "stripe_session_id": session["id"],
                "stripe_event_id": event_id,
                "tier": tier.tier,
                "price_id": tier.price_id,
                "amount_total": session.get("amount_total"),
                "currency": session.get("currency") or "usd",
            }
        )
    except Exception as exc:  # noqa: BLE001 - the grant is what unlocks access
        logger.warning("stripe_payment_insert_failed session=%s: %s", session.get("id"), exc)

    logger.info("access_granted user=%s tier=%s session=%s", user_id, tier.tier, session["id"])
    return True


def handle_webhook(body: bytes, signature: str | None, store: ResumeStore | None = None) -> dict[str, bool]:
    """Apply a verified Stripe event.

    The event id is recorded only once the grant is written, so a failed
    attempt answers 500 and Stripe's retry runs the handler again. Replays of
    a handled session are stopped by the unique ``stripe_session_id``.
    """
    event = _as_dict(construct_webhook_event(body, signature))
    event_type = event.get("type", "")
    event_id = event.get("id")
    store = store or get_resume_store()

    if event_type != CHECKOUT_COMPLETED:
        logger.debug("stripe_event_ignored type=%s", event_type)
        return {"received": True}

    session = _as_dict(_as_dict(event.get("data")).get("object"))
    try:
        handle_checkout_completed(session, event_id=event_id, store=store)
    except Exception as exc:
        logger.error("stripe_checkout_handling_failed session=%s event=%s: %s", session.get("id"), event_id, exc)
        raise server_error("Webhook handler failed") from exc

    if event_id and not store.record_stripe_event(event_id, event_type):
        logger.info("stripe_event_already_processed id=%s", event_id)
    return {"received": True}


def verify_payment(session_id: str | None) -> VerifyPaymentResponse:
    if not session_id:
        raise invalid_input("sessionId is required")
    _configure_stripe()
    try:
        session = stripe.checkout.Session.retrieve(session_id)
    except stripe.StripeError as exc:
        logger.error("verify_payment_failed session=%s: %s", session_id, exc)
        raise server_error("Failed to verify payment") from exc

    session_data = _as_dict(session)
    payment_status = session_data.get("payment_status")
    if payment_status != "paid":
        return VerifyPaymentResponse(paid=False, status=payment_status)
    return VerifyPaymentResponse(
        paid=True,
        status=payment_status,
        metadata=_as_dict(session_data.get("metadata")),
        customer_email=session_data.get("customer_email"),
    )
