from fastapi import APIRouter, Query, Request

from app.core.config import settings
from app.core.errors import unauthorized
from app.core.security import require_auth, verify_user_id_match
from app.schemas.billing import (
    CheckoutRequest,
    CheckoutResponse,
    PortalSessionRequest,
    PortalSessionResponse,
    TierInfo,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
)
from app.services.access import TIME_BASED_TIERS, get_access_info
from app.services.billing_service import create_checkout, create_portal_session, handle_webhook, verify_payment

router = APIRouter()


@router.get("/stripe/tiers", response_model=list[TierInfo])
async def stripe_tiers():
    return [
        TierInfo(
            tier=tier.tier,
            price=tier.price,
            label=tier.label,
            duration_days=tier.duration_days,
            duration_label=tier.duration_label,
            popular=tier.popular,
        )
        for tier in TIME_BASED_TIERS
    ]


@router.post("/stripe/create-checkout", response_model=CheckoutResponse)
async def stripe_create_checkout(request: Request, payload: CheckoutRequest):
    if not payload.user_id:
        raise unauthorized("Authentication required. Please sign in to purchase access.")
    verify_user_id_match(request, payload.user_id, token=payload.access_token)
    return create_checkout(payload)


@router.post("/stripe/create-portal-session", response_model=PortalSessionResponse)
async def stripe_create_portal_session(request: Request, payload: PortalSessionRequest):
    user = require_auth(request)
    return create_portal_session(payload, user)


@router.get("/stripe/webhook")
async def stripe_webhook_status():
    return {
        "ok": True,
        "message": "Webhook endpoint is reachable. Use POST for Stripe events.",
        "hasSecret": bool(settings.stripe_webhook_secret),
    }


@router.post("/stripe/webhook")
async def stripe_webhook(request: Request):
    body = await request.body()
    return handle_webhook(body, request.headers.get("stripe-signature"))


@router.post("/stripe/verify-payment", response_model=VerifyPaymentResponse, response_model_exclude_none=True)
async def stripe_verify_payment(payload: VerifyPaymentRequest):
    return verify_payment(payload.session_id)


@router.get("/stripe/access")
async def stripe_access(request: Request, user_id: str | None = Query(default=None, alias="userId")):
    user = verify_user_id_match(request, user_id)
    return get_access_info(user.id)
