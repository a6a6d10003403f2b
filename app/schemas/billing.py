from __future__ import annotations

from typing import Any

from pydantic import Field

from app.schemas.base import CamelModel


class CheckoutRequest(CamelModel):
    tier: str | None = Field(default=None, max_length=10)
    resume_id: str | None = Field(default=None, max_length=200)
    user_id: str | None = Field(default=None, max_length=200)
    email: str | None = Field(default=None, max_length=320)
    access_token: str | None = Field(default=None, max_length=4000)
    return_url: str | None = Field(default=None, max_length=2000)


class CheckoutResponse(CamelModel):
    url: str | None
    session_id: str


class PortalSessionRequest(CamelModel):
    customer_id: str | None = Field(default=None, max_length=200)
    email: str | None = Field(default=None, max_length=320)
    return_url: str | None = Field(default=None, max_length=2000)


class PortalSessionResponse(CamelModel):
    url: str


class VerifyPaymentRequest(CamelModel):
    session_id: str | None = Field(default=None, max_length=300)


class VerifyPaymentResponse(CamelModel):
    paid: bool
    status: str | None = None
    metadata: dict[str, Any] | None = None
    # Stripe's own field name, kept as-is on the wire.
    customer_email: str | None = Field(default=None, serialization_alias="customer_email")


class TierInfo(CamelModel):
    tier: str
    price: float
    label: str
    duration_days: int
    duration_label: str
    popular: bool = False
