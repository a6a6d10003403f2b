from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable

from fastapi import Request
from supabase import Client, create_client

from app.core.config import settings
from app.core.errors import forbidden, unauthorized

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthUser:
    id: str
    email: str | None = None


TokenVerifier = Callable[[str], "AuthUser | None"]


@lru_cache(maxsize=1)
def supabase_client() -> Client:
    if not (settings.supabase_url and settings.supabase_key):
        raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required for Supabase access.")
    return create_client(settings.supabase_url, settings.supabase_key)


def verify_supabase_token(token: str) -> AuthUser | None:
    try:
        response = supabase_client().auth.get_user(token)
    except Exception as exc:  # noqa: BLE001 - any auth failure means an invalid token
        logger.info("auth_token_rejected: %s", exc)
        return None
    user = getattr(response, "user", None)
    if user is None or not getattr(user, "id", None):
        return None
    return AuthUser(id=str(user.id), email=getattr(user, "email", None))


_token_verifier: TokenVerifier = verify_supabase_token


def set_token_verifier(verifier: TokenVerifier) -> None:
    global _token_verifier
    _token_verifier = verifier


def reset_token_verifier() -> None:
    set_token_verifier(verify_supabase_token)


def extract_bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization", "").strip()
    if not header.lower().startswith("bearer "):
        return None
    token = header[7:].strip()
    return token or None


def get_authenticated_user(request: Request, token: str | None = None) -> AuthUser | None:
    token = token or extract_bearer_token(request)
    if not token:
        return None
    return _token_verifier(token)


def require_auth(request: Request, token: str | None = None) -> AuthUser:
    token = token or extract_bearer_token(request)
    if not token:
        raise unauthorized("Missing authorization token")
    user = _token_verifier(token)
    if user is None:
        raise unauthorized("Invalid or expired token")
    return user


def verify_user_id_match(request: Request, user_id: str | None, token: str | None = None) -> AuthUser:
    """Authenticate the caller and make sure they act on their own ``user_id``."""
    if not user_id:
        raise unauthorized("User ID is required")
    user = require_auth(request, token)
    if user.id != user_id:
        raise forbidden("User ID does not match authenticated user")
    return user


def check_api_key(x_api_key: str | None) -> None:
    if not settings.api_key:
        return
    if x_api_key != settings.api_key:
        raise unauthorized("Please provide a valid API key.")
