from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from app.core.config import settings
from app.core.resume_store import ResumeStore, get_resume_store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TierConfig:
    tier: str
    price: float
    label: str
    duration_days: int
    duration_label: str
    popular: bool = False

    @property
    def price_id(self) -> str | None:
        return {
            "2D": settings.stripe_price_id_2d,
            "7D": settings.stripe_price_id_7d,
            "30D": settings.stripe_price_id_30d,
        }.get(self.tier)


TIME_BASED_TIERS: tuple[TierConfig, ...] = (
    TierConfig("2D", 4.95, "2-Day Access", 2, "2 days"),
    TierConfig("7D", 10.00, "1-Week Access", 7, "7 days", popular=True),
    TierConfig("30D", 20.00, "1-Month Access", 30, "30 days"),
)
VALID_TIERS = frozenset(tier.tier for tier in TIME_BASED_TIERS)


def get_tier_config(tier: str | None) -> TierConfig | None:
    for config in TIME_BASED_TIERS:
        if config.tier == tier:
            return config
    return None


def default_tier() -> TierConfig:
    return next((tier for tier in TIME_BASED_TIERS if tier.popular), TIME_BASED_TIERS[1])


def parse_timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'' if count == 1 else 's'}"


def format_remaining_time(expires_at: datetime | str | None, now: datetime | None = None) -> str:
    expiry = parse_timestamp(expires_at)
    if expiry is None:
        return "Expired"
    now = now or datetime.now(timezone.utc)
    remaining = int((expiry - now).total_seconds())
    if remaining <= 0:
        return "Expired"

    days, rest = divmod(remaining, 86400)
    hours, rest = divmod(rest, 3600)
    minutes = rest // 60
    if days > 0:
        return f"{_plural(days, 'day')}, {_plural(hours, 'hour')} remaining"
    if hours > 0:
        return f"{_plural(hours, 'hour')}, {_plural(minutes, 'minute')} remaining"
    return f"{_plural(minutes, 'minute')} remaining"


def grant_expiry(tier: TierConfig, granted_at: datetime) -> datetime:
    return granted_at + timedelta(days=tier.duration_days)


def get_access_info(user_id: str | None, store: ResumeStore | None = None) -> dict[str, Any]:
    """Active time-based access for ``user_id`` (latest unexpired grant)."""
    empty = {
        "hasAccess": False,
        "tier": None,
        "tierLabel": None,
        "expiresAt": None,
        "remainingTime": None,
        "remainingLabel": "Expired",
        "isExpired": True,
    }
    if not user_id:
        return empty

    store = store or get_resume_store()
    now = datetime.now(timezone.utc)
    try:
        grant = store.get_active_grant(user_id, now.isoformat(timespec="microseconds"))
    except Exception as exc:  # noqa: BLE001 - missing entitlements must read as "no access"
        logger.warning("access_lookup_failed user=%s: %s", user_id, exc)
        return empty
    expiry = parse_timestamp(grant.get("expires_at")) if grant else None
    if expiry is None or expiry <= now:
        return empty

    tier = get_tier_config(grant.get("tier_purchased"))
    return {
        "hasAccess": True,
        "tier": grant.get("tier_purchased"),
        "tierLabel": tier.label if tier else None,
        "expiresAt": expiry.isoformat(),
        "remainingTime": int((expiry - now).total_seconds() * 1000),
        "remainingLabel": format_remaining_time(expiry, now),
        "isExpired": False,
    }


def free_resume_ids(user_id: str | None, store: ResumeStore | None = None) -> list[str]:
    if not user_id:
        return []
    store = store or get_resume_store()
    try:
        return store.user_resume_ids(user_id, settings.free_resume_limit)
    except Exception as exc:  # noqa: BLE001
        logger.warning("free_resume_lookup_failed user=%s: %s", user_id, exc)
        return []


def is_within_free_resume_limit(resume_id: str | None, user_id: str | None, store: ResumeStore | None = None) -> bool:
    if not resume_id or not user_id:
        return False
    return resume_id in free_resume_ids(user_id, store)


def resolve_resume_access(
    resume: dict[str, Any],
    user_id: str | None,
    store: ResumeStore | None = None,
) -> tuple[bool, dict[str, Any] | None]:
    """Unlock through an active grant, else through the user's free resume allowance.

    Returns ``(has_access, access_info)``; ``access_info`` is only set for grants.
    """
    if not user_id:
        return False, None
    info = get_access_info(user_id, store)
    if info["hasAccess"]:
        return True, info
    return is_within_free_resume_limit(resume.get("id"), user_id, store), None
