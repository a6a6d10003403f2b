from __future__ import annotations

import logging
import math
import os
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Literal

logger = logging.getLogger(__name__)

WindowName = Literal["minute", "hour", "day"]

_WINDOWS: tuple[tuple[WindowName, int], ...] = (
    ("minute", 60),
    ("hour", 3600),
    ("day", 86400),
)
_APPROACHING_RATIO = 0.8
_DEFAULT_REQUEST_LIMITS = {"minute": 30, "hour": 900, "day": 14400}
_DEFAULT_TOKEN_LIMITS = {"minute": 64000, "hour": 1000000, "day": 1000000}


@dataclass(frozen=True)
class UsageStatus:
    model_key: str
    approaching_limit: bool
    limit_hit: bool
    usage_percent: float
    window: WindowName


@dataclass
class _UsageEntry:
    requests: deque = field(default_factory=deque)
    tokens: deque = field(default_factory=deque)


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text or "") / 4)


def _limit(provider: str, kind: str, window: WindowName, default: int) -> int:
    name = f"{provider.upper()}_GLOBAL_LIMIT_{kind}_PER_{window.upper()}"
    raw = (os.getenv(name) or "").strip()
    try:
        return max(1, int(raw)) if raw else default
    except ValueError:
        return default


class UsageTracker:
    """Per-model request and token counters over minute, hour and day windows.

    Provider-side limits are shared by every user of this deployment, so the
    counters are process-wide. They only feed logs; nothing is blocked.
    """

    def __init__(self) -> None:
        self._entries: dict[str, _UsageEntry] = {}
        self._lock = threading.Lock()

    def record(self, model_key: str, estimated_tokens: int, now: float | None = None) -> UsageStatus:
        now = time.time() if now is None else now
        provider = model_key.split(":", 1)[0]
        with self._lock:
            entry = self._entries.setdefault(model_key, _UsageEntry())
            entry.requests.append(now)
            entry.tokens.append((now, max(0, int(estimated_tokens))))
            self._prune(entry, now)
            status = self._status(model_key, provider, entry, now)

        if status.limit_hit:
            logger.warning("ai_usage_limit_hit model=%s window=%s", model_key, status.window)
        elif status.approaching_limit:
            logger.info(
                "ai_usage_approaching_limit model=%s window=%s usage_percent=%.1f",
                model_key,
                status.window,
                status.usage_percent,
            )
        return status

    def snapshot(self, model_key: str, now: float | None = None) -> dict[str, dict[str, int]]:
        now = time.time() if now is None else now
        with self._lock:
            entry = self._entries.get(model_key) or _UsageEntry()
            return {
                name: {
                    "requests": sum(1 for ts in entry.requests if ts > now - seconds),
                    "tokens": sum(tokens for ts, tokens in entry.tokens if ts > now - seconds),
                }
                for name, seconds in _WINDOWS
            }

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()

    @staticmethod
    def _prune(entry: _UsageEntry, now: float) -> None:
        cutoff = now - _WINDOWS[-1][1]
        while entry.requests and entry.requests[0] <= cutoff:
            entry.requests.popleft()
        while entry.tokens and entry.tokens[0][0] <= cutoff:
            entry.tokens.popleft()

    @staticmethod
    def _status(model_key: str, provider: str, entry: _UsageEntry, now: float) -> UsageStatus:
        worst = UsageStatus(model_key, False, False, 0.0, "day")
        for name, seconds in _WINDOWS:
            start = now - seconds
            requests = sum(1 for ts in entry.requests if ts > start)
            tokens = sum(count for ts, count in entry.tokens if ts > start)
            request_limit = _limit(provider, "REQUESTS", name, _DEFAULT_REQUEST_LIMITS[name])
            token_limit = _limit(provider, "TOKENS", name, _DEFAULT_TOKEN_LIMITS[name])
            ratio = max(requests / request_limit, tokens / token_limit)
            if ratio >= 1:
                return UsageStatus(model_key, True, True, 100.0, name)
            if ratio > worst.usage_percent / 100:
                worst = UsageStatus(model_key, ratio >= _APPROACHING_RATIO, False, round(ratio * 100, 1), name)
        return worst


usage_tracker = UsageTracker()
