from __future__ import annotations

import hashlib
import math
import os
import sqlite3
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Literal, Protocol

from fastapi import Request, status

from app.core.config import settings
from app.core.errors import ApiError

WindowName = Literal["minute", "hour", "day"]

_WINDOW_SECONDS: dict[WindowName, int] = {"minute": 60, "hour": 3600, "day": 86400}


@dataclass(frozen=True)
class WindowLimits:
    per_minute: int
    per_hour: int
    per_day: int

    def windows(self) -> tuple[tuple[WindowName, int, int], ...]:
        return (
            ("minute", _WINDOW_SECONDS["minute"], self.per_minute),
            ("hour", _WINDOW_SECONDS["hour"], self.per_hour),
            ("day", _WINDOW_SECONDS["day"], self.per_day),
        )


DEFAULT_LIMITS = WindowLimits(
    per_minute=settings.requests_per_minute,
    per_hour=settings.requests_per_hour,
    per_day=settings.requests_per_day,
)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    current_count: int
    limit: int
    window: WindowName
    retry_after: int = 0
    limit_type: WindowName | None = None


class RequestCounter(Protocol):
    def hit(self, key: str, limits: WindowLimits = DEFAULT_LIMITS) -> RateLimitDecision: ...

    def reset(self) -> None: ...

    def purge_expired(self) -> int: ...


def _decide(
    timestamps: list[float],
    limits: WindowLimits,
    now: float,
) -> RateLimitDecision:
    for name, seconds, limit in limits.windows():
        in_window = [ts for ts in timestamps if ts > now - seconds]
        if len(in_window) >= limit:
            oldest = min(in_window) if in_window else now
            retry_after = max(1, math.ceil(oldest + seconds - now))
            return RateLimitDecision(
                allowed=False,
                current_count=len(in_window),
                limit=limit,
                window=name,
                retry_after=retry_after,
                limit_type=name,
            )
    minute_count = sum(1 for ts in timestamps if ts > now - _WINDOW_SECONDS["minute"])
    return RateLimitDecision(allowed=True, current_count=minute_count + 1, limit=limits.per_minute, window="minute")


class InMemoryRequestCounter:
    """Sliding-window counter kept in this process only; restarts reset it."""

    def __init__(self, clock=time.time):
        self._clock = clock
        self._events: dict[str, deque[float]] = {}
        self._lock = threading.Lock()

    def hit(self, key: str, limits: WindowLimits = DEFAULT_LIMITS) -> RateLimitDecision:
        now = self._clock()
        with self._lock:
            events = self._events.setdefault(key, deque())
            self._prune(events, now)
            decision = _decide(list(events), limits, now)
            if decision.allowed:
                events.append(now)
            return decision

    def reset(self) -> None:
        with self._lock:
            self._events.clear()

    def purge_expired(self) -> int:
        now = self._clock()
        removed = 0
        with self._lock:
            for key in list(self._events):
                events = self._events[key]
                before = len(events)
                self._prune(events, now)
                removed += before - len(events)
                if not events:
                    del self._events[key]
        return removed

    @staticmethod
    def _prune(events: deque[float], now: float) -> None:
        cutoff = now - _WINDOW_SECONDS["day"]
        while events and events[0] <= cutoff:
            events.popleft()


class SqliteRequestCounter:
    """Counter shared by every worker process on one host through sqlite."""

    def __init__(self, db_path: str, clock=time.time):
        self._db_path = db_path
        self._clock = clock
        self._conn: sqlite3.Connection | None = None
        self._conn_lock = threading.Lock()

    def _get_connection(self) -> sqlite3.Connection:
        with self._conn_lock:
            if self._conn is not None:
                return self._conn

            directory = os.path.dirname(self._db_path)
            if directory:
                os.makedirs(directory, exist_ok=True)

            conn = sqlite3.connect(
                self._db_path,
                check_same_thread=False,
                timeout=5,
                isolation_level=None,
            )
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            conn.execute("PRAGMA busy_timeout=5000;")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS request_limit_events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    limit_key TEXT NOT NULL,
                    created_at REAL NOT NULL
                );
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_request_limit_lookup
                ON request_limit_events (limit_key, created_at);
                """
            )
            self._conn = conn
            return conn

    def hit(self, key: str, limits: WindowLimits = DEFAULT_LIMITS) -> RateLimitDecision:
        now = self._clock()
        conn = self._get_connection()

        with self._conn_lock:
            cursor = conn.cursor()
            cursor.execute("BEGIN IMMEDIATE")
            try:
                cursor.execute(
                    "DELETE FROM request_limit_events WHERE created_at <= ?",
                    (now - _WINDOW_SECONDS["day"],),
                )
                cursor.execute(
                    "SELECT created_at FROM request_limit_events WHERE limit_key = ?",
                    (key,),
                )
                timestamps = [float(row[0]) for row in cursor.fetchall()]
                decision = _decide(timestamps, limits, now)
                if decision.allowed:
                    cursor.execute(
                        "INSERT INTO request_limit_events (limit_key, created_at) VALUES (?, ?)",
                        (key, now),
                    )
                conn.commit()
                return decision
            except Exception:
                conn.rollback()
                raise

    def reset(self) -> None:
        conn = self._get_connection()
        with self._conn_lock:
            conn.execute("DELETE FROM request_limit_events")
            conn.commit()

    def purge_expired(self) -> int:
        conn = self._get_connection()
        with self._conn_lock:
            cur = conn.execute(
                "DELETE FROM request_limit_events WHERE created_at <= ?",
                (self._clock() - _WINDOW_SECONDS["day"],),
            )
            conn.commit()
            return int(cur.rowcount or 0)


def _build_default_counter() -> RequestCounter:
    if settings.request_limiter_backend == "sqlite":
        return SqliteRequestCounter(settings.request_limiter_db_path)
    return InMemoryRequestCounter()


_counter: RequestCounter = _build_default_counter()


def get_request_counter() -> RequestCounter:
    return _counter


def set_request_counter(counter: RequestCounter) -> None:
    global _counter
    _counter = counter


def client_ip(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for", "").strip()
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    for header in ("x-real-ip", "cf-connecting-ip"):
        value = request.headers.get(header, "").strip()
        if value:
            return value
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def hash_ip(ip: str) -> str:
    return hashlib.sha256(f"{ip}{settings.ip_hash_salt}".encode("utf-8")).hexdigest()[:16]


def limit_key(ip: str, endpoint: str, model: str | None = None) -> str:
    parts = [hash_ip(ip), endpoint]
    if model:
        parts.append(model)
    return ":".join(parts)


def enforce_request_limit(
    request: Request,
    endpoint: str | None = None,
    *,
    model: str | None = None,
    limits: WindowLimits = DEFAULT_LIMITS,
) -> RateLimitDecision:
    """Count this request and raise a 429 ``ApiError`` once a window is full."""
    key = limit_key(client_ip(request), endpoint or request.url.path, model)
    decision = get_request_counter().hit(key, limits)
    if not decision.allowed:
        raise ApiError(
            status.HTTP_429_TOO_MANY_REQUESTS,
            "Rate limit exceeded",
            f"Too many requests this {decision.limit_type}. Please try again in {decision.retry_after} seconds.",
            headers={"Retry-After": str(decision.retry_after)},
        )
    return decision
