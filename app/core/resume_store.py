from __future__ import annotations

import json
import os
import sqlite3
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Protocol

from app.core.config import settings

RESUME_JSON_FIELDS = ("content_map", "free_reveal", "match_score", "improvement_metrics", "keyword_gap")
RESUME_COLUMNS = (
    "id",
    "user_id",
    "session_id",
    "email",
    "original_content",
    "tailored_content",
    "obfuscated_content",
    "content_map",
    "free_reveal",
    "job_description",
    "match_score",
    "improvement_metrics",
    "keyword_gap",
    "model_used",
    "parent_resume_id",
    "root_resume_id",
    "version_number",
    "applied_with_resume",
    "feedback_comment",
    "created_at",
    "updated_at",
)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


class DuplicateRecordError(Exception):
    pass


class ResumeStore(Protocol):
    def insert_resume(self, record: dict[str, Any]) -> dict[str, Any]: ...

    def update_resume(self, resume_id: str, fields: dict[str, Any]) -> dict[str, Any] | None: ...

    def get_resume(self, resume_id: str) -> dict[str, Any] | None: ...

    def get_resume_by_session(self, session_id: str) -> dict[str, Any] | None: ...

    def find_resume_by_email(self, email: str, session_id: str | None = None) -> dict[str, Any] | None: ...

    def list_versions(self, root_resume_id: str) -> list[dict[str, Any]]: ...

    def list_resumes(self, *, user_id: str | None = None, session_id: str | None = None, limit: int = 50) -> list[dict[str, Any]]: ...

    def link_resumes(self, user_id: str, *, resume_id: str | None = None, session_id: str | None = None) -> list[str]: ...

    def user_resume_ids(self, user_id: str, limit: int) -> list[str]: ...

    def get_active_grant(self, user_id: str, now_iso: str) -> dict[str, Any] | None: ...

    def insert_access_grant(self, grant: dict[str, Any]) -> None: ...

    def insert_payment(self, payment: dict[str, Any]) -> None: ...

    def record_stripe_event(self, event_id: str, event_type: str) -> bool: ...


def _encode(record: dict[str, Any]) -> dict[str, Any]:
    encoded = dict(record)
    for name in RESUME_JSON_FIELDS:
        if name in encoded and encoded[name] is not None:
            encoded[name] = json.dumps(encoded[name], ensure_ascii=False)
    if "applied_with_resume" in encoded and encoded["applied_with_resume"] is not None:
        encoded["applied_with_resume"] = 1 if encoded["applied_with_resume"] else 0
    return encoded


def _decode(row: dict[str, Any]) -> dict[str, Any]:
    decoded = dict(row)
    for name in RESUME_JSON_FIELDS:
        if decoded.get(name):
            decoded[name] = json.loads(decoded[name])
    if decoded.get("applied_with_resume") is not None:
        decoded["applied_with_resume"] = bool(decoded["applied_with_resume"])
    return decoded


class SqliteResumeStore:
    """Single-file store mirroring the hosted ``resumes`` / ``access_grants`` tables."""

    def __init__(self, db_path: str):
        self._db_path = db_path
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
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            conn.execute("PRAGMA busy_timeout=5000;")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS resumes (
                    id TEXT PRIMARY KEY,
                    user_id TEXT,
                    session_id TEXT,
                    email TEXT,
                    original_content TEXT NOT NULL,
                    tailored_content TEXT NOT NULL,
                    obfuscated_content TEXT,
                    content_map TEXT,
                    free_reveal TEXT,
                    job_description TEXT,
                    match_score TEXT,
                    improvement_metrics TEXT,
                    keyword_gap TEXT,
                    model_used TEXT,
                    parent_resume_id TEXT,
                    root_resume_id TEXT,
                    version_number INTEGER NOT NULL DEFAULT 1,
                    applied_with_resume INTEGER,
                    feedback_comment TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_resumes_session ON resumes (session_id, created_at);")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_resumes_user ON resumes (user_id, created_at);")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_resumes_root ON resumes (root_resume_id, version_number);")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS access_grants (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    stripe_session_id TEXT NOT NULL UNIQUE,
                    payment_timestamp TEXT NOT NULL,
                    expires_at TEXT NOT NULL,
                    tier_purchased TEXT NOT NULL,
                    is_active INTEGER NOT NULL DEFAULT 1
                );
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_access_grants_user ON access_grants (user_id, expires_at);")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS payments (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    stripe_session_id TEXT NOT NULL,
                    stripe_event_id TEXT,
                    tier TEXT NOT NULL,
                    price_id TEXT,
                    amount_total INTEGER,
                    currency TEXT,
                    created_at TEXT NOT NULL
                );
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS stripe_events (
                    event_id TEXT PRIMARY KEY,
                    event_type TEXT NOT NULL,
                    processed_at TEXT NOT NULL
                );
                """
            )
            self._conn = conn
            return conn

    def _fetch_one(self, query: str, params: tuple[Any, ...]) -> dict[str, Any] | None:
        conn = self._get_connection()
        with self._conn_lock:
            row = conn.execute(query, params).fetchone()
        return _decode(dict(row)) if row else None

    def _fetch_all(self, query: str, params: tuple[Any, ...]) -> list[dict[str, Any]]:
        conn = self._get_connection()
        with self._conn_lock:
            rows = conn.execute(query, params).fetchall()
        return [_decode(dict(row)) for row in rows]

    def insert_resume(self, record: dict[str, Any]) -> dict[str, Any]:
        now = utc_now_iso()
        row = {name: None for name in RESUME_COLUMNS}
        row.update({"id": str(uuid.uuid4()), "version_number": 1, "created_at": now, "updated_at": now})
        row.update({key: value for key, value in record.items() if key in row})
        if not row["root_resume_id"]:
            row["root_resume_id"] = row["id"]

        encoded = _encode(row)
        columns = ", ".join(RESUME_COLUMNS)
        placeholders = ", ".join("?" for _ in RESUME_COLUMNS)
        conn = self._get_connection()
        with self._conn_lock:
            conn.execute(
                f"INSERT INTO resumes ({columns}) VALUES ({placeholders})",
                tuple(encoded[name] for name in RESUME_COLUMNS),
            )
            conn.commit()
        return row

    def update_resume(self, resume_id: str, fields: dict[str, Any]) -> dict[str, Any] | None:
        updates = {key: value for key, value in fields.items() if key in RESUME_COLUMNS and key != "id"}
        updates.setdefault("updated_at", utc_now_iso())
        encoded = _encode(updates)
        assignments = ", ".join(f"{name} = ?" for name in encoded)
        conn = self._get_connection()
        with self._conn_lock:
            conn.execute(
                f"UPDATE resumes SET {assignments} WHERE id = ?",
                (*encoded.values(), resume_id),
            )
            conn.commit()
        return self.get_resume(resume_id)

    def get_resume(self, resume_id: str) -> dict[str, Any] | None:
        return self._fetch_one("SELECT * FROM resumes WHERE id = ?", (resume_id,))

    def get_resume_by_session(self, session_id: str) -> dict[str, Any] | None:
        return self._fetch_one(
            "SELECT * FROM resumes WHERE session_id = ? ORDER BY created_at DESC LIMIT 1",
            (session_id,),
        )

    def find_resume_by_email(self, email: str, session_id: str | None = None) -> dict[str, Any] | None:
        if session_id:
            return self._fetch_one(
                "SELECT * FROM resumes WHERE email = ? AND session_id = ? ORDER BY created_at DESC LIMIT 1",
                (email, session_id),
            )
        return self._fetch_one(
            "SELECT * FROM resumes WHERE email = ? ORDER BY created_at DESC LIMIT 1",
            (email,),
        )

    def list_versions(self, root_resume_id: str) -> list[dict[str, Any]]:
        return self._fetch_all(
            "SELECT * FROM resumes WHERE root_resume_id = ? ORDER BY version_number ASC, created_at ASC",
            (root_resume_id,),
        )

    def list_resumes(self, *, user_id: str | None = None, session_id: str | None = None, limit: int = 50) -> list[dict[str, Any]]:
        """Newest first, by owner when ``user_id`` is given, else by session."""
        if user_id:
            column, value = "user_id", user_id
        elif session_id:
            column, value = "session_id", session_id
        else:
            return []
        return self._fetch_all(
            f"SELECT * FROM resumes WHERE {column} = ? ORDER BY created_at DESC, rowid DESC LIMIT ?",
            (value, limit),
        )

    def link_resumes(self, user_id: str, *, resume_id: str | None = None, session_id: str | None = None) -> list[str]:
        """Assign anonymous resumes to ``user_id``, by ``resume_id`` when given, else by ``session_id``."""
        if resume_id:
            column, value = "id", resume_id
        elif session_id:
            column, value = "session_id", session_id
        else:
            return []
        conn = self._get_connection()
        now = utc_now_iso()
        with self._conn_lock:
            rows = conn.execute(
                f"SELECT id FROM resumes WHERE user_id IS NULL AND {column} = ? ORDER BY created_at ASC",
                (value,),
            ).fetchall()
            linked = [row["id"] for row in rows]
            if linked:
                placeholders = ", ".join("?" for _ in linked)
                conn.execute(
                    f"UPDATE resumes SET user_id = ?, updated_at = ? WHERE id IN ({placeholders})",
                    (user_id, now, *linked),
                )
                conn.commit()
        return linked

    def user_resume_ids(self, user_id: str, limit: int) -> list[str]:
        rows = self._fetch_all(
            "SELECT id FROM resumes WHERE user_id = ? ORDER BY created_at ASC LIMIT ?",
            (user_id, limit),
        )
        return [row["id"] for row in rows]

    def get_active_grant(self, user_id: str, now_iso: str) -> dict[str, Any] | None:
        grant = self._fetch_one(
            """
            SELECT * FROM access_grants
            WHERE user_id = ? AND is_active = 1 AND expires_at > ?
            ORDER BY expires_at DESC LIMIT 1
            """,
            (user_id, now_iso),
        )
        if grant is not None:
            grant["is_active"] = bool(grant["is_active"])
        return grant

    def insert_access_grant(self, grant: dict[str, Any]) -> None:
        conn = self._get_connection()
        with self._conn_lock:
            try:
                conn.execute(
                    """
                    INSERT INTO access_grants (
                        id, user_id, stripe_session_id, payment_timestamp, expires_at, tier_purchased, is_active
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        grant.get("id") or str(uuid.uuid4()),
                        grant["user_id"],
                        grant["stripe_session_id"],
                        grant["payment_timestamp"],
                        grant["expires_at"],
                        grant["tier_purchased"],
                        1 if grant.get("is_active", True) else 0,
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise DuplicateRecordError(grant["stripe_session_id"]) from exc
            conn.commit()

    def insert_payment(self, payment: dict[str, Any]) -> None:
        conn = self._get_connection()
        with self._conn_lock:
            conn.execute(
                """
                INSERT INTO payments (
                    id, user_id, stripe_session_id, stripe_event_id, tier, price_id, amount_total, currency, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    payment.get("id") or str(uuid.uuid4()),
                    payment["user_id"],
                    payment["stripe_session_id"],
                    payment.get("stripe_event_id"),
                    payment["tier"],
                    payment.get("price_id"),
                    payment.get("amount_total"),
                    payment.get("currency"),
                    payment.get("created_at") or utc_now_iso(),
                ),
            )
            conn.commit()

    def record_stripe_event(self, event_id: str, event_type: str) -> bool:
        conn = self._get_connection()
        with self._conn_lock:
            cur = conn.execute(
                "INSERT OR IGNORE INTO stripe_events (event_id, event_type, processed_at) VALUES (?, ?, ?)",
                (event_id, event_type, utc_now_iso()),
            )
            conn.commit()
            return bool(cur.rowcount)


class SupabaseResumeStore:
    """Same contract backed by the hosted Postgres tables through supabase-py."""

    def __init__(self, client):
        self._client = client

    def _table(self, name: str):
        return self._client.table(name)

    @staticmethod
    def _first(response) -> dict[str, Any] | None:
        data = getattr(response, "data", None) or []
        return data[0] if data else None

    def insert_resume(self, record: dict[str, Any]) -> dict[str, Any]:
        row = {key: value for key, value in record.items() if key in RESUME_COLUMNS and value is not None}
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("version_number", 1)
        row.setdefault("root_resume_id", row["id"])
        response = self._table("resumes").insert(row).execute()
        return self._first(response) or row

    def update_resume(self, resume_id: str, fields: dict[str, Any]) -> dict[str, Any] | None:
        updates = {key: value for key, value in fields.items() if key in RESUME_COLUMNS and key != "id"}
        updates.setdefault("updated_at", utc_now_iso())
        response = self._table("resumes").update(updates).eq("id", resume_id).execute()
        return self._first(response)

    def get_resume(self, resume_id: str) -> dict[str, Any] | None:
        response = self._table("resumes").select("*").eq("id", resume_id).limit(1).execute()
        return self._first(response)

    def get_resume_by_session(self, session_id: str) -> dict[str, Any] | None:
        response = (
            self._table("resumes")
            .select("*")
            .eq("session_id", session_id)
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        return self._first(response)

    def find_resume_by_email(self, email: str, session_id: str | None = None) -> dict[str, Any] | None:
        query = self._table("resumes").select("*").eq("email", email)
        if session_id:
            query = query.eq("session_id", session_id)
        response = query.order("created_at", desc=True).limit(1).execute()
        return self._first(response)

    def list_versions(self, root_resume_id: str) -> list[dict[str, Any]]:
        response = (
            self._table("resumes")
            .select("*")
            .eq("root_resume_id", root_resume_id)
            .order("version_number")
            .execute()
        )
        return list(response.data or [])

    def list_resumes(self, *, user_id: str | None = None, session_id: str | None = None, limit: int = 50) -> list[dict[str, Any]]:
        query = self._table("resumes").select("*")
        if user_id:
            query = query.eq("user_id", user_id)
        elif session_id:
            query = query.eq("session_id", session_id)
        else:
            return []
        response = query.order("created_at", desc=True).limit(limit).execute()
        return list(response.data or [])

    def link_resumes(self, user_id: str, *, resume_id: str | None = None, session_id: str | None = None) -> list[str]:
        query = self._table("resumes").update({"user_id": user_id, "updated_at": utc_now_iso()})
        if resume_id:
            query = query.eq("id", resume_id)
        elif session_id:
            query = query.eq("session_id", session_id)
        else:
            return []
        response = query.is_("user_id", "null").execute()
        return [row["id"] for row in response.data or []]

    def user_resume_ids(self, user_id: str, limit: int) -> list[str]:
        response = (
            self._table("resumes")
            .select("id")
            .eq("user_id", user_id)
            .order("created_at")
            .limit(limit)
            .execute()
        )
        return [row["id"] for row in response.data or []]

    def get_active_grant(self, user_id: str, now_iso: str) -> dict[str, Any] | None:
        response = (
            self._table("access_grants")
            .select("*")
            .eq("user_id", user_id)
            .eq("is_active", True)
            .gt("expires_at", now_iso)
            .order("expires_at", desc=True)
            .limit(1)
            .execute()
        )
        return self._first(response)

    def insert_access_grant(self, grant: dict[str, Any]) -> None:
        try:
            self._table("access_grants").insert(grant).execute()
        except Exception as exc:
            if "23505" in str(exc) or "duplicate key" in str(exc).lower():
                raise DuplicateRecordError(grant.get("stripe_session_id", "")) from exc
            raise

    def insert_payment(self, payment: dict[str, Any]) -> None:
        self._table("payments").insert(payment).execute()

    def record_stripe_event(self, event_id: str, event_type: str) -> bool:
        existing = self._table("stripe_events").select("event_id").eq("event_id", event_id).limit(1).execute()
        if existing.data:
            return False
        self._table("stripe_events").insert(
            {"event_id": event_id, "event_type": event_type, "processed_at": utc_now_iso()}
        ).execute()
        return True


_store: ResumeStore | None = None
_store_lock = threading.Lock()


def _build_default_store() -> ResumeStore:
    if settings.resume_store_backend == "supabase":
        from app.core.security import supabase_client

        return SupabaseResumeStore(supabase_client())
    return SqliteResumeStore(settings.resume_store_db_path)


def get_resume_store() -> ResumeStore:
    global _store
    with _store_lock:
        if _store is None:
            _store = _build_default_store()
        return _store


def set_resume_store(store: ResumeStore | None) -> None:
    global _store
    with _store_lock:
        _store = store
