from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from app.core.config import settings


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _get_db_path() -> Path:
    return Path(settings.analytics_db_path)


def init_db() -> None:
    if not settings.analytics_enabled:
        return
    db_path = _get_db_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS ai_analysis_runs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                created_at TEXT NOT NULL,
                run_id TEXT NOT NULL,
                tool_slug TEXT NOT NULL,
                model TEXT NOT NULL,
                schema_valid INTEGER NOT NULL,
                status TEXT NOT NULL,
                error_code TEXT,
                latency_ms INTEGER,
                prompt_tokens INTEGER
            )
            """
        )
        conn.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_ai_analysis_runs_created_at
            ON ai_analysis_runs (created_at)
            """
        )
        conn.commit()
    purge_old_records()


def log_ai_analysis_run(
    *,
    run_id: str,
    tool_slug: str,
    model: str,
    schema_valid: bool,
    status: str,
    error_code: str | None = None,
    latency_ms: int | None = None,
    prompt_tokens: int | None = None,
) -> None:
    if not settings.analytics_enabled:
        return
    db_path = _get_db_path()
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            """
            INSERT INTO ai_analysis_runs (
                created_at, run_id, tool_slug, model, schema_valid, status, error_code, latency_ms, prompt_tokens
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                _utc_now(),
                run_id,
                tool_slug,
                model,
                1 if schema_valid else 0,
                status,
                error_code,
                latency_ms,
                prompt_tokens,
            ),
        )
        conn.commit()


def purge_old_records() -> dict[str, int]:
    if not settings.analytics_enabled:
        return {"ai_analysis_runs": 0}

    retention = max(1, int(settings.analytics_retention_days))
    deleted = {"ai_analysis_runs": 0}
    with sqlite3.connect(_get_db_path()) as conn:
        cur = conn.execute(
            "DELETE FROM ai_analysis_runs WHERE created_at < ?",
            (_cutoff_iso(retention),),
        )
        deleted["ai_analysis_runs"] = int(cur.rowcount or 0)
        conn.commit()

    return deleted


def _cutoff_iso(days: int) -> str:
    cutoff = datetime.now(timezone.utc).timestamp() - days * 86400
    return datetime.fromtimestamp(cutoff, tz=timezone.utc).isoformat()


def get_run_summary(days: int = 7) -> dict[str, Any]:
    """Per-tool run counts and failure counts over the last ``days`` days."""
    if not settings.analytics_enabled:
        return {"enabled": False}
    with sqlite3.connect(_get_db_path()) as conn:
        rows = conn.execute(
            """
            SELECT tool_slug, COUNT(*), SUM(CASE WHEN status = 'success' THEN 0 ELSE 1 END)
            FROM ai_analysis_runs
            WHERE created_at >= ?
            GROUP BY tool_slug
            ORDER BY tool_slug
            """,
            (_cutoff_iso(days),),
        ).fetchall()
    return {
        "enabled": True,
        "days": days,
        "tools": {slug: {"runs": int(total), "failures": int(failures or 0)} for slug, total, failures in rows},
    }
