"""
database.py — async SQLite persistence via aiosqlite.

Tables:
  user_prefs     — per-user analysis language (vi / en / ko)
  analysis_logs  — one row per finished analysis session (complete or errored)

Analysis results themselves are never stored: every request goes to Gemini.
The DB file is created automatically on first run.
"""
from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import aiosqlite

logger = logging.getLogger(__name__)

# Store the DB in a dedicated data/ directory so Docker volume mounts work
# correctly (mount ./data:/app/data) and the file survives container restarts.
_DATA_DIR = Path(os.getenv("DATA_DIR", "data"))
_DATA_DIR.mkdir(parents=True, exist_ok=True)

DB_PATH = str(_DATA_DIR / "bot_data.db")
_lock = asyncio.Lock()          # serialise schema creation


# ── Data models ───────────────────────────────────────────────────────────────

@dataclass
class AnalysisLog:
    id: int
    user_id: int
    product_name: str           # "" when stage 1 failed
    input_kind: str             # text | photo | document | voice
    language: str
    status: str                 # complete | errored
    failed_stage: Optional[str]
    source_count: int
    competitor_count: int
    created_at: datetime


# ── Schema ────────────────────────────────────────────────────────────────────

_SCHEMA = """
CREATE TABLE IF NOT EXISTS user_prefs (
    user_id    INTEGER PRIMARY KEY,
    language   TEXT    NOT NULL,
    updated_at TEXT    NOT NULL
);

CREATE TABLE IF NOT EXISTS analysis_logs (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id          INTEGER NOT NULL,
    product_name     TEXT    NOT NULL DEFAULT '',
    input_kind       TEXT    NOT NULL DEFAULT 'text',
    language         TEXT    NOT NULL DEFAULT '',
    status           TEXT    NOT NULL,
    failed_stage     TEXT,
    source_count     INTEGER NOT NULL DEFAULT 0,
    competitor_count INTEGER NOT NULL DEFAULT 0,
    created_at       TEXT    NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_analysis_logs_user ON analysis_logs (user_id, created_at);
"""


async def init_db() -> None:
    """Create tables if they don't exist. Safe to call multiple times."""
    async with _lock:
        async with aiosqlite.connect(DB_PATH) as db:
            await db.executescript(_SCHEMA)
            await db.commit()
    logger.info("Database initialised at %s", DB_PATH)


# ── User preferences ──────────────────────────────────────────────────────────

async def get_language(user_id: int) -> Optional[str]:
    """Return the user's saved analysis language, or None if never set."""
    async with aiosqlite.connect(DB_PATH) as db:
        async with db.execute(
            "SELECT language FROM user_prefs WHERE user_id = ?", (user_id,)
        ) as cursor:
            row = await cursor.fetchone()
            return row[0] if row else None


async def set_language(user_id: int, language: str) -> None:
    now = datetime.now(timezone.utc).isoformat()
    async with aiosqlite.connect(DB_PATH) as db:
        await db.execute(
            """INSERT INTO user_prefs (user_id, language, updated_at) VALUES (?, ?, ?)
               ON CONFLICT(user_id) DO UPDATE SET language = excluded.language,
                                                  updated_at = excluded.updated_at""",
            (user_id, language, now),
        )
        await db.commit()


# ── Analysis log ──────────────────────────────────────────────────────────────

async def log_analysis(
    user_id: int,
    product_name: str,
    input_kind: str,
    language: str,
    status: str,
    failed_stage: Optional[str] = None,
    source_count: int = 0,
    competitor_count: int = 0,
) -> None:
    """Record one finished analysis session."""
    now = datetime.now(timezone.utc).isoformat()
    async with aiosqlite.connect(DB_PATH) as db:
        await db.execute(
            """INSERT INTO analysis_logs
               (user_id, product_name, input_kind, language, status, failed_stage,
                source_count, competitor_count, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (user_id, product_name, input_kind, language, status, failed_stage,
             source_count, competitor_count, now),
        )
        await db.commit()


async def get_recent_analyses(user_id: int, limit: int = 10) -> list[AnalysisLog]:
    """Newest first."""
    async with aiosqlite.connect(DB_PATH) as db:
        db.row_factory = aiosqlite.Row
        async with db.execute(
            """SELECT * FROM analysis_logs WHERE user_id = ?
               ORDER BY created_at DESC, id DESC LIMIT ?""",
            (user_id, limit),
        ) as cursor:
            rows = await cursor.fetchall()
    return [
        AnalysisLog(
            id=r["id"],
            user_id=r["user_id"],
            product_name=r["product_name"],
            input_kind=r["input_kind"],
            language=r["language"],
            status=r["status"],
            failed_stage=r["failed_stage"],
            source_count=r["source_count"],
            competitor_count=r["competitor_count"],
            created_at=datetime.fromisoformat(r["created_at"]),
        )
        for r in rows
    ]


async def get_stats() -> dict:
    """Return summary stats for /stats."""
    async with aiosqlite.connect(DB_PATH) as db:
        async with db.execute("SELECT COUNT(*) FROM analysis_logs") as cur:
            total = (await cur.fetchone())[0]
        async with db.execute(
            "SELECT COUNT(*) FROM analysis_logs WHERE status = 'complete'"
        ) as cur:
            complete = (await cur.fetchone())[0]
        async with db.execute("SELECT COUNT(DISTINCT user_id) FROM analysis_logs") as cur:
            users = (await cur.fetchone())[0]
        async with db.execute(
            """SELECT failed_stage, COUNT(*) FROM analysis_logs
               WHERE status = 'errored' GROUP BY failed_stage"""
        ) as cur:
            failures = {row[0] or "unknown": row[1] for row in await cur.fetchall()}
        async with db.execute(
            "SELECT language, COUNT(*) FROM analysis_logs GROUP BY language"
        ) as cur:
            languages = {row[0]: row[1] for row in await cur.fetchall()}
    return {
        "total": total,
        "complete": complete,
        "errored": total - complete,
        "unique_users": users,
        "failures_by_stage": failures,
        "by_language": languages,
    }
