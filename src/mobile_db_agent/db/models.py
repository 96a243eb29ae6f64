"""Session store - sync sessions and the files they staged, in SQLite."""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from mobile_db_agent.config import STATE_DIR

logger = structlog.get_logger()

DEFAULT_DB_PATH = STATE_DIR / "state.db"

SCHEMA = """
CREATE TABLE IF NOT EXISTS sessions (
    session_id TEXT PRIMARY KEY,
    device_id TEXT NOT NULL,
    device_category TEXT NOT NULL,
    bundle_id TEXT NOT NULL,
    app_name TEXT NOT NULL,
    created_at TEXT NOT NULL,
    last_activity TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS staged_files (
    session_id TEXT NOT NULL REFERENCES sessions(session_id) ON DELETE CASCADE,
    position INTEGER NOT NULL,
    local_path TEXT NOT NULL,
    descriptor TEXT NOT NULL,
    PRIMARY KEY (session_id, local_path)
);

CREATE INDEX IF NOT EXISTS idx_sessions_device ON sessions(device_id);
"""

SESSION_COLUMNS = (
    "session_id",
    "device_id",
    "device_category",
    "bundle_id",
    "app_name",
    "created_at",
    "last_activity",
)


class Database:
    """Async SQLite store for sync sessions.

    A session row holds the addressing needed to push back (device id,
    category, bundle id); ``staged_files`` holds one descriptor per staged
    copy, removed together with its session.
    """

    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = db_path or DEFAULT_DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        self._connection = await aiosqlite.connect(self.db_path)
        self._connection.row_factory = aiosqlite.Row
        # SQLite leaves foreign keys off per connection
        await self._connection.execute("PRAGMA foreign_keys = ON")
        await self._connection.executescript(SCHEMA)
        await self._connection.commit()
        logger.info("session_store_opened", path=str(self.db_path))

    async def disconnect(self) -> None:
        if self._connection:
            await self._connection.close()
            self._connection = None
            logger.info("session_store_closed")

    @property
    def connected(self) -> bool:
        return self._connection is not None

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[aiosqlite.Connection, None]:
        """Commit on success, roll back on any error."""
        if not self._connection:
            raise RuntimeError("Session store not connected")
        try:
            yield self._connection
            await self._connection.commit()
        except Exception:
            await self._connection.rollback()
            raise

    # Sessions

    async def save_session(
        self,
        session_id: str,
        device_id: str,
        device_category: str,
        bundle_id: str,
        app_name: str,
        created_at: str | None = None,
    ) -> None:
        now = datetime.now().isoformat()
        async with self.transaction() as conn:
            await conn.execute(
                """
                INSERT INTO sessions
                    (session_id, device_id, device_category, bundle_id, app_name, created_at, last_activity)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(session_id) DO UPDATE SET
                    app_name = excluded.app_name,
                    last_activity = excluded.last_activity
                """,
                (session_id, device_id, device_category, bundle_id, app_name, created_at or now, now),
            )

    async def touch_session(self, session_id: str) -> None:
        """Record activity on a session, e.g. a push."""
        async with self.transaction() as conn:
            await conn.execute(
                "UPDATE sessions SET last_activity = ? WHERE session_id = ?",
                (datetime.now().isoformat(), session_id),
            )

    async def get_session(self, session_id: str) -> dict[str, Any] | None:
        if not self._connection:
            return None
        cursor = await self._connection.execute(
            f"SELECT {', '.join(SESSION_COLUMNS)} FROM sessions WHERE session_id = ?",
            (session_id,),
        )
        row = await cursor.fetchone()
        return dict(row) if row else None

    async def list_sessions(self) -> list[dict[str, Any]]:
        """Sessions, most recently active first."""
        if not self._connection:
            return []
        cursor = await self._connection.execute(
            f"SELECT {', '.join(SESSION_COLUMNS)} FROM sessions ORDER BY last_activity DESC"
        )
        return [dict(row) for row in await cursor.fetchall()]

    async def delete_session(self, session_id: str) -> None:
        """Delete a session; its staged file rows cascade."""
        async with self.transaction() as conn:
            await conn.execute("DELETE FROM sessions WHERE session_id = ?", (session_id,))

    # Staged files

    async def replace_staged_files(self, session_id: str, files: list[dict[str, Any]]) -> None:
        async with self.transaction() as conn:
            await conn.execute("DELETE FROM staged_files WHERE session_id = ?", (session_id,))
            await conn.executemany(
                """
                INSERT INTO staged_files (session_id, position, local_path, descriptor)
                VALUES (?, ?, ?, ?)
                """,
                [
                    (session_id, position, item["local_path"], json.dumps(item))
                    for position, item in enumerate(files)
                ],
            )

    async def get_staged_files(self, session_id: str) -> list[dict[str, Any]]:
        """Staged file descriptors of a session, in staging order."""
        if not self._connection:
            return []
        cursor = await self._connection.execute(
            "SELECT descriptor FROM staged_files WHERE session_id = ? ORDER BY position",
            (session_id,),
        )
        return [json.loads(row["descriptor"]) for row in await cursor.fetchall()]
