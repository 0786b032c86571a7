"""SQLite storage for conversations and their turns."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional, TypeVar

from egypto.errors import StoreError
from egypto.models import Conversation, Turn

logger = logging.getLogger("EgyptoAI")

T = TypeVar("T")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _conversation(row: sqlite3.Row) -> Conversation:
    return Conversation(
        id=row["id"],
        owner_id=row["owner_id"],
        title=row["title"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def _turn(row: sqlite3.Row) -> Turn:
    return Turn(
        id=row["id"],
        conversation_id=row["conversation_id"],
        prompt=row["prompt"],
        reply=row["reply"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


class ChatStore:
    """SQLite-backed storage for conversations and turns.

    Every public method is a coroutine; the sqlite3 calls run in a worker thread
    and one lock serializes them on the shared connection.
    """

    def __init__(self, db_path: Path | str):
        if str(db_path) != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA foreign_keys=ON")
        self._lock = threading.Lock()
        self._migrate()

    def _migrate(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS conversations (
                id TEXT PRIMARY KEY,
                owner_id TEXT,
                title TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_conversations_owner
                ON conversations(owner_id, updated_at);

            CREATE TABLE IF NOT EXISTS turns (
                id TEXT PRIMARY KEY,
                conversation_id TEXT NOT NULL,
                prompt TEXT NOT NULL,
                reply TEXT NOT NULL,
                created_at TEXT NOT NULL,
                FOREIGN KEY (conversation_id) REFERENCES conversations(id) ON DELETE CASCADE
            );

            CREATE INDEX IF NOT EXISTS idx_turns_conv
                ON turns(conversation_id, created_at);
        """)
        self.conn.commit()

    async def _run(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        def locked() -> T:
            with self._lock:
                try:
                    with self.conn:
                        return fn(self.conn)
                except sqlite3.Error as e:
                    logger.error("Store operation failed: %s", e)
                    raise StoreError("Failed to access chat storage.", details=str(e)) from e

        return await asyncio.to_thread(locked)

    # -- conversations -------------------------------------------------------

    async def create_conversation(
        self, owner_id: Optional[str], title: str, conversation_id: Optional[str] = None
    ) -> Conversation:
        conversation_id = conversation_id or uuid.uuid4().hex
        now = _now()

        def op(conn: sqlite3.Connection) -> Conversation:
            conn.execute(
                "INSERT INTO conversations (id, owner_id, title, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
                (conversation_id, owner_id, title, now, now),
            )
            row = conn.execute("SELECT * FROM conversations WHERE id = ?", (conversation_id,)).fetchone()
            return _conversation(row)

        return await self._run(op)

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        def op(conn: sqlite3.Connection) -> Optional[Conversation]:
            row = conn.execute("SELECT * FROM conversations WHERE id = ?", (conversation_id,)).fetchone()
            return _conversation(row) if row else None

        return await self._run(op)

    async def update_conversation_title(self, conversation_id: str, title: str) -> None:
        await self._run(lambda conn: conn.execute(
            "UPDATE conversations SET title = ? WHERE id = ?", (title, conversation_id)
        ))

    async def touch_conversation(self, conversation_id: str) -> None:
        await self._run(lambda conn: conn.execute(
            "UPDATE conversations SET updated_at = ? WHERE id = ?", (_now(), conversation_id)
        ))

    async def delete_conversation(self, conversation_id: str) -> None:
        await self._run(lambda conn: conn.execute(
            "DELETE FROM conversations WHERE id = ?", (conversation_id,)
        ))

    async def list_conversations(self, owner_id: str) -> List[Conversation]:
        """Owner's conversations, most recently active first. Conversations without turns are skipped."""
        def op(conn: sqlite3.Connection) -> List[Conversation]:
            rows = conn.execute(
                """
                SELECT c.* FROM conversations c
                WHERE c.owner_id = ?
                  AND EXISTS (SELECT 1 FROM turns t WHERE t.conversation_id = c.id)
                ORDER BY c.updated_at DESC
                """,
                (owner_id,),
            ).fetchall()
            return [_conversation(r) for r in rows]

        return await self._run(op)

    # -- turns ---------------------------------------------------------------

    async def create_turn(self, conversation_id: str, prompt: str, reply: str) -> Turn:
        turn_id = uuid.uuid4().hex
        now = _now()

        def op(conn: sqlite3.Connection) -> Turn:
            conn.execute(
                "INSERT INTO turns (id, conversation_id, prompt, reply, created_at) VALUES (?, ?, ?, ?, ?)",
                (turn_id, conversation_id, prompt, reply, now),
            )
            row = conn.execute("SELECT * FROM turns WHERE id = ?", (turn_id,)).fetchone()
            return _turn(row)

        return await self._run(op)

    async def list_recent_turns(self, conversation_id: str, limit: int = 10) -> List[Turn]:
        """The last `limit` turns, oldest first."""
        def op(conn: sqlite3.Connection) -> List[Turn]:
            rows = conn.execute(
                """
                SELECT * FROM turns WHERE conversation_id = ?
                ORDER BY created_at DESC, rowid DESC LIMIT ?
                """,
                (conversation_id, limit),
            ).fetchall()
            return [_turn(r) for r in reversed(rows)]

        return await self._run(op)

    def close(self):
        with self._lock:
            self.conn.close()

    async def get_stats(self) -> dict:
        def op(conn: sqlite3.Connection) -> dict:
            return {
                "conversations": conn.execute("SELECT COUNT(*) FROM conversations").fetchone()[0],
                "turns": conn.execute("SELECT COUNT(*) FROM turns").fetchone()[0],
            }

        return await self._run(op)
