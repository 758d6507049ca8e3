from __future__ import annotations

import sqlite3
from datetime import UTC, datetime
from pathlib import Path
from threading import RLock
from uuid import uuid4

from streamchat.server.records import StoredChat, StoredMessage, StoredUser


def utc_now() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds")


class ChatRepository:
    """SQLite persistence for users, chats and chat messages.

    Every write commits before returning, so a read issued after a write on the
    same chat always sees it.
    """

    def __init__(self, db_path: str):
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._lock = RLock()
        self._initialize_schema()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def _initialize_schema(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS chats (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                title TEXT NULL,
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS messages (
                id TEXT PRIMARY KEY,
                chat_id TEXT NOT NULL REFERENCES chats(id) ON DELETE CASCADE,
                seq INTEGER NOT NULL,
                role TEXT NOT NULL CHECK (role IN ('user', 'assistant', 'system', 'tool')),
                content TEXT NOT NULL,
                created_at TEXT NOT NULL,
                UNIQUE(chat_id, seq)
            );

            CREATE INDEX IF NOT EXISTS idx_chats_user_created
                ON chats(user_id, created_at);
            CREATE INDEX IF NOT EXISTS idx_messages_chat_seq
                ON messages(chat_id, seq);
            """
        )
        self._conn.commit()

    # -- users -----------------------------------------------------------------

    def add_user(self, name: str, user_id: str | None = None) -> StoredUser:
        uid = user_id or str(uuid4())
        with self._lock:
            self._conn.execute(
                "INSERT INTO users (id, name) VALUES (?, ?) ON CONFLICT(id) DO UPDATE SET name = excluded.name",
                (uid, name),
            )
            self._conn.commit()
        return StoredUser(id=uid, name=name)

    def list_users(self) -> list[StoredUser]:
        with self._lock:
            rows = self._conn.execute("SELECT id, name FROM users ORDER BY name ASC, id ASC").fetchall()
        return [StoredUser(id=row["id"], name=row["name"]) for row in rows]

    def user_exists(self, user_id: str) -> bool:
        with self._lock:
            row = self._conn.execute("SELECT 1 FROM users WHERE id = ? LIMIT 1", (user_id,)).fetchone()
        return row is not None

    # -- chats -----------------------------------------------------------------

    def create_chat(self, user_id: str) -> StoredChat:
        chat = StoredChat(id=str(uuid4()), user_id=user_id, title=None, created_at=utc_now())
        with self._lock:
            self._conn.execute(
                "INSERT INTO chats (id, user_id, title, created_at) VALUES (?, ?, NULL, ?)",
                (chat.id, chat.user_id, chat.created_at),
            )
            self._conn.commit()
        return chat

    def find_chat(self, chat_id: str, user_id: str) -> StoredChat | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM chats WHERE id = ? AND user_id = ? LIMIT 1",
                (chat_id, user_id),
            ).fetchone()
        return _chat(row) if row is not None else None

    def list_by_user(self, user_id: str) -> list[StoredChat]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM chats WHERE user_id = ? ORDER BY created_at DESC, rowid DESC",
                (user_id,),
            ).fetchall()
        return [_chat(row) for row in rows]

    def set_title(self, chat_id: str, title: str) -> None:
        with self._lock:
            cursor = self._conn.execute("UPDATE chats SET title = ? WHERE id = ?", (title, chat_id))
            self._conn.commit()
        if cursor.rowcount == 0:
            raise ValueError(f"Chat does not exist: {chat_id}")

    # -- messages --------------------------------------------------------------

    def append(
        self,
        chat_id: str,
        role: str,
        content: str,
        *,
        created_at: str | None = None,
    ) -> StoredMessage:
        with self._lock:
            row = self._conn.execute(
                "SELECT COALESCE(MAX(seq), 0) AS max_seq FROM messages WHERE chat_id = ?",
                (chat_id,),
            ).fetchone()
            message = StoredMessage(
                id=str(uuid4()),
                chat_id=chat_id,
                seq=int(row["max_seq"]) + 1,
                role=role,
                content=content,
                created_at=created_at or utc_now(),
            )
            self._conn.execute(
                """
                INSERT INTO messages (id, chat_id, seq, role, content, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (message.id, message.chat_id, message.seq, message.role, message.content, message.created_at),
            )
            self._conn.commit()
        return message

    def list_messages(self, chat_id: str, *, limit: int | None = None) -> list[StoredMessage]:
        """Return messages oldest first; ``limit`` keeps only the most recent ones."""
        with self._lock:
            if limit is not None and limit > 0:
                rows = self._conn.execute(
                    """
                    SELECT * FROM (
                        SELECT * FROM messages WHERE chat_id = ? ORDER BY seq DESC LIMIT ?
                    ) ORDER BY seq ASC
                    """,
                    (chat_id, limit),
                ).fetchall()
            else:
                rows = self._conn.execute(
                    "SELECT * FROM messages WHERE chat_id = ? ORDER BY seq ASC",
                    (chat_id,),
                ).fetchall()
        return [
            StoredMessage(
                id=row["id"],
                chat_id=row["chat_id"],
                seq=int(row["seq"]),
                role=row["role"],
                content=row["content"],
                created_at=row["created_at"],
            )
            for row in rows
        ]


def _chat(row: sqlite3.Row) -> StoredChat:
    return StoredChat(id=row["id"], user_id=row["user_id"], title=row["title"], created_at=row["created_at"])
