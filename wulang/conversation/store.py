"""ConversationStore: libsql CRUD for users, conversations, messages and attachments."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from wulang.conversation.models import (
    Attachment,
    AttachmentKind,
    Conversation,
    HistoryEntry,
    Message,
    Role,
    User,
    make_id,
)
from wulang.db import get_connection
from wulang.errors import BotError, StorageError, ValidationError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

    from wulang.db import Connection

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id         TEXT PRIMARY KEY,
        address    TEXT NOT NULL UNIQUE,
        name       TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS conversations (
        id         TEXT PRIMARY KEY,
        user_id    TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS attachments (
        id         TEXT PRIMARY KEY,
        user_id    TEXT NOT NULL,
        kind       TEXT NOT NULL,
        locator    TEXT NOT NULL,
        summary    TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS messages (
        id              TEXT PRIMARY KEY,
        conversation_id TEXT NOT NULL,
        role            TEXT NOT NULL,
        content         TEXT,
        attachment_id   TEXT,
        created_at      TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_conversations_user ON conversations (user_id, updated_at)",
    """
    CREATE INDEX IF NOT EXISTS idx_messages_conversation
        ON messages (conversation_id, created_at)
    """,
)

# Deterministic order: creation time, then insertion order.
_TRAILING_SQL = """
SELECT m.id, m.role, m.content, m.created_at, a.kind, a.summary
FROM messages m
LEFT JOIN attachments a ON a.id = m.attachment_id
WHERE m.conversation_id = ?
ORDER BY m.created_at DESC, m.rowid DESC
LIMIT ?
"""


class ConversationStore:
    """Persists conversational state in SQLite / Turso.

    Singleton accessed via ``ConversationStore.get()``.  Pass an explicit
    *db_path* for test isolation (e.g. ``tmp_path / "test.db"``).  Every
    driver failure surfaces as :class:`StorageError`.
    """

    _instance: ConversationStore | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path
        self._initialised = False

    @classmethod
    def get(cls) -> ConversationStore:
        """Return the shared ConversationStore instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    # -- Internal helpers ------------------------------------------------------

    async def _connect(self) -> Connection:
        db = await get_connection(self._db_path)
        if not self._initialised:
            await db.execute_all(_SCHEMA)
            self._initialised = True
        return db

    @asynccontextmanager
    async def _session(self, action: str) -> AsyncIterator:
        """Open a connection for one operation, wrapping driver errors."""
        try:
            db = await self._connect()
        except Exception as exc:
            raise StorageError(f"Failed to {action}: {exc}") from exc
        try:
            async with db:
                yield db
        except BotError:
            raise
        except Exception as exc:
            raise StorageError(f"Failed to {action}: {exc}") from exc

    # -- Users -----------------------------------------------------------------

    async def find_user_by_address(self, address: str) -> User | None:
        async with self._session("find user by address") as db:
            cursor = await db.execute(
                "SELECT id, address, name, created_at FROM users WHERE address = ?",
                (address,),
            )
            row = await cursor.fetchone()
            return User.from_row(row) if row else None

    async def create_user(self, address: str, name: str | None = None) -> User:
        user = User(id=make_id(), address=address, name=name or None)
        async with self._session("create user") as db:
            await db.execute(
                "INSERT INTO users (id, address, name, created_at) VALUES (?, ?, ?, ?)",
                user.to_row(),
            )
            await db.commit()
        logger.info("Created user %s (%s)", user.id, address)
        return user

    async def update_user_name(self, user_id: str, name: str) -> User:
        """Set a user's display name. Returns the updated user."""
        async with self._session("update user name") as db:
            await db.execute("UPDATE users SET name = ? WHERE id = ?", (name, user_id))
            await db.commit()
            cursor = await db.execute(
                "SELECT id, address, name, created_at FROM users WHERE id = ?", (user_id,)
            )
            row = await cursor.fetchone()
        if row is None:
            raise StorageError(f"User not found: {user_id}")
        return User.from_row(row)

    # -- Conversations ---------------------------------------------------------

    async def find_active_conversation(self, user_id: str) -> Conversation | None:
        """Most recently updated conversation, newest insertion on ties."""
        async with self._session("find active conversation") as db:
            cursor = await db.execute(
                """
                SELECT id, user_id, created_at, updated_at FROM conversations
                WHERE user_id = ?
                ORDER BY updated_at DESC, rowid DESC
                LIMIT 1
                """,
                (user_id,),
            )
            row = await cursor.fetchone()
            return Conversation.from_row(row) if row else None

    async def create_conversation(self, user_id: str) -> Conversation:
        """Create the user's conversation unless one already exists.

        A user has at most one active conversation, so when one is already
        stored it is returned unchanged.
        """
        conversation = Conversation(id=make_id(), user_id=user_id)
        async with self._session("create conversation") as db:
            cursor = await db.execute(
                """
                INSERT INTO conversations (id, user_id, created_at, updated_at)
                SELECT ?, ?, ?, ?
                WHERE NOT EXISTS (SELECT 1 FROM conversations WHERE user_id = ?)
                """,
                (*conversation.to_row(), user_id),
            )
            await db.commit()
            created = cursor.rowcount > 0
        if created:
            logger.info("Created conversation %s for user %s", conversation.id, user_id)
            return conversation

        existing = await self.find_active_conversation(user_id)
        if existing is None:
            raise StorageError(f"Conversation for user {user_id} vanished during creation")
        return existing

    async def delete_conversations_by_user(self, user_id: str) -> int:
        """Delete every conversation (and its messages) of a user. Returns the count."""
        async with self._session("delete conversations by user") as db:
            await db.execute(
                """
                DELETE FROM messages WHERE conversation_id IN
                    (SELECT id FROM conversations WHERE user_id = ?)
                """,
                (user_id,),
            )
            cursor = await db.execute("DELETE FROM conversations WHERE user_id = ?", (user_id,))
            await db.commit()
            deleted = cursor.rowcount
        logger.info("Deleted %d conversation(s) for user %s", deleted, user_id)
        return deleted

    async def delete_conversations_older_than(
        self, days: int, now: datetime | None = None
    ) -> int:
        """Retention sweep: drop conversations idle for more than *days*."""
        cutoff = ((now or datetime.now(UTC)) - timedelta(days=days)).isoformat(
            timespec="microseconds"
        )
        async with self._session("delete old conversations") as db:
            await db.execute(
                """
                DELETE FROM messages WHERE conversation_id IN
                    (SELECT id FROM conversations WHERE updated_at < ?)
                """,
                (cutoff,),
            )
            cursor = await db.execute("DELETE FROM conversations WHERE updated_at < ?", (cutoff,))
            await db.commit()
            return cursor.rowcount

    # -- Messages --------------------------------------------------------------

    async def append_message(
        self,
        conversation_id: str,
        role: Role,
        content: str | None = None,
        attachment_id: str | None = None,
    ) -> Message:
        """Append a message and bump the conversation's ``updated_at``."""
        if not content and not attachment_id:
            raise ValidationError("A message needs text content or an attachment", "content")

        message = Message(
            id=make_id(),
            conversation_id=conversation_id,
            role=role,
            content=content or None,
            attachment_id=attachment_id,
        )
        async with self._session("append message") as db:
            cursor = await db.execute(
                "UPDATE conversations SET updated_at = ? WHERE id = ?",
                (message.created_at, conversation_id),
            )
            if cursor.rowcount == 0:
                raise StorageError(f"Conversation not found: {conversation_id}")
            await db.execute(
                """
                INSERT INTO messages
                    (id, conversation_id, role, content, attachment_id, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                message.to_row(),
            )
            await db.commit()
        logger.debug("Stored %s message %s in %s", role, message.id, conversation_id)
        return message

    async def find_trailing_messages(self, conversation_id: str, limit: int) -> list[HistoryEntry]:
        """Return the *limit* most recent messages, oldest first, with attachment info."""
        async with self._session("fetch trailing messages") as db:
            cursor = await db.execute(_TRAILING_SQL, (conversation_id, limit))
            rows = await cursor.fetchall()
        return [HistoryEntry.from_row(row) for row in reversed(rows)]

    async def count_messages(self, conversation_id: str) -> int:
        async with self._session("count messages") as db:
            cursor = await db.execute(
                "SELECT COUNT(*) FROM messages WHERE conversation_id = ?", (conversation_id,)
            )
            row = await cursor.fetchone()
            return row[0] if row else 0

    # -- Attachments -----------------------------------------------------------

    async def create_attachment(
        self, user_id: str, kind: AttachmentKind, locator: str
    ) -> Attachment:
        attachment = Attachment(id=make_id(), user_id=user_id, kind=kind, locator=locator)
        async with self._session("create attachment") as db:
            await db.execute(
                """
                INSERT INTO attachments (id, user_id, kind, locator, summary, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                attachment.to_row(),
            )
            await db.commit()
        logger.info("Stored %s attachment %s (%s)", kind, attachment.id, locator)
        return attachment

    async def update_attachment_summary(self, attachment_id: str, summary: str) -> None:
        async with self._session("update attachment summary") as db:
            cursor = await db.execute(
                "UPDATE attachments SET summary = ? WHERE id = ?", (summary, attachment_id)
            )
            await db.commit()
            if cursor.rowcount == 0:
                raise StorageError(f"Attachment not found: {attachment_id}")

    async def find_attachment_by_id(self, attachment_id: str) -> Attachment | None:
        async with self._session("find attachment") as db:
            cursor = await db.execute(
                """
                SELECT id, user_id, kind, locator, summary, created_at
                FROM attachments WHERE id = ?
                """,
                (attachment_id,),
            )
            row = await cursor.fetchone()
            return Attachment.from_row(row) if row else None
