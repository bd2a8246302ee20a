"""Persisted conversation records: users, conversations, messages, attachments."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum

logger = logging.getLogger(__name__)


class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class AttachmentKind(StrEnum):
    IMAGE = "image"
    DOCUMENT = "document"


def parse_role(value: str) -> Role:
    """Parse a stored role label.

    Rows written by the legacy schema use uppercase labels (``"USER"``), so
    matching is case-insensitive. Any other label is a legacy migration shim:
    it is logged and read as ``Role.USER`` instead of failing the whole
    history fetch.
    """
    try:
        return Role(value.lower())
    except (ValueError, AttributeError):
        logger.warning("Unknown message role %r, reading it as 'user'", value)
        return Role.USER


def make_id() -> str:
    """Generate a new record ID."""
    return uuid.uuid4().hex


def utc_now() -> str:
    """Current UTC time as an ISO 8601 string (sortable as text)."""
    return datetime.now(UTC).isoformat(timespec="microseconds")


@dataclass
class User:
    """A chat participant keyed by channel address (phone number)."""

    id: str
    address: str
    name: str | None = None
    created_at: str = ""

    def __post_init__(self) -> None:
        if not self.created_at:
            self.created_at = utc_now()

    def to_row(self) -> tuple:
        return (self.id, self.address, self.name, self.created_at)

    @classmethod
    def from_row(cls, row: tuple) -> User:
        return cls(id=row[0], address=row[1], name=row[2], created_at=row[3])


@dataclass
class Conversation:
    """A user's conversation. ``updated_at`` advances on every message."""

    id: str
    user_id: str
    created_at: str = ""
    updated_at: str = ""

    def __post_init__(self) -> None:
        if not self.created_at:
            self.created_at = utc_now()
        if not self.updated_at:
            self.updated_at = self.created_at

    def to_row(self) -> tuple:
        return (self.id, self.user_id, self.created_at, self.updated_at)

    @classmethod
    def from_row(cls, row: tuple) -> Conversation:
        return cls(id=row[0], user_id=row[1], created_at=row[2], updated_at=row[3])


@dataclass
class Message:
    """One append-only conversation message.

    Attributes:
        id: Unique identifier (UUID hex).
        conversation_id: Owning conversation.
        role: Who wrote it.
        content: Text, may be None when only an attachment was sent.
        attachment_id: Optional reference to an :class:`Attachment`.
        created_at: ISO 8601 timestamp.
    """

    id: str
    conversation_id: str
    role: Role
    content: str | None = None
    attachment_id: str | None = None
    created_at: str = ""

    def __post_init__(self) -> None:
        if not self.created_at:
            self.created_at = utc_now()

    def to_row(self) -> tuple:
        return (
            self.id,
            self.conversation_id,
            str(self.role),
            self.content,
            self.attachment_id,
            self.created_at,
        )

    @classmethod
    def from_row(cls, row: tuple) -> Message:
        return cls(
            id=row[0],
            conversation_id=row[1],
            role=parse_role(row[2]),
            content=row[3],
            attachment_id=row[4],
            created_at=row[5],
        )


@dataclass
class Attachment:
    """A user-supplied image or document and its analysis summary."""

    id: str
    user_id: str
    kind: AttachmentKind
    locator: str
    summary: str | None = None
    created_at: str = ""

    def __post_init__(self) -> None:
        if not self.created_at:
            self.created_at = utc_now()

    def to_row(self) -> tuple:
        return (
            self.id,
            self.user_id,
            str(self.kind),
            self.locator,
            self.summary,
            self.created_at,
        )

    @classmethod
    def from_row(cls, row: tuple) -> Attachment:
        return cls(
            id=row[0],
            user_id=row[1],
            kind=AttachmentKind(row[2]),
            locator=row[3],
            summary=row[4],
            created_at=row[5],
        )


@dataclass
class HistoryEntry:
    """A message joined with its attachment, as used for context building."""

    id: str
    role: Role
    content: str | None
    created_at: str
    attachment_kind: AttachmentKind | None = None
    attachment_summary: str | None = None

    @classmethod
    def from_row(cls, row: tuple) -> HistoryEntry:
        """Deserialize ``(id, role, content, created_at, kind, summary)``."""
        return cls(
            id=row[0],
            role=parse_role(row[1]),
            content=row[2],
            created_at=row[3],
            attachment_kind=AttachmentKind(row[4]) if row[4] else None,
            attachment_summary=row[5],
        )
