"""Conversation state facade: resolves users and their single active conversation."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from wulang.conversation.models import (
        Attachment,
        AttachmentKind,
        Conversation,
        HistoryEntry,
        Message,
        Role,
        User,
    )
    from wulang.conversation.store import ConversationStore

logger = logging.getLogger(__name__)


class ConversationManager:
    """Resolve-or-create logic on top of :class:`ConversationStore`."""

    def __init__(self, store: ConversationStore) -> None:
        self._store = store

    @property
    def store(self) -> ConversationStore:
        return self._store

    async def resolve_user(self, address: str, name: str | None = None) -> User:
        """Find the user for *address*, creating it on first contact.

        A known user with no stored name gets *name* back-filled; a stored
        name is never overwritten.
        """
        user = await self._store.find_user_by_address(address)
        if user is None:
            user = await self._store.create_user(address, name)
            logger.info("New user: %s (%s)", user.name or "Unknown", address)
            return user

        if name and not user.name:
            user = await self._store.update_user_name(user.id, name)
            logger.info("Back-filled user name: %s (%s)", user.name, address)
        return user

    async def resolve_active_conversation(self, user_id: str) -> Conversation:
        conversation = await self._store.find_active_conversation(user_id)
        if conversation is None:
            conversation = await self._store.create_conversation(user_id)
        else:
            logger.debug("Using conversation %s for user %s", conversation.id, user_id)
        return conversation

    async def record_message(
        self,
        conversation_id: str,
        role: Role,
        content: str | None,
        attachment_id: str | None = None,
    ) -> Message:
        return await self._store.append_message(
            conversation_id, role, content=content, attachment_id=attachment_id
        )

    async def record_attachment(
        self, user_id: str, kind: AttachmentKind, locator: str
    ) -> Attachment:
        return await self._store.create_attachment(user_id, kind, locator)

    async def save_attachment_summary(self, attachment_id: str, summary: str) -> None:
        await self._store.update_attachment_summary(attachment_id, summary)
        logger.debug("Saved summary for attachment %s", attachment_id)

    async def trailing_history(
        self,
        conversation_id: str,
        limit: int,
        exclude_id: str | None = None,
    ) -> list[HistoryEntry]:
        """The *limit* most recent entries, oldest first.

        *exclude_id* drops one message (the turn currently being answered)
        without shrinking the window.
        """
        fetch = limit + 1 if exclude_id else limit
        entries = await self._store.find_trailing_messages(conversation_id, fetch)
        if exclude_id:
            entries = [e for e in entries if e.id != exclude_id]
        entries = entries[-limit:]
        logger.info("Loaded %d history message(s) for %s", len(entries), conversation_id)
        return entries

    async def reset(self, address: str) -> bool:
        """Delete every conversation of the user at *address*.

        Returns False when the address has never been seen.
        """
        user = await self._store.find_user_by_address(address)
        if user is None:
            return False
        deleted = await self._store.delete_conversations_by_user(user.id)
        logger.info("Reset %d conversation(s) for %s", deleted, address)
        return True
