"""Conversation state: records, persistence and the resolve-or-create facade."""

from wulang.conversation.manager import ConversationManager
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

__all__ = [
    "Attachment",
    "AttachmentKind",
    "Conversation",
    "ConversationManager",
    "ConversationStore",
    "HistoryEntry",
    "Message",
    "Role",
    "User",
]
