"""Inbound message handling: dedupe, commands, gating, deferral, then the pipeline."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from wulang.bot.pending import PendingAttachment
from wulang.bot.pipeline import (
    GENERIC_FAILURE,
    MEDIA_FAILURE,
    AttachmentPayload,
    ProcessRequest,
    kind_label,
)
from wulang.config import settings
from wulang.media.extractors import attachment_kind_for, classify_media
from wulang.whatsapp.formatter import format_error, format_welcome

if TYPE_CHECKING:
    from wulang.bot.pending import PendingAttachmentCache
    from wulang.bot.pipeline import MessagePipeline
    from wulang.llm.client import ClaudeBackend

logger = logging.getLogger(__name__)

KEYWORD_HINT = (
    "Halo! Ada yang bisa saya bantu? "
    'tolong panggil saya dengan menyebut "{keyword}" dalam pesan'
)
MODERATION_REFUSAL = (
    "⚠️ Maaf, pesan Anda tidak dapat diproses karena tidak sesuai dengan konteks akademik."
)

# Persona command that greets new community members.
WELCOME_COMMAND = "say hello"

# Dedupe memory: once more than MAX_SEEN_IDS ids are tracked, keep the newest KEEP_SEEN_IDS.
MAX_SEEN_IDS = 1000
KEEP_SEEN_IDS = 500


def pending_ack(label: str) -> str:
    return (
        f"📎 Saya telah menerima {label} yang Anda kirim.\n\n"
        f"Apa yang ingin Anda ketahui tentang {label} ini? "
        "Silakan tanyakan apa saja yang ingin Anda analisis atau ketahui."
    )


@dataclass
class InboundMedia:
    data: bytes
    mime_type: str
    filename: str


@dataclass
class InboundMessage:
    """A decoded message as delivered by the transport.

    ``media_error`` is set when the transport saw an attachment but could
    not download it.
    """

    message_id: str
    sender: str
    text: str = ""
    display_name: str | None = None
    media: InboundMedia | None = None
    media_error: str | None = None


class MessageHandler:
    """Routes inbound messages to reset, moderation, deferral or the pipeline.

    Turns from one sender are serialized so resolve-or-create and the pending
    cache never race for the same address.
    """

    def __init__(
        self,
        pipeline: MessagePipeline,
        pending: PendingAttachmentCache,
        backend: ClaudeBackend,
        *,
        trigger_keyword: str | None = None,
        reset_keyword: str | None = None,
        moderation_enabled: bool | None = None,
        defer_uncaptioned: bool | None = None,
    ) -> None:
        self._pipeline = pipeline
        self._pending = pending
        self._backend = backend
        self._trigger_keyword = (
            settings.trigger_keyword if trigger_keyword is None else trigger_keyword
        ).strip().lower()
        self._reset_keyword = (
            settings.reset_keyword if reset_keyword is None else reset_keyword
        ).strip().lower()
        self._moderation_enabled = (
            settings.moderation_enabled if moderation_enabled is None else moderation_enabled
        )
        self._defer_uncaptioned = (
            settings.defer_uncaptioned_attachments
            if defer_uncaptioned is None
            else defer_uncaptioned
        )
        self._seen: dict[str, None] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    # -- Helpers ---------------------------------------------------------------

    def _is_duplicate(self, message_id: str) -> bool:
        if not message_id:
            return False
        if message_id in self._seen:
            return True
        self._seen[message_id] = None
        if len(self._seen) > MAX_SEEN_IDS:
            self._seen = dict.fromkeys(list(self._seen)[-KEEP_SEEN_IDS:])
        return False

    def _lock_for(self, sender: str) -> asyncio.Lock:
        lock = self._locks.get(sender)
        if lock is None:
            lock = self._locks[sender] = asyncio.Lock()
        self._lock_users[sender] = self._lock_users.get(sender, 0) + 1
        return lock

    def _release_lock(self, sender: str) -> None:
        """Forget the sender's lock once no turn holds or awaits it."""
        users = self._lock_users.get(sender, 0) - 1
        if users > 0:
            self._lock_users[sender] = users
            return
        self._lock_users.pop(sender, None)
        self._locks.pop(sender, None)

    def is_reset_command(self, text: str) -> bool:
        if not self._reset_keyword:
            return False
        return text.strip().lower().startswith(self._reset_keyword)

    def is_welcome_command(self, text: str) -> bool:
        return self.has_trigger_keyword(text) and WELCOME_COMMAND in text.lower()

    def has_trigger_keyword(self, text: str) -> bool:
        if not self._trigger_keyword:
            return True
        return self._trigger_keyword in text.lower()

    # -- Entry point -----------------------------------------------------------

    async def handle(self, message: InboundMessage) -> str | None:
        """Handle one inbound message and return the reply to send, if any."""
        if self._is_duplicate(message.message_id):
            logger.debug("Skipping duplicate message %s", message.message_id)
            return None

        lock = self._lock_for(message.sender)
        try:
            async with lock:
                try:
                    return await self._handle(message)
                except Exception:
                    logger.exception("Error handling message %s", message.message_id)
                    return format_error(GENERIC_FAILURE)
        finally:
            self._release_lock(message.sender)

    async def _handle(self, message: InboundMessage) -> str | None:
        sender = message.sender
        text = (message.text or "").strip()

        if message.media_error:
            logger.warning("Media download failed for %s: %s", sender, message.media_error)
            return format_error(MEDIA_FAILURE)

        if message.media is None and not text:
            logger.debug("Ignoring empty message from %s", sender)
            return None

        if message.media is None and self.is_reset_command(text):
            result = await self._pipeline.reset(sender)
            return result.reply

        if self._moderation_enabled and text:
            verdict = await self._backend.moderate(text)
            if not verdict.appropriate:
                return MODERATION_REFUSAL

        if message.media is None:
            if sender not in self._pending and not self.has_trigger_keyword(text):
                logger.debug("No trigger keyword from %s", sender)
                return format_welcome(KEYWORD_HINT.format(keyword=self._trigger_keyword))
            if self.is_welcome_command(text):
                greeting = await self._backend.welcome_message(message.display_name)
                return format_welcome(greeting)
            result = await self._pipeline.process(
                ProcessRequest(
                    sender_address=sender,
                    text=text,
                    display_name=message.display_name,
                )
            )
            return result.reply

        return await self._handle_media(message, text)

    async def _handle_media(self, message: InboundMessage, caption: str) -> str:
        media = message.media
        media_kind = classify_media(media.mime_type)
        kind = attachment_kind_for(media_kind)

        if not caption and self._defer_uncaptioned and media_kind != "unsupported":
            self._pending.put(
                message.sender,
                PendingAttachment(
                    data=media.data,
                    filename=media.filename,
                    mime_type=media.mime_type,
                ),
            )
            logger.info("Deferred %s %s from %s", kind, media.filename, message.sender)
            return pending_ack(kind_label(kind))

        result = await self._pipeline.process(
            ProcessRequest(
                sender_address=message.sender,
                text=caption or f"[{kind}]",
                display_name=message.display_name,
                has_attachment=True,
                attachment_kind=kind,
                attachment=AttachmentPayload(
                    data=media.data,
                    filename=media.filename,
                    mime_type=media.mime_type,
                    caption=caption or None,
                ),
            )
        )
        return result.reply
