"""Message pipeline: one inbound turn → persisted exchange + rendered reply.

``MessagePipeline.process`` is the single failure boundary of the bot. It
never raises; every error is turned into a fixed, user-safe reply while the
underlying exception is kept in ``ProcessResult.error`` for logs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from wulang.conversation.models import AttachmentKind, Role
from wulang.errors import ExtractionError, UnsupportedMediaError, ValidationError
from wulang.llm.client import AttachmentDescriptor
from wulang.llm.context import assemble_context
from wulang.llm.prompt import DEFAULT_ANALYSIS_INSTRUCTION
from wulang.media.extractors import DEFAULT_MAX_SIZE_MB, extract
from wulang.whatsapp.formatter import format_error, format_for_whatsapp

if TYPE_CHECKING:
    from wulang.bot.pending import PendingAttachmentCache
    from wulang.conversation.manager import ConversationManager
    from wulang.llm.client import ClaudeBackend

logger = logging.getLogger(__name__)

GENERIC_FAILURE = (
    "Maaf, saya mengalami kesalahan saat memproses pesan Anda. Silakan coba lagi nanti."
)
MEDIA_FAILURE = (
    "Maaf, saya tidak bisa memproses file media Anda. "
    "Silakan coba lagi atau kirim dalam format yang berbeda."
)
NO_HISTORY_REPLY = "❓ Anda tidak memiliki riwayat percakapan untuk direset."
RESET_FAILED_REPLY = "❌ Gagal mereset percakapan. Silakan coba lagi."

# Indonesian nouns used in user-facing attachment texts.
KIND_LABELS = {
    AttachmentKind.IMAGE: "gambar",
    AttachmentKind.DOCUMENT: "dokumen",
}


def kind_label(kind: AttachmentKind) -> str:
    return KIND_LABELS.get(kind, "file")


def full_analysis_message(kind: AttachmentKind, analysis: str) -> str:
    """Composite reply for an attachment that arrived without a question."""
    label = kind_label(kind)
    return (
        f"📎 **Analisis Lengkap {label.upper()}**\n\n"
        f"{analysis}\n\n"
        "---\n\n"
        f"Apa yang ingin Anda ketahui lebih lanjut tentang {label} ini? "
        "Silakan tanyakan apa saja yang ingin Anda analisis atau ketahui lebih detail."
    )


@dataclass
class AttachmentPayload:
    data: bytes
    filename: str
    mime_type: str
    caption: str | None = None


@dataclass
class ProcessRequest:
    """One decoded inbound message.

    Attributes:
        sender_address: Channel address of the sender (required).
        text: Message text (required). Callers substitute a placeholder such
            as ``"[image]"`` for attachments without a caption.
        display_name: The sender's profile name, if the channel supplies one.
        has_attachment: Whether *attachment* should be processed.
        attachment_kind: Kind announced by the channel, informational.
        attachment: The attachment bytes and metadata.
    """

    sender_address: str
    text: str
    display_name: str | None = None
    has_attachment: bool = False
    attachment_kind: AttachmentKind | None = None
    attachment: AttachmentPayload | None = None


@dataclass
class ProcessResult:
    success: bool
    reply: str
    conversation_id: str
    attachment_id: str | None = None
    error: str | None = None


@dataclass
class ResetResult:
    success: bool
    reply: str
    error: str | None = None


@dataclass
class _Analysis:
    attachment_id: str
    kind: AttachmentKind
    text: str
    focused: bool


def _describe(exc: BaseException) -> str:
    return f"{type(exc).__name__}: {exc}"


class MessagePipeline:
    """Orchestrates user resolution, attachment analysis, context and reply."""

    def __init__(
        self,
        manager: ConversationManager,
        backend: ClaudeBackend,
        pending: PendingAttachmentCache,
        *,
        max_context_messages: int = 10,
        max_attachment_size_mb: int = DEFAULT_MAX_SIZE_MB,
    ) -> None:
        self._manager = manager
        self._backend = backend
        self._pending = pending
        self._max_context_messages = max_context_messages
        self._max_attachment_size_mb = max_attachment_size_mb

    async def process(self, request: ProcessRequest) -> ProcessResult:
        """Process one inbound turn. Never raises."""
        try:
            return await self._process(request)
        except Exception as exc:
            if isinstance(exc, ValidationError):
                logger.warning("Rejected message from %r: %s", request.sender_address, exc)
            else:
                logger.exception("Failed to process message from %s", request.sender_address)
            if isinstance(exc, (UnsupportedMediaError, ExtractionError)):
                reply = format_error(MEDIA_FAILURE)
            else:
                reply = format_error(GENERIC_FAILURE)
            return ProcessResult(
                success=False,
                reply=reply,
                conversation_id="",
                error=_describe(exc),
            )

    async def _process(self, request: ProcessRequest) -> ProcessResult:
        address = (request.sender_address or "").strip()
        if not address:
            raise ValidationError("Sender address is required", "sender_address")
        if not (request.text or "").strip():
            raise ValidationError("Message text is required", "text")
        if request.has_attachment and request.attachment is None:
            raise ValidationError("Attachment flagged but no payload supplied", "attachment")

        user = await self._manager.resolve_user(address, request.display_name)
        conversation = await self._manager.resolve_active_conversation(user.id)

        analysis: _Analysis | None = None
        if request.has_attachment and request.attachment is not None:
            payload = request.attachment
            analysis = await self._analyze(
                user.id,
                payload.data,
                payload.filename,
                payload.mime_type,
                (payload.caption or "").strip(),
            )
        else:
            pending = self._pending.get(address)
            if pending is not None:
                logger.info("Using pending attachment %s for %s", pending.filename, address)
                try:
                    analysis = await self._analyze(
                        user.id,
                        pending.data,
                        pending.filename,
                        pending.mime_type,
                        request.text.strip(),
                    )
                finally:
                    self._pending.remove(address)

        user_message = await self._manager.record_message(
            conversation.id,
            Role.USER,
            request.text,
            attachment_id=analysis.attachment_id if analysis else None,
        )

        if analysis is not None:
            if analysis.focused:
                reply = format_for_whatsapp(analysis.text)
            else:
                reply = format_for_whatsapp(full_analysis_message(analysis.kind, analysis.text))
        else:
            history = await self._manager.trailing_history(
                conversation.id,
                self._max_context_messages,
                exclude_id=user_message.id,
            )
            turns = assemble_context(
                history,
                request.text,
                user_name=user.name,
                user_address=user.address,
                max_messages=self._max_context_messages,
            )
            answer = await self._backend.generate(turns)
            reply = format_for_whatsapp(answer)

        await self._manager.record_message(conversation.id, Role.ASSISTANT, reply)

        return ProcessResult(
            success=True,
            reply=reply,
            conversation_id=conversation.id,
            attachment_id=analysis.attachment_id if analysis else None,
        )

    async def _analyze(
        self,
        user_id: str,
        data: bytes,
        filename: str,
        mime_type: str,
        caption: str,
    ) -> _Analysis:
        """Extract, persist and analyze one attachment.

        A non-empty *caption* makes the analysis focused on that question;
        otherwise a comprehensive description is requested.
        """
        extracted = await extract(
            data, filename, mime_type, max_size_mb=self._max_attachment_size_mb
        )
        kind = extracted.attachment_kind
        attachment = await self._manager.record_attachment(user_id, kind, filename)

        focused = bool(caption)
        descriptor = AttachmentDescriptor(
            kind=kind,
            filename=filename,
            mime_type=mime_type,
            data=data if kind == AttachmentKind.IMAGE else b"",
            text=extracted.text,
        )
        text = await self._backend.analyze_attachment(
            descriptor,
            caption if focused else DEFAULT_ANALYSIS_INSTRUCTION,
            focused=focused,
        )
        await self._manager.save_attachment_summary(attachment.id, text)
        return _Analysis(attachment_id=attachment.id, kind=kind, text=text, focused=focused)

    async def reset(self, sender_address: str) -> ResetResult:
        """Delete the sender's conversation history and any pending attachment."""
        try:
            address = (sender_address or "").strip()
            if not address:
                raise ValidationError("Sender address is required", "sender_address")

            self._pending.remove(address)
            if not await self._manager.reset(address):
                return ResetResult(
                    success=False,
                    reply=NO_HISTORY_REPLY,
                    error=f"User not found: {address}",
                )

            confirmation = await self._backend.reset_message()
            return ResetResult(success=True, reply=format_for_whatsapp(confirmation))
        except Exception as exc:
            logger.exception("Failed to reset conversation for %s", sender_address)
            return ResetResult(success=False, reply=RESET_FAILED_REPLY, error=_describe(exc))
