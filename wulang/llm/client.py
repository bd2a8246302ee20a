"""Async Claude backend: free-form generation, attachment analysis, moderation."""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import anthropic

from wulang.config import settings
from wulang.conversation.models import AttachmentKind, Role
from wulang.errors import BackendError
from wulang.llm.context import ImageSegment, TextSegment
from wulang.llm.prompt import (
    DEFAULT_ANALYSIS_INSTRUCTION,
    DOCUMENT_SUMMARY_TASK,
    IMAGE_SUMMARY_TASK,
    MODERATION_TASK,
    RESET_REQUEST,
    WELCOME_REQUEST,
    build_system_prompt,
    build_task_prompt,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from wulang.llm.context import Segment, Turn

logger = logging.getLogger(__name__)

RESET_FALLBACK = (
    "✅ Riwayat percakapan telah direset. Mari mulai sesi baru untuk membantu Anda dengan "
    "penulisan karya ilmiah!"
)
WELCOME_FALLBACK = (
    "Selamat datang di Kelas Inovatif! Saya Wulang, asisten virtual yang siap membantu Anda "
    "dalam penulisan karya ilmiah."
)
EMPTY_IMAGE_ANALYSIS = "Maaf, saya tidak bisa menganalisis gambar ini."
EMPTY_DOCUMENT_ANALYSIS = "Maaf, saya tidak bisa menganalisis PDF ini."


@dataclass
class AttachmentDescriptor:
    """What the backend needs to analyze one attachment.

    Images are sent as raw bytes; documents are sent as their extracted text.
    """

    kind: AttachmentKind
    filename: str
    mime_type: str
    data: bytes = b""
    text: str = ""


@dataclass
class ModerationResult:
    appropriate: bool
    raw: str = ""


def is_approved(answer: str, *, exact: bool = False) -> bool:
    """Interpret a moderation answer.

    Literal mode approves anything containing "appropriate", which includes
    "INAPPROPRIATE". Exact mode approves only a bare ``APPROPRIATE``.
    """
    if exact:
        return answer.strip().upper() == "APPROPRIATE"
    return "appropriate" in answer.lower()


def _image_block(data: bytes, media_type: str) -> dict[str, Any]:
    return {
        "type": "image",
        "source": {
            "type": "base64",
            "media_type": media_type,
            "data": base64.b64encode(data).decode(),
        },
    }


def _segment_block(segment: Segment) -> dict[str, Any]:
    if isinstance(segment, ImageSegment):
        return _image_block(segment.data, segment.media_type)
    return {"type": "text", "text": segment.text}


def _as_blocks(content: str | list[dict[str, Any]]) -> list[dict[str, Any]]:
    if isinstance(content, str):
        return [{"type": "text", "text": content}]
    return content


def turns_to_request(turns: Sequence[Turn]) -> tuple[str, list[dict[str, Any]]]:
    """Split turns into the ``system`` string and API messages.

    System turns are folded into the system prompt. Consecutive turns with
    the same role are merged into one message, and assistant turns ahead of
    the first user turn are dropped so the request opens with the user.
    """
    system_parts: list[str] = []
    messages: list[dict[str, Any]] = []

    for turn in turns:
        if turn.role == Role.SYSTEM:
            system_parts.append(turn.plain_text)
            continue

        if all(isinstance(s, TextSegment) for s in turn.segments):
            content: str | list[dict[str, Any]] = turn.plain_text
        else:
            content = [_segment_block(s) for s in turn.segments]

        if messages and messages[-1]["role"] == str(turn.role):
            previous = messages[-1]["content"]
            if isinstance(previous, str) and isinstance(content, str):
                messages[-1]["content"] = f"{previous}\n\n{content}"
            else:
                messages[-1]["content"] = _as_blocks(previous) + _as_blocks(content)
            continue

        messages.append({"role": str(turn.role), "content": content})

    dropped = 0
    while messages and messages[0]["role"] == str(Role.ASSISTANT):
        messages.pop(0)
        dropped += 1
    if dropped:
        logger.debug("Dropped %d leading assistant message(s)", dropped)

    return "\n\n".join(p for p in system_parts if p), messages


class ClaudeBackend:
    """Generative backend over ``anthropic.AsyncAnthropic``.

    The SDK client is created lazily on first use. Every SDK failure is
    raised as :class:`BackendError` with the cause chained.
    """

    def __init__(
        self,
        client: anthropic.AsyncAnthropic | None = None,
        *,
        model: str | None = None,
        exact_moderation: bool | None = None,
    ) -> None:
        self._client = client
        self._model = model or settings.claude_model
        self._exact_moderation = (
            settings.moderation_exact_match if exact_moderation is None else exact_moderation
        )

    def _get_client(self) -> anthropic.AsyncAnthropic:
        """Lazily initialize the Anthropic client."""
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)
        return self._client

    async def _complete(
        self,
        system: str,
        messages: list[dict[str, Any]],
        *,
        temperature: float,
    ) -> str:
        client = self._get_client()
        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": settings.max_tokens,
            "messages": messages,
            "temperature": temperature,
        }
        if system:
            kwargs["system"] = system
        try:
            response = await client.messages.create(**kwargs)
        except Exception as exc:
            raise BackendError(f"Claude request failed: {exc}") from exc

        return "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        ).strip()

    async def generate(self, turns: Sequence[Turn]) -> str:
        """Generate a free-form answer for assembled context turns."""
        system, messages = turns_to_request(turns)
        logger.info("Generating reply from %d message(s)", len(messages))
        text = await self._complete(system, messages, temperature=settings.chat_temperature)
        if not text:
            raise BackendError("Claude returned an empty response")
        return text

    async def analyze_attachment(
        self,
        descriptor: AttachmentDescriptor,
        instruction: str = DEFAULT_ANALYSIS_INSTRUCTION,
        *,
        focused: bool,
    ) -> str:
        """Analyze an image or document.

        Args:
            descriptor: The attachment to analyze.
            instruction: The user's caption (focused) or the default
                comprehensive-description prompt (unfocused).
            focused: True when *instruction* is a user question. Unfocused
                analysis asks for a complete summary suitable for storage.

        Returns:
            The raw analysis text (Markdown).
        """
        is_image = descriptor.kind == AttachmentKind.IMAGE

        if focused:
            system = build_system_prompt()
        else:
            system = build_task_prompt(IMAGE_SUMMARY_TASK if is_image else DOCUMENT_SUMMARY_TASK)

        if is_image:
            if focused:
                prompt = (
                    f"Pertanyaan: {instruction}\n\n"
                    "Silakan analisis gambar ini berdasarkan pertanyaan di atas."
                )
            else:
                prompt = instruction
            content: str | list[dict[str, Any]] = [
                {"type": "text", "text": prompt},
                _image_block(descriptor.data, descriptor.mime_type),
            ]
        elif focused:
            content = (
                f'Analisis konten PDF ini berdasarkan pertanyaan pengguna: "{instruction}". '
                f"Berikan jawaban detail dalam bahasa Indonesia. Konten PDF: {descriptor.text}"
            )
        else:
            content = f"{instruction}\n\nKonten PDF: {descriptor.text}"

        logger.info(
            "Analyzing %s %s (%s)",
            descriptor.kind,
            descriptor.filename,
            "focused" if focused else "unfocused",
        )
        text = await self._complete(
            system,
            [{"role": "user", "content": content}],
            temperature=settings.analysis_temperature,
        )
        if not text:
            return EMPTY_IMAGE_ANALYSIS if is_image else EMPTY_DOCUMENT_ANALYSIS
        return text

    async def moderate(self, text: str) -> ModerationResult:
        """Classify *text* for academic appropriateness. Fails open."""
        try:
            answer = await self._complete(
                build_task_prompt(MODERATION_TASK),
                [{"role": "user", "content": f"Analisis konten ini: {text}"}],
                temperature=0.0,
            )
        except BackendError:
            logger.exception("Moderation failed, allowing content")
            return ModerationResult(appropriate=True)

        appropriate = is_approved(answer, exact=self._exact_moderation)
        if not appropriate:
            logger.info("Moderation rejected content (answer=%r)", answer)
        return ModerationResult(appropriate=appropriate, raw=answer)

    async def reset_message(self) -> str:
        """A short confirmation that the conversation was reset."""
        try:
            text = await self._complete(
                build_system_prompt(),
                [{"role": "user", "content": RESET_REQUEST}],
                temperature=settings.chat_temperature,
            )
        except BackendError:
            logger.exception("Reset message generation failed")
            return RESET_FALLBACK
        return text or RESET_FALLBACK

    async def welcome_message(self, name: str | None = None) -> str:
        """A greeting for a new community member."""
        request = WELCOME_REQUEST.format(
            for_name=f" untuk {name}" if name else "",
            bot_name=settings.bot_name,
        )
        try:
            text = await self._complete(
                build_system_prompt(name),
                [{"role": "user", "content": request}],
                temperature=settings.chat_temperature,
            )
        except BackendError:
            logger.exception("Welcome message generation failed")
            return WELCOME_FALLBACK
        return text or WELCOME_FALLBACK
