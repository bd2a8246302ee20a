"""Context assembly: trailing history + current input → ordered model turns."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from wulang.conversation.models import AttachmentKind, Role
from wulang.llm.prompt import build_system_prompt

if TYPE_CHECKING:
    from collections.abc import Sequence

    from wulang.conversation.models import HistoryEntry

logger = logging.getLogger(__name__)

DEFAULT_MAX_MESSAGES = 10


@dataclass(frozen=True)
class TextSegment:
    text: str


@dataclass(frozen=True)
class ImageSegment:
    data: bytes
    media_type: str


Segment = TextSegment | ImageSegment


@dataclass
class Turn:
    """One role-tagged unit of model input."""

    role: Role
    segments: list[Segment] = field(default_factory=list)

    @classmethod
    def text(cls, role: Role, text: str) -> Turn:
        return cls(role=role, segments=[TextSegment(text)])

    @property
    def plain_text(self) -> str:
        """Concatenated text segments (images omitted)."""
        return "".join(s.text for s in self.segments if isinstance(s, TextSegment))


@dataclass
class AttachmentContent:
    """An attachment sent along with the current turn."""

    kind: AttachmentKind
    filename: str
    data: bytes
    media_type: str


def media_context_block(kind: AttachmentKind, summary: str, content: str) -> str:
    """Embed a stored attachment analysis ahead of the message that referenced it."""
    return (
        f"[MEDIA CONTEXT - {kind.upper()}]\n\n"
        f"**Complete Media Analysis:**\n{summary}\n\n"
        f"**Original User Message:** {content}"
    )


def _history_turn(entry: HistoryEntry) -> Turn:
    content = entry.content or ""
    if entry.attachment_summary and entry.attachment_kind:
        content = media_context_block(entry.attachment_kind, entry.attachment_summary, content)
    return Turn.text(entry.role, content)


def _current_turn(text: str, attachments: Sequence[AttachmentContent]) -> Turn:
    images = [a for a in attachments if a.kind == AttachmentKind.IMAGE]
    others = [a for a in attachments if a.kind != AttachmentKind.IMAGE]

    if others:
        listing = ", ".join(f"{a.kind.upper()}: {a.filename or 'unnamed file'}" for a in others)
        text = f"{text}\n\n[Media attached: {listing}]"

    segments: list[Segment] = []
    if text.strip() or not images:
        segments.append(TextSegment(text))
    segments.extend(ImageSegment(a.data, a.media_type) for a in images)
    return Turn(role=Role.USER, segments=segments)


def assemble_context(
    history: Sequence[HistoryEntry],
    current_text: str,
    *,
    user_name: str | None = None,
    user_address: str | None = None,
    attachments: Sequence[AttachmentContent] | None = None,
    max_messages: int = DEFAULT_MAX_MESSAGES,
) -> list[Turn]:
    """Build the ordered turns handed to the generative backend.

    The result always starts with exactly one system turn (persona plus the
    addressee), followed by the non-empty history entries in order and
    finally the current user input.

    Args:
        history: Trailing messages, oldest first.
        current_text: Text of the turn being answered.
        user_name: Display name interpolated into the persona prompt.
        user_address: Channel address interpolated into the persona prompt.
        attachments: Attachments sent with the current turn. Images become
            image segments; anything else is listed in the text.
        max_messages: Hard cut applied to *history* before assembly.

    Returns:
        List of :class:`Turn`.
    """
    window = list(history)[-max_messages:] if max_messages > 0 else []

    turns = [
        Turn.text(
            Role.SYSTEM,
            build_system_prompt(user_name, user_address, history_count=len(window)),
        )
    ]

    skipped = 0
    for entry in window:
        if not entry.content:
            skipped += 1
            continue
        turns.append(_history_turn(entry))

    turns.append(_current_turn(current_text, attachments or ()))

    logger.info(
        "Assembled %d turn(s) from %d history message(s) (%d skipped)",
        len(turns),
        len(window),
        skipped,
    )
    return turns
