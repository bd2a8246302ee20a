"""Tests for context assembly."""

from wulang.conversation.models import AttachmentKind, HistoryEntry, Role
from wulang.llm.context import (
    AttachmentContent,
    ImageSegment,
    TextSegment,
    assemble_context,
)


def _entry(i: int, role: Role = Role.USER, content: str | None = None, **kwargs) -> HistoryEntry:
    return HistoryEntry(
        id=f"m{i}",
        role=role,
        content=f"message {i}" if content is None else content,
        created_at=f"2025-01-01T00:00:{i:02d}",
        **kwargs,
    )


def test_first_turn_only_system_and_current() -> None:
    turns = assemble_context([], "Wulang, help me", user_name="Sari", user_address="628111")

    assert len(turns) == 2
    assert turns[0].role is Role.SYSTEM
    assert "Sari (628111)" in turns[0].plain_text
    assert "0 pesan sebelumnya" in turns[0].plain_text
    assert turns[1].role is Role.USER
    assert turns[1].segments == [TextSegment("Wulang, help me")]


def test_stored_system_entries_follow_leading_system_turn() -> None:
    history = [_entry(0, Role.SYSTEM, "legacy system note"), _entry(1)]
    turns = assemble_context(history, "hi")
    assert turns[0].role is Role.SYSTEM
    assert "User (User)" in turns[0].plain_text
    assert [t.role for t in turns[1:]] == [Role.SYSTEM, Role.USER, Role.USER]


def test_history_truncated_before_assembly() -> None:
    history = [_entry(i, Role.USER if i % 2 == 0 else Role.ASSISTANT) for i in range(15)]
    turns = assemble_context(history, "now", max_messages=10)

    assert len(turns) == 12
    assert [t.plain_text for t in turns[1:-1]] == [f"message {i}" for i in range(5, 15)]
    assert "10 pesan sebelumnya" in turns[0].plain_text


def test_empty_content_skipped() -> None:
    history = [_entry(0), _entry(1, content=""), _entry(2)]
    turns = assemble_context(history, "now")
    assert [t.plain_text for t in turns[1:-1]] == ["message 0", "message 2"]


def test_media_context_block() -> None:
    history = [
        _entry(
            0,
            content="[image]",
            attachment_kind=AttachmentKind.IMAGE,
            attachment_summary="A bar chart of citations",
        )
    ]
    turns = assemble_context(history, "what is the trend?")
    assert turns[1].plain_text == (
        "[MEDIA CONTEXT - IMAGE]\n\n"
        "**Complete Media Analysis:**\nA bar chart of citations\n\n"
        "**Original User Message:** [image]"
    )


def test_image_attachment_becomes_segment() -> None:
    image = AttachmentContent(
        kind=AttachmentKind.IMAGE, filename="a.png", data=b"png", media_type="image/png"
    )
    turns = assemble_context([], "describe", attachments=[image])
    assert turns[-1].segments == [TextSegment("describe"), ImageSegment(b"png", "image/png")]


def test_document_attachment_is_listed_in_text() -> None:
    doc = AttachmentContent(
        kind=AttachmentKind.DOCUMENT,
        filename="paper.pdf",
        data=b"%PDF",
        media_type="application/pdf",
    )
    turns = assemble_context([], "summarize", attachments=[doc])
    assert turns[-1].segments == [
        TextSegment("summarize\n\n[Media attached: DOCUMENT: paper.pdf]")
    ]
