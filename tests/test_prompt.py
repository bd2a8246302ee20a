"""Tests for prompt assembly."""

from unittest.mock import patch

from wulang.llm.prompt import (
    DOCUMENT_SUMMARY_TASK,
    build_system_prompt,
    build_task_prompt,
)


def test_build_system_prompt_contains_persona() -> None:
    text = build_system_prompt("Sari", "628111", 4)
    assert "Kelas Inovatif" in text
    assert "Kamu sedang berbicara dengan Sari (628111)." in text
    assert text.endswith("Konteks percakapan saat ini: 4 pesan sebelumnya")


def test_build_system_prompt_unknown_user() -> None:
    text = build_system_prompt()
    assert "Kamu sedang berbicara dengan User (User)." in text
    assert "0 pesan sebelumnya" in text


def test_bot_name_comes_from_settings() -> None:
    with patch("wulang.llm.prompt.settings") as mock_settings:
        mock_settings.bot_name = "Aksara"
        text = build_system_prompt()
    assert text.startswith("Kamu adalah Aksara,")
    assert '"Aksara, Info Seminar"' in text


def test_build_task_prompt_appends_task() -> None:
    text = build_task_prompt(DOCUMENT_SUMMARY_TASK)
    assert text.startswith("Kamu adalah")
    assert text.endswith(DOCUMENT_SUMMARY_TASK)
    assert "User (User)" in text
