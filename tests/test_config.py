"""Tests for Settings configuration model."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from wulang.config import Settings


class TestDefaults:
    def test_default_model(self):
        s = Settings()
        assert s.claude_model == "claude-sonnet-4-5-20250929"

    def test_default_database_path(self):
        s = Settings()
        assert s.database_path == Path("data/wulang.db")

    def test_default_keywords(self):
        s = Settings()
        assert s.trigger_keyword == "wulang"
        assert s.reset_keyword == "!reset"

    def test_default_limits(self):
        s = Settings()
        assert s.max_context_messages == 10
        assert s.max_attachment_size_mb == 10
        assert s.pending_attachment_ttl_hours == 24
        assert s.retention_days == 90

    def test_moderation_off_and_literal_by_default(self):
        s = Settings()
        assert s.moderation_enabled is False
        assert s.moderation_exact_match is False


class TestDerived:
    def test_whatsapp_enabled_requires_token_and_phone_id(self):
        assert Settings().whatsapp_enabled is False
        assert Settings(whatsapp_access_token="t").whatsapp_enabled is False
        s = Settings(whatsapp_access_token="t", whatsapp_phone_number_id="123")
        assert s.whatsapp_enabled is True


class TestValidation:
    def test_rejects_non_positive_attachment_limit(self):
        with pytest.raises(ValidationError):
            Settings(max_attachment_size_mb=0)

    def test_rejects_zero_context_window(self):
        with pytest.raises(ValidationError):
            Settings(max_context_messages=0)

    def test_ignores_environment_under_pytest(self, monkeypatch):
        monkeypatch.setenv("BOT_NAME", "Other")
        assert Settings().bot_name == "Wulang"
