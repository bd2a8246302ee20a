"""Shared test fixtures."""

from pathlib import Path

import pytest

from wulang.bot.pending import PendingAttachmentCache
from wulang.conversation.manager import ConversationManager
from wulang.conversation.store import ConversationStore


@pytest.fixture(autouse=False)
def _no_turso(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure tests use local file, not remote Turso."""
    monkeypatch.setattr("wulang.config.settings.turso_database_url", "")


@pytest.fixture
def store(tmp_path: Path, _no_turso) -> ConversationStore:
    """A ConversationStore backed by a temp database."""
    ConversationStore._reset()
    s = ConversationStore(db_path=tmp_path / "test.db")
    yield s
    ConversationStore._reset()


@pytest.fixture
def manager(store: ConversationStore) -> ConversationManager:
    return ConversationManager(store)


@pytest.fixture
def pending() -> PendingAttachmentCache:
    return PendingAttachmentCache()
