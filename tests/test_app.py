"""Tests for application wiring."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from wulang.bot.app import Components, build_components, serve
from wulang.conversation.store import ConversationStore


def test_build_components_shares_collaborators(store: ConversationStore) -> None:
    components = build_components(store)

    assert components.store is store
    assert components.pipeline._pending is components.pending
    assert components.handler._pending is components.pending
    assert components.handler._pipeline is components.pipeline
    assert components.maintenance._pending is components.pending
    assert components.server._handler is components.handler


def test_build_components_applies_attachment_limit(
    store: ConversationStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr("wulang.bot.app.settings.max_attachment_size_mb", 3)

    components = build_components(store)

    assert components.pipeline._max_attachment_size_mb == 3


async def test_serve_stops_everything_on_cancel() -> None:
    components = Components(
        store=MagicMock(),
        pending=MagicMock(),
        backend=MagicMock(),
        pipeline=MagicMock(),
        handler=MagicMock(),
        server=MagicMock(start=AsyncMock(), stop=AsyncMock()),
        maintenance=MagicMock(start=AsyncMock(), stop=AsyncMock()),
    )

    with patch("wulang.bot.app.close_session", AsyncMock()) as close:
        task = asyncio.create_task(serve(components))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    components.server.start.assert_awaited_once()
    components.maintenance.start.assert_awaited_once()
    components.server.stop.assert_awaited_once()
    components.maintenance.stop.assert_awaited_once()
    close.assert_awaited_once()
