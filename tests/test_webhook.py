"""Tests for the WhatsApp webhook server."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

from aiohttp.test_utils import TestClient, TestServer

from wulang.errors import TransportError
from wulang.whatsapp.client import MediaDownload
from wulang.whatsapp.webhook import (
    WebhookMessage,
    _create_web_app,
    _run_inbound,
    parse_payload,
    to_inbound,
)

VERIFY_TOKEN = "verify-me"


# -- Helpers -----------------------------------------------------------------


class _FakeSettings:
    def __init__(self, whatsapp_verify_token: str = VERIFY_TOKEN) -> None:
        self.whatsapp_verify_token = whatsapp_verify_token
        self.webhook_port = 8443


async def _make_client(handler=None):
    app = _create_web_app(handler or MagicMock())
    client = TestClient(TestServer(app))
    await client.start_server()
    return client


def _delivery(*messages: dict, contacts: list | None = None) -> dict:
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "id": "WABA",
                "changes": [
                    {
                        "field": "messages",
                        "value": {
                            "messaging_product": "whatsapp",
                            "contacts": contacts
                            or [{"wa_id": "628111", "profile": {"name": "Sari"}}],
                            "messages": list(messages),
                        },
                    }
                ],
            }
        ],
    }


TEXT_MESSAGE = {
    "from": "628111",
    "id": "wamid.T1",
    "type": "text",
    "text": {"body": "Wulang, tolong bantu"},
}

IMAGE_MESSAGE = {
    "from": "628111",
    "id": "wamid.I1",
    "type": "image",
    "image": {"id": "media-1", "mime_type": "image/jpeg", "caption": "Apa ini?"},
}


# -- parse_payload -------------------------------------------------------------


def test_parse_text_message() -> None:
    [msg] = parse_payload(_delivery(TEXT_MESSAGE))
    assert msg.message_id == "wamid.T1"
    assert msg.sender == "628111"
    assert msg.text == "Wulang, tolong bantu"
    assert msg.display_name == "Sari"
    assert msg.media_id is None


def test_parse_image_with_caption() -> None:
    [msg] = parse_payload(_delivery(IMAGE_MESSAGE))
    assert msg.media_id == "media-1"
    assert msg.mime_type == "image/jpeg"
    assert msg.text == "Apa ini?"
    assert msg.filename == "image_wamid.I1"


def test_parse_document_keeps_filename() -> None:
    doc = {
        "from": "628111",
        "id": "wamid.D1",
        "type": "document",
        "document": {"id": "media-2", "mime_type": "application/pdf", "filename": "paper.pdf"},
    }
    [msg] = parse_payload(_delivery(doc))
    assert msg.filename == "paper.pdf"
    assert msg.text == ""


def test_parse_skips_status_and_unknown_types() -> None:
    status_only = {"entry": [{"changes": [{"value": {"statuses": [{"id": "wamid.X"}]}}]}]}
    assert parse_payload(status_only) == []

    reaction = {"from": "628111", "id": "wamid.R1", "type": "reaction", "reaction": {}}
    assert parse_payload(_delivery(reaction)) == []


def test_parse_empty_payload() -> None:
    assert parse_payload({}) == []


# -- to_inbound ----------------------------------------------------------------


async def test_to_inbound_downloads_media() -> None:
    parsed = WebhookMessage(
        message_id="wamid.I1",
        sender="628111",
        text="Apa ini?",
        media_id="media-1",
        mime_type="image/jpeg",
        filename="photo.jpg",
    )
    download = AsyncMock(return_value=MediaDownload(data=b"jpeg", mime_type="image/png"))
    with patch("wulang.whatsapp.webhook.download_media", download):
        inbound = await to_inbound(parsed)

    assert inbound.media.data == b"jpeg"
    assert inbound.media.mime_type == "image/jpeg"
    assert inbound.media.filename == "photo.jpg"
    assert inbound.media_error is None


async def test_to_inbound_records_download_failure() -> None:
    parsed = WebhookMessage(message_id="wamid.I1", sender="628111", media_id="media-1")
    download = AsyncMock(side_effect=TransportError("Media lookup failed: status=404"))
    with patch("wulang.whatsapp.webhook.download_media", download):
        inbound = await to_inbound(parsed)

    assert inbound.media is None
    assert inbound.media_error == "Media lookup failed: status=404"


async def test_run_inbound_sends_reply() -> None:
    handler = MagicMock()
    handler.handle = AsyncMock(return_value="Hi there!")
    send = AsyncMock(return_value=True)
    parsed = WebhookMessage(message_id="wamid.T1", sender="628111", text="wulang hi")

    with patch("wulang.whatsapp.webhook.send_message", send):
        await _run_inbound(handler, parsed)

    inbound = handler.handle.call_args.args[0]
    assert inbound.text == "wulang hi"
    send.assert_awaited_once_with("628111", "Hi there!")


async def test_run_inbound_no_reply_sends_nothing() -> None:
    handler = MagicMock()
    handler.handle = AsyncMock(return_value=None)
    send = AsyncMock()
    parsed = WebhookMessage(message_id="wamid.T1", sender="628111", text="hi")

    with patch("wulang.whatsapp.webhook.send_message", send):
        await _run_inbound(handler, parsed)

    send.assert_not_awaited()


async def test_run_inbound_swallows_handler_errors() -> None:
    handler = MagicMock()
    handler.handle = AsyncMock(side_effect=RuntimeError("boom"))
    parsed = WebhookMessage(message_id="wamid.T1", sender="628111", text="hi")

    await _run_inbound(handler, parsed)


# -- HTTP routes ---------------------------------------------------------------


async def test_health_check() -> None:
    client = await _make_client()
    try:
        resp = await client.get("/health")
        assert resp.status == 200
        assert (await resp.json())["status"] == "ok"
    finally:
        await client.close()


async def test_verify_handshake() -> None:
    with patch("wulang.whatsapp.webhook.settings", _FakeSettings()):
        client = await _make_client()
        try:
            resp = await client.get(
                "/webhook",
                params={
                    "hub.mode": "subscribe",
                    "hub.verify_token": VERIFY_TOKEN,
                    "hub.challenge": "12345",
                },
            )
            assert resp.status == 200
            assert await resp.text() == "12345"
        finally:
            await client.close()


async def test_verify_rejects_wrong_token() -> None:
    with patch("wulang.whatsapp.webhook.settings", _FakeSettings()):
        client = await _make_client()
        try:
            resp = await client.get(
                "/webhook",
                params={"hub.mode": "subscribe", "hub.verify_token": "nope", "hub.challenge": "1"},
            )
            assert resp.status == 403
        finally:
            await client.close()


async def test_verify_rejects_when_token_unset() -> None:
    with patch("wulang.whatsapp.webhook.settings", _FakeSettings(whatsapp_verify_token="")):
        client = await _make_client()
        try:
            resp = await client.get(
                "/webhook",
                params={"hub.mode": "subscribe", "hub.verify_token": "", "hub.challenge": "1"},
            )
            assert resp.status == 403
        finally:
            await client.close()


async def test_receive_invalid_json() -> None:
    client = await _make_client()
    try:
        resp = await client.post(
            "/webhook", data="not json", headers={"Content-Type": "application/json"}
        )
        assert resp.status == 400
    finally:
        await client.close()


async def test_receive_dispatches_background_task() -> None:
    handler = MagicMock()
    run = AsyncMock()
    with patch("wulang.whatsapp.webhook._run_inbound", run):
        client = await _make_client(handler)
        try:
            resp = await client.post("/webhook", json=_delivery(TEXT_MESSAGE, IMAGE_MESSAGE))
            assert resp.status == 200
            assert (await resp.json()) == {"ok": True}
            await asyncio.sleep(0.05)
        finally:
            await client.close()

    assert run.await_count == 2
    first_handler, first_message = run.call_args_list[0].args
    assert first_handler is handler
    assert first_message.message_id == "wamid.T1"


async def test_receive_status_callback_is_acknowledged() -> None:
    run = AsyncMock()
    with patch("wulang.whatsapp.webhook._run_inbound", run):
        client = await _make_client()
        try:
            resp = await client.post(
                "/webhook", json={"entry": [{"changes": [{"value": {"statuses": []}}]}]}
            )
            assert resp.status == 200
        finally:
            await client.close()

    run.assert_not_awaited()
