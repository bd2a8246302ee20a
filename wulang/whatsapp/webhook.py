"""Async HTTP server receiving WhatsApp Cloud API webhooks.

Uses aiohttp's AppRunner/TCPSite for non-blocking start/stop. Meta requires
a fast 200 for every delivery, so each message is handled in a background
task and the reply is sent from there.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from aiohttp import web

from wulang.bot.handlers import InboundMedia, InboundMessage
from wulang.config import settings
from wulang.whatsapp.client import download_media, send_message

if TYPE_CHECKING:
    from wulang.bot.handlers import MessageHandler

logger = logging.getLogger(__name__)

HANDLER_KEY = web.AppKey("handler", object)
TASKS_KEY = web.AppKey("tasks", set)

MEDIA_TYPES = ("image", "document", "audio", "video", "sticker")


@dataclass
class WebhookMessage:
    """One message entry extracted from a Cloud API delivery."""

    message_id: str
    sender: str
    text: str = ""
    display_name: str | None = None
    media_id: str | None = None
    mime_type: str | None = None
    filename: str | None = None


def parse_payload(payload: dict[str, Any]) -> list[WebhookMessage]:
    """Extract inbound messages from a Cloud API webhook body.

    Status callbacks (sent/delivered/read) and unknown message types are
    skipped.
    """
    messages: list[WebhookMessage] = []
    for entry in payload.get("entry", []) or []:
        for change in entry.get("changes", []) or []:
            value = change.get("value", {}) or {}
            names = {
                c.get("wa_id", ""): (c.get("profile", {}) or {}).get("name")
                for c in value.get("contacts", []) or []
            }
            for msg in value.get("messages", []) or []:
                sender = msg.get("from", "")
                msg_type = msg.get("type", "")
                if not sender:
                    logger.warning("Webhook message without sender: %s", msg.get("id"))
                    continue

                parsed = WebhookMessage(
                    message_id=msg.get("id", ""),
                    sender=sender,
                    display_name=names.get(sender),
                )
                if msg_type == "text":
                    parsed.text = (msg.get("text", {}) or {}).get("body", "")
                elif msg_type in MEDIA_TYPES:
                    media = msg.get(msg_type, {}) or {}
                    parsed.media_id = media.get("id")
                    parsed.mime_type = media.get("mime_type")
                    parsed.filename = media.get("filename") or f"{msg_type}_{parsed.message_id}"
                    parsed.text = media.get("caption", "") or ""
                else:
                    logger.info("Ignoring %s message from %s", msg_type or "unknown", sender)
                    continue
                messages.append(parsed)
    return messages


async def to_inbound(parsed: WebhookMessage) -> InboundMessage:
    """Download any attachment and build the handler's input."""
    message = InboundMessage(
        message_id=parsed.message_id,
        sender=parsed.sender,
        text=parsed.text,
        display_name=parsed.display_name,
    )
    if parsed.media_id:
        try:
            download = await download_media(parsed.media_id)
        except Exception as exc:
            logger.exception("Failed to download media %s", parsed.media_id)
            message.media_error = str(exc)
            return message
        message.media = InboundMedia(
            data=download.data,
            mime_type=parsed.mime_type or download.mime_type,
            filename=parsed.filename or parsed.media_id,
        )
    return message


async def _run_inbound(handler: MessageHandler, parsed: WebhookMessage) -> None:
    """Handle one message and send the reply, logging any failure."""
    try:
        inbound = await to_inbound(parsed)
        reply = await handler.handle(inbound)
        if reply:
            await send_message(parsed.sender, reply)
    except Exception:
        logger.exception("Inbound handler failed: from=%s id=%s", parsed.sender, parsed.message_id)


async def _health(request: web.Request) -> web.Response:
    """GET /health: basic liveness check."""
    return web.json_response({"status": "ok"})


async def _verify(request: web.Request) -> web.Response:
    """GET /webhook: Meta's subscription handshake."""
    mode = request.query.get("hub.mode", "")
    token = request.query.get("hub.verify_token", "")
    challenge = request.query.get("hub.challenge", "")

    expected = settings.whatsapp_verify_token
    if mode == "subscribe" and expected and token == expected:
        logger.info("Webhook verified")
        return web.Response(text=challenge)

    logger.warning("Webhook verification rejected (mode=%s)", mode)
    return web.Response(status=403, text="forbidden")


async def _receive(request: web.Request) -> web.Response:
    """POST /webhook: inbound messages and status callbacks."""
    try:
        payload: dict[str, Any] = await request.json()
    except Exception:
        logger.warning("Webhook bad request: invalid JSON")
        return web.json_response({"error": "invalid JSON"}, status=400)

    if not isinstance(payload, dict):
        return web.json_response({"ok": True})

    handler = request.app[HANDLER_KEY]
    tasks = request.app[TASKS_KEY]
    parsed = parse_payload(payload)
    if parsed:
        logger.info("Webhook received %d message(s)", len(parsed))

    # Fire-and-forget: return 200 immediately, process in background.
    for message in parsed:
        task = asyncio.create_task(_run_inbound(handler, message))
        tasks.add(task)
        task.add_done_callback(tasks.discard)

    return web.json_response({"ok": True})


def _create_web_app(handler: MessageHandler) -> web.Application:
    """Build the aiohttp Application with routes."""
    app = web.Application()
    app[HANDLER_KEY] = handler
    app[TASKS_KEY] = set()
    app.router.add_get("/health", _health)
    app.router.add_get("/webhook", _verify)
    app.router.add_post("/webhook", _receive)
    return app


class WebhookServer:
    """Manages the aiohttp server lifecycle."""

    def __init__(self, handler: MessageHandler, port: int | None = None) -> None:
        self.port = port or settings.webhook_port
        self._handler = handler
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Start listening for WhatsApp deliveries."""
        if not settings.whatsapp_verify_token:
            logger.warning("WHATSAPP_VERIFY_TOKEN empty, webhook verification will fail")

        app = _create_web_app(self._handler)
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, "0.0.0.0", self.port)
        await site.start()
        logger.info("Webhook server listening on port %d", self.port)

    async def stop(self) -> None:
        """Shut down the server gracefully."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Webhook server stopped")
