"""Application wiring: store → pipeline → handler → webhook server."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import timedelta

from wulang.bot.handlers import MessageHandler
from wulang.bot.pending import PendingAttachmentCache
from wulang.bot.pipeline import MessagePipeline
from wulang.config import settings
from wulang.conversation import ConversationManager, ConversationStore
from wulang.llm.client import ClaudeBackend
from wulang.maintenance import MaintenanceService
from wulang.whatsapp.client import close_session
from wulang.whatsapp.webhook import WebhookServer

logger = logging.getLogger(__name__)


@dataclass
class Components:
    """Everything the running bot is made of."""

    store: ConversationStore
    pending: PendingAttachmentCache
    backend: ClaudeBackend
    pipeline: MessagePipeline
    handler: MessageHandler
    server: WebhookServer
    maintenance: MaintenanceService


def build_components(store: ConversationStore | None = None) -> Components:
    """Instantiate and connect all collaborators from settings."""
    store = store or ConversationStore.get()
    manager = ConversationManager(store)
    pending = PendingAttachmentCache(ttl=timedelta(hours=settings.pending_attachment_ttl_hours))
    backend = ClaudeBackend()
    pipeline = MessagePipeline(
        manager,
        backend,
        pending,
        max_context_messages=settings.max_context_messages,
        max_attachment_size_mb=settings.max_attachment_size_mb,
    )
    handler = MessageHandler(pipeline, pending, backend)
    return Components(
        store=store,
        pending=pending,
        backend=backend,
        pipeline=pipeline,
        handler=handler,
        server=WebhookServer(handler),
        maintenance=MaintenanceService(store, pending),
    )


async def serve(components: Components | None = None) -> None:
    """Start the webhook server and maintenance jobs; run until cancelled."""
    components = components or build_components()

    if not settings.whatsapp_enabled:
        logger.warning("WhatsApp credentials missing, replies will not be delivered")
    if not settings.anthropic_api_key:
        logger.warning("ANTHROPIC_API_KEY is empty, Claude calls will fail")

    await components.server.start()
    await components.maintenance.start()
    try:
        await asyncio.Event().wait()
    finally:
        await components.maintenance.stop()
        await components.server.stop()
        await close_session()


def run() -> None:
    """Run the bot in a fresh event loop."""
    try:
        asyncio.run(serve())
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
