"""WhatsApp Cloud API client using aiohttp."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import aiohttp

from wulang.config import settings
from wulang.errors import TransportError

logger = logging.getLogger(__name__)

# WhatsApp rejects text bodies longer than this.
MAX_MESSAGE_LENGTH = 4096

GRAPH_API_BASE = "https://graph.facebook.com"

_session: aiohttp.ClientSession | None = None


@dataclass
class MediaDownload:
    data: bytes
    mime_type: str


def _get_session() -> aiohttp.ClientSession:
    """Return (and lazily create) the shared aiohttp session."""
    global _session  # noqa: PLW0603
    if _session is None or _session.closed:
        _session = aiohttp.ClientSession(
            headers={"Authorization": f"Bearer {settings.whatsapp_access_token}"},
        )
    return _session


async def close_session() -> None:
    global _session  # noqa: PLW0603
    if _session is not None and not _session.closed:
        await _session.close()
    _session = None


def _graph_url(path: str) -> str:
    return f"{GRAPH_API_BASE}/{settings.whatsapp_api_version}/{path}"


async def send_message(to: str, body: str) -> bool:
    """Send a text message via the Cloud API. Returns True on success."""
    if not settings.whatsapp_enabled:
        logger.error(
            "WhatsApp not configured, missing WHATSAPP_ACCESS_TOKEN or WHATSAPP_PHONE_NUMBER_ID"
        )
        return False

    if len(body) > MAX_MESSAGE_LENGTH:
        body = body[: MAX_MESSAGE_LENGTH - 3] + "..."

    payload = {
        "messaging_product": "whatsapp",
        "recipient_type": "individual",
        "to": to,
        "type": "text",
        "text": {"preview_url": False, "body": body},
    }

    session = _get_session()
    try:
        async with session.post(
            _graph_url(f"{settings.whatsapp_phone_number_id}/messages"), json=payload
        ) as resp:
            if resp.status == 200:
                logger.info("WhatsApp message sent to %s (%d chars)", to, len(body))
                return True
            text = await resp.text()
            logger.error("WhatsApp send failed: status=%d body=%s", resp.status, text[:200])
            return False
    except Exception:
        logger.exception("WhatsApp send failed (network error)")
        return False


async def download_media(media_id: str) -> MediaDownload:
    """Fetch an inbound attachment.

    The Cloud API first resolves *media_id* to a short-lived URL, which is
    then downloaded with the same bearer token.

    Raises:
        TransportError: lookup or download failed.
    """
    session = _get_session()
    try:
        async with session.get(_graph_url(media_id)) as resp:
            if resp.status != 200:
                text = await resp.text()
                raise TransportError(
                    f"Media lookup failed: status={resp.status} body={text[:200]}"
                )
            info = await resp.json()

        url = info.get("url")
        if not url:
            raise TransportError(f"Media lookup returned no URL for {media_id}")

        async with session.get(url) as resp:
            if resp.status != 200:
                raise TransportError(f"Media download failed: status={resp.status}")
            data = await resp.read()
    except TransportError:
        raise
    except Exception as exc:
        raise TransportError(f"Media download failed (network error): {exc}") from exc

    mime_type = info.get("mime_type") or "application/octet-stream"
    logger.info("Downloaded media %s (%s, %d bytes)", media_id, mime_type, len(data))
    return MediaDownload(data=data, mime_type=mime_type.split(";", 1)[0].strip())
