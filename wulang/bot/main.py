"""Wulang bot entry point."""

import logging

from wulang.config import settings

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
)
logger = logging.getLogger(__name__)


def main() -> None:
    """Start the WhatsApp webhook bot."""
    from wulang.bot.app import run

    logger.info(
        "Starting %s on WhatsApp with model %s (port %d)...",
        settings.bot_name,
        settings.claude_model,
        settings.webhook_port,
    )
    run()


if __name__ == "__main__":
    main()
