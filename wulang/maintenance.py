"""MaintenanceService: APScheduler housekeeping jobs.

Two interval jobs run in the bot's event loop: the retention sweep deletes
conversations idle for longer than ``retention_days`` and the pending sweep
drops expired pending attachments.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from wulang.config import settings

if TYPE_CHECKING:
    from wulang.bot.pending import PendingAttachmentCache
    from wulang.conversation.store import ConversationStore

logger = logging.getLogger(__name__)

RETENTION_JOB_ID = "retention_sweep"
PENDING_JOB_ID = "pending_sweep"


class MaintenanceService:
    """Schedules retention and pending-cache sweeps.

    Args:
        store: ConversationStore to prune.
        pending: Pending-attachment cache to sweep.
        retention_days: Age horizon for conversations (default from settings).
    """

    def __init__(
        self,
        store: ConversationStore,
        pending: PendingAttachmentCache,
        retention_days: int | None = None,
    ) -> None:
        self._store = store
        self._pending = pending
        self._retention_days = retention_days or settings.retention_days
        self._scheduler = AsyncIOScheduler()

    # -- Lifecycle -------------------------------------------------------------

    async def start(self) -> None:
        self._scheduler.add_job(
            self.sweep_conversations,
            IntervalTrigger(hours=settings.maintenance_interval_hours),
            id=RETENTION_JOB_ID,
            replace_existing=True,
        )
        self._scheduler.add_job(
            self.sweep_pending,
            IntervalTrigger(minutes=settings.pending_sweep_interval_minutes),
            id=PENDING_JOB_ID,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(
            "Maintenance started (retention=%dd every %dh, pending sweep every %dm)",
            self._retention_days,
            settings.maintenance_interval_hours,
            settings.pending_sweep_interval_minutes,
        )

    async def stop(self) -> None:
        """Shut down the scheduler."""
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Maintenance stopped")

    # -- Jobs ------------------------------------------------------------------

    async def sweep_conversations(self) -> int:
        """Delete stale conversations. Returns the count, 0 on failure."""
        try:
            deleted = await self._store.delete_conversations_older_than(self._retention_days)
        except Exception:
            logger.exception("Retention sweep failed")
            return 0
        logger.info(
            "Retention sweep removed %d conversation(s) older than %d day(s)",
            deleted,
            self._retention_days,
        )
        return deleted

    async def sweep_pending(self) -> int:
        try:
            return self._pending.sweep()
        except Exception:
            logger.exception("Pending attachment sweep failed")
            return 0

    async def run_once(self) -> dict[str, int]:
        """Run both jobs immediately."""
        return {
            "conversations": await self.sweep_conversations(),
            "pending": await self.sweep_pending(),
        }
