"""In-memory cache of attachments waiting for a follow-up caption.

When a user sends an image or PDF without a caption, the bytes are parked
here keyed by sender address. The next text message from that sender is
treated as the caption and the entry is consumed.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(hours=24)


@dataclass
class PendingAttachment:
    """An attachment awaiting its caption."""

    data: bytes
    filename: str
    mime_type: str
    timestamp: float = field(default_factory=time.time)


class PendingAttachmentCache:
    """One pending attachment per sender, expired lazily on read.

    ``sweep()`` exists for periodic housekeeping; correctness never depends
    on it running because ``get()`` drops stale entries itself.
    """

    def __init__(
        self,
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._ttl = ttl.total_seconds()
        self._clock = clock
        self._entries: dict[str, PendingAttachment] = {}

    def _expired(self, entry: PendingAttachment) -> bool:
        return self._clock() - entry.timestamp > self._ttl

    def put(self, sender: str, attachment: PendingAttachment) -> None:
        """Store *attachment* for *sender*, replacing any previous entry."""
        if sender in self._entries:
            logger.debug("Replacing pending attachment for %s", sender)
        self._entries[sender] = attachment

    def get(self, sender: str) -> PendingAttachment | None:
        entry = self._entries.get(sender)
        if entry is None:
            return None
        if self._expired(entry):
            del self._entries[sender]
            logger.info("Pending attachment for %s expired", sender)
            return None
        return entry

    def remove(self, sender: str) -> None:
        self._entries.pop(sender, None)

    def sweep(self) -> int:
        """Drop every expired entry. Returns how many were removed."""
        stale = [sender for sender, entry in self._entries.items() if self._expired(entry)]
        for sender in stale:
            del self._entries[sender]
        if stale:
            logger.info("Swept %d expired pending attachment(s)", len(stale))
        return len(stale)

    def __contains__(self, sender: object) -> bool:
        return isinstance(sender, str) and self.get(sender) is not None

    def __len__(self) -> int:
        return len(self._entries)
