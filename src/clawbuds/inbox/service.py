"""Inbox delivery service.

A per-recipient, sequence-numbered read model over sent messages. Clients
remember the highest ``seq`` they have seen and pass it back as
``after_seq`` to catch up after reconnecting.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from ..core.events import MESSAGE_ACKED, MESSAGE_NEW, EventBus
from ..core.exceptions import ValidationException
from ..core.locks import KeyedLocks
from .models import DEFAULT_INBOX_LIMIT, MAX_INBOX_LIMIT, InboxEntry, InboxStatus, parse_status_filter

if TYPE_CHECKING:
    from ..storage.protocols import InboxStore

logger = logging.getLogger(__name__)


def clamp_limit(limit: int | None) -> int:
    """Clamp a requested page size to [1, MAX_INBOX_LIMIT]."""
    if limit is None:
        return DEFAULT_INBOX_LIMIT
    return min(max(int(limit), 1), MAX_INBOX_LIMIT)


class InboxService:
    """Delivers messages into recipients' inboxes and tracks their status."""

    def __init__(
        self,
        store: InboxStore,
        event_bus: EventBus,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.event_bus = event_bus
        self._clock = clock or (lambda: datetime.now(UTC))
        self._locks = KeyedLocks()

    async def deliver(
        self,
        message_id: str,
        from_claw_id: str,
        recipient_ids: Iterable[str],
    ) -> list[InboxEntry]:
        """Create one inbox entry per distinct recipient.

        Seq allocation and insert happen under the recipient's lock so
        entries become visible in seq order. ``message.new`` is emitted for
        each entry after all inserts succeed.
        """
        entries: list[InboxEntry] = []
        for recipient_id in dict.fromkeys(recipient_ids):
            async with self._locks.hold(recipient_id):
                seq = await self.store.next_seq(recipient_id)
                entry = InboxEntry(
                    id=str(uuid.uuid4()),
                    recipient_id=recipient_id,
                    message_id=message_id,
                    from_claw_id=from_claw_id,
                    seq=seq,
                    created_at=self._clock(),
                )
                await self.store.insert(entry)
            entries.append(entry)

        for entry in entries:
            self.event_bus.emit(MESSAGE_NEW, {"recipient_id": entry.recipient_id, "entry": entry.to_dict()})

        logger.debug(f"Delivered message {message_id} to {len(entries)} recipients")
        return entries

    async def get_inbox(
        self,
        claw_id: str,
        status: str | InboxStatus | None = InboxStatus.UNREAD,
        limit: int | None = DEFAULT_INBOX_LIMIT,
        after_seq: int = 0,
    ) -> list[InboxEntry]:
        """Entries with ``seq > after_seq`` in ascending seq order.

        Args:
            claw_id: The recipient
            status: unread (default), read, acked, or "all"
            limit: Page size, clamped to [1, 100]
            after_seq: Highest seq the client has already seen

        Raises:
            ValidationException: If ``status`` is not recognised
        """
        if after_seq < 0:
            raise ValidationException("after_seq must be non-negative", field="after_seq", value=after_seq)
        return await self.store.query(claw_id, parse_status_filter(status), clamp_limit(limit), after_seq)

    async def ack(self, claw_id: str, entry_ids: list[str]) -> int:
        """Mark entries acked. Already-acked and foreign entries count as 0."""
        if not entry_ids:
            return 0
        changed = await self.store.ack(claw_id, entry_ids, self._clock())
        if changed:
            self.event_bus.emit(MESSAGE_ACKED, {"recipient_id": claw_id, "entry_ids": list(entry_ids), "count": changed})
        return changed

    async def mark_read(self, claw_id: str, entry_ids: list[str]) -> int:
        """Move unread entries to read."""
        if not entry_ids:
            return 0
        return await self.store.mark_read(claw_id, entry_ids, self._clock())

    async def get_unread_count(self, claw_id: str) -> int:
        """Count of entries ``get_inbox(status="unread")`` would page through."""
        return await self.store.count_unread(claw_id)

    async def get_latest_seq(self, claw_id: str) -> int:
        return await self.store.latest_seq(claw_id)
