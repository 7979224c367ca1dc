"""Heartbeat exchange between friends.

Outgoing heartbeats are diffs against the last one sent to the same friend;
when nothing changed only a keepalive is stored.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from ..core.config import ClawbudsConfig
from ..core.events import HEARTBEAT_RECEIVED, EventBus
from .models import HeartbeatPayload, HeartbeatRecord

if TYPE_CHECKING:
    from ..relationships.service import RelationshipService
    from ..storage.protocols import HeartbeatStore

logger = logging.getLogger(__name__)


def compute_diff(current: HeartbeatPayload, last: HeartbeatRecord | None) -> HeartbeatPayload:
    """Only the fields that changed since ``last``; a keepalive if none did."""
    if last is None:
        return HeartbeatPayload(
            interests=current.interests,
            availability=current.availability,
            recent_topics=current.recent_topics,
        )

    interests_changed = (current.interests or []) != (last.interests or [])
    availability_changed = current.availability != last.availability
    topics_changed = current.recent_topics != last.recent_topics

    if not (interests_changed or availability_changed or topics_changed):
        return HeartbeatPayload(is_keepalive=True)

    return HeartbeatPayload(
        interests=current.interests if interests_changed else None,
        availability=current.availability if availability_changed else None,
        recent_topics=current.recent_topics if topics_changed else None,
    )


class HeartbeatService:
    """Sends, receives and expires heartbeats."""

    def __init__(
        self,
        store: HeartbeatStore,
        event_bus: EventBus,
        relationships: RelationshipService,
        config: ClawbudsConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.event_bus = event_bus
        self.relationships = relationships
        self.config = config or ClawbudsConfig()
        self._clock = clock or (lambda: datetime.now(UTC))

    async def receive_heartbeat(self, from_claw_id: str, to_claw_id: str, payload: HeartbeatPayload) -> HeartbeatRecord:
        """Store an incoming heartbeat and note the interaction for the recipient."""
        record = HeartbeatRecord(
            id=str(uuid.uuid4()),
            from_claw_id=from_claw_id,
            to_claw_id=to_claw_id,
            interests=payload.interests,
            availability=payload.availability,
            recent_topics=payload.recent_topics,
            is_keepalive=payload.is_keepalive,
            created_at=self._clock(),
        )
        await self.store.create(record)
        await self.relationships.touch_interaction(to_claw_id, from_claw_id)

        self.event_bus.emit(
            HEARTBEAT_RECEIVED,
            {"from_claw_id": from_claw_id, "to_claw_id": to_claw_id, "payload": payload.to_dict()},
        )
        return record

    async def send_heartbeats(self, claw_id: str, payload: HeartbeatPayload | None = None) -> int:
        """Send a heartbeat to every friend of ``claw_id``.

        Without a payload every friend gets a keepalive. Returns the number
        of heartbeats stored.
        """
        friends = await self.relationships.store.list_for_claw(claw_id)
        sent = 0
        for friend in friends:
            if payload is None:
                outgoing = HeartbeatPayload(is_keepalive=True)
            else:
                last = await self.store.latest(claw_id, friend.friend_id)
                outgoing = compute_diff(payload, last)

            await self.store.create(
                HeartbeatRecord(
                    id=str(uuid.uuid4()),
                    from_claw_id=claw_id,
                    to_claw_id=friend.friend_id,
                    interests=outgoing.interests,
                    availability=outgoing.availability,
                    recent_topics=outgoing.recent_topics,
                    is_keepalive=outgoing.is_keepalive,
                    created_at=self._clock(),
                )
            )
            sent += 1
        return sent

    async def get_latest_from(self, claw_id: str, friend_id: str) -> HeartbeatRecord | None:
        """Most recent heartbeat ``friend_id`` sent to ``claw_id``."""
        return await self.store.latest(friend_id, claw_id)

    async def cleanup(self) -> int:
        """Delete heartbeats older than the retention window."""
        cutoff = self._clock() - timedelta(days=self.config.heartbeat_retention_days)
        deleted = await self.store.delete_older_than(cutoff)
        if deleted:
            logger.info(f"Deleted {deleted} expired heartbeats")
        return deleted
