"""Application container.

Builds one event bus, the configured stores, every service and the
scheduler, and wires the event subscriptions between them. HTTP route
wiring lives outside this package; a server constructs one ``ClawbudsApp``
and calls its services.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from .core.config import ClawbudsConfig, get_config
from .core.events import FRIEND_ACCEPTED, FRIEND_REMOVED, RELATIONSHIP_LAYER_CHANGED, EventBus
from .core.logging import configure_logging
from .heartbeat.service import HeartbeatService
from .inbox.service import InboxService
from .notify.webhooks import WebhookNotifier
from .relationships.service import RelationshipService
from .scheduler import SchedulerService
from .server.auth import KeyDirectory, KeyLookup, RequestAuthenticator
from .storage import Stores, create_stores
from .trust.service import TrustService

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class ClawbudsApp:
    """Every long-lived component of one ClawBuds process."""

    config: ClawbudsConfig
    event_bus: EventBus
    stores: Stores
    relationships: RelationshipService
    trust: TrustService
    inbox: InboxService
    heartbeats: HeartbeatService
    authenticator: RequestAuthenticator
    webhooks: WebhookNotifier
    scheduler: SchedulerService | None = None
    keys: KeyDirectory | None = None
    clock: Callable[[], datetime] = field(default_factory=lambda: _utcnow)
    last_trust_decay_at: datetime | None = None

    @classmethod
    def create(
        cls,
        config: ClawbudsConfig | None = None,
        key_lookup: KeyLookup | None = None,
        stores: Stores | None = None,
    ) -> ClawbudsApp:
        """Construct and wire a complete application.

        Args:
            config: Runtime configuration; defaults to ``get_config()``
            key_lookup: Public key lookup for request authentication; defaults
                to an empty in-memory ``KeyDirectory``
            stores: Pre-built stores; defaults to ``create_stores(config)``
        """
        config = config or get_config()
        event_bus = EventBus()
        stores = stores or create_stores(config)

        keys = None
        if key_lookup is None:
            keys = KeyDirectory()
            key_lookup = keys.lookup

        relationships = RelationshipService(stores.relationships, event_bus, config)
        trust = TrustService(stores.trust, event_bus, relationships)
        inbox = InboxService(stores.inbox, event_bus)
        heartbeats = HeartbeatService(stores.heartbeats, event_bus, relationships, config)
        authenticator = RequestAuthenticator(key_lookup, max_skew_ms=config.auth_max_skew_ms)
        webhooks = WebhookNotifier(event_bus, timeout=config.webhook_timeout_seconds)

        app = cls(
            config=config,
            event_bus=event_bus,
            stores=stores,
            relationships=relationships,
            trust=trust,
            inbox=inbox,
            heartbeats=heartbeats,
            authenticator=authenticator,
            webhooks=webhooks,
            keys=keys,
        )
        app.scheduler = SchedulerService(
            heartbeat_interval=config.heartbeat_interval_seconds,
            decay_interval=config.decay_interval_seconds,
            cleanup_interval=config.cleanup_interval_seconds,
            on_heartbeat=app.run_heartbeat_tick,
            on_decay=app.run_decay_tick,
            on_cleanup=app.run_cleanup_tick,
        )
        app._wire_events()
        return app

    def _wire_events(self) -> None:
        self.event_bus.on(FRIEND_ACCEPTED, self._on_friend_accepted)
        self.event_bus.on(FRIEND_REMOVED, self._on_friend_removed)
        self.event_bus.on(RELATIONSHIP_LAYER_CHANGED, self._on_layer_changed)
        self.webhooks.attach()

    # =========================================================================
    # Event handlers
    # =========================================================================

    async def _on_friend_accepted(self, payload: dict[str, Any]) -> None:
        first, second = payload["recipient_ids"]
        for claw_id, friend_id in ((first, second), (second, first)):
            await self.relationships.initialize_relationship(claw_id, friend_id)
            await self.trust.initialize_relationship(claw_id, friend_id)

    async def _on_friend_removed(self, payload: dict[str, Any]) -> None:
        claw_id, friend_id = payload["claw_id"], payload["friend_id"]
        for a, b in ((claw_id, friend_id), (friend_id, claw_id)):
            await self.relationships.remove_relationship(a, b)
            await self.trust.remove_relationship(a, b)

    async def _on_layer_changed(self, payload: dict[str, Any]) -> None:
        await self.trust.recalculate_n(payload["claw_id"], payload["friend_id"])

    # =========================================================================
    # Scheduled work
    # =========================================================================

    async def run_heartbeat_tick(self) -> int:
        """Send keepalives from every claw that has friends."""
        sent = 0
        for claw_id in await self.stores.relationships.list_owners():
            try:
                sent += await self.heartbeats.send_heartbeats(claw_id)
            except Exception as e:
                logger.error(f"Heartbeat send failed for {claw_id}: {e}")
        return sent

    async def run_decay_tick(self) -> int:
        """Daily relationship decay, plus trust Q decay once per trust interval."""
        decayed = await self.relationships.decay_all()

        now = self.clock()
        if self.last_trust_decay_at is None:
            self.last_trust_decay_at = now
        elif now - self.last_trust_decay_at >= timedelta(days=self.config.trust_decay_interval_days):
            await self.trust.decay_all_q()
            self.last_trust_decay_at = now
        return decayed

    async def run_cleanup_tick(self) -> int:
        return await self.heartbeats.cleanup()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Start the periodic scheduler."""
        configure_logging()
        if self.last_trust_decay_at is None:
            self.last_trust_decay_at = self.clock()
        self.scheduler.start()
        logger.info(f"ClawBuds started (storage={self.config.storage_backend})")

    async def stop(self) -> None:
        """Stop the scheduler, wait for in-flight listeners and close storage."""
        await self.scheduler.stop()
        await self.event_bus.drain()
        self.webhooks.detach()
        self.stores.close()
        logger.info("ClawBuds stopped")
