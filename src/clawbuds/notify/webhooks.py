"""Outbound webhook notifications.

The notifier subscribes to event bus events and posts a signed JSON body to
every matching target. Deliveries run as background tasks scheduled by the
event bus; a failed delivery is logged and counted against the target, and
never reaches the code that emitted the event.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import logging
import time
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import aiohttp

from ..core.events import (
    FRIEND_ACCEPTED,
    HEARTBEAT_RECEIVED,
    MESSAGE_NEW,
    REACTION_ADDED,
    REACTION_REMOVED,
    RELATIONSHIP_LAYER_CHANGED,
    EventBus,
)

logger = logging.getLogger(__name__)

CIRCUIT_BREAKER_THRESHOLD = 10  # consecutive failures before a target is disabled
MAX_RESPONSE_BODY = 1024
DEFAULT_TIMEOUT_SECONDS = 10.0

DEFAULT_EVENTS = (
    MESSAGE_NEW,
    REACTION_ADDED,
    REACTION_REMOVED,
    FRIEND_ACCEPTED,
    HEARTBEAT_RECEIVED,
    RELATIONSHIP_LAYER_CHANGED,
)

HEADER_EVENT = "X-ClawBuds-Event"
HEADER_SIGNATURE = "X-ClawBuds-Signature"
HEADER_DELIVERY = "X-ClawBuds-Delivery"
HEADER_TIMESTAMP = "X-ClawBuds-Timestamp"


def generate_signature(secret: str, payload: str | bytes) -> str:
    """HMAC-SHA256 of the payload, formatted as ``sha256=<hex>``."""
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify_signature(secret: str, payload: str | bytes, signature: str) -> bool:
    """Constant-time check of a ``sha256=<hex>`` signature."""
    return hmac.compare_digest(generate_signature(secret, payload), signature)


@dataclass
class WebhookTarget:
    """An endpoint that wants events for one claw.

    ``events`` containing ``"*"`` subscribes to everything.
    """

    claw_id: str
    url: str
    secret: str
    events: set[str] = field(default_factory=lambda: {"*"})
    active: bool = True
    failure_count: int = 0

    def wants(self, event: str) -> bool:
        return self.active and ("*" in self.events or event in self.events)


@dataclass
class WebhookDelivery:
    """Result of one delivery attempt."""

    delivery_id: str
    url: str
    event: str
    success: bool
    status_code: int | None = None
    response_body: str | None = None
    duration_ms: float = 0.0


def recipient_ids(payload: dict[str, Any]) -> list[str]:
    """Claw ids an event payload is addressed to."""
    if "recipient_ids" in payload:
        return list(payload["recipient_ids"])
    for key in ("recipient_id", "to_claw_id", "claw_id"):
        if payload.get(key):
            return [payload[key]]
    return []


class WebhookNotifier:
    """Fans event bus events out to registered webhook targets."""

    def __init__(
        self,
        event_bus: EventBus,
        targets: Iterable[WebhookTarget] = (),
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        events: Iterable[str] = DEFAULT_EVENTS,
    ):
        self.event_bus = event_bus
        self.targets: list[WebhookTarget] = list(targets)
        self.timeout = timeout
        self.events = tuple(events)
        self._listeners: dict[str, Any] = {}

    def add_target(self, target: WebhookTarget) -> None:
        self.targets.append(target)

    def targets_for(self, claw_id: str, event: str) -> list[WebhookTarget]:
        return [t for t in self.targets if t.claw_id == claw_id and t.wants(event)]

    def attach(self) -> None:
        """Subscribe to the configured events."""
        for event in self.events:
            if event in self._listeners:
                continue

            async def listener(payload: dict[str, Any], _event: str = event) -> None:
                await self.dispatch(_event, payload)

            self._listeners[event] = listener
            self.event_bus.on(event, listener)

    def detach(self) -> None:
        for event, listener in self._listeners.items():
            self.event_bus.off(event, listener)
        self._listeners.clear()

    async def dispatch(self, event: str, payload: dict[str, Any]) -> list[WebhookDelivery]:
        """Deliver one event to every matching target concurrently."""
        targets = [t for claw_id in recipient_ids(payload) for t in self.targets_for(claw_id, event)]
        if not targets:
            return []
        body = {
            "event": event,
            "timestamp": datetime.now(UTC).isoformat(),
            "data": payload,
        }
        return list(await asyncio.gather(*(self.deliver(t, event, body) for t in targets)))

    async def deliver(self, target: WebhookTarget, event: str, body: dict[str, Any]) -> WebhookDelivery:
        """POST one signed payload. Failures are recorded, not raised."""
        delivery_id = str(uuid.uuid4())
        payload = json.dumps(body, default=str)
        headers = {
            "Content-Type": "application/json",
            HEADER_EVENT: event,
            HEADER_SIGNATURE: generate_signature(target.secret, payload),
            HEADER_DELIVERY: delivery_id,
            HEADER_TIMESTAMP: str(int(time.time())),
        }

        start = time.monotonic()
        status_code: int | None = None
        response_body: str | None = None
        success = False
        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(target.url, data=payload, headers=headers) as resp:
                    status_code = resp.status
                    response_body = (await resp.text())[:MAX_RESPONSE_BODY]
                    success = 200 <= resp.status < 300
        except aiohttp.ClientError as e:
            response_body = str(e)
        except asyncio.TimeoutError:
            response_body = "Request timeout"

        duration_ms = (time.monotonic() - start) * 1000
        self._record(target, success)
        if not success:
            logger.warning(f"Webhook {event} to {target.url} failed: {status_code or response_body}")

        return WebhookDelivery(
            delivery_id=delivery_id,
            url=target.url,
            event=event,
            success=success,
            status_code=status_code,
            response_body=response_body,
            duration_ms=duration_ms,
        )

    def _record(self, target: WebhookTarget, success: bool) -> None:
        if success:
            target.failure_count = 0
            return
        target.failure_count += 1
        if target.failure_count >= CIRCUIT_BREAKER_THRESHOLD and target.active:
            target.active = False
            logger.error(f"Disabled webhook {target.url} after {target.failure_count} consecutive failures")
