"""In-process publish/subscribe event bus.

One bus is constructed per process and passed to every component that emits
or consumes events. ``emit`` never waits on subscribers: sync listeners run
inline, coroutine listeners are scheduled as tasks, and any listener failure
is logged and dropped.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

# Event names
MESSAGE_NEW = "message.new"
MESSAGE_ACKED = "message.acked"
REACTION_ADDED = "reaction.added"
REACTION_REMOVED = "reaction.removed"
FRIEND_ACCEPTED = "friend.accepted"
FRIEND_REMOVED = "friend.removed"
HEARTBEAT_RECEIVED = "heartbeat.received"
RELATIONSHIP_LAYER_CHANGED = "relationship.layer_changed"
TRUST_UPDATED = "trust.updated"

Listener = Callable[[dict[str, Any]], Awaitable[None] | None]


class EventBus:
    """Fire-and-forget pub/sub keyed by event name."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = defaultdict(list)
        self._pending: set[asyncio.Task] = set()

    def on(self, event: str, listener: Listener) -> None:
        """Subscribe ``listener`` to ``event``."""
        self._listeners[event].append(listener)

    def off(self, event: str, listener: Listener) -> None:
        """Unsubscribe ``listener``; unknown listeners are ignored."""
        listeners = self._listeners.get(event)
        if listeners and listener in listeners:
            listeners.remove(listener)

    def remove_all_listeners(self) -> None:
        self._listeners.clear()

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def emit(self, event: str, payload: dict[str, Any]) -> None:
        """Publish ``payload`` to every listener of ``event``."""
        for listener in list(self._listeners.get(event, ())):
            try:
                result = listener(payload)
            except Exception as e:
                logger.warning(f"Listener for {event} failed: {e}")
                continue

            if inspect.isawaitable(result):
                self._schedule(event, result)

    def _schedule(self, event: str, awaitable: Awaitable[None]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No running loop; close the coroutine so it is not left un-awaited
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            logger.warning(f"Dropped async listener for {event}: no running event loop")
            return

        task = asyncio.ensure_future(awaitable, loop=loop)
        self._pending.add(task)
        task.add_done_callback(lambda t: self._on_done(event, t))

    def _on_done(self, event: str, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(f"Async listener for {event} failed: {exc}")

    @property
    def pending(self) -> int:
        """Number of async listener tasks still running."""
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every scheduled listener task, including ones they schedule."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
