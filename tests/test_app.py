"""Tests for application wiring.

Tests cover:
1. friend.accepted / friend.removed lifecycle across services
2. Layer changes feeding trust N
3. Scheduled ticks (heartbeat, decay with monthly trust decay, cleanup)
4. Start / stop
"""

from __future__ import annotations

from unittest.mock import patch

import pytest

from clawbuds.app import ClawbudsApp
from clawbuds.core.config import ClawbudsConfig
from clawbuds.core.events import FRIEND_ACCEPTED, FRIEND_REMOVED
from clawbuds.relationships import DunbarLayer


@pytest.fixture
def app(stores, clock):
    app = ClawbudsApp.create(ClawbudsConfig(), stores=stores)
    app.clock = clock
    app.relationships._clock = clock
    app.heartbeats._clock = clock
    return app


async def befriend(app, a, b):
    app.event_bus.emit(FRIEND_ACCEPTED, {"recipient_ids": [a, b]})
    await app.event_bus.drain()


class TestFriendLifecycle:
    """Test event-driven initialisation and teardown."""

    @pytest.mark.asyncio
    async def test_friend_accepted_initialises_both_directions(self, app):
        await befriend(app, "claw_a", "claw_b")

        for a, b in (("claw_a", "claw_b"), ("claw_b", "claw_a")):
            relation = await app.relationships.get_relationship(a, b)
            assert relation.strength == 0.5
            trust = await app.trust.get_score(a, b)
            assert trust.n_score == 0.5

    @pytest.mark.asyncio
    async def test_friend_removed_deletes_both_directions(self, app):
        await befriend(app, "claw_a", "claw_b")

        app.event_bus.emit(FRIEND_REMOVED, {"claw_id": "claw_a", "friend_id": "claw_b"})
        await app.event_bus.drain()

        assert await app.relationships.get_relationship("claw_b", "claw_a") is None
        assert await app.trust.get_by_domain("claw_a", "claw_b") == []

    @pytest.mark.asyncio
    async def test_layer_change_updates_trust_n(self, app):
        await befriend(app, "claw_a", "claw_b")

        await app.relationships.set_manual_layer("claw_a", "claw_b", DunbarLayer.CORE)
        await app.event_bus.drain()

        assert (await app.trust.get_score("claw_a", "claw_b")).n_score == 1.0
        assert (await app.trust.get_score("claw_b", "claw_a")).n_score == 0.5


class TestTicks:
    """Test scheduled work."""

    @pytest.mark.asyncio
    async def test_heartbeat_tick(self, app):
        await befriend(app, "claw_a", "claw_b")
        assert await app.run_heartbeat_tick() == 2

    @pytest.mark.asyncio
    async def test_heartbeat_tick_isolates_failures(self, app):
        await befriend(app, "claw_a", "claw_b")
        original = app.heartbeats.send_heartbeats

        async def flaky(claw_id, payload=None):
            if claw_id == "claw_a":
                raise RuntimeError("boom")
            return await original(claw_id, payload)

        with patch.object(app.heartbeats, "send_heartbeats", flaky):
            assert await app.run_heartbeat_tick() == 1

    @pytest.mark.asyncio
    async def test_trust_decays_monthly(self, app, clock):
        await befriend(app, "claw_a", "claw_b")
        await app.trust.apply_signal("claw_a", "claw_b", "pearl_reshared")

        await app.run_decay_tick()  # first tick only records the time
        assert (await app.trust.get_score("claw_a", "claw_b")).q_score == pytest.approx(0.08)

        clock.advance(days=29)
        await app.run_decay_tick()
        assert (await app.trust.get_score("claw_a", "claw_b")).q_score == pytest.approx(0.08)

        clock.advance(days=1)
        await app.run_decay_tick()
        assert (await app.trust.get_score("claw_a", "claw_b")).q_score == pytest.approx(0.08 * 0.99)

    @pytest.mark.asyncio
    async def test_decay_tick_decays_relationships(self, app):
        await befriend(app, "claw_a", "claw_b")
        assert await app.run_decay_tick() == 2
        assert await app.relationships.get_strength("claw_a", "claw_b") < 0.5

    @pytest.mark.asyncio
    async def test_cleanup_tick(self, app, clock):
        await befriend(app, "claw_a", "claw_b")
        await app.run_heartbeat_tick()

        clock.advance(days=8)
        assert await app.run_cleanup_tick() == 2


class TestLifecycle:
    """Test start and stop."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, app):
        with patch("clawbuds.app.configure_logging"):
            await app.start()
        assert app.scheduler.running
        assert app.last_trust_decay_at is not None

        await app.stop()
        assert not app.scheduler.running

    def test_default_key_directory(self, stores):
        app = ClawbudsApp.create(ClawbudsConfig(), stores=stores)
        assert app.keys is not None
        assert app.authenticator.key_lookup == app.keys.lookup
