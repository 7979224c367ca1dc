"""Tests for RelationshipService.

Tests cover:
1. Relationship lifecycle (initialize, remove, strength lookup)
2. Interaction boosts and the per-day cap
3. Batch decay with layer reclassification and size limits
4. Manual layer overrides
5. At-risk detection
"""

from __future__ import annotations

import pytest

from clawbuds.core.events import RELATIONSHIP_LAYER_CHANGED
from clawbuds.core.exceptions import NotFoundError, ValidationException
from clawbuds.relationships import (
    DunbarLayer,
    InteractionType,
    RelationshipService,
    compute_decay_rate,
)


@pytest.fixture
def service(stores, event_bus, config, clock):
    return RelationshipService(stores.relationships, event_bus, config=config, clock=clock)


@pytest.fixture
def layer_events(event_bus):
    received = []
    event_bus.on(RELATIONSHIP_LAYER_CHANGED, received.append)
    return received


class TestLifecycle:
    """Test relationship creation and removal."""

    @pytest.mark.asyncio
    async def test_initialize_defaults(self, service):
        record = await service.initialize_relationship("claw_a", "claw_b")

        assert record.strength == 0.5
        assert record.dunbar_layer == DunbarLayer.ACTIVE
        assert record.manual_override is False
        assert record.last_interaction_at is None

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, service):
        await service.initialize_relationship("claw_a", "claw_b")
        await service.store.update_strength("claw_a", "claw_b", 0.9)

        again = await service.initialize_relationship("claw_a", "claw_b")
        assert again.strength == 0.9

    @pytest.mark.asyncio
    async def test_directed(self, service):
        await service.initialize_relationship("claw_a", "claw_b")
        assert await service.get_relationship("claw_b", "claw_a") is None

    @pytest.mark.asyncio
    async def test_strength_of_missing_pair_is_zero(self, service):
        assert await service.get_strength("claw_a", "claw_nobody") == 0.0

    @pytest.mark.asyncio
    async def test_remove(self, service):
        await service.initialize_relationship("claw_a", "claw_b")
        assert await service.remove_relationship("claw_a", "claw_b") is True
        assert await service.remove_relationship("claw_a", "claw_b") is False
        assert await service.get_relationship("claw_a", "claw_b") is None


class TestBoost:
    """Test interaction boosts."""

    @pytest.mark.asyncio
    async def test_boost_applies_decay_then_weight(self, service):
        await service.initialize_relationship("claw_a", "claw_b")

        strength = await service.boost_strength("claw_a", "claw_b", InteractionType.MESSAGE)

        assert strength == pytest.approx(0.5 * compute_decay_rate(0.5) + 0.05)
        assert await service.get_strength("claw_a", "claw_b") == pytest.approx(strength)

    @pytest.mark.asyncio
    async def test_boost_records_interaction(self, service, clock):
        await service.initialize_relationship("claw_a", "claw_b")
        await service.boost_strength("claw_a", "claw_b", "reaction")

        record = await service.get_relationship("claw_a", "claw_b")
        assert record.last_interaction_at == clock.now

    @pytest.mark.asyncio
    async def test_daily_cap(self, service):
        await service.initialize_relationship("claw_a", "claw_b")

        for _ in range(3):
            assert await service.boost_strength("claw_a", "claw_b", "message") is not None
        assert await service.boost_strength("claw_a", "claw_b", "message") is None

    @pytest.mark.asyncio
    async def test_cap_resets_next_day(self, service, clock):
        await service.initialize_relationship("claw_a", "claw_b")
        for _ in range(3):
            await service.boost_strength("claw_a", "claw_b", "message")

        clock.advance(days=1)
        assert await service.boost_strength("claw_a", "claw_b", "message") is not None

    @pytest.mark.asyncio
    async def test_partial_boost_at_cap(self, service):
        await service.initialize_relationship("claw_a", "claw_b")
        for _ in range(5):
            await service.boost_strength("claw_a", "claw_b", "reaction")  # 0.10 total

        before = await service.get_strength("claw_a", "claw_b")
        after = await service.boost_strength("claw_a", "claw_b", "pearl_share")
        assert after == pytest.approx(before * compute_decay_rate(before) + 0.05)

    @pytest.mark.asyncio
    async def test_never_exceeds_one(self, service):
        await service.initialize_relationship("claw_a", "claw_b")
        await service.store.update_strength("claw_a", "claw_b", 1.0)

        assert await service.boost_strength("claw_a", "claw_b", "pearl_share") == 1.0

    @pytest.mark.asyncio
    async def test_missing_pair(self, service):
        assert await service.boost_strength("claw_a", "claw_b", "message") is None

    @pytest.mark.asyncio
    async def test_unknown_interaction(self, service):
        await service.initialize_relationship("claw_a", "claw_b")
        with pytest.raises(ValidationException):
            await service.boost_strength("claw_a", "claw_b", "wave")


class TestDecayAndReclassify:
    """Test batch decay and layer assignment."""

    @pytest.mark.asyncio
    async def test_decay_all_lowers_strength(self, service):
        await service.initialize_relationship("claw_a", "claw_b")
        await service.initialize_relationship("claw_b", "claw_a")

        assert await service.decay_all() == 2
        assert await service.get_strength("claw_a", "claw_b") == pytest.approx(0.5 * compute_decay_rate(0.5))

    @pytest.mark.asyncio
    async def test_decay_moves_layer_down(self, service, layer_events):
        await service.initialize_relationship("claw_a", "claw_b")
        await service.store.update_strength("claw_a", "claw_b", 0.3001)

        await service.decay_all()

        record = await service.get_relationship("claw_a", "claw_b")
        assert record.dunbar_layer == DunbarLayer.CASUAL
        assert layer_events == [
            {
                "claw_id": "claw_a",
                "friend_id": "claw_b",
                "old_layer": "active",
                "new_layer": "casual",
                "strength": pytest.approx(record.strength),
            }
        ]

    @pytest.mark.asyncio
    async def test_core_size_limit(self, service):
        friends = [f"claw_f{i}" for i in range(6)]
        for i, friend in enumerate(friends):
            await service.initialize_relationship("claw_a", friend)
            await service.store.update_strength("claw_a", friend, 0.95 - i * 0.01)

        changes = await service.reclassify_layers("claw_a")

        grouped = await service.get_friends_by_layer("claw_a")
        assert len(grouped[DunbarLayer.CORE]) == 5
        assert [r.friend_id for r in grouped[DunbarLayer.SYMPATHY]] == ["claw_f5"]
        assert len(changes) == 6

    @pytest.mark.asyncio
    async def test_reclassify_without_change_emits_nothing(self, service, layer_events):
        await service.initialize_relationship("claw_a", "claw_b")
        assert await service.reclassify_layers("claw_a") == []
        assert layer_events == []

    @pytest.mark.asyncio
    async def test_decay_isolates_owner_failures(self, service, monkeypatch):
        await service.initialize_relationship("claw_a", "claw_b")
        await service.initialize_relationship("claw_c", "claw_d")
        await service.store.update_strength("claw_c", "claw_d", 0.3001)

        original = service.reclassify_layers

        async def flaky(claw_id):
            if claw_id == "claw_a":
                raise RuntimeError("boom")
            return await original(claw_id)

        monkeypatch.setattr(service, "reclassify_layers", flaky)

        assert await service.decay_all() == 2
        record = await service.get_relationship("claw_c", "claw_d")
        assert record.dunbar_layer == DunbarLayer.CASUAL


class TestManualOverride:
    """Test pinned layers."""

    @pytest.mark.asyncio
    async def test_pinned_layer_survives_decay(self, service, layer_events):
        await service.initialize_relationship("claw_a", "claw_b")

        change = await service.set_manual_layer("claw_a", "claw_b", "core")
        assert change.old_layer == DunbarLayer.ACTIVE
        assert change.new_layer == DunbarLayer.CORE

        for _ in range(50):
            await service.decay_all()

        record = await service.get_relationship("claw_a", "claw_b")
        assert record.dunbar_layer == DunbarLayer.CORE
        assert record.manual_override is True
        assert record.strength < 0.5
        assert len(layer_events) == 1

    @pytest.mark.asyncio
    async def test_same_layer_returns_none_but_pins(self, service):
        await service.initialize_relationship("claw_a", "claw_b")

        assert await service.set_manual_layer("claw_a", "claw_b", DunbarLayer.ACTIVE) is None
        record = await service.get_relationship("claw_a", "claw_b")
        assert record.manual_override is True

    @pytest.mark.asyncio
    async def test_invalid_layer(self, service):
        await service.initialize_relationship("claw_a", "claw_b")
        with pytest.raises(ValidationException) as exc_info:
            await service.set_manual_layer("claw_a", "claw_b", "bestie")
        assert exc_info.value.field == "layer"

    @pytest.mark.asyncio
    async def test_missing_relationship(self, service):
        with pytest.raises(NotFoundError):
            await service.set_manual_layer("claw_a", "claw_b", "core")

    @pytest.mark.asyncio
    async def test_clear_override_reclassifies(self, service):
        await service.initialize_relationship("claw_a", "claw_b")
        await service.set_manual_layer("claw_a", "claw_b", "core")

        changes = await service.clear_manual_override("claw_a", "claw_b")

        record = await service.get_relationship("claw_a", "claw_b")
        assert record.manual_override is False
        assert record.dunbar_layer == DunbarLayer.ACTIVE
        assert [c.new_layer for c in changes] == [DunbarLayer.ACTIVE]

    @pytest.mark.asyncio
    async def test_clear_override_missing(self, service):
        with pytest.raises(NotFoundError):
            await service.clear_manual_override("claw_a", "claw_b")


class TestAtRisk:
    """Test at-risk detection."""

    @pytest.mark.asyncio
    async def test_near_floor_without_interaction(self, service):
        await service.initialize_relationship("claw_a", "claw_b")
        await service.store.update_strength("claw_a", "claw_b", 0.62)
        await service.reclassify_layers("claw_a")

        at_risk = await service.get_at_risk("claw_a")

        assert len(at_risk) == 1
        item = at_risk[0]
        assert item.friend_id == "claw_b"
        assert item.current_layer == DunbarLayer.SYMPATHY
        assert item.layer_floor == 0.6
        assert item.days_since_last_interaction == 8

    @pytest.mark.asyncio
    async def test_weak_casual_relationship_is_at_risk(self, service):
        await service.initialize_relationship("claw_a", "claw_b")
        await service.store.update_strength("claw_a", "claw_b", 0.03)
        await service.reclassify_layers("claw_a")

        at_risk = await service.get_at_risk("claw_a")

        assert [r.friend_id for r in at_risk] == ["claw_b"]
        assert at_risk[0].current_layer == DunbarLayer.CASUAL
        assert at_risk[0].layer_floor == 0.0

    @pytest.mark.asyncio
    async def test_strength_at_layer_floor_is_not_at_risk(self, service):
        await service.initialize_relationship("claw_a", "claw_b")
        await service.store.update_strength("claw_a", "claw_b", 0.6)
        await service.reclassify_layers("claw_a")

        assert (await service.get_relationship("claw_a", "claw_b")).dunbar_layer == DunbarLayer.SYMPATHY
        assert await service.get_at_risk("claw_a") == []

    @pytest.mark.asyncio
    async def test_recent_interaction_is_safe(self, service):
        await service.initialize_relationship("claw_a", "claw_b")
        await service.store.update_strength("claw_a", "claw_b", 0.62)
        await service.reclassify_layers("claw_a")
        await service.touch_interaction("claw_a", "claw_b")

        assert await service.get_at_risk("claw_a") == []

    @pytest.mark.asyncio
    async def test_stale_interaction_reports_days(self, service, clock):
        await service.initialize_relationship("claw_a", "claw_b")
        await service.store.update_strength("claw_a", "claw_b", 0.31)
        await service.touch_interaction("claw_a", "claw_b")

        clock.advance(days=10)
        at_risk = await service.get_at_risk("claw_a")
        assert [r.days_since_last_interaction for r in at_risk] == [10]

    @pytest.mark.asyncio
    async def test_sorted_weakest_first(self, service):
        for friend, strength in (("claw_b", 0.64), ("claw_c", 0.61)):
            await service.initialize_relationship("claw_a", friend)
            await service.store.update_strength("claw_a", friend, strength)
        await service.reclassify_layers("claw_a")

        at_risk = await service.get_at_risk("claw_a")
        assert [r.friend_id for r in at_risk] == ["claw_c", "claw_b"]

    @pytest.mark.asyncio
    async def test_custom_thresholds(self, service, clock):
        await service.initialize_relationship("claw_a", "claw_b")
        await service.store.update_strength("claw_a", "claw_b", 0.4)
        await service.touch_interaction("claw_a", "claw_b")
        clock.advance(days=3)

        assert await service.get_at_risk("claw_a") == []
        assert len(await service.get_at_risk("claw_a", margin=0.15, inactive_days=2)) == 1
