"""Relationship strength service.

Owns the lifecycle of per-pair strength records: creation on friendship,
interaction boosts, batch decay with Dunbar layer reclassification, at-risk
detection and manual layer overrides.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from ..core.config import ClawbudsConfig
from ..core.events import RELATIONSHIP_LAYER_CHANGED, EventBus
from ..core.exceptions import NotFoundError, ValidationException
from .decay import (
    DEFAULT_STRENGTH,
    LAYER_ORDER,
    LAYER_SIZE_LIMITS,
    LAYER_THRESHOLDS,
    MAX_STRENGTH,
    classify_layer,
    compute_decay_rate,
)
from .models import (
    AtRiskRelationship,
    DunbarLayer,
    InteractionType,
    LayerChange,
    RelationshipStrengthRecord,
    utcnow,
)

if TYPE_CHECKING:
    from ..storage.protocols import RelationshipStore

logger = logging.getLogger(__name__)

BOOST_WEIGHTS: dict[InteractionType, float] = {
    InteractionType.MESSAGE: 0.05,
    InteractionType.REACTION: 0.02,
    InteractionType.HEARTBEAT: 0.005,
    InteractionType.PEARL_SHARE: 0.08,
    InteractionType.POLL_VOTE: 0.03,
}


class RelationshipService:
    """Relationship strength and Dunbar layer management.

    Automatic reclassification never touches records with
    ``manual_override`` set; only ``set_manual_layer`` and
    ``clear_manual_override`` change those.
    """

    def __init__(
        self,
        store: RelationshipStore,
        event_bus: EventBus,
        config: ClawbudsConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.event_bus = event_bus
        self.config = config or ClawbudsConfig()
        self._clock = clock or utcnow
        # (claw_id, friend_id, YYYY-MM-DD) -> boost accumulated that day
        self._daily_boosts: dict[tuple[str, str, str], float] = {}

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def initialize_relationship(self, claw_id: str, friend_id: str) -> RelationshipStrengthRecord:
        """Create the record for a new friendship. No-op if it already exists."""
        existing = await self.store.get(claw_id, friend_id)
        if existing is not None:
            return existing

        record = RelationshipStrengthRecord(
            claw_id=claw_id,
            friend_id=friend_id,
            strength=DEFAULT_STRENGTH,
            dunbar_layer=classify_layer(DEFAULT_STRENGTH),
            manual_override=False,
            updated_at=self._clock(),
        )
        await self.store.create(record)
        logger.debug(f"Initialized relationship {claw_id} -> {friend_id}")
        return record

    async def remove_relationship(self, claw_id: str, friend_id: str) -> bool:
        """Delete the record when the friendship ends."""
        removed = await self.store.delete(claw_id, friend_id)
        return removed > 0

    async def get_relationship(self, claw_id: str, friend_id: str) -> RelationshipStrengthRecord | None:
        return await self.store.get(claw_id, friend_id)

    async def get_strength(self, claw_id: str, friend_id: str) -> float:
        """Current strength, or 0.0 when the pair has no record."""
        record = await self.store.get(claw_id, friend_id)
        return record.strength if record else 0.0

    # =========================================================================
    # Interactions
    # =========================================================================

    async def touch_interaction(self, claw_id: str, friend_id: str) -> bool:
        """Record that the pair just interacted. Strength is not changed."""
        return await self.store.touch_interaction(claw_id, friend_id, self._clock()) > 0

    async def boost_strength(
        self,
        claw_id: str,
        friend_id: str,
        interaction_type: InteractionType | str,
    ) -> float | None:
        """Boost strength for an interaction, capped per pair per day.

        The record is decayed one step before the boost is added, so frequent
        interaction holds strength up rather than simply accumulating.

        Returns:
            The new strength, or None if the pair has no record or the daily
            cap is exhausted.

        Raises:
            ValidationException: If ``interaction_type`` is unknown
        """
        try:
            interaction = InteractionType(interaction_type)
        except ValueError:
            raise ValidationException(
                f"Unknown interaction type: {interaction_type}",
                field="interaction_type",
                value=interaction_type,
            ) from None

        record = await self.store.get(claw_id, friend_id)
        if record is None:
            return None

        now = self._clock()
        key = (claw_id, friend_id, now.date().isoformat())
        accumulated = self._daily_boosts.get(key, 0.0)
        available = max(0.0, self.config.boost_daily_cap - accumulated)
        boost = min(BOOST_WEIGHTS[interaction], available)
        if boost <= 0:
            return None

        new_strength = min(MAX_STRENGTH, record.strength * compute_decay_rate(record.strength) + boost)
        self._daily_boosts[key] = accumulated + boost

        await self.store.update_strength(claw_id, friend_id, new_strength)
        await self.store.touch_interaction(claw_id, friend_id, now)
        return new_strength

    # =========================================================================
    # Decay and layers
    # =========================================================================

    async def decay_all(self) -> int:
        """Decay every relationship, then reclassify each owner's layers.

        A failure while reclassifying one owner is logged and the remaining
        owners are still processed.
        """
        decayed = await self.store.decay_all(compute_decay_rate)

        for claw_id in await self.store.list_owners():
            try:
                await self.reclassify_layers(claw_id)
            except Exception as e:
                logger.error(f"Layer reclassification failed for {claw_id}: {e}")

        self._prune_daily_boosts()
        logger.info(f"Decayed {decayed} relationships")
        return decayed

    async def reclassify_layers(self, claw_id: str) -> list[LayerChange]:
        """Reassign layers by strength rank, respecting thresholds and size limits."""
        records = await self.store.list_for_claw(claw_id)
        records.sort(key=lambda r: r.strength, reverse=True)
        counts = {layer: 0 for layer in LAYER_ORDER}
        changes: list[LayerChange] = []

        for record in records:
            if record.manual_override:
                continue

            assigned = DunbarLayer.CASUAL
            for layer in LAYER_ORDER:
                if record.strength >= LAYER_THRESHOLDS[layer] and counts[layer] < LAYER_SIZE_LIMITS[layer]:
                    assigned = layer
                    break
            counts[assigned] += 1

            if assigned != record.dunbar_layer:
                change = LayerChange(
                    friend_id=record.friend_id,
                    old_layer=record.dunbar_layer,
                    new_layer=assigned,
                    strength=record.strength,
                )
                changes.append(change)
                await self.store.update_layer(claw_id, record.friend_id, assigned, False)
                self._emit_layer_changed(claw_id, change)

        return changes

    async def get_at_risk(
        self,
        claw_id: str,
        margin: float | None = None,
        inactive_days: int | None = None,
    ) -> list[AtRiskRelationship]:
        """Relationships about to drop a layer through neglect.

        A relationship is at risk when its strength is within ``margin`` above
        the floor of its current layer and nobody has interacted for more than
        ``inactive_days``.
        """
        margin = self.config.atrisk_margin if margin is None else margin
        inactive_days = self.config.atrisk_inactive_days if inactive_days is None else inactive_days
        now = self._clock()
        cutoff = now - timedelta(days=inactive_days)

        records = await self.store.get_at_risk(claw_id, margin, cutoff)
        result = []
        for record in records:
            if record.last_interaction_at is not None:
                days_since = math.floor((now - record.last_interaction_at).total_seconds() / 86400)
            else:
                days_since = inactive_days + 1
            result.append(
                AtRiskRelationship(
                    friend_id=record.friend_id,
                    strength=record.strength,
                    current_layer=record.dunbar_layer,
                    layer_floor=LAYER_THRESHOLDS[record.dunbar_layer],
                    days_since_last_interaction=days_since,
                    manual_override=record.manual_override,
                )
            )
        result.sort(key=lambda r: r.strength)
        return result

    async def set_manual_layer(
        self, claw_id: str, friend_id: str, layer: DunbarLayer | str
    ) -> LayerChange | None:
        """Pin a friend to a layer and suppress automatic reclassification.

        Raises:
            ValidationException: If ``layer`` is not a Dunbar layer
            NotFoundError: If the pair has no relationship record
        """
        target = DunbarLayer.parse(layer)
        record = await self.store.get(claw_id, friend_id)
        if record is None:
            raise NotFoundError("Relationship", f"{claw_id}:{friend_id}")

        await self.store.update_layer(claw_id, friend_id, target, True)
        if record.dunbar_layer == target:
            return None

        change = LayerChange(
            friend_id=friend_id,
            old_layer=record.dunbar_layer,
            new_layer=target,
            strength=record.strength,
        )
        self._emit_layer_changed(claw_id, change)
        return change

    async def clear_manual_override(self, claw_id: str, friend_id: str) -> list[LayerChange]:
        """Return a pinned friend to automatic classification.

        Raises:
            NotFoundError: If the pair has no relationship record
        """
        record = await self.store.get(claw_id, friend_id)
        if record is None:
            raise NotFoundError("Relationship", f"{claw_id}:{friend_id}")
        await self.store.update_layer(claw_id, friend_id, record.dunbar_layer, False)
        return await self.reclassify_layers(claw_id)

    async def get_friends_by_layer(self, claw_id: str) -> dict[DunbarLayer, list[RelationshipStrengthRecord]]:
        """Group a claw's relationships by layer, strongest first in each."""
        grouped: dict[DunbarLayer, list[RelationshipStrengthRecord]] = {layer: [] for layer in LAYER_ORDER}
        for record in await self.store.list_for_claw(claw_id):
            grouped[record.dunbar_layer].append(record)
        return grouped

    def _emit_layer_changed(self, claw_id: str, change: LayerChange) -> None:
        payload: dict[str, Any] = {
            "claw_id": claw_id,
            "friend_id": change.friend_id,
            "old_layer": change.old_layer.value,
            "new_layer": change.new_layer.value,
            "strength": change.strength,
        }
        self.event_bus.emit(RELATIONSHIP_LAYER_CHANGED, payload)

    def _prune_daily_boosts(self) -> None:
        today = self._clock().date().isoformat()
        self._daily_boosts = {k: v for k, v in self._daily_boosts.items() if k[2] == today}
