"""Relationship strength data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from ..core.exceptions import ValidationException


class DunbarLayer(str, Enum):
    """Closeness tiers, closest first."""

    CORE = "core"
    SYMPATHY = "sympathy"
    ACTIVE = "active"
    CASUAL = "casual"

    @classmethod
    def parse(cls, value: str | DunbarLayer) -> DunbarLayer:
        """Convert a string to a layer, raising ValidationException if unknown."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            allowed = ", ".join(layer.value for layer in cls)
            raise ValidationException(
                f"Invalid layer. Must be one of: {allowed}", field="layer", value=value
            ) from None


class InteractionType(str, Enum):
    """Interactions that boost relationship strength."""

    MESSAGE = "message"
    REACTION = "reaction"
    HEARTBEAT = "heartbeat"
    PEARL_SHARE = "pearl_share"
    POLL_VOTE = "poll_vote"


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class RelationshipStrengthRecord:
    """Strength of one directed friend pair (claw_id -> friend_id)."""

    claw_id: str
    friend_id: str
    strength: float = 0.5
    dunbar_layer: DunbarLayer = DunbarLayer.ACTIVE
    manual_override: bool = False
    last_interaction_at: datetime | None = None
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "claw_id": self.claw_id,
            "friend_id": self.friend_id,
            "strength": self.strength,
            "dunbar_layer": self.dunbar_layer.value,
            "manual_override": self.manual_override,
            "last_interaction_at": self.last_interaction_at.isoformat() if self.last_interaction_at else None,
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class LayerChange:
    """A layer transition produced by reclassification or a manual override."""

    friend_id: str
    old_layer: DunbarLayer
    new_layer: DunbarLayer
    strength: float


@dataclass
class AtRiskRelationship:
    """A relationship close to dropping a layer through neglect."""

    friend_id: str
    strength: float
    current_layer: DunbarLayer
    layer_floor: float  # strength below which the relationship drops a layer
    days_since_last_interaction: int
    manual_override: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "friend_id": self.friend_id,
            "strength": self.strength,
            "current_layer": self.current_layer.value,
            "layer_floor": self.layer_floor,
            "days_since_last_interaction": self.days_since_last_interaction,
            "manual_override": self.manual_override,
        }
