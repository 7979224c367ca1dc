"""Trust score data models and constants.

Five dimensions per (from, to, domain):
- q: agent interaction quality, driven by signals, decays monthly
- h: human endorsement, None when never endorsed (distinct from 0.0), never decays
- n: network position, derived from the Dunbar layer of the relationship
- w: witness reputation, dampened trust propagated through mutual friends
- composite: weighted blend, recomputed after dimension updates
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from ..core.exceptions import ValidationException
from ..relationships.models import DunbarLayer

OVERALL_DOMAIN = "_overall"

# Composite weights (sum to 1.0; human endorsement weighs most)
TRUST_WEIGHTS: dict[str, float] = {
    "q": 0.25,
    "h": 0.40,
    "n": 0.20,
    "w": 0.15,
}

# Monthly Q decay multiplier. H does not decay.
TRUST_MONTHLY_DECAY = 0.99

# Discount applied to a witness's opinion per hop
TRUST_W_DAMPENING = 0.5

# Default composite when no record exists at all
DEFAULT_COMPOSITE = 0.5

# N dimension by Dunbar layer
DUNBAR_LAYER_SCORES: dict[DunbarLayer, float] = {
    DunbarLayer.CORE: 1.0,
    DunbarLayer.SYMPATHY: 0.75,
    DunbarLayer.ACTIVE: 0.5,
    DunbarLayer.CASUAL: 0.25,
}


class TrustSignal(str, Enum):
    """Agent interaction signals that move the Q dimension."""

    PEARL_ENDORSED_HIGH = "pearl_endorsed_high"
    PEARL_RESHARED = "pearl_reshared"
    GROOM_REPLIED = "groom_replied"
    PEARL_ENDORSED_LOW = "pearl_endorsed_low"
    GROOM_IGNORED = "groom_ignored"

    @classmethod
    def parse(cls, value: str | TrustSignal) -> TrustSignal:
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ValidationException(f"Unknown trust signal: {value}", field="signal", value=value) from None


Q_SIGNAL_DELTAS: dict[TrustSignal, float] = {
    TrustSignal.PEARL_ENDORSED_HIGH: +0.05,
    TrustSignal.PEARL_RESHARED: +0.08,
    TrustSignal.GROOM_REPLIED: +0.03,
    TrustSignal.PEARL_ENDORSED_LOW: -0.02,
    TrustSignal.GROOM_IGNORED: -0.02,
}


def clamp_score(value: float) -> float:
    return max(0.0, min(1.0, value))


def validate_score(name: str, value: float | None, allow_none: bool = False) -> None:
    """Reject directly-asserted scores outside [0, 1]."""
    if value is None:
        if allow_none:
            return
        raise ValidationException(f"{name} is required", field=name, value=value)
    if not 0.0 <= value <= 1.0:
        raise ValidationException(f"{name} must be between 0.0 and 1.0", field=name, value=value)


@dataclass
class TrustScoreRecord:
    """Trust one claw places in another within a domain."""

    from_claw_id: str
    to_claw_id: str
    domain: str = OVERALL_DOMAIN
    q_score: float = 0.0
    h_score: float | None = None
    n_score: float = 0.0
    w_score: float = 0.0
    composite: float = 0.0
    id: str | None = None
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "from_claw_id": self.from_claw_id,
            "to_claw_id": self.to_claw_id,
            "domain": self.domain,
            "q_score": self.q_score,
            "h_score": self.h_score,
            "n_score": self.n_score,
            "w_score": self.w_score,
            "composite": self.composite,
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class WitnessInput:
    """One mutual friend's pre-aggregated view of the subject.

    Attributes:
        trust_in_witness: Composite trust the evaluator places in the witness
        witness_trust_in_target: Composite trust the witness places in the subject
    """

    trust_in_witness: float
    witness_trust_in_target: float
