"""Relationship decay and Dunbar layer thresholds.

Decay is applied per tick as ``strength * rate(strength)``. The rate is
piecewise linear, continuous at every breakpoint and non-decreasing, so
stronger relationships lose proportionally less per tick:

    s in [0.0, 0.3):  rate = 0.95  + s * 0.10
    s in [0.3, 0.6):  rate = 0.98  + (s - 0.3) * 0.05
    s in [0.6, 0.8):  rate = 0.995 + (s - 0.6) * 0.02
    s in [0.8, 1.0]:  rate = 0.999
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from .models import DunbarLayer

MIN_STRENGTH = 0.01  # decayed strength never reaches zero
MAX_STRENGTH = 1.0
DEFAULT_STRENGTH = 0.5

# Lower strength bound of each layer
LAYER_THRESHOLDS: dict[DunbarLayer, float] = {
    DunbarLayer.CORE: 0.8,
    DunbarLayer.SYMPATHY: 0.6,
    DunbarLayer.ACTIVE: 0.3,
    DunbarLayer.CASUAL: 0.0,
}

# Maximum members per layer (each layer excludes the ones above it)
LAYER_SIZE_LIMITS: dict[DunbarLayer, float] = {
    DunbarLayer.CORE: 5,
    DunbarLayer.SYMPATHY: 15,
    DunbarLayer.ACTIVE: 50,
    DunbarLayer.CASUAL: float("inf"),
}

# Closest first
LAYER_ORDER: list[DunbarLayer] = [
    DunbarLayer.CORE,
    DunbarLayer.SYMPATHY,
    DunbarLayer.ACTIVE,
    DunbarLayer.CASUAL,
]

DecayRateFn = Callable[[float], float]


def compute_decay_rate(strength: float) -> float:
    """Per-tick multiplier for a relationship of the given strength."""
    if strength < 0.3:
        return 0.95 + strength * 0.10
    if strength < 0.6:
        return 0.98 + (strength - 0.3) * 0.05
    if strength < 0.8:
        return 0.995 + (strength - 0.6) * 0.02
    return 0.999


def apply_decay(strength: float, rate_fn: DecayRateFn = compute_decay_rate) -> float:
    """One decay tick, floored at MIN_STRENGTH."""
    return max(MIN_STRENGTH, strength * rate_fn(strength))


def classify_layer(strength: float) -> DunbarLayer:
    """Closest layer whose threshold ``strength`` meets, ignoring size limits."""
    for layer in LAYER_ORDER:
        if strength >= LAYER_THRESHOLDS[layer]:
            return layer
    return DunbarLayer.CASUAL


def is_at_risk(
    layer: DunbarLayer,
    strength: float,
    last_interaction_at: datetime | None,
    margin: float,
    cutoff: datetime,
) -> bool:
    """True when a relationship sits strictly above its layer floor but no
    more than ``margin`` above it, and has had no interaction since ``cutoff``.

    A relationship exactly at its floor is not at risk.
    """
    if last_interaction_at is not None and last_interaction_at >= cutoff:
        return False
    floor = LAYER_THRESHOLDS[layer]
    return strength > floor and strength - floor <= margin
