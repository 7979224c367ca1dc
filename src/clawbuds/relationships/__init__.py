"""Relationship strength, decay and Dunbar layers."""

from clawbuds.relationships.decay import (
    DEFAULT_STRENGTH,
    LAYER_ORDER,
    LAYER_SIZE_LIMITS,
    LAYER_THRESHOLDS,
    MIN_STRENGTH,
    apply_decay,
    classify_layer,
    compute_decay_rate,
    is_at_risk,
)
from clawbuds.relationships.models import (
    AtRiskRelationship,
    DunbarLayer,
    InteractionType,
    LayerChange,
    RelationshipStrengthRecord,
)
from clawbuds.relationships.service import BOOST_WEIGHTS, RelationshipService

__all__ = [
    "AtRiskRelationship",
    "BOOST_WEIGHTS",
    "DEFAULT_STRENGTH",
    "DunbarLayer",
    "InteractionType",
    "LAYER_ORDER",
    "LAYER_SIZE_LIMITS",
    "LAYER_THRESHOLDS",
    "LayerChange",
    "MIN_STRENGTH",
    "RelationshipService",
    "RelationshipStrengthRecord",
    "apply_decay",
    "classify_layer",
    "compute_decay_rate",
    "is_at_risk",
]
