"""Five-dimensional trust scoring."""

from clawbuds.trust.models import (
    DEFAULT_COMPOSITE,
    DUNBAR_LAYER_SCORES,
    OVERALL_DOMAIN,
    Q_SIGNAL_DELTAS,
    TRUST_MONTHLY_DECAY,
    TRUST_W_DAMPENING,
    TRUST_WEIGHTS,
    TrustScoreRecord,
    TrustSignal,
    WitnessInput,
)
from clawbuds.trust.scoring import aggregate_witness_score, compute_composite, witness_contribution
from clawbuds.trust.service import EndorsementResult, TrustService

__all__ = [
    "DEFAULT_COMPOSITE",
    "DUNBAR_LAYER_SCORES",
    "EndorsementResult",
    "OVERALL_DOMAIN",
    "Q_SIGNAL_DELTAS",
    "TRUST_MONTHLY_DECAY",
    "TRUST_WEIGHTS",
    "TRUST_W_DAMPENING",
    "TrustScoreRecord",
    "TrustService",
    "TrustSignal",
    "WitnessInput",
    "aggregate_witness_score",
    "compute_composite",
    "witness_contribution",
]
