"""Pure trust scoring functions."""

from __future__ import annotations

from collections.abc import Iterable

from .models import TRUST_W_DAMPENING, TRUST_WEIGHTS, WitnessInput, clamp_score


def compute_composite(q: float, h: float | None, n: float, w: float) -> float:
    """Weighted composite of the four dimensions, clamped to [0, 1].

    When H is None (never endorsed) the Q, N and W weights are renormalised
    so an absent endorsement does not count as a zero endorsement.
    """
    if h is not None:
        composite = (
            TRUST_WEIGHTS["q"] * q
            + TRUST_WEIGHTS["h"] * h
            + TRUST_WEIGHTS["n"] * n
            + TRUST_WEIGHTS["w"] * w
        )
    else:
        total = TRUST_WEIGHTS["q"] + TRUST_WEIGHTS["n"] + TRUST_WEIGHTS["w"]
        composite = (TRUST_WEIGHTS["q"] * q + TRUST_WEIGHTS["n"] * n + TRUST_WEIGHTS["w"] * w) / total
    return clamp_score(composite)


def witness_contribution(witness: WitnessInput, dampening: float = TRUST_W_DAMPENING) -> float:
    """A single witness's dampened contribution."""
    return witness.trust_in_witness * witness.witness_trust_in_target * dampening


def aggregate_witness_score(
    witnesses: Iterable[WitnessInput],
    dampening: float = TRUST_W_DAMPENING,
) -> float:
    """Mean dampened contribution across witnesses; 0.0 with no witnesses."""
    contributions = [witness_contribution(w, dampening) for w in witnesses]
    if not contributions:
        return 0.0
    return clamp_score(sum(contributions) / len(contributions))
