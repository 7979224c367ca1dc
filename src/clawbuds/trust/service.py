"""Trust scoring service.

Maintains the five-dimensional trust record per (from, to, domain):
Q from agent interaction signals, H from human endorsement, N from the
relationship's Dunbar layer, W from dampened witness opinions, and the
composite derived from those four.

Signal application, endorsement and dimension recalculation for a pair are
serialised with a per-pair lock, so a composite is never computed from a
half-applied update of the same pair. ``update_q_score`` and
``update_composite`` remain available as separate steps for batch callers
that defer recomputation until all dimension updates of a tick are applied.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ..core.events import TRUST_UPDATED, EventBus
from ..core.locks import KeyedLocks
from .models import (
    DEFAULT_COMPOSITE,
    DUNBAR_LAYER_SCORES,
    OVERALL_DOMAIN,
    Q_SIGNAL_DELTAS,
    TRUST_MONTHLY_DECAY,
    TRUST_W_DAMPENING,
    TrustScoreRecord,
    TrustSignal,
    WitnessInput,
    validate_score,
)
from .scoring import aggregate_witness_score, compute_composite

if TYPE_CHECKING:
    from ..relationships.service import RelationshipService
    from ..storage.protocols import TrustStore

logger = logging.getLogger(__name__)

# Distinguishes "leave H alone" from "clear H" (None)
_UNSET: Any = object()


@dataclass
class EndorsementResult:
    """Outcome of setting a human endorsement."""

    trust_score: TrustScoreRecord
    old_composite: float
    new_composite: float


class TrustService:
    """Service for reading and updating trust scores."""

    def __init__(
        self,
        store: TrustStore,
        event_bus: EventBus,
        relationships: RelationshipService | None = None,
    ):
        self.store = store
        self.event_bus = event_bus
        self.relationships = relationships
        self._locks = KeyedLocks()

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_composite(self, from_claw_id: str, to_claw_id: str, domain: str = OVERALL_DOMAIN) -> float:
        """Composite for a domain, falling back to ``_overall`` and then 0.5."""
        if domain != OVERALL_DOMAIN:
            record = await self.store.get(from_claw_id, to_claw_id, domain)
            if record is not None:
                return record.composite
        overall = await self.store.get(from_claw_id, to_claw_id, OVERALL_DOMAIN)
        return overall.composite if overall else DEFAULT_COMPOSITE

    async def get_score(
        self, from_claw_id: str, to_claw_id: str, domain: str = OVERALL_DOMAIN
    ) -> TrustScoreRecord | None:
        return await self.store.get(from_claw_id, to_claw_id, domain)

    async def get_by_domain(self, from_claw_id: str, to_claw_id: str) -> list[TrustScoreRecord]:
        return await self.store.list_domains(from_claw_id, to_claw_id)

    async def get_all_for_claw(self, from_claw_id: str, domain: str | None = None) -> list[TrustScoreRecord]:
        return await self.store.list_for_claw(from_claw_id, domain)

    async def get_top_domains(self, from_claw_id: str, to_claw_id: str, limit: int = 5) -> list[TrustScoreRecord]:
        """A pair's domains ranked by composite, highest first."""
        return await self.store.top_domains(from_claw_id, to_claw_id, max(1, limit))

    # =========================================================================
    # Writes
    # =========================================================================

    async def upsert(
        self,
        from_claw_id: str,
        to_claw_id: str,
        domain: str = OVERALL_DOMAIN,
        q_score: float | None = None,
        h_score: float | None = _UNSET,
        n_score: float | None = None,
        w_score: float | None = None,
    ) -> TrustScoreRecord:
        """Create or update a domain record and recompute its composite.

        Dimensions not given keep their stored value, or on first creation
        default to Q=0, H=None, N=0, W=0. Passing ``h_score=None`` clears an
        endorsement.

        Raises:
            ValidationException: If a given score is outside [0, 1]
        """
        for name, value in (("q_score", q_score), ("n_score", n_score), ("w_score", w_score)):
            if value is not None:
                validate_score(name, value)
        if h_score is not _UNSET:
            validate_score("h_score", h_score, allow_none=True)

        async with self._locks.hold((from_claw_id, to_claw_id)):
            return await self._upsert(from_claw_id, to_claw_id, domain, q_score, h_score, n_score, w_score)

    async def _upsert(
        self,
        from_claw_id: str,
        to_claw_id: str,
        domain: str,
        q_score: float | None = None,
        h_score: float | None = _UNSET,
        n_score: float | None = None,
        w_score: float | None = None,
    ) -> TrustScoreRecord:
        existing = await self.store.get(from_claw_id, to_claw_id, domain)
        record = existing or TrustScoreRecord(from_claw_id=from_claw_id, to_claw_id=to_claw_id, domain=domain)
        if q_score is not None:
            record.q_score = q_score
        if h_score is not _UNSET:
            record.h_score = h_score
        if n_score is not None:
            record.n_score = n_score
        if w_score is not None:
            record.w_score = w_score
        record.composite = compute_composite(record.q_score, record.h_score, record.n_score, record.w_score)
        return await self.store.upsert(record)

    async def _ensure_record(self, from_claw_id: str, to_claw_id: str, domain: str) -> TrustScoreRecord:
        existing = await self.store.get(from_claw_id, to_claw_id, domain)
        if existing is not None:
            return existing
        return await self._upsert(from_claw_id, to_claw_id, domain)

    async def update_q_score(self, from_claw_id: str, to_claw_id: str, domain: str, delta: float) -> int:
        """Add ``delta`` to Q (clamped). The composite is left stale.

        Returns 0 when the record does not exist.
        """
        return await self.store.update_q_score(from_claw_id, to_claw_id, domain, delta)

    async def update_composite(self, from_claw_id: str, to_claw_id: str, domain: str) -> float | None:
        """Recompute and persist the composite from the stored dimensions."""
        record = await self.store.get(from_claw_id, to_claw_id, domain)
        if record is None:
            return None
        composite = compute_composite(record.q_score, record.h_score, record.n_score, record.w_score)
        await self.store.update_composite(from_claw_id, to_claw_id, domain, composite)
        return composite

    async def apply_signal(
        self,
        from_claw_id: str,
        to_claw_id: str,
        signal: TrustSignal | str,
        domain: str = OVERALL_DOMAIN,
    ) -> TrustScoreRecord:
        """Apply an interaction signal to Q on ``_overall`` and on ``domain``.

        Records are created on demand. Composites are recomputed and
        ``trust.updated`` is emitted once both domains are updated.

        Raises:
            ValidationException: If ``signal`` is unknown
        """
        parsed = TrustSignal.parse(signal)
        delta = Q_SIGNAL_DELTAS[parsed]
        domains = [OVERALL_DOMAIN] if domain == OVERALL_DOMAIN else [OVERALL_DOMAIN, domain]

        async with self._locks.hold((from_claw_id, to_claw_id)):
            for d in domains:
                await self._ensure_record(from_claw_id, to_claw_id, d)
                await self.store.update_q_score(from_claw_id, to_claw_id, d, delta)
                await self.update_composite(from_claw_id, to_claw_id, d)
            result = await self.store.get(from_claw_id, to_claw_id, domain)

        self._emit_updated(from_claw_id, to_claw_id, domain, reason=parsed.value, composite=result.composite)
        return result

    async def update_h_score(
        self, from_claw_id: str, to_claw_id: str, domain: str, score: float | None
    ) -> int:
        """Set or clear (``None``) H on an existing record and recompute its composite.

        Returns 0 when the record does not exist.

        Raises:
            ValidationException: If ``score`` is outside [0, 1]
        """
        validate_score("h_score", score, allow_none=True)
        async with self._locks.hold((from_claw_id, to_claw_id)):
            changed = await self.store.update_h_score(from_claw_id, to_claw_id, domain, score)
            if changed:
                await self.update_composite(from_claw_id, to_claw_id, domain)
        return changed

    async def set_h(
        self,
        from_claw_id: str,
        to_claw_id: str,
        score: float | None,
        domain: str = OVERALL_DOMAIN,
    ) -> EndorsementResult:
        """Record a human endorsement, creating the record if needed."""
        validate_score("h_score", score, allow_none=True)
        async with self._locks.hold((from_claw_id, to_claw_id)):
            before = await self._ensure_record(from_claw_id, to_claw_id, domain)
            await self.store.update_h_score(from_claw_id, to_claw_id, domain, score)
            await self.update_composite(from_claw_id, to_claw_id, domain)
            after = await self.store.get(from_claw_id, to_claw_id, domain)

        self._emit_updated(from_claw_id, to_claw_id, domain, reason="endorsement", composite=after.composite)
        return EndorsementResult(trust_score=after, old_composite=before.composite, new_composite=after.composite)

    async def recalculate_n(self, from_claw_id: str, to_claw_id: str) -> float | None:
        """Derive N from the pair's Dunbar layer and write it to every domain.

        Returns the new N, or None when there is no relationship or no trust
        record for the pair.
        """
        if self.relationships is None:
            return None
        relation = await self.relationships.get_relationship(from_claw_id, to_claw_id)
        if relation is None:
            return None

        n_score = DUNBAR_LAYER_SCORES[relation.dunbar_layer]
        async with self._locks.hold((from_claw_id, to_claw_id)):
            records = await self.store.list_domains(from_claw_id, to_claw_id)
            if not records:
                return None
            for record in records:
                await self.store.update_n_score(from_claw_id, to_claw_id, record.domain, n_score)
                await self.update_composite(from_claw_id, to_claw_id, record.domain)
        return n_score

    async def collect_witness_inputs(
        self,
        from_claw_id: str,
        to_claw_id: str,
        mutual_ids: Iterable[str],
        domain: str = OVERALL_DOMAIN,
    ) -> list[WitnessInput]:
        """Build witness inputs from stored composites for the given mutual friends."""
        inputs = []
        for mutual_id in mutual_ids:
            if mutual_id in (from_claw_id, to_claw_id):
                continue
            inputs.append(
                WitnessInput(
                    trust_in_witness=await self.get_composite(from_claw_id, mutual_id, OVERALL_DOMAIN),
                    witness_trust_in_target=await self.get_composite(mutual_id, to_claw_id, domain),
                )
            )
        return inputs

    async def recalculate_w(
        self,
        from_claw_id: str,
        to_claw_id: str,
        witnesses: Iterable[WitnessInput],
        domain: str = OVERALL_DOMAIN,
        dampening: float = TRUST_W_DAMPENING,
    ) -> float | None:
        """Set W from pre-aggregated witness inputs. No witnesses means W=0.

        Returns the new W, or None when the record does not exist.
        """
        w_score = aggregate_witness_score(witnesses, dampening)
        async with self._locks.hold((from_claw_id, to_claw_id)):
            changed = await self.store.update_w_score(from_claw_id, to_claw_id, domain, w_score)
            if not changed:
                return None
            await self.update_composite(from_claw_id, to_claw_id, domain)
        return w_score

    async def decay_all_q(self, decay_rate: float = TRUST_MONTHLY_DECAY, from_claw_id: str | None = None) -> int:
        """Decay Q on every (or one owner's) record and recompute composites.

        H is never decayed.
        """
        decayed = await self.store.decay_all_q(decay_rate, from_claw_id)
        for record in decayed:
            composite = compute_composite(record.q_score, record.h_score, record.n_score, record.w_score)
            await self.store.update_composite(record.from_claw_id, record.to_claw_id, record.domain, composite)
        logger.info(f"Decayed Q on {len(decayed)} trust records")
        return len(decayed)

    # =========================================================================
    # Friendship lifecycle
    # =========================================================================

    async def initialize_relationship(self, from_claw_id: str, to_claw_id: str) -> TrustScoreRecord:
        """Create the ``_overall`` record for a new friendship and seed N."""
        async with self._locks.hold((from_claw_id, to_claw_id)):
            record = await self._ensure_record(from_claw_id, to_claw_id, OVERALL_DOMAIN)
        if await self.recalculate_n(from_claw_id, to_claw_id) is not None:
            record = await self.store.get(from_claw_id, to_claw_id, OVERALL_DOMAIN)
        return record

    async def remove_relationship(self, from_claw_id: str, to_claw_id: str) -> int:
        """Delete every domain record for the directed pair."""
        async with self._locks.hold((from_claw_id, to_claw_id)):
            removed = await self.store.delete(from_claw_id, to_claw_id)
        return removed

    def _emit_updated(self, from_claw_id: str, to_claw_id: str, domain: str, reason: str, composite: float) -> None:
        self.event_bus.emit(
            TRUST_UPDATED,
            {
                "from_claw_id": from_claw_id,
                "to_claw_id": to_claw_id,
                "domain": domain,
                "reason": reason,
                "composite": composite,
            },
        )
