"""Storage protocols consumed by the ClawBuds services.

Services depend only on these operations; concrete adapters (memory,
sqlite) are chosen at startup by ``clawbuds.storage.create_stores``.
Every method is a suspension point.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from ..heartbeat.models import HeartbeatRecord
from ..inbox.models import InboxEntry, InboxStatus
from ..relationships.decay import DecayRateFn
from ..relationships.models import DunbarLayer, RelationshipStrengthRecord
from ..trust.models import TrustScoreRecord


class RelationshipStore(Protocol):
    """Per-pair relationship strength rows."""

    async def get(self, claw_id: str, friend_id: str) -> RelationshipStrengthRecord | None:
        """Get one directed pair."""
        ...

    async def list_for_claw(self, claw_id: str) -> list[RelationshipStrengthRecord]:
        """All relationships owned by ``claw_id``, strongest first."""
        ...

    async def create(self, record: RelationshipStrengthRecord) -> None:
        """Insert a new record. Raises ConflictError if the pair exists."""
        ...

    async def update_strength(self, claw_id: str, friend_id: str, strength: float) -> int:
        """Set strength; returns rows changed."""
        ...

    async def update_layer(
        self, claw_id: str, friend_id: str, layer: DunbarLayer, manual_override: bool
    ) -> int:
        """Set layer and override flag; returns rows changed."""
        ...

    async def touch_interaction(self, claw_id: str, friend_id: str, at: datetime) -> int:
        """Record the last interaction time; returns rows changed."""
        ...

    async def decay_all(self, rate_fn: DecayRateFn) -> int:
        """Apply one decay tick to every row atomically; returns rows decayed."""
        ...

    async def get_at_risk(
        self, claw_id: str, margin: float, cutoff: datetime
    ) -> list[RelationshipStrengthRecord]:
        """Rows near their layer floor with no interaction since ``cutoff``."""
        ...

    async def delete(self, claw_id: str, friend_id: str) -> int:
        ...

    async def list_owners(self) -> list[str]:
        """Every claw id that owns at least one relationship."""
        ...


class TrustStore(Protocol):
    """Per-(pair, domain) trust rows. Updates on missing rows return 0."""

    async def get(self, from_claw_id: str, to_claw_id: str, domain: str) -> TrustScoreRecord | None:
        ...

    async def list_domains(self, from_claw_id: str, to_claw_id: str) -> list[TrustScoreRecord]:
        """All domains for a pair, ordered by domain name."""
        ...

    async def list_for_claw(self, from_claw_id: str, domain: str | None = None) -> list[TrustScoreRecord]:
        """Everything ``from_claw_id`` has scored, highest composite first."""
        ...

    async def upsert(self, record: TrustScoreRecord) -> TrustScoreRecord:
        """Insert or replace the row for the record's (from, to, domain)."""
        ...

    async def update_q_score(self, from_claw_id: str, to_claw_id: str, domain: str, delta: float) -> int:
        """Add ``delta`` to Q, clamped to [0, 1]."""
        ...

    async def update_h_score(
        self, from_claw_id: str, to_claw_id: str, domain: str, score: float | None
    ) -> int:
        """Set H; None clears the endorsement."""
        ...

    async def update_n_score(self, from_claw_id: str, to_claw_id: str, domain: str, score: float) -> int:
        ...

    async def update_w_score(self, from_claw_id: str, to_claw_id: str, domain: str, score: float) -> int:
        ...

    async def update_composite(
        self, from_claw_id: str, to_claw_id: str, domain: str, composite: float
    ) -> int:
        ...

    async def decay_all_q(self, decay_rate: float, from_claw_id: str | None = None) -> list[TrustScoreRecord]:
        """Multiply Q by ``decay_rate`` on every (or one owner's) row.

        Returns the decayed rows so the caller can recompute composites.
        """
        ...

    async def delete(self, from_claw_id: str, to_claw_id: str) -> int:
        """Delete every domain row for the directed pair."""
        ...

    async def top_domains(self, from_claw_id: str, to_claw_id: str, limit: int) -> list[TrustScoreRecord]:
        """A pair's domain rows, highest composite first."""
        ...


class InboxStore(Protocol):
    """Per-recipient, sequence-numbered inbox rows."""

    async def next_seq(self, recipient_id: str) -> int:
        """Allocate the recipient's next sequence number."""
        ...

    async def insert(self, entry: InboxEntry) -> None:
        ...

    async def query(
        self,
        recipient_id: str,
        status: InboxStatus | None,
        limit: int,
        after_seq: int,
    ) -> list[InboxEntry]:
        """Entries with seq > after_seq, ascending; status None means all."""
        ...

    async def ack(self, recipient_id: str, entry_ids: list[str], at: datetime) -> int:
        """Move entries to acked; already-acked entries are not counted."""
        ...

    async def mark_read(self, recipient_id: str, entry_ids: list[str], at: datetime) -> int:
        """Move unread entries to read."""
        ...

    async def count_unread(self, recipient_id: str) -> int:
        ...

    async def latest_seq(self, recipient_id: str) -> int:
        """Highest seq allocated for the recipient (0 when none)."""
        ...


class HeartbeatStore(Protocol):
    """Heartbeat history between friends."""

    async def create(self, record: HeartbeatRecord) -> None:
        ...

    async def latest(self, from_claw_id: str, to_claw_id: str) -> HeartbeatRecord | None:
        ...

    async def delete_older_than(self, cutoff: datetime) -> int:
        ...
