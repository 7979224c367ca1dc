"""In-memory storage adapters.

Each mutation completes without awaiting in the middle, so on a single
event loop every operation is atomic with respect to other coroutines.
Records are copied on the way in and out so callers never share state with
the store.
"""

from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import UTC, datetime

from ..core.exceptions import ConflictError
from ..heartbeat.models import HeartbeatRecord
from ..inbox.models import InboxEntry, InboxStatus
from ..relationships.decay import DecayRateFn, apply_decay, is_at_risk
from ..relationships.models import DunbarLayer, RelationshipStrengthRecord
from ..trust.models import TrustScoreRecord, clamp_score


def _now() -> datetime:
    return datetime.now(UTC)


class MemoryRelationshipStore:
    """Relationship strength rows keyed by (claw_id, friend_id)."""

    def __init__(self) -> None:
        self._rows: dict[tuple[str, str], RelationshipStrengthRecord] = {}

    async def get(self, claw_id: str, friend_id: str) -> RelationshipStrengthRecord | None:
        row = self._rows.get((claw_id, friend_id))
        return replace(row) if row else None

    async def list_for_claw(self, claw_id: str) -> list[RelationshipStrengthRecord]:
        rows = [replace(r) for (owner, _), r in self._rows.items() if owner == claw_id]
        rows.sort(key=lambda r: r.strength, reverse=True)
        return rows

    async def create(self, record: RelationshipStrengthRecord) -> None:
        key = (record.claw_id, record.friend_id)
        if key in self._rows:
            raise ConflictError(f"Relationship already exists: {record.claw_id} -> {record.friend_id}")
        self._rows[key] = replace(record)

    async def update_strength(self, claw_id: str, friend_id: str, strength: float) -> int:
        row = self._rows.get((claw_id, friend_id))
        if row is None:
            return 0
        row.strength = strength
        row.updated_at = _now()
        return 1

    async def update_layer(
        self, claw_id: str, friend_id: str, layer: DunbarLayer, manual_override: bool
    ) -> int:
        row = self._rows.get((claw_id, friend_id))
        if row is None:
            return 0
        row.dunbar_layer = layer
        row.manual_override = manual_override
        row.updated_at = _now()
        return 1

    async def touch_interaction(self, claw_id: str, friend_id: str, at: datetime) -> int:
        row = self._rows.get((claw_id, friend_id))
        if row is None:
            return 0
        row.last_interaction_at = at
        row.updated_at = at
        return 1

    async def decay_all(self, rate_fn: DecayRateFn) -> int:
        now = _now()
        for row in self._rows.values():
            row.strength = apply_decay(row.strength, rate_fn)
            row.updated_at = now
        return len(self._rows)

    async def get_at_risk(
        self, claw_id: str, margin: float, cutoff: datetime
    ) -> list[RelationshipStrengthRecord]:
        return [
            replace(r)
            for (owner, _), r in self._rows.items()
            if owner == claw_id
            and is_at_risk(r.dunbar_layer, r.strength, r.last_interaction_at, margin, cutoff)
        ]

    async def delete(self, claw_id: str, friend_id: str) -> int:
        return 1 if self._rows.pop((claw_id, friend_id), None) else 0

    async def list_owners(self) -> list[str]:
        return sorted({owner for owner, _ in self._rows})


class MemoryTrustStore:
    """Trust rows keyed by (from_claw_id, to_claw_id, domain)."""

    def __init__(self) -> None:
        self._rows: dict[tuple[str, str, str], TrustScoreRecord] = {}

    def _row(self, from_claw_id: str, to_claw_id: str, domain: str) -> TrustScoreRecord | None:
        return self._rows.get((from_claw_id, to_claw_id, domain))

    async def get(self, from_claw_id: str, to_claw_id: str, domain: str) -> TrustScoreRecord | None:
        row = self._row(from_claw_id, to_claw_id, domain)
        return replace(row) if row else None

    async def list_domains(self, from_claw_id: str, to_claw_id: str) -> list[TrustScoreRecord]:
        rows = [
            replace(r)
            for (f, t, _), r in self._rows.items()
            if f == from_claw_id and t == to_claw_id
        ]
        rows.sort(key=lambda r: r.domain)
        return rows

    async def list_for_claw(self, from_claw_id: str, domain: str | None = None) -> list[TrustScoreRecord]:
        rows = [
            replace(r)
            for (f, _, d), r in self._rows.items()
            if f == from_claw_id and (domain is None or d == domain)
        ]
        rows.sort(key=lambda r: r.composite, reverse=True)
        return rows

    async def upsert(self, record: TrustScoreRecord) -> TrustScoreRecord:
        key = (record.from_claw_id, record.to_claw_id, record.domain)
        existing = self._rows.get(key)
        stored = replace(record, updated_at=_now())
        if existing is not None:
            stored.id = existing.id
        elif stored.id is None:
            stored.id = f"trust_{uuid.uuid4().hex[:16]}"
        self._rows[key] = stored
        return replace(stored)

    def _update(self, from_claw_id: str, to_claw_id: str, domain: str, **changes: object) -> int:
        row = self._row(from_claw_id, to_claw_id, domain)
        if row is None:
            return 0
        for name, value in changes.items():
            setattr(row, name, value)
        row.updated_at = _now()
        return 1

    async def update_q_score(self, from_claw_id: str, to_claw_id: str, domain: str, delta: float) -> int:
        row = self._row(from_claw_id, to_claw_id, domain)
        if row is None:
            return 0
        return self._update(from_claw_id, to_claw_id, domain, q_score=clamp_score(row.q_score + delta))

    async def update_h_score(
        self, from_claw_id: str, to_claw_id: str, domain: str, score: float | None
    ) -> int:
        return self._update(from_claw_id, to_claw_id, domain, h_score=score)

    async def update_n_score(self, from_claw_id: str, to_claw_id: str, domain: str, score: float) -> int:
        return self._update(from_claw_id, to_claw_id, domain, n_score=clamp_score(score))

    async def update_w_score(self, from_claw_id: str, to_claw_id: str, domain: str, score: float) -> int:
        return self._update(from_claw_id, to_claw_id, domain, w_score=clamp_score(score))

    async def update_composite(
        self, from_claw_id: str, to_claw_id: str, domain: str, composite: float
    ) -> int:
        return self._update(from_claw_id, to_claw_id, domain, composite=clamp_score(composite))

    async def decay_all_q(self, decay_rate: float, from_claw_id: str | None = None) -> list[TrustScoreRecord]:
        now = _now()
        decayed = []
        for (f, _, _), row in self._rows.items():
            if from_claw_id is not None and f != from_claw_id:
                continue
            row.q_score = clamp_score(row.q_score * decay_rate)
            row.updated_at = now
            decayed.append(replace(row))
        return decayed

    async def delete(self, from_claw_id: str, to_claw_id: str) -> int:
        keys = [k for k in self._rows if k[0] == from_claw_id and k[1] == to_claw_id]
        for key in keys:
            del self._rows[key]
        return len(keys)

    async def top_domains(self, from_claw_id: str, to_claw_id: str, limit: int) -> list[TrustScoreRecord]:
        rows = await self.list_domains(from_claw_id, to_claw_id)
        rows.sort(key=lambda r: r.composite, reverse=True)
        return rows[:limit]


class MemoryInboxStore:
    """Inbox entries per recipient plus a per-recipient seq counter."""

    def __init__(self) -> None:
        self._entries: dict[str, dict[str, InboxEntry]] = {}
        self._seq: dict[str, int] = {}

    async def next_seq(self, recipient_id: str) -> int:
        seq = self._seq.get(recipient_id, 0) + 1
        self._seq[recipient_id] = seq
        return seq

    async def insert(self, entry: InboxEntry) -> None:
        box = self._entries.setdefault(entry.recipient_id, {})
        if entry.id in box:
            raise ConflictError(f"Inbox entry already exists: {entry.id}")
        box[entry.id] = replace(entry)

    async def query(
        self,
        recipient_id: str,
        status: InboxStatus | None,
        limit: int,
        after_seq: int,
    ) -> list[InboxEntry]:
        rows = [
            replace(e)
            for e in self._entries.get(recipient_id, {}).values()
            if e.seq > after_seq and (status is None or e.status == status)
        ]
        rows.sort(key=lambda e: e.seq)
        return rows[:limit]

    async def ack(self, recipient_id: str, entry_ids: list[str], at: datetime) -> int:
        box = self._entries.get(recipient_id, {})
        changed = 0
        for entry_id in set(entry_ids):
            entry = box.get(entry_id)
            if entry is not None and entry.status != InboxStatus.ACKED:
                entry.status = InboxStatus.ACKED
                entry.acked_at = at
                changed += 1
        return changed

    async def mark_read(self, recipient_id: str, entry_ids: list[str], at: datetime) -> int:
        box = self._entries.get(recipient_id, {})
        changed = 0
        for entry_id in set(entry_ids):
            entry = box.get(entry_id)
            if entry is not None and entry.status == InboxStatus.UNREAD:
                entry.status = InboxStatus.READ
                entry.read_at = at
                changed += 1
        return changed

    async def count_unread(self, recipient_id: str) -> int:
        return sum(1 for e in self._entries.get(recipient_id, {}).values() if e.status == InboxStatus.UNREAD)

    async def latest_seq(self, recipient_id: str) -> int:
        return self._seq.get(recipient_id, 0)


class MemoryHeartbeatStore:
    """Heartbeat history in insertion order."""

    def __init__(self) -> None:
        self._records: list[HeartbeatRecord] = []

    async def create(self, record: HeartbeatRecord) -> None:
        self._records.append(replace(record))

    async def latest(self, from_claw_id: str, to_claw_id: str) -> HeartbeatRecord | None:
        for record in reversed(self._records):
            if record.from_claw_id == from_claw_id and record.to_claw_id == to_claw_id:
                return replace(record)
        return None

    async def delete_older_than(self, cutoff: datetime) -> int:
        before = len(self._records)
        self._records = [r for r in self._records if r.created_at >= cutoff]
        return before - len(self._records)
