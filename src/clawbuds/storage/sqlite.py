"""SQLite storage adapters.

All four stores share one connection. Statements run synchronously inside
the async methods; batch operations (decay, fan-out seq allocation) run in a
single transaction so concurrent readers never observe a partial batch.
Timestamps are stored as fixed-width UTC strings so they compare lexically.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from datetime import UTC, datetime
from pathlib import Path

from ..core.exceptions import ConflictError
from ..heartbeat.models import HeartbeatRecord
from ..inbox.models import InboxEntry, InboxStatus
from ..relationships.decay import DecayRateFn, apply_decay, is_at_risk
from ..relationships.models import DunbarLayer, RelationshipStrengthRecord
from ..trust.models import TrustScoreRecord, clamp_score

logger = logging.getLogger(__name__)

_TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

SCHEMA = """
CREATE TABLE IF NOT EXISTS relationship_strength (
    claw_id TEXT NOT NULL,
    friend_id TEXT NOT NULL,
    strength REAL NOT NULL DEFAULT 0.5,
    dunbar_layer TEXT NOT NULL DEFAULT 'casual',
    manual_override INTEGER NOT NULL DEFAULT 0,
    last_interaction_at TEXT,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (claw_id, friend_id)
);

CREATE TABLE IF NOT EXISTS trust_scores (
    id TEXT PRIMARY KEY,
    from_claw_id TEXT NOT NULL,
    to_claw_id TEXT NOT NULL,
    domain TEXT NOT NULL DEFAULT '_overall',
    q_score REAL NOT NULL DEFAULT 0.0,
    h_score REAL,
    n_score REAL NOT NULL DEFAULT 0.0,
    w_score REAL NOT NULL DEFAULT 0.0,
    composite REAL NOT NULL DEFAULT 0.0,
    updated_at TEXT NOT NULL,
    UNIQUE (from_claw_id, to_claw_id, domain)
);

CREATE TABLE IF NOT EXISTS seq_counters (
    claw_id TEXT PRIMARY KEY,
    seq INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS inbox_entries (
    id TEXT PRIMARY KEY,
    recipient_id TEXT NOT NULL,
    message_id TEXT NOT NULL,
    from_claw_id TEXT,
    seq INTEGER NOT NULL,
    status TEXT NOT NULL DEFAULT 'unread',
    read_at TEXT,
    acked_at TEXT,
    created_at TEXT NOT NULL,
    UNIQUE (recipient_id, seq)
);

CREATE INDEX IF NOT EXISTS idx_inbox_recipient_seq ON inbox_entries (recipient_id, seq);

CREATE TABLE IF NOT EXISTS heartbeats (
    id TEXT PRIMARY KEY,
    from_claw_id TEXT NOT NULL,
    to_claw_id TEXT NOT NULL,
    interests_json TEXT,
    availability TEXT,
    recent_topics TEXT,
    is_keepalive INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_heartbeats_pair ON heartbeats (from_claw_id, to_claw_id, created_at);
"""


def _ts(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).strftime(_TS_FORMAT)


def _parse_ts(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.strptime(value, _TS_FORMAT).replace(tzinfo=UTC)


def _now_ts() -> str:
    return _ts(datetime.now(UTC))


def connect(path: str | Path) -> sqlite3.Connection:
    """Open (creating if needed) a ClawBuds database."""
    conn = sqlite3.connect(str(path), check_same_thread=False, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.executescript(SCHEMA)
    return conn


class _Transaction:
    """``with`` block wrapping BEGIN IMMEDIATE / COMMIT / ROLLBACK."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def __enter__(self) -> sqlite3.Connection:
        self.conn.execute("BEGIN IMMEDIATE")
        return self.conn

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.conn.execute("COMMIT")
        else:
            self.conn.execute("ROLLBACK")


# =============================================================================
# RELATIONSHIP STRENGTH
# =============================================================================


def _row_to_relationship(row: sqlite3.Row) -> RelationshipStrengthRecord:
    return RelationshipStrengthRecord(
        claw_id=row["claw_id"],
        friend_id=row["friend_id"],
        strength=row["strength"],
        dunbar_layer=DunbarLayer(row["dunbar_layer"]),
        manual_override=bool(row["manual_override"]),
        last_interaction_at=_parse_ts(row["last_interaction_at"]),
        updated_at=_parse_ts(row["updated_at"]),
    )


class SqliteRelationshipStore:
    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    async def get(self, claw_id: str, friend_id: str) -> RelationshipStrengthRecord | None:
        row = self.conn.execute(
            "SELECT * FROM relationship_strength WHERE claw_id = ? AND friend_id = ?",
            (claw_id, friend_id),
        ).fetchone()
        return _row_to_relationship(row) if row else None

    async def list_for_claw(self, claw_id: str) -> list[RelationshipStrengthRecord]:
        rows = self.conn.execute(
            "SELECT * FROM relationship_strength WHERE claw_id = ? ORDER BY strength DESC",
            (claw_id,),
        ).fetchall()
        return [_row_to_relationship(r) for r in rows]

    async def create(self, record: RelationshipStrengthRecord) -> None:
        try:
            self.conn.execute(
                """INSERT INTO relationship_strength
                   (claw_id, friend_id, strength, dunbar_layer, manual_override, last_interaction_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    record.claw_id,
                    record.friend_id,
                    record.strength,
                    record.dunbar_layer.value,
                    int(record.manual_override),
                    _ts(record.last_interaction_at) if record.last_interaction_at else None,
                    _ts(record.updated_at),
                ),
            )
        except sqlite3.IntegrityError as e:
            raise ConflictError(
                f"Relationship already exists: {record.claw_id} -> {record.friend_id}"
            ) from e

    async def update_strength(self, claw_id: str, friend_id: str, strength: float) -> int:
        cur = self.conn.execute(
            "UPDATE relationship_strength SET strength = ?, updated_at = ? WHERE claw_id = ? AND friend_id = ?",
            (strength, _now_ts(), claw_id, friend_id),
        )
        return cur.rowcount

    async def update_layer(
        self, claw_id: str, friend_id: str, layer: DunbarLayer, manual_override: bool
    ) -> int:
        cur = self.conn.execute(
            """UPDATE relationship_strength
               SET dunbar_layer = ?, manual_override = ?, updated_at = ?
               WHERE claw_id = ? AND friend_id = ?""",
            (layer.value, int(manual_override), _now_ts(), claw_id, friend_id),
        )
        return cur.rowcount

    async def touch_interaction(self, claw_id: str, friend_id: str, at: datetime) -> int:
        ts = _ts(at)
        cur = self.conn.execute(
            """UPDATE relationship_strength
               SET last_interaction_at = ?, updated_at = ?
               WHERE claw_id = ? AND friend_id = ?""",
            (ts, ts, claw_id, friend_id),
        )
        return cur.rowcount

    async def decay_all(self, rate_fn: DecayRateFn) -> int:
        now = _now_ts()
        with _Transaction(self.conn) as conn:
            rows = conn.execute("SELECT claw_id, friend_id, strength FROM relationship_strength").fetchall()
            conn.executemany(
                "UPDATE relationship_strength SET strength = ?, updated_at = ? WHERE claw_id = ? AND friend_id = ?",
                [
                    (apply_decay(r["strength"], rate_fn), now, r["claw_id"], r["friend_id"])
                    for r in rows
                ],
            )
        return len(rows)

    async def get_at_risk(
        self, claw_id: str, margin: float, cutoff: datetime
    ) -> list[RelationshipStrengthRecord]:
        rows = self.conn.execute(
            """SELECT * FROM relationship_strength
               WHERE claw_id = ? AND (last_interaction_at IS NULL OR last_interaction_at < ?)""",
            (claw_id, _ts(cutoff)),
        ).fetchall()
        records = [_row_to_relationship(r) for r in rows]
        return [
            r
            for r in records
            if is_at_risk(r.dunbar_layer, r.strength, r.last_interaction_at, margin, cutoff)
        ]

    async def delete(self, claw_id: str, friend_id: str) -> int:
        cur = self.conn.execute(
            "DELETE FROM relationship_strength WHERE claw_id = ? AND friend_id = ?",
            (claw_id, friend_id),
        )
        return cur.rowcount

    async def list_owners(self) -> list[str]:
        rows = self.conn.execute("SELECT DISTINCT claw_id FROM relationship_strength ORDER BY claw_id").fetchall()
        return [r["claw_id"] for r in rows]


# =============================================================================
# TRUST SCORES
# =============================================================================


def _row_to_trust(row: sqlite3.Row) -> TrustScoreRecord:
    return TrustScoreRecord(
        id=row["id"],
        from_claw_id=row["from_claw_id"],
        to_claw_id=row["to_claw_id"],
        domain=row["domain"],
        q_score=row["q_score"],
        h_score=row["h_score"],
        n_score=row["n_score"],
        w_score=row["w_score"],
        composite=row["composite"],
        updated_at=_parse_ts(row["updated_at"]),
    )


class SqliteTrustStore:
    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    async def get(self, from_claw_id: str, to_claw_id: str, domain: str) -> TrustScoreRecord | None:
        row = self.conn.execute(
            "SELECT * FROM trust_scores WHERE from_claw_id = ? AND to_claw_id = ? AND domain = ?",
            (from_claw_id, to_claw_id, domain),
        ).fetchone()
        return _row_to_trust(row) if row else None

    async def list_domains(self, from_claw_id: str, to_claw_id: str) -> list[TrustScoreRecord]:
        rows = self.conn.execute(
            "SELECT * FROM trust_scores WHERE from_claw_id = ? AND to_claw_id = ? ORDER BY domain",
            (from_claw_id, to_claw_id),
        ).fetchall()
        return [_row_to_trust(r) for r in rows]

    async def list_for_claw(self, from_claw_id: str, domain: str | None = None) -> list[TrustScoreRecord]:
        if domain is None:
            rows = self.conn.execute(
                "SELECT * FROM trust_scores WHERE from_claw_id = ? ORDER BY composite DESC",
                (from_claw_id,),
            ).fetchall()
        else:
            rows = self.conn.execute(
                "SELECT * FROM trust_scores WHERE from_claw_id = ? AND domain = ? ORDER BY composite DESC",
                (from_claw_id, domain),
            ).fetchall()
        return [_row_to_trust(r) for r in rows]

    async def upsert(self, record: TrustScoreRecord) -> TrustScoreRecord:
        new_id = record.id or f"trust_{uuid.uuid4().hex[:16]}"
        self.conn.execute(
            """INSERT INTO trust_scores
               (id, from_claw_id, to_claw_id, domain, q_score, h_score, n_score, w_score, composite, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT (from_claw_id, to_claw_id, domain) DO UPDATE SET
                   q_score = excluded.q_score,
                   h_score = excluded.h_score,
                   n_score = excluded.n_score,
                   w_score = excluded.w_score,
                   composite = excluded.composite,
                   updated_at = excluded.updated_at""",
            (
                new_id,
                record.from_claw_id,
                record.to_claw_id,
                record.domain,
                record.q_score,
                record.h_score,
                record.n_score,
                record.w_score,
                record.composite,
                _now_ts(),
            ),
        )
        return await self.get(record.from_claw_id, record.to_claw_id, record.domain)

    def _set(self, column: str, value: float | None, from_claw_id: str, to_claw_id: str, domain: str) -> int:
        cur = self.conn.execute(
            f"""UPDATE trust_scores SET {column} = ?, updated_at = ?
                WHERE from_claw_id = ? AND to_claw_id = ? AND domain = ?""",
            (value, _now_ts(), from_claw_id, to_claw_id, domain),
        )
        return cur.rowcount

    async def update_q_score(self, from_claw_id: str, to_claw_id: str, domain: str, delta: float) -> int:
        cur = self.conn.execute(
            """UPDATE trust_scores
               SET q_score = MAX(0.0, MIN(1.0, q_score + ?)), updated_at = ?
               WHERE from_claw_id = ? AND to_claw_id = ? AND domain = ?""",
            (delta, _now_ts(), from_claw_id, to_claw_id, domain),
        )
        return cur.rowcount

    async def update_h_score(
        self, from_claw_id: str, to_claw_id: str, domain: str, score: float | None
    ) -> int:
        return self._set("h_score", score, from_claw_id, to_claw_id, domain)

    async def update_n_score(self, from_claw_id: str, to_claw_id: str, domain: str, score: float) -> int:
        return self._set("n_score", clamp_score(score), from_claw_id, to_claw_id, domain)

    async def update_w_score(self, from_claw_id: str, to_claw_id: str, domain: str, score: float) -> int:
        return self._set("w_score", clamp_score(score), from_claw_id, to_claw_id, domain)

    async def update_composite(
        self, from_claw_id: str, to_claw_id: str, domain: str, composite: float
    ) -> int:
        return self._set("composite", clamp_score(composite), from_claw_id, to_claw_id, domain)

    async def decay_all_q(self, decay_rate: float, from_claw_id: str | None = None) -> list[TrustScoreRecord]:
        now = _now_ts()
        with _Transaction(self.conn) as conn:
            if from_claw_id is None:
                conn.execute(
                    "UPDATE trust_scores SET q_score = MAX(0.0, MIN(1.0, q_score * ?)), updated_at = ?",
                    (decay_rate, now),
                )
                rows = conn.execute("SELECT * FROM trust_scores").fetchall()
            else:
                conn.execute(
                    """UPDATE trust_scores SET q_score = MAX(0.0, MIN(1.0, q_score * ?)), updated_at = ?
                       WHERE from_claw_id = ?""",
                    (decay_rate, now, from_claw_id),
                )
                rows = conn.execute(
                    "SELECT * FROM trust_scores WHERE from_claw_id = ?", (from_claw_id,)
                ).fetchall()
        return [_row_to_trust(r) for r in rows]

    async def delete(self, from_claw_id: str, to_claw_id: str) -> int:
        cur = self.conn.execute(
            "DELETE FROM trust_scores WHERE from_claw_id = ? AND to_claw_id = ?",
            (from_claw_id, to_claw_id),
        )
        return cur.rowcount

    async def top_domains(self, from_claw_id: str, to_claw_id: str, limit: int) -> list[TrustScoreRecord]:
        rows = self.conn.execute(
            """SELECT * FROM trust_scores WHERE from_claw_id = ? AND to_claw_id = ?
               ORDER BY composite DESC LIMIT ?""",
            (from_claw_id, to_claw_id, limit),
        ).fetchall()
        return [_row_to_trust(r) for r in rows]


# =============================================================================
# INBOX
# =============================================================================


def _row_to_entry(row: sqlite3.Row) -> InboxEntry:
    return InboxEntry(
        id=row["id"],
        recipient_id=row["recipient_id"],
        message_id=row["message_id"],
        from_claw_id=row["from_claw_id"],
        seq=row["seq"],
        status=InboxStatus(row["status"]),
        created_at=_parse_ts(row["created_at"]),
        read_at=_parse_ts(row["read_at"]),
        acked_at=_parse_ts(row["acked_at"]),
    )


class SqliteInboxStore:
    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    async def next_seq(self, recipient_id: str) -> int:
        row = self.conn.execute(
            """INSERT INTO seq_counters (claw_id, seq) VALUES (?, 1)
               ON CONFLICT (claw_id) DO UPDATE SET seq = seq + 1
               RETURNING seq""",
            (recipient_id,),
        ).fetchone()
        return row["seq"]

    async def insert(self, entry: InboxEntry) -> None:
        try:
            self.conn.execute(
                """INSERT INTO inbox_entries
                   (id, recipient_id, message_id, from_claw_id, seq, status, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    entry.id,
                    entry.recipient_id,
                    entry.message_id,
                    entry.from_claw_id,
                    entry.seq,
                    entry.status.value,
                    _ts(entry.created_at),
                ),
            )
        except sqlite3.IntegrityError as e:
            raise ConflictError(f"Inbox entry already exists: {entry.id}") from e

    async def query(
        self,
        recipient_id: str,
        status: InboxStatus | None,
        limit: int,
        after_seq: int,
    ) -> list[InboxEntry]:
        sql = "SELECT * FROM inbox_entries WHERE recipient_id = ? AND seq > ?"
        params: list[object] = [recipient_id, after_seq]
        if status is not None:
            sql += " AND status = ?"
            params.append(status.value)
        sql += " ORDER BY seq ASC LIMIT ?"
        params.append(limit)
        return [_row_to_entry(r) for r in self.conn.execute(sql, params).fetchall()]

    async def ack(self, recipient_id: str, entry_ids: list[str], at: datetime) -> int:
        ids = list(dict.fromkeys(entry_ids))
        if not ids:
            return 0
        placeholders = ",".join("?" for _ in ids)
        cur = self.conn.execute(
            f"""UPDATE inbox_entries SET status = 'acked', acked_at = ?
                WHERE recipient_id = ? AND id IN ({placeholders}) AND status != 'acked'""",
            (_ts(at), recipient_id, *ids),
        )
        return cur.rowcount

    async def mark_read(self, recipient_id: str, entry_ids: list[str], at: datetime) -> int:
        ids = list(dict.fromkeys(entry_ids))
        if not ids:
            return 0
        placeholders = ",".join("?" for _ in ids)
        cur = self.conn.execute(
            f"""UPDATE inbox_entries SET status = 'read', read_at = ?
                WHERE recipient_id = ? AND id IN ({placeholders}) AND status = 'unread'""",
            (_ts(at), recipient_id, *ids),
        )
        return cur.rowcount

    async def count_unread(self, recipient_id: str) -> int:
        row = self.conn.execute(
            "SELECT COUNT(*) AS count FROM inbox_entries WHERE recipient_id = ? AND status = 'unread'",
            (recipient_id,),
        ).fetchone()
        return row["count"]

    async def latest_seq(self, recipient_id: str) -> int:
        row = self.conn.execute("SELECT seq FROM seq_counters WHERE claw_id = ?", (recipient_id,)).fetchone()
        return row["seq"] if row else 0


# =============================================================================
# HEARTBEATS
# =============================================================================


def _row_to_heartbeat(row: sqlite3.Row) -> HeartbeatRecord:
    interests = row["interests_json"]
    return HeartbeatRecord(
        id=row["id"],
        from_claw_id=row["from_claw_id"],
        to_claw_id=row["to_claw_id"],
        interests=json.loads(interests) if interests is not None else None,
        availability=row["availability"],
        recent_topics=row["recent_topics"],
        is_keepalive=bool(row["is_keepalive"]),
        created_at=_parse_ts(row["created_at"]),
    )


class SqliteHeartbeatStore:
    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    async def create(self, record: HeartbeatRecord) -> None:
        self.conn.execute(
            """INSERT INTO heartbeats
               (id, from_claw_id, to_claw_id, interests_json, availability, recent_topics, is_keepalive, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                record.id,
                record.from_claw_id,
                record.to_claw_id,
                json.dumps(record.interests) if record.interests is not None else None,
                record.availability,
                record.recent_topics,
                int(record.is_keepalive),
                _ts(record.created_at),
            ),
        )

    async def latest(self, from_claw_id: str, to_claw_id: str) -> HeartbeatRecord | None:
        row = self.conn.execute(
            """SELECT * FROM heartbeats WHERE from_claw_id = ? AND to_claw_id = ?
               ORDER BY created_at DESC, rowid DESC LIMIT 1""",
            (from_claw_id, to_claw_id),
        ).fetchone()
        return _row_to_heartbeat(row) if row else None

    async def delete_older_than(self, cutoff: datetime) -> int:
        cur = self.conn.execute("DELETE FROM heartbeats WHERE created_at < ?", (_ts(cutoff),))
        return cur.rowcount
