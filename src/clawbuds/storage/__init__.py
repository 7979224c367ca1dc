"""Storage adapters for ClawBuds.

Services depend on the protocols in ``protocols``; the concrete adapter set
is picked once at startup from ``ClawbudsConfig.storage_backend``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ..core.exceptions import ConfigException
from .memory import MemoryHeartbeatStore, MemoryInboxStore, MemoryRelationshipStore, MemoryTrustStore
from .protocols import HeartbeatStore, InboxStore, RelationshipStore, TrustStore

if TYPE_CHECKING:
    from ..core.config import ClawbudsConfig

logger = logging.getLogger(__name__)


@dataclass
class Stores:
    """One adapter per entity, all on the same backend."""

    relationships: RelationshipStore
    trust: TrustStore
    inbox: InboxStore
    heartbeats: HeartbeatStore
    connection: Any = None

    def close(self) -> None:
        """Close the underlying database connection, if any."""
        if self.connection is not None:
            self.connection.close()
            self.connection = None


def create_stores(config: ClawbudsConfig) -> Stores:
    """Build the store set for the configured backend."""
    backend = config.storage_backend
    if backend == "memory":
        logger.info("Using in-memory storage")
        return Stores(
            relationships=MemoryRelationshipStore(),
            trust=MemoryTrustStore(),
            inbox=MemoryInboxStore(),
            heartbeats=MemoryHeartbeatStore(),
        )
    if backend == "sqlite":
        from .sqlite import (
            SqliteHeartbeatStore,
            SqliteInboxStore,
            SqliteRelationshipStore,
            SqliteTrustStore,
            connect,
        )

        logger.info(f"Using SQLite storage at {config.sqlite_path}")
        conn = connect(config.sqlite_path)
        return Stores(
            relationships=SqliteRelationshipStore(conn),
            trust=SqliteTrustStore(conn),
            inbox=SqliteInboxStore(conn),
            heartbeats=SqliteHeartbeatStore(conn),
            connection=conn,
        )
    raise ConfigException(f"Unknown storage backend '{backend}'")


__all__ = [
    "HeartbeatStore",
    "InboxStore",
    "RelationshipStore",
    "Stores",
    "TrustStore",
    "create_stores",
]
