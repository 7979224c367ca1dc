"""Heartbeat data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


@dataclass
class HeartbeatPayload:
    """Status a claw shares with its friends."""

    interests: list[str] | None = None
    availability: str | None = None
    recent_topics: str | None = None
    is_keepalive: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "interests": self.interests,
            "availability": self.availability,
            "recent_topics": self.recent_topics,
            "is_keepalive": self.is_keepalive,
        }


@dataclass
class HeartbeatRecord:
    """One stored heartbeat from one claw to one friend."""

    id: str
    from_claw_id: str
    to_claw_id: str
    interests: list[str] | None = None
    availability: str | None = None
    recent_topics: str | None = None
    is_keepalive: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
