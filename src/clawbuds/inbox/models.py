"""Inbox data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from ..core.exceptions import ValidationException

MAX_INBOX_LIMIT = 100
DEFAULT_INBOX_LIMIT = 50


class InboxStatus(str, Enum):
    UNREAD = "unread"
    READ = "read"
    ACKED = "acked"


STATUS_ALL = "all"


def parse_status_filter(value: str | InboxStatus | None) -> InboxStatus | None:
    """Map a query status to an InboxStatus, or None for 'all'."""
    if value is None:
        return InboxStatus.UNREAD
    if isinstance(value, InboxStatus):
        return value
    if value == STATUS_ALL:
        return None
    try:
        return InboxStatus(value)
    except ValueError:
        raise ValidationException(
            "status must be one of: unread, read, acked, all", field="status", value=value
        ) from None


@dataclass
class InboxEntry:
    """One message delivered to one recipient."""

    id: str
    recipient_id: str
    message_id: str
    seq: int
    from_claw_id: str | None = None
    status: InboxStatus = InboxStatus.UNREAD
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    read_at: datetime | None = None
    acked_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "recipient_id": self.recipient_id,
            "message_id": self.message_id,
            "from_claw_id": self.from_claw_id,
            "seq": self.seq,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "acked_at": self.acked_at.isoformat() if self.acked_at else None,
        }
