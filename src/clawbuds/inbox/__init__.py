"""Sequence-numbered inbox delivery."""

from clawbuds.inbox.models import (
    DEFAULT_INBOX_LIMIT,
    MAX_INBOX_LIMIT,
    STATUS_ALL,
    InboxEntry,
    InboxStatus,
    parse_status_filter,
)
from clawbuds.inbox.service import InboxService, clamp_limit

__all__ = [
    "DEFAULT_INBOX_LIMIT",
    "InboxEntry",
    "InboxService",
    "InboxStatus",
    "MAX_INBOX_LIMIT",
    "STATUS_ALL",
    "clamp_limit",
    "parse_status_filter",
]
