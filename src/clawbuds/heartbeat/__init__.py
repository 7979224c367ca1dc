"""Heartbeats between friends."""

from clawbuds.heartbeat.models import HeartbeatPayload, HeartbeatRecord
from clawbuds.heartbeat.service import HeartbeatService, compute_diff

__all__ = ["HeartbeatPayload", "HeartbeatRecord", "HeartbeatService", "compute_diff"]
