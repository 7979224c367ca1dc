"""Configuration for ClawBuds, loaded from the environment.

All tunables live here. ``get_config()`` caches the first load; tests call
``clear_config_cache()`` after patching the environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields

from .exceptions import ConfigException

ENV_PREFIX = "CLAWBUDS_"

STORAGE_BACKENDS = ("memory", "sqlite")

# field name -> environment variable (without prefix)
_ENV_NAMES = {
    "storage_backend": "STORAGE",
    "sqlite_path": "SQLITE_PATH",
    "auth_max_skew_ms": "AUTH_MAX_SKEW_MS",
    "boost_daily_cap": "BOOST_DAILY_CAP",
    "atrisk_margin": "ATRISK_MARGIN",
    "atrisk_inactive_days": "ATRISK_INACTIVE_DAYS",
    "heartbeat_retention_days": "HEARTBEAT_RETENTION_DAYS",
    "heartbeat_interval_seconds": "HEARTBEAT_INTERVAL",
    "decay_interval_seconds": "DECAY_INTERVAL",
    "cleanup_interval_seconds": "CLEANUP_INTERVAL",
    "trust_decay_interval_days": "TRUST_DECAY_INTERVAL_DAYS",
    "webhook_timeout_seconds": "WEBHOOK_TIMEOUT",
}


@dataclass
class ClawbudsConfig:
    """Runtime configuration."""

    storage_backend: str = "memory"
    sqlite_path: str = "clawbuds.db"

    # Request authentication
    auth_max_skew_ms: int = 5 * 60 * 1000

    # Relationship strength
    boost_daily_cap: float = 0.15
    atrisk_margin: float = 0.05
    atrisk_inactive_days: int = 7

    # Heartbeats
    heartbeat_retention_days: int = 7

    # Scheduler intervals
    heartbeat_interval_seconds: float = 300.0
    decay_interval_seconds: float = 86400.0
    cleanup_interval_seconds: float = 3600.0
    trust_decay_interval_days: int = 30

    # Outbound webhooks
    webhook_timeout_seconds: float = 10.0

    def __post_init__(self) -> None:
        if self.storage_backend not in STORAGE_BACKENDS:
            raise ConfigException(
                f"Unknown storage backend '{self.storage_backend}'",
                {"allowed": list(STORAGE_BACKENDS)},
            )
        if not 0.0 <= self.boost_daily_cap <= 1.0:
            raise ConfigException("boost_daily_cap must be between 0.0 and 1.0")
        if not 0.0 <= self.atrisk_margin <= 1.0:
            raise ConfigException("atrisk_margin must be between 0.0 and 1.0")
        for name in ("heartbeat_interval_seconds", "decay_interval_seconds", "cleanup_interval_seconds"):
            if getattr(self, name) <= 0:
                raise ConfigException(f"{name} must be positive")

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> ClawbudsConfig:
        """Build a config from ``CLAWBUDS_*`` environment variables."""
        env = os.environ if environ is None else environ
        kwargs: dict[str, object] = {}
        for f in fields(cls):
            raw = env.get(ENV_PREFIX + _ENV_NAMES[f.name])
            if raw is None or raw == "":
                continue
            kwargs[f.name] = _coerce(f.name, f.type, raw.strip())
        return cls(**kwargs)


def _coerce(name: str, type_name: object, raw: str) -> object:
    try:
        if type_name in ("int", int):
            return int(raw)
        if type_name in ("float", float):
            return float(raw)
    except ValueError as e:
        raise ConfigException(f"Invalid value for {name}: {raw!r}") from e
    return raw


_config: ClawbudsConfig | None = None


def get_config() -> ClawbudsConfig:
    """Return the process-wide config, loading it on first use."""
    global _config
    if _config is None:
        _config = ClawbudsConfig.from_env()
    return _config


def clear_config_cache() -> None:
    """Forget the cached config."""
    global _config
    _config = None
