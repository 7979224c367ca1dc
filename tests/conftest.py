"""Shared fixtures for ClawBuds tests."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from clawbuds.core.config import ClawbudsConfig, clear_config_cache
from clawbuds.core.events import EventBus
from clawbuds.crypto.signing import generate_keypair
from clawbuds.storage import Stores, create_stores


class FakeClock:
    """Settable clock for services that accept a ``clock`` callable."""

    def __init__(self, now: datetime | None = None):
        self.now = now or datetime(2026, 1, 15, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture(autouse=True)
def _reset_config_cache():
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def config() -> ClawbudsConfig:
    return ClawbudsConfig()


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_stores(config) -> Stores:
    return create_stores(config)


@pytest.fixture
def sqlite_stores(tmp_path) -> Stores:
    stores = create_stores(ClawbudsConfig(storage_backend="sqlite", sqlite_path=str(tmp_path / "clawbuds.db")))
    yield stores
    stores.close()


@pytest.fixture(params=["memory", "sqlite"])
def stores(request, tmp_path) -> Stores:
    """Run a test against every storage backend."""
    if request.param == "memory":
        stores = create_stores(ClawbudsConfig())
    else:
        stores = create_stores(
            ClawbudsConfig(storage_backend="sqlite", sqlite_path=str(tmp_path / "clawbuds.db"))
        )
    yield stores
    stores.close()


@pytest.fixture
def keypair():
    return generate_keypair()
