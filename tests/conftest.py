"""Test configuration and fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from exchange_pool.config import Settings, build_pool_configs
from exchange_pool.services.pool import DurableStore, PoolRegistry, Replenisher
from tests.fakes import FakeCreator


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Settings with two pools, no delays, and a temp snapshot file."""
    return Settings(
        pool={
            "price_points": [25, 50],
            "size_per_price": 5,
            "min_size": 3,
            "store_path": str(tmp_path / "exchange-pool.json"),
        },
        replenish={
            "max_retries": 3,
            "backoff_base_seconds": 0,
            "pacing_seconds": 0,
            "attempt_timeout_seconds": 5,
        },
        creator={"session_timeout_seconds": 1},
        scheduler={
            "disk_sync_interval_seconds": 0.01,
            "health_audit_interval_seconds": 0.01,
            "audit_on_startup": False,
            "keep_warm": {"enabled": False},
        },
    )


@pytest.fixture
def registry(test_settings: Settings) -> PoolRegistry:
    return PoolRegistry(build_pool_configs(test_settings))


@pytest.fixture
def store(test_settings: Settings) -> DurableStore:
    return DurableStore(test_settings.pool.store_path)


@pytest.fixture
def creator() -> FakeCreator:
    return FakeCreator()


@pytest.fixture
def replenisher(
    registry: PoolRegistry,
    creator: FakeCreator,
    store: DurableStore,
    test_settings: Settings,
) -> Replenisher:
    return Replenisher(
        registry,
        creator,
        store,
        test_settings.replenish,
        destination="0xwallet",
    )
