"""Unit tests for PoolScheduler."""

from __future__ import annotations

import asyncio

import httpx

from exchange_pool.config import KeepWarmConfig, SchedulerConfig
from exchange_pool.services.pool import PersistenceState, PoolScheduler
from tests.fakes import make_item


def _make_scheduler(test_settings, registry, store, replenisher, **kwargs) -> PoolScheduler:
    return PoolScheduler(test_settings.scheduler, registry, store, replenisher, **kwargs)


class TestDiskSync:
    async def test_clean_registry_not_written(self, test_settings, registry, store, replenisher):
        scheduler = _make_scheduler(test_settings, registry, store, replenisher)

        assert await scheduler.run_sync_once() is False
        assert not store.path.exists()

    async def test_dirty_registry_written(self, test_settings, registry, store, replenisher):
        scheduler = _make_scheduler(test_settings, registry, store, replenisher)
        registry.append("50", make_item(1, amount=50))

        assert await scheduler.run_sync_once() is True

        assert registry.persistence_state == PersistenceState.CLEAN
        assert [i.id for i in store.load(["50"])["50"]] == ["item1"]

    async def test_skipped_while_flushing(self, test_settings, registry, store, replenisher):
        scheduler = _make_scheduler(test_settings, registry, store, replenisher)
        registry.append("25", make_item(1))
        registry.begin_flush()
        registry.append("25", make_item(2))

        assert await scheduler.run_sync_once() is False


class TestHealthAudit:
    async def test_triggers_pools_below_target(
        self, test_settings, registry, store, replenisher
    ):
        for i in range(5):
            registry.append("25", make_item(i))
        scheduler = _make_scheduler(test_settings, registry, store, replenisher)

        started = await scheduler.run_audit_once()
        await replenisher.wait_idle()

        assert started == ["50"]
        assert registry.size("50") == 5

    async def test_skips_locked_pools(self, test_settings, registry, store, replenisher):
        registry.try_lock("25")
        scheduler = _make_scheduler(test_settings, registry, store, replenisher)

        started = await scheduler.run_audit_once()
        await replenisher.wait_idle()

        assert started == ["50"]
        assert registry.size("25") == 0

    async def test_nothing_to_do_when_full(self, test_settings, registry, store, replenisher):
        for pool_id, amount in (("25", 25), ("50", 50)):
            for i in range(5):
                registry.append(pool_id, make_item(i, amount=amount))
        scheduler = _make_scheduler(test_settings, registry, store, replenisher)

        assert await scheduler.run_audit_once() == []
        assert replenisher.pending_runs == 0


class TestKeepWarm:
    async def test_ping_ok(self, test_settings, registry, store, replenisher):
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, json={"status": "healthy"})

        scheduler = _make_scheduler(
            test_settings,
            registry,
            store,
            replenisher,
            keep_warm_url="http://pool.test/health",
            transport=httpx.MockTransport(handler),
        )

        assert await scheduler.run_keep_warm_once() is True
        assert seen == ["http://pool.test/health"]

    async def test_bad_status_reported(self, test_settings, registry, store, replenisher):
        scheduler = _make_scheduler(
            test_settings,
            registry,
            store,
            replenisher,
            keep_warm_url="http://pool.test/health",
            transport=httpx.MockTransport(lambda request: httpx.Response(503)),
        )

        assert await scheduler.run_keep_warm_once() is False

    async def test_connection_error_swallowed(self, test_settings, registry, store, replenisher):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        scheduler = _make_scheduler(
            test_settings,
            registry,
            store,
            replenisher,
            keep_warm_url="http://pool.test/health",
            transport=httpx.MockTransport(handler),
        )

        assert await scheduler.run_keep_warm_once() is False

    async def test_no_url_is_noop(self, test_settings, registry, store, replenisher):
        scheduler = _make_scheduler(test_settings, registry, store, replenisher)

        assert await scheduler.run_keep_warm_once() is False


class TestLifecycle:
    async def test_loops_sync_and_refill(self, test_settings, registry, store, replenisher):
        scheduler = _make_scheduler(test_settings, registry, store, replenisher)

        await scheduler.start()
        assert scheduler.is_running
        try:
            for _ in range(200):
                if (
                    registry.size("25") == 5
                    and registry.size("50") == 5
                    and not registry.dirty
                ):
                    break
                await asyncio.sleep(0.01)
        finally:
            await scheduler.stop()
            await replenisher.stop()

        assert not scheduler.is_running
        loaded = store.load(["25", "50"])
        assert len(loaded["25"]) == 5
        assert len(loaded["50"]) == 5

    async def test_keep_warm_loop_started_when_enabled(
        self, test_settings, registry, store, replenisher
    ):
        pings = asyncio.Event()

        def handler(request: httpx.Request) -> httpx.Response:
            pings.set()
            return httpx.Response(200)

        config = SchedulerConfig(
            disk_sync_interval_seconds=10,
            health_audit_interval_seconds=10,
            keep_warm=KeepWarmConfig(enabled=True, interval_seconds=0.01),
        )
        scheduler = PoolScheduler(
            config,
            registry,
            store,
            replenisher,
            keep_warm_url="http://pool.test/health",
            transport=httpx.MockTransport(handler),
        )

        await scheduler.start()
        try:
            await asyncio.wait_for(pings.wait(), timeout=2)
        finally:
            await scheduler.stop()

    async def test_failing_tick_does_not_stop_loop(
        self, test_settings, registry, store, replenisher, monkeypatch
    ):
        calls = 0

        async def flaky_sync(_registry):
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("disk went away")
            return True

        monkeypatch.setattr(store, "sync", flaky_sync)
        registry.append("25", make_item(1))
        scheduler = _make_scheduler(test_settings, registry, store, replenisher)
        monkeypatch.setattr(scheduler, "run_audit_once", _noop)

        await scheduler.start()
        try:
            for _ in range(200):
                if calls >= 2:
                    break
                await asyncio.sleep(0.01)
        finally:
            await scheduler.stop()

        assert calls >= 2

    async def test_stop_is_idempotent(self, test_settings, registry, store, replenisher):
        scheduler = _make_scheduler(test_settings, registry, store, replenisher)

        await scheduler.stop()
        await scheduler.start()
        await scheduler.stop()
        await scheduler.stop()

        assert not scheduler.is_running


async def _noop() -> list[str]:
    return []
