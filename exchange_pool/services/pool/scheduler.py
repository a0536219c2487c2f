"""PoolScheduler - periodic pool maintenance.

Responsibilities:
1. Disk sync: flush dirty pool state every few seconds
2. Health audit: start a replenishment for every pool under target
3. Keep-warm: ping our own /health so an idle host does not suspend us
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

import httpx
import structlog

if TYPE_CHECKING:
    from exchange_pool.config import SchedulerConfig
    from exchange_pool.services.pool.registry import PoolRegistry
    from exchange_pool.services.pool.replenisher import Replenisher
    from exchange_pool.services.pool.store import DurableStore

logger = structlog.get_logger()


class PoolScheduler:
    """Runs the three maintenance loops as independent asyncio tasks.

    The loops only touch the registry through its non-suspending
    operations, so they never interfere with request handling.
    """

    def __init__(
        self,
        config: "SchedulerConfig",
        registry: "PoolRegistry",
        store: "DurableStore",
        replenisher: "Replenisher",
        *,
        keep_warm_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._registry = registry
        self._store = store
        self._replenisher = replenisher
        self._keep_warm_url = keep_warm_url
        self._transport = transport
        self._log = logger.bind(service="pool_scheduler")

        self._running = False
        self._tasks: list[asyncio.Task] = []

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def disk_sync_interval(self) -> float:
        return self._config.disk_sync_interval_seconds

    async def start(self) -> None:
        """Start background loops."""
        if self._running:
            self._log.warning("pool_scheduler.already_running")
            return

        self._running = True
        loops: list[tuple[str, float, Callable[[], Awaitable[object]]]] = [
            ("disk-sync", self._config.disk_sync_interval_seconds, self.run_sync_once),
            ("health-audit", self._config.health_audit_interval_seconds, self.run_audit_once),
        ]
        keep_warm = self._config.keep_warm
        if keep_warm.enabled and self._keep_warm_url:
            loops.append(("keep-warm", keep_warm.interval_seconds, self.run_keep_warm_once))

        for name, interval, tick in loops:
            self._tasks.append(
                asyncio.create_task(
                    self._background_loop(name, interval, tick),
                    name=f"pool-scheduler-{name}",
                )
            )

        self._log.info(
            "pool_scheduler.started",
            loops=[name for name, _, _ in loops],
            disk_sync_interval=self._config.disk_sync_interval_seconds,
            health_audit_interval=self._config.health_audit_interval_seconds,
        )

    async def stop(self) -> None:
        """Stop background loops gracefully."""
        if not self._running:
            return

        self._log.info("pool_scheduler.stopping")
        self._running = False

        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()

        self._log.info("pool_scheduler.stopped")

    async def run_sync_once(self) -> bool:
        """Flush to disk if dirty and no flush is in flight."""
        if not self._registry.dirty or self._store.is_syncing:
            return False
        return await self._store.sync(self._registry)

    async def run_audit_once(self) -> list[str]:
        """Start replenishment for every pool below target.

        Returns:
            Pool ids for which a run was started
        """
        started: list[str] = []
        for pool_id in self._registry.pool_ids:
            deficit = self._registry.deficit(pool_id)
            if deficit <= 0 or self._registry.is_locked(pool_id):
                continue
            if self._replenisher.schedule(pool_id):
                started.append(pool_id)
                self._log.info("pool_audit.replenish_triggered", pool_id=pool_id, deficit=deficit)

        self._log.debug(
            "pool_audit.complete",
            pools={pool_id: self._registry.size(pool_id) for pool_id in self._registry.pool_ids},
            triggered=started,
        )
        return started

    async def run_keep_warm_once(self) -> bool:
        """Ping the service health endpoint. Failures are logged, never raised."""
        if not self._keep_warm_url:
            return False

        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.get(
                    self._keep_warm_url,
                    timeout=self._config.keep_warm.timeout_seconds,
                )
            if response.status_code >= 400:
                self._log.warning(
                    "keep_warm.bad_status",
                    url=self._keep_warm_url,
                    status=response.status_code,
                )
                return False
        except httpx.HTTPError as exc:
            self._log.warning("keep_warm.failed", url=self._keep_warm_url, error=str(exc))
            return False

        self._log.debug("keep_warm.ok", url=self._keep_warm_url)
        return True

    async def _background_loop(
        self,
        name: str,
        interval: float,
        tick: Callable[[], Awaitable[object]],
    ) -> None:
        """Sleep, tick, repeat. A failed tick never ends the loop."""
        while self._running:
            try:
                await asyncio.sleep(interval)
            except asyncio.CancelledError:
                break

            try:
                await tick()
            except asyncio.CancelledError:
                break
            except Exception as exc:
                self._log.exception(
                    "pool_scheduler.tick_error",
                    loop=name,
                    error=str(exc),
                )
