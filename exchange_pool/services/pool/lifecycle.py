"""Pool service lifecycle management for FastAPI lifespan integration.

Manages the startup and shutdown of:
- PoolRegistry hydration from the DurableStore
- PoolScheduler (disk sync, health audit, keep-warm)
- Background replenishment runs and the final flush
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from exchange_pool.config import build_pool_configs
from exchange_pool.managers.pool import PoolManager
from exchange_pool.services.pool.registry import PoolRegistry
from exchange_pool.services.pool.replenisher import Replenisher
from exchange_pool.services.pool.scheduler import PoolScheduler
from exchange_pool.services.pool.store import DurableStore

if TYPE_CHECKING:
    from exchange_pool.config import Settings
    from exchange_pool.creators.base import ItemCreator

logger = structlog.get_logger()


@dataclass
class PoolService:
    """Everything the pool subsystem owns for the life of the process."""

    registry: PoolRegistry
    store: DurableStore
    creator: "ItemCreator"
    replenisher: Replenisher
    scheduler: PoolScheduler
    manager: PoolManager


def build_pool_service(settings: "Settings", creator: "ItemCreator") -> PoolService:
    """Wire the pool components together without starting anything.

    Raises:
        ConfigurationError: If no valid pool is configured
    """
    configs = build_pool_configs(settings)
    registry = PoolRegistry(configs)
    store = DurableStore(settings.pool.store_path)
    replenisher = Replenisher(
        registry,
        creator,
        store,
        settings.replenish,
        destination=settings.creator.wallet_address,
    )
    scheduler = PoolScheduler(
        settings.scheduler,
        registry,
        store,
        replenisher,
        keep_warm_url=settings.keep_warm_url,
    )
    manager = PoolManager(
        registry,
        replenisher,
        store,
        replenish_policy=settings.pool.replenish_policy,
    )
    return PoolService(
        registry=registry,
        store=store,
        creator=creator,
        replenisher=replenisher,
        scheduler=scheduler,
        manager=manager,
    )


def _log_pool_status(registry: PoolRegistry) -> None:
    for pool_id in registry.pool_ids:
        size = registry.size(pool_id)
        target = registry.config(pool_id).target_size
        status = "FULL" if size >= target else "PARTIAL" if size > 0 else "EMPTY"
        logger.info("pool.status", pool_id=pool_id, size=size, target=target, status=status)


async def init_pool_service(
    settings: "Settings",
    creator: "ItemCreator | None" = None,
) -> PoolService:
    """Build, hydrate and start the pool service.

    Called during FastAPI lifespan startup.
    """
    if creator is None:
        from exchange_pool.creators.simpleswap import SimpleSwapCreator

        creator = SimpleSwapCreator(settings.creator)

    service = build_pool_service(settings, creator)

    logger.info(
        "pool_service.init",
        price_points=settings.pool.price_points,
        size_per_price=settings.pool.size_per_price,
        min_size=settings.pool.min_size,
        replenish_policy=settings.pool.replenish_policy,
        store_path=str(service.store.path),
    )

    service.registry.hydrate(service.store.load(service.registry.pool_ids))
    _log_pool_status(service.registry)

    if settings.scheduler.audit_on_startup:
        started = await service.scheduler.run_audit_once()
        logger.info("pool_service.startup_audit", triggered=started)

    await service.scheduler.start()
    return service


async def shutdown_pool_service(service: PoolService) -> None:
    """Stop background work and flush what is left.

    Called during FastAPI lifespan shutdown.
    """
    await service.scheduler.stop()
    await service.replenisher.stop()

    if service.registry.dirty:
        logger.info("pool_service.shutdown.final_flush")
        await service.store.sync(service.registry)

    await service.creator.close()
    logger.info("pool_service.stopped")
