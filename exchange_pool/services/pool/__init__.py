"""Exchange pool service.

This module provides:
- PoolRegistry: In-memory FIFO pools with per-pool replenishment locks
- DurableStore: Atomic JSON snapshot persistence
- Replenisher: Lock-guarded, retrying deficit filler
- PoolScheduler: Disk-sync, health-audit and keep-warm loops
- Lifecycle management for FastAPI lifespan integration

Usage:
    from exchange_pool.services.pool import PoolRegistry, Replenisher

    registry = PoolRegistry(build_pool_configs(settings))
    await replenisher.replenish("25")
"""

from exchange_pool.services.pool.registry import PersistenceState, PoolRegistry, RegistryStats
from exchange_pool.services.pool.replenisher import Replenisher, ReplenishResult
from exchange_pool.services.pool.scheduler import PoolScheduler
from exchange_pool.services.pool.store import DurableStore

__all__ = [
    "DurableStore",
    "PersistenceState",
    "PoolRegistry",
    "PoolScheduler",
    "RegistryStats",
    "Replenisher",
    "ReplenishResult",
]
