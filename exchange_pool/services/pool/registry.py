"""PoolRegistry - in-memory exchange pools.

Holds one FIFO queue of ready exchanges per configured price point, the
per-pool replenishment lock, and the persistence state machine.

None of the methods here await. Running on a single event loop, every
push, pop and lock check-and-set is therefore indivisible with respect to
other coroutines, which is what keeps items from being lost or duplicated.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

import structlog

from exchange_pool.errors import InvalidPoolError, PoolFullError

if TYPE_CHECKING:
    from exchange_pool.config import PoolConfig
    from exchange_pool.models import ExchangeItem

logger = structlog.get_logger()


class PersistenceState(str, Enum):
    """Whether in-memory pools match the last persisted snapshot."""

    CLEAN = "clean"
    DIRTY = "dirty"
    FLUSHING = "flushing"


@dataclass
class RegistryStats:
    """Observable counters. Not used for correctness."""

    consumed_total: int = 0
    replenished_total: int = 0
    failed_total: int = 0
    on_demand_total: int = 0


@dataclass(frozen=True, slots=True)
class FlushTicket:
    """Snapshot handed to the store, tagged with the registry version."""

    version: int
    pools: dict[str, list["ExchangeItem"]]


class PoolRegistry:
    """Process-wide pool state, owned by the pool service lifecycle."""

    def __init__(self, configs: Mapping[str, "PoolConfig"]) -> None:
        self._configs = dict(configs)
        self._pools: dict[str, deque[ExchangeItem]] = {pool_id: deque() for pool_id in self._configs}
        self._locked: set[str] = set()
        self._stats = RegistryStats()
        self._log = logger.bind(service="pool_registry")

        # Mutation counter; persisted_version trails it until a flush lands.
        self._version = 0
        self._persisted_version = 0
        self._flushing = False

    # -- configuration --

    @property
    def pool_ids(self) -> list[str]:
        return list(self._configs)

    @property
    def configs(self) -> dict[str, "PoolConfig"]:
        return dict(self._configs)

    @property
    def stats(self) -> RegistryStats:
        return self._stats

    def config(self, pool_id: str) -> "PoolConfig":
        try:
            return self._configs[pool_id]
        except KeyError:
            raise InvalidPoolError(
                f"Invalid price point: ${pool_id}. Available: {self._available()}",
                details={"availablePrices": [c.amount for c in self._configs.values()]},
            ) from None

    def _available(self) -> str:
        return ", ".join(f"${pool_id}" for pool_id in self._configs)

    def _pool(self, pool_id: str) -> deque["ExchangeItem"]:
        self.config(pool_id)
        return self._pools[pool_id]

    # -- pool operations --

    def size(self, pool_id: str) -> int:
        return len(self._pool(pool_id))

    def deficit(self, pool_id: str) -> int:
        return max(0, self.config(pool_id).target_size - self.size(pool_id))

    def items(self, pool_id: str) -> list["ExchangeItem"]:
        return list(self._pool(pool_id))

    def try_consume(self, pool_id: str) -> "ExchangeItem | None":
        """Pop the oldest exchange, or return None if the pool is empty."""
        pool = self._pool(pool_id)
        if not pool:
            return None

        item = pool.popleft()
        self._stats.consumed_total += 1
        self._mark_dirty()
        return item

    def append(self, pool_id: str, item: "ExchangeItem") -> int:
        """Add one exchange to the tail. Returns the new pool size.

        Raises:
            PoolFullError: If the pool is already at its target size.
        """
        pool = self._pool(pool_id)
        target = self._configs[pool_id].target_size
        if len(pool) >= target:
            raise PoolFullError(
                f"${pool_id} pool already full ({len(pool)}/{target})",
                details={"poolSize": len(pool), "target": target},
            )

        pool.append(item)
        self._stats.replenished_total += 1
        self._mark_dirty()
        return len(pool)

    def clear(self, pool_id: str) -> int:
        """Drop every exchange in a pool. Returns how many were dropped."""
        pool = self._pool(pool_id)
        dropped = len(pool)
        pool.clear()
        self._mark_dirty()
        if dropped:
            self._log.warning("pool.cleared", pool_id=pool_id, dropped=dropped)
        return dropped

    def hydrate(self, data: Mapping[str, Iterable["ExchangeItem"]]) -> None:
        """Replace pool contents with persisted data without marking dirty.

        Unknown pool ids are ignored; configured ids missing from ``data``
        start empty.
        """
        for pool_id in self._configs:
            self._pools[pool_id] = deque(data.get(pool_id, ()))

        ignored = sorted(set(data) - set(self._configs))
        if ignored:
            self._log.info("pool.hydrate.ignored_pools", pool_ids=ignored)

    def snapshot(self) -> dict[str, list["ExchangeItem"]]:
        return {pool_id: list(pool) for pool_id, pool in self._pools.items()}

    # -- replenishment lock --

    def try_lock(self, pool_id: str) -> bool:
        """Claim the replenishment lock. Returns False if already held."""
        self.config(pool_id)
        if pool_id in self._locked:
            return False
        self._locked.add(pool_id)
        return True

    def unlock(self, pool_id: str) -> None:
        self._locked.discard(pool_id)

    def is_locked(self, pool_id: str) -> bool:
        return pool_id in self._locked

    # -- persistence state machine --

    def _mark_dirty(self) -> None:
        self._version += 1

    @property
    def dirty(self) -> bool:
        return self._version != self._persisted_version

    @property
    def persistence_state(self) -> PersistenceState:
        if self._flushing:
            return PersistenceState.FLUSHING
        return PersistenceState.DIRTY if self.dirty else PersistenceState.CLEAN

    def begin_flush(self) -> FlushTicket | None:
        """Move dirty -> flushing and hand out a snapshot.

        Returns None when clean (nothing to write) or when a flush is
        already in flight; a second flush is rejected, not queued.
        """
        if self._flushing or not self.dirty:
            return None
        self._flushing = True
        return FlushTicket(version=self._version, pools=self.snapshot())

    def complete_flush(self, ticket: FlushTicket, *, success: bool) -> None:
        """Leave the flushing state.

        On success the registry becomes clean unless it was mutated while
        the snapshot was being written.
        """
        self._flushing = False
        if success:
            self._persisted_version = max(self._persisted_version, ticket.version)

    def record_failure(self) -> None:
        self._stats.failed_total += 1

    def record_on_demand(self) -> None:
        self._stats.on_demand_total += 1
