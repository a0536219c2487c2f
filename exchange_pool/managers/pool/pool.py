"""PoolManager - request-facing pool operations.

Consume, inspect and admin operations over the shared PoolRegistry.
Replenishment and persistence are delegated to the Replenisher and
DurableStore owned by the pool service lifecycle.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

import structlog

from exchange_pool.errors import InvalidPoolError

if TYPE_CHECKING:
    from exchange_pool.models import ExchangeItem
    from exchange_pool.services.pool.registry import PoolRegistry
    from exchange_pool.services.pool.replenisher import Replenisher, ReplenishResult
    from exchange_pool.services.pool.store import DurableStore

logger = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class ConsumeResult:
    """An exchange handed to a buyer."""

    pool_id: str
    item: "ExchangeItem"
    source: Literal["pool", "on-demand"]
    response_time_ms: int


@dataclass(frozen=True, slots=True)
class AddOneResult:
    pool_id: str
    status: Literal["added", "already_full", "already_running"]
    pool_size: int
    target: int
    exchange_id: str | None = None


@dataclass
class InitResult:
    """Outcome of rebuilding pools from empty."""

    results: dict[str, "ReplenishResult"] = field(default_factory=dict)

    @property
    def skipped(self) -> list[str]:
        return [pool_id for pool_id, r in self.results.items() if r.status == "already_running"]


class PoolManager:
    """Pool operations exposed to the API layer."""

    def __init__(
        self,
        registry: "PoolRegistry",
        replenisher: "Replenisher",
        store: "DurableStore",
        *,
        replenish_policy: Literal["instant", "min_size"] = "instant",
    ) -> None:
        self._registry = registry
        self._replenisher = replenisher
        self._store = store
        self._policy = replenish_policy
        self._log = logger.bind(manager="pool")

    @property
    def registry(self) -> "PoolRegistry":
        return self._registry

    def resolve_pool_id(self, selector: Any) -> str:
        """Map a request selector (USD amount) to a configured pool id.

        Raises:
            InvalidPoolError: Missing, malformed or unconfigured selector
        """
        available = [self._registry.config(p).amount for p in self._registry.pool_ids]
        if selector is None or selector == "":
            raise InvalidPoolError(
                "Missing required parameter: amountUSD",
                details={"availablePrices": available},
            )
        try:
            pool_id = str(int(str(selector).strip()))
        except ValueError:
            raise InvalidPoolError(
                f"Invalid amount: ${selector}. Available: "
                + ", ".join(f"${a}" for a in available),
                details={"availablePrices": available},
            ) from None
        if pool_id not in self._registry.pool_ids:
            raise InvalidPoolError(
                f"Invalid amount: ${selector}. Available: "
                + ", ".join(f"${a}" for a in available),
                details={"availablePrices": available},
            )
        return pool_id

    def _default_pool_id(self, selector: Any) -> str:
        if selector is None or selector == "":
            return self._registry.pool_ids[0]
        return self.resolve_pool_id(selector)

    # -- consume --

    async def consume(self, selector: Any) -> ConsumeResult:
        """Hand out one exchange.

        Pops from the pool when possible; otherwise creates one on demand
        (not added to the pool). A replenishment check follows either way.

        Raises:
            InvalidPoolError: Unknown selector
            CreationError: Pool empty and on-demand creation failed
        """
        started = time.perf_counter()
        pool_id = self.resolve_pool_id(selector)

        item = self._registry.try_consume(pool_id)
        if item is not None:
            remaining = self._registry.size(pool_id)
            self._log.info(
                "pool.consume.delivered",
                pool_id=pool_id,
                exchange_id=item.exchange_id,
                remaining=remaining,
            )
            self._after_consume(pool_id, remaining)
            return ConsumeResult(
                pool_id=pool_id,
                item=item,
                source="pool",
                response_time_ms=_elapsed_ms(started),
            )

        self._log.warning("pool.consume.empty_on_demand", pool_id=pool_id)
        try:
            item = await self._replenisher.create_item(pool_id)
        finally:
            self._replenisher.schedule(pool_id)

        self._registry.record_on_demand()
        return ConsumeResult(
            pool_id=pool_id,
            item=item,
            source="on-demand",
            response_time_ms=_elapsed_ms(started),
        )

    def _after_consume(self, pool_id: str, remaining: int) -> None:
        if self._policy == "instant" or remaining < self._registry.config(pool_id).min_size:
            self._replenisher.schedule(pool_id)

    async def sync(self) -> bool:
        """Flush pool state if dirty (used after responses are sent)."""
        return await self._store.sync(self._registry)

    # -- inspect --

    def stats(self, selector: Any = None) -> dict[str, Any]:
        """Per-pool sizes, limits and contents plus aggregate counters."""
        if selector is None or selector == "":
            pool_ids = self._registry.pool_ids
        else:
            pool_ids = [self.resolve_pool_id(selector)]

        pools: dict[str, Any] = {}
        for pool_id in pool_ids:
            config = self._registry.config(pool_id)
            pools[pool_id] = {
                "description": config.description,
                "size": self._registry.size(pool_id),
                "maxSize": config.target_size,
                "minSize": config.min_size,
                "replenishing": self._registry.is_locked(pool_id),
                "exchanges": [item.to_record() for item in self._registry.items(pool_id)],
            }

        counters = self._registry.stats
        return {
            "pricePoints": [self._registry.config(p).amount for p in self._registry.pool_ids],
            "pools": pools,
            "totalSize": sum(p["size"] for p in pools.values()),
            "totalMaxSize": sum(p["maxSize"] for p in pools.values()),
            "persistence": self._registry.persistence_state.value,
            "counters": {
                "consumed": counters.consumed_total,
                "replenished": counters.replenished_total,
                "failed": counters.failed_total,
                "onDemand": counters.on_demand_total,
            },
        }

    def health(self) -> dict[str, Any]:
        """Healthy only if every pool holds at least min_size exchanges."""
        pools: dict[str, Any] = {}
        for pool_id in self._registry.pool_ids:
            config = self._registry.config(pool_id)
            size = self._registry.size(pool_id)
            pools[pool_id] = {
                "size": size,
                "minSize": config.min_size,
                "target": config.target_size,
                "status": "healthy" if size >= config.min_size else "degraded",
            }

        all_healthy = all(p["status"] == "healthy" for p in pools.values())
        return {
            "status": "healthy" if all_healthy else "degraded",
            "pools": pools,
        }

    # -- admin --

    async def admin_init(self, selector: Any = None) -> InitResult:
        """Wipe and rebuild one pool, or all pools in order, synchronously."""
        if selector is None or selector == "":
            pool_ids = self._registry.pool_ids
        else:
            pool_ids = [self.resolve_pool_id(selector)]

        result = InitResult()
        for pool_id in pool_ids:
            self._log.info("pool.init.start", pool_id=pool_id)
            result.results[pool_id] = await self._replenisher.replenish(pool_id, reset=True)

        await self._store.sync(self._registry)
        return result

    async def admin_add_one(self, selector: Any = None) -> AddOneResult:
        """Create exactly one exchange and append it, unless full or busy.

        Raises:
            CreationError: Creator failed after retries; pool unchanged
        """
        pool_id = self._default_pool_id(selector)
        config = self._registry.config(pool_id)

        if self._registry.deficit(pool_id) <= 0:
            return AddOneResult(
                pool_id=pool_id,
                status="already_full",
                pool_size=self._registry.size(pool_id),
                target=config.target_size,
            )

        if not self._registry.try_lock(pool_id):
            return AddOneResult(
                pool_id=pool_id,
                status="already_running",
                pool_size=self._registry.size(pool_id),
                target=config.target_size,
            )

        try:
            self._log.info("pool.add_one.start", pool_id=pool_id)
            item = await self._replenisher.create_item(pool_id)
            size = self._registry.append(pool_id, item)
        finally:
            self._registry.unlock(pool_id)

        await self._store.sync(self._registry)
        return AddOneResult(
            pool_id=pool_id,
            status="added",
            pool_size=size,
            target=config.target_size,
            exchange_id=item.exchange_id,
        )

    async def admin_fill_sequential(self, selector: Any = None) -> "ReplenishResult":
        """Run a replenishment and wait for it."""
        pool_id = self._default_pool_id(selector)
        return await self._replenisher.replenish(pool_id)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)
