"""Replenisher - lock-guarded deficit filling for one pool.

Protocol per run:
1. Claim the pool's lock; if it is held, the trigger is dropped (not queued)
2. deficit = target - size; nothing to do if <= 0
3. Create the missing exchanges one at a time, each with bounded retries
   and exponential backoff, appending and flushing after every success
4. A creation that exhausts its retries is counted and skipped; the run
   keeps going so a partial pool beats an empty one
5. The lock is released on every exit path
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

import structlog

from exchange_pool.errors import CreationError, CreationTimeoutError

if TYPE_CHECKING:
    from exchange_pool.config import ReplenishConfig
    from exchange_pool.creators.base import ItemCreator
    from exchange_pool.models import ExchangeItem
    from exchange_pool.services.pool.registry import PoolRegistry
    from exchange_pool.services.pool.store import DurableStore

logger = structlog.get_logger()

ReplenishStatus = Literal["completed", "already_running", "already_full"]


@dataclass(frozen=True, slots=True)
class ReplenishResult:
    """Outcome of one replenishment run."""

    pool_id: str
    status: ReplenishStatus
    needed: int = 0
    created: int = 0
    failed: int = 0
    pool_size: int = 0
    target: int = 0


class Replenisher:
    """Fills pools back up to target using an ItemCreator."""

    def __init__(
        self,
        registry: "PoolRegistry",
        creator: "ItemCreator",
        store: "DurableStore",
        config: "ReplenishConfig",
        *,
        destination: str | None = None,
    ) -> None:
        self._registry = registry
        self._creator = creator
        self._store = store
        self._config = config
        self._destination = destination
        self._log = logger.bind(service="replenisher")

        self._tasks: set[asyncio.Task] = set()

    @property
    def pending_runs(self) -> int:
        """Background runs started by schedule() and not yet finished."""
        return len(self._tasks)

    async def create_item(self, pool_id: str) -> "ExchangeItem":
        """Create one exchange for ``pool_id`` with retries and backoff.

        Does not touch the pool.

        Raises:
            CreationError: After ``max_retries`` failed attempts; the message
                is that of the last underlying failure.
        """
        config = self._registry.config(pool_id)
        max_retries = self._config.max_retries

        for attempt in range(1, max_retries + 1):
            try:
                return await asyncio.wait_for(
                    self._creator.create(config.amount, self._destination),
                    timeout=self._config.attempt_timeout_seconds,
                )
            except TimeoutError:
                last_error = CreationTimeoutError(
                    f"Exchange creation timed out after {self._config.attempt_timeout_seconds}s"
                )
            except CreationError as exc:
                last_error = exc
            except Exception as exc:
                last_error = CreationError(str(exc) or type(exc).__name__)

            self._log.warning(
                "replenish.attempt_failed",
                pool_id=pool_id,
                attempt=attempt,
                max_retries=max_retries,
                error=last_error.message,
            )

            if attempt >= max_retries:
                raise last_error
            await asyncio.sleep(self._config.backoff_base_seconds * 2 ** (attempt - 1))

        raise CreationError(
            f"No creation attempt made for pool {pool_id} (max_retries={max_retries})"
        )

    async def replenish(self, pool_id: str, *, reset: bool = False) -> ReplenishResult:
        """Run one replenishment for ``pool_id``.

        Args:
            pool_id: Pool to fill
            reset: Wipe the pool after claiming the lock and refill from empty

        Returns:
            ReplenishResult; ``already_running`` if another run owns the pool
        """
        config = self._registry.config(pool_id)

        if not self._registry.try_lock(pool_id):
            self._log.info("replenish.skipped.already_running", pool_id=pool_id)
            return ReplenishResult(
                pool_id=pool_id,
                status="already_running",
                pool_size=self._registry.size(pool_id),
                target=config.target_size,
            )

        try:
            if reset:
                self._registry.clear(pool_id)
            return await self._fill(pool_id)
        finally:
            self._registry.unlock(pool_id)

    async def _fill(self, pool_id: str) -> ReplenishResult:
        config = self._registry.config(pool_id)
        needed = self._registry.deficit(pool_id)

        if needed <= 0:
            self._log.debug("replenish.already_full", pool_id=pool_id)
            return ReplenishResult(
                pool_id=pool_id,
                status="already_full",
                pool_size=self._registry.size(pool_id),
                target=config.target_size,
            )

        self._log.info("replenish.started", pool_id=pool_id, needed=needed)

        created = 0
        failed = 0
        for i in range(needed):
            try:
                item = await self.create_item(pool_id)
            except CreationError as exc:
                failed += 1
                self._registry.record_failure()
                self._log.error(
                    "replenish.item_failed",
                    pool_id=pool_id,
                    index=i + 1,
                    needed=needed,
                    error=exc.message,
                )
            else:
                self._registry.append(pool_id, item)
                created += 1
                self._log.info(
                    "replenish.item_created",
                    pool_id=pool_id,
                    exchange_id=item.exchange_id,
                    progress=f"{created}/{needed}",
                )
                await self._store.sync(self._registry)

            if i < needed - 1:
                await asyncio.sleep(self._config.pacing_seconds)

        size = self._registry.size(pool_id)
        self._log.info(
            "replenish.completed",
            pool_id=pool_id,
            created=created,
            failed=failed,
            pool_size=size,
            target=config.target_size,
        )
        return ReplenishResult(
            pool_id=pool_id,
            status="completed",
            needed=needed,
            created=created,
            failed=failed,
            pool_size=size,
            target=config.target_size,
        )

    def schedule(self, pool_id: str) -> bool:
        """Start a background run for ``pool_id`` (fire-and-forget).

        Returns False without starting anything if the pool is locked.
        """
        if self._registry.is_locked(pool_id):
            return False

        task = asyncio.create_task(
            self._run_in_background(pool_id),
            name=f"replenish-{pool_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def _run_in_background(self, pool_id: str) -> None:
        try:
            await self.replenish(pool_id)
        except asyncio.CancelledError:
            self._log.info("replenish.cancelled", pool_id=pool_id)
            raise
        except Exception as exc:
            self._log.exception(
                "replenish.unexpected_error",
                pool_id=pool_id,
                error=str(exc),
            )

    async def wait_idle(self) -> None:
        """Wait for every background run started so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def stop(self) -> None:
        """Cancel background runs. Their locks are released on the way out."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
