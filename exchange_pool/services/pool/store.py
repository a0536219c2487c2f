"""DurableStore - JSON snapshot of every pool on local disk.

Writes go to a uniquely named temp file in the same directory and are then
moved over the canonical file with ``os.replace``, so readers only ever
see the complete old snapshot or the complete new one.
"""

from __future__ import annotations

import asyncio
import json
import os
import secrets
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from exchange_pool.errors import PersistenceError
from exchange_pool.models import ExchangeItem

if TYPE_CHECKING:
    from exchange_pool.services.pool.registry import PoolRegistry

logger = structlog.get_logger()


class DurableStore:
    """Atomic JSON persistence for pool contents."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._syncing = False
        self._log = logger.bind(service="pool_store", path=str(self._path))

    @property
    def path(self) -> Path:
        return self._path

    @property
    def is_syncing(self) -> bool:
        return self._syncing

    def load(self, pool_ids: Iterable[str]) -> dict[str, list[ExchangeItem]]:
        """Read the last snapshot.

        A missing file is a normal first run. A corrupt file is logged and
        treated as empty so the service can still start and refill.
        """
        pools: dict[str, list[ExchangeItem]] = {pool_id: [] for pool_id in pool_ids}

        if not self._path.exists():
            self._log.info("pool_store.load.no_snapshot")
            return pools

        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            self._log.error("pool_store.load.unreadable", error=str(exc))
            return pools

        if not isinstance(raw, dict):
            self._log.error("pool_store.load.bad_format", type=type(raw).__name__)
            return pools

        for pool_id in pools:
            records = raw.get(pool_id) or []
            if not isinstance(records, list):
                self._log.error(
                    "pool_store.load.bad_format",
                    pool_id=pool_id,
                    type=type(records).__name__,
                )
                continue
            for record in records:
                try:
                    pools[pool_id].append(ExchangeItem.model_validate(record))
                except ValidationError as exc:
                    self._log.warning(
                        "pool_store.load.bad_record",
                        pool_id=pool_id,
                        error=str(exc),
                    )

        self._log.info(
            "pool_store.loaded",
            pools={pool_id: len(items) for pool_id, items in pools.items()},
        )
        return pools

    async def flush(self, snapshot: Mapping[str, Iterable[ExchangeItem]]) -> bool:
        """Atomically write ``snapshot``.

        Returns False without writing if another flush is in flight.

        Raises:
            PersistenceError: If the snapshot could not be written.
        """
        if self._syncing:
            self._log.debug("pool_store.flush.skipped_in_flight")
            return False

        self._syncing = True
        try:
            payload = {
                pool_id: [item.to_record() for item in items]
                for pool_id, items in snapshot.items()
            }
            await asyncio.to_thread(self._write_atomic, payload)
            return True
        finally:
            self._syncing = False

    def _write_atomic(self, payload: dict) -> None:
        tmp_path = self._path.with_name(f"{self._path.name}.{secrets.token_hex(8)}.tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self._path)
        except OSError as exc:
            try:
                tmp_path.unlink(missing_ok=True)
            except OSError:
                pass
            raise PersistenceError(f"Failed to write pool snapshot: {exc}") from exc

    async def sync(self, registry: "PoolRegistry") -> bool:
        """Flush the registry if dirty. Never raises on write failure.

        Returns True if a snapshot was written.
        """
        if self._syncing:
            return False

        ticket = registry.begin_flush()
        if ticket is None:
            return False

        try:
            written = await self.flush(ticket.pools)
        except PersistenceError as exc:
            registry.complete_flush(ticket, success=False)
            self._log.error("pool_store.sync.failed", error=str(exc))
            return False
        except BaseException:
            registry.complete_flush(ticket, success=False)
            raise

        registry.complete_flush(ticket, success=written)
        if written:
            self._log.info(
                "pool_store.synced",
                pools={pool_id: len(items) for pool_id, items in ticket.pools.items()},
            )
        return written
