"""Pool API endpoints.

GET  /         - Service summary
GET  /health   - Pool health vs min size
GET  /stats    - Detailed pool contents
POST /buy-now  - Hand out one exchange
"""

from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter, BackgroundTasks, Query
from pydantic import Field

from exchange_pool import __version__
from exchange_pool.api.dependencies import PoolManagerDep, PoolServiceDep
from exchange_pool.api.schemas import CamelModel
from exchange_pool.utils.datetime import utcnow

router = APIRouter()


# Request/Response Models


class BuyNowRequest(CamelModel):
    """Request for one exchange."""

    # Validated by PoolManager.resolve_pool_id so bad selectors get the 400 envelope
    amount_usd: Any = Field(default=None, alias="amountUSD")


class BuyNowResponse(CamelModel):
    """Exchange handed to the buyer."""

    success: bool = True
    exchange_url: str
    exchange_id: str
    amount: int
    response_time: str
    source: Literal["pool", "on-demand"]


class PoolHealth(CamelModel):
    size: int
    min_size: int
    target: int
    status: Literal["healthy", "degraded"]


class HealthResponse(CamelModel):
    status: Literal["healthy", "degraded"]
    price_points: list[int]
    pools: dict[str, PoolHealth]
    timestamp: str


# Endpoints


@router.get("/")
async def summary(service: PoolServiceDep) -> dict[str, Any]:
    """Service summary with pool sizes."""
    registry = service.registry
    pools = {pool_id: registry.size(pool_id) for pool_id in registry.pool_ids}
    total_size = sum(pools.values())
    max_size = sum(registry.config(p).target_size for p in registry.pool_ids)
    sync_interval = service.scheduler.disk_sync_interval

    return {
        "service": "SimpleSwap Exchange Pool Server",
        "status": "running",
        "version": __version__,
        "mode": "multi-pool",
        "pricePoints": [registry.config(p).amount for p in registry.pool_ids],
        "pools": pools,
        "totalSize": total_size,
        "maxSize": max_size,
        "diskSync": f"Every {sync_interval:g}s",
        "note": (
            "Pool ready - instant delivery from memory"
            if total_size > 0
            else "Use POST /admin/init-pool to initialize"
        ),
    }


@router.get("/health", response_model=HealthResponse)
async def health(manager: PoolManagerDep) -> HealthResponse:
    """Aggregate health: degraded if any pool is below its min size."""
    report = manager.health()
    return HealthResponse(
        status=report["status"],
        price_points=[manager.registry.config(p).amount for p in manager.registry.pool_ids],
        pools={pool_id: PoolHealth(**p) for pool_id, p in report["pools"].items()},
        timestamp=utcnow().isoformat(),
    )


@router.get("/stats")
async def stats(
    manager: PoolManagerDep,
    price_point: str | None = Query(None, alias="pricePoint"),
) -> dict[str, Any]:
    """Per-pool sizes, limits and contents."""
    return manager.stats(price_point)


@router.post("/buy-now", response_model=BuyNowResponse)
async def buy_now(
    background_tasks: BackgroundTasks,
    manager: PoolManagerDep,
    request: BuyNowRequest | None = None,
) -> BuyNowResponse:
    """Hand out one exchange, from the pool when possible.

    Replenishment is triggered by the manager; the disk sync runs after
    the response has been sent.
    """
    result = await manager.consume(request.amount_usd if request else None)
    background_tasks.add_task(manager.sync)

    return BuyNowResponse(
        exchange_url=result.item.exchange_url,
        exchange_id=result.item.exchange_id,
        amount=result.item.amount,
        response_time=f"{result.response_time_ms}ms",
        source=result.source,
    )
