"""Admin API endpoints.

POST /admin/init-pool        - Wipe and rebuild one or all pools
POST /admin/add-one          - Add a single exchange to a pool
POST /admin/fill-sequential  - Fill a pool up to target and wait

All of these block until the external creator is done, which can take
minutes.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from exchange_pool.api.dependencies import PoolManagerDep
from exchange_pool.api.schemas import CamelModel, PoolSelector

router = APIRouter()


class PoolInitResult(CamelModel):
    created: int = 0
    failed: int = 0
    target: int
    skipped: bool = False
    reason: str | None = None


class InitPoolResponse(CamelModel):
    success: bool = True
    results: dict[str, PoolInitResult]
    message: str


class AddOneResponse(CamelModel):
    success: bool
    price_point: int
    pool_size: int
    target: int
    exchange_id: str | None = None
    error: str | None = None


class FillSequentialResponse(CamelModel):
    success: bool
    price_point: int
    created: int = 0
    failed: int = 0
    pool_size: int
    target: int
    message: str | None = None
    error: str | None = None


@router.post("/init-pool", response_model=InitPoolResponse)
async def init_pool(
    manager: PoolManagerDep,
    request: PoolSelector | None = None,
) -> InitPoolResponse:
    """Wipe and rebuild pools from empty (all pools when none is given)."""
    selector = request.price_point if request else None
    outcome = await manager.admin_init(selector)

    results: dict[str, PoolInitResult] = {}
    for pool_id, r in outcome.results.items():
        if r.status == "already_running":
            results[pool_id] = PoolInitResult(
                target=r.target,
                skipped=True,
                reason="already initializing",
            )
        else:
            results[pool_id] = PoolInitResult(created=r.created, failed=r.failed, target=r.target)

    message = "All pools initialized" if selector in (None, "") else f"${selector} pool initialized"
    return InitPoolResponse(results=results, message=message)


@router.post("/add-one", response_model=AddOneResponse, response_model_exclude_none=True)
async def add_one(
    manager: PoolManagerDep,
    request: PoolSelector | None = None,
) -> AddOneResponse:
    """Create one exchange and append it, unless the pool is full or busy."""
    result = await manager.admin_add_one(request.price_point if request else None)
    amount = manager.registry.config(result.pool_id).amount

    if result.status == "already_full":
        return AddOneResponse(
            success=False,
            price_point=amount,
            pool_size=result.pool_size,
            target=result.target,
            error=f"${result.pool_id} pool already full ({result.pool_size}/{result.target})",
        )
    if result.status == "already_running":
        return AddOneResponse(
            success=False,
            price_point=amount,
            pool_size=result.pool_size,
            target=result.target,
            error=f"${result.pool_id} pool is being replenished",
        )

    return AddOneResponse(
        success=True,
        price_point=amount,
        pool_size=result.pool_size,
        target=result.target,
        exchange_id=result.exchange_id,
    )


@router.post(
    "/fill-sequential",
    response_model=FillSequentialResponse,
    response_model_exclude_none=True,
)
async def fill_sequential(
    manager: PoolManagerDep,
    request: PoolSelector | None = None,
) -> Any:
    """Fill a pool up to target, one exchange at a time."""
    result = await manager.admin_fill_sequential(request.price_point if request else None)
    amount = manager.registry.config(result.pool_id).amount

    if result.status == "already_running":
        return FillSequentialResponse(
            success=False,
            price_point=amount,
            pool_size=result.pool_size,
            target=result.target,
            error="Already filling pool",
        )
    if result.status == "already_full":
        return FillSequentialResponse(
            success=True,
            price_point=amount,
            pool_size=result.pool_size,
            target=result.target,
            message=f"${result.pool_id} pool already full",
        )

    return FillSequentialResponse(
        success=True,
        price_point=amount,
        created=result.created,
        failed=result.failed,
        pool_size=result.pool_size,
        target=result.target,
    )
