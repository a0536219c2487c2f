"""FastAPI dependencies.

The pool service is created by the app lifespan and kept on ``app.state``.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from exchange_pool.managers.pool import PoolManager
from exchange_pool.services.pool.lifecycle import PoolService


def get_pool_service(request: Request) -> PoolService:
    service = getattr(request.app.state, "pool_service", None)
    if service is None:
        raise RuntimeError("Pool service not initialized")
    return service


def get_pool_manager(
    service: Annotated[PoolService, Depends(get_pool_service)],
) -> PoolManager:
    return service.manager


PoolServiceDep = Annotated[PoolService, Depends(get_pool_service)]
PoolManagerDep = Annotated[PoolManager, Depends(get_pool_manager)]
