"""API router.

Mounted at the root path so existing clients of ``/buy-now`` and
``/admin/*`` keep working.
"""

from fastapi import APIRouter

from exchange_pool.api.v1.admin import router as admin_router
from exchange_pool.api.v1.pools import router as pools_router

router = APIRouter()

# Include sub-routers
router.include_router(pools_router, tags=["pools"])
router.include_router(admin_router, prefix="/admin", tags=["admin"])
