"""Exchange pool FastAPI application.

Run with:
    uvicorn --factory exchange_pool.main:create_app --host 0.0.0.0 --port 3000
    exchange-pool                  # same, using server.host/server.port
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from exchange_pool import __version__
from exchange_pool.api.v1 import router as api_router
from exchange_pool.config import Settings, get_settings
from exchange_pool.errors import PoolError
from exchange_pool.services.pool.lifecycle import init_pool_service, shutdown_pool_service
from exchange_pool.utils.logging import configure_logging

if TYPE_CHECKING:
    from exchange_pool.creators.base import ItemCreator

logger = structlog.get_logger()


def create_app(
    settings: Settings | None = None,
    *,
    creator: "ItemCreator | None" = None,
) -> FastAPI:
    """Build the FastAPI app.

    Args:
        settings: Defaults to the cached environment/YAML settings
        creator: Item creator; defaults to the SimpleSwap browser creator
    """
    settings = settings or get_settings()
    configure_logging(settings.logging.level, json_logs=settings.logging.json_logs)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "app.starting",
            version=__version__,
            port=settings.server.port,
            price_points=settings.pool.price_points,
        )
        app.state.pool_service = await init_pool_service(settings, creator)
        try:
            yield
        finally:
            await shutdown_pool_service(app.state.pool_service)
            logger.info("app.stopped")

    app = FastAPI(
        title="SimpleSwap Exchange Pool Server",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PoolError)
    async def pool_error_handler(request: Request, exc: PoolError) -> JSONResponse:
        logger.warning(
            "api.pool_error",
            path=request.url.path,
            code=exc.code,
            error=exc.message,
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("api.unhandled_error", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": str(exc), "code": "internal_error"},
        )

    app.include_router(api_router)
    return app


def run() -> None:
    """Console entry point."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(create_app(settings), host=settings.server.host, port=settings.server.port)


if __name__ == "__main__":
    run()
