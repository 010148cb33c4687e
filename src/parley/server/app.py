"""FastAPI application factory."""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from parley import __version__
from parley.config.schema import ParleyConfig
from parley.gateway.limits import DedupWindow, RateLimiter
from parley.gateway.service import ChatService
from parley.server.routes import create_router

logger = logging.getLogger(__name__)


async def _sweep(limiter: RateLimiter, dedup: DedupWindow, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        evicted = limiter.sweep() + dedup.sweep()
        if evicted:
            logger.debug("Swept %d stale channel entries", evicted)


def create_app(config: ParleyConfig, service: ChatService | None = None) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        config: Parley configuration
        service: Chat service (built from config if None)

    Returns:
        Configured FastAPI app
    """
    service = service or ChatService.from_config(config)
    limits = config.limits
    limiter = RateLimiter(limits.rate_limit_max, limits.rate_limit_window_ms, limits.max_tracked_channels)
    dedup = DedupWindow(limits.dedup_window_ms, limits.max_tracked_channels)

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        sweeper = asyncio.create_task(_sweep(limiter, dedup, limits.sweep_interval_seconds))
        try:
            yield
        finally:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper

    app = FastAPI(
        title="Parley",
        description="Multi-tenant LLM gateway orchestration",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.service = service
    app.include_router(create_router(service, limiter, dedup))

    return app
