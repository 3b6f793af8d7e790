"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan manages startup/shutdown: the Redis pool and the
broker task that forwards Redis events to this process's SSE streams.
"""

import asyncio
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from barbershop import __version__
from barbershop.api import api_router
from barbershop.config import settings

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs at
    shutdown. Redis is optional — without it, events emitted in this
    process still reach this process's streams through the local broker.
    """
    logger.info(
        "barbershop.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    from barbershop.realtime.pubsub import broker, close_redis, init_redis

    listener_task = None
    try:
        redis = await init_redis()
        logger.info("barbershop.redis_connected", url=settings.redis_url)
        listener_task = asyncio.create_task(broker.listen(redis))
    except Exception as e:
        logger.warning("barbershop.redis_unavailable", error=str(e))
        await close_redis()

    yield

    # Shutdown
    logger.info("barbershop.shutdown")

    if listener_task is not None:
        listener_task.cancel()
        try:
            await listener_task
        except asyncio.CancelledError:
            pass

    await close_redis()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="Barbershop Realtime",
        description="Push delivery of booking, review and notification events",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    app.include_router(api_router)

    return app


# Default app instance (used by uvicorn: barbershop.main:app)
app = create_app()
