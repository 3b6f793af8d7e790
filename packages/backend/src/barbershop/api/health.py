"""Health check endpoint.

Learn: Simple GET endpoint that verifies the server is running, Redis
is reachable and reports how many push streams this process holds.
"""

from fastapi import APIRouter

from barbershop import __version__
from barbershop.realtime.pubsub import broker

router = APIRouter()


@router.get("/health")
async def health_check():
    """Check server health and dependency connectivity."""
    checks = {"server": "ok", "version": __version__}

    # Check Redis
    try:
        from redis.asyncio import from_url
        from barbershop.config import settings

        r = from_url(settings.redis_url)
        await r.ping()
        await r.aclose()
        checks["redis"] = "ok"
    except Exception as e:
        checks["redis"] = f"error: {e}"

    status = "healthy" if all(
        v == "ok" for k, v in checks.items() if k != "version"
    ) else "degraded"

    return {"status": status, **checks, "streams": broker.listener_count}
