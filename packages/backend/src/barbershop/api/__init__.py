"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: The realtime stream authenticates inside its own dependency
(header or query token), so no router-level auth is applied here.
"""

from fastapi import APIRouter

from barbershop.api.health import router as health_router
from barbershop.realtime.stream import router as realtime_router

api_router = APIRouter(prefix="/api")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(realtime_router, tags=["realtime"])
