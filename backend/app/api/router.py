"""Top-level API router aggregation."""

from fastapi import APIRouter

from . import config, gateway, zones

api_router = APIRouter(prefix="/api")

api_router.include_router(zones.router)
api_router.include_router(gateway.router)
api_router.include_router(config.router)
