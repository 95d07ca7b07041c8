"""GET /api/gateway - Gateway connection status and queue diagnostics.
   POST /api/gateway/reconnect - Drop the socket and connect again.
"""

import logging

from fastapi import APIRouter, HTTPException

from ..schemas.config import GatewayStatusResponse
from ..services.gateway import GatewayNotConfiguredError, GatewayService

logger = logging.getLogger(__name__)
router = APIRouter()

# Set by main.py during startup
_service: GatewayService | None = None


def set_service(service: GatewayService | None) -> None:
    global _service
    _service = service


@router.get("/gateway", response_model=GatewayStatusResponse)
async def get_gateway():
    """Return connection state, queue depth and reconnect progress."""
    if _service is None:
        return GatewayStatusResponse(configured=False, state="disconnected")
    return _service.status()


@router.post("/gateway/reconnect", response_model=GatewayStatusResponse)
async def reconnect_gateway():
    if _service is None:
        raise HTTPException(status_code=503, detail="Gateway service not started")
    try:
        await _service.async_reconnect()
    except GatewayNotConfiguredError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return _service.status()
