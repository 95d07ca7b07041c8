"""GET /api/zones - Zone state.
   POST /api/zones/{zone}/... - Zone power, mute, volume, source, tone.
   POST /api/zones/all-off - System-wide power off.
"""

import logging
from typing import Any, Callable

from fastapi import APIRouter, HTTPException

from ..schemas.zone import (
    ActionResponse,
    MuteRequest,
    PowerRequest,
    SourceRequest,
    ToneRequest,
    VolumeRequest,
    ZonesResponse,
    ZoneStateResponse,
)
from ..services.gateway import (
    GatewayNotConfiguredError,
    GatewayService,
    UnsupportedCommandError,
)

logger = logging.getLogger(__name__)
router = APIRouter()

# Set by main.py during startup
_service: GatewayService | None = None


def set_service(service: GatewayService | None) -> None:
    global _service
    _service = service


def _get_service() -> GatewayService:
    if _service is None:
        raise HTTPException(status_code=503, detail="Gateway service not started")
    return _service


def _zone_response(service: GatewayService, zone: int) -> ZoneStateResponse:
    state = service.store.get(zone)
    if state is None:
        raise HTTPException(status_code=404, detail=f"Unknown zone {zone}")
    return ZoneStateResponse(**state.to_dict())


def _run(action: Callable[..., Any], *args: Any) -> Any:
    """Run a service action, mapping its errors to HTTP responses."""
    try:
        return action(*args)
    except GatewayNotConfiguredError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except UnsupportedCommandError as e:
        raise HTTPException(status_code=501, detail=str(e)) from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.get("/zones", response_model=ZonesResponse)
async def get_zones():
    """Return the last known state of every zone."""
    service = _get_service()
    return {"zones": service.store.snapshot()}


@router.get("/zones/{zone}", response_model=ZoneStateResponse)
async def get_zone(zone: int):
    return _zone_response(_get_service(), zone)


@router.post("/zones/all-off", response_model=ActionResponse)
async def all_zones_off():
    """Turn every zone off with a single zone-0 command."""
    service = _get_service()
    _run(service.all_zones_off)
    return ActionResponse()


@router.post("/zones/{zone}/power", response_model=ActionResponse)
async def set_power(zone: int, body: PowerRequest):
    service = _get_service()
    _run(service.set_zone_power, zone, body.on)
    return ActionResponse(zone=_zone_response(service, zone))


@router.post("/zones/{zone}/off", response_model=ActionResponse)
async def zone_off(zone: int):
    service = _get_service()
    _run(service.zone_off, zone)
    return ActionResponse(zone=_zone_response(service, zone))


@router.post("/zones/{zone}/mute", response_model=ActionResponse)
async def set_mute(zone: int, body: MuteRequest):
    service = _get_service()
    _run(service.set_zone_mute, zone, body.on)
    return ActionResponse(zone=_zone_response(service, zone))


@router.post("/zones/{zone}/volume", response_model=ActionResponse)
async def set_volume(zone: int, body: VolumeRequest):
    """Set zone volume 0-100; out-of-range levels are clamped."""
    service = _get_service()
    _run(service.set_zone_volume, zone, body.level)
    return ActionResponse(zone=_zone_response(service, zone))


@router.post("/zones/{zone}/source", response_model=ActionResponse)
async def set_source(zone: int, body: SourceRequest):
    """Select source 1-6; out-of-range values are clamped."""
    service = _get_service()
    _run(service.set_zone_source, zone, body.source)
    return ActionResponse(zone=_zone_response(service, zone))


@router.post("/zones/{zone}/tone", response_model=ActionResponse)
async def set_tone(zone: int, body: ToneRequest):
    """Bass/treble/balance/loudness; 501 until the command id is configured."""
    service = _get_service()
    _run(service.set_zone_tone, zone, body.kind, body.level)
    return ActionResponse(zone=_zone_response(service, zone))
