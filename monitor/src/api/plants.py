"""
Plant and device endpoints for the dashboard.

- GET /api/plants: every cached plant.
- GET /api/plants/{plant_id}: plant summary with latest snapshots and
  device counts.
- GET /api/plants/{plant_id}/devices: devices of one plant.
- GET /api/devices/{device_id}: one device looked up across all plants.

Handlers are thin: they call the plant query service and wrap its result in
the response envelope.

CHANGELOG:
- 2026-10-09: Add device lookup route
- 2026-10-09: Initial creation (STORY-013)

TODO:
- None
"""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from monitor.src.api.deps import CacheDep
from monitor.src.api.responses import to_response
from monitor.src.services import plants as plant_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["plants"])


@router.get("/plants")
async def list_plants(cache: CacheDep) -> JSONResponse:
    """Return every plant from the last successful poll."""
    result = plant_service.get_plants(cache)
    if result.is_failure:
        logger.warning("Failed to get plants: %s", result.error)
    return to_response(result)


@router.get("/plants/{plant_id}")
async def plant_summary(plant_id: str, cache: CacheDep) -> JSONResponse:
    """Return the dashboard summary of one plant."""
    result = plant_service.get_plant_summary(cache, plant_id)
    if result.is_failure:
        logger.warning("Failed to get summary for plant %s: %s", plant_id, result.error)
    return to_response(result)


@router.get("/plants/{plant_id}/devices")
async def plant_devices(plant_id: str, cache: CacheDep) -> JSONResponse:
    """Return the devices of one plant."""
    result = plant_service.get_devices(cache, plant_id)
    if result.is_failure:
        logger.warning("Failed to get devices for plant %s: %s", plant_id, result.error)
    return to_response(result)


@router.get("/devices/{device_id}")
async def device(device_id: str, cache: CacheDep) -> JSONResponse:
    """Return one device by id."""
    result = plant_service.get_device_by_id(cache, device_id)
    if result.is_failure:
        logger.warning("Failed to get device %s: %s", device_id, result.error)
    return to_response(result)
