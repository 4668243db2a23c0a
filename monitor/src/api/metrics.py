"""
Realtime and historical metric endpoints for the dashboard.

- GET /api/metrics/plants/{plant_id}/realtime
- GET /api/metrics/plants/{plant_id}/timeseries?metricType=&from=&to=
- GET /api/metrics/devices/{device_id}/realtime

``from`` and ``to`` are ISO 8601 timestamps; values without an offset are
read as UTC. ``metricType`` is the integer MetricType value (1 = Power).

CHANGELOG:
- 2026-10-12: Leave UTC normalisation to the metrics service
- 2026-10-09: Initial creation (STORY-013)

TODO:
- None
"""

import logging
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse

from monitor.src.api.deps import CacheDep
from monitor.src.api.responses import to_response
from monitor.src.models import MetricType
from monitor.src.services import metrics as metrics_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/metrics", tags=["metrics"])


@router.get("/plants/{plant_id}/realtime")
async def plant_realtime(plant_id: str, cache: CacheDep) -> JSONResponse:
    """Return the latest realtime snapshot of a plant."""
    result = metrics_service.get_realtime_metrics(cache, plant_id)
    if result.is_failure:
        logger.warning(
            "Failed to get real-time metrics for plant %s: %s", plant_id, result.error
        )
    return to_response(result)


@router.get("/plants/{plant_id}/timeseries")
async def plant_timeseries(
    plant_id: str,
    cache: CacheDep,
    start: Annotated[datetime, Query(alias="from", description="Range start (ISO 8601).")],
    end: Annotated[datetime, Query(alias="to", description="Range end (ISO 8601).")],
    metric_type: Annotated[
        MetricType,
        Query(alias="metricType", description="MetricType value, e.g. 1 for Power."),
    ] = MetricType.POWER,
) -> JSONResponse:
    """Return a plant's historical points for one metric type.

    Args:
        plant_id: Plant key.
        cache: Metrics cache.
        start: Inclusive range start.
        end: Inclusive range end.
        metric_type: Metric to select.

    Returns:
        JSONResponse: Envelope with the points in ascending time order, or a
        400 envelope when the range is invalid.
    """
    result = metrics_service.get_historical_data(
        cache, plant_id, metric_type, start, end
    )
    if result.is_failure:
        logger.warning("Failed to get timeseries for plant %s: %s", plant_id, result.error)
    else:
        logger.debug(
            "Timeseries query: plant_id=%s metric=%s points=%d",
            plant_id,
            metric_type.name,
            len(result.value or []),
        )
    return to_response(result)


@router.get("/devices/{device_id}/realtime")
async def device_realtime(device_id: str, cache: CacheDep) -> JSONResponse:
    """Per-device realtime metrics (not available yet)."""
    result = metrics_service.get_device_realtime_metrics(cache, device_id)
    if result.is_failure:
        logger.warning(
            "Failed to get real-time metrics for device %s: %s", device_id, result.error
        )
    return to_response(result)
