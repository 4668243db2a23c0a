"""
Realtime and historical metric queries over the metrics cache.

Historical queries are range-checked before the cache is consulted: the
start must precede the end and the span may not exceed ``MAX_RANGE``.

CHANGELOG:
- 2026-10-12: Normalise query bounds to UTC
- 2026-10-08: Initial creation (STORY-011)

TODO:
- None
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from monitor.src.cache import MetricsCache
from monitor.src.models import MetricType, RealtimeMetrics, TimeseriesPoint
from monitor.src.result import ErrorKind, Result

MAX_RANGE = timedelta(days=90)
"""Longest accepted span for a historical query."""


def _is_blank(value: str | None) -> bool:
    return value is None or not value.strip()


def _as_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def get_realtime_metrics(cache: MetricsCache, plant_id: str) -> Result[RealtimeMetrics]:
    """Return the latest realtime snapshot of a plant."""
    if _is_blank(plant_id):
        return Result.fail("Plant ID is required.", ErrorKind.VALIDATION)

    snapshot = cache.get_realtime(plant_id)
    if snapshot is None:
        return Result.fail(
            f"No real-time metrics available for plant '{plant_id}'.",
            ErrorKind.NOT_FOUND,
        )
    return Result.ok(snapshot)


def get_device_realtime_metrics(
    cache: MetricsCache, device_id: str
) -> Result[RealtimeMetrics]:
    """Per-device realtime metrics.

    Not available from either source yet; a valid id always yields
    ``UNSUPPORTED``.
    """
    if _is_blank(device_id):
        return Result.fail("Device ID is required.", ErrorKind.VALIDATION)

    return Result.fail(
        "Device-level real-time metrics not yet implemented.",
        ErrorKind.UNSUPPORTED,
    )


def get_historical_data(
    cache: MetricsCache,
    plant_id: str,
    metric_type: MetricType,
    start: datetime,
    end: datetime,
) -> Result[list[TimeseriesPoint]]:
    """Return a plant's points of one metric type within ``[start, end]``.

    Args:
        cache: Metrics cache to read from.
        plant_id: Plant key.
        metric_type: Metric to select.
        start: Inclusive lower bound; naive values are read as UTC.
        end: Inclusive upper bound; naive values are read as UTC.

    Returns:
        Points in ascending timestamp order, possibly empty, or a
        ``VALIDATION`` failure when the id is blank, ``start >= end`` or the
        span exceeds ``MAX_RANGE``.
    """
    if _is_blank(plant_id):
        return Result.fail("Plant ID is required.", ErrorKind.VALIDATION)

    start, end = _as_utc(start), _as_utc(end)
    if start >= end:
        return Result.fail("'From' date must be before 'To' date.", ErrorKind.VALIDATION)

    if end - start > MAX_RANGE:
        return Result.fail(
            f"Time range cannot exceed {MAX_RANGE.days} days.", ErrorKind.VALIDATION
        )

    return Result.ok(cache.query_points(plant_id, metric_type, start, end))
