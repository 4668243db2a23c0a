"""
Plant and device queries over the metrics cache.

Read-side only: every function validates its input, looks values up in the
cache and returns a :class:`~monitor.src.result.Result`. Nothing here touches
a telemetry source, so a slow or failing source never delays a read.

CHANGELOG:
- 2026-10-08: Initial creation (STORY-011)

TODO:
- None
"""

from __future__ import annotations

import logging

from monitor.src.cache import MetricsCache
from monitor.src.models import Device, DeviceStatus, Plant, PlantSummary
from monitor.src.result import ErrorKind, Result

logger = logging.getLogger(__name__)


def _is_blank(value: str | None) -> bool:
    return value is None or not value.strip()


def get_plants(cache: MetricsCache) -> Result[list[Plant]]:
    """Return every cached plant.

    Fails with ``NOT_SYNCED`` until a poll cycle has stored a non-empty list.
    """
    plants = cache.get_plants()
    if not plants:
        return Result.fail(
            "No plants available. Data may not have been synced yet.",
            ErrorKind.NOT_SYNCED,
        )
    return Result.ok(list(plants))


def get_plant_summary(cache: MetricsCache, plant_id: str) -> Result[PlantSummary]:
    """Compose the dashboard summary for one plant.

    Missing realtime or energy snapshots are tolerated and left as ``None``.
    The two snapshots are read independently and may come from different
    poll cycles.

    Args:
        cache: Metrics cache to read from.
        plant_id: Plant key.

    Returns:
        The summary, or a ``VALIDATION`` / ``NOT_FOUND`` failure.
    """
    if _is_blank(plant_id):
        return Result.fail("Plant ID is required.", ErrorKind.VALIDATION)

    plant = next((p for p in cache.get_plants() or () if p.id == plant_id), None)
    if plant is None:
        return Result.fail(f"Plant with ID '{plant_id}' not found.", ErrorKind.NOT_FOUND)

    devices = cache.get_devices(plant_id) or ()
    return Result.ok(
        PlantSummary(
            plant=plant,
            current_metrics=cache.get_realtime(plant_id),
            energy_summary=cache.get_energy(plant_id),
            total_devices=len(devices),
            active_devices=sum(1 for d in devices if d.status is DeviceStatus.NORMAL),
        )
    )


def get_devices(cache: MetricsCache, plant_id: str) -> Result[list[Device]]:
    """Return the cached devices of a plant.

    An unknown plant and a plant with zero devices both yield ``NOT_FOUND``.
    """
    if _is_blank(plant_id):
        return Result.fail("Plant ID is required.", ErrorKind.VALIDATION)

    devices = cache.get_devices(plant_id)
    if not devices:
        return Result.fail(
            f"No devices found for plant '{plant_id}'.", ErrorKind.NOT_FOUND
        )
    return Result.ok(list(devices))


def get_device_by_id(cache: MetricsCache, device_id: str) -> Result[Device]:
    """Find a device by id across every cached plant.

    Scans the device list of each cached plant in order. Plant counts are
    small, so a linear scan is sufficient.

    Returns:
        The device; ``VALIDATION`` for a blank id; ``NOT_SYNCED`` when no
        plant list is cached yet; ``NOT_FOUND`` when no plant has it.
    """
    if _is_blank(device_id):
        return Result.fail("Device ID is required.", ErrorKind.VALIDATION)

    plants = cache.get_plants()
    if not plants:
        return Result.fail("No data available.", ErrorKind.NOT_SYNCED)

    for plant in plants:
        for device in cache.get_devices(plant.id) or ():
            if device.id == device_id:
                return Result.ok(device)

    logger.debug("Device %s not found in %d cached plant(s)", device_id, len(plants))
    return Result.fail(f"Device with ID '{device_id}' not found.", ErrorKind.NOT_FOUND)
