"""
Background polling loop that keeps the metrics cache fresh.

Runs as one long-lived asyncio task next to the API. Each iteration fetches
the plant list from the active telemetry source and, for every plant in
turn, its devices, realtime metrics and energy summary. Every fetch is
isolated: one failing does not block or roll back the others, and each
success is written to the cache immediately. If the plant list itself cannot
be fetched, the cache is left untouched so stale data stays available.

A realtime success also appends one Power point (kW) to the plant's time
series, which is what the historical query endpoint serves.

The loop never retries with backoff; the fixed polling interval is the retry
mechanism. Graceful shutdown sets an ``asyncio.Event``, which cancels the
inter-iteration wait immediately while letting in-flight calls complete.

``create_source`` is the only place that looks at the configured source
mode; everything downstream talks to the ``TelemetrySource`` contract.

CHANGELOG:
- 2026-10-12: Isolate unexpected errors per plant
- 2026-10-07: Report lifecycle and iteration outcome through PollStatus
- 2026-10-06: Initial creation (STORY-010)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from monitor.src.cache import MetricsCache
from monitor.src.config import MonitorSettings, SourceMode
from monitor.src.health import PollingState, PollStatus
from monitor.src.models import MetricType, Plant, TimeseriesPoint
from monitor.src.sources.base import TelemetrySource
from monitor.src.sources.fusionsolar import FusionSolarClient
from monitor.src.sources.modbus import ModbusSource

logger = logging.getLogger(__name__)

__all__ = ["PollingOrchestrator", "PollingState", "create_source"]


# ---------------------------------------------------------------------------
# Source selection
# ---------------------------------------------------------------------------


def create_source(settings: MonitorSettings) -> TelemetrySource:
    """Build the telemetry source for the configured mode.

    Args:
        settings: Validated monitor settings.

    Returns:
        A FusionSolarClient in cloud mode, a ModbusSource in local mode.
    """
    if settings.source_mode is SourceMode.LOCAL:
        logger.info(
            "Using local Modbus source at %s:%d (unit %d)",
            settings.modbus_host,
            settings.modbus_port,
            settings.modbus_unit_id,
        )
        return ModbusSource(
            host=settings.modbus_host,
            port=settings.modbus_port,
            unit_id=settings.modbus_unit_id,
            connect_timeout_s=settings.modbus_connect_timeout_s,
            request_timeout_s=settings.modbus_request_timeout_s,
            registers=settings.modbus_registers,
            plant=settings.modbus_plant,
        )

    logger.info("Using FusionSolar cloud source at %s", settings.fusionsolar_base_url)
    return FusionSolarClient(
        base_url=settings.fusionsolar_base_url,
        username=settings.fusionsolar_username,
        password=settings.fusionsolar_password,
        request_timeout_s=settings.fusionsolar_request_timeout_s,
        token_ttl_s=settings.fusionsolar_token_ttl_s,
        realtime_fields=settings.fusionsolar_realtime_fields,
        energy_fields=settings.fusionsolar_energy_fields,
    )


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class PollingOrchestrator:
    """Polls a telemetry source on a fixed interval and fills the cache.

    Args:
        source: Active telemetry source.
        cache: Cache receiving every successful fetch.
        interval_s: Seconds to wait between iterations.
        status: Poll status tracker; a private one is created if omitted.
    """

    def __init__(
        self,
        source: TelemetrySource,
        cache: MetricsCache,
        interval_s: float,
        status: PollStatus | None = None,
    ) -> None:
        self._source = source
        self._cache = cache
        self._interval_s = interval_s
        self.status = status or PollStatus()

    @property
    def state(self) -> PollingState:
        return self.status.state

    async def run(self, shutdown_event: asyncio.Event) -> None:
        """Run until *shutdown_event* is set, then close the source.

        Args:
            shutdown_event: Event signalling graceful shutdown.
        """
        self.status.set_state(PollingState.STARTING)
        await self._start()

        logger.info("Polling loop started (interval=%ss)", self._interval_s)
        try:
            while not shutdown_event.is_set():
                self.status.set_state(PollingState.POLLING)
                await self.poll_once(shutdown_event)

                self.status.set_state(PollingState.SLEEPING)
                with contextlib.suppress(TimeoutError):
                    await asyncio.wait_for(
                        shutdown_event.wait(),
                        timeout=self._interval_s,
                    )
        finally:
            self.status.set_state(PollingState.STOPPING)
            try:
                await self._source.close()
            except Exception:
                logger.warning("Error while closing telemetry source", exc_info=True)
            self.status.set_state(PollingState.STOPPED)
            logger.info("Polling loop stopped")

    async def _start(self) -> None:
        """Open the source session and seed static metadata, if any."""
        try:
            result = await self._source.start()
            if result.is_failure:
                logger.warning(
                    "Initial source start-up failed, will retry on first poll: %s",
                    result.error,
                )
        except Exception:
            logger.error("Unexpected error during source start-up", exc_info=True)

        metadata = self._source.static_metadata()
        if metadata is not None:
            plants, devices_by_plant = metadata
            self._cache.set_plants(plants)
            for plant_id, devices in devices_by_plant.items():
                self._cache.set_devices(plant_id, devices)
            logger.info("Seeded cache with %d static plant(s)", len(plants))

    async def poll_once(self, shutdown_event: asyncio.Event | None = None) -> None:
        """Execute a single polling iteration.

        Catches all exceptions so that the caller's loop is never broken.

        Args:
            shutdown_event: Checked before each plant; when set, the
                remaining plants of this iteration are skipped.
        """
        try:
            plants_result = await self._source.fetch_plants()
            if plants_result.is_failure:
                logger.warning("Failed to fetch plants: %s", plants_result.error)
                self.status.record_failure(plants_result.error or "plant fetch failed")
                return

            plants = plants_result.value or []
            self._cache.set_plants(plants)
            logger.info("Fetched %d plant(s)", len(plants))

            for plant in plants:
                if shutdown_event is not None and shutdown_event.is_set():
                    logger.info("Shutdown requested, skipping remaining plants")
                    break
                try:
                    await self._poll_plant(plant)
                except Exception:
                    logger.error("Error polling plant %s", plant.id, exc_info=True)

            self.status.record_success(len(plants))
        except Exception as exc:
            logger.error("Poll cycle error", exc_info=True)
            self.status.record_failure(f"Unexpected error: {exc}")

    async def _poll_plant(self, plant: Plant) -> None:
        """Fetch devices, realtime metrics and energy for one plant."""
        devices = await self._source.fetch_devices(plant.id)
        if devices.is_success:
            self._cache.set_devices(plant.id, devices.value or [])
        else:
            logger.warning(
                "Failed to fetch devices for plant %s: %s", plant.id, devices.error
            )

        realtime = await self._source.fetch_realtime_metrics(plant.id)
        if realtime.is_success and realtime.value is not None:
            snapshot = realtime.value
            self._cache.set_realtime(plant.id, snapshot)
            self._cache.append_points(
                plant.id,
                [
                    TimeseriesPoint(
                        timestamp_utc=snapshot.timestamp_utc,
                        metric_type=MetricType.POWER,
                        value=snapshot.pv_power_kw or 0.0,
                        unit="kW",
                    )
                ],
            )
        else:
            logger.warning(
                "Failed to fetch realtime metrics for plant %s: %s",
                plant.id,
                realtime.error,
            )

        energy = await self._source.fetch_energy_summary(plant.id)
        if energy.is_success and energy.value is not None:
            self._cache.set_energy(plant.id, energy.value)
        else:
            logger.warning(
                "Failed to fetch energy summary for plant %s: %s",
                plant.id,
                energy.error,
            )
