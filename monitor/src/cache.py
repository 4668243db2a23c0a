"""
In-memory metrics cache shared by the poller (writer) and the API (readers).

Stores the latest plant list, per-plant device lists, per-plant realtime and
energy snapshots, and a bounded per-plant time series. Every key holds an
immutable value that is replaced in a single assignment, so a reader sees
either the old value or the new one, never a mix. Collections are stored as
tuples for the same reason.

Time series retention is enforced on every append: the plant's series is
re-sorted and every point older than ``RETENTION`` is dropped before the new
tuple is published.

CHANGELOG:
- 2026-10-03: Initial creation (STORY-005)

TODO:
- None
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta

from monitor.src.models import (
    Device,
    EnergySummary,
    MetricType,
    Plant,
    RealtimeMetrics,
    TimeseriesPoint,
)

logger = logging.getLogger(__name__)

RETENTION = timedelta(days=30)
"""Age beyond which time series points are discarded."""


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


class MetricsCache:
    """Last-write-wins store for plants, devices, snapshots and time series.

    Args:
        clock: Callable returning the current UTC time. Used for the
            retention cutoff; injectable for tests.
    """

    def __init__(self, clock: Callable[[], datetime] = _utc_now) -> None:
        self._clock = clock
        self._plants: tuple[Plant, ...] | None = None
        self._devices: dict[str, tuple[Device, ...]] = {}
        self._realtime: dict[str, RealtimeMetrics] = {}
        self._energy: dict[str, EnergySummary] = {}
        self._series: dict[str, tuple[TimeseriesPoint, ...]] = {}
        self._series_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Plants
    # ------------------------------------------------------------------

    def set_plants(self, plants: Iterable[Plant]) -> None:
        self._plants = tuple(plants)

    def get_plants(self) -> tuple[Plant, ...] | None:
        """Return the last stored plant list, or ``None`` if never synced."""
        return self._plants

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------

    def set_devices(self, plant_id: str, devices: Iterable[Device]) -> None:
        self._devices[plant_id] = tuple(devices)

    def get_devices(self, plant_id: str) -> tuple[Device, ...] | None:
        return self._devices.get(plant_id)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def set_realtime(self, plant_id: str, snapshot: RealtimeMetrics) -> None:
        self._realtime[plant_id] = snapshot

    def get_realtime(self, plant_id: str) -> RealtimeMetrics | None:
        return self._realtime.get(plant_id)

    def set_energy(self, plant_id: str, snapshot: EnergySummary) -> None:
        self._energy[plant_id] = snapshot

    def get_energy(self, plant_id: str) -> EnergySummary | None:
        return self._energy.get(plant_id)

    # ------------------------------------------------------------------
    # Time series
    # ------------------------------------------------------------------

    def append_points(self, plant_id: str, points: Iterable[TimeseriesPoint]) -> None:
        """Append points to a plant's series and enforce retention.

        The full series is re-sorted by timestamp and every point older than
        ``now - RETENTION`` is discarded, including points being inserted.

        Args:
            plant_id: Plant whose series receives the points.
            points: New points, in any order.
        """
        cutoff = self._clock() - RETENTION
        with self._series_lock:
            merged = [*self._series.get(plant_id, ()), *points]
            kept = sorted(
                (p for p in merged if p.timestamp_utc >= cutoff),
                key=lambda p: p.timestamp_utc,
            )
            self._series[plant_id] = tuple(kept)

        dropped = len(merged) - len(kept)
        if dropped:
            logger.debug(
                "Retention dropped %d point(s) for plant %s", dropped, plant_id
            )

    def query_points(
        self,
        plant_id: str,
        metric_type: MetricType,
        start: datetime,
        end: datetime,
    ) -> list[TimeseriesPoint]:
        """Return points of *metric_type* with ``start <= ts <= end``.

        Results are in ascending timestamp order. An unknown plant or an
        empty match yields an empty list.
        """
        series = self._series.get(plant_id, ())
        return [
            p
            for p in series
            if p.metric_type == metric_type and start <= p.timestamp_utc <= end
        ]
