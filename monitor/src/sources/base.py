"""
Telemetry source contract implemented by the cloud and local clients.

Every fetch returns a :class:`~monitor.src.result.Result` instead of raising:
transport and decode errors are caught at the client boundary, logged with
context, and converted into a failed result. Callers never need to know which
implementation they are talking to.

CHANGELOG:
- 2026-10-03: Initial creation (STORY-006)

TODO:
- None
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from monitor.src.models import Device, EnergySummary, Plant, RealtimeMetrics
from monitor.src.result import Result


class TelemetrySource(ABC):
    """A place plant telemetry can be fetched from."""

    async def start(self) -> Result[None]:
        """Prepare the source before the first poll (e.g. open a session)."""
        return Result.ok()

    async def close(self) -> None:
        """Release the source. Must not raise."""

    def static_metadata(self) -> tuple[list[Plant], dict[str, list[Device]]] | None:
        """Plants and devices known without any remote call, if any.

        Returns:
            ``(plants, devices_by_plant_id)`` or ``None`` when the source
            only learns its plants by fetching them.
        """
        return None

    @abstractmethod
    async def fetch_plants(self) -> Result[list[Plant]]: ...

    @abstractmethod
    async def fetch_devices(self, plant_id: str) -> Result[list[Device]]: ...

    @abstractmethod
    async def fetch_realtime_metrics(self, plant_id: str) -> Result[RealtimeMetrics]: ...

    @abstractmethod
    async def fetch_energy_summary(self, plant_id: str) -> Result[EnergySummary]: ...
